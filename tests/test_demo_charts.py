import logging

import pytest

from chart_engine import build_schedule, validate_chart
from demo_charts import DEMO_DIFFICULTIES, build_demo_chart, build_template_chart, template_pattern_types
from gameplay_models import Judgement, Lane, NoteType
from presenter import LoggingPresenter, Presenter


@pytest.mark.parametrize("difficulty", DEMO_DIFFICULTIES)
def test_demo_charts_are_valid_and_fully_schedulable(difficulty):
    chart = build_demo_chart(difficulty=difficulty)
    validate_chart(chart)

    schedule = build_schedule(chart, travel_time_ms=3000.0)
    assert schedule.dropped == ()
    assert schedule.notes[0].spawn_time_ms >= 0.0


def test_easy_demo_has_forty_single_lane_notes():
    schedule = build_schedule(build_demo_chart(difficulty="easy"), travel_time_ms=3000.0)
    assert len(schedule.notes) == 40
    assert not any(note.is_dual for note in schedule.notes)


def test_holds_demo_contains_a_dual_hold():
    schedule = build_schedule(build_demo_chart(difficulty="holds"), travel_time_ms=3000.0)
    dual_holds = [note for note in schedule.notes if note.is_dual and note.note_type == NoteType.HOLD]
    assert len(dual_holds) == 1
    assert dual_holds[0].lanes == frozenset({Lane.TOP, Lane.BOTTOM})


def test_unknown_demo_difficulty_falls_back_to_easy():
    assert build_demo_chart(difficulty="legendary") == build_demo_chart(difficulty="easy")


def test_template_chart_cycles_variations():
    chart = build_template_chart(pattern_type="advanced", measure_count=3)

    assert len(chart.measures) == 3
    assert chart.measures[0] == chart.measures[2]
    assert chart.measures[0] != chart.measures[1]
    validate_chart(chart)


def test_template_chart_rejects_unknown_subdivision():
    assert template_pattern_types(8) == ["basic", "intermediate"]
    assert template_pattern_types(12) == []
    with pytest.raises(ValueError):
        build_template_chart(subdivision=12)
    with pytest.raises(ValueError):
        build_template_chart(measure_count=0)


def test_logging_presenter_satisfies_the_protocol(caplog):
    presenter = LoggingPresenter()
    assert isinstance(presenter, Presenter)

    with caplog.at_level(logging.INFO, logger="presenter"):
        presenter.on_resolve(7, Judgement.GREAT)
    assert "note #7 -> great" in caplog.text
