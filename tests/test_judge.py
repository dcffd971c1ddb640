import pytest

import config as config_module
from gameplay_models import ChartNote, Judgement, Lane, NoteType
from judge import JudgementWindows, JudgmentEngine, ScoringTable
from note_lifecycle import LaneGeometry, NoteLifecycle


def note(hit_time_ms, lane=Lane.TOP, hold_ms=0.0, travel_ms=3000.0):
    return ChartNote(
        spawn_time_ms=hit_time_ms - travel_ms,
        hit_time_ms=hit_time_ms,
        lanes=frozenset({lane}),
        note_type=NoteType.HOLD if hold_ms else NoteType.NORMAL,
        hold_duration_ms=hold_ms,
    )


def make_engine(notes, geometry=None, presenter=None):
    geometry = geometry or LaneGeometry()
    windows = JudgementWindows()
    lifecycle = NoteLifecycle(notes, geometry=geometry, overrun_units=windows.overrun, presenter=presenter)
    engine = JudgmentEngine(lifecycle, windows=windows, scoring=ScoringTable())
    return engine, lifecycle


def test_windows_from_default_config_match_unit_windows():
    windows = JudgementWindows.from_config(config_module.JudgementConfig(), LaneGeometry())
    assert windows == JudgementWindows()


@pytest.mark.parametrize(
    "distance, expected",
    [
        (0.0, Judgement.PERFECT),
        (30.0, Judgement.PERFECT),
        (31.0, Judgement.GREAT),
        (60.0, Judgement.GREAT),
        (61.0, Judgement.GOOD),
        (90.0, Judgement.GOOD),
        (91.0, Judgement.MISS),
    ],
)
def test_classify_distance_boundaries(distance, expected):
    assert JudgementWindows().classify_distance(distance) == expected


def test_hold_ratio_classification():
    table = ScoringTable()
    assert table.classify_hold_ratio(1.0) == Judgement.PERFECT
    assert table.classify_hold_ratio(0.95) == Judgement.GREAT
    assert table.classify_hold_ratio(0.7) == Judgement.GOOD
    assert table.classify_hold_ratio(0.69) == Judgement.MISS


@pytest.mark.parametrize(
    "early_ms, expected, points",
    [
        (0.0, Judgement.PERFECT, 300),
        (90.0, Judgement.PERFECT, 300),
        (93.0, Judgement.GREAT, 200),
        (183.0, Judgement.GOOD, 100),
        (273.0, Judgement.MISS, 0),
    ],
)
def test_press_judgement_by_timing(early_ms, expected, points):
    engine, lifecycle = make_engine([note(3000.0)])
    lifecycle.spawn_due(0.0)

    event = engine.on_press(Lane.TOP, 3000.0 - early_ms)

    assert event.judgement == expected
    assert event.score_delta == points
    assert engine.score_state().total_score == points
    assert lifecycle.live_count() == 0


def test_press_with_nothing_in_range_is_a_no_op():
    engine, lifecycle = make_engine([note(3000.0)])
    lifecycle.spawn_due(0.0)

    assert engine.on_press(Lane.TOP, 2000.0) is None
    assert engine.on_press(Lane.BOTTOM, 3000.0) is None
    assert engine.score_state().total_judged() == 0
    assert engine.score_state().combo == 0
    assert lifecycle.live_count() == 1


def test_release_without_hold_is_ignored():
    engine, _ = make_engine([note(3000.0)])
    assert engine.on_release(Lane.TOP, 3000.0) is None


def test_full_hold_scores_press_ticks_and_bonus():
    engine, lifecycle = make_engine([note(3000.0, hold_ms=1000.0)])
    lifecycle.spawn_due(0.0)

    start = engine.on_press(Lane.TOP, 3000.0)
    assert start.kind == "hold_start"
    assert start.judgement == Judgement.PERFECT

    assert engine.update_for_time(3500.0) == []
    events = engine.update_for_time(4000.0)

    assert [event.kind for event in events] == ["hold_complete"]
    assert events[0].judgement == Judgement.PERFECT
    state = engine.score_state()
    assert state.total_score == 900
    assert state.combo == 1
    assert state.hold_count == 1
    assert lifecycle.active_holds() == {}
    # Release after completion finds nothing to resolve.
    assert engine.on_release(Lane.TOP, 4010.0) is None


def test_early_release_is_graded_by_ratio():
    engine, lifecycle = make_engine([note(3000.0, hold_ms=1000.0)])
    lifecycle.spawn_due(0.0)
    engine.on_press(Lane.TOP, 3000.0)

    event = engine.on_release(Lane.TOP, 3800.0)

    assert event.kind == "hold_release"
    assert event.judgement == Judgement.GOOD
    assert engine.score_state().total_score == 480
    assert engine.score_state().combo == 1


def test_short_hold_release_is_a_miss():
    engine, lifecycle = make_engine([note(3000.0, hold_ms=1000.0)])
    lifecycle.spawn_due(0.0)
    engine.on_press(Lane.TOP, 3000.0)

    event = engine.on_release(Lane.TOP, 3500.0)

    assert event.judgement == Judgement.MISS
    state = engine.score_state()
    assert state.total_score == 350
    assert state.combo == 0
    assert state.miss_count == 1
    assert state.hold_count == 0


def test_hold_press_outside_good_misses_without_holding():
    engine, lifecycle = make_engine([note(3000.0, hold_ms=1000.0)])
    lifecycle.spawn_due(0.0)

    event = engine.on_press(Lane.TOP, 2715.0)

    assert event.judgement == Judgement.MISS
    assert event.kind == "hold_start"
    assert lifecycle.active_holds() == {}
    assert lifecycle.live_count() == 0


def test_overrun_miss_is_reported_once():
    engine, lifecycle = make_engine([note(3000.0)])
    lifecycle.spawn_due(0.0)

    assert engine.update_for_time(3300.0) == []
    events = engine.update_for_time(3301.0)
    assert [(event.kind, event.judgement) for event in events] == [("overrun_miss", Judgement.MISS)]
    assert engine.update_for_time(3400.0) == []
    assert engine.score_state().miss_count == 1


def test_press_on_unrendered_note_is_a_stray_miss(presenter):
    presenter.fail_on_spawn.add(1)
    engine, lifecycle = make_engine([note(3000.0)], presenter=presenter)
    lifecycle.spawn_due(0.0)

    event = engine.on_press(Lane.TOP, 3000.0)

    assert event.kind == "stray_miss"
    assert event.judgement == Judgement.MISS
    assert engine.score_state().miss_count == 1
    assert lifecycle.live_count() == 0


def test_equidistant_press_picks_the_earlier_note():
    geometry = LaneGeometry(travel_time_ms=1000.0)
    engine, lifecycle = make_engine(
        [note(3000.0, travel_ms=1000.0), note(3100.0, travel_ms=1000.0)], geometry=geometry
    )
    lifecycle.spawn_due(2100.0)

    event = engine.on_press(Lane.TOP, 3050.0)

    assert event.judgement == Judgement.GREAT
    assert [live.hit_time_ms for live in lifecycle.live_notes()] == [3100.0]


def test_recent_judgements_accumulate_until_cleared():
    engine, lifecycle = make_engine([note(3000.0), note(3500.0, Lane.BOTTOM)])
    lifecycle.spawn_due(500.0)
    engine.on_press(Lane.TOP, 3000.0)
    engine.on_press(Lane.BOTTOM, 3500.0)

    assert [event.lane for event in engine.recent_judgements()] == [Lane.TOP, Lane.BOTTOM]
    engine.clear_recent_judgements()
    assert engine.recent_judgements() == []


def test_press_at_the_window_edge_beats_the_overrun_sweep():
    engine, lifecycle = make_engine([note(3000.0)])
    lifecycle.spawn_due(0.0)

    event = engine.on_press(Lane.TOP, 3300.0)
    assert (event.kind, event.judgement) == ("tap", Judgement.MISS)
    assert event.distance == pytest.approx(100.0)

    assert engine.update_for_time(3301.0) == []
    assert len(engine.recent_judgements()) == 1
    assert engine.score_state().miss_count == 1
    assert engine.score_state().total_judged() == 1


def test_press_past_the_window_leaves_the_note_to_the_sweep():
    engine, lifecycle = make_engine([note(3000.0)])
    lifecycle.spawn_due(0.0)

    assert engine.on_press(Lane.TOP, 3301.0) is None

    events = engine.update_for_time(3301.0)
    assert [event.kind for event in events] == ["overrun_miss"]
    assert len(engine.recent_judgements()) == 1
    assert engine.score_state().miss_count == 1
    assert engine.score_state().total_judged() == 1
