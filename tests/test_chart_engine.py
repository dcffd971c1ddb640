import pytest

from chart_engine import (
    ChartTimingModel,
    ChartValidationError,
    build_schedule,
    estimate_duration_ms,
    measure_duration_ms,
    note_time_ms,
    subdivision_duration_ms,
    validate_schedule,
    visualize_pattern,
)
from gameplay_models import Chart, ChartNote, Lane, Measure, NoteType

EMPTY = "0" * 16


def make_chart(*measures, bpm=120.0, subdivision=16, offset_seconds=0.0):
    return Chart(
        bpm=bpm,
        subdivision=subdivision,
        beats_per_measure=4,
        offset_seconds=offset_seconds,
        measures=tuple(Measure(top_lane=top, bottom_lane=bottom) for top, bottom in measures),
    )


def test_quarter_notes_at_120_bpm():
    chart = make_chart(("1000100010001000", EMPTY))
    schedule = build_schedule(chart, travel_time_ms=0.0)

    assert [note.hit_time_ms for note in schedule.notes] == [0.0, 500.0, 1000.0, 1500.0]
    assert all(note.lanes == frozenset({Lane.TOP}) for note in schedule.notes)
    assert schedule.dropped == ()


def test_spawn_time_is_hit_time_minus_travel():
    chart = make_chart(("1000100010001000", "0010001000100010"), offset_seconds=3.0)
    schedule = build_schedule(chart, travel_time_ms=3000.0)

    assert len(schedule.notes) == 8
    for note in schedule.notes:
        assert note.spawn_time_ms == pytest.approx(note.hit_time_ms - 3000.0)
        assert note.spawn_time_ms >= 0.0


def test_negative_spawns_are_dropped_not_shifted():
    chart = make_chart(("1000100010001000", EMPTY))
    schedule = build_schedule(chart, travel_time_ms=1000.0)

    assert [note.hit_time_ms for note in schedule.dropped] == [0.0, 500.0]
    assert [note.hit_time_ms for note in schedule.notes] == [1000.0, 1500.0]
    assert schedule.notes[0].spawn_time_ms == 0.0


def test_schedule_order_ties_top_before_bottom():
    chart = make_chart(("1000000000000000", "2000300000000000"))
    schedule = build_schedule(chart, travel_time_ms=0.0)

    assert [note.ordered_lanes() for note in schedule.notes] == [[Lane.TOP], [Lane.BOTTOM]]
    assert schedule.notes[1].note_type == NoteType.HOLD


def test_same_instant_onsets_merge_into_dual_note():
    chart = make_chart(("1000000000000000", "1000000000000000"))
    schedule = build_schedule(chart, travel_time_ms=0.0)

    assert len(schedule.notes) == 1
    assert schedule.notes[0].is_dual
    assert schedule.notes[0].ordered_lanes() == [Lane.TOP, Lane.BOTTOM]


def test_pattern_length_mismatch_is_rejected():
    chart = make_chart(("100010001000", EMPTY))
    with pytest.raises(ChartValidationError) as excinfo:
        build_schedule(chart, travel_time_ms=0.0)
    assert len(excinfo.value.issues) == 1
    assert "length 12" in excinfo.value.issues[0]


def test_invalid_characters_are_rejected():
    chart = make_chart(("10001000100010x0", EMPTY))
    with pytest.raises(ChartValidationError) as excinfo:
        build_schedule(chart, travel_time_ms=0.0)
    assert "'x'" in excinfo.value.issues[0]


def test_every_issue_is_reported():
    chart = make_chart(("10001000", "0000000x"))
    with pytest.raises(ChartValidationError) as excinfo:
        build_schedule(chart, travel_time_ms=0.0)
    assert len(excinfo.value.issues) == 3


def test_header_is_validated():
    with pytest.raises(ChartValidationError):
        build_schedule(make_chart(("1" + "0" * 15, EMPTY), bpm=0.0), travel_time_ms=0.0)
    with pytest.raises(ChartValidationError):
        build_schedule(
            Chart(bpm=120.0, subdivision=16, beats_per_measure=4, offset_seconds=0.0, measures=()),
            travel_time_ms=0.0,
        )


def test_hold_duration_within_measure():
    chart = make_chart(("2000300000000000", EMPTY))
    schedule = build_schedule(chart, travel_time_ms=0.0)

    (hold,) = schedule.notes
    assert hold.note_type == NoteType.HOLD
    assert hold.hit_time_ms == 0.0
    assert hold.hold_duration_ms == pytest.approx(500.0)


def test_hold_can_span_measures():
    chart = make_chart(("0000000000002000", EMPTY), ("0000300000000000", EMPTY))
    schedule = build_schedule(chart, travel_time_ms=0.0)

    (hold,) = schedule.notes
    assert hold.hit_time_ms == pytest.approx(1500.0)
    assert hold.hold_duration_ms == pytest.approx(1000.0)


@pytest.mark.parametrize(
    "pattern, fragment",
    [
        ("0000300000000000", "hold end without a hold start"),
        ("2000000000000000", "never closed"),
        ("2000200030000000", "another hold is open"),
        ("2000100030000000", "tap inside an open hold"),
    ],
)
def test_hold_markers_must_pair(pattern, fragment):
    with pytest.raises(ChartValidationError) as excinfo:
        build_schedule(make_chart((pattern, EMPTY)), travel_time_ms=0.0)
    assert any(fragment in issue for issue in excinfo.value.issues)


def test_onsets_closer_than_min_separation_are_reported():
    chart = make_chart(("11" + "0" * 30, "0" * 32), subdivision=32)
    with pytest.raises(ChartValidationError) as excinfo:
        build_schedule(chart, travel_time_ms=0.0)
    assert "closer than 100 ms" in excinfo.value.issues[0]

    relaxed = ChartTimingModel(travel_time_ms=0.0, min_separation_ms=50.0)
    assert len(relaxed.build_schedule(chart).notes) == 2


def test_timing_helpers():
    chart = make_chart(("1000100010001000", EMPTY), ("1000100010001000", EMPTY), offset_seconds=0.5)

    assert measure_duration_ms(chart) == pytest.approx(2000.0)
    assert subdivision_duration_ms(chart) == pytest.approx(125.0)
    assert note_time_ms(chart, 1, 4) == pytest.approx(3000.0)
    assert estimate_duration_ms(chart) == pytest.approx(4500.0)


def test_visualize_pattern_marks_beats():
    chart = make_chart(("1000100010001000", EMPTY))
    assert visualize_pattern(chart, "1000100010001000") == "|●---|●---|●---|●---|\n"
    assert visualize_pattern(chart, "2000300000000000", "hold").startswith("hold\n|[---|]")


def test_validate_schedule_reports_problems():
    notes = [
        ChartNote(spawn_time_ms=-10.0, hit_time_ms=990.0, lanes=frozenset({Lane.TOP})),
        ChartNote(spawn_time_ms=50.0, hit_time_ms=1050.0, lanes=frozenset({Lane.TOP, Lane.BOTTOM})),
    ]
    issues = validate_schedule(notes, min_separation_ms=100.0)
    assert any("negative spawn" in issue for issue in issues)
    assert any("top lane" in issue for issue in issues)
