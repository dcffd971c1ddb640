# -*- coding: utf-8 -*-
########################
# chart_engine.py
########################
# Purpose:
# - Chart timing model: converts beat-grid charts into an ordered ChartNote schedule.
# - Validates charts strictly before any note is scheduled.
#
########################
# Key Logic:
# - Grid conversion per onset at subdivision index i of measure m:
#   - beat_position = (i / subdivision) * beats_per_measure
#   - absolute_beat = m * beats_per_measure + beat_position
#   - hit_time_ms = absolute_beat * 60000 / bpm + offset_ms
# - Pattern alphabet: 0 empty, 1 tap, 2 hold start, 3 hold end.
#   A hold lasts from its 2 to the next 3 in the same lane (possibly in a later measure).
# - Strict contract:
#   - Never coerce a chart. Every issue is collected and raised as ChartValidationError.
#   - Notes whose spawn time would be negative are dropped, not shifted, and returned in
#     ChartSchedule.dropped so the caller can log them.
# - Onsets of both lanes at one grid position merge into one dual-lane ChartNote when
#   their type and hold duration match.
# - Output order: ascending hit time, ties in declaration order (measure, index, top before bottom).
#
########################
# Interfaces:
# Public exceptions:
# - class ChartValidationError(ValueError)
#
# Public classes:
# - class ChartTimingModel
#   - __init__(*, travel_time_ms: float, min_separation_ms: float = 100.0)
#   - validate(chart) -> None
#   - build_schedule(chart) -> ChartSchedule
#
# Public functions:
# - build_schedule(chart, *, travel_time_ms, min_separation_ms=100.0) -> ChartSchedule
# - validate_chart(chart, *, min_separation_ms=100.0) -> None
# - validate_schedule(notes, *, min_separation_ms=100.0) -> list[str]
# - note_time_ms(chart, measure_index, subdivision_index) -> float
# - measure_duration_ms(chart) -> float
# - subdivision_duration_ms(chart) -> float
# - estimate_duration_ms(chart) -> float
# - visualize_pattern(chart, pattern, pattern_name="") -> str
#
########################
# Smoke Tests:
#   - python chart_engine.py
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from gameplay_models import (
    EMPTY_MARK,
    HOLD_END_MARK,
    HOLD_START_MARK,
    LANE_ORDER,
    PATTERN_ALPHABET,
    TAP_MARK,
    Chart,
    ChartNote,
    ChartSchedule,
    Lane,
    Measure,
    NoteType,
)

logger = logging.getLogger(__name__)


class ChartValidationError(ValueError):
    """Raised when a chart violates pattern, alphabet, hold or timing rules."""

    def __init__(self, issues: Sequence[str]) -> None:
        self.issues: List[str] = [str(issue) for issue in issues]
        summary = "; ".join(self.issues[:5])
        if len(self.issues) > 5:
            summary += f"; ... ({len(self.issues) - 5} more)"
        super().__init__(f"Chart validation failed with {len(self.issues)} issue(s): {summary}")


@dataclass(frozen=True)
class _Onset:
    hit_time_ms: float
    measure_index: int
    subdivision_index: int
    lane: Lane
    note_type: NoteType
    hold_duration_ms: float = 0.0


def note_time_ms(chart: Chart, measure_index: int, subdivision_index: int) -> float:
    beat_position = (float(subdivision_index) / float(chart.subdivision)) * float(chart.beats_per_measure)
    absolute_beat = float(measure_index) * float(chart.beats_per_measure) + beat_position
    return absolute_beat * 60000.0 / float(chart.bpm) + float(chart.offset_seconds) * 1000.0


def measure_duration_ms(chart: Chart) -> float:
    return float(chart.beats_per_measure) * 60000.0 / float(chart.bpm)


def subdivision_duration_ms(chart: Chart) -> float:
    return measure_duration_ms(chart) / float(chart.subdivision)


def estimate_duration_ms(chart: Chart) -> float:
    return float(len(chart.measures)) * measure_duration_ms(chart) + float(chart.offset_seconds) * 1000.0


def visualize_pattern(chart: Chart, pattern: str, pattern_name: str = "") -> str:
    """Render a lane pattern with beat separators, for debugging charts by eye."""
    if not pattern:
        return ""

    glyphs = {EMPTY_MARK: "-", TAP_MARK: "●", HOLD_START_MARK: "[", HOLD_END_MARK: "]"}
    per_beat = max(1, int(chart.subdivision) // max(1, int(chart.beats_per_measure)))

    parts = ["|"]
    for index, character in enumerate(pattern):
        parts.append(glyphs.get(character, "?"))
        if (index + 1) % per_beat == 0 and index < len(pattern) - 1:
            parts.append("|")
    parts.append("|")

    header = f"{pattern_name}\n" if pattern_name else ""
    return header + "".join(parts) + "\n"


def _validate_header(chart: Chart) -> List[str]:
    issues: List[str] = []
    if not float(chart.bpm) > 0.0:
        issues.append(f"bpm must be positive, got {chart.bpm}")
    if int(chart.subdivision) <= 0:
        issues.append(f"subdivision must be positive, got {chart.subdivision}")
    if int(chart.beats_per_measure) <= 0:
        issues.append(f"beats_per_measure must be positive, got {chart.beats_per_measure}")
    if not chart.measures:
        issues.append("chart has no measures")
    return issues


def _validate_patterns(chart: Chart) -> List[str]:
    issues: List[str] = []
    for measure_index, measure in enumerate(chart.measures):
        for lane in LANE_ORDER:
            pattern = measure.pattern_for(lane)
            name = f"measure {measure_index} {lane.value} lane"
            if not isinstance(pattern, str):
                issues.append(f"{name}: pattern is missing")
                continue
            if len(pattern) != int(chart.subdivision):
                issues.append(f"{name}: pattern length {len(pattern)} does not match subdivision {chart.subdivision}")
            for position, character in enumerate(pattern):
                if character not in PATTERN_ALPHABET:
                    issues.append(f"{name}: invalid character {character!r} at position {position}")
    return issues


def _collect_lane_onsets(chart: Chart, lane: Lane, issues: List[str]) -> List[_Onset]:
    onsets: List[_Onset] = []
    open_hold: Optional[Tuple[float, int, int]] = None

    for measure_index, measure in enumerate(chart.measures):
        pattern = measure.pattern_for(lane)
        for subdivision_index, character in enumerate(pattern):
            if character == EMPTY_MARK:
                continue

            time_ms = note_time_ms(chart, measure_index, subdivision_index)
            where = f"measure {measure_index} {lane.value} lane position {subdivision_index}"

            if character == TAP_MARK:
                if open_hold is not None:
                    issues.append(f"{where}: tap inside an open hold")
                    continue
                onsets.append(_Onset(time_ms, measure_index, subdivision_index, lane, NoteType.NORMAL))
            elif character == HOLD_START_MARK:
                if open_hold is not None:
                    issues.append(f"{where}: hold start while another hold is open")
                    continue
                open_hold = (time_ms, measure_index, subdivision_index)
            elif character == HOLD_END_MARK:
                if open_hold is None:
                    issues.append(f"{where}: hold end without a hold start")
                    continue
                start_ms, start_measure, start_index = open_hold
                onsets.append(
                    _Onset(
                        start_ms,
                        start_measure,
                        start_index,
                        lane,
                        NoteType.HOLD,
                        hold_duration_ms=time_ms - start_ms,
                    )
                )
                open_hold = None

    if open_hold is not None:
        _, start_measure, start_index = open_hold
        issues.append(f"measure {start_measure} {lane.value} lane position {start_index}: hold is never closed")

    onsets.sort(key=lambda item: (item.measure_index, item.subdivision_index))
    return onsets


def _separation_issues(lane: Lane, hit_times: Iterable[float], min_separation_ms: float) -> List[str]:
    issues: List[str] = []
    previous: Optional[float] = None
    for hit_time in hit_times:
        if previous is not None and (hit_time - previous) < float(min_separation_ms):
            issues.append(
                f"{lane.value} lane: onsets at {previous:.1f} ms and {hit_time:.1f} ms are closer than {min_separation_ms:.0f} ms"
            )
        previous = hit_time
    return issues


def _collect_onsets(chart: Chart, *, min_separation_ms: float) -> Dict[Lane, List[_Onset]]:
    issues = _validate_header(chart)
    if issues:
        raise ChartValidationError(issues)

    issues = _validate_patterns(chart)
    if issues:
        raise ChartValidationError(issues)

    onsets_by_lane: Dict[Lane, List[_Onset]] = {}
    for lane in LANE_ORDER:
        onsets_by_lane[lane] = _collect_lane_onsets(chart, lane, issues)
    for lane in LANE_ORDER:
        issues.extend(_separation_issues(lane, (onset.hit_time_ms for onset in onsets_by_lane[lane]), min_separation_ms))

    if issues:
        raise ChartValidationError(issues)
    return onsets_by_lane


def validate_chart(chart: Chart, *, min_separation_ms: float = 100.0) -> None:
    _collect_onsets(chart, min_separation_ms=min_separation_ms)


def validate_schedule(notes: Sequence[ChartNote], *, min_separation_ms: float = 100.0) -> List[str]:
    """Report timing problems of an already built schedule (generated charts use this)."""
    issues: List[str] = []
    for index, note in enumerate(notes):
        if note.spawn_time_ms < 0.0:
            issues.append(f"note {index} has negative spawn time {note.spawn_time_ms:.1f} ms")
    for lane in LANE_ORDER:
        hit_times = sorted(note.hit_time_ms for note in notes if lane in note.lanes)
        issues.extend(_separation_issues(lane, hit_times, min_separation_ms))
    return issues


def _merge_into_chart_notes(onsets_by_lane: Dict[Lane, List[_Onset]], travel_time_ms: float) -> List[ChartNote]:
    grouped: Dict[Tuple[int, int], List[_Onset]] = {}
    for lane in LANE_ORDER:
        for onset in onsets_by_lane[lane]:
            grouped.setdefault((onset.measure_index, onset.subdivision_index), []).append(onset)

    chart_notes: List[ChartNote] = []
    for position in sorted(grouped.keys()):
        group = grouped[position]
        first = group[0]
        mergeable = len(group) > 1 and all(
            onset.note_type == first.note_type and onset.hold_duration_ms == first.hold_duration_ms for onset in group
        )
        if mergeable:
            chart_notes.append(
                ChartNote(
                    spawn_time_ms=first.hit_time_ms - float(travel_time_ms),
                    hit_time_ms=first.hit_time_ms,
                    lanes=frozenset(onset.lane for onset in group),
                    note_type=first.note_type,
                    hold_duration_ms=first.hold_duration_ms,
                )
            )
            continue
        for onset in group:
            chart_notes.append(
                ChartNote(
                    spawn_time_ms=onset.hit_time_ms - float(travel_time_ms),
                    hit_time_ms=onset.hit_time_ms,
                    lanes=frozenset({onset.lane}),
                    note_type=onset.note_type,
                    hold_duration_ms=onset.hold_duration_ms,
                )
            )

    # Stable sort keeps declaration order for equal hit times.
    chart_notes.sort(key=lambda note: note.hit_time_ms)
    return chart_notes


def split_negative_spawns(notes: Iterable[ChartNote]) -> Tuple[Tuple[ChartNote, ...], Tuple[ChartNote, ...]]:
    kept: List[ChartNote] = []
    dropped: List[ChartNote] = []
    for note in notes:
        if note.spawn_time_ms < 0.0:
            dropped.append(note)
        else:
            kept.append(note)
    if dropped:
        logger.info("Dropped %d note(s) whose spawn time would be negative", len(dropped))
    return tuple(kept), tuple(dropped)


def schedule_end_ms(notes: Iterable[ChartNote]) -> float:
    end_ms = 0.0
    for note in notes:
        end_ms = max(end_ms, float(note.hit_time_ms) + float(note.hold_duration_ms))
    return end_ms


def build_schedule(chart: Chart, *, travel_time_ms: float, min_separation_ms: float = 100.0) -> ChartSchedule:
    if float(travel_time_ms) < 0.0:
        raise ValueError(f"travel_time_ms must be non-negative, got {travel_time_ms}")

    onsets_by_lane = _collect_onsets(chart, min_separation_ms=min_separation_ms)
    chart_notes = _merge_into_chart_notes(onsets_by_lane, travel_time_ms)
    kept, dropped = split_negative_spawns(chart_notes)

    duration_ms = max(estimate_duration_ms(chart), schedule_end_ms(kept))
    logger.info(
        "Built schedule: %d note(s), %d dropped, %.0f BPM, %.0f ms",
        len(kept),
        len(dropped),
        float(chart.bpm),
        duration_ms,
    )
    return ChartSchedule(
        notes=kept,
        dropped=dropped,
        bpm=float(chart.bpm),
        duration_ms=float(duration_ms),
        travel_time_ms=float(travel_time_ms),
    )


class ChartTimingModel:
    def __init__(self, *, travel_time_ms: float, min_separation_ms: float = 100.0) -> None:
        self._travel_time_ms = float(travel_time_ms)
        self._min_separation_ms = float(min_separation_ms)

    @property
    def travel_time_ms(self) -> float:
        return self._travel_time_ms

    def validate(self, chart: Chart) -> None:
        validate_chart(chart, min_separation_ms=self._min_separation_ms)

    def build_schedule(self, chart: Chart) -> ChartSchedule:
        return build_schedule(
            chart,
            travel_time_ms=self._travel_time_ms,
            min_separation_ms=self._min_separation_ms,
        )


def _assert(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def _run_unit_tests() -> None:
    chart = Chart(
        bpm=120.0,
        subdivision=16,
        beats_per_measure=4,
        offset_seconds=0.0,
        measures=(Measure(top_lane="1000100010001000", bottom_lane="0" * 16),),
    )
    schedule = build_schedule(chart, travel_time_ms=0.0)
    _assert([note.hit_time_ms for note in schedule.notes] == [0.0, 500.0, 1000.0, 1500.0], "Expected quarter notes")

    delayed = build_schedule(chart, travel_time_ms=1000.0)
    _assert(len(delayed.dropped) == 2, "Expected two negative-spawn notes to be dropped")

    bad = Chart(bpm=120.0, subdivision=16, beats_per_measure=4, offset_seconds=0.0, measures=(Measure("10", "0" * 16),))
    try:
        build_schedule(bad, travel_time_ms=0.0)
    except ChartValidationError as exc:
        _assert(len(exc.issues) == 1, "Expected exactly one issue")
    else:
        raise AssertionError("Expected ChartValidationError for short pattern")


if __name__ == "__main__":
    _run_unit_tests()
    print("chart_engine.py: ok")
