# -*- coding: utf-8 -*-
########################
# judge.py
########################
# Purpose:
# - Hit judgement and scoring engine.
# - Matches a lane press to the nearest rendered, unresolved note inside the outer window.
# - Scores taps by distance to the hit zone and holds by completion ratio.
# - Generates JudgementEvent for hits, hold completions and misses.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Scoring lives in declarative tables (ScoringTable, JudgementWindows). Tuning never touches
#   control flow.
# - NoteLifecycle owns the notes. JudgmentEngine resolves them only through its transition
#   operations, and is the only writer of ScoreState.
# - Distances are in track units. Windows are configured in ms and converted through the
#   travel velocity (JudgementWindows.from_config).
# - Boundary distances resolve to the better bucket.
# - update_for_time runs hold accrual and forced completion before the overrun sweep.
#
########################
# Interfaces:
# Public dataclasses:
# - JudgementWindows(perfect, great, good, hit_window, overrun)
#   - classify_distance(distance: float) -> Judgement
# - ScoringTable(tap_scores, hold_bonus, hold_ratio_thresholds, hold_tick_ms, hold_tick_points)
#   - tap_points(judgement) -> int
#   - hold_bonus_points(judgement) -> int
#   - classify_hold_ratio(ratio: float) -> Judgement
#
# Public classes:
# - class JudgmentEngine
#   - __init__(lifecycle: NoteLifecycle, *, windows: JudgementWindows, scoring: ScoringTable,
#              score_state: Optional[ScoreState] = None)
#   - score_state() -> ScoreState
#   - recent_judgements() -> list[JudgementEvent]
#   - clear_recent_judgements() -> None
#   - on_press(lane, time_ms) -> Optional[JudgementEvent]
#   - on_release(lane, time_ms) -> Optional[JudgementEvent]
#   - update_for_time(now_ms) -> list[JudgementEvent]
#
# Inputs:
# - Lane presses and releases with song time in ms.
#
# Outputs:
# - JudgementEvent objects for UI and stats.
# - ScoreState mutations.
#
########################

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple

import config as config_module
from gameplay_models import LANE_ORDER, ChartNote, Judgement, JudgementEvent, Lane, LiveNote, NoteType
from note_lifecycle import LaneGeometry, NoteLifecycle
from score_state import ScoreState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JudgementWindows:
    perfect: float = 30.0
    great: float = 60.0
    good: float = 90.0
    hit_window: float = 100.0
    overrun: float = 100.0

    @classmethod
    def from_config(cls, judgement_config: config_module.JudgementConfig, geometry: LaneGeometry) -> "JudgementWindows":
        return cls(
            perfect=geometry.ms_to_units(judgement_config.perfect_ms),
            great=geometry.ms_to_units(judgement_config.great_ms),
            good=geometry.ms_to_units(judgement_config.good_ms),
            hit_window=geometry.ms_to_units(judgement_config.hit_window_ms),
            overrun=geometry.ms_to_units(judgement_config.overrun_ms),
        )

    def classify_distance(self, distance: float) -> Judgement:
        abs_distance = abs(float(distance))
        if abs_distance <= float(self.perfect):
            return Judgement.PERFECT
        if abs_distance <= float(self.great):
            return Judgement.GREAT
        if abs_distance <= float(self.good):
            return Judgement.GOOD
        return Judgement.MISS

    def is_within_window(self, distance: float) -> bool:
        return abs(float(distance)) <= float(self.hit_window)


def _judgement_table(values: Dict[str, int]) -> Dict[Judgement, int]:
    return {judgement: int(values[judgement.value]) for judgement in Judgement}


@dataclass(frozen=True)
class ScoringTable:
    tap_scores: Dict[Judgement, int] = field(
        default_factory=lambda: {Judgement.PERFECT: 300, Judgement.GREAT: 200, Judgement.GOOD: 100, Judgement.MISS: 0}
    )
    hold_bonus: Dict[Judgement, int] = field(
        default_factory=lambda: {Judgement.PERFECT: 500, Judgement.GREAT: 300, Judgement.GOOD: 100, Judgement.MISS: 0}
    )
    hold_ratio_thresholds: Tuple[Tuple[float, Judgement], ...] = (
        (1.0, Judgement.PERFECT),
        (0.9, Judgement.GREAT),
        (0.7, Judgement.GOOD),
    )
    hold_tick_ms: float = 100.0
    hold_tick_points: int = 10

    @classmethod
    def from_config(cls, scoring_config: config_module.ScoringConfig) -> "ScoringTable":
        return cls(
            tap_scores=_judgement_table(scoring_config.tap_scores),
            hold_bonus=_judgement_table(scoring_config.hold_bonus),
            hold_ratio_thresholds=(
                (1.0, Judgement.PERFECT),
                (float(scoring_config.hold_great_ratio), Judgement.GREAT),
                (float(scoring_config.hold_good_ratio), Judgement.GOOD),
            ),
            hold_tick_ms=float(scoring_config.hold_tick_ms),
            hold_tick_points=int(scoring_config.hold_tick_points),
        )

    def tap_points(self, judgement: Judgement) -> int:
        return int(self.tap_scores.get(judgement, 0))

    def hold_bonus_points(self, judgement: Judgement) -> int:
        return int(self.hold_bonus.get(judgement, 0))

    def classify_hold_ratio(self, ratio: float) -> Judgement:
        value = float(ratio)
        for threshold, judgement in self.hold_ratio_thresholds:
            if value >= threshold:
                return judgement
        return Judgement.MISS


class JudgmentEngine:
    def __init__(
        self,
        lifecycle: NoteLifecycle,
        *,
        windows: JudgementWindows,
        scoring: ScoringTable,
        score_state: Optional[ScoreState] = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._windows = windows
        self._scoring = scoring
        self._score_state = score_state if score_state is not None else ScoreState()
        self._recent_judgements: List[JudgementEvent] = []

    def score_state(self) -> ScoreState:
        return self._score_state

    def clear_recent_judgements(self) -> None:
        self._recent_judgements.clear()

    def recent_judgements(self) -> List[JudgementEvent]:
        return list(self._recent_judgements)

    # -----------------
    # Input
    # -----------------

    def _nearest(self, notes: List[LiveNote], time_ms: float) -> Tuple[Optional[LiveNote], float]:
        best_note: Optional[LiveNote] = None
        best_distance = float("inf")
        for candidate in notes:
            distance = self._lifecycle.distance_at(candidate, time_ms)
            if not self._windows.is_within_window(distance):
                continue
            if distance < best_distance:
                best_note = candidate
                best_distance = distance
            elif distance == best_distance and best_note is not None and candidate.hit_time_ms < best_note.hit_time_ms:
                # Equidistant: choose the earlier note.
                best_note = candidate
        return best_note, best_distance

    def on_press(self, lane: Lane, time_ms: float) -> Optional[JudgementEvent]:
        candidates = self._lifecycle.candidates_in_lane(lane)
        target, distance = self._nearest([note for note in candidates if note.is_rendered], time_ms)

        if target is None:
            nearby, nearby_distance = self._nearest(candidates, time_ms)
            if nearby is None:
                return None
            # A note is due but cannot be hit: the press still counts against the player.
            self._lifecycle.mark_missed(nearby, time_ms)
            return self._record(nearby, Judgement.MISS, 0, time_ms, kind="stray_miss", distance=nearby_distance)

        judgement = self._windows.classify_distance(distance)
        points = self._scoring.tap_points(judgement)

        if judgement == Judgement.MISS:
            self._lifecycle.mark_missed(target, time_ms)
            kind = "hold_start" if target.note_type == NoteType.HOLD else "tap"
            return self._record(target, judgement, 0, time_ms, kind=kind, distance=distance)

        if target.note_type == NoteType.HOLD:
            self._lifecycle.begin_hold(target, time_ms)
            return self._record(target, judgement, points, time_ms, kind="hold_start", distance=distance)

        self._lifecycle.resolve_tap(target, judgement, time_ms)
        return self._record(target, judgement, points, time_ms, kind="tap", distance=distance)

    def on_release(self, lane: Lane, time_ms: float) -> Optional[JudgementEvent]:
        accrual = self._lifecycle.accrue_hold(lane, time_ms)
        if accrual is None:
            return None

        if accrual.points:
            self._score_state.add_hold_progress(accrual.points)

        ratio = 1.0 if accrual.completed else accrual.ratio
        judgement = self._scoring.classify_hold_ratio(ratio)
        return self._complete_hold(lane, judgement, time_ms, kind="hold_release", progress_points=accrual.points)

    # -----------------
    # Per-tick duties
    # -----------------

    def update_for_time(self, now_ms: float) -> List[JudgementEvent]:
        events: List[JudgementEvent] = []

        for lane in LANE_ORDER:
            accrual = self._lifecycle.accrue_hold(lane, now_ms)
            if accrual is None:
                continue
            if accrual.points:
                self._score_state.add_hold_progress(accrual.points)
            if accrual.completed:
                event = self._complete_hold(
                    lane, Judgement.PERFECT, now_ms, kind="hold_complete", progress_points=accrual.points
                )
                if event is not None:
                    events.append(event)

        for note in self._lifecycle.notes_past_overrun(now_ms):
            self._lifecycle.mark_missed(note, now_ms)
            events.append(self._record(note, Judgement.MISS, 0, now_ms, kind="overrun_miss"))

        return events

    # -----------------
    # Helpers
    # -----------------

    def _complete_hold(
        self,
        lane: Lane,
        judgement: Judgement,
        time_ms: float,
        *,
        kind: str,
        progress_points: int,
    ) -> Optional[JudgementEvent]:
        note = self._lifecycle.resolve_hold(lane, judgement)
        if note is None:
            return None

        bonus = self._scoring.hold_bonus_points(judgement)
        self._score_state.apply_hold_completion(judgement, bonus)

        event = JudgementEvent(
            time_ms=float(time_ms),
            lane=note.lane,
            note_id=note.note_id,
            judgement=judgement,
            kind=kind,
            distance=None,
            score_delta=int(bonus + progress_points),
        )
        self._recent_judgements.append(event)
        logger.debug("hold #%d %s: %s (+%d)", note.note_id, kind, judgement.value, event.score_delta)
        return event

    def _record(
        self,
        note: LiveNote,
        judgement: Judgement,
        points: int,
        time_ms: float,
        *,
        kind: str,
        distance: Optional[float] = None,
    ) -> JudgementEvent:
        self._score_state.apply_judgement(judgement, points)
        event = JudgementEvent(
            time_ms=float(time_ms),
            lane=note.lane,
            note_id=note.note_id,
            judgement=judgement,
            kind=kind,
            distance=distance,
            score_delta=int(points),
        )
        self._recent_judgements.append(event)
        logger.debug("note #%d %s: %s (+%d)", note.note_id, kind, judgement.value, points)
        return event


def _run_unit_tests() -> None:
    geometry = LaneGeometry()
    windows = JudgementWindows.from_config(config_module.JudgementConfig(), geometry)
    assert windows.classify_distance(30.0) == Judgement.PERFECT
    assert windows.classify_distance(31.0) == Judgement.GREAT
    assert windows.classify_distance(91.0) == Judgement.MISS

    notes = [
        ChartNote(spawn_time_ms=0.0, hit_time_ms=3000.0, lanes=frozenset({Lane.TOP})),
        ChartNote(spawn_time_ms=1000.0, hit_time_ms=4000.0, lanes=frozenset({Lane.BOTTOM})),
    ]
    lifecycle = NoteLifecycle(notes, geometry=geometry, overrun_units=windows.overrun)
    engine = JudgmentEngine(lifecycle, windows=windows, scoring=ScoringTable())
    lifecycle.spawn_due(1000.0)

    hit = engine.on_press(Lane.TOP, 3000.0)
    assert hit is not None and hit.judgement == Judgement.PERFECT
    assert engine.score_state().total_score == 300

    stray = engine.on_press(Lane.TOP, 3000.0)
    assert stray is None

    misses = engine.update_for_time(4400.0)
    assert len(misses) == 1
    assert engine.score_state().miss_count == 1


if __name__ == "__main__":
    _run_unit_tests()
    print("judge.py: ok")
