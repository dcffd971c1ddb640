# -*- coding: utf-8 -*-
########################
# note_lifecycle.py
########################
# Purpose:
# - Owns the live-note arena and ActiveHolds for one session.
# - Spawns due ChartNotes, advances every live note once per tick, and exposes the transition
#   operations that JudgmentEngine uses to resolve notes.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - One ordered pass per tick over an indexed collection. No per-note timers.
# - This module owns the notes and their state; JudgmentEngine mutates them only through
#   resolve_tap, begin_hold, accrue_hold, resolve_hold and mark_missed.
# - Constant visual velocity: position = hit_zone + (hit_time - now) * travel_distance / travel_time.
#   Positions decrease over time. A note spawned at spawn_time sits at spawn_position.
# - Holding notes are pinned to the hit zone and excluded from the overrun sweep.
# - Arena order is spawn order, so every query is deterministic.
# - Engine state is updated before the presenter hears about it. A PresenterFailure from any
#   presenter call marks the note unrendered and is reported through event_sink.
#
########################
# Interfaces:
# Public dataclasses:
# - LaneGeometry(travel_time_ms, spawn_position, hit_zone_position)
# - HoldAccrual(note, points, held_ms, ratio, completed)
#
# Public classes:
# - class NoteLifecycle
#   - __init__(notes, *, geometry, overrun_units, presenter=None, event_sink=None,
#              hold_tick_ms=100.0, hold_tick_points=10)
#   - spawn_due(now_ms) -> list[LiveNote]
#   - advance(now_ms) -> None
#   - position_at(note, time_ms) -> float
#   - distance_at(note, time_ms) -> float
#   - candidates_in_lane(lane) -> list[LiveNote]
#   - notes_past_overrun(now_ms) -> list[LiveNote]
#   - resolve_tap(note, judgement, time_ms=None) -> None
#   - begin_hold(note, time_ms) -> None
#   - accrue_hold(lane, time_ms) -> Optional[HoldAccrual]
#   - resolve_hold(lane, judgement) -> Optional[LiveNote]
#   - mark_missed(note, time_ms=None) -> None
#   - clear() -> None
#
# Outputs:
# - Presenter calls (spawn, position, hold progress, resolve, remove).
# - EngineEvent records for presenter failures via event_sink.
#
########################

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Dict, List, Optional, Sequence, Union

import config as config_module
from gameplay_models import (
    LANE_ORDER,
    ChartNote,
    ChartSchedule,
    EngineEvent,
    Judgement,
    Lane,
    LiveNote,
    NoteState,
    NoteType,
)
from presenter import NullPresenter, Presenter, PresenterFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LaneGeometry:
    travel_time_ms: float = 3000.0
    spawn_position: float = 1100.0
    hit_zone_position: float = 100.0

    def __post_init__(self) -> None:
        if float(self.travel_time_ms) <= 0.0:
            raise ValueError(f"travel_time_ms must be positive, got {self.travel_time_ms}")
        if float(self.spawn_position) <= float(self.hit_zone_position):
            raise ValueError("spawn_position must be greater than hit_zone_position")

    @classmethod
    def from_config(cls, geometry_config: config_module.GeometryConfig) -> "LaneGeometry":
        return cls(
            travel_time_ms=float(geometry_config.travel_time_ms),
            spawn_position=float(geometry_config.spawn_position),
            hit_zone_position=float(geometry_config.hit_zone_position),
        )

    @property
    def travel_distance(self) -> float:
        return float(self.spawn_position) - float(self.hit_zone_position)

    def position_at(self, hit_time_ms: float, time_ms: float) -> float:
        remaining_ms = float(hit_time_ms) - float(time_ms)
        return float(self.hit_zone_position) + remaining_ms * self.travel_distance / float(self.travel_time_ms)

    def ms_to_units(self, milliseconds: float) -> float:
        return float(milliseconds) * self.travel_distance / float(self.travel_time_ms)


@dataclass(frozen=True)
class HoldAccrual:
    note: LiveNote
    points: int
    held_ms: float
    ratio: float
    completed: bool


class NoteLifecycle:
    def __init__(
        self,
        notes: Union[ChartSchedule, Sequence[ChartNote]],
        *,
        geometry: LaneGeometry,
        overrun_units: float,
        presenter: Optional[Presenter] = None,
        event_sink: Optional[Callable[[EngineEvent], None]] = None,
        hold_tick_ms: float = 100.0,
        hold_tick_points: int = 10,
    ) -> None:
        chart_notes = notes.notes if isinstance(notes, ChartSchedule) else tuple(notes)
        self._pending: List[ChartNote] = sorted(chart_notes, key=lambda item: float(item.spawn_time_ms))
        self._next_pending_index = 0

        self._geometry = geometry
        self._overrun_units = float(overrun_units)
        self._presenter: Presenter = presenter if presenter is not None else NullPresenter()
        self._event_sink = event_sink
        self._hold_tick_ms = float(hold_tick_ms)
        self._hold_tick_points = int(hold_tick_points)

        self._live: Dict[int, LiveNote] = {}
        self._active_holds: Dict[Lane, LiveNote] = {}
        self._next_note_id = 1
        self._spawned_count = 0
        # Latest song time seen, used to stamp presenter failures.
        self._last_time_ms = 0.0

    # -----------------
    # Queries
    # -----------------

    @property
    def geometry(self) -> LaneGeometry:
        return self._geometry

    @property
    def spawned_count(self) -> int:
        return self._spawned_count

    def pending_count(self) -> int:
        return len(self._pending) - self._next_pending_index

    def live_notes(self) -> List[LiveNote]:
        return list(self._live.values())

    def live_count(self) -> int:
        return len(self._live)

    def active_holds(self) -> Dict[Lane, LiveNote]:
        return dict(self._active_holds)

    def is_exhausted(self) -> bool:
        return self.pending_count() == 0 and not self._live

    def position_at(self, note: LiveNote, time_ms: float) -> float:
        if note.state == NoteState.HOLDING:
            return float(self._geometry.hit_zone_position)
        return self._geometry.position_at(note.hit_time_ms, time_ms)

    def distance_at(self, note: LiveNote, time_ms: float) -> float:
        return abs(self.position_at(note, time_ms) - float(self._geometry.hit_zone_position))

    def candidates_in_lane(self, lane: Lane) -> List[LiveNote]:
        return [
            note
            for note in self._live.values()
            if note.lane == lane and note.state in (NoteState.SPAWNED, NoteState.TRAVELING)
        ]

    def notes_past_overrun(self, now_ms: float) -> List[LiveNote]:
        overrun_position = float(self._geometry.hit_zone_position) - self._overrun_units
        overdue = [
            note
            for note in self._live.values()
            if note.state in (NoteState.SPAWNED, NoteState.TRAVELING)
            and self._geometry.position_at(note.hit_time_ms, now_ms) < overrun_position
        ]
        overdue.sort(key=lambda item: (float(item.hit_time_ms), LANE_ORDER.index(item.lane)))
        return overdue

    def hold_ratio(self, note: LiveNote, time_ms: float) -> float:
        if note.hold_start_time_ms is None:
            return 0.0
        if float(note.hold_duration_ms) <= 0.0:
            return 1.0
        held_ms = max(0.0, float(time_ms) - float(note.hold_start_time_ms))
        return min(1.0, held_ms / float(note.hold_duration_ms))

    # -----------------
    # Per-tick advance
    # -----------------

    def spawn_due(self, now_ms: float) -> List[LiveNote]:
        self._last_time_ms = float(now_ms)
        spawned: List[LiveNote] = []
        while self._next_pending_index < len(self._pending):
            chart_note = self._pending[self._next_pending_index]
            if float(chart_note.spawn_time_ms) > float(now_ms):
                break
            self._next_pending_index += 1
            for lane in chart_note.ordered_lanes():
                spawned.append(self._spawn_live_note(chart_note, lane, now_ms))
        return spawned

    def _spawn_live_note(self, chart_note: ChartNote, lane: Lane, now_ms: float) -> LiveNote:
        note = LiveNote(
            note_id=self._next_note_id,
            lane=lane,
            note_type=chart_note.note_type,
            hit_time_ms=float(chart_note.hit_time_ms),
            hold_duration_ms=float(chart_note.hold_duration_ms) if chart_note.note_type == NoteType.HOLD else 0.0,
            state=NoteState.SPAWNED,
            screen_position=self._geometry.position_at(chart_note.hit_time_ms, now_ms),
        )
        self._next_note_id += 1
        self._spawned_count += 1

        try:
            note.handle = self._presenter.on_spawn(note)
        except PresenterFailure as exc:
            note.handle = None
            note.is_rendered = False
            self._emit_event(
                "presenter_failure",
                now_ms,
                f"presenter could not spawn note #{note.note_id} ({lane.value}): {exc}",
                note_id=note.note_id,
            )

        self._live[note.note_id] = note
        return note

    def advance(self, now_ms: float) -> None:
        self._last_time_ms = float(now_ms)
        for note in list(self._live.values()):
            if note.state in (NoteState.SPAWNED, NoteState.TRAVELING):
                note.state = NoteState.TRAVELING
                note.screen_position = self._geometry.position_at(note.hit_time_ms, now_ms)
                self._notify(note, "on_position_update", note.screen_position)
            elif note.state == NoteState.HOLDING:
                note.screen_position = float(self._geometry.hit_zone_position)
                self._notify(note, "on_hold_progress", self.hold_ratio(note, now_ms))

    # -----------------
    # Transitions (used by JudgmentEngine)
    # -----------------

    def resolve_tap(self, note: LiveNote, judgement: Judgement, time_ms: Optional[float] = None) -> None:
        self._require_live(note)
        if time_ms is not None:
            self._last_time_ms = float(time_ms)
        self._finish(note, NoteState.HIT, judgement)

    def begin_hold(self, note: LiveNote, time_ms: float) -> None:
        self._require_live(note)
        if note.note_type != NoteType.HOLD:
            raise ValueError(f"note #{note.note_id} is not a hold note")
        stale = self._active_holds.get(note.lane)
        if stale is not None and stale is not note:
            logger.warning("Replacing stale hold #%d on %s lane", stale.note_id, note.lane.value)
        self._last_time_ms = float(time_ms)
        note.state = NoteState.HOLDING
        note.hold_start_time_ms = float(time_ms)
        note.hold_awarded_ticks = 0
        note.hold_accrued_score = 0
        note.screen_position = float(self._geometry.hit_zone_position)
        self._active_holds[note.lane] = note

    def accrue_hold(self, lane: Lane, time_ms: float) -> Optional[HoldAccrual]:
        note = self._active_holds.get(lane)
        if note is None or note.hold_start_time_ms is None:
            return None

        self._last_time_ms = float(time_ms)
        held_ms = max(0.0, float(time_ms) - float(note.hold_start_time_ms))
        capped_ms = min(held_ms, float(note.hold_duration_ms))
        ticks = int(capped_ms // self._hold_tick_ms)
        new_ticks = ticks - int(note.hold_awarded_ticks)
        points = 0
        if new_ticks > 0:
            points = new_ticks * self._hold_tick_points
            note.hold_awarded_ticks = ticks
            note.hold_accrued_score += points

        return HoldAccrual(
            note=note,
            points=points,
            held_ms=held_ms,
            ratio=self.hold_ratio(note, time_ms),
            completed=held_ms >= float(note.hold_duration_ms),
        )

    def resolve_hold(self, lane: Lane, judgement: Judgement) -> Optional[LiveNote]:
        note = self._active_holds.get(lane)
        if note is None:
            return None
        resolution = NoteState.MISSED if judgement == Judgement.MISS else NoteState.HOLD_RESOLVED
        self._finish(note, resolution, judgement)
        return note

    def mark_missed(self, note: LiveNote, time_ms: Optional[float] = None) -> None:
        self._require_live(note)
        if time_ms is not None:
            self._last_time_ms = float(time_ms)
        self._finish(note, NoteState.MISSED, Judgement.MISS)

    def clear(self) -> None:
        removed = list(self._live.values())
        self._live.clear()
        self._active_holds.clear()
        self._next_pending_index = len(self._pending)
        for note in removed:
            note.state = NoteState.REMOVED
            self._notify(note, "on_remove")

    # -----------------
    # Helpers
    # -----------------

    def _require_live(self, note: LiveNote) -> None:
        if self._live.get(note.note_id) is not note:
            raise ValueError(f"note #{note.note_id} is not live")

    def _finish(self, note: LiveNote, resolution: NoteState, judgement: Judgement) -> None:
        note.resolution = resolution
        note.state = NoteState.REMOVED
        self._live.pop(note.note_id, None)
        if self._active_holds.get(note.lane) is note:
            del self._active_holds[note.lane]

        self._notify(note, "on_resolve", judgement)
        self._notify(note, "on_remove")

    def _notify(self, note: LiveNote, call_name: str, *args) -> None:
        if not note.is_rendered:
            return
        try:
            getattr(self._presenter, call_name)(note.handle, *args)
        except PresenterFailure as exc:
            note.handle = None
            note.is_rendered = False
            self._emit_event(
                "presenter_failure",
                self._last_time_ms,
                f"presenter {call_name} failed for note #{note.note_id} ({note.lane.value}): {exc}",
                note_id=note.note_id,
                call=call_name,
            )

    def _emit_event(self, kind: str, time_ms: float, message: str, **details) -> None:
        logger.warning(message)
        if self._event_sink is not None:
            self._event_sink(EngineEvent(kind=kind, time_ms=float(time_ms), message=message, details=dict(details)))
