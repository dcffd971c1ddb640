# -*- coding: utf-8 -*-
########################
# gameplay_models.py
########################
# Purpose:
# - Core gameplay data models for the runtime gameplay pipeline.
# - Defines the declarative Chart, the ChartNote schedule records, the mutable LiveNote,
#   and the events exchanged between the engine and its collaborators.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. These are plain dataclasses and enums.
# - All times are milliseconds of song time.
#
########################
# Interfaces:
# Public enums:
# - Lane: TOP | BOTTOM
# - NoteType: NORMAL | HOLD
# - Judgement: PERFECT | GREAT | GOOD | MISS
# - InputAction: PRESS | RELEASE
# - NoteState: SPAWNED | TRAVELING | HOLDING | HIT | HOLD_RESOLVED | MISSED | REMOVED
#
# Public dataclasses:
# - Measure(top_lane: str, bottom_lane: str)
# - Chart(bpm, subdivision, beats_per_measure, offset_seconds, measures, title, artist, difficulty)
# - ChartNote(spawn_time_ms, hit_time_ms, lanes, note_type, hold_duration_ms, section, intensity)
# - ChartSchedule(notes, dropped, bpm, duration_ms, travel_time_ms)
# - LiveNote(note_id, lane, note_type, hit_time_ms, hold_duration_ms, state, screen_position, ..., resolution)
# - InputEvent(time_ms, lane, action)
# - JudgementEvent(time_ms, lane, note_id, judgement, kind, distance, score_delta)
# - TimingInfo(current_time_ms, bpm, beat_interval_ms, next_beat_time_ms, is_running)
# - EngineEvent(kind, time_ms, message)
#
# Inputs/Outputs:
# - These types are exchanged between GameClock, chart_engine, NoteLifecycle, JudgmentEngine,
#   SessionController, and presenters.
#
########################

from __future__ import annotations

from dataclasses import dataclass, field
import enum
from typing import Any, FrozenSet, List, Optional, Tuple


class Lane(str, enum.Enum):
    TOP = "top"
    BOTTOM = "bottom"


class NoteType(str, enum.Enum):
    NORMAL = "normal"
    HOLD = "hold"


class Judgement(str, enum.Enum):
    PERFECT = "perfect"
    GREAT = "great"
    GOOD = "good"
    MISS = "miss"


class InputAction(str, enum.Enum):
    PRESS = "press"
    RELEASE = "release"


class NoteState(str, enum.Enum):
    SPAWNED = "spawned"
    TRAVELING = "traveling"
    HOLDING = "holding"
    HIT = "hit"
    HOLD_RESOLVED = "hold_resolved"
    MISSED = "missed"
    REMOVED = "removed"


# Lane order used for declaration-order tie breaks.
LANE_ORDER: Tuple[Lane, ...] = (Lane.TOP, Lane.BOTTOM)

# Pattern alphabet.
EMPTY_MARK = "0"
TAP_MARK = "1"
HOLD_START_MARK = "2"
HOLD_END_MARK = "3"
PATTERN_ALPHABET = frozenset({EMPTY_MARK, TAP_MARK, HOLD_START_MARK, HOLD_END_MARK})


@dataclass(frozen=True)
class Measure:
    top_lane: str
    bottom_lane: str

    def pattern_for(self, lane: Lane) -> str:
        return self.top_lane if lane == Lane.TOP else self.bottom_lane


@dataclass(frozen=True)
class Chart:
    bpm: float
    subdivision: int
    beats_per_measure: int
    offset_seconds: float
    measures: Tuple[Measure, ...]
    title: str = ""
    artist: str = ""
    difficulty: str = "easy"


@dataclass(frozen=True)
class ChartNote:
    spawn_time_ms: float
    hit_time_ms: float
    lanes: FrozenSet[Lane]
    note_type: NoteType = NoteType.NORMAL
    hold_duration_ms: float = 0.0
    section: Optional[str] = None
    intensity: Optional[float] = None

    @property
    def is_dual(self) -> bool:
        return len(self.lanes) > 1

    def ordered_lanes(self) -> List[Lane]:
        return [lane for lane in LANE_ORDER if lane in self.lanes]


@dataclass(frozen=True)
class ChartSchedule:
    notes: Tuple[ChartNote, ...]
    dropped: Tuple[ChartNote, ...]
    bpm: float
    duration_ms: float
    travel_time_ms: float


@dataclass
class LiveNote:
    note_id: int
    lane: Lane
    note_type: NoteType
    hit_time_ms: float
    hold_duration_ms: float
    state: NoteState
    screen_position: float
    handle: Any = None
    is_rendered: bool = True
    hold_start_time_ms: Optional[float] = None
    hold_awarded_ticks: int = 0
    hold_accrued_score: int = 0
    # HIT, HOLD_RESOLVED or MISSED once the note leaves the arena.
    resolution: Optional[NoteState] = None


@dataclass(frozen=True)
class InputEvent:
    time_ms: Optional[float]
    lane: Lane
    action: InputAction = InputAction.PRESS


@dataclass(frozen=True)
class JudgementEvent:
    time_ms: float
    lane: Lane
    note_id: int
    judgement: Judgement
    kind: str
    distance: Optional[float] = None
    score_delta: int = 0


@dataclass(frozen=True)
class TimingInfo:
    current_time_ms: float
    bpm: float
    beat_interval_ms: float
    next_beat_time_ms: float
    is_running: bool


@dataclass(frozen=True)
class EngineEvent:
    kind: str
    time_ms: float
    message: str
    details: dict = field(default_factory=dict)


def parse_lane(value: Any) -> Lane:
    if isinstance(value, Lane):
        return value
    text = str(value or "").strip().lower()
    try:
        return Lane(text)
    except ValueError as exc:
        raise ValueError(f"Unknown lane: {value!r}. Allowed: {[lane.value for lane in Lane]}") from exc
