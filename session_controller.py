# -*- coding: utf-8 -*-
########################
# session_controller.py
########################
# Purpose:
# - One gameplay session: start, pause, resume, stop, and the fixed-rate tick.
# - Wires GameClock, ChartTimingModel, NoteLifecycle and JudgmentEngine together.
# - Filters lane input before it reaches the judgment engine.
#
# Design notes:
# - No Qt usage. A Qt timer (gameplay_harness.py) or a headless loop calls tick().
# - One SessionController per session. start() builds fresh lifecycle and judgment objects.
# - A ChartSchedule built with travel 0 gets its spawn times rebuilt from the configured travel time.
# - tick() runs one ordered pass:
#   1) clock update (beats)
#   2) spawn due notes
#   3) advance positions and hold visuals
#   4) JudgmentEngine.update_for_time (hold accrual, then miss sweep)
#   5) progress and end of song
# - Input is applied synchronously. A press delivered before the tick's miss sweep wins.
# - Input filtering:
#   - a second press on a lane that is already down is ignored
#   - a release of a lane that is not down is ignored
#   - timestamps later than now are clamped to now
#   - input outside PLAYING is ignored and logged as input_out_of_session
# - pause() releases every lane that is down, so a hold in progress is judged at the pause time.
# - stop() is idempotent. It clears live notes and active holds and freezes the score.
#
########################
# Interfaces:
# Public enums:
# - SessionState: IDLE | PLAYING | PAUSED | STOPPED
#
# Public classes:
# - class SessionController
#   - __init__(config: Optional[EngineConfig] = None, *, presenter=None, time_source=None)
#   - start(chart_or_schedule: Chart | ChartSchedule) -> None
#   - pause() -> None
#   - resume() -> None
#   - stop() -> None
#   - tick() -> list[JudgementEvent]
#   - on_press(lane, time_ms=None) -> Optional[JudgementEvent]
#   - on_release(lane, time_ms=None) -> Optional[JudgementEvent]
#   - handle_input(event: InputEvent) -> Optional[JudgementEvent]
#   - on_beat(callback) -> None
#   - get_progress_percent() -> float
#   - get_score_state() -> ScoreState
#   - get_grade() -> str
#   - timing_info() -> TimingInfo
#   - event_log() -> list[EngineEvent]
#   - recent_judgements() -> list[JudgementEvent]
#   - state -> SessionState
#
########################

from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Any, Callable, List, Optional, Set, Union

import config as config_module
from chart_engine import ChartTimingModel, ChartValidationError, split_negative_spawns
from game_clock import GameClock
from gameplay_models import (
    LANE_ORDER,
    Chart,
    ChartSchedule,
    EngineEvent,
    InputAction,
    InputEvent,
    JudgementEvent,
    Lane,
    TimingInfo,
    parse_lane,
)
from judge import JudgementWindows, JudgmentEngine, ScoringTable
from note_lifecycle import LaneGeometry, NoteLifecycle
from presenter import Presenter
from score_state import ScoreState

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


class SessionController:
    def __init__(
        self,
        config: Optional[config_module.EngineConfig] = None,
        *,
        presenter: Optional[Presenter] = None,
        time_source: Optional[Callable[[], float]] = None,
    ) -> None:
        if config is None:
            config, _config_path = config_module.get_config()
        self._config = config
        self._presenter = presenter

        self._clock = GameClock(
            time_source=time_source,
            av_offset_ms=float(config.clock.av_offset_ms),
            beat_tolerance=float(config.clock.beat_tolerance),
        )
        self._timing_model = ChartTimingModel(
            travel_time_ms=float(config.geometry.travel_time_ms),
            min_separation_ms=float(config.chart_rules.min_separation_ms),
        )
        self._scoring = ScoringTable.from_config(config.scoring)

        self._state = SessionState.IDLE
        self._schedule: Optional[ChartSchedule] = None
        self._lifecycle: Optional[NoteLifecycle] = None
        self._judge: Optional[JudgmentEngine] = None
        self._final_score: Optional[ScoreState] = None
        self._duration_ms = 0.0
        self._pressed_lanes: Set[Lane] = set()
        self._event_log: List[EngineEvent] = []

    # -----------------
    # Accessors
    # -----------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def config(self) -> config_module.EngineConfig:
        return self._config

    @property
    def clock(self) -> GameClock:
        return self._clock

    @property
    def schedule(self) -> Optional[ChartSchedule]:
        return self._schedule

    @property
    def lifecycle(self) -> Optional[NoteLifecycle]:
        return self._lifecycle

    @property
    def duration_ms(self) -> float:
        return self._duration_ms

    def event_log(self) -> List[EngineEvent]:
        return list(self._event_log)

    def recent_judgements(self) -> List[JudgementEvent]:
        if self._judge is None:
            return []
        return self._judge.recent_judgements()

    def on_beat(self, callback: Callable[[int, float], None]) -> None:
        self._clock.on_beat(callback)

    def timing_info(self) -> TimingInfo:
        return self._clock.timing_info()

    def get_score_state(self) -> ScoreState:
        if self._final_score is not None:
            return self._final_score.snapshot()
        if self._judge is None:
            return ScoreState()
        return self._judge.score_state().snapshot()

    def get_grade(self) -> str:
        return self.get_score_state().grade()

    def get_progress_percent(self) -> float:
        if self._state == SessionState.IDLE:
            return 0.0
        if self._duration_ms <= 0.0:
            return 100.0 if self._state == SessionState.STOPPED else 0.0
        percent = self._clock.now_ms() / self._duration_ms * 100.0
        return max(0.0, min(100.0, percent))

    # -----------------
    # Lifecycle
    # -----------------

    def _build_schedule(self, chart_or_schedule: Union[Chart, ChartSchedule]) -> ChartSchedule:
        if isinstance(chart_or_schedule, ChartSchedule):
            if float(chart_or_schedule.travel_time_ms) > 0.0:
                return chart_or_schedule
            return self._respawn_schedule(chart_or_schedule)
        if isinstance(chart_or_schedule, Chart):
            return self._timing_model.build_schedule(chart_or_schedule)
        raise TypeError(f"Expected Chart or ChartSchedule, got {type(chart_or_schedule).__name__}")

    def _respawn_schedule(self, schedule: ChartSchedule) -> ChartSchedule:
        # Spawn times of a zero-travel schedule equal the hit times. Recompute them with the configured travel.
        travel_ms = float(self._config.geometry.travel_time_ms)
        respawned = [dataclasses.replace(note, spawn_time_ms=float(note.hit_time_ms) - travel_ms) for note in schedule.notes]
        kept, dropped = split_negative_spawns(respawned)
        logger.info("Schedule had no travel time, spawn times rebuilt with %.0f ms", travel_ms)
        return dataclasses.replace(
            schedule,
            notes=kept,
            dropped=tuple(schedule.dropped) + dropped,
            travel_time_ms=travel_ms,
        )

    def _geometry_for(self, schedule: ChartSchedule) -> LaneGeometry:
        geometry = LaneGeometry.from_config(self._config.geometry)
        return dataclasses.replace(geometry, travel_time_ms=float(schedule.travel_time_ms))

    def start(self, chart_or_schedule: Union[Chart, ChartSchedule]) -> None:
        if self._state in (SessionState.PLAYING, SessionState.PAUSED):
            self.stop()

        self._event_log = []
        self._pressed_lanes.clear()
        self._final_score = None

        try:
            schedule = self._build_schedule(chart_or_schedule)
        except ChartValidationError as exc:
            self._state = SessionState.STOPPED
            self._log_event("chart_validation_error", 0.0, f"Chart rejected with {len(exc.issues)} issue(s)", level=logging.ERROR)
            raise

        for dropped in schedule.dropped:
            self._log_event(
                "scheduling_inconsistency",
                0.0,
                f"Dropped note at {dropped.hit_time_ms:.1f} ms: spawn time {dropped.spawn_time_ms:.1f} ms is negative",
                hit_time_ms=float(dropped.hit_time_ms),
                lanes=[lane.value for lane in dropped.ordered_lanes()],
            )

        geometry = self._geometry_for(schedule)
        windows = JudgementWindows.from_config(self._config.judgement, geometry)

        self._schedule = schedule
        self._lifecycle = NoteLifecycle(
            schedule,
            geometry=geometry,
            overrun_units=windows.overrun,
            presenter=self._presenter,
            event_sink=self._event_log.append,
            hold_tick_ms=self._scoring.hold_tick_ms,
            hold_tick_points=self._scoring.hold_tick_points,
        )
        self._judge = JudgmentEngine(self._lifecycle, windows=windows, scoring=self._scoring)

        last_note_end_ms = max(
            (float(note.hit_time_ms) + float(note.hold_duration_ms) for note in schedule.notes),
            default=0.0,
        )
        self._duration_ms = max(float(schedule.duration_ms), last_note_end_ms + float(self._config.judgement.overrun_ms))

        self._clock.set_bpm(schedule.bpm)
        self._clock.start()
        self._state = SessionState.PLAYING
        logger.info(
            "Session started: %d note(s), %.0f BPM, %.0f ms",
            len(schedule.notes),
            float(schedule.bpm),
            self._duration_ms,
        )

    def pause(self) -> None:
        if self._state != SessionState.PLAYING:
            return
        now_ms = self._clock.now_ms()
        for lane in [lane for lane in LANE_ORDER if lane in self._pressed_lanes]:
            self._release_lane(lane, now_ms)
        self._clock.pause()
        self._state = SessionState.PAUSED
        logger.info("Session paused at %.1f ms", now_ms)

    def resume(self) -> None:
        if self._state != SessionState.PAUSED:
            return
        self._clock.resume()
        self._state = SessionState.PLAYING
        logger.info("Session resumed at %.1f ms", self._clock.now_ms())

    def stop(self) -> None:
        if self._state not in (SessionState.PLAYING, SessionState.PAUSED):
            return
        self._clock.stop()
        if self._lifecycle is not None:
            self._lifecycle.clear()
        self._pressed_lanes.clear()
        self._final_score = self._judge.score_state().snapshot() if self._judge is not None else ScoreState()
        self._state = SessionState.STOPPED
        logger.info(
            "Session stopped at %.1f ms: score=%d grade=%s",
            self._clock.now_ms(),
            self._final_score.total_score,
            self._final_score.grade(),
        )

    def tick(self) -> List[JudgementEvent]:
        if self._state != SessionState.PLAYING or self._lifecycle is None or self._judge is None:
            return []

        self._clock.update()
        now_ms = self._clock.now_ms()

        self._lifecycle.spawn_due(now_ms)
        self._lifecycle.advance(now_ms)
        events = self._judge.update_for_time(now_ms)

        if now_ms >= self._duration_ms and self._lifecycle.is_exhausted():
            self.stop()
        return events

    # -----------------
    # Input
    # -----------------

    def _input_time(self, time_ms: Optional[float]) -> float:
        now_ms = self._clock.now_ms()
        if time_ms is None:
            return now_ms
        return min(float(time_ms), now_ms)

    def on_press(self, lane: Any, time_ms: Optional[float] = None) -> Optional[JudgementEvent]:
        lane_value = parse_lane(lane)
        if self._state != SessionState.PLAYING or self._judge is None:
            self._log_out_of_session(lane_value, InputAction.PRESS, time_ms)
            return None
        if lane_value in self._pressed_lanes:
            return None
        self._pressed_lanes.add(lane_value)
        return self._judge.on_press(lane_value, self._input_time(time_ms))

    def on_release(self, lane: Any, time_ms: Optional[float] = None) -> Optional[JudgementEvent]:
        lane_value = parse_lane(lane)
        if self._state != SessionState.PLAYING or self._judge is None:
            self._log_out_of_session(lane_value, InputAction.RELEASE, time_ms)
            return None
        if lane_value not in self._pressed_lanes:
            return None
        return self._release_lane(lane_value, self._input_time(time_ms))

    def handle_input(self, event: InputEvent) -> Optional[JudgementEvent]:
        if event.action == InputAction.RELEASE:
            return self.on_release(event.lane, event.time_ms)
        return self.on_press(event.lane, event.time_ms)

    def _release_lane(self, lane: Lane, time_ms: float) -> Optional[JudgementEvent]:
        self._pressed_lanes.discard(lane)
        if self._judge is None:
            return None
        return self._judge.on_release(lane, time_ms)

    # -----------------
    # Event log
    # -----------------

    def _log_out_of_session(self, lane: Lane, action: InputAction, time_ms: Optional[float]) -> None:
        self._log_event(
            "input_out_of_session",
            self._clock.now_ms() if time_ms is None else float(time_ms),
            f"Ignored {action.value} on {lane.value} lane while {self._state.value}",
            level=logging.INFO,
            lane=lane.value,
            action=action.value,
        )

    def _log_event(self, kind: str, time_ms: float, message: str, *, level: int = logging.WARNING, **details) -> None:
        logger.log(level, message)
        self._event_log.append(EngineEvent(kind=kind, time_ms=float(time_ms), message=message, details=dict(details)))
