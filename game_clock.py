# -*- coding: utf-8 -*-
########################
# game_clock.py
########################
# Purpose:
# - Single source of truth for song time during a session.
# - Tracks elapsed time since start minus paused time, plus a configurable AV offset.
# - Emits timer-based beat callbacks.
#
# Design notes:
# - No Qt usage. Keep this module pure and deterministic.
# - The time source is injected (seconds, monotonic). It can be time.perf_counter, an audio
#   position provider, or a test fake.
# - Paused and stopped clocks are frozen: now_ms() returns the value at the moment of pause/stop.
# - Pause accounting is done on raw source time so no time leaks or double counts across
#   a pause boundary.
# - Spectrum analysis is diagnostic only. It logs candidate beats and never fires on_beat.
#
########################
# Interfaces:
# Public classes:
# - class GameClock
#   - __init__(*, bpm: float = 120.0, time_source=time.perf_counter, av_offset_ms=0.0, beat_tolerance=0.95)
#   - start() / pause() / resume() / stop() -> None
#   - now_ms() -> float
#   - on_beat(callback: Callable[[int, float], None]) -> None
#   - update() -> int  (beats fired)
#   - analyze_spectrum(bins: Sequence[float]) -> bool
#   - timing_info() -> TimingInfo
#   - beat_at_time(time_ms) -> int
#   - time_at_beat(beat_number) -> float
#   - is_on_beat(time_ms=None, window_ms=100.0) -> bool
#   - set_bpm(bpm) / set_av_offset_ms(av_offset_ms) -> None
#
# Inputs:
# - Time source samples in seconds.
#
# Outputs:
# - Song time in milliseconds used by SessionController, NoteLifecycle and JudgmentEngine.
#
########################

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, Sequence

from gameplay_models import TimingInfo

logger = logging.getLogger(__name__)


BASS_BIN_COUNT = 32
BASS_ENERGY_THRESHOLD = 180.0
BASS_MIN_INTERVAL_RATIO = 0.8


class GameClock:
    def __init__(
        self,
        *,
        bpm: float = 120.0,
        time_source: Optional[Callable[[], float]] = None,
        av_offset_ms: float = 0.0,
        beat_tolerance: float = 0.95,
    ) -> None:
        self._time_source: Callable[[], float] = time_source if time_source is not None else time.perf_counter
        self._bpm = 120.0
        self._beat_interval_ms = 500.0
        self.set_bpm(bpm)
        self._av_offset_ms = float(av_offset_ms)
        self._beat_tolerance = float(beat_tolerance)

        self._start_seconds: Optional[float] = None
        self._paused_at_seconds: Optional[float] = None
        self._paused_total_seconds = 0.0
        self._stopped_elapsed_ms: Optional[float] = None

        self._last_beat_time_ms = 0.0
        self._beat_count = 0
        self._beat_callbacks: List[Callable[[int, float], None]] = []

    # -----------------
    # Lifecycle
    # -----------------

    def start(self) -> None:
        self._start_seconds = float(self._time_source())
        self._paused_at_seconds = None
        self._paused_total_seconds = 0.0
        self._stopped_elapsed_ms = None
        self._last_beat_time_ms = 0.0
        self._beat_count = 0

    def pause(self) -> None:
        if not self.is_running:
            return
        self._paused_at_seconds = float(self._time_source())

    def resume(self) -> None:
        if not self.is_paused:
            return
        paused_at = float(self._paused_at_seconds or 0.0)
        self._paused_total_seconds += float(self._time_source()) - paused_at
        self._paused_at_seconds = None

    def stop(self) -> None:
        if self._start_seconds is None or self._stopped_elapsed_ms is not None:
            return
        self._stopped_elapsed_ms = self._elapsed_ms()
        self._paused_at_seconds = None

    @property
    def is_started(self) -> bool:
        return self._start_seconds is not None

    @property
    def is_paused(self) -> bool:
        return self._paused_at_seconds is not None and self._stopped_elapsed_ms is None

    @property
    def is_stopped(self) -> bool:
        return self._stopped_elapsed_ms is not None

    @property
    def is_running(self) -> bool:
        return self.is_started and not self.is_paused and not self.is_stopped

    # -----------------
    # Time
    # -----------------

    def _elapsed_ms(self) -> float:
        if self._start_seconds is None:
            return 0.0
        if self._stopped_elapsed_ms is not None:
            return float(self._stopped_elapsed_ms)
        reference = self._paused_at_seconds if self._paused_at_seconds is not None else float(self._time_source())
        return (reference - self._start_seconds - self._paused_total_seconds) * 1000.0

    def elapsed_ms(self) -> float:
        """Elapsed session time without the AV offset."""
        return self._elapsed_ms()

    def now_ms(self) -> float:
        if self._start_seconds is None:
            return 0.0
        return self._elapsed_ms() + self._av_offset_ms

    def paused_total_ms(self) -> float:
        return self._paused_total_seconds * 1000.0

    # -----------------
    # Tempo
    # -----------------

    @property
    def bpm(self) -> float:
        return self._bpm

    @property
    def beat_interval_ms(self) -> float:
        return self._beat_interval_ms

    def set_bpm(self, bpm: float) -> None:
        value = float(bpm)
        if value <= 0.0:
            raise ValueError(f"bpm must be positive, got {bpm}")
        self._bpm = value
        self._beat_interval_ms = 60000.0 / value

    def av_offset_ms(self) -> float:
        return self._av_offset_ms

    def set_av_offset_ms(self, av_offset_ms: float) -> None:
        self._av_offset_ms = float(av_offset_ms)

    def beat_at_time(self, time_ms: float) -> int:
        return int(float(time_ms) // self._beat_interval_ms)

    def time_at_beat(self, beat_number: int) -> float:
        return float(beat_number) * self._beat_interval_ms

    def is_on_beat(self, time_ms: Optional[float] = None, window_ms: float = 100.0) -> bool:
        current = self.now_ms() if time_ms is None else float(time_ms)
        since_last = current - self._last_beat_time_ms
        to_next = self._beat_interval_ms - since_last
        return min(since_last, to_next) <= float(window_ms)

    # -----------------
    # Beats
    # -----------------

    def on_beat(self, callback: Callable[[int, float], None]) -> None:
        self._beat_callbacks.append(callback)

    def update(self) -> int:
        """Fire a beat if enough time passed since the last one. Called once per tick."""
        if not self.is_running:
            return 0

        current = self.now_ms()
        since_last = current - self._last_beat_time_ms
        if since_last < self._beat_interval_ms * self._beat_tolerance:
            return 0

        self._last_beat_time_ms = current
        self._beat_count += 1
        for callback in list(self._beat_callbacks):
            callback(self._beat_count, current)
        return 1

    @property
    def beat_count(self) -> int:
        return self._beat_count

    def analyze_spectrum(self, bins: Sequence[float]) -> bool:
        """Flag a bass energy spike as a candidate beat, for diagnostics only."""
        bass = list(bins[:BASS_BIN_COUNT])
        if not bass:
            return False
        bass_average = sum(float(value) for value in bass) / len(bass)
        since_last = self.now_ms() - self._last_beat_time_ms
        if bass_average > BASS_ENERGY_THRESHOLD and since_last > self._beat_interval_ms * BASS_MIN_INTERVAL_RATIO:
            logger.debug("Bass spike candidate beat at %.1f ms (energy %.1f)", self.now_ms(), bass_average)
            return True
        return False

    def timing_info(self) -> TimingInfo:
        return TimingInfo(
            current_time_ms=self.now_ms(),
            bpm=self._bpm,
            beat_interval_ms=self._beat_interval_ms,
            next_beat_time_ms=self._last_beat_time_ms + self._beat_interval_ms,
            is_running=self.is_running,
        )


def _run_unit_tests() -> None:
    samples = [10.0]
    clock = GameClock(bpm=120.0, time_source=lambda: samples[0])
    clock.start()

    samples[0] = 11.0
    assert abs(clock.now_ms() - 1000.0) < 1e-9

    clock.pause()
    samples[0] = 13.0
    assert abs(clock.now_ms() - 1000.0) < 1e-9

    clock.resume()
    samples[0] = 14.0
    assert abs(clock.now_ms() - 2000.0) < 1e-9

    clock.stop()
    samples[0] = 20.0
    assert abs(clock.now_ms() - 2000.0) < 1e-9


if __name__ == "__main__":
    _run_unit_tests()
    print("game_clock.py: ok")
