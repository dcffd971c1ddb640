# -*- coding: utf-8 -*-
########################
# gameplay_harness.py
########################
# Purpose:
# - Gameplay harness for local testing and iteration.
# - Integrates SessionController + InputRouter + LoggingPresenter behind a Qt fixed-rate timer.
# - Headless autoplay mode that runs a whole session on a stepped clock and prints the result.
#
# Design notes:
# - SessionController is the single source of truth for song time and judgement.
# - The Qt timer only calls SessionController.tick(). No per-note timers.
# - Provides a reusable controller (GameplayHarnessController) so other UIs can reuse the same
#   event filter, timer loop, and handlers as the standalone harness window.
# - Autoplay presses every lane note at its hit time and releases holds just after their end,
#   so a correct engine scores every note perfect.
#
########################
# Interfaces:
# Public dataclasses:
# - HarnessState(last_error: str, ended: bool)
# - AutoplayResult(score: ScoreState, grade: str, events: list[EngineEvent], duration_ms: float)
#
# Public classes:
# - class SteppedTimeSource
# - class GameplayHarnessController(PyQt6.QtCore.QObject)
# - class GameplayHarnessWindow(PyQt6.QtWidgets.QMainWindow)
#
# Public functions:
# - build_session_source(args, engine_config) -> Chart | ChartSchedule
# - run_autoplay(source, *, engine_config, timing_offset_ms=0.0, skip_every=0, presenter=None) -> AutoplayResult
# - main() -> int
#
# Inputs:
# - Keyboard lane input (InputRouter handles QKeyEvent).
# - Chart file, demo chart, or generated schedule chosen on the command line.
#
# Outputs:
# - Status text with score, combo and progress.
# - Final score and grade (headless mode prints them).
#
########################

from __future__ import annotations

from dataclasses import dataclass, field
import argparse
import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol, Tuple, Union, runtime_checkable

import config as config_module
from chart_generator_fast import adapt_schedule, generate_section_schedule, seed_for
from chart_store import ChartFileError, load_chart_file
from demo_charts import DEMO_DIFFICULTIES, build_demo_chart
from gameplay_models import Chart, ChartSchedule, EngineEvent, InputAction, NoteType
from presenter import LoggingPresenter, Presenter
from score_state import ScoreState
from session_controller import SessionController, SessionState

logger = logging.getLogger(__name__)

# Autoplay releases taps after this long and holds this long after their end.
_AUTOPLAY_TAP_RELEASE_MS = 40.0
_AUTOPLAY_HOLD_RELEASE_MARGIN_MS = 1.0


@dataclass
class HarnessState:
    last_error: str = ""
    ended: bool = False


@dataclass(frozen=True)
class AutoplayResult:
    score: ScoreState
    grade: str
    events: List[EngineEvent] = field(default_factory=list)
    duration_ms: float = 0.0


class SteppedTimeSource:
    """Manually advanced time source in seconds, for headless runs and tests."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now_ms = float(start_ms)

    def __call__(self) -> float:
        return self._now_ms / 1000.0

    @property
    def now_ms(self) -> float:
        return self._now_ms

    def set_ms(self, time_ms: float) -> None:
        if float(time_ms) < self._now_ms:
            raise ValueError("SteppedTimeSource cannot move backwards")
        self._now_ms = float(time_ms)

    def advance_ms(self, delta_ms: float) -> None:
        self.set_ms(self._now_ms + float(delta_ms))


# -----------------
# Sources
# -----------------


def build_session_source(args: argparse.Namespace, engine_config: config_module.EngineConfig) -> Union[Chart, ChartSchedule]:
    if args.generate:
        schedule = generate_section_schedule(
            duration_ms=float(args.duration_seconds) * 1000.0,
            bpm=float(args.bpm),
            travel_time_ms=float(engine_config.geometry.travel_time_ms),
        )
        if args.accuracy is not None:
            schedule = adapt_schedule(
                schedule,
                player_accuracy=float(args.accuracy),
                seed=seed_for(str(args.song_id), str(args.difficulty)),
            )
        return schedule

    if args.chart:
        return load_chart_file(Path(args.chart), args.difficulty).chart

    return build_demo_chart(difficulty=args.difficulty)


# -----------------
# Headless autoplay
# -----------------


def _autoplay_actions(schedule: ChartSchedule, *, timing_offset_ms: float, skip_every: int) -> List[Tuple[float, int, Any, InputAction]]:
    actions: List[Tuple[float, int, Any, InputAction]] = []
    lane_note_index = 0
    for note in schedule.notes:
        for lane in note.ordered_lanes():
            lane_note_index += 1
            if skip_every > 0 and lane_note_index % skip_every == 0:
                continue
            press_ms = float(note.hit_time_ms) + float(timing_offset_ms)
            if note.note_type == NoteType.HOLD:
                release_ms = float(note.hit_time_ms) + float(note.hold_duration_ms) + _AUTOPLAY_HOLD_RELEASE_MARGIN_MS
            else:
                release_ms = press_ms + _AUTOPLAY_TAP_RELEASE_MS
            # Releases sort before presses at the same instant.
            actions.append((press_ms, 1, lane, InputAction.PRESS))
            actions.append((release_ms, 0, lane, InputAction.RELEASE))
    actions.sort(key=lambda item: (item[0], item[1]))
    return actions


def run_autoplay(
    source: Union[Chart, ChartSchedule],
    *,
    engine_config: config_module.EngineConfig,
    timing_offset_ms: float = 0.0,
    skip_every: int = 0,
    presenter: Optional[Presenter] = None,
) -> AutoplayResult:
    time_source = SteppedTimeSource()
    session = SessionController(engine_config, presenter=presenter, time_source=time_source)
    session.start(source)

    schedule = session.schedule
    assert schedule is not None
    actions = _autoplay_actions(schedule, timing_offset_ms=timing_offset_ms, skip_every=int(skip_every))

    tick_ms = float(engine_config.clock.tick_interval_ms)
    action_index = 0
    # Guard against a session that never reports the end of the song.
    tick_limit = int((session.duration_ms + 10000.0) / tick_ms) + 1

    for _ in range(tick_limit):
        if session.state != SessionState.PLAYING:
            break
        next_tick_ms = time_source.now_ms + tick_ms
        while action_index < len(actions) and actions[action_index][0] <= next_tick_ms:
            action_time_ms, _order, lane, action = actions[action_index]
            action_index += 1
            time_source.set_ms(max(time_source.now_ms, action_time_ms))
            if action == InputAction.PRESS:
                session.on_press(lane)
            else:
                session.on_release(lane)
        time_source.set_ms(next_tick_ms)
        session.tick()

    if session.state != SessionState.STOPPED:
        logger.warning("Autoplay hit the tick limit before the song ended; stopping")
        session.stop()

    score = session.get_score_state()
    return AutoplayResult(
        score=score,
        grade=score.grade(),
        events=session.event_log(),
        duration_ms=session.duration_ms,
    )


# -----------------
# Qt harness
# -----------------


@runtime_checkable
class HarnessUiProtocol(Protocol):
    """UI contract used by GameplayHarnessController.

    Required attributes for wiring:
    - start_button, pause_button, resume_button, stop_button: QPushButton-like objects exposing .clicked
    - status_label, score_label: QLabel-like objects with setText(str) -> None
    """

    start_button: Any
    pause_button: Any
    resume_button: Any
    stop_button: Any
    status_label: Any
    score_label: Any


class GameplayHarnessController:  # QObject subclass, defined lazily inside Qt import block
    pass


def _create_controller_class():
    from PyQt6.QtCore import QEvent, QObject, Qt, pyqtSignal
    from PyQt6.QtGui import QKeyEvent

    import input_router

    class _Signals(QObject):
        judgement = pyqtSignal(object)
        sessionEnded = pyqtSignal()

    class _GameplayHarnessController(QObject):
        """Reusable gameplay pipeline controller.

        Owns the timer loop and the InputRouter event filter, and forwards both into one
        SessionController.
        """

        def __init__(
            self,
            *,
            session: SessionController,
            source_factory: Any,
            ui: Optional[HarnessUiProtocol] = None,
            parent: Optional[QObject] = None,
        ) -> None:
            super().__init__(parent)
            self._signals = _Signals(self)
            self._state = HarnessState()
            self._ui: Optional[HarnessUiProtocol] = None

            self._session = session
            self._source_factory = source_factory

            self._router = input_router.InputRouter(self._session.clock.now_ms, parent=self)
            self._router.inputEvent.connect(self._on_input_event)

            self._tick_timer_id: int = self.startTimer(int(session.config.clock.tick_interval_ms))

            if ui is not None:
                self.attach_ui(ui)

        @property
        def signals(self) -> _Signals:
            return self._signals

        @property
        def session(self) -> SessionController:
            return self._session

        @property
        def state(self) -> HarnessState:
            return self._state

        def attach_ui(self, ui: HarnessUiProtocol) -> None:
            self._ui = ui
            self._ui.start_button.clicked.connect(self.start)
            self._ui.pause_button.clicked.connect(self.pause)
            self._ui.resume_button.clicked.connect(self.resume)
            self._ui.stop_button.clicked.connect(self.stop)
            self._update_labels()

        # -----------------
        # Event filter and timer loop (shared)
        # -----------------

        def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # noqa: N802
            if event.type() == QEvent.Type.KeyPress and isinstance(event, QKeyEvent):
                if event.key() == Qt.Key.Key_Escape and not event.isAutoRepeat():
                    self.toggle_pause()
                    return True
                if self._router.handle_key_press(event):
                    return True
            if event.type() == QEvent.Type.KeyRelease and isinstance(event, QKeyEvent):
                if self._router.handle_key_release(event):
                    return True
            if event.type() in (QEvent.Type.WindowDeactivate, QEvent.Type.FocusOut):
                self._router.clear_pressed_keys()
            return super().eventFilter(watched, event)

        def timerEvent(self, event) -> None:  # type: ignore[override]
            if event.timerId() != self._tick_timer_id:
                return
            if self._session.state != SessionState.PLAYING:
                return

            for judgement_event in self._session.tick():
                self._signals.judgement.emit(judgement_event)

            if self._session.state == SessionState.STOPPED and not self._state.ended:
                self._state.ended = True
                self._set_status(f"Ended: grade {self._session.get_grade()}")
                self._signals.sessionEnded.emit()
            self._update_labels()

        # -----------------
        # UI helpers
        # -----------------

        def _set_status(self, text: str) -> None:
            if self._ui is not None:
                self._ui.status_label.setText(str(text))

        def _update_labels(self) -> None:
            if self._ui is None:
                return
            score = self._session.get_score_state()
            self._ui.score_label.setText(
                f"score={score.total_score}  combo={score.combo}  max={score.max_combo}  "
                f"progress={self._session.get_progress_percent():.0f}%"
            )

        # -----------------
        # Core operations
        # -----------------

        def start(self) -> None:
            self._state.ended = False
            self._state.last_error = ""
            try:
                self._session.start(self._source_factory())
            except (ChartFileError, ValueError) as exc:
                self._state.last_error = str(exc)
                self._set_status(f"Chart error: {exc}")
                logger.error("Could not start session: %s", exc)
                return
            self._set_status("Playing (D/F top, J/K bottom, Esc pause)")
            self._update_labels()

        def pause(self) -> None:
            self._router.clear_pressed_keys()
            self._session.pause()
            self._set_status("Paused")

        def resume(self) -> None:
            self._session.resume()
            self._set_status("Playing")

        def toggle_pause(self) -> None:
            if self._session.state == SessionState.PLAYING:
                self.pause()
            elif self._session.state == SessionState.PAUSED:
                self.resume()

        def stop(self) -> None:
            self._session.stop()
            self._set_status(f"Stopped: grade {self._session.get_grade()}")
            self._update_labels()

        # -----------------
        # Input path
        # -----------------

        def _on_input_event(self, input_event) -> None:
            judgement_event = self._session.handle_input(input_event)
            if judgement_event is not None:
                self._signals.judgement.emit(judgement_event)
                self._update_labels()

    return _GameplayHarnessController


GameplayHarnessController = _create_controller_class()


class GameplayHarnessWindow:
    pass


def _create_window_class():
    from PyQt6.QtWidgets import QHBoxLayout, QLabel, QMainWindow, QPushButton, QVBoxLayout, QWidget

    class _DefaultHarnessUi:
        def __init__(self, *, parent: QWidget) -> None:
            self.root_widget = QWidget(parent)
            self.root_layout = QVBoxLayout(self.root_widget)

            self.controls = QWidget(self.root_widget)
            self.controls_layout = QHBoxLayout(self.controls)

            self.start_button = QPushButton("Start", self.controls)
            self.pause_button = QPushButton("Pause", self.controls)
            self.resume_button = QPushButton("Resume", self.controls)
            self.stop_button = QPushButton("Stop", self.controls)

            self.status_label = QLabel("Ready", self.root_widget)
            self.score_label = QLabel("", self.root_widget)

            for button in (self.start_button, self.pause_button, self.resume_button, self.stop_button):
                self.controls_layout.addWidget(button)

            self.root_layout.addWidget(self.controls)
            self.root_layout.addWidget(self.status_label)
            self.root_layout.addWidget(self.score_label)

    class _GameplayHarnessWindow(QMainWindow):
        def __init__(self, *, session: SessionController, source_factory: Any, ui: Optional[HarnessUiProtocol] = None) -> None:
            super().__init__()
            self.setWindowTitle("Lanebeat Gameplay Harness")

            self._controller = GameplayHarnessController(
                session=session,
                source_factory=source_factory,
                ui=None,
                parent=self,
            )

            if ui is None:
                default_ui = _DefaultHarnessUi(parent=self)
                self.setCentralWidget(default_ui.root_widget)
                self._controller.attach_ui(default_ui)  # type: ignore[arg-type]
            else:
                self._controller.attach_ui(ui)

            # Install the shared event filter.
            self.installEventFilter(self._controller)

        @property
        def controller(self) -> GameplayHarnessController:
            return self._controller

    return _GameplayHarnessWindow


GameplayHarnessWindow = _create_window_class()


def _run_chunk_tests() -> None:
    engine_config = config_module.EngineConfig()

    # Autoplay on the demo chart judges every lane note perfect.
    result = run_autoplay(build_demo_chart(difficulty="easy"), engine_config=engine_config)
    assert result.score.perfect_count == 40, result.score
    assert result.score.miss_count == 0
    assert result.grade == "S"

    # Holds complete with the full bonus.
    holds = run_autoplay(build_demo_chart(difficulty="holds"), engine_config=engine_config)
    assert holds.score.miss_count == 0
    assert holds.score.hold_count > 0

    # Skipped notes are swept as misses exactly once.
    skipped = run_autoplay(build_demo_chart(difficulty="easy"), engine_config=engine_config, skip_every=4)
    assert skipped.score.miss_count == 10
    assert skipped.score.total_judged() == 40


def _run_gui(args: argparse.Namespace, engine_config: config_module.EngineConfig) -> int:
    from PyQt6.QtWidgets import QApplication
    import sys

    app = QApplication(sys.argv)
    session = SessionController(engine_config, presenter=LoggingPresenter())
    window = GameplayHarnessWindow(session=session, source_factory=lambda: build_session_source(args, engine_config))
    window.resize(640, 200)
    window.show()
    return int(app.exec())


def _run_headless(args: argparse.Namespace, engine_config: config_module.EngineConfig) -> int:
    source = build_session_source(args, engine_config)
    result = run_autoplay(
        source,
        engine_config=engine_config,
        timing_offset_ms=float(args.offset_ms),
        skip_every=int(args.skip_every),
        presenter=LoggingPresenter(),
    )
    counts = result.score.counts()
    print(f"score: {result.score.total_score}")
    print(f"max combo: {result.score.max_combo}")
    print(
        "judgements: "
        + "  ".join(f"{name}={counts[name]}" for name in ("perfect", "great", "good", "miss", "hold"))
    )
    print(f"accuracy: {result.score.accuracy() * 100.0:.1f}%")
    print(f"grade: {result.grade}")
    if result.events:
        print(f"engine events: {len(result.events)}")
    return 0


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lanebeat gameplay harness")
    parser.add_argument("--chart", help="Chart JSON file. Defaults to the built-in demo chart.")
    parser.add_argument("--difficulty", default="easy", help=f"Difficulty name (demo: {', '.join(DEMO_DIFFICULTIES)}).")
    parser.add_argument("--generate", action="store_true", help="Play a procedurally generated schedule.")
    parser.add_argument("--song-id", default="lanebeat", help="Seed name for generated schedules.")
    parser.add_argument("--duration-seconds", type=float, default=60.0, help="Length of a generated schedule.")
    parser.add_argument("--bpm", type=float, default=120.0, help="Tempo of a generated schedule.")
    parser.add_argument(
        "--accuracy",
        type=float,
        default=None,
        help="Previous player accuracy (0..1). Adapts the generated schedule's difficulty.",
    )
    parser.add_argument("--headless", action="store_true", help="Run an autoplay session without a window.")
    parser.add_argument("--offset-ms", type=float, default=0.0, help="Autoplay press offset from each hit time.")
    parser.add_argument("--skip-every", type=int, default=0, help="Autoplay skips every Nth lane note.")
    parser.add_argument("--config", help="Config JSON file. Overrides LANEBEAT_CONFIG_PATH.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    parser.add_argument(
        "--run-tests",
        action="store_true",
        help="Run pure logic tests (no window).",
    )
    return parser


def main() -> int:
    args = build_argument_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.run_tests:
        _run_chunk_tests()
        print("Chunk tests passed.")
        return 0

    engine_config, config_path = config_module.load_config(Path(args.config) if args.config else None)
    if config_path is not None:
        logger.info("Using config file %s", config_path)

    if args.headless:
        return _run_headless(args, engine_config)
    return _run_gui(args, engine_config)


if __name__ == "__main__":
    raise SystemExit(main())
