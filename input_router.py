# -*- coding: utf-8 -*-
########################
# input_router.py
########################
# Purpose:
# - Single keyboard listener for gameplay lane input.
# - Translates QKeyEvent press and release into gameplay_models.InputEvent and emits a Qt signal.
#
# Design notes:
# - This must be the only lane input source. No duplicate key mapping elsewhere.
# - Debounce rules:
#   - Ignore auto repeat.
#   - Track pressed keys to avoid duplicate presses.
#   - A lane stays down while any of its keys is held. Release is emitted when the last one goes up.
# - Time source is injected as a callable returning song time in ms.
# - SessionController filters again (lane state, clamping), so this router can stay simple.
#
########################
# Interfaces:
# Public classes:
# - class InputRouter(PyQt6.QtCore.QObject)
#   - Signals:
#     - inputEvent(gameplay_models.InputEvent)
#   - Methods:
#     - handle_key_press(event: QKeyEvent) -> bool
#     - handle_key_release(event: QKeyEvent) -> bool
#     - clear_pressed_keys() -> None
#     - reset_stats() -> None
#
# Inputs:
# - Raw QKeyEvent from the Qt event loop.
#
# Outputs:
# - Normalized lane input events consumed by SessionController.
#
########################

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Set

from PyQt6.QtCore import QObject, Qt, pyqtSignal
from PyQt6.QtGui import QKeyEvent

from gameplay_models import InputAction, InputEvent, Lane

logger = logging.getLogger(__name__)


def _build_default_key_to_lane_map() -> Dict[int, Lane]:
    """
    Default lane mapping for the two lane track.

    Accepted keys:
      - D, F: top lane
      - J, K: bottom lane
    """
    key_to_lane: Dict[int, Lane] = {}

    def bind(key_constant: int, lane: Lane) -> None:
        key_to_lane[int(key_constant)] = lane

    bind(Qt.Key.Key_D, Lane.TOP)
    bind(Qt.Key.Key_F, Lane.TOP)
    bind(Qt.Key.Key_J, Lane.BOTTOM)
    bind(Qt.Key.Key_K, Lane.BOTTOM)

    return key_to_lane


class InputRouter(QObject):
    """
    Central keyboard router for gameplay lane input.

    This object never judges timing. Its only job is to:
      - map keys to lanes
      - attach the current song time from the injected time provider
      - emit an InputEvent for each lane going down or coming up
    """

    inputEvent = pyqtSignal(object)

    def __init__(
        self,
        song_time_provider: Callable[[], float],
        parent: Optional[QObject] = None,
        key_to_lane_map: Optional[Dict[int, Lane]] = None,
    ) -> None:
        """
        song_time_provider:
            Callable that returns the current song time in ms.
            GameplayHarnessController passes GameClock.now_ms.
        key_to_lane_map:
            Optional override for the key map. If omitted the default map is D/F top, J/K bottom.
        """
        super().__init__(parent)

        self._song_time_provider: Callable[[], float] = song_time_provider
        self._key_to_lane: Dict[int, Lane] = (
            dict(key_to_lane_map) if key_to_lane_map is not None else _build_default_key_to_lane_map()
        )

        self._pressed_keys: Set[int] = set()

        self._total_presses: int = 0
        self._ignored_presses: int = 0

    # ------------------------------------------------------------------
    # Public API used by gameplay_harness
    # ------------------------------------------------------------------

    def handle_key_press(self, event: QKeyEvent) -> bool:
        """
        Handle a Qt key press.

        Returns True if this router consumed the event, False otherwise.
        """
        key_code = int(event.key())
        lane = self._key_to_lane.get(key_code)
        if lane is None:
            return False

        # Holding a key must not spam presses.
        if event.isAutoRepeat() or key_code in self._pressed_keys:
            self._ignored_presses += 1
            return True

        lane_was_down = self._lane_is_down(lane)
        self._pressed_keys.add(key_code)
        if lane_was_down:
            # Second key of an already held lane.
            self._ignored_presses += 1
            return True

        self._total_presses += 1
        self._emit(lane, InputAction.PRESS)
        return True

    def handle_key_release(self, event: QKeyEvent) -> bool:
        """
        Handle a Qt key release.

        Returns True if this router consumed the event, False otherwise.
        """
        key_code = int(event.key())
        lane = self._key_to_lane.get(key_code)
        if lane is None:
            return False

        if event.isAutoRepeat() or key_code not in self._pressed_keys:
            return True

        self._pressed_keys.discard(key_code)
        if not self._lane_is_down(lane):
            self._emit(lane, InputAction.RELEASE)
        return True

    def clear_pressed_keys(self) -> None:
        """
        Release every held lane.

        Called by the harness on focus loss or window deactivation.
        """
        held_lanes = {self._key_to_lane[key_code] for key_code in self._pressed_keys if key_code in self._key_to_lane}
        self._pressed_keys.clear()
        if held_lanes:
            logger.debug("Releasing held lanes: %s", sorted(lane.value for lane in held_lanes))
        for lane in (Lane.TOP, Lane.BOTTOM):
            if lane in held_lanes:
                self._emit(lane, InputAction.RELEASE)

    def reset_stats(self) -> None:
        self._total_presses = 0
        self._ignored_presses = 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lane_is_down(self, lane: Lane) -> bool:
        return any(self._key_to_lane.get(key_code) == lane for key_code in self._pressed_keys)

    def _emit(self, lane: Lane, action: InputAction) -> None:
        song_time_ms = float(self._song_time_provider())
        self.inputEvent.emit(InputEvent(time_ms=song_time_ms, lane=lane, action=action))

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------

    @property
    def key_to_lane_map(self) -> Dict[int, Lane]:
        return dict(self._key_to_lane)

    @property
    def total_presses(self) -> int:
        return self._total_presses

    @property
    def ignored_presses(self) -> int:
        return self._ignored_presses


def _run_unit_tests() -> None:
    router = InputRouter(lambda: 1250.0)

    assert router.key_to_lane_map[int(Qt.Key.Key_D)] == Lane.TOP
    assert router.key_to_lane_map[int(Qt.Key.Key_F)] == Lane.TOP
    assert router.key_to_lane_map[int(Qt.Key.Key_J)] == Lane.BOTTOM
    assert router.key_to_lane_map[int(Qt.Key.Key_K)] == Lane.BOTTOM


if __name__ == "__main__":
    _run_unit_tests()
    print("input_router.py: ok")
