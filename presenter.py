# -*- coding: utf-8 -*-
########################
# presenter.py
########################
# Purpose:
# - Outbound visual contract of the engine.
# - The engine pushes spawn, position, hold progress, resolution and removal calls here.
#   It never reads visual geometry back.
#
# Design notes:
# - No Qt usage. A Qt or terminal front end implements Presenter structurally.
# - A presenter reports failure by raising PresenterFailure from any call. The engine logs a
#   presenter_failure event and stops rendering that note: no further calls are made for it.
#   The engine side of the call (spawn, move, resolve, remove) has already happened.
# - A note that fails to spawn or to move stays live but unrendered. It cannot be targeted
#   and is still missed. Any other exception propagates.
#
########################
# Interfaces:
# Public exceptions:
# - class PresenterFailure(Exception)
#
# Public protocols:
# - Presenter
#   - on_spawn(note: LiveNote) -> Any  (visual handle)
#   - on_position_update(handle: Any, screen_position: float) -> None
#   - on_resolve(handle: Any, judgement: Judgement) -> None
#   - on_remove(handle: Any) -> None
#   - on_hold_progress(handle: Any, ratio: float) -> None
#
# Public classes:
# - NullPresenter
# - LoggingPresenter
#
########################

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from gameplay_models import Judgement, LiveNote

logger = logging.getLogger(__name__)


class PresenterFailure(Exception):
    """Raised by a presenter that could not carry out a call for a note."""


@runtime_checkable
class Presenter(Protocol):
    def on_spawn(self, note: LiveNote) -> Any:
        ...

    def on_position_update(self, handle: Any, screen_position: float) -> None:
        ...

    def on_resolve(self, handle: Any, judgement: Judgement) -> None:
        ...

    def on_remove(self, handle: Any) -> None:
        ...

    def on_hold_progress(self, handle: Any, ratio: float) -> None:
        ...


class NullPresenter:
    def on_spawn(self, note: LiveNote) -> Any:
        return note.note_id

    def on_position_update(self, handle: Any, screen_position: float) -> None:
        return None

    def on_resolve(self, handle: Any, judgement: Judgement) -> None:
        return None

    def on_remove(self, handle: Any) -> None:
        return None

    def on_hold_progress(self, handle: Any, ratio: float) -> None:
        return None


class LoggingPresenter(NullPresenter):
    """Logs lifecycle transitions. Position updates are too frequent to log."""

    def on_spawn(self, note: LiveNote) -> Any:
        logger.debug(
            "spawn #%d %s %s hit=%.1f ms", note.note_id, note.lane.value, note.note_type.value, note.hit_time_ms
        )
        return note.note_id

    def on_resolve(self, handle: Any, judgement: Judgement) -> None:
        logger.info("note #%s -> %s", handle, judgement.value)

    def on_remove(self, handle: Any) -> None:
        logger.debug("remove #%s", handle)
