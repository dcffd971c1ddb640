import pytest

import config as config_module
from presenter import NullPresenter, PresenterFailure


class FakeTimeSource:
    """Time source in seconds that only moves when a test says so."""

    def __init__(self):
        self.now_ms = 0.0

    def __call__(self):
        return self.now_ms / 1000.0

    def advance(self, delta_ms):
        self.now_ms += float(delta_ms)

    def set(self, time_ms):
        self.now_ms = float(time_ms)


class RecordingPresenter(NullPresenter):
    """Records every call. Calls named in fail_calls are recorded, then raise PresenterFailure."""

    def __init__(self, fail_on_spawn=(), fail_calls=()):
        self.fail_on_spawn = set(fail_on_spawn)
        self.fail_calls = set(fail_calls)
        self.calls = []

    def _record(self, *call):
        self.calls.append(call)
        if call[0] in self.fail_calls:
            raise PresenterFailure(f"{call[0]} failed")

    def on_spawn(self, note):
        self.calls.append(("spawn", note.note_id))
        if note.note_id in self.fail_on_spawn:
            raise PresenterFailure("no sprite available")
        return note.note_id

    def on_position_update(self, handle, screen_position):
        self._record("position", handle, screen_position)

    def on_resolve(self, handle, judgement):
        self._record("resolve", handle, judgement)

    def on_remove(self, handle):
        self._record("remove", handle)

    def on_hold_progress(self, handle, ratio):
        self._record("hold_progress", handle, ratio)

    def kinds(self, kind):
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture
def fake_time():
    return FakeTimeSource()


@pytest.fixture
def presenter():
    return RecordingPresenter()


@pytest.fixture
def engine_config():
    return config_module.EngineConfig()
