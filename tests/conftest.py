import pytest

from gpiozero import Device
from gpiozero.pins.mock import MockFactory

from modemmonitor.relay import RelayError


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeShutdown:
    """threading.Event look-alike: wait() moves the fake clock instead of sleeping.

    `at` sets the event once the clock reaches that time.
    """

    def __init__(self, clock, at=None):
        self._clock = clock
        self._at = at
        self._set = False
        self.waits = []

    def set(self):
        self._set = True

    def is_set(self):
        if self._at is not None and self._clock.now >= self._at:
            self._set = True
        return self._set

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if self.is_set():
            return True
        target = self._clock.now + timeout
        if self._at is not None and self._at <= target:
            self._clock.now = max(self._clock.now, self._at)
            self._set = True
            return True
        self._clock.now = target
        return False


class ScriptedPinger:
    """Returns the scripted results in order, then repeats the last one."""

    def __init__(self, clock, *results, on_call=None):
        self._clock = clock
        self._results = list(results)
        self._on_call = on_call
        self.calls = []

    def ping_all(self, shutdown):
        index = min(len(self.calls), len(self._results) - 1)
        self.calls.append(self._clock.now)
        if self._on_call is not None:
            self._on_call(len(self.calls), shutdown)
        result = self._results[index]
        if isinstance(result, Exception):
            raise result
        return result


class RecordingRelay:

    def __init__(self, fail=False):
        self.calls = []
        self._fail = fail

    def cut_power(self):
        self.calls.append("cut")
        if self._fail:
            raise RelayError("relay stuck")

    def restore_power(self):
        self.calls.append("restore")
        if self._fail:
            raise RelayError("relay stuck")

    def close(self):
        self.calls.append("close")

    @property
    def cuts(self):
        return self.calls.count("cut")

    @property
    def restores(self):
        return self.calls.count("restore")


class RecordingSink:

    def __init__(self, clock):
        self._clock = clock
        self.states = []
        self.transitions = []
        self.resets = 0
        self.ping_success = 0
        self.ping_failure = 0

    def set_state(self, state):
        self.states.append(state)

    def count_transition(self):
        self.transitions.append((self._clock.now, self.states[-1] if self.states else None))

    def count_reset(self):
        self.resets += 1

    def count_ping(self, success):
        if success:
            self.ping_success += 1
        else:
            self.ping_failure += 1

    def changes(self):
        """The announced states with consecutive repeats collapsed."""
        changes = []
        for state in self.states:
            if not changes or changes[-1] is not state:
                changes.append(state)
        return changes


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def relay():
    return RecordingRelay()


@pytest.fixture
def sink(clock):
    return RecordingSink(clock)


@pytest.fixture
def mock_factory():
    saved = Device.pin_factory
    Device.pin_factory = MockFactory()
    try:
        yield Device.pin_factory
    finally:
        Device.pin_factory.reset()
        Device.pin_factory = saved
