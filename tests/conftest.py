"""Shared fakes: no serial ports, no GPIO, no real sleeping."""

import pytest

from mesamate import codec
from mesamate.calibration import MotionCalibration
from mesamate.context import RobotContext
from mesamate.errors import TransportUnavailable
from mesamate.planner import MotionPlanner
from mesamate.pose import Direction, PoseModel


class FakeLink:
    """Stands in for SerialLink: records sent lines, lets tests inject device lines."""

    def __init__(self, connected=True, fail_open=False):
        self.sent = []
        self.listeners = []
        self.is_connected = connected
        self.fail_open = fail_open
        self.closed = False

    def open_at(self, port):
        if self.fail_open:
            raise TransportUnavailable(f"{port}: no such device")
        self.is_connected = True

    def close(self, send_stop=True):
        self.closed = True
        self.is_connected = False

    def send(self, line):
        if not self.is_connected:
            return False
        self.sent.append(line)
        return True

    def subscribe(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self, line):
        event = codec.decode_event(line)
        for listener in list(self.listeners):
            listener(event)
        return event


class FakeMotors:
    def __init__(self):
        self.speeds = (0, 0)
        self.history = []
        self.stops = 0

    def set_speeds(self, left, right):
        self.speeds = (left, right)
        self.history.append(self.speeds)

    def stop(self):
        self.stops += 1
        self.speeds = (0, 0)


class MsClock:
    """Device clock in milliseconds, set by the test."""

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeDevicePort:
    """Device end of the serial line: bytes in via rx, lines out via written."""

    def __init__(self):
        self.rx = bytearray()
        self.written = bytearray()

    @property
    def in_waiting(self):
        return len(self.rx)

    def read(self, n):
        out = bytes(self.rx[:n])
        del self.rx[:n]
        return out

    def write(self, data):
        self.written.extend(data)
        return len(data)

    def lines(self):
        return self.written.decode().splitlines()


class FakeClock:
    """Monotonic clock in seconds; sleep() advances it instantly."""

    def __init__(self, start=0.0):
        self.now = start
        self.hooks = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds
        for hook in list(self.hooks):
            hook(self.now)


@pytest.fixture
def link():
    return FakeLink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(link):
    return RobotContext(link=link, pose=PoseModel(2, 4, Direction.N, 5, 5),
                        calibration=MotionCalibration(), auto_reset_on_blocked=True)


@pytest.fixture
def planner(context, clock):
    return MotionPlanner(context, grid_unit_inches=24.0, wait_buffer=0.5, legacy_turn_sec=0.5,
                         poll_interval=0.05, sleep=clock.sleep, clock=clock)


@pytest.fixture
def make_link():
    return FakeLink


@pytest.fixture
def motors():
    return FakeMotors()


@pytest.fixture
def ms_clock():
    return MsClock()


@pytest.fixture
def device_port():
    return FakeDevicePort()
