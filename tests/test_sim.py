"""Host link against the simulated firmware, over the real line protocol."""

import threading

import pytest

from mesamate import codec
from mesamate.calibration import MotionCalibration
from mesamate.link import SerialLink
from mesamate.sim import FAR_CM, SimWorld, make_port_factory


class Recorder:
    def __init__(self):
        self.events = []
        self._cond = threading.Condition()

    def __call__(self, event):
        with self._cond:
            self.events.append(event)
            self._cond.notify_all()

    def wait_for(self, event, timeout=5.0):
        with self._cond:
            return self._cond.wait_for(lambda: event in self.events, timeout)


@pytest.fixture
def sim():
    world = SimWorld()
    # fast calibration so moves finish in tens of milliseconds
    calibration = MotionCalibration(inches_per_second=240.0, degrees_per_second=1800.0)
    link = SerialLink(settle_sec=0, read_timeout=0.05, port_factory=make_port_factory(world, calibration))
    recorder = Recorder()
    link.subscribe(recorder)
    link.open_at("sim://")
    yield world, link, recorder
    link.close()


def test_move_completes(sim):
    world, link, recorder = sim
    assert link.send("MOVE_DISTANCE:24.00")
    assert recorder.wait_for(codec.ReceivedEcho("MOVE_DISTANCE:24.00"))
    assert recorder.wait_for(codec.MovementComplete("SUCCESS"))
    assert world.motor_log[-1] == (0, 0)


def test_obstacle_pauses_move(sim):
    world, link, recorder = sim
    world.obstacle_cm = 5.0
    assert recorder.wait_for(codec.ObstacleDetected())
    link.send("MOVE_DISTANCE:24.00")
    assert recorder.wait_for(codec.MovementPaused("OBSTACLE"))
    world.obstacle_cm = FAR_CM
    assert recorder.wait_for(codec.ObstacleCleared())
    assert recorder.wait_for(codec.MovementResumed())
    assert recorder.wait_for(codec.MovementComplete("SUCCESS"))


def test_leds_follow_table_commands(sim):
    world, link, recorder = sim
    link.send("TABLE2_ARRIVED")
    assert recorder.wait_for(codec.ReceivedEcho("TABLE2_ARRIVED"))
    assert world.leds == {2: True}


def test_overlapping_move_is_blocked(sim):
    world, link, recorder = sim
    world.obstacle_cm = 5.0
    assert recorder.wait_for(codec.ObstacleDetected())
    # paused moves never finish on their own
    link.send("MOVE_DISTANCE:24.00")
    link.send("TURN_ANGLE:90.0")
    assert recorder.wait_for(codec.Blocked("already moving"))
