"""
sim.py — in-process simulated robot for desk testing.

A SimulatedDevice runs the real firmware loop (controller + obstacle monitor)
on a daemon thread against simulated motors and sensors. The host talks to it
through a pyserial-like port, so SerialLink, the planner and the delivery
session run unchanged:

  link = SerialLink(port_factory=make_port_factory(), settle_sec=0)
  link.open_at("sim://")
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .calibration import MotionCalibration
from .errors import SensorReadFailure
from .firmware.controller import MotionController
from .firmware.device import FirmwareDevice
from .firmware.obstacle import CM_PER_US, ObstacleMonitor

FAR_CM = 200.0


class SimWorld:
    """Shared physical state the simulated sensors read from."""

    def __init__(self, lean_g: float = 0.0):
        self.obstacle_cm = FAR_CM
        self.lean_g = lean_g
        self.tilt_fails = False
        self.leds = {}
        self.motor_log: List[Tuple[int, int]] = []

    def schedule_obstacle(self, after_s: float, duration_s: float, distance_cm: float = 10.0) -> None:
        def _appear():
            print(f"[sim] obstacle at {distance_cm:.0f} cm", flush=True)
            self.obstacle_cm = distance_cm

        def _clear():
            print("[sim] obstacle removed", flush=True)
            self.obstacle_cm = FAR_CM

        for delay, fn in ((after_s, _appear), (after_s + duration_s, _clear)):
            t = threading.Timer(delay, fn)
            t.daemon = True
            t.start()


class SimMotors:
    def __init__(self, world: SimWorld):
        self.world = world
        self.speeds = (0, 0)

    def set_speeds(self, left: int, right: int) -> None:
        self.speeds = (left, right)
        self.world.motor_log.append(self.speeds)

    def stop(self) -> None:
        self.set_speeds(0, 0)


class SimTilt:
    def __init__(self, world: SimWorld):
        self.world = world

    def read(self) -> float:
        if self.world.tilt_fails:
            raise SensorReadFailure("simulated i2c error")
        return self.world.lean_g


class SimSonar:
    def __init__(self, world: SimWorld):
        self.world = world

    def read_pulse_us(self) -> Optional[float]:
        return self.world.obstacle_cm / CM_PER_US


class SimLeds:
    def __init__(self, world: SimWorld):
        self.world = world

    def set_table(self, table: int, on: bool) -> None:
        self.world.leds[table] = on


@dataclass
class SimHardware:
    """Same shape as firmware.hardware.PiHardware, backed by a SimWorld."""
    world: SimWorld
    motors: SimMotors
    tilt: SimTilt
    sensors: List[SimSonar]
    leds: SimLeds

    def close(self) -> None:
        self.motors.stop()


def open_sim_hardware(world: SimWorld = None, sensor_count: int = 3) -> SimHardware:
    world = world or SimWorld()
    return SimHardware(world, SimMotors(world), SimTilt(world),
                       [SimSonar(world) for _ in range(sensor_count)], SimLeds(world))


class _Pipe:
    """One-directional byte stream with blocking line reads."""

    def __init__(self):
        self._buf = bytearray()
        self._cond = threading.Condition()

    def write(self, data: bytes) -> int:
        with self._cond:
            self._buf.extend(data)
            self._cond.notify_all()
        return len(data)

    def available(self) -> int:
        with self._cond:
            return len(self._buf)

    def read(self, n: int) -> bytes:
        with self._cond:
            out = bytes(self._buf[:n])
            del self._buf[:n]
            return out

    def readline(self, timeout: Optional[float]) -> bytes:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while b"\n" not in self._buf:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return b""
                self._cond.wait(remaining)
            idx = self._buf.index(b"\n") + 1
            out = bytes(self._buf[:idx])
            del self._buf[:idx]
            return out

    def clear(self) -> None:
        with self._cond:
            self._buf.clear()


class _DevicePort:
    def __init__(self, rx: _Pipe, tx: _Pipe):
        self._rx, self._tx = rx, tx

    @property
    def in_waiting(self) -> int:
        return self._rx.available()

    def read(self, n: int) -> bytes:
        return self._rx.read(n)

    def write(self, data: bytes) -> int:
        return self._tx.write(data)


class SimulatedPort:
    """Host end of the simulated serial link."""

    def __init__(self, device: "SimulatedDevice", timeout: float):
        self.device = device
        self.timeout = timeout
        self.is_open = True

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise OSError("port closed")
        return self.device.host_to_device.write(data)

    def flush(self) -> None:
        pass

    def readline(self) -> bytes:
        if not self.is_open:
            raise OSError("port closed")
        return self.device.device_to_host.readline(self.timeout)

    @property
    def in_waiting(self) -> int:
        return self.device.device_to_host.available()

    def reset_input_buffer(self) -> None:
        self.device.device_to_host.clear()

    def close(self) -> None:
        if self.is_open:
            self.is_open = False
            self.device.stop()


class SimulatedDevice:
    def __init__(self, world: SimWorld = None, calibration: MotionCalibration = None):
        self.world = world or SimWorld()
        self.host_to_device = _Pipe()
        self.device_to_host = _Pipe()
        self.hardware = open_sim_hardware(self.world)
        self.motors = self.hardware.motors
        controller = MotionController(self.motors, tilt=self.hardware.tilt, leds=self.hardware.leds,
                                      calibration=calibration)
        monitor = ObstacleMonitor(self.hardware.sensors)
        self.firmware = FirmwareDevice(_DevicePort(self.host_to_device, self.device_to_host),
                                       controller, monitor)
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "SimulatedDevice":
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self.firmware.run, name="SimulatedDevice", daemon=True)
            self._thread.start()
            print("[sim] Simulated device started", flush=True)
        return self

    def stop(self) -> None:
        self.firmware.stop()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        print("[sim] Simulated device stopped", flush=True)


def make_port_factory(world: SimWorld = None, calibration: MotionCalibration = None):
    """Port factory for SerialLink that boots a fresh simulated device per open."""
    def _factory(port: str, baud: int, timeout: float, write_timeout: float):
        device = SimulatedDevice(world, calibration).start()
        return SimulatedPort(device, timeout)
    return _factory
