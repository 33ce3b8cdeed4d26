"""
device.py — the firmware polling loop.

Single-threaded: every tick drains pending serial input, samples the obstacle
sensors when the sampling interval has elapsed, and runs one controller tick.
Nothing in a tick blocks for the length of a move, so obstacle checks and
command intake stay live throughout.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

import serial

from .. import config
from .controller import MotionController, _millis
from .obstacle import ObstacleMonitor


class FirmwareDevice:
    def __init__(self, port, controller: MotionController, monitor: ObstacleMonitor = None,
                 clock: Callable[[], float] = None, sample_ms: int = None,
                 loop_period: float = None):
        self.port = port
        self.clock = clock or _millis
        self.sample_ms = sample_ms if sample_ms is not None else config.OBSTACLE_SAMPLE_MS
        self.loop_period = loop_period if loop_period is not None else config.LOOP_PERIOD_SEC
        self.controller = controller
        self.monitor = monitor
        controller.emit = self.emit_line
        if monitor is not None:
            monitor.emit = self.emit_line
        self._rx = bytearray()
        self._last_sample: Optional[float] = None
        self._stop = threading.Event()

    # ---- serial ----
    def emit_line(self, line: str) -> None:
        try:
            self.port.write((line + "\n").encode("ascii", errors="replace"))
        except (serial.SerialException, OSError) as e:
            print(f"[device] write failed: {e}", flush=True)

    def _read_lines(self):
        try:
            waiting = self.port.in_waiting
            if waiting:
                self._rx.extend(self.port.read(waiting))
        except (serial.SerialException, OSError) as e:
            print(f"[device] read failed: {e}", flush=True)
            return []
        lines = []
        while b"\n" in self._rx:
            raw, _, rest = self._rx.partition(b"\n")
            self._rx = bytearray(rest)
            text = raw.decode(errors="replace").strip()
            if text:
                lines.append(text)
        return lines

    # ---- loop ----
    def boot(self) -> None:
        self.controller.reset_state()
        self.controller.motors.stop()
        if self.monitor is not None:
            self.monitor.reset()
        self.controller.calibrate_level()
        self.emit_line("Robot ready")

    def tick(self) -> None:
        for line in self._read_lines():
            self.controller.handle_line(line)

        now = self.clock()
        if self.monitor is not None and (self._last_sample is None or now - self._last_sample >= self.sample_ms):
            self._last_sample = now
            if self.monitor.sample() is not None:
                self.controller.on_obstacle(self.monitor.is_latched)

        self.controller.tick()

    def run(self) -> None:
        """Tick until stop() is called."""
        self.boot()
        while not self._stop.is_set():
            self.tick()
            time.sleep(self.loop_period)
        self.controller.motors.stop()

    def stop(self) -> None:
        self._stop.set()
