"""
obstacle.py — ultrasonic obstacle monitor with debounce and hysteresis.

sample() takes ONE raw echo timing per call, rotating through the sensors, so
a control tick never waits on more than one ping. Each sensor keeps its last K
readings; once every sensor has a fresh one, a cycle is evaluated:
  - each sensor's distance is the median of its rolling buffer
  - a cycle is a "hit" if ANY sensor is closer than the trigger distance
  - a cycle is "clear" if ALL sensors are beyond trigger + clearance margin
  - the latch engages after N consecutive hit cycles and releases after N
    consecutive clear cycles; cycles inside the margin band count as neither

A ping with no echo (timeout) is stored as out of range: the echo timeout only
covers the distances that matter here.

Only latch transitions produce telemetry, one line each.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional, Sequence

from .. import codec, config

# HC-SR04: speed of sound 0.0343 cm/us, there and back
CM_PER_US = 0.0343 / 2.0
OUT_OF_RANGE_CM = float("inf")


def pulse_to_cm(pulse_us: float) -> float:
    return pulse_us * CM_PER_US


def median(values: Sequence[float]) -> float:
    s = sorted(values)
    n = len(s)
    mid = n // 2
    if n % 2:
        return s[mid]
    return (s[mid - 1] + s[mid]) / 2.0


@dataclass
class ObstacleLatch:
    is_latched: bool = False
    consecutive_hit_count: int = 0
    consecutive_clear_count: int = 0


class ObstacleMonitor:
    def __init__(self, sensors: Sequence, emit: Callable[[str], None] = None,
                 trigger_cm: float = None, clear_margin_cm: float = None,
                 debounce: int = None, samples: int = None):
        self.sensors = list(sensors)
        self.emit = emit
        self.trigger_cm = trigger_cm if trigger_cm is not None else config.OBSTACLE_TRIGGER_CM
        self.clear_margin_cm = clear_margin_cm if clear_margin_cm is not None else config.OBSTACLE_CLEAR_MARGIN_CM
        self.debounce = debounce if debounce is not None else config.OBSTACLE_DEBOUNCE
        self.samples = samples if samples is not None else config.OBSTACLE_SAMPLES
        self.latch = ObstacleLatch()
        self.last_distances: List[float] = []
        self._readings: List[Deque[float]] = []
        self._next = 0
        self.reset()

    @property
    def is_latched(self) -> bool:
        return self.latch.is_latched

    def reset(self) -> None:
        self.latch = ObstacleLatch()
        self._readings = [deque(maxlen=self.samples) for _ in self.sensors]
        self._next = 0

    @staticmethod
    def ping(sensor) -> float:
        """One echo timing in cm; no echo reads as out of range."""
        pulse = sensor.read_pulse_us()
        if pulse is None or pulse <= 0:
            return OUT_OF_RANGE_CM
        return pulse_to_cm(pulse)

    def distances(self) -> List[float]:
        """Median of each sensor's rolling buffer."""
        return [median(r) if r else OUT_OF_RANGE_CM for r in self._readings]

    def sample(self) -> Optional[codec.DeviceEvent]:
        """Ping the next sensor; evaluate a cycle once all sensors are fresh."""
        if not self.sensors:
            return None
        i = self._next
        self._readings[i].append(self.ping(self.sensors[i]))
        self._next = (i + 1) % len(self.sensors)
        if self._next != 0:
            return None
        return self.update(self.distances())

    def update(self, distances: Sequence[float]) -> Optional[codec.DeviceEvent]:
        """Feed one cycle of distances; returns the transition event, if any."""
        self.last_distances = list(distances)
        hit = any(d < self.trigger_cm for d in distances)
        clear = all(d > self.trigger_cm + self.clear_margin_cm for d in distances)
        latch = self.latch

        latch.consecutive_hit_count = latch.consecutive_hit_count + 1 if hit else 0
        latch.consecutive_clear_count = latch.consecutive_clear_count + 1 if clear else 0

        event = None
        if not latch.is_latched and latch.consecutive_hit_count >= self.debounce:
            latch.is_latched = True
            latch.consecutive_clear_count = 0
            event = codec.ObstacleDetected()
            print(f"[obstacle] detected: {self._fmt(distances)}", flush=True)
        elif latch.is_latched and latch.consecutive_clear_count >= self.debounce:
            latch.is_latched = False
            latch.consecutive_hit_count = 0
            event = codec.ObstacleCleared()
            print(f"[obstacle] cleared: {self._fmt(distances)}", flush=True)

        if event is not None and self.emit is not None:
            self.emit(codec.encode_event(event))
        return event

    @staticmethod
    def _fmt(distances: Sequence[float]) -> str:
        return " ".join("--" if d == OUT_OF_RANGE_CM else f"{d:.1f}cm" for d in distances)
