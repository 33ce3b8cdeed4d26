"""
calibration.py — motor calibration shared by duration estimates (host) and
PWM selection (device).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass

from . import config


@dataclass
class MotionCalibration:
    inches_per_second: float = config.INCHES_PER_SECOND
    degrees_per_second: float = config.DEGREES_PER_SECOND
    base_speed: int = config.BASE_SPEED
    precision_speed: int = config.PRECISION_SPEED

    def move_seconds(self, inches: float) -> float:
        return abs(inches) / self.inches_per_second

    def turn_seconds(self, degrees: float) -> float:
        return abs(degrees) / self.degrees_per_second

    def update(self, **changes) -> "MotionCalibration":
        """Update fields in place. Unknown names and non-positive values raise ValueError."""
        names = {f.name for f in dataclasses.fields(self)}
        for key, value in changes.items():
            if key not in names:
                raise ValueError(f"unknown calibration field: {key}")
            if value is None or value <= 0:
                raise ValueError(f"calibration {key} must be > 0, got {value}")
        for key, value in changes.items():
            setattr(self, key, type(getattr(self, key))(value))
        print(f"[calibration] updated: {self}", flush=True)
        return self

    def snapshot(self) -> "MotionCalibration":
        return dataclasses.replace(self)
