"""
config.py — tunable constants, overridable through MESAMATE_* environment vars.

Values are read once at import. Every class that uses them also accepts an
explicit constructor argument, which wins over the environment.
"""

from __future__ import annotations

import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ================== LINK ==================

# No auto-detection: the port must be given explicitly (or "sim://")
PORT = os.environ.get("MESAMATE_PORT", "/dev/ttyACM0")
# Link speed must match the firmware build; 9600 is what the host has shipped with
BAUD = _env_int("MESAMATE_BAUD", 9600)
WRITE_TIMEOUT = _env_float("MESAMATE_WRITE_TIMEOUT", 5.0)      # seconds
READ_TIMEOUT = _env_float("MESAMATE_READ_TIMEOUT", 0.2)        # seconds
SETTLE_SEC = _env_float("MESAMATE_SETTLE_SEC", 3.0)            # device resets on open

# ================== MOTION ==================

# 24 inches in 6 seconds, 90 degrees in 500 ms
INCHES_PER_SECOND = _env_float("MESAMATE_INCHES_PER_SECOND", 4.0)
DEGREES_PER_SECOND = _env_float("MESAMATE_DEGREES_PER_SECOND", 180.0)
BASE_SPEED = _env_int("MESAMATE_BASE_SPEED", 150)
PRECISION_SPEED = _env_int("MESAMATE_PRECISION_SPEED", 100)

GRID_UNIT_INCHES = _env_float("MESAMATE_GRID_UNIT_INCHES", 24.0)
WAIT_BUFFER_SEC = _env_float("MESAMATE_WAIT_BUFFER_SEC", 0.5)
LEGACY_TURN_SEC = _env_float("MESAMATE_LEGACY_TURN_SEC", 0.5)
AUTO_RESET_ON_BLOCKED = _env_bool("MESAMATE_AUTO_RESET", True)

# ================== GRID ==================

GRID_WIDTH = _env_int("MESAMATE_GRID_WIDTH", 5)
GRID_HEIGHT = _env_int("MESAMATE_GRID_HEIGHT", 5)
ORIGIN_X = _env_int("MESAMATE_ORIGIN_X", 2)
ORIGIN_Y = _env_int("MESAMATE_ORIGIN_Y", 4)
ORIGIN_FACING = os.environ.get("MESAMATE_ORIGIN_FACING", "N").upper()

# ================== FIRMWARE ==================

OBSTACLE_TRIGGER_CM = _env_float("MESAMATE_OBSTACLE_TRIGGER_CM", 20.0)
OBSTACLE_CLEAR_MARGIN_CM = _env_float("MESAMATE_OBSTACLE_CLEAR_MARGIN_CM", 5.0)
OBSTACLE_DEBOUNCE = _env_int("MESAMATE_OBSTACLE_DEBOUNCE", 3)
OBSTACLE_SAMPLES = _env_int("MESAMATE_OBSTACLE_SAMPLES", 5)
# one ping per sampling tick, rotating through the sensors
OBSTACLE_SAMPLE_MS = _env_int("MESAMATE_OBSTACLE_SAMPLE_MS", 20)
# ~68 cm of echo; anything farther is out of range
ECHO_TIMEOUT_US = _env_int("MESAMATE_ECHO_TIMEOUT_US", 4000)

TILT_KP = _env_float("MESAMATE_TILT_KP", 40.0)
TILT_DEADBAND = _env_float("MESAMATE_TILT_DEADBAND", 0.02)     # g
TILT_MAX_CORRECTION = _env_int("MESAMATE_TILT_MAX_CORRECTION", 20)
MIN_PWM = _env_int("MESAMATE_MIN_PWM", 60)
MAX_PWM = _env_int("MESAMATE_MAX_PWM", 255)

LOOP_PERIOD_SEC = _env_float("MESAMATE_LOOP_PERIOD_SEC", 0.005)
DEVICE_PORT = os.environ.get("MESAMATE_DEVICE_PORT", "/dev/serial0")
