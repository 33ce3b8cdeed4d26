"""
codec.py — line protocol between host and device.

One command or telemetry event per newline-terminated ASCII line.

Host -> device:   MOVE_DISTANCE:<in>  TURN_ANGLE:<deg>  FORWARD LEFT RIGHT STOP
                  RESET  TABLE<n>_ARRIVED  TABLE<n>_RECEIVED
Device -> host:   RECEIVED:<cmd>  MOVEMENT_COMPLETE:<status>  OBSTACLE:DETECTED
                  OBSTACLE:CLEARED  MOVEMENT_PAUSED:OBSTACLE  MOVEMENT_RESUMED
                  BLOCKED:<reason>  plus free-text diagnostics

Both directions are decoded once, here, into closed sets of dataclasses so the
planner and the firmware never compare raw strings.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Union

TABLE_IDS = (1, 2, 3)

MOVE_DISTANCE = "MOVE_DISTANCE"
TURN_ANGLE = "TURN_ANGLE"
FORWARD = "FORWARD"
LEFT = "LEFT"
RIGHT = "RIGHT"
STOP = "STOP"
RESET = "RESET"

_TABLE_RE = re.compile(r"^TABLE(\d+)_(ARRIVED|RECEIVED)$")


# ---------------------------------------------------------------------------
# Motion primitives
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Turn:
    angle_degrees: int

    def __post_init__(self):
        if self.angle_degrees % 90 != 0 or not -180 <= self.angle_degrees <= 180:
            raise ValueError(f"turn must be a multiple of 90 in -180..180, got {self.angle_degrees}")


@dataclass(frozen=True)
class Move:
    distance_inches: float

    def __post_init__(self):
        if not self.distance_inches > 0:
            raise ValueError(f"move distance must be positive, got {self.distance_inches}")


MotionPrimitive = Union[Turn, Move]


# ---------------------------------------------------------------------------
# Host -> device encoding
# ---------------------------------------------------------------------------

def encode_move(inches: float) -> str:
    return f"{MOVE_DISTANCE}:{inches:.2f}"


def encode_turn(degrees: float) -> str:
    return f"{TURN_ANGLE}:{degrees:.1f}"


def encode_primitive(primitive: MotionPrimitive) -> str:
    if isinstance(primitive, Move):
        return encode_move(primitive.distance_inches)
    if isinstance(primitive, Turn):
        return encode_turn(primitive.angle_degrees)
    raise TypeError(f"not a motion primitive: {primitive!r}")


def encode_table(table: int, arrived: bool) -> str:
    if table not in TABLE_IDS:
        raise ValueError(f"invalid table number: {table}")
    return f"TABLE{table}_{'ARRIVED' if arrived else 'RECEIVED'}"


# ---------------------------------------------------------------------------
# Device-side command decoding
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MoveDistance:
    inches: float


@dataclass(frozen=True)
class TurnAngle:
    degrees: float


@dataclass(frozen=True)
class Drive:
    action: str  # FORWARD, LEFT or RIGHT


@dataclass(frozen=True)
class Stop:
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class TableLed:
    table: int
    on: bool


@dataclass(frozen=True)
class Invalid:
    raw: str
    reason: str


Command = Union[MoveDistance, TurnAngle, Drive, Stop, Reset, TableLed, Invalid]


def _parse_value(payload: str):
    try:
        value = float(payload)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def decode_command(line: str) -> Command:
    raw = line.strip()
    head, sep, payload = raw.partition(":")
    head = head.upper()
    if sep:
        if head == MOVE_DISTANCE:
            value = _parse_value(payload)
            if value is None or value <= 0:
                return Invalid(raw, "invalid distance")
            return MoveDistance(value)
        if head == TURN_ANGLE:
            value = _parse_value(payload)
            if value is None:
                return Invalid(raw, "invalid angle")
            return TurnAngle(value)
        return Invalid(raw, "unknown command")
    if head in (FORWARD, LEFT, RIGHT):
        return Drive(head)
    if head == STOP:
        return Stop()
    if head == RESET:
        return Reset()
    m = _TABLE_RE.match(head)
    if m:
        table = int(m.group(1))
        if table not in TABLE_IDS:
            return Invalid(raw, "invalid table")
        return TableLed(table, m.group(2) == "ARRIVED")
    return Invalid(raw, "unknown command")


# ---------------------------------------------------------------------------
# Device -> host telemetry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReceivedEcho:
    command: str


@dataclass(frozen=True)
class MovementComplete:
    status: str


@dataclass(frozen=True)
class ObstacleDetected:
    pass


@dataclass(frozen=True)
class ObstacleCleared:
    pass


@dataclass(frozen=True)
class MovementPaused:
    reason: str = "OBSTACLE"


@dataclass(frozen=True)
class MovementResumed:
    pass


@dataclass(frozen=True)
class Blocked:
    reason: str


@dataclass(frozen=True)
class Unknown:
    raw: str


DeviceEvent = Union[ReceivedEcho, MovementComplete, ObstacleDetected, ObstacleCleared,
                    MovementPaused, MovementResumed, Blocked, Unknown]


def decode_event(line: str) -> DeviceEvent:
    text = line.strip()
    if text == "OBSTACLE:DETECTED":
        return ObstacleDetected()
    if text == "OBSTACLE:CLEARED":
        return ObstacleCleared()
    if text == "MOVEMENT_RESUMED":
        return MovementResumed()
    if text.startswith("MOVEMENT_PAUSED:"):
        return MovementPaused(text.split(":", 1)[1])
    if text.startswith("MOVEMENT_COMPLETE:"):
        return MovementComplete(text.split(":", 1)[1])
    if text.startswith("RECEIVED:"):
        return ReceivedEcho(text.split(":", 1)[1])
    if "BLOCKED" in text or "already moving" in text:
        _, sep, reason = text.partition(":")
        return Blocked(reason if sep else text)
    return Unknown(text)


def encode_event(event: DeviceEvent) -> str:
    """Firmware side: render a telemetry event as a wire line (no newline)."""
    if isinstance(event, ObstacleDetected):
        return "OBSTACLE:DETECTED"
    if isinstance(event, ObstacleCleared):
        return "OBSTACLE:CLEARED"
    if isinstance(event, MovementResumed):
        return "MOVEMENT_RESUMED"
    if isinstance(event, MovementPaused):
        return f"MOVEMENT_PAUSED:{event.reason}"
    if isinstance(event, MovementComplete):
        return f"MOVEMENT_COMPLETE:{event.status}"
    if isinstance(event, ReceivedEcho):
        return f"RECEIVED:{event.command}"
    if isinstance(event, Blocked):
        return f"BLOCKED:{event.reason}"
    if isinstance(event, Unknown):
        return event.raw
    raise TypeError(f"not a device event: {event!r}")


def is_obstruction(event: DeviceEvent) -> bool:
    return isinstance(event, (ObstacleDetected, MovementPaused))


def is_clearance(event: DeviceEvent) -> bool:
    return isinstance(event, (ObstacleCleared, MovementResumed))
