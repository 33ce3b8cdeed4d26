"""
pose.py — the robot's belief of its own grid pose.

The pose is advanced optimistically by the planner right after a command is
issued; nothing here ever looks at device telemetry.

Grid frame: x grows east, y grows south (row 0 is the far wall), so N is
(0, -1).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from . import config

Cell = Tuple[int, int]


class Direction(enum.Enum):
    N = "N"
    E = "E"
    S = "S"
    W = "W"

    @property
    def index(self) -> int:
        return ORDER.index(self)

    @property
    def delta(self) -> Cell:
        return _DELTAS[self]


ORDER = [Direction.N, Direction.E, Direction.S, Direction.W]

_DELTAS = {
    Direction.N: (0, -1),
    Direction.E: (1, 0),
    Direction.S: (0, 1),
    Direction.W: (-1, 0),
}


@dataclass(frozen=True)
class Pose:
    x: int
    y: int
    facing: Direction

    @property
    def cell(self) -> Cell:
        return (self.x, self.y)


def direction_from_delta(dx: int, dy: int) -> Optional[Direction]:
    """Map a step to a cardinal direction; None for (0, 0). x dominates."""
    if dx > 0:
        return Direction.E
    if dx < 0:
        return Direction.W
    if dy > 0:
        return Direction.S
    if dy < 0:
        return Direction.N
    return None


def turn_angle(current: Direction, target: Direction) -> int:
    """Minimal signed turn in degrees, one of -180, -90, 0, 90."""
    return (((target.index - current.index + 2) % 4) - 2) * 90


def rotate(facing: Direction, angle: int) -> Direction:
    if angle % 90 != 0:
        raise ValueError(f"turn angle must be a multiple of 90, got {angle}")
    return ORDER[(facing.index + angle // 90) % 4]


class PoseModel:
    """Mutable pose holder. Callers read a snapshot before issuing a command."""

    def __init__(self, x: int = None, y: int = None, facing: Direction = None,
                 width: int = None, height: int = None):
        self.width = width if width is not None else config.GRID_WIDTH
        self.height = height if height is not None else config.GRID_HEIGHT
        self._pose = Pose(
            x if x is not None else config.ORIGIN_X,
            y if y is not None else config.ORIGIN_Y,
            facing if facing is not None else Direction(config.ORIGIN_FACING),
        )

    def current(self) -> Pose:
        return self._pose

    def reset(self, pose: Pose) -> None:
        self._pose = pose

    def apply_move(self, direction: Direction) -> Pose:
        dx, dy = direction.delta
        # Clamped at the grid boundary
        x = min(self.width - 1, max(0, self._pose.x + dx))
        y = min(self.height - 1, max(0, self._pose.y + dy))
        self._pose = Pose(x, y, self._pose.facing)
        return self._pose

    def apply_turn(self, angle: int) -> Pose:
        self._pose = Pose(self._pose.x, self._pose.y, rotate(self._pose.facing, angle))
        return self._pose
