"""
planner.py — turns a grid path into turn/move commands, cell by cell.

Each primitive is sent without waiting for the device; the planner then waits
out its own estimate (calibrated duration plus a fixed buffer) before it sends
the next one. Device completion telemetry is never awaited. Send failures are
logged by the link and ignored here: the device rejects overlapping commands
on its own.

Usage:
  planner = MotionPlanner(context)
  planner.execute_path([(2, 4), (2, 3), (3, 3)])
"""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional, Sequence

from . import codec, config
from .codec import Move, MotionPrimitive, Turn
from .context import RobotContext
from .pose import Cell, Direction, Pose, direction_from_delta, rotate, turn_angle


def segment_primitives(facing: Direction, current: Cell, nxt: Cell,
                       grid_unit_inches: float) -> Optional[List[MotionPrimitive]]:
    """Primitives for one adjacent step; [] for a zero step, None if not adjacent."""
    dx = nxt[0] - current[0]
    dy = nxt[1] - current[1]
    if (dx, dy) == (0, 0):
        return []
    if abs(dx) + abs(dy) != 1:
        return None
    desired = direction_from_delta(dx, dy)
    angle = turn_angle(facing, desired)
    out: List[MotionPrimitive] = []
    if angle != 0:
        out.append(Turn(angle))
    out.append(Move(grid_unit_inches))
    return out


class MotionPlanner:
    def __init__(self, context: RobotContext,
                 grid_unit_inches: float = None,
                 wait_buffer: float = None,
                 legacy_turn_sec: float = None,
                 poll_interval: float = 0.05,
                 sleep: Callable[[float], None] = None,
                 clock: Callable[[], float] = None):
        self.context = context
        self.grid_unit_inches = grid_unit_inches if grid_unit_inches is not None else config.GRID_UNIT_INCHES
        self.wait_buffer = wait_buffer if wait_buffer is not None else config.WAIT_BUFFER_SEC
        self.legacy_turn_sec = legacy_turn_sec if legacy_turn_sec is not None else config.LEGACY_TURN_SEC
        self.poll_interval = poll_interval
        self._sleep = sleep or time.sleep
        self._clock = clock or time.monotonic
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    # ---- planning (no side effects) ----
    def plan_path(self, path: Sequence[Cell], pose: Pose = None) -> List[List[MotionPrimitive]]:
        """Primitives per segment, starting from `pose` (default: current pose)."""
        facing = (pose or self.context.pose.current()).facing
        segments: List[List[MotionPrimitive]] = []
        for cur, nxt in zip(path, path[1:]):
            prims = segment_primitives(facing, tuple(cur), tuple(nxt), self.grid_unit_inches)
            if not prims:
                continue
            for p in prims:
                if isinstance(p, Turn):
                    facing = rotate(facing, p.angle_degrees)
            segments.append(prims)
        return segments

    # ---- primitive issue (non-blocking) ----
    def move_distance(self, inches: float) -> float:
        """Send MOVE_DISTANCE, advance the pose, return the expected duration in seconds."""
        if inches <= 0:
            print(f"[planner] Invalid distance: {inches}", flush=True)
            return 0.0
        self.context.link.send(codec.encode_move(inches))
        cells = int(round(inches / self.grid_unit_inches))
        pose = self.context.pose
        for _ in range(cells):
            pose.apply_move(pose.current().facing)
        expected = self.context.calibration.move_seconds(inches)
        print(f"[planner] Moving {inches:.2f} in, expected {expected * 1000:.0f} ms, pose {pose.current()}",
              flush=True)
        return expected

    def turn_angle(self, degrees: float) -> float:
        """Send TURN_ANGLE, rotate the pose, return the expected duration in seconds."""
        if degrees == 0:
            print("[planner] No turn needed", flush=True)
            return 0.0
        self.context.link.send(codec.encode_turn(degrees))
        if degrees % 90 == 0:
            self.context.pose.apply_turn(int(degrees))
        else:
            print(f"[planner] {degrees} deg is off-grid; facing not tracked", flush=True)
        expected = self.context.calibration.turn_seconds(degrees)
        print(f"[planner] Turning {degrees:.1f} deg, expected {expected * 1000:.0f} ms, "
              f"pose {self.context.pose.current()}", flush=True)
        return expected

    def issue(self, primitive: MotionPrimitive) -> float:
        if isinstance(primitive, Turn):
            return self.turn_angle(primitive.angle_degrees)
        return self.move_distance(primitive.distance_inches)

    # ---- waiting ----
    def wait(self, seconds: float) -> None:
        """Sleep `seconds` of unobstructed time; the countdown halts while obstructed."""
        remaining = seconds
        last = self._clock()
        while remaining > 0:
            self._sleep(min(self.poll_interval, remaining))
            now = self._clock()
            if not self.context.obstructed:
                remaining -= now - last
            last = now

    # ---- sequences ----
    def execute_path(self, path: Sequence[Cell], cancel: threading.Event = None,
                     on_step: Callable[[Cell], None] = None) -> bool:
        """Drive along `path`. Returns False if busy or cancelled, True when done.

        `on_step` is called with the target cell after each segment's wait.
        """
        if not self._busy.acquire(blocking=False):
            print("[planner] path already in progress, skipping", flush=True)
            return False
        try:
            for cur, nxt in zip(path, path[1:]):
                if cancel is not None and cancel.is_set():
                    print("[planner] cancelled", flush=True)
                    return False
                facing = self.context.pose.current().facing
                prims = segment_primitives(facing, tuple(cur), tuple(nxt), self.grid_unit_inches)
                if prims is None:
                    print(f"[planner] WARN: non-adjacent step {cur}->{nxt}, skipping", flush=True)
                    continue
                print(f"[planner] Moving from {tuple(cur)} to {tuple(nxt)}", flush=True)
                for prim in prims:
                    self.wait(self.issue(prim) + self.wait_buffer)
                if on_step is not None and prims:
                    on_step(tuple(nxt))
            return True
        finally:
            self._busy.release()

    def execute_sequence(self, primitives: Sequence[MotionPrimitive], cancel: threading.Event = None) -> bool:
        if not self._busy.acquire(blocking=False):
            print("[planner] sequence already in progress, skipping", flush=True)
            return False
        try:
            for prim in primitives:
                if cancel is not None and cancel.is_set():
                    print("[planner] cancelled", flush=True)
                    return False
                print(f"[planner] Executing precision command: {prim}", flush=True)
                self.wait(self.issue(prim) + self.wait_buffer)
            return True
        finally:
            self._busy.release()

    def move_to_position(self, x: int, y: int) -> bool:
        """Face the dominant axis towards (x, y) and drive the straight-line distance."""
        pose = self.context.pose.current()
        dx, dy = x - pose.x, y - pose.y
        print(f"[planner] Moving from ({pose.x}, {pose.y}) to ({x}, {y})", flush=True)
        if (dx, dy) == (0, 0):
            return True
        if abs(dx) > abs(dy):
            desired = Direction.E if dx > 0 else Direction.W
        else:
            desired = Direction.S if dy > 0 else Direction.N
        prims: List[MotionPrimitive] = []
        angle = turn_angle(pose.facing, desired)
        if angle != 0:
            prims.append(Turn(angle))
        prims.append(Move((dx * dx + dy * dy) ** 0.5 * self.grid_unit_inches))
        return self.execute_sequence(prims)

    # ---- legacy fixed-duration primitives ----
    def move_forward(self, duration: float = 1.0) -> None:
        self.context.link.send(codec.FORWARD)
        self._sleep(duration)
        self.context.link.send(codec.STOP)
        pose = self.context.pose
        pose.apply_move(pose.current().facing)

    def turn_left(self) -> None:
        self.context.link.send(codec.LEFT)
        self._sleep(self.legacy_turn_sec)
        self.context.link.send(codec.STOP)
        self.context.pose.apply_turn(-90)

    def turn_right(self) -> None:
        self.context.link.send(codec.RIGHT)
        self._sleep(self.legacy_turn_sec)
        self.context.link.send(codec.STOP)
        self.context.pose.apply_turn(90)

    def stop(self) -> bool:
        return self.context.link.send(codec.STOP)

    def reset(self) -> bool:
        """Clear a stuck device state."""
        print("[planner] Resetting device state...", flush=True)
        ok = self.context.link.send(codec.RESET)
        self._sleep(0.1)
        return ok

    # ---- notification LEDs ----
    def table_arrived(self, table: int) -> bool:
        if table not in codec.TABLE_IDS:
            print(f"[planner] Invalid table number: {table}", flush=True)
            return False
        return self.context.link.send(codec.encode_table(table, arrived=True))

    def table_received(self, table: int) -> bool:
        if table not in codec.TABLE_IDS:
            print(f"[planner] Invalid table number: {table}", flush=True)
            return False
        return self.context.link.send(codec.encode_table(table, arrived=False))
