"""
delivery.py — multi-table delivery run.

Flow:
1) Plan the whole route (origin -> each table in order -> origin) up front.
   An unreachable table aborts before any command is sent.
2) Drive leg by leg. On arrival: switch the table's notification LED on and
   wait for confirm_delivery() (or the auto-confirm timeout).
3) On confirmation: LED off, continue; the last leg returns to the origin.

cancel() is cooperative: it is seen between segments and while waiting for a
confirmation, never in the middle of a segment's wait.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from . import codec
from .context import RobotContext
from .errors import UnreachableTarget
from .pathfinder import ROBOT_START_POSITION, TABLE_POSITIONS, AStarPathfinder, PathResult
from .planner import MotionPlanner
from .pose import Cell


class DeliveryStatus(enum.Enum):
    IDLE = "idle"
    MOVING = "moving"
    ARRIVED = "arrived"
    RETURNING = "returning"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class DeliveryProgress:
    total_steps: int = 0
    completed_steps: int = 0
    current_table_index: int = 0


def table_number(name: str) -> Optional[int]:
    try:
        return int(name.upper().lstrip("T"))
    except ValueError:
        return None


class DeliverySession:
    def __init__(self, context: RobotContext, tables: Sequence[str],
                 planner: MotionPlanner = None,
                 pathfinder: AStarPathfinder = None,
                 table_positions: Dict[str, Cell] = None,
                 start: Cell = None,
                 confirm_timeout: float = None,
                 poll_interval: float = 0.1):
        self.context = context
        self.tables = [t.upper() for t in tables]
        self.planner = planner if planner is not None else MotionPlanner(context)
        self.pathfinder = pathfinder if pathfinder is not None else AStarPathfinder()
        self.table_positions = table_positions if table_positions is not None else TABLE_POSITIONS
        self.start_cell = tuple(start) if start is not None else ROBOT_START_POSITION
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval

        self.status = DeliveryStatus.IDLE
        self.progress = DeliveryProgress()
        self.current_table: Optional[str] = None
        self.route: Optional[PathResult] = None
        self.on_status: List[Callable[["DeliverySession"], None]] = []

        self._cancel = threading.Event()
        self._confirmed = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ---- planning ----
    def plan(self) -> PathResult:
        """Route for all tables. Raises UnreachableTarget naming the first bad stop."""
        for name in self.tables:
            if name not in self.table_positions:
                raise UnreachableTarget(name, message="unknown table")
        stops = [self.table_positions[name] for name in self.tables]
        result = self.pathfinder.find_route(self.start_cell, stops, names=self.tables)
        if not result.success:
            if result.failed_stop == self.start_cell and len(result.stop_indices) == len(stops):
                raise UnreachableTarget("start position", self.start_cell, result.message)
            name = self.tables[len(result.stop_indices)]
            raise UnreachableTarget(name, result.failed_stop, result.message)
        self.route = result
        return result

    # ---- control ----
    @property
    def awaiting_confirmation(self) -> bool:
        return self.status is DeliveryStatus.ARRIVED and not self._confirmed.is_set()

    def confirm_delivery(self) -> None:
        self._confirmed.set()

    def cancel(self) -> None:
        self._cancel.set()
        self._confirmed.set()

    def start(self) -> threading.Thread:
        """Run in a background thread; planning errors still surface here."""
        if self._thread is not None and self._thread.is_alive():
            print("[delivery] already running, skipping", flush=True)
            return self._thread
        self.plan()
        self._thread = threading.Thread(target=self.run, name="DeliverySession", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    # ---- execution ----
    def run(self) -> DeliveryStatus:
        route = self.route or self.plan()
        self.progress = DeliveryProgress(total_steps=len(route.path) - 1)
        print(f"[delivery] {route.message}: {route.path}", flush=True)

        bounds = [0] + route.stop_indices + [len(route.path) - 1]
        for leg_index in range(len(bounds) - 1):
            leg = route.path[bounds[leg_index]:bounds[leg_index + 1] + 1]
            returning = leg_index == len(self.tables)
            self._set_status(DeliveryStatus.RETURNING if returning else DeliveryStatus.MOVING)
            self.progress.current_table_index = leg_index

            if not self.planner.execute_path(leg, cancel=self._cancel, on_step=self._on_step):
                return self._finish_cancelled()
            if returning:
                break
            if not self._arrive(self.tables[leg_index]):
                return self._finish_cancelled()

        self.current_table = None
        self._set_status(DeliveryStatus.COMPLETE)
        print("[delivery] complete", flush=True)
        return self.status

    def _on_step(self, cell: Cell) -> None:
        self.progress.completed_steps += 1

    def _arrive(self, table: str) -> bool:
        self.current_table = table
        self._confirmed.clear()
        if self._cancel.is_set():
            return False
        number = table_number(table)
        led = number in codec.TABLE_IDS
        if led:
            self.planner.table_arrived(number)
        self._set_status(DeliveryStatus.ARRIVED)
        print(f"[delivery] arrived at {table}, waiting for confirmation", flush=True)

        waited = 0.0
        while not self._confirmed.wait(self.poll_interval):
            waited += self.poll_interval
            if self.confirm_timeout is not None and waited >= self.confirm_timeout:
                print(f"[delivery] auto-confirming {table}", flush=True)
                break
        if self._cancel.is_set():
            return False

        if led:
            self.planner.table_received(number)
        print(f"[delivery] {table} delivered", flush=True)
        self.current_table = None
        return True

    def _finish_cancelled(self) -> DeliveryStatus:
        if self._cancel.is_set():
            self.planner.stop()
            self._set_status(DeliveryStatus.CANCELLED)
            print("[delivery] cancelled", flush=True)
        else:
            self._set_status(DeliveryStatus.FAILED)
            print("[delivery] planner busy, delivery not run", flush=True)
        return self.status

    def _set_status(self, status: DeliveryStatus) -> None:
        self.status = status
        for callback in list(self.on_status):
            try:
                callback(self)
            except Exception as e:
                print(f"[delivery] status callback error: {e}", flush=True)
