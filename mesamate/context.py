"""
context.py — the explicitly passed robot context.

Owns the pose belief, the motion calibration and the link. Telemetry from the
link is logged and fanned out to UI listeners; it also drives the obstruction
flag the planner consults between and during waits. Completion events are
informational only.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional

from . import codec, config
from .calibration import MotionCalibration
from .errors import TransportUnavailable
from .link import Connected, Disconnected, SerialLink
from .pose import PoseModel


class RobotContext:
    def __init__(self, link: SerialLink = None, pose: PoseModel = None,
                 calibration: MotionCalibration = None,
                 auto_reset_on_blocked: bool = None):
        self.link = link if link is not None else SerialLink()
        self.pose = pose if pose is not None else PoseModel()
        self.calibration = calibration if calibration is not None else MotionCalibration()
        self.auto_reset_on_blocked = (auto_reset_on_blocked if auto_reset_on_blocked is not None
                                      else config.AUTO_RESET_ON_BLOCKED)

        self._obstructed = threading.Event()
        self._listeners: List[Callable[[object], None]] = []
        self.last_completion: Optional[str] = None
        self._unsubscribe = self.link.subscribe(self._on_event)

    # ---- connection ----
    def connect(self, port: str) -> bool:
        """Open the link; a missing device is logged, not raised."""
        try:
            self.link.open_at(port)
        except TransportUnavailable as e:
            print(f"[context] device unavailable, continuing without it: {e}", flush=True)
            return False
        return True

    @property
    def is_connected(self) -> bool:
        return self.link.is_connected

    def close(self) -> None:
        self.link.close()

    # ---- events ----
    def add_listener(self, listener: Callable[[object], None]) -> None:
        """UI sink: receives obstacle, blocked and connection events."""
        self._listeners.append(listener)

    @property
    def obstructed(self) -> bool:
        return self._obstructed.is_set()

    def _on_event(self, event) -> None:
        if codec.is_obstruction(event):
            self._obstructed.set()
        elif codec.is_clearance(event):
            self._obstructed.clear()

        if isinstance(event, codec.MovementComplete):
            self.last_completion = event.status
            print(f"[context] Movement completed with status: {event.status}", flush=True)
        elif isinstance(event, codec.Blocked):
            print(f"[context] device reports blocked ({event.reason})", flush=True)
            if self.auto_reset_on_blocked:
                print("[context] sending RESET to clear stuck state", flush=True)
                self.link.send(codec.RESET)
        elif isinstance(event, Disconnected):
            self._obstructed.clear()

        if isinstance(event, (codec.ObstacleDetected, codec.ObstacleCleared,
                              codec.MovementPaused, codec.MovementResumed,
                              codec.Blocked, Connected, Disconnected)):
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    print(f"[context] listener error: {e}", flush=True)
