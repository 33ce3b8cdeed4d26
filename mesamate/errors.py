"""
errors.py — exception types shared by host and firmware code.

Communication problems are raised at the transport and absorbed at the
planner/context boundary; only UnreachableTarget reaches the caller.
"""

from __future__ import annotations

from typing import Optional, Tuple


class MesaMateError(Exception):
    """Base class for all robot errors."""


class TransportUnavailable(MesaMateError):
    """The serial endpoint could not be found or opened."""


class SendTimeout(MesaMateError):
    """A write did not finish within the configured write timeout."""


class DeviceBlocked(MesaMateError):
    """The device rejected a command because it is mid-motion."""


class SensorReadFailure(MesaMateError):
    """A sensor read failed (I2C error, no echo, ...)."""


class HardwareUnavailable(MesaMateError):
    """A hardware backend cannot be used on this machine."""


class UnreachableTarget(MesaMateError):
    """No route exists to a delivery stop."""

    def __init__(self, stop: str, cell: Optional[Tuple[int, int]] = None, message: str = ""):
        self.stop = stop
        self.cell = cell
        text = f"Cannot reach {stop}"
        if cell is not None:
            text += f" at {cell}"
        if message:
            text += f": {message}"
        super().__init__(text)
