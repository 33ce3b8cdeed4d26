"""
link.py — serial link to the robot with a reader thread and line framing.

Writes are bounded by pyserial's write_timeout; a failed or timed-out write is
logged and reported as False, never raised. While the link is down, send()
is a logged no-op so callers keep running without a device.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import serial
from serial.tools import list_ports as _list_ports

from . import codec, config
from .errors import SendTimeout, TransportUnavailable


@dataclass(frozen=True)
class Connected:
    port: str


@dataclass(frozen=True)
class Disconnected:
    port: str
    reason: str = ""


Listener = Callable[[object], None]


def list_ports() -> List[str]:
    """Return device paths of the serial ports pyserial can see."""
    return [p.device for p in _list_ports.comports()]


def _default_port_factory(port: str, baud: int, timeout: float, write_timeout: float):
    # exclusive open on POSIX to prevent multiple access to the same port
    return serial.Serial(port, baudrate=baud, timeout=timeout,
                         write_timeout=write_timeout, exclusive=True)


class SerialLink:
    """Line-oriented serial connection. One writer (the planner), one reader thread."""

    def __init__(self, baud: int = None, write_timeout: float = None,
                 read_timeout: float = None, settle_sec: float = None,
                 port_factory=None):
        self.baud = baud if baud is not None else config.BAUD
        self.write_timeout = write_timeout if write_timeout is not None else config.WRITE_TIMEOUT
        self.read_timeout = read_timeout if read_timeout is not None else config.READ_TIMEOUT
        self.settle_sec = settle_sec if settle_sec is not None else config.SETTLE_SEC
        self._port_factory = port_factory or _default_port_factory

        self.port: Optional[str] = None
        self._ser = None
        self._connected = False
        self._reader: Optional[threading.Thread] = None
        self._reader_running = False
        self._listeners: List[Listener] = []
        self._listeners_lock = threading.Lock()
        # the reader thread sends RESET on BLOCKED while callers send commands
        self._write_lock = threading.Lock()

    # ---- connection ----
    @property
    def is_connected(self) -> bool:
        return self._connected

    def open_at(self, port: str) -> Connected:
        """Open `port` and start the reader thread. Raises TransportUnavailable."""
        if self._connected and self.port == port:
            return Connected(port)
        self.close(send_stop=False)
        self.port = port
        print(f"[link] Opening {port} @ {self.baud}...", flush=True)
        try:
            self._ser = self._port_factory(port, self.baud, self.read_timeout, self.write_timeout)
        except (serial.SerialException, OSError, ValueError) as e:
            self._ser = None
            print(f"[link] Failed to open serial: {e}", flush=True)
            raise TransportUnavailable(f"{port}: {e}") from e
        # Arduino-class boards reset on open; give it time
        if self.settle_sec > 0:
            time.sleep(self.settle_sec)
        try:
            self._ser.reset_input_buffer()
        except Exception:
            pass
        self._connected = True
        self._start_reader()
        print(f"[link] Connected to {port}", flush=True)
        event = Connected(port)
        self._dispatch(event)
        return event

    def reconnect(self) -> bool:
        """Reopen the last port. Returns False if there is none or it fails."""
        if self.port is None:
            return False
        port = self.port
        self.close(send_stop=False)
        try:
            self.open_at(port)
        except TransportUnavailable:
            return False
        return True

    def close(self, send_stop: bool = True) -> None:
        """Stop the reader and close the port (idempotent)."""
        ser = self._ser
        if ser is None and not self._reader_running:
            return
        if send_stop and self._connected:
            self.send(codec.STOP)
        self._reader_running = False
        self._connected = False
        self._ser = None
        try:
            if ser is not None:
                ser.close()
        except Exception as e:
            print(f"[link] close error: {e}", flush=True)
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=1.0)
        self._reader = None
        print("[link] Serial closed.", flush=True)

    # ---- writing ----
    def send(self, line: str) -> bool:
        """Write one line. Returns True if written; never raises."""
        ser = self._ser
        if ser is None or not self._connected:
            print(f"[link] not connected, command not sent: {line}", flush=True)
            return False
        try:
            self._write(ser, line)
        except SendTimeout as e:
            print(f"[link] Command timeout: {line} ({e})", flush=True)
            return False
        except (serial.SerialException, OSError) as e:
            print(f"[link] Error sending command {line}: {e}", flush=True)
            return False
        print("TX:", line, flush=True)
        return True

    def _write(self, ser, line: str) -> None:
        with self._write_lock:
            try:
                ser.write((line + "\n").encode("ascii"))
                ser.flush()
            except serial.SerialTimeoutException as e:
                raise SendTimeout(str(e)) from e

    # ---- reading ----
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback for decoded events; returns an unsubscribe function."""
        with self._listeners_lock:
            self._listeners.append(listener)

        def _unsubscribe():
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)
        return _unsubscribe

    def _dispatch(self, event) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                print(f"[link] listener error: {e}", flush=True)

    def _start_reader(self) -> None:
        self._reader_running = True
        self._reader = threading.Thread(target=self._reader_loop, name="SerialLinkReader", daemon=True)
        self._reader.start()

    def _reader_loop(self) -> None:
        """Background thread: read lines with timeout, decode, hand to listeners."""
        ser = self._ser
        while self._reader_running and ser is not None:
            try:
                # Blocking read with timeout
                line_bytes = ser.readline()
            except (serial.SerialException, OSError, TypeError) as e:
                if not self._reader_running:
                    break
                self._lost(str(e))
                break
            if not line_bytes:
                time.sleep(0.005)
                continue
            line = line_bytes.decode(errors="replace").strip()
            if not line:
                continue
            print("RX:", line, flush=True)
            self._dispatch(codec.decode_event(line))

    def _lost(self, reason: str) -> None:
        port = self.port or ""
        print(f"[link] Disconnected from {port}: {reason}", flush=True)
        self._connected = False
        self._reader_running = False
        ser, self._ser = self._ser, None
        try:
            if ser is not None:
                ser.close()
        except Exception:
            pass
        self._dispatch(Disconnected(port, reason))
