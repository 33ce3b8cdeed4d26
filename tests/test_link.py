import queue
import threading
import time

import pytest
import serial

from mesamate import codec
from mesamate.errors import TransportUnavailable
from mesamate.link import Connected, Disconnected, SerialLink


class FakeSerial:
    def __init__(self, fail_write=None):
        self.written = []
        self.incoming = queue.Queue()
        self.fail_write = fail_write
        self.closed = False

    def write(self, data):
        if self.fail_write is not None:
            raise self.fail_write
        self.written.append(data)
        return len(data)

    def flush(self):
        pass

    def readline(self):
        if self.closed:
            raise serial.SerialException("port closed")
        try:
            return self.incoming.get(timeout=0.02)
        except queue.Empty:
            return b""

    def reset_input_buffer(self):
        pass

    def close(self):
        self.closed = True


def make_link(port):
    return SerialLink(baud=9600, write_timeout=0.1, read_timeout=0.02, settle_sec=0,
                      port_factory=lambda *args: port)


def test_send_writes_newline_terminated_ascii():
    port = FakeSerial()
    link = make_link(port)
    link.open_at("/dev/fake")
    try:
        assert link.send("MOVE_DISTANCE:24.00") is True
        assert port.written == [b"MOVE_DISTANCE:24.00\n"]
    finally:
        link.close()
    # close sends STOP first
    assert port.written[-1] == b"STOP\n"
    assert port.closed


def test_send_while_disconnected_returns_false():
    link = make_link(FakeSerial())
    assert link.send("STOP") is False


def test_write_timeout_is_absorbed():
    port = FakeSerial(fail_write=serial.SerialTimeoutException("Write timeout"))
    link = make_link(port)
    link.open_at("/dev/fake")
    try:
        assert link.send("FORWARD") is False
        assert link.is_connected
    finally:
        link.close(send_stop=False)


def test_serial_error_on_write_is_absorbed():
    port = FakeSerial(fail_write=OSError("I/O error"))
    link = make_link(port)
    link.open_at("/dev/fake")
    try:
        assert link.send("FORWARD") is False
    finally:
        link.close(send_stop=False)


def test_open_failure_raises_transport_unavailable():
    def factory(*args):
        raise serial.SerialException("could not open port /dev/nope")

    link = SerialLink(settle_sec=0, port_factory=factory)
    with pytest.raises(TransportUnavailable):
        link.open_at("/dev/nope")
    assert not link.is_connected


def test_reader_decodes_and_dispatches():
    port = FakeSerial()
    link = make_link(port)
    events = []
    got_obstacle = threading.Event()

    def listener(event):
        events.append(event)
        if isinstance(event, codec.ObstacleDetected):
            got_obstacle.set()

    unsubscribe = link.subscribe(listener)
    link.open_at("/dev/fake")
    try:
        port.incoming.put(b"RECEIVED:MOVE_DISTANCE:24.00\r\n")
        port.incoming.put(b"\n")
        port.incoming.put(b"OBSTACLE:DETECTED\n")
        assert got_obstacle.wait(2.0)
    finally:
        unsubscribe()
        link.close(send_stop=False)
    assert events == [Connected("/dev/fake"), codec.ReceivedEcho("MOVE_DISTANCE:24.00"),
                      codec.ObstacleDetected()]


def test_lost_port_dispatches_disconnected():
    port = FakeSerial()
    link = make_link(port)
    lost = threading.Event()
    link.subscribe(lambda e: lost.set() if isinstance(e, Disconnected) else None)
    link.open_at("/dev/fake")
    port.closed = True
    assert lost.wait(2.0)
    assert not link.is_connected
    assert link.send("STOP") is False


def test_reconnect_reopens_last_port():
    ports = [FakeSerial(), FakeSerial()]
    link = SerialLink(settle_sec=0, read_timeout=0.02, port_factory=lambda *args: ports.pop(0))
    assert link.reconnect() is False
    link.open_at("/dev/fake")
    assert link.reconnect() is True
    assert link.is_connected and link.port == "/dev/fake"
    assert ports == []
    link.close(send_stop=False)


class SlowSerial(FakeSerial):
    """A line is in flight from write() until flush(); notes any interleaving."""

    def __init__(self):
        super().__init__()
        self.in_flight = False
        self.interleaved = 0

    def write(self, data):
        if self.in_flight:
            self.interleaved += 1
        self.in_flight = True
        time.sleep(0.001)
        return super().write(data)

    def flush(self):
        time.sleep(0.001)
        self.in_flight = False


def test_concurrent_sends_never_interleave():
    port = SlowSerial()
    link = make_link(port)
    link.open_at("/dev/fake")
    try:
        def _sender(line):
            for _ in range(20):
                link.send(line)

        threads = [threading.Thread(target=_sender, args=(line,)) for line in ("STOP", "RESET")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert port.interleaved == 0
        assert sorted(port.written) == [b"RESET\n"] * 20 + [b"STOP\n"] * 20
    finally:
        link.close(send_stop=False)
