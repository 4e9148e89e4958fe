"""Tests for the connection manager and the device handle state machine."""

import threading
import time
from unittest.mock import MagicMock

import pytest
import serial

from boardlink.boards import ReplyShape, get_board
from boardlink.errors import (
    BusyError,
    CancelledError,
    DeviceBusyError,
    DeviceConnectionError,
    OperationTimeoutError,
    TransportError,
)
from boardlink.serial.connection import ConnectionManager, HandleState

LINE = ReplyShape("delimited", kind="ack")


class FakeSerial:
    """Fake serial port: queued reply lines, a recorded write log, optional gate."""

    def __init__(self, replies=None, gate=None, write_error=None):
        self._replies = list(replies or [])
        self._gate = gate
        self._write_error = write_error
        self.written = []
        self.closed = False
        self.read_cancelled = False
        self.input_resets = 0

    def write(self, data):
        if self._write_error is not None:
            raise self._write_error
        self.written.append(bytes(data))
        return len(data)

    def flush(self):
        pass

    def read_until(self, expected=b"\n"):
        if self._gate is not None:
            self._gate.wait(0.02)
        if self.closed:
            raise serial.SerialException("Attempting to use a port that is not open")
        if self._replies and (self._gate is None or self._gate.is_set()):
            return self._replies.pop(0)
        time.sleep(0.01)
        return b""

    def read(self, size=1):
        return self.read_until()

    @property
    def in_waiting(self):
        return 0

    def reset_input_buffer(self):
        self.input_resets += 1

    def cancel_read(self):
        self.read_cancelled = True

    def close(self):
        self.closed = True


@pytest.fixture
def board():
    return get_board("arduinoEsp32")


def _manager(fake):
    opener = MagicMock(return_value=fake)
    return ConnectionManager(opener=opener), opener


class TestOpen:
    def test_open_applies_board_parameters(self, board):
        manager, opener = _manager(FakeSerial())
        handle = manager.open(board, "/dev/ttyUSB0")
        assert handle.state is HandleState.READY
        assert handle.board is board
        assert manager.is_open("/dev/ttyUSB0")
        args, kwargs = opener.call_args
        assert args == ("/dev/ttyUSB0", board.serial)
        assert kwargs["baud_rate"] is None

    def test_open_with_baud_override(self, board):
        manager, opener = _manager(FakeSerial())
        manager.open(board, "/dev/ttyUSB0", baud_rate=115200)
        assert opener.call_args[1]["baud_rate"] == 115200

    def test_second_open_on_same_port_is_device_busy(self, board):
        manager, _ = _manager(FakeSerial())
        manager.open(board, "/dev/ttyUSB0")
        with pytest.raises(DeviceBusyError):
            manager.open(board, "/dev/ttyUSB0")

    def test_open_failure_leaves_nothing_behind(self, board):
        opener = MagicMock(side_effect=DeviceConnectionError("No such file", exit_code=2))
        manager = ConnectionManager(opener=opener)
        with pytest.raises(DeviceConnectionError):
            manager.open(board, "/dev/ttyUSB0")
        assert not manager.is_open("/dev/ttyUSB0")
        assert manager.handles() == []

    def test_different_ports_are_independent(self, board):
        manager = ConnectionManager(opener=MagicMock(side_effect=lambda *a, **k: FakeSerial()))
        a = manager.open(board, "/dev/ttyUSB0")
        b = manager.open(board, "/dev/ttyUSB1")
        assert a is not b
        assert len(manager.handles()) == 2


class TestSendReceive:
    def test_send_writes_and_returns_length(self, board):
        fake = FakeSerial()
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        assert manager.send(handle, b"dout 2 HIGH\n") == 12
        assert fake.written == [b"dout 2 HIGH\n"]
        assert handle.state is HandleState.READY

    def test_transact_round_trip(self, board):
        fake = FakeSerial(replies=[b"OK\n"])
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        assert manager.transact(handle, b"mode 2 OUTPUT\n", LINE, timeout=1) == b"OK"
        assert handle.state is HandleState.READY

    def test_transact_without_reply_shape(self, board):
        fake = FakeSerial()
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        assert manager.transact(handle, b"\xf5\x0d\x01", None, timeout=1) is None
        assert fake.written == [b"\xf5\x0d\x01"]

    def test_transact_drops_stale_input_when_asked(self, board):
        fake = FakeSerial(replies=[b"OK\n", b"OK\n"])
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        manager.transact(handle, b"mode 2 OUTPUT\n", LINE, timeout=1)
        assert fake.input_resets == 0
        manager.transact(handle, b"din 4\n", ReplyShape("delimited", kind="bool", flush_input=True), timeout=1)
        assert fake.input_resets == 1

    def test_receive_timeout_leaves_handle_ready(self, board):
        manager, _ = _manager(FakeSerial())
        handle = manager.open(board, "/dev/ttyUSB0")
        with pytest.raises(OperationTimeoutError):
            manager.receive(handle, timeout=0.5, shape=LINE)
        assert handle.state is HandleState.READY
        # next command still goes through
        assert manager.send(handle, b"din 4\n") == 6

    def test_write_failure_closes_handle(self, board):
        fake = FakeSerial(write_error=serial.SerialException("write failed"))
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        with pytest.raises(TransportError):
            manager.send(handle, b"din 4\n")
        assert handle.state is HandleState.DISCONNECTED
        assert fake.closed
        assert not manager.is_open("/dev/ttyUSB0")

    def test_send_on_closed_handle(self, board):
        manager, _ = _manager(FakeSerial())
        handle = manager.open(board, "/dev/ttyUSB0")
        manager.close(handle)
        with pytest.raises(TransportError, match="not connected"):
            manager.send(handle, b"din 4\n")


class TestBusy:
    def test_second_command_while_sending_is_busy(self, board):
        gate = threading.Event()
        fake = FakeSerial(replies=[b"OK\n"], gate=gate)
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")

        result = {}

        def first():
            result["reply"] = manager.transact(handle, b"mode 2 OUTPUT\n", LINE, timeout=5)

        worker = threading.Thread(target=first)
        worker.start()
        deadline = time.monotonic() + 2
        while handle.state is not HandleState.SENDING and time.monotonic() < deadline:
            time.sleep(0.001)
        assert handle.state is HandleState.SENDING

        with pytest.raises(BusyError):
            manager.send(handle, b"dout 2 HIGH\n")

        gate.set()
        worker.join(2)
        assert result["reply"] == b"OK"
        # the rejected command never reached the wire
        assert fake.written == [b"mode 2 OUTPUT\n"]
        assert handle.state is HandleState.READY


class TestReserve:
    def test_reserved_port_cannot_be_opened(self, board):
        manager, opener = _manager(FakeSerial())
        with manager.reserve("/dev/ttyUSB0"):
            assert manager.is_reserved("/dev/ttyUSB0")
            with pytest.raises(DeviceBusyError, match="being flashed"):
                manager.open(board, "/dev/ttyUSB0")
        opener.assert_not_called()
        assert not manager.is_reserved("/dev/ttyUSB0")
        assert manager.open(board, "/dev/ttyUSB0").state is HandleState.READY

    def test_open_port_cannot_be_reserved(self, board):
        manager, _ = _manager(FakeSerial())
        manager.open(board, "/dev/ttyUSB0")
        with pytest.raises(DeviceBusyError, match="open for commands"):
            with manager.reserve("/dev/ttyUSB0"):
                pass

    def test_second_reservation_refused(self, board):
        manager, _ = _manager(FakeSerial())
        with manager.reserve("/dev/ttyUSB0"):
            with pytest.raises(DeviceBusyError):
                with manager.reserve("/dev/ttyUSB0"):
                    pass
            # the failed attempt does not release the first holder
            assert manager.is_reserved("/dev/ttyUSB0")

    def test_released_on_error(self, board):
        manager, _ = _manager(FakeSerial())
        with pytest.raises(RuntimeError):
            with manager.reserve("/dev/ttyUSB0"):
                raise RuntimeError("upload crashed")
        assert not manager.is_reserved("/dev/ttyUSB0")

    def test_open_and_reserve_race_has_one_winner(self, board):
        for _ in range(20):
            manager = ConnectionManager(opener=MagicMock(side_effect=lambda *a, **k: FakeSerial()))
            start = threading.Barrier(2)
            outcome = []
            connect_done = threading.Event()

            def connect():
                start.wait()
                try:
                    manager.open(board, "/dev/ttyUSB0")
                    outcome.append("open")
                except DeviceBusyError:
                    pass
                finally:
                    connect_done.set()

            def flash():
                start.wait()
                try:
                    with manager.reserve("/dev/ttyUSB0"):
                        outcome.append("reserve")
                        connect_done.wait(2)
                except DeviceBusyError:
                    pass

            workers = [threading.Thread(target=connect), threading.Thread(target=flash)]
            for worker in workers:
                worker.start()
            for worker in workers:
                worker.join(2)
            assert len(outcome) == 1, outcome


class TestClose:
    def test_close_is_idempotent(self, board):
        fake = FakeSerial()
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        manager.close(handle)
        manager.close(handle)
        assert handle.state is HandleState.DISCONNECTED
        assert fake.closed
        assert not manager.is_open("/dev/ttyUSB0")

    def test_close_after_transport_failure(self, board):
        fake = FakeSerial(write_error=OSError("Input/output error"))
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        with pytest.raises(TransportError):
            manager.send(handle, b"x\n")
        manager.close(handle)
        assert handle.state is HandleState.DISCONNECTED

    def test_close_error_is_logged_not_raised(self, board, caplog):
        fake = FakeSerial()
        fake.close = MagicMock(side_effect=OSError("gone"))
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        manager.close(handle)
        assert "gone" in caplog.text
        assert handle.state is HandleState.DISCONNECTED

    def test_close_unblocks_pending_receive(self, board):
        fake = FakeSerial()
        manager, _ = _manager(fake)
        handle = manager.open(board, "/dev/ttyUSB0")
        errors = []

        def wait():
            try:
                manager.receive(handle, timeout=10, shape=LINE)
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=wait)
        worker.start()
        time.sleep(0.05)
        start = time.monotonic()
        manager.close(handle)
        worker.join(2)
        assert not worker.is_alive()
        assert time.monotonic() - start < 2
        assert len(errors) == 1
        assert isinstance(errors[0], CancelledError)
        assert fake.read_cancelled
        assert fake.closed

    def test_port_can_be_reopened_after_close(self, board):
        manager = ConnectionManager(opener=MagicMock(side_effect=lambda *a, **k: FakeSerial()))
        handle = manager.open(board, "/dev/ttyUSB0")
        manager.close(handle)
        again = manager.open(board, "/dev/ttyUSB0")
        assert again.state is HandleState.READY

    def test_session_closes_on_error(self, board):
        fake = FakeSerial()
        manager, _ = _manager(fake)
        with pytest.raises(RuntimeError):
            with manager.session(board, "/dev/ttyUSB0") as handle:
                assert handle.state is HandleState.READY
                raise RuntimeError("boom")
        assert handle.state is HandleState.DISCONNECTED
        assert fake.closed

    def test_close_all(self, board):
        manager = ConnectionManager(opener=MagicMock(side_effect=lambda *a, **k: FakeSerial()))
        manager.open(board, "/dev/ttyUSB0")
        manager.open(board, "/dev/ttyUSB1")
        manager.close_all()
        assert manager.handles() == []
