"""Serial session lifecycle: device handles and the connection manager."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum

import serial

from boardlink.boards import BoardDescriptor, ReplyShape
from boardlink.errors import BusyError, DeviceBusyError, TransportError
from boardlink.serial.port import open_serial
from boardlink.serial.reader import read_reply

logger = logging.getLogger(__name__)

# Read slice while polling for replies; bounds how fast close() unblocks a receive.
POLL_INTERVAL = 0.05


class HandleState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    SENDING = "sending"


class DeviceHandle:
    """The live, exclusively-owned connection to one physical device.

    At most one round trip is outstanding at a time; the wire protocols
    have no request ids, so concurrent replies could not be told apart.
    """

    def __init__(self, board: BoardDescriptor, port: str) -> None:
        self.board = board
        self.port = port
        self.state = HandleState.CONNECTING
        self._transport = None
        self._lock = threading.Lock()
        self._owner: int | None = None
        self._cancelled = threading.Event()

    def __repr__(self) -> str:
        return f"<DeviceHandle {self.board.variant} on {self.port} ({self.state.value})>"

    @property
    def is_open(self) -> bool:
        return self.state in (HandleState.READY, HandleState.SENDING)

    @contextmanager
    def _outstanding(self) -> Iterator[serial.Serial]:
        if not self.is_open:
            raise TransportError(f"{self.port} is not connected")
        if not self._lock.acquire(blocking=False):
            raise BusyError(f"{self.port} already has a command outstanding")
        self._owner = threading.get_ident()
        try:
            if not self.is_open:
                raise TransportError(f"{self.port} is not connected")
            self.state = HandleState.SENDING
            yield self._transport
        finally:
            if self.state is HandleState.SENDING:
                self.state = HandleState.READY
            self._owner = None
            self._lock.release()


class ConnectionManager:
    """Owns every open serial session, at most one per physical port."""

    def __init__(
        self,
        opener: Callable[..., serial.Serial] = open_serial,
        poll_interval: float = POLL_INTERVAL,
        close_grace: float = 1.0,
    ) -> None:
        self._opener = opener
        self._poll_interval = poll_interval
        self._close_grace = close_grace
        self._handles: dict[str, DeviceHandle] = {}
        # ports held by something other than a handle, e.g. a running upload
        self._reserved: set[str] = set()
        self._lock = threading.Lock()

    def open(self, board: BoardDescriptor, port: str, *, baud_rate: int | None = None) -> DeviceHandle:
        """Open `port` with the board's serial parameters.

        Raises DeviceBusyError if the port already has an open handle or is
        reserved, and DeviceConnectionError if the OS refuses the port.
        """
        handle = DeviceHandle(board, port)
        with self._lock:
            if port in self._handles:
                raise DeviceBusyError(f"{port} is already open")
            if port in self._reserved:
                raise DeviceBusyError(f"{port} is being flashed")
            self._handles[port] = handle

        try:
            handle._transport = self._opener(
                port, board.serial, timeout=self._poll_interval, baud_rate=baud_rate,
            )
        except BaseException:
            handle.state = HandleState.DISCONNECTED
            with self._lock:
                self._handles.pop(port, None)
            raise

        handle.state = HandleState.READY
        logger.info("Connected %s on %s", board.variant, port)
        return handle

    def send(self, handle: DeviceHandle, data: bytes) -> int:
        """Write one message. Returns the number of bytes written."""
        with handle._outstanding() as ser:
            return self._write(handle, ser, data)

    def receive(self, handle: DeviceHandle, timeout: float, shape: ReplyShape | None = None) -> bytes:
        """Wait up to `timeout` seconds for one reply framed as `shape`."""
        with handle._outstanding() as ser:
            return self._read(handle, ser, shape, timeout)

    def transact(
        self,
        handle: DeviceHandle,
        data: bytes,
        shape: ReplyShape | None,
        timeout: float,
    ) -> bytes | None:
        """One round trip: write, then await the reply if one is expected."""
        with handle._outstanding() as ser:
            if data:
                self._write(handle, ser, data, flush_input=shape is not None and shape.flush_input)
            if shape is None:
                return None
            return self._read(handle, ser, shape, timeout)

    def close(self, handle: DeviceHandle) -> None:
        """Close the handle. Idempotent; safe after a transport failure.

        A receive pending on another thread is unblocked with CancelledError.
        """
        with self._lock:
            if self._handles.get(handle.port) is handle:
                del self._handles[handle.port]

        transport, handle._transport = handle._transport, None
        handle._cancelled.set()
        handle.state = HandleState.DISCONNECTED
        if transport is None:
            return

        waited = False
        if handle._owner not in (None, threading.get_ident()):
            try:
                transport.cancel_read()
            except (serial.SerialException, OSError):
                pass
            # let the pending read notice the cancellation before the port goes away
            waited = handle._lock.acquire(timeout=self._close_grace)
        try:
            transport.close()
        except (serial.SerialException, OSError) as e:
            logger.warning("Error closing %s: %s", handle.port, e)
        finally:
            if waited:
                handle._lock.release()
        logger.info("Disconnected %s on %s", handle.board.variant, handle.port)

    @contextmanager
    def reserve(self, port: str) -> Iterator[None]:
        """Hold `port` so no handle can open it until the block exits.

        Raises DeviceBusyError if the port is open for commands or already
        reserved. Checked and claimed under the same lock
        as open().
        """
        with self._lock:
            if port in self._handles:
                raise DeviceBusyError(f"{port} is open for commands; disconnect before flashing")
            if port in self._reserved:
                raise DeviceBusyError(f"{port} is already being flashed")
            self._reserved.add(port)
        try:
            yield
        finally:
            with self._lock:
                self._reserved.discard(port)

    def is_reserved(self, port: str) -> bool:
        with self._lock:
            return port in self._reserved

    def is_open(self, port: str) -> bool:
        with self._lock:
            return port in self._handles

    def handles(self) -> list[DeviceHandle]:
        with self._lock:
            return list(self._handles.values())

    def close_all(self) -> None:
        for handle in self.handles():
            self.close(handle)

    @contextmanager
    def session(self, board: BoardDescriptor, port: str, **kwargs) -> Iterator[DeviceHandle]:
        """Open a handle that is closed on every exit path."""
        handle = self.open(board, port, **kwargs)
        try:
            yield handle
        finally:
            self.close(handle)

    # -- Private helpers ------------------------------------------------------

    def _write(self, handle: DeviceHandle, ser, data: bytes, flush_input: bool = False) -> int:
        logger.debug("%s <- %s", handle.port, data.hex(" "))
        try:
            if flush_input:
                ser.reset_input_buffer()
            written = ser.write(data)
            ser.flush()
        except (serial.SerialException, OSError) as e:
            self.close(handle)
            raise TransportError(f"Serial write to {handle.port} failed: {e}") from e
        return written if written is not None else len(data)

    def _read(self, handle: DeviceHandle, ser, shape: ReplyShape | None, timeout: float) -> bytes:
        try:
            reply = read_reply(ser, shape, timeout, cancelled=handle._cancelled)
        except TransportError:
            self.close(handle)
            raise
        logger.debug("%s -> %s", handle.port, reply.hex(" "))
        return reply
