"""Reading one framed reply off an open serial transport."""

from __future__ import annotations

import threading
import time

import serial

from boardlink.boards import ReplyShape
from boardlink.errors import CancelledError, OperationTimeoutError, TransportError


def read_reply(
    ser,
    shape: ReplyShape | None,
    timeout: float,
    cancelled: threading.Event | None = None,
) -> bytes:
    """Block until one reply arrives, the deadline passes, or the read is cancelled.

    The transport must be opened with a short read timeout: each read call
    is one polling slice, so cancellation and the deadline are noticed
    between slices. With no shape, any available bytes count as the reply.
    Fixed-width replies with a header byte skip whole messages until one
    starting with that header arrives.
    Delimited replies are returned without their terminator; blank lines
    are skipped.
    """
    deadline = time.monotonic() + timeout
    buf = bytearray()

    while True:
        if cancelled is not None and cancelled.is_set():
            raise CancelledError("Handle closed while waiting for a reply")
        if time.monotonic() >= deadline:
            raise OperationTimeoutError(f"No reply within {timeout * 1000:.0f} ms")

        try:
            if shape is None:
                chunk = ser.read(ser.in_waiting or 1)
            elif shape.framing == "fixed":
                chunk = ser.read(shape.width - len(buf))
            else:
                chunk = ser.read_until(shape.terminator)
        except (serial.SerialException, OSError) as e:
            if cancelled is not None and cancelled.is_set():
                raise CancelledError("Handle closed while waiting for a reply") from e
            raise TransportError(f"Serial read failed: {e}") from e

        if not chunk:
            continue
        buf.extend(chunk)

        if shape is None:
            return bytes(buf)
        if shape.framing == "fixed":
            if shape.header is not None:
                _align(buf, shape.header)
            if len(buf) >= shape.width:
                return bytes(buf)
        elif buf.endswith(shape.terminator):
            line = bytes(buf[: -len(shape.terminator)])
            if line.strip():
                return line
            buf.clear()


def _align(buf: bytearray, header: int) -> None:
    """Drop everything before the first intact message starting with `header`.

    Only command bytes have the high bit set, so one showing up after the
    header means that message was cut short.
    """
    while True:
        start = buf.find(bytes([header]))
        if start < 0:
            buf.clear()
            return
        del buf[:start]
        cut = next((i for i in range(1, len(buf)) if buf[i] & 0x80), None)
        if cut is None:
            return
        del buf[:cut]
