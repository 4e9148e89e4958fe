"""Firmata 2.x codec for boards running StandardFirmata in realtime mode.

Command bytes have the high bit set and data bytes never do, so a reader
can skip to an expected command byte without losing message alignment.
"""

from __future__ import annotations

from dataclasses import replace

from boardlink.boards import ReplyShape
from boardlink.errors import DeviceReplyError

# Message commands
DIGITAL_MESSAGE = 0x90
ANALOG_MESSAGE = 0xE0
REPORT_ANALOG = 0xC0
REPORT_DIGITAL = 0xD0
SET_PIN_MODE = 0xF4
SET_DIGITAL_PIN_VALUE = 0xF5
REPORT_VERSION = 0xF9
START_SYSEX = 0xF0
END_SYSEX = 0xF7
EXTENDED_ANALOG = 0x6F

# Pin modes
PIN_MODE_INPUT = 0x00
PIN_MODE_OUTPUT = 0x01
PIN_MODE_ANALOG = 0x02
PIN_MODE_PWM = 0x03
PIN_MODE_SERVO = 0x04
PIN_MODE_PULLUP = 0x0B

PIN_MODES = {
    "INPUT": PIN_MODE_INPUT,
    "OUTPUT": PIN_MODE_OUTPUT,
    "INPUT_PULLUP": PIN_MODE_PULLUP,
}

# StandardFirmata also sends this unprompted when it boots.
VERSION_REPLY = ReplyShape("fixed", kind="version", width=3, header=REPORT_VERSION)


def _lsb_msb(value: int) -> tuple[int, int]:
    return value & 0x7F, (value >> 7) & 0x7F


def set_pin_mode(pin: int, mode: int) -> bytes:
    return bytes([SET_PIN_MODE, pin, mode])


def analog_write(pin: int, value: int) -> bytes:
    """PWM or servo value; pins above 15 need the extended analog sysex."""
    lsb, msb = _lsb_msb(value)
    if pin > 15:
        return bytes([START_SYSEX, EXTENDED_ANALOG, pin, lsb, msb, END_SYSEX])
    return bytes([ANALOG_MESSAGE | pin, lsb, msb])


def version_request() -> bytes:
    return bytes([REPORT_VERSION])


def decode_version(raw: bytes) -> tuple[int, int]:
    if len(raw) < 3 or raw[0] != REPORT_VERSION:
        raise DeviceReplyError(f"Unexpected Firmata version report {raw.hex(' ') or '(empty)'}")
    return raw[1], raw[2]


def _analog_channel(board, pin: int) -> int:
    return pin - board.wire_options.get("analog_pin_offset", 0)


def _reply_command(board, opcode: str, pin: int) -> int:
    if opcode == "readDigitalPin":
        return DIGITAL_MESSAGE | (pin // 8)
    return ANALOG_MESSAGE | _analog_channel(board, pin)


def encode(board, opcode: str, args: dict) -> bytes:
    """Encode one canonical operation. Firmata writes are not acknowledged."""
    pin = int(args["PIN"])

    if opcode == "setPinMode":
        return set_pin_mode(pin, PIN_MODES[args["MODE"]])
    if opcode == "setDigitalOutput":
        return bytes([SET_DIGITAL_PIN_VALUE, pin, 1 if args["LEVEL"] in ("1", "HIGH") else 0])
    if opcode == "setPwmOutput":
        return set_pin_mode(pin, PIN_MODE_PWM) + analog_write(pin, args["OUT"])
    if opcode == "setServoOutput":
        return set_pin_mode(pin, PIN_MODE_SERVO) + analog_write(pin, args["OUT"])
    if opcode == "readDigitalPin":
        return bytes([REPORT_DIGITAL | (pin // 8), 1])
    if opcode == "readAnalogPin":
        channel = _analog_channel(board, pin)
        return set_pin_mode(pin, PIN_MODE_ANALOG) + bytes([REPORT_ANALOG | channel, 1])
    raise ValueError(f"No Firmata encoding for '{opcode}'")


def reply(board, opcode: str, args: dict, shape: ReplyShape | None) -> ReplyShape | None:
    """The reply shape for this request, keyed to the port or channel it reports."""
    if shape is None:
        return None
    return replace(shape, header=_reply_command(board, opcode, int(args["PIN"])))


def followup(board, opcode: str, args: dict) -> bytes:
    """Switch reporting back off once a read has its answer."""
    if opcode == "readDigitalPin":
        return bytes([REPORT_DIGITAL | (int(args["PIN"]) // 8), 0])
    if opcode == "readAnalogPin":
        return bytes([REPORT_ANALOG | _analog_channel(board, int(args["PIN"])), 0])
    return b""


def decode(board, message, raw: bytes):
    """Decode the 3-byte digital or analog message answering a read."""
    pin = int(message.arg("PIN"))
    expected = _reply_command(board, message.opcode, pin)

    if len(raw) < 3 or raw[0] != expected:
        raise DeviceReplyError(
            f"Unexpected Firmata reply {raw.hex(' ') or '(empty)'} to {message.opcode}"
        )
    value = raw[1] | (raw[2] << 7)

    if message.opcode == "readDigitalPin":
        return bool((value >> (pin % 8)) & 1)
    return value
