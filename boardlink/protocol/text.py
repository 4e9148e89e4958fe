"""Line-oriented command codec for the ESP, K210 and Pico realtime firmware.

Each command is one ASCII line, ``<verb> <args...>\\n``. The firmware
answers ``OK`` to commands, a value line to reads, and ``ERR <message>``
when it rejects a command.
"""

from __future__ import annotations

from boardlink.errors import DeviceReplyError

VERBS = {
    "setPinMode": ("mode", ("PIN", "MODE")),
    "setDigitalOutput": ("dout", ("PIN", "LEVEL")),
    "setPwmOutput": ("pwm", ("PIN", "OUT")),
    "readDigitalPin": ("din", ("PIN",)),
    "readAnalogPin": ("ain", ("PIN",)),
    "setServoOutput": ("servo", ("PIN", "OUT")),
    "attachInterrupt": ("attach", ("PIN", "MODE")),
    "detachInterrupt": ("detach", ("PIN",)),
    "multiSerialBegin": ("sbegin", ("NO", "BAUD")),
    "multiSerialPrint": ("sprint", ("NO",)),
    "multiSerialAvailable": ("savail", ("NO",)),
    "multiSerialReadAByte": ("sread", ("NO",)),
    "esp32SetPwmOutput": ("pwm", ("PIN", "OUT")),
    "esp32SetServoOutput": ("servo", ("PIN", "OUT")),
    "esp32SetDACOutput": ("dac", ("PIN", "OUT")),
    "esp32ReadTouchPin": ("touch", ("PIN",)),
    "esp32ReadHallSensor": ("hall", ()),
    "runningTime": ("millis", ()),
}

# Optional or board-specific arguments go after the positional ones as key=value.
_KEYED = {"RX_PIN": "rx", "TX_PIN": "tx", "CH": "ch"}

_TRUE = ("1", "HIGH", "TRUE")
_FALSE = ("0", "LOW", "FALSE")


def encode(board, opcode: str, args: dict) -> bytes:
    verb, names = VERBS[opcode]
    tokens = [verb, *(str(args[name]) for name in names)]

    tokens.extend(f"{key}={args[name]}" for name, key in _KEYED.items() if name in args)

    if opcode == "multiSerialPrint":
        data = args["VALUE"]
        if args["EOL"] == "warp":
            data += "\r\n"
        # hex keeps spaces and newlines in the payload off the framing
        tokens.append(data.encode("utf-8").hex() or "-")

    return (" ".join(tokens) + "\n").encode("ascii")


def decode(board, message, raw: bytes):
    line = raw.decode("ascii", errors="replace").strip()
    if line.startswith("ERR"):
        raise DeviceReplyError(f"{message.opcode} rejected: {line[3:].strip() or 'no details'}")

    kind = message.reply.kind
    if kind == "ack":
        if line != "OK":
            raise DeviceReplyError(f"Unexpected reply '{line}' to {message.opcode}")
        return None
    if kind == "bool":
        if line.upper() in _TRUE:
            return True
        if line.upper() in _FALSE:
            return False
    elif kind == "int":
        try:
            return int(line)
        except ValueError:
            pass
    else:
        return line
    raise DeviceReplyError(f"Cannot read '{line}' as {kind} for {message.opcode}")


def reply(board, opcode: str, args: dict, shape):
    return shape


def followup(board, opcode: str, args: dict) -> bytes:
    return b""
