"""Static board-variant tables for boardlink.

Importing this package builds every shipped descriptor, registers it in
declaration order and seals the registry. Matching is first-wins in that
order, so the variant modules are imported below in a fixed sequence.
"""

from boardlink.boards import BoardDescriptor, BoardRegistry, ReplyShape, build_descriptor
from boardlink.protocol.operations import DATA_OPCODES, ESP32_OPCODES, PIN_OPCODES, SERIAL_OPCODES

REGISTRY = BoardRegistry()


def register_board(base: dict, override: dict | None = None) -> BoardDescriptor:
    """Build a descriptor from a base record plus override and register it."""
    return REGISTRY.register(build_descriptor(base, override))


BAUDRATES = ("4800", "9600", "19200", "38400", "57600", "115200")
BAUDRATES_76800 = ("4800", "9600", "19200", "38400", "57600", "76800", "115200")
EOL = ("warp", "noWarp")

FIRMATA_CAPABILITIES = (PIN_OPCODES - {"attachInterrupt", "detachInterrupt"}) | DATA_OPCODES
TEXT_CAPABILITIES = PIN_OPCODES | SERIAL_OPCODES | DATA_OPCODES
# the ESP32 firmware drives PWM and servo through LEDC channels it is told about
ESP32_CAPABILITIES = (TEXT_CAPABILITIES - {"setPwmOutput", "setServoOutput"}) | ESP32_OPCODES

FIRMATA_REPLIES = {
    "readDigitalPin": ReplyShape("fixed", kind="bool", width=3, flush_input=True),
    "readAnalogPin": ReplyShape("fixed", kind="int", width=3, flush_input=True),
}

_ACK = ReplyShape("delimited", kind="ack")
TEXT_REPLIES = {opcode: _ACK for opcode in (PIN_OPCODES | SERIAL_OPCODES)}
TEXT_REPLIES.update({
    "readDigitalPin": ReplyShape("delimited", kind="bool"),
    "readAnalogPin": ReplyShape("delimited", kind="int"),
    "multiSerialAvailable": ReplyShape("delimited", kind="int"),
    "multiSerialReadAByte": ReplyShape("delimited", kind="int"),
})

ESP32_REPLIES = {**TEXT_REPLIES, **{opcode: _ACK for opcode in ESP32_OPCODES}}
ESP32_REPLIES.update({
    "esp32ReadTouchPin": ReplyShape("delimited", kind="int"),
    "esp32ReadHallSensor": ReplyShape("delimited", kind="int"),
    "runningTime": ReplyShape("delimited", kind="int"),
})


# Auto-import variant modules so they self-register, in matching order.
from boardlink.variants import avr as _avr  # noqa: F401, E402
from boardlink.variants import k210 as _k210  # noqa: F401, E402
from boardlink.variants import rp2040 as _rp2040  # noqa: F401, E402
from boardlink.variants import esp as _esp  # noqa: F401, E402

REGISTRY.seal()
