"""Logical operations accepted from the block UI, and their argument specs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ArgKind(str, Enum):
    PIN = "pin"
    ENUM = "enum"
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"


@dataclass(frozen=True)
class ArgSpec:
    name: str
    kind: ArgKind
    menu: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    optional: bool = False


@dataclass(frozen=True)
class OperationSpec:
    opcode: str
    args: tuple[ArgSpec, ...]
    # True for reporters that read a value back from the board
    reads: bool = False
    # True for pure data blocks computed without touching the board
    host: bool = False

    def arg(self, name: str) -> ArgSpec | None:
        for spec in self.args:
            if spec.name == name:
                return spec
        return None


@dataclass(frozen=True)
class Operation:
    """A logical request from the UI: opcode plus named arguments."""
    opcode: str
    args: Mapping[str, Any] = field(default_factory=dict)


def _pin(name="PIN", menu="pins", optional=False):
    return ArgSpec(name, ArgKind.PIN, menu=menu, optional=optional)


def _enum(name, menu):
    return ArgSpec(name, ArgKind.ENUM, menu=menu)


def _number(name):
    return ArgSpec(name, ArgKind.NUMBER)


_SERIAL_NO = _enum("NO", "serialNo")

_SPECS = [
    # pins
    OperationSpec("setPinMode", (_pin(), _enum("MODE", "mode"))),
    OperationSpec("setDigitalOutput", (_pin(), _enum("LEVEL", "level"))),
    OperationSpec("setPwmOutput", (_pin(menu="pwmPins"), ArgSpec("OUT", ArgKind.INTEGER, minimum=0, maximum=255))),
    OperationSpec("readDigitalPin", (_pin(),), reads=True),
    OperationSpec("readAnalogPin", (_pin(menu="analogPins"),), reads=True),
    OperationSpec("setServoOutput", (_pin(menu="servoPins"), ArgSpec("OUT", ArgKind.INTEGER, minimum=0, maximum=180))),
    OperationSpec("attachInterrupt", (_pin(menu="interruptPins"), _enum("MODE", "interruptMode"))),
    OperationSpec("detachInterrupt", (_pin(menu="interruptPins"),)),
    # serial
    OperationSpec("multiSerialBegin", (
        _SERIAL_NO,
        _enum("BAUD", "baudrate"),
        _pin("RX_PIN", optional=True),
        _pin("TX_PIN", optional=True),
    )),
    OperationSpec("multiSerialPrint", (_SERIAL_NO, ArgSpec("VALUE", ArgKind.STRING), _enum("EOL", "eol"))),
    OperationSpec("multiSerialAvailable", (_SERIAL_NO,), reads=True),
    OperationSpec("multiSerialReadAByte", (_SERIAL_NO,), reads=True),
    # esp32
    OperationSpec("esp32SetPwmOutput", (
        _pin(menu="pwmPins"),
        _enum("CH", "ledcChannels"),
        ArgSpec("OUT", ArgKind.INTEGER, minimum=0, maximum=255),
    )),
    OperationSpec("esp32SetServoOutput", (
        _pin(menu="servoPins"),
        _enum("CH", "ledcChannels"),
        ArgSpec("OUT", ArgKind.INTEGER, minimum=0, maximum=180),
    )),
    OperationSpec("esp32SetDACOutput", (_pin(menu="dacPins"), ArgSpec("OUT", ArgKind.INTEGER, minimum=0, maximum=255))),
    OperationSpec("esp32ReadTouchPin", (_pin(menu="touchPins"),), reads=True),
    OperationSpec("esp32ReadHallSensor", (), reads=True),
    OperationSpec("runningTime", (), reads=True),
    # data
    OperationSpec("dataMap", tuple(_number(n) for n in ("DATA", "ARG0", "ARG1", "ARG2", "ARG3")), host=True),
    OperationSpec("dataConstrain", tuple(_number(n) for n in ("DATA", "ARG0", "ARG1")), host=True),
    OperationSpec("dataConvert", (ArgSpec("DATA", ArgKind.STRING), _enum("TYPE", "dataType")), host=True),
    OperationSpec("dataConvertASCIICharacter", (ArgSpec("DATA", ArgKind.INTEGER, minimum=0, maximum=255),), host=True),
    OperationSpec("dataConvertASCIINumber", (ArgSpec("DATA", ArgKind.STRING),), host=True),
]

OPERATIONS: dict[str, OperationSpec] = {spec.opcode: spec for spec in _SPECS}

PIN_OPCODES = frozenset({
    "setPinMode", "setDigitalOutput", "setPwmOutput", "readDigitalPin",
    "readAnalogPin", "setServoOutput", "attachInterrupt", "detachInterrupt",
})
SERIAL_OPCODES = frozenset({
    "multiSerialBegin", "multiSerialPrint", "multiSerialAvailable", "multiSerialReadAByte",
})
DATA_OPCODES = frozenset(spec.opcode for spec in _SPECS if spec.host)
ESP32_OPCODES = frozenset({
    "esp32SetPwmOutput", "esp32SetServoOutput", "esp32SetDACOutput",
    "esp32ReadTouchPin", "esp32ReadHallSensor", "runningTime",
})
