"""Data blocks evaluated on the host with Arduino semantics."""

from __future__ import annotations

import re

from boardlink.errors import ValidationError

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _trunc_div(a: int, b: int) -> int:
    # C integer division rounds toward zero
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def arduino_map(value, in_min, in_max, out_min, out_max):
    """Arduino ``map()``: integer arithmetic when every input is an integer."""
    if in_min == in_max:
        raise ValidationError("map() needs distinct input bounds")
    if all(isinstance(n, int) for n in (value, in_min, in_max, out_min, out_max)):
        return _trunc_div((value - in_min) * (out_max - out_min), in_max - in_min) + out_min
    return (value - in_min) * (out_max - out_min) / (in_max - in_min) + out_min


def constrain(value, low, high):
    if value < low:
        return low
    if value > high:
        return high
    return value


def to_int(text: str) -> int:
    """``String.toInt()``: the leading integer, or 0."""
    m = _LEADING_INT.match(text)
    return int(m.group(1)) if m else 0


def to_float(text: str) -> float:
    """``String.toFloat()``: the leading decimal number, or 0.0."""
    m = _LEADING_FLOAT.match(text)
    return float(m.group(1)) if m else 0.0


def convert(text: str, data_type: str):
    if data_type in ("WHOLE_NUMBER", "INTEGER"):
        return to_int(text)
    if data_type == "DECIMAL":
        return to_float(text)
    return text


def ascii_character(code: int) -> str:
    return chr(code)


def ascii_number(text: str) -> int:
    return ord(text[0]) if text else 0


def evaluate(message):
    """Compute the value of an encoded host-side data operation."""
    args = dict(message.args)
    opcode = message.opcode

    if opcode == "dataMap":
        return arduino_map(args["DATA"], args["ARG0"], args["ARG1"], args["ARG2"], args["ARG3"])
    if opcode == "dataConstrain":
        return constrain(args["DATA"], args["ARG0"], args["ARG1"])
    if opcode == "dataConvert":
        return convert(args["DATA"], args["TYPE"])
    if opcode == "dataConvertASCIICharacter":
        return ascii_character(args["DATA"])
    if opcode == "dataConvertASCIINumber":
        return ascii_number(args["DATA"])
    raise ValueError(f"'{opcode}' is not a host-side operation")
