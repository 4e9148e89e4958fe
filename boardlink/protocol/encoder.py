"""Validate logical operations against a board and encode them for the wire."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from boardlink.boards import BoardDescriptor, ReplyShape, resolve_pin
from boardlink.errors import ValidationError
from boardlink.protocol import firmata, text
from boardlink.protocol.operations import OPERATIONS, ArgKind, ArgSpec, Operation

_CODECS = {
    "firmata": firmata,
    "text": text,
}


@dataclass(frozen=True)
class WireMessage:
    """An encoded operation, ready for the Connection Manager.

    `args` holds the validated arguments with pins already resolved to
    physical addresses. `reply` is None when nothing comes back.
    `followup` is written once the reply is in, to undo any reporting the
    request switched on.
    """
    opcode: str
    args: tuple[tuple[str, Any], ...]
    payload: bytes = b""
    reply: ReplyShape | None = None
    followup: bytes = b""
    host: bool = False

    def arg(self, name: str, default=None):
        return dict(self.args).get(name, default)


def _missing(board: BoardDescriptor, opcode: str, arg: ArgSpec) -> ValidationError:
    return ValidationError(f"'{opcode}' on {board.name} needs argument {arg.name}")


def _parse_number(value, integer: bool):
    if isinstance(value, bool):
        raise ValueError(value)
    if isinstance(value, str):
        value = value.strip()
        try:
            value = int(value)
        except ValueError:
            value = float(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(value)
        if integer:
            if not value.is_integer():
                raise ValueError(value)
            return int(value)
        return value
    if isinstance(value, int):
        return value
    raise ValueError(value)


def _check_range(board: BoardDescriptor, opcode: str, arg: ArgSpec, number) -> None:
    if arg.minimum is not None and number < arg.minimum:
        raise ValidationError(
            f"{arg.name}={number} for '{opcode}' is below {arg.minimum:g} on {board.name}"
        )
    if arg.maximum is not None and number > arg.maximum:
        raise ValidationError(
            f"{arg.name}={number} for '{opcode}' is above {arg.maximum:g} on {board.name}"
        )


def encode(board: BoardDescriptor, operation: Operation) -> WireMessage:
    """Validate `operation` for `board` and build its wire message.

    Checks run in a fixed order and stop at the first failure: opcode,
    pins, enumerated values, then numeric ranges. Nothing here touches a
    transport, and equal inputs always give equal messages.
    """
    opcode = board.canonical_opcode(operation.opcode)
    spec = OPERATIONS.get(opcode)
    if spec is None or opcode not in board.capabilities:
        raise ValidationError(f"Operation '{operation.opcode}' is not supported on {board.name}")

    given = operation.args
    resolved: dict[str, Any] = {}

    for arg in spec.args:
        if arg.kind is not ArgKind.PIN:
            continue
        if given.get(arg.name) is None:
            if arg.optional:
                continue
            raise _missing(board, opcode, arg)
        resolved[arg.name] = resolve_pin(board, given[arg.name], arg.menu)

    for arg in spec.args:
        if arg.kind is not ArgKind.ENUM:
            continue
        if given.get(arg.name) is None:
            raise _missing(board, opcode, arg)
        value = str(given[arg.name])
        if value not in board.enums.get(arg.menu, ()):
            raise ValidationError(
                f"{arg.name}='{value}' is not a valid {arg.menu} on {board.name}"
            )
        resolved[arg.name] = value

    for arg in spec.args:
        if arg.kind not in (ArgKind.INTEGER, ArgKind.NUMBER, ArgKind.STRING):
            continue
        if given.get(arg.name) is None:
            raise _missing(board, opcode, arg)
        if arg.kind is ArgKind.STRING:
            resolved[arg.name] = str(given[arg.name])
            continue
        try:
            number = _parse_number(given[arg.name], integer=arg.kind is ArgKind.INTEGER)
        except ValueError:
            raise ValidationError(
                f"{arg.name}={given[arg.name]!r} for '{opcode}' is not a valid {arg.kind.value}"
            ) from None
        _check_range(board, opcode, arg, number)
        resolved[arg.name] = number

    args = tuple(sorted(resolved.items()))
    if spec.host:
        return WireMessage(opcode=opcode, args=args, host=True)

    codec = _CODECS[board.wire_format]
    return WireMessage(
        opcode=opcode,
        args=args,
        payload=codec.encode(board, opcode, resolved),
        reply=codec.reply(board, opcode, resolved, board.replies.get(opcode)),
        followup=codec.followup(board, opcode, resolved),
    )


def decode(board: BoardDescriptor, message: WireMessage, raw: bytes | None):
    """Turn the raw reply to `message` into a Python value.

    Returns None for operations that expect no reply. A reply the firmware
    marks as an error raises DeviceReplyError.
    """
    if message.reply is None:
        return None
    return _CODECS[board.wire_format].decode(board, message, raw or b"")
