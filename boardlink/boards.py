"""Board descriptors and the board registry for boardlink."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from boardlink.errors import BoardNotFoundError, RegistryError, UnknownPinError
from boardlink.protocol.operations import OPERATIONS, ArgKind

logger = logging.getLogger(__name__)

WIRE_FORMATS = ("firmata", "text")


@dataclass(frozen=True)
class SerialParams:
    baud_rate: int
    data_bits: int = 8
    stop_bits: int = 1
    parity: str = "N"
    rtscts: bool = False
    # None leaves the modem line as the driver opened it
    dtr: bool | None = None
    rts: bool | None = None


@dataclass(frozen=True)
class ReplyShape:
    """How one reply is framed on the wire and what it decodes to."""
    framing: str                # "fixed" or "delimited"
    kind: str = "ack"           # "ack", "bool", "int", "text", "version"
    width: int = 0
    terminator: bytes = b"\n"
    header: int | None = None
    # drop whatever the board sent before the request goes out
    flush_input: bool = False


@dataclass(frozen=True)
class ToolchainParams:
    tool: str = "arduino"
    fqbn: str = ""
    # sys.platform prefix -> fqbn, for boards whose upload speed differs per OS
    fqbn_by_platform: Mapping[str, str] = field(default_factory=dict)
    partno: str = ""
    programmer: str = ""
    upload_baud: int | None = None
    firmware: str = ""


@dataclass(frozen=True)
class BoardDescriptor:
    """A named, immutable configuration profile for one supported board model."""
    variant: str
    name: str
    serial: SerialParams
    pins: Mapping[str, str]
    wire_format: str
    capabilities: frozenset[str]
    usb_ids: tuple[tuple[int, int], ...] = ()
    pin_groups: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    enums: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    aliases: Mapping[str, str] = field(default_factory=dict)
    wire_options: Mapping[str, int] = field(default_factory=dict)
    replies: Mapping[str, ReplyShape] = field(default_factory=dict)
    toolchain: ToolchainParams = field(default_factory=ToolchainParams)

    def canonical_opcode(self, opcode: str) -> str:
        return self.aliases.get(opcode, opcode)


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_descriptor(base: dict, override: dict | None = None) -> BoardDescriptor:
    """Overlay an override record onto a base record and freeze the result.

    Nested dicts (pins, enums, serial, toolchain, ...) merge key by key; any
    other value replaces the base value. Variants whose pin tables share
    nothing extend a common record that carries no pins.
    """
    record = _merge(base, override or {})

    def _frozen(mapping: dict | None, convert=lambda v: v) -> Mapping:
        return MappingProxyType({k: convert(v) for k, v in (mapping or {}).items()})

    toolchain = dict(record.get("toolchain", {}))
    toolchain["fqbn_by_platform"] = _frozen(toolchain.get("fqbn_by_platform"))

    return BoardDescriptor(
        variant=record["variant"],
        name=record["name"],
        serial=SerialParams(**record["serial"]),
        pins=_frozen(record["pins"], str),
        wire_format=record["wire_format"],
        capabilities=frozenset(record["capabilities"]),
        usb_ids=tuple(tuple(pair) for pair in record.get("usb_ids", ())),
        pin_groups=_frozen(record.get("pin_groups"), tuple),
        enums=_frozen(record.get("enums"), tuple),
        aliases=_frozen(record.get("aliases")),
        wire_options=_frozen(record.get("wire_options")),
        replies=_frozen(record.get("replies")),
        toolchain=ToolchainParams(**toolchain),
    )


def validate_descriptor(board: BoardDescriptor) -> None:
    """Check the descriptor's internal consistency. Raises RegistryError."""
    where = f"board '{board.variant}'"
    if board.wire_format not in WIRE_FORMATS:
        raise RegistryError(f"{where}: unknown wire format '{board.wire_format}'")
    if not board.pins:
        raise RegistryError(f"{where}: empty pin table")

    for menu, labels in board.pin_groups.items():
        missing = [label for label in labels if label not in board.pins]
        if missing:
            raise RegistryError(f"{where}: pin group '{menu}' names unknown pins {missing}")

    for opcode in sorted(board.capabilities):
        spec = OPERATIONS.get(opcode)
        if spec is None:
            raise RegistryError(f"{where}: unknown capability '{opcode}'")
        if spec.reads and opcode not in board.replies:
            raise RegistryError(f"{where}: no reply shape for '{opcode}'")
        for arg in spec.args:
            if arg.kind is ArgKind.ENUM and arg.menu not in board.enums:
                raise RegistryError(f"{where}: '{opcode}' needs the '{arg.menu}' menu")

    for alias, target in board.aliases.items():
        if target not in board.capabilities:
            raise RegistryError(f"{where}: alias '{alias}' targets unsupported '{target}'")

    for opcode, shape in board.replies.items():
        if shape.framing == "fixed" and shape.width <= 0:
            raise RegistryError(f"{where}: fixed reply for '{opcode}' needs a width")
        if shape.framing not in ("fixed", "delimited"):
            raise RegistryError(f"{where}: unknown reply framing '{shape.framing}'")


class BoardRegistry:
    """Ordered catalog of board descriptors.

    Declaration order is significant: identity matching checks descriptors
    in this order, so boards sharing a USB bridge chip with a generic board
    must be registered before it.
    """

    def __init__(self) -> None:
        self._boards: dict[str, BoardDescriptor] = {}
        self._sealed = False

    def register(self, board: BoardDescriptor) -> BoardDescriptor:
        if self._sealed:
            raise RegistryError(f"Registry is sealed; cannot register '{board.variant}'")
        if board.variant in self._boards:
            raise RegistryError(f"Duplicate board variant '{board.variant}'")
        validate_descriptor(board)
        self._boards[board.variant] = board
        logger.debug("Registered board %s (%s)", board.variant, board.wire_format)
        return board

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def lookup(self, variant: str) -> BoardDescriptor:
        """Get a board by its variant id. Raises BoardNotFoundError if not found."""
        try:
            return self._boards[variant]
        except KeyError:
            raise BoardNotFoundError(
                f"Unknown board: {variant}. Use 'boardlink boards' to list supported boards."
            ) from None

    def boards(self) -> list[BoardDescriptor]:
        """Return all boards in declaration order."""
        return list(self._boards.values())

    def __contains__(self, variant: str) -> bool:
        return variant in self._boards

    def __len__(self) -> int:
        return len(self._boards)


def resolve_pin(board: BoardDescriptor, label: str, menu: str | None = None) -> str:
    """Map a logical pin label to the board's physical pin address.

    When `menu` names one of the board's pin groups, the label must also
    belong to that group (e.g. a PWM-capable pin).
    """
    label = str(label)
    if label not in board.pins:
        raise UnknownPinError(f"Unknown pin '{label}' on {board.name}")
    group = board.pin_groups.get(menu) if menu else None
    if group is not None and label not in group:
        raise UnknownPinError(f"Pin '{label}' is not usable as {menu} on {board.name}")
    return board.pins[label]


def default_registry() -> BoardRegistry:
    """Return the process-wide registry, populated with the shipped variants."""
    from boardlink.variants import REGISTRY
    return REGISTRY


def get_board(variant: str) -> BoardDescriptor:
    """Get a board from the default registry. Raises BoardNotFoundError."""
    return default_registry().lookup(variant)


def list_boards() -> list[BoardDescriptor]:
    """Return all supported boards."""
    return default_registry().boards()
