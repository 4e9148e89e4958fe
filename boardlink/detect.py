"""Board identification from attached USB serial devices."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from boardlink.boards import BoardDescriptor, BoardRegistry, default_registry
from boardlink.serial.port import PortInfo, list_serial_ports

logger = logging.getLogger(__name__)

_PNPID_RE = re.compile(r"^USB\\VID_([0-9A-F]{4})&PID_([0-9A-F]{4})$", re.IGNORECASE)


@dataclass
class DetectedBoard:
    """A board matched on a specific port."""
    board: BoardDescriptor
    port: PortInfo


@dataclass
class MatchResult:
    candidates: list[DetectedBoard] = field(default_factory=list)
    unrecognized: list[PortInfo] = field(default_factory=list)


def parse_pnpid(pnpid: str) -> tuple[int, int]:
    """Convert a Windows PNP id like 'USB\\VID_2341&PID_0043' to a (vid, pid) pair."""
    m = _PNPID_RE.match(pnpid.strip())
    if not m:
        raise ValueError(f"Not a USB PNP id: {pnpid}")
    return int(m.group(1), 16), int(m.group(2), 16)


def match_board(
    vid: int | None,
    pid: int | None,
    boards: Iterable[BoardDescriptor],
) -> BoardDescriptor | None:
    """Return the first board, in the given order, declaring this exact id pair."""
    if vid is None or pid is None:
        return None
    for board in boards:
        if (vid, pid) in board.usb_ids:
            return board
    return None


def match_devices(
    ports: Iterable[PortInfo],
    registry: BoardRegistry | None = None,
    variants: Iterable[str] | None = None,
) -> MatchResult:
    """Match attached ports against the registry in declaration order.

    `variants` restricts matching to the named boards, which is how a UI
    that already knows the selected board avoids bridge-chip ambiguity.
    Ports matching no board are reported, never raised.
    """
    if registry is None:
        registry = default_registry()
    boards = registry.boards()
    if variants is not None:
        wanted = set(variants)
        boards = [b for b in boards if b.variant in wanted]

    result = MatchResult()
    for port in ports:
        board = match_board(port.vid, port.pid, boards)
        if board is None:
            logger.debug("Unrecognized device on %s (%s)", port.device, port.hwid)
            result.unrecognized.append(port)
            continue
        logger.debug("Matched %s on %s", board.variant, port.device)
        result.candidates.append(DetectedBoard(board=board, port=port))
    return result


def scan_devices(
    registry: BoardRegistry | None = None,
    variants: Iterable[str] | None = None,
) -> MatchResult:
    """Enumerate serial ports and match them to boards."""
    return match_devices(list_serial_ports(), registry=registry, variants=variants)
