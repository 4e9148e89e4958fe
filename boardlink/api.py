"""BoardService: the command dispatcher the block UI talks to."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any

from boardlink.boards import BoardDescriptor, BoardRegistry, default_registry
from boardlink.config import ProjectConfig, load_config_or_default
from boardlink.detect import MatchResult, scan_devices
from boardlink.errors import DeviceConnectionError, OperationTimeoutError, ValidationError
from boardlink.flash import Flasher
from boardlink.protocol import data, firmata
from boardlink.protocol.encoder import decode, encode
from boardlink.protocol.operations import OPERATIONS, Operation
from boardlink.serial.connection import ConnectionManager, DeviceHandle
from boardlink.toolchain import FlashResult, ToolchainDescriptor

logger = logging.getLogger(__name__)


class BoardService:
    """Ties the registry, matcher, connection manager, encoder and flasher together.

    Every call is synchronous; calls on different handles may overlap.
    """

    def __init__(
        self,
        project_dir: Path | str = ".",
        config: ProjectConfig | None = None,
        registry: BoardRegistry | None = None,
        connections: ConnectionManager | None = None,
    ) -> None:
        self.project_dir = Path(project_dir)
        self.config = config or load_config_or_default(self.project_dir)
        self.registry = registry if registry is not None else default_registry()
        self.connections = connections or ConnectionManager()

        toolchain_config = replace(
            self.config.toolchain,
            build_dir=str(self.project_dir / self.config.toolchain.build_dir),
            firmware_dir=str(self.project_dir / self.config.toolchain.firmware_dir),
        )
        self.flasher = Flasher(
            connections=self.connections,
            config=toolchain_config,
            timeout=self.config.timeouts.flash,
        )

    def scan(self, variants: Iterable[str] | None = None) -> MatchResult:
        return scan_devices(self.registry, variants=variants)

    def connect(
        self,
        variant: str,
        port: str,
        baud_rate: int | None = None,
        *,
        check_firmware: bool = True,
    ) -> DeviceHandle:
        """Open `port` for `variant`.

        Firmata boards must answer a version request first; a board still
        running some other program fails with DeviceConnectionError and the
        port is released again. Pass check_firmware=False to skip that.
        """
        board = self.registry.lookup(variant)
        handle = self.connections.open(board, port, baud_rate=baud_rate)
        if check_firmware and board.wire_format == "firmata":
            try:
                self.check_firmware(handle)
            except BaseException:
                self.connections.close(handle)
                raise
        return handle

    def check_firmware(self, handle: DeviceHandle) -> tuple[int, int]:
        """Return the Firmata protocol version reported by the board on `handle`."""
        if handle.board.wire_format != "firmata":
            raise ValidationError(f"{handle.board.name} does not run Firmata")
        try:
            raw = self.connections.transact(
                handle, firmata.version_request(), firmata.VERSION_REPLY, self.config.timeouts.connect,
            )
        except OperationTimeoutError:
            raise DeviceConnectionError(
                f"Timeout when trying to connect to Firmata on {handle.port}; "
                "upload the realtime firmware first (boardlink firmware)"
            ) from None
        version = firmata.decode_version(raw)
        logger.info("Firmata %d.%d on %s", *version, handle.port)
        return version

    def run(self, handle: DeviceHandle, opcode: str, args: Mapping[str, Any] | None = None):
        """Validate, send and decode one block operation on `handle`.

        Data blocks are computed locally and never touch the board.
        """
        message = encode(handle.board, Operation(opcode, dict(args or {})))
        if message.host:
            return data.evaluate(message)

        logger.debug("%s on %s: %r", message.opcode, handle.port, message.payload)
        timeouts = self.config.timeouts
        timeout = timeouts.read if message.reply is not None and message.reply.kind != "ack" else timeouts.command
        try:
            raw = self.connections.transact(handle, message.payload, message.reply, timeout)
        except OperationTimeoutError:
            self._send_followup(handle, message)
            raise
        self._send_followup(handle, message)
        return decode(handle.board, message, raw)

    def evaluate(self, variant: str, opcode: str, args: Mapping[str, Any] | None = None):
        """Compute a data block for `variant` without a board connection."""
        message = encode(self.registry.lookup(variant), Operation(opcode, dict(args or {})))
        if not message.host:
            raise ValidationError(f"'{opcode}' needs a connected board")
        return data.evaluate(message)

    def needs_connection(self, variant: str, opcode: str) -> bool:
        spec = OPERATIONS.get(self.registry.lookup(variant).canonical_opcode(opcode))
        return spec is None or not spec.host

    def disconnect(self, handle: DeviceHandle) -> None:
        self.connections.close(handle)

    @contextmanager
    def session(self, variant: str, port: str, baud_rate: int | None = None, **kwargs) -> Iterator[DeviceHandle]:
        handle = self.connect(variant, port, baud_rate=baud_rate, **kwargs)
        try:
            yield handle
        finally:
            self.disconnect(handle)

    def board(self, variant: str) -> BoardDescriptor:
        return self.registry.lookup(variant)

    def build(self, variant: str, source: str | Path, **overrides) -> ToolchainDescriptor:
        """Derive a build/flash invocation; see Flasher.build for the overrides."""
        return self.flasher.build(self.registry.lookup(variant), source, **overrides)

    def flash(
        self,
        td: ToolchainDescriptor,
        on_output: Callable[[str], None] | None = None,
    ) -> FlashResult:
        return self.flasher.flash(td, on_output=on_output)

    def upload(
        self,
        variant: str,
        source: str | Path,
        on_output: Callable[[str], None] | None = None,
        **overrides,
    ) -> FlashResult:
        """Build and flash a program in one step."""
        return self.flash(self.build(variant, source, **overrides), on_output=on_output)

    def upload_firmware(
        self,
        variant: str,
        *,
        port: str | None = None,
        serial_number: str | None = None,
        baud: int | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> FlashResult:
        """Write the board's realtime firmware so it can take interactive commands."""
        td = self.flasher.build_firmware(
            self.registry.lookup(variant),
            port=port, serial_number=serial_number, baud=baud,
        )
        return self.flasher.flash(td, on_output=on_output)

    def abort_upload(self) -> bool:
        return self.flasher.abort()

    def close(self) -> None:
        self.connections.close_all()

    def _send_followup(self, handle: DeviceHandle, message) -> None:
        if message.followup and handle.is_open:
            self.connections.send(handle, message.followup)
