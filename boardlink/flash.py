"""Build and flash programs and realtime firmware through external toolchains."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from contextlib import nullcontext
from pathlib import Path

from boardlink.boards import BoardDescriptor
from boardlink.config import ToolchainConfig
from boardlink.errors import (
    DeviceBusyError,
    DeviceConnectionError,
    OperationTimeoutError,
    ToolchainNotFoundError,
    ValidationError,
)
from boardlink.serial.port import list_serial_ports
from boardlink.toolchain import FlashResult, ToolchainDescriptor
from boardlink.toolchains import get_toolchain

logger = logging.getLogger(__name__)

_BAUD_OPTION = re.compile(r"(?<=[:,])(burn_baudrate|UploadSpeed|baud)=\d+")
_TOOL_FIRMWARE_OPTION = re.compile(r"(?<=[:,])burn_tool_firmware=[^,]*")


def platform_fqbn(board: BoardDescriptor, platform: str | None = None) -> str:
    """The board's FQBN for this OS; some boards upload at a different speed per OS."""
    platform = platform or sys.platform
    for prefix, fqbn in board.toolchain.fqbn_by_platform.items():
        if platform.startswith(prefix):
            return fqbn
    return board.toolchain.fqbn


def port_for_serial_number(serial_number: str) -> str:
    for info in list_serial_ports():
        if info.serial_number == serial_number:
            return info.device
    raise DeviceConnectionError(f"No device with serial number {serial_number} is attached")


class Flasher:
    """Runs one build/flash invocation at a time.

    With a Connection Manager attached, the port is reserved there for the
    whole run, so it cannot be flashed while open for commands or opened
    while flashing.
    """

    def __init__(
        self,
        connections=None,
        config: ToolchainConfig | None = None,
        timeout: float = 300.0,
    ) -> None:
        self._connections = connections
        self._config = config or ToolchainConfig()
        self._timeout = timeout
        self._lock = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._port: str | None = None
        self._aborted = False

    # -- Descriptors ----------------------------------------------------------

    def build(
        self,
        board: BoardDescriptor,
        source: str | os.PathLike,
        *,
        port: str | None = None,
        serial_number: str | None = None,
        baud: int | None = None,
        tool_firmware: str | None = None,
    ) -> ToolchainDescriptor:
        """Derive the invocation for compiling and uploading `source`.

        A `str` source is always sketch text, written to a sketch directory
        under the build directory, even if it happens to name a file. Pass a
        Path (any os.PathLike) for an existing sketch. The board descriptor
        itself is never modified.
        """
        if isinstance(source, os.PathLike):
            sketch = Path(source)
        else:
            sketch = Path(self._config.build_dir) / board.variant
            sketch.mkdir(parents=True, exist_ok=True)
            (sketch / f"{board.variant}.ino").write_text(source)

        fqbn, upload_baud = self._apply_overrides(board, baud, tool_firmware)
        return ToolchainDescriptor(
            variant=board.variant,
            tool=board.toolchain.tool,
            fqbn=fqbn,
            port=self._resolve_port(port, serial_number),
            upload_baud=upload_baud,
            tool_firmware=tool_firmware,
            serial_number=serial_number,
            source_path=sketch,
            build_dir=Path(self._config.build_dir) / board.variant / "build",
        )

    def build_firmware(
        self,
        board: BoardDescriptor,
        *,
        port: str | None = None,
        serial_number: str | None = None,
        baud: int | None = None,
        firmware: str | Path | None = None,
    ) -> ToolchainDescriptor:
        """Derive the invocation for writing the board's realtime firmware image.

        AVR boards (those with an avrdude part number) are written with
        avrdude; others upload the image through their own toolchain.
        """
        params = board.toolchain
        if firmware is None:
            if not params.firmware:
                raise ValidationError(f"{board.name} has no realtime firmware image")
            firmware = Path(self._config.firmware_dir) / params.firmware
        firmware = Path(firmware)
        if not firmware.exists():
            raise ValidationError(f"Firmware image not found: {firmware}")

        fqbn, upload_baud = self._apply_overrides(board, baud, None)
        return ToolchainDescriptor(
            variant=board.variant,
            tool="avrdude" if params.partno else params.tool,
            fqbn=fqbn,
            port=self._resolve_port(port, serial_number),
            upload_baud=upload_baud,
            serial_number=serial_number,
            firmware_path=firmware,
            partno=params.partno,
            programmer=params.programmer,
        )

    # -- Invocation -----------------------------------------------------------

    def flash(
        self,
        td: ToolchainDescriptor,
        on_output: Callable[[str], None] | None = None,
    ) -> FlashResult:
        """Run the toolchain for `td`. A failing tool is a result, not an exception.

        Raises DeviceBusyError before starting anything if the port is open
        for commands, ToolchainNotFoundError if the binary is missing, and
        OperationTimeoutError if the run exceeds the flash timeout.
        """
        toolchain = get_toolchain(td.tool)
        if toolchain is None:
            raise ToolchainNotFoundError(f"Unknown toolchain: {td.tool}")
        commands = toolchain.flash_commands(td)

        if self._connections is None:
            reservation = nullcontext()
        else:
            reservation = self._connections.reserve(td.port)
        with reservation:
            return self._flash(td, commands, on_output)

    def _flash(self, td: ToolchainDescriptor, commands, on_output) -> FlashResult:
        with self._lock:
            if self._port is not None:
                raise DeviceBusyError(f"Already flashing {self._port}")
            self._port = td.port
            self._aborted = False

        log: list[str] = []
        deadline = time.monotonic() + self._timeout
        try:
            logger.info("Flashing %s on %s with %s", td.variant, td.port, td.tool)
            for argv in commands:
                argv = [self._executable(td.tool, argv[0]), *argv[1:]]
                code = self._run(argv, deadline, log, on_output)
                if code != 0:
                    logger.info("%s exited with %d", argv[0], code)
                    return FlashResult(ok=False, exit_code=code, log="".join(log))
            return FlashResult(ok=True, exit_code=0, log="".join(log))
        finally:
            with self._lock:
                self._port = None

    def abort(self) -> bool:
        """Terminate the running toolchain process. Returns False if none runs."""
        with self._lock:
            proc = self._process
            if proc is None:
                return False
            self._aborted = True
        logger.info("Aborting flash of %s", self._port)
        proc.terminate()
        return True

    def is_flashing(self, port: str) -> bool:
        with self._lock:
            return self._port == port

    # -- Private helpers ------------------------------------------------------

    def _apply_overrides(
        self,
        board: BoardDescriptor,
        baud: int | None,
        tool_firmware: str | None,
    ) -> tuple[str, int | None]:
        fqbn = platform_fqbn(board)
        upload_baud = board.toolchain.upload_baud

        if baud is not None:
            rewritten = _BAUD_OPTION.sub(lambda m: f"{m.group(1)}={baud}", fqbn)
            if rewritten == fqbn:
                upload_baud = baud
            fqbn = rewritten

        if tool_firmware is not None:
            if not _TOOL_FIRMWARE_OPTION.search(fqbn):
                raise ValidationError(f"{board.name} has no tool firmware option")
            fqbn = _TOOL_FIRMWARE_OPTION.sub(f"burn_tool_firmware={tool_firmware}", fqbn)

        return fqbn, upload_baud

    def _resolve_port(self, port: str | None, serial_number: str | None) -> str:
        if port is not None:
            return port
        if serial_number is not None:
            return port_for_serial_number(serial_number)
        raise ValidationError("A port or a device serial number is required")

    def _executable(self, tool: str, default: str) -> str:
        configured = {"arduino": self._config.arduino_cli, "avrdude": self._config.avrdude}
        return configured.get(tool) or default

    def _run(
        self,
        argv: list[str],
        deadline: float,
        log: list[str],
        on_output: Callable[[str], None] | None,
    ) -> int:
        logger.debug("Running %s", " ".join(argv))
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
            )
        except FileNotFoundError as e:
            raise ToolchainNotFoundError(f"{argv[0]} not found. Run 'boardlink doctor'.") from e

        expired = threading.Event()

        def _expire() -> None:
            expired.set()
            proc.kill()

        timer = threading.Timer(max(deadline - time.monotonic(), 0), _expire)
        with self._lock:
            self._process = proc
        timer.start()
        try:
            for line in proc.stdout:
                log.append(line)
                if on_output is not None:
                    on_output(line)
            code = proc.wait()
        finally:
            timer.cancel()
            if proc.poll() is None:
                # output handling failed with the tool still running
                proc.kill()
                proc.wait()
            proc.stdout.close()
            with self._lock:
                self._process = None

        if expired.is_set():
            raise OperationTimeoutError(f"{argv[0]} did not finish within {self._timeout:.0f} s")
        if self._aborted:
            log.append("Upload aborted\n")
        return code
