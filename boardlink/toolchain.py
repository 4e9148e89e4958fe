"""Toolchain abstraction for boardlink."""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path


@dataclass(frozen=True)
class ToolchainDescriptor:
    """Everything one build/flash invocation needs. Never shared between runs."""
    variant: str
    tool: str
    fqbn: str
    port: str
    upload_baud: int | None = None
    tool_firmware: str | None = None
    serial_number: str | None = None
    # exactly one of source_path (sketch directory) / firmware_path is set
    source_path: Path | None = None
    firmware_path: Path | None = None
    partno: str = ""
    programmer: str = ""
    build_dir: Path | None = None

    @property
    def is_firmware(self) -> bool:
        return self.firmware_path is not None

    def to_dict(self) -> dict:
        return {k: str(v) if isinstance(v, Path) else v for k, v in asdict(self).items()}


@dataclass
class FlashResult:
    """Outcome of one toolchain run. The log is the tool's combined output, verbatim."""
    ok: bool
    exit_code: int
    log: str

    def to_dict(self) -> dict:
        return {"ok": self.ok, "exit_code": self.exit_code, "log": self.log}


class Toolchain(ABC):
    """An external compiler/flasher, driven as an opaque process."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name, as used in a board's toolchain parameters."""

    @property
    @abstractmethod
    def executable(self) -> str:
        """Default binary name, looked up on PATH."""

    @abstractmethod
    def flash_commands(self, td: ToolchainDescriptor) -> list[list[str]]:
        """Return the argv lists to run in order, e.g. compile then upload."""

    def doctor(self, executable: str | None = None) -> dict:
        """Check if this toolchain is installed. Returns {"ok": bool, "message": str}."""
        binary = executable or self.executable
        path = shutil.which(binary)
        if path:
            return {"ok": True, "message": f"{binary} found at {path}"}
        return {"ok": False, "message": f"{binary} not found. {self.install_hint()}"}

    def install_hint(self) -> str:
        return ""
