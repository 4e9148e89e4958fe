"""Project configuration for boardlink (boardlink.toml)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    try:
        import tomli as tomllib  # type: ignore[no-redef]
    except ImportError:
        tomllib = None  # type: ignore[assignment]

CONFIG_FILE = "boardlink.toml"


@dataclass
class SerialConfig:
    port: str | None = None
    # None means the board's own default baud rate
    baud_rate: int | None = None


@dataclass
class TimeoutConfig:
    """Reply deadlines in seconds, per operation class."""
    command: float = 0.5
    read: float = 1.0
    flash: float = 300.0
    # Firmata version handshake when a handle opens
    connect: float = 5.0


@dataclass
class ToolchainConfig:
    arduino_cli: str = "arduino-cli"
    avrdude: str = "avrdude"
    build_dir: str = ".boardlink/build"
    firmware_dir: str = "firmware"


@dataclass
class ProjectConfig:
    serial: SerialConfig = field(default_factory=SerialConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)


def _read_toml(toml_path: Path) -> dict:
    if tomllib is None:
        raise ImportError("No TOML parser available (need Python 3.11+ or tomli)")
    with open(toml_path, "rb") as f:
        return tomllib.load(f)


def load_project_config(project_dir: Path | str) -> ProjectConfig:
    """Parse boardlink.toml and return a typed ProjectConfig."""
    project_dir = Path(project_dir)
    toml_path = project_dir / CONFIG_FILE
    if not toml_path.exists():
        raise FileNotFoundError(f"{CONFIG_FILE} not found in {project_dir}")

    data = _read_toml(toml_path)
    serial_data = data.get("serial", {})
    timeout_data = data.get("timeouts", {})
    toolchain_data = data.get("toolchain", {})

    defaults = TimeoutConfig()
    timeouts = TimeoutConfig(
        command=float(timeout_data.get("command", defaults.command)),
        read=float(timeout_data.get("read", defaults.read)),
        flash=float(timeout_data.get("flash", defaults.flash)),
        connect=float(timeout_data.get("connect", defaults.connect)),
    )
    toolchain = ToolchainConfig(**{
        k: str(v) for k, v in toolchain_data.items()
        if k in ToolchainConfig.__dataclass_fields__
    })

    return ProjectConfig(
        serial=SerialConfig(
            port=serial_data.get("port"),
            baud_rate=serial_data.get("baud_rate"),
        ),
        timeouts=timeouts,
        toolchain=toolchain,
    )


def load_config_or_default(project_dir: Path | str) -> ProjectConfig:
    """Like load_project_config, but an absent file yields the defaults."""
    try:
        return load_project_config(project_dir)
    except FileNotFoundError:
        return ProjectConfig()


def get_config_value(project_dir: Path | str, key: str):
    """Dotted key lookup, e.g. 'timeouts.read', 'serial.port'."""
    toml_path = Path(project_dir) / CONFIG_FILE
    if not toml_path.exists() or tomllib is None:
        return None

    data = _read_toml(toml_path)
    parts = key.split(".", 1)
    if len(parts) == 2:
        section, k = parts
        return data.get(section, {}).get(k)
    return data.get(key)


def _format_value(value) -> str:
    if isinstance(value, str):
        for convert in (int, float):
            try:
                value = convert(value)
                break
            except ValueError:
                continue
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return f'"{value}"'


def set_config_value(project_dir: Path | str, key: str, value) -> None:
    """Write a value to boardlink.toml using line-based editing."""
    toml_path = Path(project_dir) / CONFIG_FILE

    parts = key.split(".", 1)
    if len(parts) != 2:
        raise ValueError(f"Key must be dotted (section.key), got: {key}")
    section, k = parts
    val_str = _format_value(value)

    lines = toml_path.read_text().splitlines(keepends=True) if toml_path.exists() else []

    section_header = f"[{section}]"
    section_idx = None
    key_idx = None
    next_section_idx = None

    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped == section_header:
            section_idx = i
        elif section_idx is not None and next_section_idx is None:
            if stripped.startswith("[") and stripped.endswith("]"):
                next_section_idx = i
            elif re.match(rf"^{re.escape(k)}\s*=", stripped):
                key_idx = i

    if key_idx is not None:
        lines[key_idx] = f"{k} = {val_str}\n"
    elif section_idx is not None:
        insert_at = next_section_idx if next_section_idx is not None else len(lines)
        lines.insert(insert_at, f"{k} = {val_str}\n")
    else:
        if lines and not lines[-1].endswith("\n"):
            lines.append("\n")
        if lines:
            lines.append("\n")
        lines.append(f"{section_header}\n")
        lines.append(f"{k} = {val_str}\n")

    toml_path.write_text("".join(lines))


def list_config(project_dir: Path | str) -> dict:
    """Return a flat dotted-key dict of all config values."""
    toml_path = Path(project_dir) / CONFIG_FILE
    if not toml_path.exists() or tomllib is None:
        return {}

    result = {}
    for section, values in _read_toml(toml_path).items():
        if isinstance(values, dict):
            for k, v in values.items():
                result[f"{section}.{k}"] = v
        else:
            result[section] = values
    return result
