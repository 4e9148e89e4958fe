"""Serial port utilities for boardlink."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path

import serial
from serial.tools.list_ports import comports

from boardlink.boards import SerialParams
from boardlink.config import load_project_config
from boardlink.errors import DeviceConnectionError

logger = logging.getLogger(__name__)

_BYTESIZES = {5: serial.FIVEBITS, 6: serial.SIXBITS, 7: serial.SEVENBITS, 8: serial.EIGHTBITS}
_STOPBITS = {1: serial.STOPBITS_ONE, 2: serial.STOPBITS_TWO}


@dataclass
class PortInfo:
    device: str
    description: str
    hwid: str
    vid: int | None = None
    pid: int | None = None
    serial_number: str | None = None

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "description": self.description,
            "hwid": self.hwid,
            "vid": f"{self.vid:04X}" if self.vid is not None else None,
            "pid": f"{self.pid:04X}" if self.pid is not None else None,
            "serial_number": self.serial_number,
        }


def list_serial_ports() -> list[PortInfo]:
    """List available serial ports with their USB identity."""
    ports = []
    for p in comports():
        ports.append(PortInfo(
            device=p.device,
            description=p.description,
            hwid=p.hwid,
            vid=p.vid,
            pid=p.pid,
            serial_number=p.serial_number,
        ))
    return ports


def open_serial(
    port: str,
    params: SerialParams,
    timeout: float = 0.05,
    baud_rate: int | None = None,
) -> serial.Serial:
    """Open a serial port with the board's serial parameters.

    `timeout` is the read slice used while polling for replies, not a reply
    deadline. Exit codes of the raised DeviceConnectionError:
        2: port not found / device disconnected
        3: port busy
        4: permission denied
    """
    if baud_rate is not None:
        params = replace(params, baud_rate=baud_rate)
    try:
        ser = serial.Serial(
            port,
            params.baud_rate,
            bytesize=_BYTESIZES[params.data_bits],
            parity=params.parity,
            stopbits=_STOPBITS[params.stop_bits],
            rtscts=params.rtscts,
            timeout=timeout,
        )
    except PermissionError as e:
        raise DeviceConnectionError(str(e), exit_code=4) from e
    except serial.SerialException as e:
        msg = str(e).lower()
        if "busy" in msg or "resource" in msg:
            raise DeviceConnectionError(str(e), exit_code=3) from e
        raise DeviceConnectionError(str(e), exit_code=2) from e

    if params.dtr is not None:
        ser.dtr = params.dtr
    if params.rts is not None:
        ser.rts = params.rts
    logger.debug("Opened %s at %d baud", port, params.baud_rate)
    return ser


def resolve_port_and_baud(
    cli_port: str | None,
    cli_baud: int | None,
    project_dir: Path | str,
) -> tuple[str, int | None]:
    """Resolve port and baud rate from CLI flags or config.

    Resolution order: CLI flag > boardlink.toml > error for the port; the baud
    rate may stay None, meaning the board's default.
    """
    port = cli_port
    baud = cli_baud

    if port is None or baud is None:
        try:
            config = load_project_config(project_dir)
            if port is None:
                port = config.serial.port
            if baud is None:
                baud = config.serial.baud_rate
        except FileNotFoundError:
            pass

    if port is None:
        import click
        raise click.UsageError(
            "No serial port specified. Use --port or set serial.port in boardlink.toml"
        )

    return port, baud
