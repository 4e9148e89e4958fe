"""CLI entry point for boardlink."""

import json as jsonmod
import logging
from pathlib import Path

import click

from boardlink.api import BoardService
from boardlink.boards import list_boards
from boardlink.config import get_config_value, list_config, load_config_or_default, set_config_value
from boardlink.errors import BoardlinkError
from boardlink.serial.port import list_serial_ports, resolve_port_and_baud
from boardlink.toolchains import list_toolchains


@click.group()
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug).")
def main(verbose):
    """Drive microcontroller boards from block programs."""
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _fail(error: BoardlinkError, use_json: bool):
    if use_json:
        click.echo(jsonmod.dumps(error.to_dict()), err=True)
    else:
        click.echo(f"Error: {error.message}", err=True)
    raise SystemExit(error.exit_code)


def _parse_args(pairs: tuple[str, ...]) -> dict:
    args = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint="--arg")
        args[key] = value
    return args


def _echo_flash_result(result, use_json: bool):
    if use_json:
        click.echo(jsonmod.dumps(result.to_dict(), indent=2))
    elif result.ok:
        click.echo("Upload succeeded.")
    else:
        click.echo(f"Upload failed (exit code {result.exit_code}).", err=True)
    if not result.ok:
        raise SystemExit(result.exit_code or 1)


@main.command()
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def boards(use_json):
    """List supported boards."""
    board_list = list_boards()
    if use_json:
        data = [
            {
                "variant": b.variant,
                "name": b.name,
                "wire_format": b.wire_format,
                "baud_rate": b.serial.baud_rate,
                "usb_ids": [f"{vid:04X}:{pid:04X}" for vid, pid in b.usb_ids],
            }
            for b in board_list
        ]
        click.echo(jsonmod.dumps(data, indent=2))
        return

    click.echo(f"Supported boards ({len(board_list)}):\n")
    for b in board_list:
        click.echo(f"  {b.variant:<24} {b.name:<22} {b.wire_format:<8} {b.serial.baud_rate}")


@main.command()
@click.option("--board", "variants", multiple=True, help="Only match these board variants.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def scan(variants, use_json):
    """Identify attached boards."""
    result = BoardService(Path.cwd()).scan(variants or None)

    if use_json:
        click.echo(jsonmod.dumps({
            "boards": [
                {"variant": c.board.variant, "name": c.board.name, **c.port.to_dict()}
                for c in result.candidates
            ],
            "unrecognized": [p.to_dict() for p in result.unrecognized],
        }, indent=2))
        return

    if not result.candidates:
        click.echo("No supported boards found.")
    for c in result.candidates:
        click.echo(f"  {c.port.device:<25} {c.board.variant:<24} {c.board.name}")
    if result.unrecognized:
        click.echo(f"\n{len(result.unrecognized)} unrecognized port(s):")
        for p in result.unrecognized:
            click.echo(f"  {p.device:<25} {p.description}")


@main.command()
@click.argument("opcode")
@click.option("--board", "variant", required=True, help="Board variant. Use 'boardlink boards' to list.")
@click.option("--port", type=str, help="Serial port.")
@click.option("--baud", type=int, help="Override the board's baud rate.")
@click.option("-a", "--arg", "arg_pairs", multiple=True, help="Operation argument as KEY=VALUE.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def run(opcode, variant, port, baud, arg_pairs, use_json):
    """Run one block operation, e.g. run setPwmOutput -a PIN=IO8 -a OUT=255."""
    project_dir = Path.cwd()
    args = _parse_args(arg_pairs)
    service = BoardService(project_dir)

    try:
        if service.needs_connection(variant, opcode):
            port, baud = resolve_port_and_baud(port, baud, project_dir)
            with service.session(variant, port, baud_rate=baud) as handle:
                value = service.run(handle, opcode, args)
        else:
            value = service.evaluate(variant, opcode, args)
    except BoardlinkError as e:
        _fail(e, use_json)

    if use_json:
        click.echo(jsonmod.dumps({"opcode": opcode, "value": value}))
    elif value is not None:
        click.echo(value)
    else:
        click.echo("OK")


@main.command()
@click.argument("sketch", type=click.Path(exists=True, path_type=Path))
@click.option("--board", "variant", required=True, help="Board variant. Use 'boardlink boards' to list.")
@click.option("--port", type=str, help="Serial port.")
@click.option("--serial-number", type=str, help="Find the port by USB serial number.")
@click.option("--baud", type=int, help="Override the upload baud rate.")
@click.option("--tool-firmware", type=str, help="Override the burn tool firmware (K210 boards).")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def flash(sketch, variant, port, serial_number, baud, tool_firmware, use_json):
    """Compile SKETCH (a .ino file or sketch directory) and upload it."""
    project_dir = Path.cwd()
    if port is None and serial_number is None:
        port, _ = resolve_port_and_baud(port, None, project_dir)
    source = sketch if sketch.is_dir() else sketch.read_text()
    service = BoardService(project_dir)

    try:
        result = service.upload(
            variant, source,
            on_output=None if use_json else (lambda line: click.echo(line, nl=False)),
            port=port, serial_number=serial_number, baud=baud, tool_firmware=tool_firmware,
        )
    except BoardlinkError as e:
        _fail(e, use_json)
    _echo_flash_result(result, use_json)


@main.command()
@click.option("--board", "variant", required=True, help="Board variant. Use 'boardlink boards' to list.")
@click.option("--port", type=str, help="Serial port.")
@click.option("--serial-number", type=str, help="Find the port by USB serial number.")
@click.option("--baud", type=int, help="Override the upload baud rate.")
@click.option("--json", "use_json", is_flag=True, help="Output JSON.")
def firmware(variant, port, serial_number, baud, use_json):
    """Upload the realtime firmware that interactive commands talk to."""
    project_dir = Path.cwd()
    if port is None and serial_number is None:
        port, _ = resolve_port_and_baud(port, None, project_dir)
    service = BoardService(project_dir)

    try:
        result = service.upload_firmware(
            variant,
            port=port, serial_number=serial_number, baud=baud,
            on_output=None if use_json else (lambda line: click.echo(line, nl=False)),
        )
    except BoardlinkError as e:
        _fail(e, use_json)
    _echo_flash_result(result, use_json)


@main.command()
def doctor():
    """Check the toolchains and attached serial ports."""
    project_dir = Path.cwd()
    toolchain_config = load_config_or_default(project_dir).toolchain
    executables = {"arduino": toolchain_config.arduino_cli, "avrdude": toolchain_config.avrdude}
    ok = True

    for tc in list_toolchains():
        result = tc.doctor(executables.get(tc.name))
        if result["ok"]:
            click.echo(f"[OK] {tc.name}: {result['message']}")
        else:
            click.echo(f"[!!] {tc.name}: {result['message']}")
            ok = False

    ports = list_serial_ports()
    if ports:
        click.echo("[OK] Serial ports found:")
        for p in ports:
            click.echo(f"     {p.device}")
    else:
        click.echo("[!!] No serial ports detected. Is a board connected via USB?")
        ok = False

    if ok:
        click.echo("\nAll checks passed.")
    else:
        click.echo("\nSome checks failed. Fix the issues above.")


@main.command("config")
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--list", "show_list", is_flag=True, help="Show all config values.")
def config_cmd(key, value, show_list):
    """Get or set boardlink.toml configuration values."""
    project_dir = Path.cwd()

    if show_list:
        values = list_config(project_dir)
        if not values:
            click.echo("No configuration found.")
            return
        for k, v in sorted(values.items()):
            click.echo(f"  {k} = {v}")
        return

    if key and value:
        try:
            set_config_value(project_dir, key, value)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="KEY")
        click.echo(f"Set {key} = {value}")
        return

    if key:
        val = get_config_value(project_dir, key)
        if val is None:
            click.echo(f"{key} is not set.")
        else:
            click.echo(f"{key} = {val}")
        return

    click.echo("Usage: boardlink config <KEY> [VALUE] or boardlink config --list")
