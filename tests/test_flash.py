"""Tests for the build/flash orchestrator."""

import io
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from boardlink.boards import get_board
from boardlink.config import ToolchainConfig
from boardlink.errors import (
    DeviceBusyError,
    DeviceConnectionError,
    OperationTimeoutError,
    ToolchainNotFoundError,
    ValidationError,
)
from boardlink.flash import Flasher, platform_fqbn, port_for_serial_number
from boardlink.serial.connection import ConnectionManager
from boardlink.serial.port import PortInfo
from boardlink.toolchain import ToolchainDescriptor


@pytest.fixture
def config(tmp_path):
    return ToolchainConfig(build_dir=str(tmp_path / "build"), firmware_dir=str(tmp_path / "firmware"))


@pytest.fixture
def flasher(config):
    return Flasher(config=config)


def _process(output="", exit_code=0):
    proc = MagicMock()
    proc.stdout = io.StringIO(output)
    proc.wait.return_value = exit_code
    return proc


def _sketch_td(**kwargs):
    defaults = {
        "variant": "arduinoEsp32",
        "tool": "arduino",
        "fqbn": "esp32:esp32:esp32",
        "port": "/dev/ttyUSB0",
        "source_path": Path("sketch"),
    }
    defaults.update(kwargs)
    return ToolchainDescriptor(**defaults)


class TestPlatformFqbn:
    def test_per_platform_upload_speed(self):
        board = get_board("arduinoEsp8266NodeMCU")
        assert platform_fqbn(board, "win32") == "esp8266:esp8266:generic:baud=921600"
        assert platform_fqbn(board, "linux") == "esp8266:esp8266:generic:baud=460800"
        assert platform_fqbn(board, "darwin") == "esp8266:esp8266:generic:baud=460800"

    def test_single_fqbn(self):
        assert platform_fqbn(get_board("arduinoEsp32"), "win32") == "esp32:esp32:esp32"


class TestPortForSerialNumber:
    @patch("boardlink.flash.list_serial_ports")
    def test_found(self, mock_list):
        mock_list.return_value = [
            PortInfo(device="/dev/ttyUSB0", description="CP2102", hwid="", serial_number="0001"),
            PortInfo(device="/dev/ttyUSB1", description="CH340", hwid="", serial_number="A5B6"),
        ]
        assert port_for_serial_number("A5B6") == "/dev/ttyUSB1"

    @patch("boardlink.flash.list_serial_ports", return_value=[])
    def test_not_attached(self, mock_list):
        with pytest.raises(DeviceConnectionError, match="A5B6"):
            port_for_serial_number("A5B6")


class TestBuild:
    def test_sketch_text_written_to_build_dir(self, flasher, tmp_path):
        td = flasher.build(get_board("arduinoEsp32"), "void setup() {}\nvoid loop() {}\n", port="/dev/ttyUSB0")
        sketch = tmp_path / "build" / "arduinoEsp32"
        assert td.source_path == sketch
        assert (sketch / "arduinoEsp32.ino").read_text() == "void setup() {}\nvoid loop() {}\n"
        assert td.build_dir == sketch / "build"
        assert td.tool == "arduino"
        assert not td.is_firmware

    def test_existing_sketch_path(self, flasher, tmp_path):
        td = flasher.build(get_board("arduinoEsp32"), tmp_path / "blink", port="COM3")
        assert td.source_path == tmp_path / "blink"
        assert td.port == "COM3"

    def test_any_path_like_is_a_path(self, flasher, tmp_path):
        class SketchDir:
            def __fspath__(self):
                return str(tmp_path / "blink")

        td = flasher.build(get_board("arduinoEsp32"), SketchDir(), port="COM3")
        assert td.source_path == tmp_path / "blink"

    def test_string_naming_a_file_is_still_sketch_text(self, flasher, tmp_path):
        existing = tmp_path / "blink.ino"
        existing.write_text("void setup() {}\n")
        td = flasher.build(get_board("arduinoEsp32"), str(existing), port="COM3")
        assert td.source_path == tmp_path / "build" / "arduinoEsp32"
        assert (td.source_path / "arduinoEsp32.ino").read_text() == str(existing)

    def test_baud_rewrites_fqbn_option(self, flasher):
        board = get_board("arduinoK210")
        td = flasher.build(board, Path("sketch"), port="/dev/ttyUSB0", baud=115200)
        assert "burn_baudrate=115200" in td.fqbn
        assert "burn_baudrate=2000000" not in td.fqbn
        assert td.upload_baud is None
        # the registry's descriptor is untouched
        assert "burn_baudrate=2000000" in board.toolchain.fqbn

    def test_baud_without_fqbn_option(self, flasher):
        td = flasher.build(get_board("arduinoEsp32"), Path("sketch"), port="/dev/ttyUSB0", baud=115200)
        assert td.fqbn == "esp32:esp32:esp32"
        assert td.upload_baud == 115200

    def test_tool_firmware(self, flasher):
        td = flasher.build(get_board("arduinoK210"), Path("sketch"), port="/dev/ttyUSB0", tool_firmware="maixduino")
        assert td.fqbn.endswith("burn_tool_firmware=maixduino")
        assert td.tool_firmware == "maixduino"

    def test_tool_firmware_unsupported(self, flasher):
        with pytest.raises(ValidationError, match="tool firmware"):
            flasher.build(get_board("arduinoEsp32"), Path("sketch"), port="/dev/ttyUSB0", tool_firmware="x")

    @patch("boardlink.flash.port_for_serial_number", return_value="/dev/ttyUSB3")
    def test_port_from_serial_number(self, mock_lookup, flasher):
        td = flasher.build(get_board("arduinoEsp32"), Path("sketch"), serial_number="A5B6")
        assert td.port == "/dev/ttyUSB3"
        assert td.serial_number == "A5B6"

    def test_needs_port_or_serial_number(self, flasher):
        with pytest.raises(ValidationError, match="serial number"):
            flasher.build(get_board("arduinoEsp32"), Path("sketch"))


class TestBuildFirmware:
    def test_avr_uses_avrdude(self, flasher, tmp_path):
        (tmp_path / "firmware").mkdir()
        (tmp_path / "firmware" / "arduinoUno.hex").write_text(":00000001FF\n")
        td = flasher.build_firmware(get_board("arduinoUno"), port="/dev/ttyACM0")
        assert td.tool == "avrdude"
        assert td.partno == "atmega328p"
        assert td.programmer == "arduino"
        assert td.upload_baud == 115200
        assert td.firmware_path == tmp_path / "firmware" / "arduinoUno.hex"

    def test_nano_inherits_avrdude_part(self, flasher, tmp_path):
        (tmp_path / "firmware").mkdir()
        (tmp_path / "firmware" / "arduinoNano.hex").write_text(":00000001FF\n")
        td = flasher.build_firmware(get_board("arduinoNano"), port="/dev/ttyUSB0")
        assert td.tool == "avrdude"
        assert td.partno == "atmega328p"

    def test_board_toolchain_without_part_number(self, flasher, tmp_path):
        (tmp_path / "firmware").mkdir()
        (tmp_path / "firmware" / "makeyMakey.hex").write_text(":00000001FF\n")
        td = flasher.build_firmware(get_board("makeyMakey"), port="/dev/ttyACM0")
        assert td.tool == "arduino"
        assert td.fqbn == "SparkFun:avr:makeymakey"
        assert td.partno == ""
        assert td.is_firmware

    def test_explicit_image(self, flasher, tmp_path):
        image = tmp_path / "custom.hex"
        image.write_text(":00000001FF\n")
        td = flasher.build_firmware(get_board("arduinoUno"), port="/dev/ttyACM0", firmware=image)
        assert td.firmware_path == image

    def test_missing_image(self, flasher):
        with pytest.raises(ValidationError, match="not found"):
            flasher.build_firmware(get_board("arduinoUno"), port="/dev/ttyACM0")

    def test_board_without_firmware(self, flasher):
        with pytest.raises(ValidationError, match="no realtime firmware"):
            flasher.build_firmware(get_board("arduinoEsp32"), port="/dev/ttyUSB0")


class TestFlash:
    @patch("boardlink.flash.subprocess.Popen")
    def test_success_runs_compile_then_upload(self, mock_popen, flasher):
        mock_popen.side_effect = [_process("Sketch uses 1234 bytes\n"), _process("Hard resetting\n")]
        lines = []
        result = flasher.flash(_sketch_td(), on_output=lines.append)

        assert result.ok is True
        assert result.exit_code == 0
        assert result.log == "Sketch uses 1234 bytes\nHard resetting\n"
        assert lines == ["Sketch uses 1234 bytes\n", "Hard resetting\n"]
        assert mock_popen.call_count == 2
        assert mock_popen.call_args_list[0][0][0][:2] == ["arduino-cli", "compile"]
        assert mock_popen.call_args_list[1][0][0][:2] == ["arduino-cli", "upload"]

    @patch("boardlink.flash.subprocess.Popen")
    def test_compile_failure_returns_log(self, mock_popen, flasher):
        mock_popen.return_value = _process("sketch.ino:3:1: error: expected ';'\n", exit_code=1)
        result = flasher.flash(_sketch_td())

        assert result.ok is False
        assert result.exit_code == 1
        assert "expected ';'" in result.log
        # upload never runs after a failed compile
        assert mock_popen.call_count == 1

    @patch("boardlink.flash.subprocess.Popen")
    def test_port_open_for_commands(self, mock_popen, config):
        connections = ConnectionManager(opener=MagicMock())
        connections.open(get_board("arduinoEsp32"), "/dev/ttyUSB0")
        flasher = Flasher(connections=connections, config=config)

        with pytest.raises(DeviceBusyError, match="open for commands"):
            flasher.flash(_sketch_td())
        mock_popen.assert_not_called()

    @patch("boardlink.flash.subprocess.Popen")
    def test_port_held_while_flashing(self, mock_popen, config):
        connections = ConnectionManager(opener=MagicMock())
        flasher = Flasher(connections=connections, config=config)
        held = []

        def _output():
            held.append(connections.is_reserved("/dev/ttyUSB0"))
            yield "Uploading...\n"

        proc = MagicMock()
        proc.stdout.__iter__.side_effect = _output
        proc.wait.return_value = 0
        mock_popen.return_value = proc

        assert flasher.flash(_sketch_td()).ok
        assert held == [True, True]
        assert not connections.is_reserved("/dev/ttyUSB0")

    @patch("boardlink.flash.subprocess.Popen", side_effect=FileNotFoundError)
    def test_missing_binary(self, mock_popen, flasher):
        with pytest.raises(ToolchainNotFoundError, match="arduino-cli"):
            flasher.flash(_sketch_td())

    def test_unknown_tool(self, flasher):
        with pytest.raises(ToolchainNotFoundError):
            flasher.flash(_sketch_td(tool="nonexistent"))

    @patch("boardlink.flash.subprocess.Popen")
    def test_configured_executable(self, mock_popen, tmp_path):
        flasher = Flasher(config=ToolchainConfig(arduino_cli="/opt/arduino/arduino-cli", build_dir=str(tmp_path)))
        mock_popen.side_effect = [_process(), _process()]
        flasher.flash(_sketch_td())
        assert mock_popen.call_args_list[0][0][0][0] == "/opt/arduino/arduino-cli"

    @patch("boardlink.flash.subprocess.Popen")
    def test_not_flashing_afterwards(self, mock_popen, flasher):
        mock_popen.return_value = _process(exit_code=2)
        flasher.flash(_sketch_td())
        assert not flasher.is_flashing("/dev/ttyUSB0")

    @patch("boardlink.flash.subprocess.Popen")
    def test_output_callback_failure_kills_process(self, mock_popen, flasher):
        proc = _process("Uploading...\n")
        proc.poll.return_value = None
        mock_popen.return_value = proc

        def _broken(line):
            raise RuntimeError("console closed")

        with pytest.raises(RuntimeError, match="console closed"):
            flasher.flash(_sketch_td(), on_output=_broken)
        proc.kill.assert_called_once()
        proc.wait.assert_called_once()
        assert not flasher.is_flashing("/dev/ttyUSB0")

    @patch("boardlink.flash.subprocess.Popen")
    def test_finished_process_not_killed(self, mock_popen, flasher):
        proc = _process("done\n")
        proc.poll.return_value = 0
        mock_popen.return_value = proc
        flasher.flash(_sketch_td(source_path=None, firmware_path=Path("fw.bin")))
        proc.kill.assert_not_called()

    @patch("boardlink.flash.subprocess.Popen")
    def test_timeout_kills_process(self, mock_popen, config):
        killed = threading.Event()

        def _output():
            killed.wait(5)
            return iter([])

        proc = MagicMock()
        proc.stdout.__iter__.side_effect = _output
        proc.kill.side_effect = killed.set
        proc.wait.return_value = -9
        mock_popen.return_value = proc

        flasher = Flasher(config=config, timeout=0.05)
        with pytest.raises(OperationTimeoutError):
            flasher.flash(_sketch_td())
        proc.kill.assert_called_once()
        assert not flasher.is_flashing("/dev/ttyUSB0")


class TestAbort:
    def test_nothing_running(self, flasher):
        assert flasher.abort() is False

    @patch("boardlink.flash.subprocess.Popen")
    def test_abort_terminates_process(self, mock_popen, flasher):
        def _output():
            yield "Uploading...\n"
            assert flasher.is_flashing("/dev/ttyUSB0")
            assert flasher.abort() is True

        proc = MagicMock()
        proc.stdout.__iter__.side_effect = _output
        proc.wait.return_value = -15
        mock_popen.return_value = proc

        result = flasher.flash(_sketch_td(source_path=None, firmware_path=Path("fw.bin")))

        proc.terminate.assert_called_once()
        assert result.ok is False
        assert result.exit_code == -15
        assert result.log == "Uploading...\nUpload aborted\n"
