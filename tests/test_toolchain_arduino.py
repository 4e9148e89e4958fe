"""Tests for the arduino-cli toolchain."""

from pathlib import Path
from unittest.mock import patch

import pytest

from boardlink.toolchain import ToolchainDescriptor
from boardlink.toolchains.arduino import ArduinoToolchain


@pytest.fixture
def arduino():
    return ArduinoToolchain()


def _sketch(**kwargs):
    defaults = {
        "variant": "arduinoEsp32",
        "tool": "arduino",
        "fqbn": "esp32:esp32:esp32",
        "port": "/dev/ttyUSB0",
        "source_path": Path("build/arduinoEsp32"),
    }
    defaults.update(kwargs)
    return ToolchainDescriptor(**defaults)


class TestArduinoToolchainBasics:
    def test_name(self, arduino):
        assert arduino.name == "arduino"
        assert arduino.executable == "arduino-cli"


class TestFlashCommands:
    def test_compile_then_upload(self, arduino):
        compile_cmd, upload_cmd = arduino.flash_commands(_sketch())
        assert compile_cmd == ["arduino-cli", "compile", "--fqbn", "esp32:esp32:esp32", str(Path("build/arduinoEsp32"))]
        assert upload_cmd == [
            "arduino-cli", "upload", "--fqbn", "esp32:esp32:esp32",
            "--port", "/dev/ttyUSB0", str(Path("build/arduinoEsp32")),
        ]

    def test_build_dir_shared_by_compile_and_upload(self, arduino):
        compile_cmd, upload_cmd = arduino.flash_commands(_sketch(build_dir=Path("out")))
        assert compile_cmd[compile_cmd.index("--build-path") + 1] == str(Path("out"))
        assert upload_cmd[upload_cmd.index("--input-dir") + 1] == str(Path("out"))

    def test_upload_speed(self, arduino):
        _, upload_cmd = arduino.flash_commands(_sketch(upload_baud=115200))
        assert "--upload-property" in upload_cmd
        assert "upload.speed=115200" in upload_cmd

    def test_firmware_image(self, arduino):
        td = _sketch(source_path=None, firmware_path=Path("firmware/esp32.bin"), build_dir=Path("out"))
        commands = arduino.flash_commands(td)
        assert len(commands) == 1
        assert commands[0][:2] == ["arduino-cli", "upload"]
        assert commands[0][-2:] == ["--input-file", str(Path("firmware/esp32.bin"))]
        assert "--input-dir" not in commands[0]


class TestDoctor:
    @patch("boardlink.toolchain.shutil.which", return_value="/usr/local/bin/arduino-cli")
    def test_found(self, mock_which, arduino):
        result = arduino.doctor()
        assert result["ok"] is True
        assert "/usr/local/bin/arduino-cli" in result["message"]

    @patch("boardlink.toolchain.shutil.which", return_value=None)
    def test_missing(self, mock_which, arduino):
        result = arduino.doctor()
        assert result["ok"] is False
        assert "arduino.github.io" in result["message"]

    @patch("boardlink.toolchain.shutil.which", return_value="/opt/acli")
    def test_configured_executable(self, mock_which, arduino):
        arduino.doctor("/opt/acli")
        mock_which.assert_called_once_with("/opt/acli")
