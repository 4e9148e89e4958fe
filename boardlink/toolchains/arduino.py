"""Arduino toolchain for boardlink, driving arduino-cli."""

from boardlink.toolchain import Toolchain, ToolchainDescriptor


class ArduinoToolchain(Toolchain):
    """Compile and upload sketches (or prebuilt images) with arduino-cli."""

    # -- Toolchain interface --------------------------------------------------

    @property
    def name(self) -> str:
        return "arduino"

    @property
    def executable(self) -> str:
        return "arduino-cli"

    def flash_commands(self, td: ToolchainDescriptor) -> list[list[str]]:
        if td.is_firmware:
            return [self.upload_command(td) + ["--input-file", str(td.firmware_path)]]
        return [self.compile_command(td), self.upload_command(td) + [str(td.source_path)]]

    def compile_command(self, td: ToolchainDescriptor) -> list[str]:
        """Return the arduino-cli compile argv."""
        argv = [self.executable, "compile", "--fqbn", td.fqbn]
        if td.build_dir is not None:
            argv += ["--build-path", str(td.build_dir)]
        return argv + [str(td.source_path)]

    def upload_command(self, td: ToolchainDescriptor) -> list[str]:
        """Return the arduino-cli upload argv, without the sketch or image."""
        argv = [self.executable, "upload", "--fqbn", td.fqbn, "--port", td.port]
        if td.upload_baud is not None:
            argv += ["--upload-property", f"upload.speed={td.upload_baud}"]
        if td.build_dir is not None and not td.is_firmware:
            argv += ["--input-dir", str(td.build_dir)]
        return argv

    def install_hint(self) -> str:
        return "Install from https://arduino.github.io/arduino-cli/"


# Auto-register this toolchain when the module is imported.
from boardlink.toolchains import register_toolchain  # noqa: E402

register_toolchain(ArduinoToolchain())
