"""avrdude toolchain: writes prebuilt realtime firmware to AVR boards."""

from boardlink.errors import ValidationError
from boardlink.toolchain import Toolchain, ToolchainDescriptor

# avrdude's own default for the arduino bootloader programmer
DEFAULT_BAUD = 115200


class AvrdudeToolchain(Toolchain):

    @property
    def name(self) -> str:
        return "avrdude"

    @property
    def executable(self) -> str:
        return "avrdude"

    def flash_commands(self, td: ToolchainDescriptor) -> list[list[str]]:
        if not td.is_firmware:
            raise ValidationError("avrdude only uploads prebuilt firmware images")
        if not td.partno or not td.programmer:
            raise ValidationError(f"{td.variant} has no avrdude part number or programmer")
        return [[
            self.executable,
            "-p", td.partno,
            "-c", td.programmer,
            "-P", td.port,
            "-b", str(td.upload_baud or DEFAULT_BAUD),
            "-D",
            "-U", f"flash:w:{td.firmware_path}:i",
        ]]

    def install_hint(self) -> str:
        return "Install it with your package manager or the Arduino AVR core."


# Auto-register this toolchain when the module is imported.
from boardlink.toolchains import register_toolchain  # noqa: E402

register_toolchain(AvrdudeToolchain())
