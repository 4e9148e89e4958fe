"""Domain-specific errors for boardlink."""


class BoardlinkError(Exception):
    """Base error with a CLI exit code."""

    exit_code = 1

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code

    def to_dict(self) -> dict:
        return {"error": self.message, "exit_code": self.exit_code, "type": type(self).__name__}


class RegistryError(BoardlinkError):
    """Raised when a static board table is inconsistent. Fatal at startup."""


class BoardNotFoundError(BoardlinkError):
    """Raised when a variant id is not in the registry."""


class ValidationError(BoardlinkError):
    """Raised when an operation is rejected before any I/O."""


class UnknownPinError(ValidationError):
    """Raised when a pin label does not exist on the active board."""


class DeviceConnectionError(BoardlinkError):
    """Raised when a serial port cannot be opened.

    Exit codes:
        2: port not found / device disconnected
        3: port busy
        4: permission denied
    """

    exit_code = 2


class TransportError(BoardlinkError):
    """Raised when writing to or reading from an open transport fails."""


class DeviceReplyError(TransportError):
    """Raised when the board firmware answers a command with an error."""


class OperationTimeoutError(BoardlinkError):
    """Raised when no reply (or no toolchain exit) arrives before the deadline."""


class CancelledError(BoardlinkError):
    """Raised in a pending receive when its handle is closed."""


class BusyError(BoardlinkError):
    """Raised when a handle already has a command outstanding."""


class DeviceBusyError(BoardlinkError):
    """Raised when a device is already open for commands or being flashed."""

    exit_code = 3


class ToolchainNotFoundError(BoardlinkError):
    """Raised when the external toolchain binary is not installed."""
