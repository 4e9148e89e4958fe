"""Kendryte K210 boards (Sipeed Maix family) on the Maixduino core."""

from boardlink.variants import (
    BAUDRATES_76800,
    EOL,
    TEXT_CAPABILITIES,
    TEXT_REPLIES,
    register_board,
)

# The K210 has no ADC.
_CAPABILITIES = TEXT_CAPABILITIES - {"readAnalogPin"}

_K210_COMMON = {
    "serial": {"baud_rate": 115200},
    "enums": {
        "mode": ("INPUT", "OUTPUT", "INPUT_PULLUP", "INPUT_PULLDOWN"),
        "level": ("HIGH", "LOW"),
        "interruptMode": ("RISING", "FALLING", "CHANGE", "LOW", "HIGH"),
        "serialNo": ("0", "1", "2", "3"),
        "baudrate": BAUDRATES_76800,
        "eol": EOL,
        "dataType": ("INTEGER", "DECIMAL", "STRING"),
    },
    "aliases": {
        "k210SetPwmOutput": "setPwmOutput",
        "k210MultiSerialBegin": "multiSerialBegin",
    },
    "capabilities": _CAPABILITIES,
    "wire_format": "text",
    "replies": {k: v for k, v in TEXT_REPLIES.items() if k in _CAPABILITIES},
}

# --- Sipeed Maixduino ---
# Declared first: its FTDI dual-channel bridge is unique to this board.

register_board(_K210_COMMON, {
    "variant": "arduinoK210Maixduino",
    "name": "Sipeed Maixduino",
    "usb_ids": [(0x0403, 0x6010)],
    "pins": {
        **{f"D{i}": str(i) for i in range(14)},
        "SDA": "14",
        "SCL": "15",
        "BOOT": "16",
    },
    "toolchain": {
        "fqbn": "Maixduino:k210:mduino:toolsloc=default,clksrc=400,burn_baudrate=1500000,burn_tool_firmware=mduino",
    },
})

# --- Sipeed Maix Bit ---

_K210 = {
    **_K210_COMMON,
    "variant": "arduinoK210",
    "name": "Sipeed Maix Bit",
    "usb_ids": [(0x1A86, 0x7523)],
    "serial": {"baud_rate": 115200, "dtr": False, "rts": False},
    "pins": {f"IO{i}": str(i) for i in range(48)},
    "toolchain": {
        "fqbn": "Maixduino:k210:m1:toolsloc=default,clksrc=400,burn_baudrate=2000000,burn_tool_firmware=dan",
    },
}

register_board(_K210)

# --- Sipeed Maix Dock ---
# Same module and bridge as the Maix Bit; never wins a USB match over it.

register_board(_K210, {
    "variant": "arduinoK210MaixDock",
    "name": "Sipeed Maix Dock",
})
