"""Raspberry Pi Pico on the arduino-pico core."""

from boardlink.variants import (
    BAUDRATES_76800,
    EOL,
    TEXT_CAPABILITIES,
    TEXT_REPLIES,
    register_board,
)

register_board({
    "variant": "arduinoRaspberryPiPico",
    "name": "Raspberry Pi Pico",
    "usb_ids": [(0x2E8A, 0x000A)],
    # USB CDC only streams once DTR is asserted
    "serial": {"baud_rate": 115200, "dtr": True, "rts": False},
    "pins": {f"GP{i}": str(i) for i in range(29)},
    "pin_groups": {"analogPins": ("GP26", "GP27", "GP28")},
    "enums": {
        "mode": ("INPUT", "OUTPUT", "INPUT_PULLUP", "INPUT_PULLDOWN"),
        "level": ("HIGH", "LOW"),
        "interruptMode": ("RISING", "FALLING", "CHANGE", "LOW", "HIGH"),
        # 0 is the USB serial, 1 and 2 the hardware UARTs
        "serialNo": ("0", "1", "2"),
        "baudrate": BAUDRATES_76800,
        "eol": EOL,
        "dataType": ("INTEGER", "DECIMAL", "STRING"),
    },
    "aliases": {"raspberryPiPicoMultiSerialBegin": "multiSerialBegin"},
    "capabilities": TEXT_CAPABILITIES,
    "wire_format": "text",
    "replies": TEXT_REPLIES,
    "toolchain": {
        # Sketch: 1984KB FS: 64KB, 133MHz, -Os, no RTTI, no debug port, Pico SDK USB stack
        "fqbn": (
            "rp2040:rp2040:rpipico:flash=2097152_65536,freq=133,opt=Small,"
            "rtti=Disabled,dbgport=Disabled,dbglvl=None,usbstack=picosdk"
        ),
    },
})
