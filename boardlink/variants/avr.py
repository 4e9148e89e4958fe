"""AVR Arduino boards driven over Firmata in realtime mode."""

from boardlink.variants import (
    BAUDRATES,
    FIRMATA_CAPABILITIES,
    FIRMATA_REPLIES,
    register_board,
)

# USB-serial bridges used by clone boards
_CH340 = (0x1A86, 0x7523)
_PL2303 = (0x067B, 0x2303)
_FT232 = (0x0403, 0x6001)


def _digital(count: int) -> dict[str, str]:
    return {f"D{i}": str(i) for i in range(count)}


def _analog(count: int, offset: int) -> dict[str, str]:
    # Firmata addresses analog inputs by their digital pin number
    return {f"A{i}": str(offset + i) for i in range(count)}


_FIRMATA_ENUMS = {
    "mode": ("INPUT", "OUTPUT", "INPUT_PULLUP"),
    "level": ("1", "0"),
    "interruptMode": ("RISING", "FALLING", "CHANGE", "LOW"),
    "baudrate": BAUDRATES,
    "dataType": ("WHOLE_NUMBER", "DECIMAL", "STRING"),
}

# --- Arduino Uno ---

_UNO = {
    "variant": "arduinoUno",
    "name": "Arduino Uno",
    # https://github.com/arduino/Arduino/blob/1.8.0/hardware/arduino/avr/boards.txt#L51-L58
    "usb_ids": [(0x2341, 0x0043), (0x2341, 0x0001), (0x2A03, 0x0043), (0x2341, 0x0243), _CH340],
    "serial": {"baud_rate": 57600},
    "pins": {**_digital(14), **_analog(6, 14)},
    "pin_groups": {
        "pwmPins": ("D3", "D5", "D6", "D9", "D10", "D11"),
        "analogPins": ("A0", "A1", "A2", "A3", "A4", "A5"),
    },
    "enums": _FIRMATA_ENUMS,
    "capabilities": FIRMATA_CAPABILITIES,
    "wire_format": "firmata",
    "wire_options": {"analog_pin_offset": 14},
    "replies": FIRMATA_REPLIES,
    "toolchain": {
        "fqbn": "arduino:avr:uno",
        "partno": "atmega328p",
        "programmer": "arduino",
        "upload_baud": 115200,
        "firmware": "arduinoUno.hex",
    },
}

register_board(_UNO)

# Same board with the two extra analog inputs of the SMD ATmega328P.
# It shares every USB id with the Uno, so it is selected by name only.
register_board(_UNO, {
    "variant": "arduinoUnoUltra",
    "name": "Arduino Uno Ultra",
    "usb_ids": [],
    "pins": {"A6": "20", "A7": "21"},
    "pin_groups": {"analogPins": ("A0", "A1", "A2", "A3", "A4", "A5", "A6", "A7")},
})

# --- Arduino Nano ---

register_board(_UNO, {
    "variant": "arduinoNano",
    "name": "Arduino Nano",
    "usb_ids": [_CH340, _PL2303, _FT232, (0x10C4, 0xEA61)],
    "serial": {"baud_rate": 115200},
    "pins": {"A6": "20", "A7": "21"},
    "pin_groups": {"analogPins": ("A0", "A1", "A2", "A3", "A4", "A5", "A6", "A7")},
    "toolchain": {"fqbn": "arduino:avr:nano:cpu=atmega328", "firmware": "arduinoNano.hex"},
})

# --- Arduino Mini ---

register_board(_UNO, {
    "variant": "arduinoMini",
    "name": "Arduino Mini",
    "usb_ids": [_CH340, _PL2303, _FT232, (0x10C4, 0xEA60)],
    "toolchain": {"fqbn": "arduino:avr:mini:cpu=atmega328", "firmware": "arduinoMini.hex"},
})

# --- Arduino Mega 2560 ---

register_board({
    "variant": "arduinoMega2560",
    "name": "Arduino Mega 2560",
    # https://github.com/arduino/Arduino/blob/1.8.0/hardware/arduino/avr/boards.txt#L175-L186
    "usb_ids": [
        (0x2341, 0x0010), (0x2341, 0x0042), (0x2A03, 0x0010),
        (0x2A03, 0x0042), (0x2341, 0x0210), (0x2341, 0x0242), _CH340,
    ],
    "serial": {"baud_rate": 57600},
    "pins": {**_digital(54), **_analog(16, 54)},
    "pin_groups": {
        "pwmPins": tuple(f"D{i}" for i in (*range(2, 14), 44, 45, 46)),
        "analogPins": tuple(f"A{i}" for i in range(16)),
    },
    "enums": {**_FIRMATA_ENUMS, "serialNo": ("0", "1", "2", "3")},
    "capabilities": FIRMATA_CAPABILITIES,
    "wire_format": "firmata",
    "wire_options": {"analog_pin_offset": 54},
    "replies": FIRMATA_REPLIES,
    "toolchain": {
        "fqbn": "arduino:avr:mega:cpu=atmega2560",
        "partno": "atmega2560",
        "programmer": "wiring",
        "upload_baud": 115200,
        "firmware": "arduinoMega2560.hex",
    },
})

# --- SparkFun Makey Makey ---

# ATmega32U4 (Leonardo) pin numbering; only the broken-out pins are listed.
register_board({
    "variant": "makeyMakey",
    "name": "SparkFun Makey Makey",
    "usb_ids": [
        (0x2341, 0x0036), (0x2341, 0x8036), (0x2A03, 0x0036),
        (0x2A03, 0x8036), (0x1B4F, 0x2B74), (0x1B4F, 0x2B75),
    ],
    "serial": {"baud_rate": 57600},
    "pins": {
        **{f"D{i}": str(i) for i in (0, 1, 2, 3, 4, 5, 14, 15, 16)},
        **_analog(6, 18),
    },
    "pin_groups": {
        "pwmPins": ("D3", "D5"),
        "analogPins": ("A0", "A1", "A2", "A3", "A4", "A5"),
    },
    "enums": _FIRMATA_ENUMS,
    "capabilities": FIRMATA_CAPABILITIES,
    "wire_format": "firmata",
    "wire_options": {"analog_pin_offset": 18},
    "replies": FIRMATA_REPLIES,
    # the 32U4 bootloader resets over USB, so arduino-cli writes the image
    "toolchain": {"fqbn": "SparkFun:avr:makeymakey", "firmware": "makeyMakey.hex"},
})
