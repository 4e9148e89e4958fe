"""Espressif ESP32 and ESP8266 boards on the Arduino cores."""

from boardlink.variants import (
    BAUDRATES_76800,
    ESP32_CAPABILITIES,
    ESP32_REPLIES,
    EOL,
    TEXT_CAPABILITIES,
    TEXT_REPLIES,
    register_board,
)

_CH340 = (0x1A86, 0x7523)
_CP2102 = (0x10C4, 0xEA60)

# --- ESP32 ---

_ESP32_GPIO = (0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15, 16, 17, 18, 19,
               21, 22, 23, 25, 26, 27, 32, 33, 34, 35, 36, 39)
# GPIO 34-39 are input only
_ESP32_OUTPUTS = tuple(f"IO{i}" for i in _ESP32_GPIO if i < 34)

register_board({
    "variant": "arduinoEsp32",
    "name": "ESP32",
    "usb_ids": [_CH340, (0x1A86, 0x55D4), _CP2102],
    "serial": {"baud_rate": 57600},
    "pins": {f"IO{i}": str(i) for i in _ESP32_GPIO},
    "pin_groups": {
        "pwmPins": _ESP32_OUTPUTS,
        "servoPins": _ESP32_OUTPUTS,
        "analogPins": tuple(f"IO{i}" for i in (0, 2, 4, 12, 13, 14, 15, 25, 26, 27, 32, 33, 34, 35, 36, 39)),
        "dacPins": ("IO25", "IO26"),
        "touchPins": tuple(f"IO{i}" for i in (0, 2, 4, 12, 13, 14, 15, 27, 32, 33)),
    },
    "enums": {
        "mode": ("INPUT", "OUTPUT", "INPUT_PULLUP"),
        "level": ("HIGH", "LOW"),
        "interruptMode": ("RISING", "FALLING", "CHANGE", "LOW", "HIGH"),
        "serialNo": ("0", "1", "2"),
        "baudrate": BAUDRATES_76800,
        "eol": EOL,
        "dataType": ("WHOLE_NUMBER", "DECIMAL", "STRING"),
        # 8 low-speed and 8 high-speed LEDC channels
        "ledcChannels": tuple(str(ch) for ch in range(16)),
    },
    "capabilities": ESP32_CAPABILITIES,
    "wire_format": "text",
    "replies": ESP32_REPLIES,
    "toolchain": {"fqbn": "esp32:esp32:esp32"},
})

# --- ESP8266 ---

_ESP8266_COMMON = {
    "usb_ids": [_CH340, _CP2102],
    "serial": {"baud_rate": 57600, "rtscts": True},
    "enums": {
        "mode": ("INPUT", "OUTPUT", "INPUT_PULLUP"),
        "level": ("1", "0"),
        "interruptMode": ("RISING", "FALLING", "CHANGE"),
        "serialNo": ("0",),
        "baudrate": BAUDRATES_76800,
        "eol": EOL,
        "dataType": ("INTEGER", "DECIMAL", "STRING"),
    },
    "capabilities": TEXT_CAPABILITIES,
    "wire_format": "text",
    "replies": TEXT_REPLIES,
}

# NodeMCU silk-screen labels differ from GPIO numbers (D1=GPIO5, D2=GPIO4, ...)
_NODEMCU_DIGITAL = ("D1", "D2", "D3", "D4", "D5", "D6", "D7", "D8")

register_board(_ESP8266_COMMON, {
    "variant": "arduinoEsp8266NodeMCU",
    "name": "NodeMCU (ESP8266)",
    "pins": {
        "D0": "16", "D1": "5", "D2": "4", "D3": "0", "D4": "2", "D5": "14",
        "D6": "12", "D7": "13", "D8": "15", "RX": "3", "TX": "1",
        "SD2": "9", "SD3": "10", "A0": "A0",
    },
    "pin_groups": {
        "pwmPins": _NODEMCU_DIGITAL,
        "interruptPins": _NODEMCU_DIGITAL,
        "analogPins": ("A0",),
    },
    "toolchain": {
        "fqbn_by_platform": {
            "darwin": "esp8266:esp8266:generic:baud=460800",
            "linux": "esp8266:esp8266:generic:baud=460800",
            "win32": "esp8266:esp8266:generic:baud=921600",
        },
    },
})

register_board(_ESP8266_COMMON, {
    "variant": "arduinoEsp8266",
    "name": "ESP8266",
    "pins": {**{f"GPIO{i}": str(i) for i in range(17)}, "A0": "A0"},
    "pin_groups": {
        "pwmPins": tuple(f"GPIO{i}" for i in range(16)),
        "interruptPins": tuple(f"GPIO{i}" for i in range(16)),
        "analogPins": ("A0",),
    },
    "toolchain": {"fqbn": "esp8266:esp8266:generic:baud=921600"},
})
