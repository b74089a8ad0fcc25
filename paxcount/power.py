"""Battery level estimation and power chip register helpers."""

from __future__ import annotations

from typing import Callable, Optional

DEFAULT_VREF = 1100
NO_OF_SAMPLES = 64
BAT_MAX_VOLTAGE = 4200
BAT_MIN_VOLTAGE = 3100

# LoRaWAN DevStatusAns battery values
MCMD_DEVS_EXT_POWER = 0x00
MCMD_DEVS_BATT_MIN = 0x01
MCMD_DEVS_BATT_MAX = 0xFE
MCMD_DEVS_BATT_NOINFO = 0xFF

# IP5306 registers
IP5306_REG_SYS_0 = 0x00
IP5306_REG_SYS_1 = 0x01
IP5306_REG_SYS_2 = 0x02
IP5306_REG_CHG_0 = 0x20
IP5306_REG_CHG_1 = 0x21
IP5306_REG_CHG_2 = 0x22
IP5306_REG_CHG_3 = 0x23
IP5306_REG_CHG_4 = 0x24
IP5306_REG_READ_0 = 0x70
IP5306_REG_READ_1 = 0x71
IP5306_REG_READ_2 = 0x72
IP5306_REG_READ_3 = 0x77
IP5306_REG_READ_4 = 0x78

MapFunction = Callable[[int, int, int], int]


def _fraction(voltage: int, min_voltage: int, max_voltage: int) -> float:
    if max_voltage <= min_voltage:
        raise ValueError("max_voltage must exceed min_voltage")
    if voltage < min_voltage:
        raise ValueError("voltage below min_voltage")
    return (voltage - min_voltage) / (max_voltage - min_voltage)


def sigmoidal(voltage: int, min_voltage: int, max_voltage: int) -> int:
    """Symmetric sigmoidal mapping of a voltage to percent."""
    x = _fraction(voltage, min_voltage, max_voltage)
    result = int(105 - (105 / (1 + (1.724 * x) ** 5.5)))
    return min(result, 100)


def asigmoidal(voltage: int, min_voltage: int, max_voltage: int) -> int:
    """Asymmetric sigmoidal mapping of a voltage to percent."""
    x = _fraction(voltage, min_voltage, max_voltage)
    result = int(101 - (101 / (1 + (1.33 * x) ** 4.5) ** 3))
    return min(result, 100)


def linear(voltage: int, min_voltage: int, max_voltage: int) -> int:
    """Linear mapping of a voltage to percent."""
    _fraction(voltage, min_voltage, max_voltage)
    return ((voltage - min_voltage) * 100 // (max_voltage - min_voltage)) & 0xFF


def battery_percent(
    voltage: int,
    map_function: MapFunction = sigmoidal,
    min_voltage: int = BAT_MIN_VOLTAGE,
    max_voltage: int = BAT_MAX_VOLTAGE,
) -> int:
    """Estimated battery level 0..100 for a voltage in millivolts."""
    if voltage <= min_voltage:
        return 0
    if voltage >= max_voltage:
        return 100
    return map_function(voltage, min_voltage, max_voltage)


def lorawan_battery_level(percent: Optional[int], external_power: bool = False) -> int:
    """Battery value reported in a LoRaWAN DevStatusAns."""
    if external_power:
        return MCMD_DEVS_EXT_POWER
    if percent is None or percent == -1:
        return MCMD_DEVS_BATT_NOINFO
    level = percent / 100.0 * (MCMD_DEVS_BATT_MAX - MCMD_DEVS_BATT_MIN + 1)
    return int(level) & 0xFF


def ip5306_leds_to_percent(state: int) -> int:
    """Battery percent from the four charge LED bits: 25 per lit LED."""
    return sum(25 for bit in range(4) if state & (1 << bit))


def ip5306_get_bits(value: int, index: int, bits: int) -> int:
    """Extract a bit field from a register value."""
    return (value >> index) & ((1 << bits) - 1)


def ip5306_set_bits(value: int, index: int, bits: int, field: int) -> int:
    """Return the register value with a bit field replaced."""
    mask = (1 << bits) - 1
    value &= ~(mask << index)
    value |= (field & mask) << index
    return value & 0xFF


def ip5306_battery_level(register_value: int) -> int:
    """Battery percent from the READ_4 register (LED bits are inverted)."""
    state = (~ip5306_get_bits(register_value, 4, 4)) & 0x0F
    return ip5306_leds_to_percent(state)


def batt_sufficient(batt_level: int, min_level: int) -> bool:
    """Whether the battery suffices; an unknown level counts as sufficient."""
    if batt_level > 0:
        return batt_level > min_level
    return True