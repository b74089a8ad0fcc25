"""Runtime configuration and shared data records of the counter device."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import IntEnum, IntFlag

PAYLOAD_BUFFER_SIZE = 256
LMIC_EVENTMSG_LEN = 17
VERSION_FIELD_SIZE = 10
COUNTERPORT = 1


class SniffType(IntEnum):
    """Source of a device count."""

    WIFI = 0
    BLE = 1
    BLE_ENS = 2


class PayloadMask(IntFlag):
    """Bits of the payload mask that select which data is sent."""

    COUNT_DATA = 1 << 0
    RESERVED_DATA = 1 << 1
    MEMS_DATA = 1 << 2
    GPS_DATA = 1 << 3
    SENSOR1_DATA = 1 << 4
    SENSOR2_DATA = 1 << 5
    SENSOR3_DATA = 1 << 6
    BATT_DATA = 1 << 7


class RunMode(IntEnum):
    """Run mode kept across restarts."""

    POWERCYCLE = 0
    NORMAL = 1
    WAKEUP = 2
    UPDATE = 3
    SLEEP = 4
    MAINTENANCE = 5


_RANGES = {
    "u8": (0, 0xFF),
    "u16": (0, 0xFFFF),
    "i16": (-0x8000, 0x7FFF),
}


def _ranged(kind: str, default: int = 0):
    return field(default=default, metadata={"range": kind})


@dataclass
class ConfigData:
    """The device's runtime configuration."""

    version: str = ""
    loradr: int = _ranged("u8")
    txpower: int = _ranged("u8")
    adrmode: int = _ranged("u8")
    screensaver: int = _ranged("u8")
    screenon: int = _ranged("u8")
    countermode: int = _ranged("u8")
    rssilimit: int = _ranged("i16")
    sendcycle: int = _ranged("u8")
    sleepcycle: int = _ranged("u16")
    wakesync: int = _ranged("u16")
    wifichancycle: int = _ranged("u8")
    wifichanmap: int = _ranged("u16")
    blescantime: int = _ranged("u8")
    blescan: int = _ranged("u8")
    wifiscan: int = _ranged("u8")
    wifiant: int = _ranged("u8")
    rgblum: int = _ranged("u8")
    payloadmask: int = _ranged("u8")

    def __post_init__(self) -> None:
        self.version_bytes  # validates the version length
        for f in fields(self):
            kind = f.metadata.get("range")
            if kind is None:
                continue
            low, high = _RANGES[kind]
            value = getattr(self, f.name)
            if not low <= value <= high:
                raise ValueError(f"{f.name}={value} out of range [{low}, {high}]")

    @property
    def version_bytes(self) -> bytes:
        """The version string as the fixed 10 byte field, zero padded."""
        raw = self.version.encode("ascii")
        if len(raw) > VERSION_FIELD_SIZE:
            raise ValueError(f"version longer than {VERSION_FIELD_SIZE} bytes")
        return raw.ljust(VERSION_FIELD_SIZE, b"\x00")


@dataclass
class GpsStatus:
    """A GPS fix: coordinates in millionths of a degree."""

    latitude: int = 0
    longitude: int = 0
    satellites: int = 0
    hdop: int = 0
    altitude: int = 0


@dataclass
class BmeStatus:
    """Readings of an environmental sensor."""

    iaq: float = 0.0
    iaq_accuracy: int = 0
    temperature: float = 0.0
    humidity: float = 0.0
    pressure: float = 0.0
    raw_temperature: float = 0.0
    raw_humidity: float = 0.0
    gas: float = 0.0


@dataclass
class SdsStatus:
    """Particulate matter readings."""

    pm10: float = 0.0
    pm25: float = 0.0


@dataclass(frozen=True)
class MessageBuffer:
    """A payload queued for sending on a port."""

    port: int
    message: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 0xFF:
            raise ValueError(f"port {self.port} out of range")
        if len(self.message) > PAYLOAD_BUFFER_SIZE:
            raise ValueError(
                f"message of {len(self.message)} bytes exceeds {PAYLOAD_BUFFER_SIZE}"
            )
        object.__setattr__(self, "message", bytes(self.message))

    @property
    def size(self) -> int:
        return len(self.message)