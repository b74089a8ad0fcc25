"""Encoders that turn device readings into radio payload bytes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from .config import (
    PAYLOAD_BUFFER_SIZE,
    BmeStatus,
    ConfigData,
    GpsStatus,
    SdsStatus,
    SniffType,
)

# Cayenne LPP 1.0 channels (dynamic sensor payload)
LPP_GPS_CHANNEL = 20
LPP_COUNT_WIFI_CHANNEL = 21
LPP_COUNT_BLE_CHANNEL = 22
LPP_BATT_CHANNEL = 23
LPP_BUTTON_CHANNEL = 24
LPP_ADR_CHANNEL = 25
LPP_TEMPERATURE_CHANNEL = 26
LPP_ALARM_CHANNEL = 27
LPP_MSG_CHANNEL = 28
LPP_HUMIDITY_CHANNEL = 29
LPP_BAROMETER_CHANNEL = 30
LPP_AIR_CHANNEL = 31
LPP_PARTMATTER10_CHANNEL = 32
LPP_PARTMATTER25_CHANNEL = 33

# Cayenne LPP 2.0 data types
LPP_GPS = 136
LPP_TEMPERATURE = 103
LPP_DIGITAL_INPUT = 0
LPP_DIGITAL_OUTPUT = 1
LPP_ANALOG_INPUT = 2
LPP_LUMINOSITY = 101
LPP_PRESENCE = 102
LPP_HUMIDITY = 104
LPP_BAROMETER = 115


class Encoding(IntEnum):
    """Payload wire formats."""

    PLAIN = 1
    PACKED = 2
    CAYENNE_DYNAMIC = 3
    CAYENNE_PACKED = 4


@dataclass(frozen=True)
class PayloadFeatures:
    """Hardware the device has, deciding which fields an encoder emits."""

    gps: bool = False
    bme: bool = False
    sds011: bool = False
    button: bool = False
    sensors: bool = False
    battery: bool = False
    opensensebox: bool = False
    send_cycle: int = field(default=0)  # payload send cycle in units of 2 seconds


def _tdiv(value: int, divisor: int) -> int:
    """Integer division truncating toward zero."""
    quotient = abs(value) // abs(divisor)
    return quotient if (value >= 0) == (divisor > 0) else -quotient


class PayloadConvert(ABC):
    """Accumulates payload bytes in a bounded buffer."""

    encoding: Encoding

    def __init__(
        self,
        features: Optional[PayloadFeatures] = None,
        capacity: int = PAYLOAD_BUFFER_SIZE,
    ) -> None:
        if capacity < 0:
            raise ValueError("capacity must not be negative")
        self.features = features if features is not None else PayloadFeatures()
        self.capacity = capacity
        self._buffer = bytearray()

    def reset(self) -> None:
        """Discard all bytes written so far."""
        self._buffer.clear()

    @property
    def size(self) -> int:
        return len(self._buffer)

    @property
    def buffer(self) -> bytes:
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    def __bytes__(self) -> bytes:
        return bytes(self._buffer)

    def _put(self, data: bytes) -> None:
        if len(self._buffer) + len(data) > self.capacity:
            raise OverflowError(
                f"payload of {len(self._buffer) + len(data)} bytes "
                f"exceeds capacity {self.capacity}"
            )
        self._buffer.extend(data)

    def _put_be(self, value: int, size: int) -> None:
        self._put((int(value) & ((1 << (8 * size)) - 1)).to_bytes(size, "big"))

    def _put_le(self, value: int, size: int) -> None:
        self._put((int(value) & ((1 << (8 * size)) - 1)).to_bytes(size, "little"))

    def _put_u8(self, value: int) -> None:
        self._put_be(value, 1)

    def add_byte(self, value: int) -> None:
        """Append one raw byte."""
        if not 0 <= value <= 0xFF:
            raise ValueError(f"byte value {value} out of range")
        self._put(bytes([value]))

    def _add_chars(self, text: str) -> None:
        for char in text.encode("ascii"):
            self.add_byte(char)

    def _sensor_bytes(self, data: bytes) -> bytes:
        if not data:
            raise ValueError("sensor frame lacks its length byte")
        length = data[0]
        body = bytes(data[1 : 1 + length])
        if len(body) < length:
            raise ValueError("sensor frame shorter than its length byte")
        return body

    @abstractmethod
    def add_count(self, value: int, sniff_type: int) -> None: ...

    @abstractmethod
    def add_voltage(self, value: int) -> None: ...

    @abstractmethod
    def add_config(self, config: ConfigData) -> None: ...

    @abstractmethod
    def add_status(
        self,
        voltage: int,
        uptime: int,
        cputemp: float,
        mem: int,
        reset0: int,
        restarts: int,
    ) -> None: ...

    @abstractmethod
    def add_gps(self, gps: GpsStatus) -> None: ...

    @abstractmethod
    def add_bme(self, bme: BmeStatus) -> None: ...

    @abstractmethod
    def add_sds(self, sds: SdsStatus) -> None: ...

    @abstractmethod
    def add_button(self, value: int) -> None: ...

    @abstractmethod
    def add_sensor(self, data: bytes) -> None: ...

    @abstractmethod
    def add_time(self, value: int) -> None: ...


class PlainPayload(PayloadConvert):
    """Plain big-endian format without special encoding."""

    encoding = Encoding.PLAIN

    def add_count(self, value: int, sniff_type: int) -> None:
        self._put_be(value, 2)

    def add_voltage(self, value: int) -> None:
        self._put_be(value, 2)

    def add_config(self, config: ConfigData) -> None:
        for value in (
            config.loradr,
            config.txpower,
            config.adrmode,
            config.screensaver,
            config.screenon,
            config.countermode,
        ):
            self._put_u8(value)
        self._put_be(config.rssilimit, 2)
        self._put_u8(config.sendcycle)
        self._put_u8(config.wifichancycle)
        self._put_u8(config.blescantime)
        self._put_u8(config.blescan)
        self._put_u8(config.wifiant)
        self._put_be(config.sleepcycle, 2)
        self._put_u8(config.payloadmask)
        self._put_u8(0)  # reserved
        self._put(config.version_bytes)

    def add_status(self, voltage, uptime, cputemp, mem, reset0, restarts) -> None:
        self._put_be(voltage, 2)
        self._put_be(uptime, 8)
        self._put_u8(int(cputemp))
        self._put_be(mem, 4)
        self._put_u8(reset0)
        self._put_be(restarts, 4)

    def add_gps(self, gps: GpsStatus) -> None:
        if not self.features.gps:
            return
        self._put_be(gps.latitude, 4)
        self._put_be(gps.longitude, 4)
        if not self.features.opensensebox:
            self._put_u8(gps.satellites)
            self._put_be(gps.hdop, 2)
            self._put_be(gps.altitude, 2)

    def add_sensor(self, data: bytes) -> None:
        if self.features.sensors:
            self._put(self._sensor_bytes(data))

    def add_bme(self, bme: BmeStatus) -> None:
        if not self.features.bme:
            return
        self._put_be(int(bme.temperature), 2)
        self._put_be(int(bme.pressure), 2)
        self._put_be(int(bme.humidity), 2)
        self._put_be(int(bme.iaq), 2)

    def add_sds(self, sds: SdsStatus) -> None:
        if not self.features.sds011:
            return
        self._add_chars(f",{sds.pm10:5.1f}")
        self._add_chars(f",{sds.pm25:5.1f}")

    def add_button(self, value: int) -> None:
        if self.features.button:
            self._put_u8(value)

    def add_time(self, value: int) -> None:
        self._put_be(value, 4)


class PackedPayload(PayloadConvert):
    """Packed little-endian format of the LoRa serialization encoder."""

    encoding = Encoding.PACKED

    def _write_bitmap(self, *flags: bool) -> None:
        bitmap = 0
        for position, flag in enumerate(flags):
            if flag:
                bitmap |= 1 << (7 - position)
        self._put_u8(bitmap)

    def _write_float(self, value: float) -> None:
        # 16 bit two's complement with two decimals, most significant byte first
        self._put_be(int(value * 100), 2)

    def add_count(self, value: int, sniff_type: int) -> None:
        self._put_le(value, 2)

    def add_voltage(self, value: int) -> None:
        self._put_le(value, 2)

    def add_config(self, config: ConfigData) -> None:
        self._put_u8(config.loradr)
        self._put_u8(config.txpower)
        self._put_le(config.rssilimit, 2)
        self._put_u8(config.sendcycle)
        self._put_u8(config.wifichancycle)
        self._put_u8(config.blescantime)
        self._put_le(config.sleepcycle, 2)
        self._write_bitmap(
            bool(config.adrmode),
            bool(config.screensaver),
            bool(config.screenon),
            bool(config.countermode),
            bool(config.blescan),
            bool(config.wifiant),
            False,
            False,
        )
        self._put_u8(config.payloadmask)
        self._put(config.version_bytes)

    def add_status(self, voltage, uptime, cputemp, mem, reset0, restarts) -> None:
        self._put_le(voltage, 2)
        self._put_le(uptime, 8)
        self._put_u8(int(cputemp))
        self._put_le(mem, 4)
        self._put_u8(reset0)
        self._put_le(restarts, 4)

    def add_gps(self, gps: GpsStatus) -> None:
        if not self.features.gps:
            return
        self._put_le(gps.latitude, 4)
        self._put_le(gps.longitude, 4)
        if not self.features.opensensebox:
            self._put_u8(gps.satellites)
            self._put_le(gps.hdop, 2)
            self._put_le(gps.altitude, 2)

    def add_sensor(self, data: bytes) -> None:
        if self.features.sensors:
            self._put(self._sensor_bytes(data))

    def add_bme(self, bme: BmeStatus) -> None:
        if not self.features.bme:
            return
        self._write_float(bme.temperature)
        self._put_le(int(bme.pressure * 10), 2)
        self._put_le(int(bme.humidity * 100), 2)
        self._put_le(int(bme.iaq * 100), 2)

    def add_sds(self, sds: SdsStatus) -> None:
        if not self.features.sds011:
            return
        self._put_le(int(sds.pm10 * 10), 2)
        self._put_le(int(sds.pm25 * 10), 2)

    def add_button(self, value: int) -> None:
        if self.features.button:
            self._put_u8(value)

    def add_time(self, value: int) -> None:
        self._put_le(value, 4)


class CayennePayload(PayloadConvert):
    """Cayenne LPP format, dynamic (with channels) or packed (without)."""

    def __init__(
        self,
        features: Optional[PayloadFeatures] = None,
        capacity: int = PAYLOAD_BUFFER_SIZE,
        encoding: Encoding = Encoding.CAYENNE_DYNAMIC,
    ) -> None:
        encoding = Encoding(encoding)
        if encoding not in (Encoding.CAYENNE_DYNAMIC, Encoding.CAYENNE_PACKED):
            raise ValueError(f"{encoding.name} is not a Cayenne encoding")
        super().__init__(features, capacity)
        self.encoding = encoding

    @property
    def dynamic(self) -> bool:
        return self.encoding is Encoding.CAYENNE_DYNAMIC

    def _channel(self, channel: int) -> None:
        if self.dynamic:
            self._put_u8(channel)

    def add_sds(self, sds: SdsStatus) -> None:
        if not self.features.sds011:
            return
        self._channel(LPP_PARTMATTER10_CHANNEL)
        self._put_u8(LPP_LUMINOSITY)
        self._put_be(int(sds.pm10 * 10), 2)
        self._channel(LPP_PARTMATTER25_CHANNEL)
        self._put_u8(LPP_LUMINOSITY)
        self._put_be(int(sds.pm25 * 10), 2)

    def add_count(self, value: int, sniff_type: int) -> None:
        if sniff_type == SniffType.WIFI:
            channel = LPP_COUNT_WIFI_CHANNEL
        elif sniff_type == SniffType.BLE:
            channel = LPP_COUNT_BLE_CHANNEL
        else:
            return
        self._channel(channel)
        self._put_u8(LPP_LUMINOSITY)
        self._put_be(value, 2)

    def add_voltage(self, value: int) -> None:
        self._channel(LPP_BATT_CHANNEL)
        self._put_u8(LPP_ANALOG_INPUT)
        self._put_be(value // 10, 2)

    def add_config(self, config: ConfigData) -> None:
        self._channel(LPP_ADR_CHANNEL)
        self._put_u8(LPP_DIGITAL_INPUT)
        self._put_u8(config.adrmode)

    def add_status(self, voltage, uptime, cputemp, mem, reset0, restarts) -> None:
        if self.features.battery:
            self._channel(LPP_BATT_CHANNEL)
            self._put_u8(LPP_ANALOG_INPUT)
            self._put_be(voltage // 10, 2)
        self._channel(LPP_TEMPERATURE_CHANNEL)
        self._put_u8(LPP_TEMPERATURE)
        self._put_be(int(cputemp * 10), 2)

    def add_gps(self, gps: GpsStatus) -> None:
        if not self.features.gps:
            return
        self._channel(LPP_GPS_CHANNEL)
        self._put_u8(LPP_GPS)
        self._put_be(_tdiv(gps.latitude, 100), 3)
        self._put_be(_tdiv(gps.longitude, 100), 3)
        self._put_be(gps.altitude * 100, 3)

    def add_sensor(self, data: bytes) -> None:
        """Cayenne has no frame for user sensors; the data is not encoded."""

    def add_bme(self, bme: BmeStatus) -> None:
        if not self.features.bme:
            return
        self._channel(LPP_TEMPERATURE_CHANNEL)
        self._put_u8(LPP_TEMPERATURE)
        self._put_be(int(bme.temperature * 10.0), 2)
        self._channel(LPP_BAROMETER_CHANNEL)
        self._put_u8(LPP_BAROMETER)
        self._put_be(int(bme.pressure * 10), 2)
        self._channel(LPP_HUMIDITY_CHANNEL)
        self._put_u8(LPP_HUMIDITY)
        self._put_u8(int(bme.humidity * 2.0))
        self._channel(LPP_AIR_CHANNEL)
        self._put_u8(LPP_LUMINOSITY)
        self._put_be(int(bme.iaq), 2)

    def add_button(self, value: int) -> None:
        if not self.features.button:
            return
        self._channel(LPP_BUTTON_CHANNEL)
        self._put_u8(LPP_DIGITAL_INPUT)
        self._put_u8(value)

    def add_time(self, value: int) -> None:
        if self.dynamic:
            return
        self._put_u8(0x03)  # config mask: UTC time and TX period
        self._put_be(value, 4)
        self._put_be(self.features.send_cycle * 2, 4)


def make_payload(
    encoding: int, features: Optional[PayloadFeatures] = None
) -> PayloadConvert:
    """Create the encoder for a payload format."""
    encoding = Encoding(encoding)
    if encoding is Encoding.PLAIN:
        return PlainPayload(features)
    if encoding is Encoding.PACKED:
        return PackedPayload(features)
    return CayennePayload(features, encoding=encoding)