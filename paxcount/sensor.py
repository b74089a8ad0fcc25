"""User sensor slots and their payload mask bits."""

from __future__ import annotations

from .config import PayloadMask

SENSOR_BUFFER = 10

_MASKS = {
    0: PayloadMask.COUNT_DATA,
    1: PayloadMask.SENSOR1_DATA,
    2: PayloadMask.SENSOR2_DATA,
    3: PayloadMask.SENSOR3_DATA,
    4: PayloadMask.BATT_DATA,
    5: PayloadMask.GPS_DATA,
    6: PayloadMask.MEMS_DATA,
    7: PayloadMask.RESERVED_DATA,
}

_SENSOR_DATA = {
    1: bytes([0x01, 0x02, 0x03]),
    2: bytes([0x01, 0x02, 0x03]),
    3: bytes([0x01, 0x02, 0x03]),
}


def sensor_mask(sensor_no: int) -> int:
    """Payload mask bit for a slot number, 0 for an unknown slot."""
    return int(_MASKS.get(sensor_no, 0))


def sensor_read(sensor: int) -> bytes:
    """Read a user sensor as a length-prefixed frame.

    Unknown sensors yield an empty frame (a single zero length byte).
    """
    data = _SENSOR_DATA.get(sensor, b"")
    if len(data) + 1 > SENSOR_BUFFER:
        raise ValueError("sensor data exceeds sensor buffer")
    return bytes([len(data)]) + data