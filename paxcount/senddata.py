"""Assembling payloads from device readings and handing them to send queues."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Protocol

from .config import (
    COUNTERPORT,
    BmeStatus,
    ConfigData,
    GpsStatus,
    MessageBuffer,
    PayloadMask,
    SdsStatus,
    SniffType,
)
from .payload import Encoding, PayloadConvert
from .sensor import sensor_read

log = logging.getLogger(__name__)


class _Queue(Protocol):
    def queue_reset(self) -> None: ...

    def queue_waiting(self) -> int: ...


class _SendQueue(_Queue, Protocol):
    def enqueue(self, message: MessageBuffer) -> object: ...


@dataclass(frozen=True)
class Ports:
    """Port numbers the payloads go out on."""

    counter: int = COUNTERPORT
    rcmd: int = 2
    status: int = 2
    config: int = 3
    gps: int = 4
    button: int = 5
    batt: int = 8
    time: int = 9
    sensor1: int = 10
    sensor2: int = 11
    sensor3: int = 12
    bme: int = 14
    cayenne_lpp1: int = 1
    cayenne_lpp2: int = 2
    cayenne_actuator: int = 10
    cayenne_deviceconfig: int = 11


@dataclass(frozen=True)
class PaxCount:
    """Result of one counting cycle."""

    pax: int = 0
    wifi_count: int = 0
    ble_count: int = 0


def map_port(encoding: int, port: int, ports: Optional[Ports] = None) -> int:
    """Port a payload is sent on for the given encoding."""
    ports = ports if ports is not None else Ports()
    encoding = Encoding(encoding)
    if encoding is Encoding.CAYENNE_DYNAMIC:
        return ports.cayenne_lpp1
    if encoding is Encoding.CAYENNE_PACKED:
        mapped = ports.cayenne_lpp2
        # the remapping is keyed on the packed port, not on the requested one
        if mapped == ports.counter:
            return ports.cayenne_lpp2
        if mapped == ports.rcmd:
            return ports.cayenne_actuator
        if mapped == ports.time:
            return ports.cayenne_deviceconfig
        return mapped
    return port


class Sender:
    """Builds payloads and distributes them to the device's send queues."""

    def __init__(
        self,
        payload: PayloadConvert,
        config: Optional[ConfigData] = None,
        ports: Optional[Ports] = None,
        send_queues: Iterable[_SendQueue] = (),
        aux_queues: Iterable[_Queue] = (),
        *,
        gps_reader: Optional[Callable[[], Optional[GpsStatus]]] = None,
        bme_reader: Optional[Callable[[], BmeStatus]] = None,
        sds_reader: Optional[Callable[[], SdsStatus]] = None,
        voltage_reader: Optional[Callable[[], int]] = None,
        sensor_reader: Callable[[int], bytes] = sensor_read,
        sd_writer: Optional[Callable[[int, int, int], None]] = None,
        plot: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.payload = payload
        self.config = config if config is not None else ConfigData()
        self.ports = ports if ports is not None else Ports()
        self.send_queues: List[_SendQueue] = list(send_queues)
        self.aux_queues: List[_Queue] = list(aux_queues)
        self.read_gps = gps_reader if gps_reader is not None else (lambda: None)
        self.read_bme = bme_reader if bme_reader is not None else BmeStatus
        self.read_sds = sds_reader if sds_reader is not None else SdsStatus
        self.read_voltage = voltage_reader if voltage_reader is not None else (lambda: 0)
        self.read_sensor = sensor_reader
        self.sd_writer = sd_writer
        self.plot = plot

    @property
    def features(self):
        return self.payload.features

    def send_payload(self, port: int) -> MessageBuffer:
        """Enqueue the current payload on every send queue."""
        log.debug("sending payload for port %d", port)
        message = MessageBuffer(
            map_port(self.payload.encoding, port, self.ports), self.payload.buffer
        )
        for queue in self.send_queues:
            queue.enqueue(message)
        return message

    def _add_gps_fix(self) -> bool:
        fix = self.read_gps()
        if fix is None:
            log.debug("no valid GPS position")
            return False
        self.payload.add_gps(fix)
        return True

    def _add_counts(self, count: PaxCount) -> None:
        self.payload.add_count(count.wifi_count, SniffType.WIFI)
        if self.config.blescan:
            self.payload.add_count(count.ble_count, SniffType.BLE)

    def _send_count(self, count: PaxCount) -> MessageBuffer:
        features = self.features
        self.payload.reset()
        if not features.opensensebox:
            self._add_counts(count)
        if features.gps and self.ports.gps == self.ports.counter:
            self._add_gps_fix()
        if features.opensensebox:
            self._add_counts(count)
        if features.sds011:
            self.payload.add_sds(self.read_sds())
        if self.plot is not None:
            self.plot(count.pax)
        if self.sd_writer is not None:
            voltage = self.read_voltage() if features.battery else 0
            self.sd_writer(count.wifi_count, count.ble_count, voltage)
        return self.send_payload(self.ports.counter)

    def _send_bit(self, bit: PayloadMask, count: PaxCount) -> Optional[MessageBuffer]:
        features = self.features
        if bit is PayloadMask.COUNT_DATA:
            return self._send_count(count)
        if bit is PayloadMask.MEMS_DATA and features.bme:
            self.payload.reset()
            self.payload.add_bme(self.read_bme())
            return self.send_payload(self.ports.bme)
        if bit is PayloadMask.GPS_DATA and features.gps:
            if self.ports.gps == self.ports.counter:
                return None
            fix = self.read_gps()
            if fix is None:
                log.debug("no valid GPS position")
                return None
            self.payload.reset()
            self.payload.add_gps(fix)
            return self.send_payload(self.ports.gps)
        sensor_ports = {
            PayloadMask.SENSOR1_DATA: (1, self.ports.sensor1),
            PayloadMask.SENSOR2_DATA: (2, self.ports.sensor2),
            PayloadMask.SENSOR3_DATA: (3, self.ports.sensor3),
        }
        if bit in sensor_ports and features.sensors:
            slot, port = sensor_ports[bit]
            self.payload.reset()
            self.payload.add_sensor(self.read_sensor(slot))
            return self.send_payload(port)
        if bit is PayloadMask.BATT_DATA and features.battery:
            self.payload.reset()
            self.payload.add_voltage(self.read_voltage())
            return self.send_payload(self.ports.batt)
        return None

    def send_data(self, count: PaxCount) -> List[MessageBuffer]:
        """Send every payload selected by the configured payload mask."""
        log.debug(
            "sending count results: pax=%d / wifi=%d / ble=%d",
            count.pax,
            count.wifi_count,
            count.ble_count,
        )
        bitmask = self.config.payloadmask
        sent = []
        for bit in PayloadMask:
            if bitmask & bit:
                message = self._send_bit(bit, count)
                if message is not None:
                    sent.append(message)
        return sent

    def flush_queues(self) -> None:
        """Drop everything waiting in all queues."""
        for queue in (*self.aux_queues, *self.send_queues):
            queue.queue_reset()

    def all_queues_empty(self) -> bool:
        """Whether no queue holds a waiting item."""
        return sum(q.queue_waiting() for q in (*self.aux_queues, *self.send_queues)) == 0