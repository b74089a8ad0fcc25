"""Interpreter for remote commands received from the network."""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .config import ConfigData, GpsStatus, PayloadMask, RunMode
from .power import batt_sufficient
from .senddata import Sender
from .sensor import sensor_mask

log = logging.getLogger(__name__)

RCMD_QUEUE_SIZE = 5
RCMD_BUFFER_SIZE = 10
WIFI_CHANNEL_1 = 0x01
DEFAULT_RGBLUMINOSITY = 30
DEFAULT_OTA_MIN_BATT = 20
MAX_DATARATE = 15
TIME_SOURCE_UNSYNCED = 3

StatusTuple = Tuple[int, int, float, int, int, int]

_ON_OFF = ("off", "on")


@dataclass(frozen=True)
class Command:
    """A remote command: opcode, handler and number of parameter bytes.

    A command without a handler only opens a receive window.
    """

    opcode: int
    handler: Optional[Callable[[bytes], None]]
    params: int


def mac_convert(addr: bytes) -> int:
    """A MAC address given most significant byte first, as an integer."""
    if len(addr) < 6:
        raise ValueError("MAC address needs 6 bytes")
    return int.from_bytes(bytes(addr[:6]), "big")


class RemoteCommands:
    """Parses command buffers and applies them to the device configuration."""

    def __init__(
        self,
        sender: Sender,
        *,
        restart: Optional[Callable[[bool], None]] = None,
        erase_config: Optional[Callable[[], None]] = None,
        load_config: Optional[Callable[[], None]] = None,
        save_config: Optional[Callable[[], None]] = None,
        reconfigure_counter: Optional[Callable[[Dict[str, int]], None]] = None,
        lora: Optional[Callable[[ConfigData], None]] = None,
        valid_datarate: Optional[Callable[[int], bool]] = None,
        antenna_select: Optional[Callable[[int], None]] = None,
        ota_enabled: bool = False,
        battery_level: Optional[Callable[[], int]] = None,
        ota_min_batt: int = DEFAULT_OTA_MIN_BATT,
        default_rgblum: int = DEFAULT_RGBLUMINOSITY,
        status: Optional[Callable[[], StatusTuple]] = None,
        clock: Optional[Callable[[], Tuple[int, int, int]]] = None,
        request_timesync: Optional[Callable[[], None]] = None,
        set_time: Optional[Callable[[int], None]] = None,
        queue_size: int = RCMD_QUEUE_SIZE,
    ) -> None:
        if queue_size <= 0:
            raise ValueError("queue size must be positive")
        self.sender = sender
        self.restart = restart
        self.erase_config = erase_config
        self.load_config = load_config
        self.save_config = save_config
        self.reconfigure_counter = reconfigure_counter
        self.lora = lora
        self.valid_datarate = valid_datarate or (lambda dr: 0 <= dr <= MAX_DATARATE)
        self.antenna_select = antenna_select
        self.ota_enabled = ota_enabled
        self.battery_level = battery_level or (lambda: -1)
        self.ota_min_batt = ota_min_batt
        self.default_rgblum = default_rgblum
        self.status = status or (lambda: (0, 0, 0.0, 0, 0, 0))
        self.clock = clock or (lambda: (int(time.time()), 0, TIME_SOURCE_UNSYNCED))
        self.request_timesync = request_timesync
        self.set_time = set_time
        self.queue_size = queue_size
        self.runmode = RunMode.NORMAL
        self._queue: Deque[bytes] = deque()
        if self not in sender.aux_queues:
            sender.aux_queues.append(self)

        self.commands: Dict[int, Command] = {
            c.opcode: c
            for c in (
                Command(0x01, self._set_rssi, 1),
                Command(0x02, self._set_countmode, 1),
                Command(0x03, self._set_gps, 1),
                Command(0x04, self._set_display, 1),
                Command(0x05, self._set_loradr, 1),
                Command(0x06, self._set_lorapower, 1),
                Command(0x07, self._set_loraadr, 1),
                Command(0x08, self._set_screensaver, 1),
                Command(0x09, self._set_reset, 1),
                Command(0x0A, self._set_sendcycle, 1),
                Command(0x0B, self._set_wifichancycle, 1),
                Command(0x0C, self._set_blescantime, 1),
                Command(0x0D, self._set_wakesync, 2),
                Command(0x0E, self._set_blescan, 1),
                Command(0x0F, self._set_wifiant, 1),
                Command(0x10, self._set_rgblum, 1),
                Command(0x11, self._set_wifichanmap, 2),
                Command(0x13, self._set_sensor, 2),
                Command(0x14, self._set_payloadmask, 1),
                Command(0x15, self._set_bme, 1),
                Command(0x16, self._set_batt, 1),
                Command(0x17, self._set_wifiscan, 1),
                Command(0x18, None, 0),
                Command(0x19, self._set_sleepcycle, 2),
                Command(0x20, self._set_loadconfig, 0),
                Command(0x21, self._set_saveconfig, 0),
                Command(0x80, self._get_config, 0),
                Command(0x81, self._get_status, 0),
                Command(0x83, self._get_batt, 0),
                Command(0x84, self._get_gps, 0),
                Command(0x85, self._get_bme, 0),
                Command(0x86, self._get_time, 0),
                Command(0x87, self._set_timesync, 0),
                Command(0x88, self._set_time, 4),
                Command(0x99, None, 0),
            )
        }

    @property
    def config(self) -> ConfigData:
        return self.sender.config

    def _do_restart(self, warm: bool) -> None:
        if self.restart is not None:
            self.restart(warm)

    def _reconfigure(self, settings: Dict[str, int]) -> None:
        if self.reconfigure_counter is not None:
            self.reconfigure_counter(settings)

    # --- command handlers ---

    def _set_reset(self, val: bytes) -> None:
        code = val[0]
        if code == 0:
            log.info("remote command: restart device cold")
            self._do_restart(False)
        elif code == 1:
            pass  # reserved
        elif code == 2:
            log.info("remote command: reset device to factory settings and restart")
            if self.erase_config is not None:
                self.erase_config()
            self._do_restart(False)
        elif code == 3:
            log.info("remote command: flush send queue")
            self.sender.flush_queues()
        elif code == 4:
            log.info("remote command: restart device warm")
            self._do_restart(True)
        elif code == 8:
            log.info("remote command: reboot to maintenance mode")
            self.runmode = RunMode.MAINTENANCE
        elif code == 9:
            log.info("remote command: reboot to ota update mode")
            if self.ota_enabled:
                level = self.battery_level()
                if batt_sufficient(level, self.ota_min_batt):
                    self.runmode = RunMode.UPDATE
                else:
                    log.error("battery level %d%% is too low for OTA", level)
        else:
            log.warning("remote command: reset called with invalid parameter(s)")

    def _set_rssi(self, val: bytes) -> None:
        self.config.rssilimit = -val[0]
        self._reconfigure(
            {
                "wifi_rssi_threshold": self.config.rssilimit,
                "ble_rssi_threshold": self.config.rssilimit,
            }
        )
        log.info("remote command: set RSSI limit to %d", self.config.rssilimit)

    def _set_sendcycle(self, val: bytes) -> None:
        if val[0] < 5:
            return
        self.config.sendcycle = val[0]
        log.info("remote command: set send cycle to %d seconds", val[0] * 2)
        self._reconfigure({})

    def _set_sleepcycle(self, val: bytes) -> None:
        self.config.sleepcycle = int.from_bytes(val, "big")
        log.info("remote command: set sleep cycle to %d seconds", self.config.sleepcycle * 10)

    def _set_wakesync(self, val: bytes) -> None:
        self.config.wakesync = int.from_bytes(val, "big")
        log.info("remote command: set wakesync to %d seconds", self.config.wakesync)

    def _set_wifichancycle(self, val: bytes) -> None:
        self.config.wifichancycle = val[0]
        settings = {"wifi_channel_switch_interval": val[0]}
        if val[0] == 0:
            log.info("remote command: set Wifi channel hopping to off")
            settings["wifi_channel_map"] = WIFI_CHANNEL_1
        else:
            log.info(
                "remote command: set Wifi channel hopping interval to %.1f seconds",
                val[0] / 100,
            )
        self._reconfigure(settings)

    def _set_wifichanmap(self, val: bytes) -> None:
        self.config.wifichanmap = int.from_bytes(val, "big")
        self._reconfigure({"wifi_channel_map": self.config.wifichanmap})

    def _set_blescantime(self, val: bytes) -> None:
        self.config.blescantime = val[0]
        self._reconfigure({"blescantime": val[0]})

    def _set_countmode(self, val: bytes) -> None:
        if val[0] not in (0, 1, 2):
            log.warning("remote command: set counter mode called with invalid parameter(s)")
            return
        self.config.countermode = val[0]
        log.info("remote command: set counter mode to %d", val[0])
        self._reconfigure({})

    def _set_screensaver(self, val: bytes) -> None:
        log.info("remote command: set screen saver to %s", _ON_OFF[bool(val[0])])
        self.config.screensaver = 1 if val[0] else 0

    def _set_display(self, val: bytes) -> None:
        log.info("remote command: set screen to %s", _ON_OFF[bool(val[0])])
        self.config.screenon = 1 if val[0] else 0

    def _switch_mask(self, bit: int, on: int) -> None:
        if on:
            self.config.payloadmask |= bit
        else:
            self.config.payloadmask &= ~bit & 0xFF

    def _set_gps(self, val: bytes) -> None:
        log.info("remote command: set GPS mode to %s", _ON_OFF[bool(val[0])])
        self._switch_mask(PayloadMask.GPS_DATA, val[0])

    def _set_bme(self, val: bytes) -> None:
        log.info("remote command: set BME mode to %s", _ON_OFF[bool(val[0])])
        self._switch_mask(PayloadMask.MEMS_DATA, val[0])

    def _set_batt(self, val: bytes) -> None:
        log.info("remote command: set battery mode to %s", _ON_OFF[bool(val[0])])
        self._switch_mask(PayloadMask.BATT_DATA, val[0])

    def _set_payloadmask(self, val: bytes) -> None:
        log.info("remote command: set payload mask to %X", val[0])
        self.config.payloadmask = val[0]

    def _set_sensor(self, val: bytes) -> None:
        if not self.sender.features.sensors:
            return
        if val[0] not in (1, 2, 3):
            log.warning("remote command set sensor mode called with invalid sensor number")
            return
        log.info(
            "remote command: set sensor #%d mode to %s", val[0], _ON_OFF[bool(val[1])]
        )
        self._switch_mask(sensor_mask(val[0]), val[1])

    def _set_loradr(self, val: bytes) -> None:
        if self.lora is None:
            log.warning("remote command: LoRa not implemented")
            return
        if self.valid_datarate(val[0]):
            self.config.loradr = val[0]
            log.info("remote command: set LoRa datarate to %d", val[0])
            self.lora(self.config)
        else:
            log.info("remote command: set LoRa datarate called with illegal datarate %d", val[0])

    def _set_loraadr(self, val: bytes) -> None:
        if self.lora is None:
            log.warning("remote command: LoRa not implemented")
            return
        log.info("remote command: set LoRa ADR mode to %s", _ON_OFF[bool(val[0])])
        self.config.adrmode = 1 if val[0] else 0
        self.lora(self.config)

    def _set_lorapower(self, val: bytes) -> None:
        if self.lora is None:
            log.warning("remote command: LoRa not implemented")
            return
        if self.config.adrmode:
            log.info("remote command: set LoRa TXPOWER, not executed because ADR is on")
            return
        self.config.txpower = val[0]
        log.info("remote command: set LoRa TXPOWER to %d", val[0])
        self.lora(self.config)

    def _set_blescan(self, val: bytes) -> None:
        log.info("remote command: set BLE scanner to %s", _ON_OFF[bool(val[0])])
        self.config.blescan = 1 if val[0] else 0
        self._reconfigure({"blecounter": self.config.blescan})

    def _set_wifiscan(self, val: bytes) -> None:
        log.info("remote command: set WIFI scanner to %s", _ON_OFF[bool(val[0])])
        self.config.wifiscan = 1 if val[0] else 0
        self._reconfigure({"wificounter": self.config.wifiscan})

    def _set_wifiant(self, val: bytes) -> None:
        log.info(
            "remote command: set Wifi antenna to %s",
            "external" if val[0] else "internal",
        )
        self.config.wifiant = 1 if val[0] else 0
        if self.antenna_select is not None:
            self.antenna_select(self.config.wifiant)

    def _set_rgblum(self, val: bytes) -> None:
        self.config.rgblum = val[0] if val[0] <= 100 else self.default_rgblum
        log.info("remote command: set RGB Led luminosity %d", self.config.rgblum)

    def _get_config(self, val: bytes) -> None:
        log.info("remote command: get device configuration")
        payload = self.sender.payload
        payload.reset()
        payload.add_config(self.config)
        self.sender.send_payload(self.sender.ports.config)

    def _get_status(self, val: bytes) -> None:
        log.info("remote command: get device status")
        payload = self.sender.payload
        payload.reset()
        payload.add_status(*self.status())
        self.sender.send_payload(self.sender.ports.status)

    def _get_gps(self, val: bytes) -> None:
        log.info("remote command: get gps status")
        if not self.sender.features.gps:
            log.warning("GPS function not supported")
            return
        fix = self.sender.read_gps() or GpsStatus()
        payload = self.sender.payload
        payload.reset()
        payload.add_gps(fix)
        self.sender.send_payload(self.sender.ports.gps)

    def _get_bme(self, val: bytes) -> None:
        log.info("remote command: get BME sensor data")
        if not self.sender.features.bme:
            log.warning("BME sensor not supported")
            return
        payload = self.sender.payload
        payload.reset()
        payload.add_bme(self.sender.read_bme())
        self.sender.send_payload(self.sender.ports.bme)

    def _get_batt(self, val: bytes) -> None:
        log.info("remote command: get battery voltage")
        if not self.sender.features.battery:
            log.warning("battery voltage not supported")
            return
        payload = self.sender.payload
        payload.reset()
        payload.add_voltage(self.sender.read_voltage())
        self.sender.send_payload(self.sender.ports.batt)

    def _get_time(self, val: bytes) -> None:
        log.info("remote command: get time")
        now, sync_status, source = self.clock()
        payload = self.sender.payload
        payload.reset()
        payload.add_time(now)
        payload.add_byte(((sync_status << 4) | source) & 0xFF)
        self.sender.send_payload(self.sender.ports.time)

    def _set_timesync(self, val: bytes) -> None:
        log.info("remote command: timesync requested")
        if self.request_timesync is not None:
            self.request_timesync()

    def _set_time(self, val: bytes) -> None:
        t = int.from_bytes(val, "big")
        log.info("remote command: set time to %d", t)
        if self.set_time is not None:
            self.set_time(t)

    def _set_loadconfig(self, val: bytes) -> None:
        log.info("remote command: load config from NVRAM")
        if self.load_config is not None:
            self.load_config()

    def _set_saveconfig(self, val: bytes) -> None:
        log.info("remote command: save config to NVRAM")
        if self.save_config is not None:
            self.save_config()

    # --- parsing and queueing ---

    def execute(self, cmd: bytes) -> List[int]:
        """Run every command in the buffer; return the opcodes executed.

        Parsing stops at the first unknown opcode. A command whose parameters
        are incomplete is skipped and parsing resumes after its opcode.
        """
        data = bytes(cmd)
        executed: List[int] = []
        cursor = 0
        while cursor < len(data):
            command = self.commands.get(data[cursor])
            if command is None:
                log.info("unknown remote command x%02X, ignored", data[cursor])
                break
            cursor += 1
            end = cursor + command.params
            if end <= len(data):
                args = data[cursor:end]
                cursor = end
                if command.handler is None:
                    log.info("remote command: flush")
                else:
                    command.handler(args)
                executed.append(command.opcode)
            else:
                log.info(
                    "remote command x%02X called with missing parameter(s), skipped",
                    command.opcode,
                )
        return executed

    def enqueue(self, cmd: bytes) -> bool:
        """Queue a command buffer; False when the queue is full."""
        data = bytes(cmd)
        if len(data) > RCMD_BUFFER_SIZE:
            raise ValueError(f"command longer than {RCMD_BUFFER_SIZE} bytes")
        if len(self._queue) >= self.queue_size:
            log.warning("remote command queue is full")
            return False
        self._queue.append(data)
        return True

    def process_pending(self) -> int:
        """Execute all queued command buffers; return how many were run."""
        count = 0
        while self._queue:
            self.execute(self._queue.popleft())
            count += 1
        return count

    def queue_reset(self) -> None:
        self._queue.clear()

    def queue_waiting(self) -> int:
        return len(self._queue)