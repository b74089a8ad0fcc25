"""System time keeping: plausibility checks, calendar math and time sources."""

from __future__ import annotations

import logging
import time
from enum import IntEnum
from typing import Callable, Optional, Protocol, Tuple

log = logging.getLogger(__name__)

SECS_YR_2000 = 946684800  # the time at the start of y2k
GPS_UTC_DIFF = 315964800  # seconds between GPS and UTC epoch
LEAP_SECS_SINCE_GPSEPOCH = 18

# serial line configuration word for 8 data bits, no parity, 1 stop bit
SERIAL_8N1 = 0x800001C

# default reference moment known to lie in the past
REFERENCE_TIME = 1735689600

DEFAULT_SYNC_INTERVAL = 60  # minutes
DEFAULT_SYNC_INTERVAL_RETRY = 3  # minutes

_SECONDS_PER_MINUTE = 60
_SECONDS_PER_HOUR = 3600
_SECONDS_PER_DAY = 86400
_DAYS_OF_MONTH = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


class TimeSource(IntEnum):
    """Where the current system time came from."""

    GPS = 0
    RTC = 1
    LORA = 2
    UNSYNCED = 3
    SET = 4

    @property
    def symbol(self) -> str:
        """Single character shown for this source."""
        return "GRL?*"[self.value]


class _TmLike(Protocol):
    tm_year: int
    tm_mon: int
    tm_mday: int
    tm_hour: int
    tm_min: int
    tm_sec: int


def is_leap_year(year: int) -> bool:
    """Gregorian leap year rule."""
    if year % 4 != 0:
        return False
    if year % 100 != 0:
        return True
    return year % 400 == 0


def mkgmtime(ptm: _TmLike) -> int:
    """Epoch seconds of a UTC calendar time.

    ``ptm`` follows ``time.struct_time``: full year, month 1..12.
    Years before 1970 contribute nothing.
    """
    year = ptm.tm_year
    secs = sum(
        (366 if is_leap_year(y) else 365) * _SECONDS_PER_DAY for y in range(1970, year)
    )
    for month, days in enumerate(_DAYS_OF_MONTH[: ptm.tm_mon - 1]):
        secs += days * _SECONDS_PER_DAY
        if month == 1 and is_leap_year(year):
            secs += _SECONDS_PER_DAY
    secs += (ptm.tm_mday - 1) * _SECONDS_PER_DAY
    secs += ptm.tm_hour * _SECONDS_PER_HOUR
    secs += ptm.tm_min * _SECONDS_PER_MINUTE
    secs += ptm.tm_sec
    return secs


def tx_ticks(framesize: int, baud: int, config: int = SERIAL_8N1) -> int:
    """Milliseconds needed to transmit a frame over a serial line."""
    if baud <= 0:
        raise ValueError("baud rate must be positive")
    databits = ((config & 0x0C) >> 2) + 5
    stopbits = ((config & 0x20) >> 5) + 1
    # +1 for the start bit
    return int((databits + stopbits + 1) * framesize * 1000.0 / baud)


def time_is_valid(t: int, compile_time: int = REFERENCE_TIME) -> bool:
    """Whether an epoch time is plausible: later than a day before the reference."""
    return t > compile_time - _SECONDS_PER_DAY


class TimeKeeper:
    """Sets the system time from the available time sources."""

    def __init__(
        self,
        *,
        compile_time: int = REFERENCE_TIME,
        set_clock: Optional[Callable[[int], None]] = None,
        set_rtc: Optional[Callable[[int], None]] = None,
        gps_time: Optional[Callable[[], Tuple[int, int]]] = None,
        rtc_time: Optional[Callable[[], Tuple[int, int]]] = None,
        request_lora_sync: Optional[Callable[[], None]] = None,
        schedule: Optional[Callable[[int], None]] = None,
        on_pulse: Optional[Callable[[], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        sync_interval: int = DEFAULT_SYNC_INTERVAL,
        retry_interval: int = DEFAULT_SYNC_INTERVAL_RETRY,
    ) -> None:
        self.compile_time = compile_time
        self.set_clock = set_clock
        self.set_rtc = set_rtc
        self.gps_time = gps_time
        self.rtc_time = rtc_time
        self.request_lora_sync = request_lora_sync
        self.schedule = schedule
        self.on_pulse = on_pulse
        self.sleep = sleep
        self.sync_interval = sync_interval
        self.retry_interval = retry_interval
        self.source = TimeSource.UNSYNCED
        self.clock_time: Optional[int] = None

    def _schedule_sync(self, seconds: int) -> None:
        if self.schedule is not None:
            self.schedule(seconds)

    def set_my_time(self, t_sec: int, t_msec: int, source: TimeSource) -> bool:
        """Set the system time; False if the source or the time is invalid."""
        source = TimeSource(source)
        if source is TimeSource.UNSYNCED:
            return False

        time_to_set = t_sec + t_msec // 1000

        if not time_is_valid(time_to_set, self.compile_time):
            self._schedule_sync(self.retry_interval * 60)
            log.debug(
                "failed to synchronise time from source %s | unix sec obtained: %d "
                "| reference: %d",
                source.symbol,
                time_to_set,
                self.compile_time,
            )
            return False

        # wait until the top of the next second
        if t_msec % 1000:
            time_to_set += 1
            self.sleep((1000 - t_msec % 1000) / 1000.0)

        if self.set_clock is not None:
            self.set_clock(time_to_set)
        self.clock_time = time_to_set
        log.info("UTC time: %d.000 sec", time_to_set)

        if self.set_rtc is not None and source in (TimeSource.GPS, TimeSource.LORA):
            self.set_rtc(time_to_set)

        if self.on_pulse is not None:
            self.on_pulse()

        self.source = source
        self._schedule_sync(self.sync_interval * 60)
        log.debug("timesync finished, time was set | timesource=%d", source)
        return True

    def calibrate(self) -> bool:
        """Try LoRa, GPS and RTC in turn; True once a source set the time."""
        if self.request_lora_sync is not None:
            self.request_lora_sync()
            if self.source is TimeSource.LORA:
                return True

        for reader, source in (
            (self.gps_time, TimeSource.GPS),
            (self.rtc_time, TimeSource.RTC),
        ):
            if reader is None:
                continue
            t, msec = reader()
            if self.set_my_time(int(t) & 0xFFFFFFFF, msec, source):
                return True
        return False