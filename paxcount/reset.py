"""State that survives restarts and deep sleep, and wakeup timing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from .config import RunMode
from .timekeeper import REFERENCE_TIME, TimeSource, time_is_valid

log = logging.getLogger(__name__)

_HOUR = 3600


class ResetReason(IntEnum):
    """Why the chip restarted."""

    CHIP_POWER_ON = 0x01
    CORE_SW = 0x03
    CORE_DEEP_SLEEP = 0x05
    CORE_MWDT0 = 0x07
    CPU0_SW = 0x0C
    SYS_BROWN_OUT = 0x0F


def adjust_wakeup(now: Optional[int], wakeup_sec: int, sync_window: int) -> int:
    """Shift a wakeup delay so that waking lands on the top of the hour.

    ``now`` is None when no valid time is known; the delay is then kept.
    """
    if now is None:
        log.info("syncwakeup: no valid time for sync")
        return wakeup_sec

    # 1..3600 seconds between the next wakeup and the following top of hour
    shift_sec = _HOUR - (now + wakeup_sec) % _HOUR

    if shift_sec <= sync_window:
        log.info("syncwakeup: wakeup %d sec postponed", shift_sec)
        return wakeup_sec + shift_sec
    if shift_sec >= _HOUR - sync_window:
        log.info("syncwakeup: wakeup %d sec preponed", shift_sec)
        return _HOUR - shift_sec
    log.info("syncwakeup: wakeup keeping unshifted")
    return wakeup_sec


@dataclass
class RtcState:
    """Variables kept in memory that survives restarts and deep sleep."""

    runmode: RunMode = RunMode.POWERCYCLE
    restarts: int = 0
    sleep_start: float = 0.0
    millis: int = 0
    reference_time: int = REFERENCE_TIME
    time_source: TimeSource = TimeSource.UNSYNCED

    def reset_vars(self) -> None:
        """Return run mode and restart counter to their cold start values."""
        self.runmode = RunMode.POWERCYCLE
        self.restarts = 0

    def after_reset(self, reason: int, now: float) -> int:
        """Update the state for a restart; return milliseconds spent asleep."""
        try:
            reason = ResetReason(reason)
        except ValueError:
            pass

        if reason in (ResetReason.CHIP_POWER_ON, ResetReason.SYS_BROWN_OUT):
            self.reset_vars()
            return 0

        if reason == ResetReason.CPU0_SW:
            # keep the previously set run mode
            self.restarts += 1
            return 0

        if reason == ResetReason.CORE_DEEP_SLEEP:
            elapsed_us = round(now * 1_000_000) - round(self.sleep_start * 1_000_000)
            sleep_ms = int(elapsed_us / 1000)
            self.millis += sleep_ms
            log.info("time spent in deep sleep: %d ms", sleep_ms)
            self.time_source = (
                TimeSource.SET
                if time_is_valid(int(now), self.reference_time)
                else TimeSource.UNSYNCED
            )
            if self.runmode is RunMode.SLEEP:
                self.runmode = RunMode.WAKEUP
            return sleep_ms

        self.runmode = RunMode.POWERCYCLE
        self.restarts += 1
        return 0

    def enter_sleep(self, now: float, monotonic_ms: int) -> None:
        """Record the start of deep sleep and bank the monotonic time so far."""
        self.runmode = RunMode.SLEEP
        self.sleep_start = now
        self.millis += monotonic_ms

    def uptime(self, monotonic_ms: int) -> int:
        """Milliseconds since power on, deep sleep included."""
        return self.millis + monotonic_ms