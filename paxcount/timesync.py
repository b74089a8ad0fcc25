"""Time synchronisation handshake with a time server over the radio link."""

from __future__ import annotations

import logging
import random
import time
from enum import IntEnum
from typing import Callable, List, Optional, Tuple

from .timekeeper import (
    DEFAULT_SYNC_INTERVAL_RETRY,
    GPS_UTC_DIFF,
    LEAP_SECS_SINCE_GPSEPOCH,
    REFERENCE_TIME,
    time_is_valid,
)

log = logging.getLogger(__name__)

TIME_SYNC_FRAME_LENGTH = 6  # time server answer frame length in bytes
TIME_SYNC_FIXUP = 25  # compensation for processing time in milliseconds
TIME_SYNC_MAX_SEQNO = 0xFE  # threshold for wrap around of the sequence number
TIME_SYNC_END_FLAG = TIME_SYNC_MAX_SEQNO + 1  # end of handshake marker
TIME_SYNC_SAMPLES = 1  # number of timestamp samples per handshake

_U32 = 0xFFFFFFFF


class TimestampKind(IntEnum):
    """Kinds of timestamps collected per sample."""

    TX = 0
    RX = 1
    GW_SEC = 2
    GW_MSEC = 3


class TimeSyncError(Exception):
    """A time server answer or handshake could not be used."""


def _trunc_divmod(value: int, divisor: int) -> Tuple[int, int]:
    quotient = abs(value) // divisor
    if value < 0:
        quotient = -quotient
    return quotient, value - quotient * divisor


def parse_server_answer(data: bytes) -> Tuple[int, int, int]:
    """Split a server answer into (sequence number, seconds, milliseconds).

    The frame holds the sequence number, the UTC second as a big-endian
    32 bit value and the fraction of the second in steps of 1/250 s.
    """
    data = bytes(data)
    if len(data) != TIME_SYNC_FRAME_LENGTH:
        if data and data[0] == TIME_SYNC_END_FLAG:
            raise TimeSyncError("time server has no confident time available")
        raise TimeSyncError(
            f"spurious data received: {len(data)} bytes instead of "
            f"{TIME_SYNC_FRAME_LENGTH}"
        )
    seq_no = data[0]
    seconds = int.from_bytes(data[1:5], "big")
    msec = data[5] * 4  # one step is 1/250 s
    return seq_no, seconds, msec


def network_time_to_utc(t_network: int, delay_msec: int) -> Tuple[int, int]:
    """UTC (seconds, milliseconds) from a network GPS time and the delay since."""
    seconds = t_network + GPS_UTC_DIFF - LEAP_SECS_SINCE_GPSEPOCH
    extra_sec, msec = _trunc_divmod(delay_msec, 1000)
    return seconds + extra_sec, msec


def _ignore(*_args) -> None:
    return None


def _monotonic_ms() -> int:
    return int(time.monotonic() * 1000)


class TimeSync:
    """Collects timestamp samples from a time server and derives the time."""

    def __init__(
        self,
        *,
        samples: int = TIME_SYNC_SAMPLES,
        clock_ms: Optional[Callable[[], int]] = None,
        send: Optional[Callable[[bytes], None]] = None,
        on_time: Optional[Callable[[int, int], None]] = None,
        schedule: Optional[Callable[[int], None]] = None,
        reference_time: int = REFERENCE_TIME,
        retry_interval: int = DEFAULT_SYNC_INTERVAL_RETRY,
        seq_no: Optional[int] = None,
    ) -> None:
        if samples < 1:
            raise ValueError("at least one sample is needed")
        if seq_no is None:
            seq_no = random.randrange(TIME_SYNC_MAX_SEQNO)
        if not 0 <= seq_no <= TIME_SYNC_MAX_SEQNO:
            raise ValueError(f"sequence number {seq_no} out of range")
        self.samples = samples
        self.clock_ms = clock_ms or _monotonic_ms
        self.send = send or _ignore
        self.on_time = on_time or _ignore
        self.schedule = schedule or _ignore
        self.reference_time = reference_time
        self.retry_interval = retry_interval
        self.seq_no = seq_no
        self.pending = False
        self.sample_idx = 0
        self._offset_ms = 0
        self._timestamps: List[List[int]] = self._fresh_table()

    def _fresh_table(self) -> List[List[int]]:
        return [[0] * len(TimestampKind) for _ in range(self.samples)]

    @property
    def complete(self) -> bool:
        """Whether all samples of the running handshake are collected."""
        return self.sample_idx >= self.samples

    def request(self) -> Optional[int]:
        """Start a handshake; return its sequence number, None if one is running."""
        if self.pending:
            return None
        self.pending = True
        self._offset_ms = 0
        self.sample_idx = 0
        self._timestamps = self._fresh_table()
        self.seq_no += 1
        if self.seq_no > TIME_SYNC_MAX_SEQNO:
            self.seq_no = 0
        log.info("timeserver sync request started, seqNo#%d", self.seq_no)
        self.send(bytes([self.seq_no]))
        return self.seq_no

    def store(self, timestamp: int, kind: TimestampKind) -> None:
        """Record a timestamp for the current sample."""
        kind = TimestampKind(kind)
        if self.complete:
            raise TimeSyncError("all samples of this handshake are collected")
        log.debug(
            "seq#%d[%d]: t%d=%d", self.seq_no, self.sample_idx, kind, timestamp
        )
        self._timestamps[self.sample_idx][kind] = timestamp & _U32

    def _abort(self) -> None:
        self.pending = False
        self.schedule(self.retry_interval * 60)

    def server_answer(self, data: bytes) -> bool:
        """Take a server answer; False if it was ignored or aborted the handshake."""
        if not self.pending or self.complete:
            return False

        self.store(self.clock_ms(), TimestampKind.RX)

        try:
            seq_no, seconds, msec = parse_server_answer(data)
        except TimeSyncError as exc:
            log.warning("timeserver error: %s", exc)
            self._abort()
            return False

        if not time_is_valid(seconds, self.reference_time):
            log.warning("timeserver error: outdated time received")
            self._abort()
            return False

        self.store(seconds, TimestampKind.GW_SEC)
        self.store(msec, TimestampKind.GW_MSEC)

        if seq_no != self.seq_no:
            log.warning("timesync aborted: handshake out of sync")
            self._abort()
            return False

        sample = self._timestamps[self.sample_idx]
        self._offset_ms = (
            self._offset_ms + sample[TimestampKind.RX] - sample[TimestampKind.TX]
        ) & _U32
        self.sample_idx += 1

        if not self.complete:
            self.send(bytes([self.seq_no]))
        return True

    def compute_time(self) -> Tuple[int, int]:
        """Finish the handshake and return the derived UTC (seconds, milliseconds)."""
        if not self.pending or not self.complete:
            raise TimeSyncError("timesync handshake is not complete")

        offset_ms = self._offset_ms // self.samples
        latest = self._timestamps[self.sample_idx - 1]
        offset_ms = (offset_ms + latest[TimestampKind.GW_MSEC] - TIME_SYNC_FIXUP) & _U32
        offset_ms %= 1000

        seconds = latest[TimestampKind.GW_SEC] + offset_ms // 1000

        self.pending = False
        self.on_time(seconds, offset_ms)
        self.send(bytes([TIME_SYNC_END_FLAG]))
        return seconds, offset_ms