"""Serving queued payloads to an SPI master and taking its commands."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, Optional

from .config import MessageBuffer

log = logging.getLogger(__name__)

HEADER_SIZE = 4
SEND_QUEUE_SIZE = 10
DEFAULT_RCMD_PORT = 2


def crc16_be(crc: int, data: bytes) -> int:
    """CRC-16 with polynomial 0x1021, most significant bit first.

    The running value is inverted on entry and exit, so calls can be chained.
    """
    value = ~crc & 0xFFFF
    for byte in bytes(data):
        value ^= byte << 8
        for _ in range(8):
            if value & 0x8000:
                value = ((value << 1) ^ 0x1021) & 0xFFFF
            else:
                value = (value << 1) & 0xFFFF
    return ~value & 0xFFFF


def transaction_size(message_size: int) -> int:
    """Bytes clocked out for a message: header plus data, padded to 4 bytes."""
    if message_size < 0:
        raise ValueError("message size must not be negative")
    size = HEADER_SIZE + message_size
    if size % 4:
        size += 4 - size % 4
    return size


def build_frame(message: MessageBuffer) -> bytes:
    """The transmit frame: checksum, port, size, payload and zero padding."""
    body = bytes([message.port, message.size]) + message.message
    crc = crc16_be(0, body)
    frame = crc.to_bytes(2, "little") + body
    return frame.ljust(transaction_size(message.size), b"\x00")


class SpiSlave:
    """Send queue drained by an SPI master, one message per transaction."""

    def __init__(
        self,
        command_handler: Optional[Callable[[bytes], object]] = None,
        *,
        rcmd_port: int = DEFAULT_RCMD_PORT,
        queue_size: int = SEND_QUEUE_SIZE,
    ) -> None:
        if queue_size <= 0:
            raise ValueError("queue size must be positive")
        self.command_handler = command_handler
        self.rcmd_port = rcmd_port
        self.queue_size = queue_size
        self._queue: Deque[MessageBuffer] = deque()

    def enqueue(self, message: MessageBuffer) -> bool:
        """Queue a message; False when the queue is full."""
        if len(self._queue) >= self.queue_size:
            log.warning("SPI sendqueue is full")
            return False
        self._queue.append(message)
        return True

    def queue_reset(self) -> None:
        self._queue.clear()

    def queue_waiting(self) -> int:
        return len(self._queue)

    def transact(self, rx: bytes) -> Optional[bytes]:
        """Run one transaction with the master.

        Returns the frame sent for the oldest queued message and removes it,
        or None when nothing is queued. ``rx`` is what the master clocked in;
        a command on the remote command port is handed to the command handler.
        """
        if not self._queue:
            return None
        message = self._queue[0]
        tx = build_frame(message)
        log.info("prepared SPI transaction for %d byte(s)", len(tx))

        received = bytes(rx)[: len(tx)]
        self._queue.popleft()

        if (
            self.command_handler is not None
            and len(received) > 2
            and received[2] == self.rcmd_port
        ):
            self.command_handler(received[HEADER_SIZE:])
        return tx