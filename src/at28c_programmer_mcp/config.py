"""Serial link and session timing configuration.

The defaults match the programmer firmware: 115200 8N1 with DTR held low,
a one-second settle after opening the port, a five-second identity window
and 10 ms pacing between bytes of a write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import serial

DEFAULT_BAUDRATE = 115200
SETTLE_DELAY = 1.0           # seconds after open before the first command
IDENTIFY_TIMEOUT = 5.0       # seconds, measured from the start of identify()
BYTE_REPLY_TIMEOUT = 1.0     # seconds to wait for +READBYTE / +WRITEBYTE
BYTE_DELAY = 0.010           # seconds between bytes (or pages) of a bulk write
PAGE_SIZE = 64               # block size of a paged write
POLL_INTERVAL = 0.001        # seconds between in_waiting polls
MAX_MISMATCHES = 3


class CapacityPolicy(str, Enum):
    """What bulk_write does when an image exceeds the target device."""

    IGNORE = "ignore"
    WARN = "warn"
    ENFORCE = "enforce"


@dataclass
class SerialSettings:
    """Line parameters for opening the programmer's serial port."""

    port: str | None = None
    baudrate: int = DEFAULT_BAUDRATE
    bytesize: int = serial.EIGHTBITS
    parity: str = serial.PARITY_NONE
    stopbits: float = serial.STOPBITS_ONE
    dtr: bool = False


@dataclass
class SessionConfig:
    """Protocol timing and policy knobs for a Session."""

    serial: SerialSettings = field(default_factory=SerialSettings)
    settle_delay: float = SETTLE_DELAY
    identify_timeout: float = IDENTIFY_TIMEOUT
    byte_reply_timeout: float = BYTE_REPLY_TIMEOUT
    byte_delay: float = BYTE_DELAY
    poll_interval: float = POLL_INTERVAL
    # None keeps the read loop unbounded; a number bounds the idle time
    # between received chunks.
    read_idle_timeout: float | None = None
    capacity_policy: CapacityPolicy = CapacityPolicy.WARN
    max_mismatches: int = MAX_MISMATCHES
