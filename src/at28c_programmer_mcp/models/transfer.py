"""Bulk transfer results, progress reporting and cancellation."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)

# Called with (transferred, total) after every chunk of a bulk transfer.
ProgressSink = Callable[[int, int], None]


class TransferStatus(str, Enum):
    COMPLETE = "complete"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TransferResult:
    """What a bulk read or write actually moved.

    ``data`` holds the bytes received (read) or sent (write); its length
    always equals ``transferred``.
    """

    status: TransferStatus
    data: bytes
    total: int
    error: str | None = None

    @property
    def transferred(self) -> int:
        return len(self.data)

    @property
    def complete(self) -> bool:
        return self.status is TransferStatus.COMPLETE

    def to_dict(self) -> dict:
        result = {
            "status": self.status.value,
            "transferred": self.transferred,
            "total": self.total,
        }
        if self.error:
            result["error"] = self.error
        return result

    def __repr__(self) -> str:
        return (
            f"TransferResult(status={self.status.value}, "
            f"transferred={self.transferred}/{self.total})"
        )


class CancelToken:
    """Thread-safe flag a caller sets to stop a running transfer."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class LoggingProgress:
    """Progress sink that logs the percentage each time it moves by ``step``."""

    def __init__(self, label: str, step: int = 10) -> None:
        self._label = label
        self._step = max(1, step)
        self._last = -1

    def __call__(self, transferred: int, total: int) -> None:
        if total <= 0:
            return
        percent = transferred * 100 // total
        bucket = percent - percent % self._step
        if bucket != self._last:
            self._last = bucket
            logger.info("%s: %d%% (%d/%d bytes)", self._label, percent, transferred, total)
