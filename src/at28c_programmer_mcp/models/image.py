"""Raw memory images: flat dump files, verification and blank checks.

A dump file is exactly the bytes of the memory, address 0 first, with no
header, checksum or padding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from ..config import MAX_MISMATCHES
from .transfer import TransferStatus

BLANK_BYTE = 0xFF


def load_image(path: str | Path) -> bytes:
    """Read a raw image file.

    Raises:
        ValueError: If the file is empty.
    """
    path = Path(path)
    data = path.read_bytes()
    if not data:
        raise ValueError(f"Image file is empty: {path}")
    return data


def save_image(data: bytes, path: str | Path) -> Path:
    """Write ``data`` to ``path`` as a raw dump and return the path."""
    path = Path(path)
    path.write_bytes(bytes(data))
    return path


@dataclass(frozen=True)
class Mismatch:
    """One address whose content differs from what was expected."""

    address: int
    expected: int
    actual: int

    def to_dict(self) -> dict:
        return {
            "address": f"0x{self.address:04X}",
            "expected": f"0x{self.expected:02X}",
            "actual": f"0x{self.actual:02X}",
        }


@dataclass
class VerifyReport:
    """Outcome of comparing device contents with a reference."""

    checked: int
    total: int
    mismatch_count: int = 0
    mismatches: list[Mismatch] = field(default_factory=list)
    # How the read that produced the compared data ended.
    status: TransferStatus = TransferStatus.COMPLETE
    error: str | None = None

    @property
    def complete(self) -> bool:
        return self.status is TransferStatus.COMPLETE and self.checked == self.total

    @property
    def ok(self) -> bool:
        return self.complete and self.mismatch_count == 0

    def to_dict(self) -> dict:
        result = {
            "ok": self.ok,
            "status": self.status.value,
            "checked": self.checked,
            "total": self.total,
            "mismatch_count": self.mismatch_count,
            "mismatches": [m.to_dict() for m in self.mismatches],
        }
        if self.error:
            result["error"] = self.error
        return result


def compare_images(
    expected: bytes,
    actual: bytes,
    max_mismatches: int = MAX_MISMATCHES,
) -> VerifyReport:
    """Compare ``actual`` (read from the device) against ``expected``.

    Only the overlapping prefix is compared; a short read shows up as
    ``checked < total``. At most ``max_mismatches`` differences are kept
    in detail, all of them are counted.
    """
    report = VerifyReport(checked=min(len(expected), len(actual)), total=len(expected))
    for address, (want, got) in enumerate(zip(expected, actual)):
        if want != got:
            report.mismatch_count += 1
            if len(report.mismatches) < max_mismatches:
                report.mismatches.append(Mismatch(address, want, got))
    return report


def blank_check_image(
    data: bytes,
    total: int | None = None,
    max_mismatches: int = MAX_MISMATCHES,
) -> VerifyReport:
    """Check that every byte of ``data`` is erased (``0xFF``)."""
    total = len(data) if total is None else total
    return compare_images(bytes([BLANK_BYTE]) * total, data, max_mismatches)
