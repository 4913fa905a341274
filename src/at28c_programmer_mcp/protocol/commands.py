"""Command verbs and builders for the programmer's ASCII line protocol.

Every host-to-device command is a single line ``VERB=<args>`` terminated
by a carriage return. Multiple arguments are comma separated::

    VERSION=?\\r
    READEEPROM=32768\\r
    WRITEBYTE=4096,255\\r
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

LINE_TERMINATOR = b"\r"
ARG_SEPARATOR = ","
QUERY = "?"


class Verb(str, Enum):
    """Command verbs understood by the programmer firmware."""

    VERSION = "VERSION"
    READEEPROM = "READEEPROM"
    WRITEEEPROM = "WRITEEEPROM"
    ENABLESDP = "ENABLESDP"
    READBYTE = "READBYTE"
    WRITEBYTE = "WRITEBYTE"


@dataclass(frozen=True)
class Command:
    """A single outgoing command line."""

    verb: Verb
    args: tuple[int | str, ...] = ()

    def to_bytes(self) -> bytes:
        """Serialize to the ASCII wire form, including the terminator."""
        text = self.verb.value + "=" + ARG_SEPARATOR.join(str(a) for a in self.args)
        return text.encode("ascii") + LINE_TERMINATOR

    def __str__(self) -> str:
        return self.to_bytes().decode("ascii").rstrip("\r")


def build_command(verb: Verb, *args: int | str) -> bytes:
    """Build the wire bytes for an arbitrary verb and arguments."""
    return Command(verb, tuple(args)).to_bytes()


def build_version_query() -> bytes:
    """Build ``VERSION=?`` to request the firmware identity."""
    return build_command(Verb.VERSION, QUERY)


def build_read_eeprom(size: int) -> bytes:
    """Build a dump request for ``size`` bytes.

    Args:
        size: Number of bytes the device should stream back.
    """
    if size <= 0:
        raise ValueError(f"Read size must be positive, got {size}")
    return build_command(Verb.READEEPROM, size)


def build_write_eeprom(size: int, page_size: int | None = None) -> bytes:
    """Build the announcement that precedes ``size`` raw image bytes.

    Args:
        size: Number of image bytes that follow.
        page_size: If given, the device buffers blocks of this many bytes
            and burns each with a single page write (``WRITEEEPROM=n,64``).
    """
    if size <= 0:
        raise ValueError(f"Write size must be positive, got {size}")
    if page_size is None:
        return build_command(Verb.WRITEEEPROM, size)
    if page_size <= 0 or size % page_size:
        raise ValueError(
            f"Paged write size {size} must be a multiple of page size {page_size}"
        )
    return build_command(Verb.WRITEEEPROM, size, page_size)


def build_enable_sdp(enabled: bool) -> bytes:
    """Build a software data protection on/off command."""
    return build_command(Verb.ENABLESDP, 1 if enabled else 0)


def build_read_byte(device_code: int, address: int) -> bytes:
    """Build a single byte read.

    Args:
        device_code: Numeric memory type understood by the firmware.
        address: Byte address to read.
    """
    if address < 0:
        raise ValueError(f"Address must be non-negative, got {address}")
    return build_command(Verb.READBYTE, device_code, address)


def build_write_byte(address: int, value: int) -> bytes:
    """Build a single byte write; the device answers with the value read back."""
    if address < 0:
        raise ValueError(f"Address must be non-negative, got {address}")
    if not 0 <= value <= 255:
        raise ValueError(f"Byte value must be 0-255, got {value}")
    return build_command(Verb.WRITEBYTE, address, value)
