"""Response line parsing for device messages.

The programmer answers queries with ``+KEY=VALUE`` lines. Anything that
does not split on ``=`` is noise (boot banners, echoed bytes) and parses
to ``None`` so the caller can keep waiting for the real answer.
"""

from __future__ import annotations

from dataclasses import dataclass

from .commands import Verb

RESPONSE_PREFIX = "+"
MIN_FIRMWARE = (0, 4)


def response_key(verb: Verb) -> str:
    """Key of the reply line the device sends for ``verb``."""
    return RESPONSE_PREFIX + verb.value


VERSION_KEY = response_key(Verb.VERSION)
READBYTE_KEY = response_key(Verb.READBYTE)
WRITEBYTE_KEY = response_key(Verb.WRITEBYTE)


@dataclass(frozen=True)
class ResponseLine:
    """One parsed ``KEY=VALUE`` line."""

    key: str
    value: str

    def __repr__(self) -> str:
        return f"ResponseLine({self.key}={self.value!r})"


def parse_line(line: str | bytes) -> ResponseLine | None:
    """Parse a single line into a ResponseLine.

    Returns:
        The parsed line, or ``None`` if it has no ``=``.
    """
    if isinstance(line, bytes):
        line = line.decode("ascii", errors="replace")
    line = line.strip("\r\n")
    key, sep, value = line.partition("=")
    if not sep:
        return None
    return ResponseLine(key=key, value=value)


class LineAssembler:
    """Accumulate raw serial bytes and split out complete lines.

    Lines may end in ``\\r``, ``\\n`` or ``\\r\\n``; empty lines are dropped.
    Bytes after the last terminator are held until more data arrives.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, data: bytes) -> list[str]:
        self._pending += data
        lines: list[str] = []
        start = 0
        for i, b in enumerate(self._pending):
            if b in (0x0D, 0x0A):
                if i > start:
                    chunk = bytes(self._pending[start:i])
                    lines.append(chunk.decode("ascii", errors="replace"))
                start = i + 1
        del self._pending[:start]
        return lines

    @property
    def pending(self) -> bytes:
        return bytes(self._pending)

    def clear(self) -> None:
        self._pending.clear()


def parse_firmware_version(value: str) -> tuple[int, int] | None:
    """Parse a firmware identity such as ``"0.004"`` into ``(0, 4)``."""
    major, sep, minor = value.strip().partition(".")
    if not sep:
        return None
    try:
        return int(major), int(minor)
    except ValueError:
        return None


def firmware_supported(value: str) -> bool:
    """True if ``value`` parses and is at least :data:`MIN_FIRMWARE`."""
    version = parse_firmware_version(value)
    return version is not None and version >= MIN_FIRMWARE


def parse_byte_reply(line: ResponseLine) -> int | None:
    """Decode the decimal value of a ``+READBYTE`` / ``+WRITEBYTE`` reply."""
    try:
        value = int(line.value.strip())
    except ValueError:
        return None
    return value & 0xFF
