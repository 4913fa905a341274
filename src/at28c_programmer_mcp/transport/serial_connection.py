"""Serial connection to the AT28C programmer.

The programmer is an Arduino-class board on a USB serial adapter. It resets
whenever the port is opened, so DTR is configured low before ``open()`` and
callers give the board a moment to boot before talking to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import serial
import serial.tools.list_ports

from ..config import SerialSettings

logger = logging.getLogger(__name__)

# Non-blocking reads: the session polls in_waiting and only reads what is there.
READ_TIMEOUT = 0
WRITE_TIMEOUT = 2.0


class Transport(Protocol):
    """Byte-oriented duplex channel the Session drives.

    Any object with these members can stand in for the serial port,
    which is how the tests feed scripted device behaviour.
    """

    @property
    def is_open(self) -> bool: ...

    @property
    def in_waiting(self) -> int: ...

    def open(self) -> None: ...

    def close(self) -> None: ...

    def write(self, data: bytes) -> int | None: ...

    def read(self, size: int = 1) -> bytes: ...

    def reset_input_buffer(self) -> None: ...

    def reset_output_buffer(self) -> None: ...


@dataclass
class PortInfo:
    """A serial port offered by the operating system."""

    device: str
    description: str = ""
    hwid: str = ""


def list_ports() -> list[PortInfo]:
    """Enumerate serial ports, sorted by device name."""
    ports = [
        PortInfo(device=p.device, description=p.description, hwid=p.hwid)
        for p in serial.tools.list_ports.comports()
    ]
    ports.sort(key=lambda p: p.device)
    return ports


class SerialTransport:
    """pyserial-backed Transport.

    Usage::

        transport = SerialTransport(SerialSettings(port="/dev/ttyUSB0"))
        transport.open()
        transport.write(b"VERSION=?\\r")
        reply = transport.read(transport.in_waiting)
        transport.close()
    """

    def __init__(self, settings: SerialSettings | None = None) -> None:
        self._settings = settings or SerialSettings()
        self._serial: serial.Serial | None = None

    @property
    def settings(self) -> SerialSettings:
        return self._settings

    @property
    def port(self) -> str | None:
        return self._settings.port

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    @property
    def in_waiting(self) -> int:
        return self._require_port().in_waiting

    def open(self) -> None:
        """Open the port with the configured line parameters.

        Raises:
            ConnectionError: If no port is configured or the open fails.
        """
        settings = self._settings
        if not settings.port:
            raise ConnectionError("No serial port configured")

        port = serial.Serial()
        port.port = settings.port
        port.baudrate = settings.baudrate
        port.bytesize = settings.bytesize
        port.parity = settings.parity
        port.stopbits = settings.stopbits
        port.timeout = READ_TIMEOUT
        port.write_timeout = WRITE_TIMEOUT
        # Must be set before open() so the line never toggles high.
        port.dtr = settings.dtr

        try:
            port.open()
        except (serial.SerialException, OSError) as e:
            raise ConnectionError(
                f"Could not open {settings.port} at {settings.baudrate} baud: {e}"
            ) from e

        self._serial = port
        logger.info(
            "Opened %s (%d %d%s%s)",
            settings.port,
            settings.baudrate,
            settings.bytesize,
            settings.parity,
            settings.stopbits,
        )

    def close(self) -> None:
        """Close the port. Safe to call when already closed."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        finally:
            self._serial = None
            logger.info("Closed %s", self._settings.port)

    def write(self, data: bytes) -> int | None:
        return self._require_port().write(data)

    def read(self, size: int = 1) -> bytes:
        return self._require_port().read(size)

    def reset_input_buffer(self) -> None:
        self._require_port().reset_input_buffer()

    def reset_output_buffer(self) -> None:
        self._require_port().reset_output_buffer()

    def _require_port(self) -> serial.Serial:
        if self._serial is None:
            raise serial.SerialException("Port is not open")
        return self._serial
