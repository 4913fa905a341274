"""Programmer session: connection state and the command/transfer protocol.

A Session owns its transport exclusively and runs one operation at a time.
Every operation blocks until it finishes; none of them may be called
concurrently on the same Session, since overlapping commands would corrupt
the line framing.

Usage::

    session = Session(config=SessionConfig(serial=SerialSettings(port="/dev/ttyUSB0")))
    if session.connect():
        session.wait_for_device()
        version = session.identify()
        result = session.bulk_read(AT28C256.capacity, progress=LoggingProgress("read"))
        session.disconnect()
"""

from __future__ import annotations

import logging
import time
from enum import Enum

import serial

from .config import CapacityPolicy, SessionConfig
from .errors import ConnectFailed, ImageTooLarge, NotConnected, TransferIncomplete
from .models.device import DeviceType
from .models.image import VerifyReport, blank_check_image, compare_images
from .models.transfer import CancelToken, ProgressSink, TransferResult, TransferStatus
from .protocol.commands import (
    build_enable_sdp,
    build_read_byte,
    build_read_eeprom,
    build_version_query,
    build_write_byte,
    build_write_eeprom,
)
from .protocol.parser import (
    READBYTE_KEY,
    VERSION_KEY,
    WRITEBYTE_KEY,
    LineAssembler,
    ResponseLine,
    parse_byte_reply,
    parse_line,
)
from .transport.serial_connection import SerialTransport, Transport

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (serial.SerialException, OSError)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class Session:
    """Drives the programmer over a Transport."""

    def __init__(
        self,
        transport: Transport | None = None,
        config: SessionConfig | None = None,
    ) -> None:
        self._config = config or SessionConfig()
        if transport is None:
            transport = SerialTransport(self._config.serial)
        self._transport = transport
        self._state = ConnectionState.DISCONNECTED
        self._transfer_pending = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def transfer_pending(self) -> bool:
        """True after a bulk transfer ended early, until the port is reopened."""
        return self._transfer_pending

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    # ─── CONNECTION ──────────────────────────────────────────────────

    def connect(self, raise_on_error: bool = False) -> bool:
        """Open the transport.

        Returns:
            True if the transport opened and reports itself open.

        Raises:
            ConnectFailed: Only when ``raise_on_error`` is set.
        """
        if self.connected:
            return True

        try:
            self._transport.open()
            opened = self._transport.is_open
        except Exception as e:
            logger.warning("Connect failed: %s", e)
            if raise_on_error:
                raise ConnectFailed(str(e)) from e
            return False

        if not opened:
            logger.warning("Connect failed: transport did not report open")
            if raise_on_error:
                raise ConnectFailed("Transport did not report open")
            return False

        self._state = ConnectionState.CONNECTED
        self._transfer_pending = False
        logger.info("Connected")
        return True

    def wait_for_device(self) -> None:
        """Give the board time to finish the reset triggered by opening the port."""
        time.sleep(self._config.settle_delay)

    def disconnect(self) -> bool:
        """Close the transport.

        Returns:
            True if the transport reports itself closed afterwards.
        """
        if not self.connected and not self._transport.is_open:
            return True

        try:
            self._transport.close()
        except TRANSPORT_ERRORS as e:
            logger.warning("Error closing transport: %s", e)

        closed = not self._transport.is_open
        if closed:
            self._state = ConnectionState.DISCONNECTED
            # Reopening the port resets the board out of any transfer.
            self._transfer_pending = False
            logger.info("Disconnected")
        return closed

    # ─── IDENTITY ────────────────────────────────────────────────────

    def identify(self) -> str:
        """Ask the firmware for its version string.

        Returns:
            The ``+VERSION`` value, or ``""`` if no such line arrived within
            the identify window or the transport failed.
        """
        self._require_connected("identify")
        deadline = time.monotonic() + self._config.identify_timeout

        try:
            self._send(build_version_query())
            line = self._await_reply(VERSION_KEY, deadline)
        except TRANSPORT_ERRORS as e:
            logger.warning("Identify failed: %s", e)
            return ""

        if line is None:
            logger.warning(
                "No %s reply within %.1fs", VERSION_KEY, self._config.identify_timeout
            )
            return ""

        logger.info("Firmware version %s", line.value)
        return line.value

    # ─── BULK TRANSFERS ──────────────────────────────────────────────

    def bulk_read(
        self,
        size: int,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
    ) -> TransferResult:
        """Dump ``size`` bytes from the device.

        Waits indefinitely for data unless ``read_idle_timeout`` is
        configured; ``cancel`` stops the wait from another thread.
        """
        self._require_connected("read")
        if size <= 0:
            raise ValueError(f"Read size must be positive, got {size}")

        buffer = bytearray()
        idle_timeout = self._config.read_idle_timeout
        logger.info("Reading %d bytes", size)
        self._report(progress, 0, size)

        try:
            self._clear_queues()
            self._send(build_read_eeprom(size))
            last_data = time.monotonic()

            while len(buffer) < size:
                if cancel is not None and cancel.cancelled:
                    return self._finish(TransferStatus.CANCELLED, buffer, size, "read")

                waiting = self._transport.in_waiting
                if waiting > 0:
                    chunk = self._transport.read(min(waiting, size - len(buffer)))
                    if chunk:
                        buffer += chunk
                        last_data = time.monotonic()
                        self._report(progress, len(buffer), size)
                    continue

                if idle_timeout is not None and time.monotonic() - last_data >= idle_timeout:
                    return self._finish(
                        TransferStatus.TIMED_OUT,
                        buffer,
                        size,
                        "read",
                        f"No data for {idle_timeout:.1f}s",
                    )
                time.sleep(self._config.poll_interval)
        except TRANSPORT_ERRORS as e:
            return self._finish(TransferStatus.ABORTED, buffer, size, "read", str(e))

        return self._finish(TransferStatus.COMPLETE, buffer, size, "read")

    def bulk_write(
        self,
        image: bytes,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
        device_type: DeviceType | None = None,
        page_size: int | None = None,
    ) -> TransferResult:
        """Stream ``image`` into the device.

        By default bytes go out one at a time, each followed by
        ``byte_delay``. With ``page_size`` the device page-writes blocks of
        that many bytes; one block is sent per ``byte_delay`` and progress
        advances a block at a time.

        The device sends no acknowledgement; a COMPLETE result means every
        byte left the host without a transport error.

        Raises:
            ImageTooLarge: If the capacity policy is ENFORCE and ``image``
                exceeds ``device_type``.
            ValueError: If a paged image is not a whole number of pages, or
                ``device_type`` cannot be page-written with ``page_size``.
        """
        self._require_connected("write")
        image = bytes(image)
        size = len(image)
        if size == 0:
            raise ValueError("Write image is empty")
        command = build_write_eeprom(size, page_size)
        if device_type is not None:
            if page_size is not None and device_type.page_size != page_size:
                raise ValueError(
                    f"{device_type.name} does not support {page_size}-byte page writes"
                )
            self._check_capacity(size, device_type)

        block = page_size or 1
        sent = 0
        logger.info(
            "Writing %d bytes%s", size, f" in {block}-byte pages" if page_size else ""
        )
        self._report(progress, 0, size)

        try:
            self._clear_queues()
            self._send(command)

            for offset in range(0, size, block):
                if cancel is not None and cancel.cancelled:
                    return self._finish(
                        TransferStatus.CANCELLED, image[:sent], size, "write"
                    )
                self._transport.write(image[offset : offset + block])
                time.sleep(self._config.byte_delay)
                sent = offset + block
                self._report(progress, sent, size)
        except TRANSPORT_ERRORS as e:
            return self._finish(
                TransferStatus.ABORTED, image[:sent], size, "write", str(e)
            )

        return self._finish(TransferStatus.COMPLETE, image, size, "write")

    def verify(
        self,
        image: bytes,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
    ) -> VerifyReport:
        """Read back ``len(image)`` bytes and compare them with ``image``."""
        result = self.bulk_read(len(image), progress=progress, cancel=cancel)
        report = compare_images(image, result.data, self._config.max_mismatches)
        report.status, report.error = result.status, result.error
        logger.info(
            "Verify %s: %d/%d bytes checked, %d mismatches",
            report.status.value,
            report.checked,
            report.total,
            report.mismatch_count,
        )
        return report

    def blank_check(
        self,
        size: int,
        progress: ProgressSink | None = None,
        cancel: CancelToken | None = None,
    ) -> VerifyReport:
        """Read ``size`` bytes and report any that are not erased."""
        result = self.bulk_read(size, progress=progress, cancel=cancel)
        report = blank_check_image(result.data, size, self._config.max_mismatches)
        report.status, report.error = result.status, result.error
        logger.info(
            "Blank check %s: %d/%d bytes checked, %d not blank",
            report.status.value,
            report.checked,
            report.total,
            report.mismatch_count,
        )
        return report

    # ─── SINGLE-LINE COMMANDS ────────────────────────────────────────

    def set_write_protection(self, enabled: bool) -> bool:
        """Enable or disable the chip's software data protection.

        Returns:
            True if the command was sent.
        """
        self._require_connected("set write protection")
        try:
            self._clear_queues()
            self._send(build_enable_sdp(enabled))
        except TRANSPORT_ERRORS as e:
            logger.warning("Write protection command failed: %s", e)
            return False
        logger.info("Software data protection %s", "enabled" if enabled else "disabled")
        return True

    def read_byte(self, device_type: DeviceType, address: int) -> int | None:
        """Read one byte; None if the device did not answer in time."""
        self._require_connected("read byte")
        if not device_type.contains(address):
            raise ValueError(
                f"Address {address:#06x} outside {device_type.name} "
                f"(0-{device_type.capacity - 1:#06x})"
            )
        line = self._query(build_read_byte(device_type.code, address), READBYTE_KEY)
        return parse_byte_reply(line) if line is not None else None

    def write_byte(
        self,
        address: int,
        value: int,
        device_type: DeviceType | None = None,
    ) -> int | None:
        """Write one byte.

        Returns:
            The value the device read back after writing, or None if it
            did not answer in time.
        """
        self._require_connected("write byte")
        if device_type is not None and not device_type.contains(address):
            raise ValueError(
                f"Address {address:#06x} outside {device_type.name} "
                f"(0-{device_type.capacity - 1:#06x})"
            )
        line = self._query(build_write_byte(address, value), WRITEBYTE_KEY)
        if line is None:
            return None
        readback = parse_byte_reply(line)
        if readback is not None and readback != value:
            logger.warning(
                "Write byte mismatch at %#06x: wrote %#04x, read %#04x",
                address,
                value,
                readback,
            )
        return readback

    # ─── INTERNALS ───────────────────────────────────────────────────

    def _require_connected(self, operation: str) -> None:
        if not self.connected:
            raise NotConnected(operation)
        if self._transfer_pending:
            raise TransferIncomplete(operation)

    def _send(self, data: bytes) -> None:
        logger.debug("-> %r", data)
        self._transport.write(data)

    def _clear_queues(self) -> None:
        self._transport.reset_input_buffer()
        self._transport.reset_output_buffer()

    def _query(self, command: bytes, key: str) -> ResponseLine | None:
        deadline = time.monotonic() + self._config.byte_reply_timeout
        try:
            self._clear_queues()
            self._send(command)
            line = self._await_reply(key, deadline)
        except TRANSPORT_ERRORS as e:
            logger.warning("%s query failed: %s", key, e)
            return None
        if line is None:
            logger.warning("No %s reply", key)
        return line

    def _await_reply(self, key: str, deadline: float) -> ResponseLine | None:
        """Poll for a line with ``key`` until ``deadline``; other lines are skipped."""
        assembler = LineAssembler()
        while time.monotonic() < deadline:
            waiting = self._transport.in_waiting
            if waiting <= 0:
                time.sleep(self._config.poll_interval)
                continue
            for text in assembler.feed(self._transport.read(waiting)):
                logger.debug("<- %r", text)
                line = parse_line(text)
                if line is not None and line.key == key:
                    return line
        return None

    def _check_capacity(self, size: int, device_type: DeviceType) -> None:
        if size <= device_type.capacity:
            return
        policy = self._config.capacity_policy
        if policy is CapacityPolicy.ENFORCE:
            raise ImageTooLarge(size, device_type.capacity, device_type.name)
        if policy is CapacityPolicy.WARN:
            logger.warning(
                "Image of %d bytes exceeds %s capacity (%d bytes)",
                size,
                device_type.name,
                device_type.capacity,
            )

    @staticmethod
    def _report(progress: ProgressSink | None, transferred: int, total: int) -> None:
        if progress is not None:
            progress(transferred, total)

    def _finish(
        self,
        status: TransferStatus,
        data: bytes | bytearray,
        total: int,
        operation: str,
        error: str | None = None,
    ) -> TransferResult:
        result = TransferResult(status=status, data=bytes(data), total=total, error=error)
        if result.complete:
            logger.info("%s finished: %d bytes", operation.capitalize(), total)
        else:
            # The firmware is still counting down the announced size.
            self._transfer_pending = True
            logger.warning(
                "%s %s after %d/%d bytes%s",
                operation.capitalize(),
                status.value,
                result.transferred,
                total,
                f": {error}" if error else "",
            )
        return result
