"""Exceptions raised by the programmer session."""

from __future__ import annotations


class ConnectFailed(ConnectionError):
    """The serial port could not be opened."""


class NotConnected(ConnectionError):
    """An operation was attempted while the session is disconnected."""

    def __init__(self, operation: str = "") -> None:
        message = "Not connected to programmer"
        if operation:
            message = f"{message}: cannot {operation}"
        super().__init__(message)
        self.operation = operation


class TransferIncomplete(NotConnected):
    """A bulk transfer ended early and the device is still inside it.

    The firmware keeps consuming (or producing) raw bytes until the
    announced size is reached, so no command can be sent until the port
    is closed and reopened, which resets the board.
    """

    def __init__(self, operation: str = "") -> None:
        ConnectionError.__init__(
            self,
            "Previous transfer did not complete; disconnect and reconnect "
            "to reset the programmer"
            + (f" before trying to {operation}" if operation else ""),
        )
        self.operation = operation


class ImageTooLarge(ValueError):
    """A write image is larger than the selected device can hold."""

    def __init__(self, size: int, capacity: int, device: str) -> None:
        super().__init__(
            f"Image of {size} bytes does not fit {device} ({capacity} bytes)"
        )
        self.size = size
        self.capacity = capacity
        self.device = device
