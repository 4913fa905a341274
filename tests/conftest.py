"""Shared fixtures: an in-memory programmer that speaks the line protocol."""

from __future__ import annotations

from collections import deque

import pytest

from at28c_programmer_mcp.config import SessionConfig
from at28c_programmer_mcp.session import Session


class FakeTransport:
    """Scripted stand-in for the serial port.

    ``replies`` maps an exact command line to the chunks the device sends
    back after receiving it. Each ``in_waiting`` poll releases at most one
    queued chunk, so a reply split into several chunks arrives fragmented.
    """

    def __init__(self, replies=None, fail_open=False):
        self.replies = dict(replies or {})
        self.fail_open = fail_open
        self.is_open = False
        self.writes: list[bytes] = []
        self.resets = 0
        self.read_error_after: int | None = None
        self.write_error_after: int | None = None
        self._pending: deque[bytes] = deque()
        self._buffer = bytearray()
        self._reads = 0

    def open(self):
        if self.fail_open:
            raise OSError("could not open port")
        self.is_open = True

    def close(self):
        self.is_open = False

    @property
    def in_waiting(self):
        if not self._buffer and self._pending:
            self._buffer += self._pending.popleft()
        return len(self._buffer)

    def read(self, size=1):
        if self.read_error_after is not None and self._reads >= self.read_error_after:
            raise OSError("device unplugged")
        self._reads += 1
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def write(self, data):
        if self.write_error_after is not None and len(self.writes) >= self.write_error_after:
            raise OSError("write failed")
        self.writes.append(bytes(data))
        self.on_write(bytes(data))
        return len(data)

    def on_write(self, data):
        for chunk in self.replies.get(data, []):
            self.queue(chunk)

    def queue(self, chunk):
        self._pending.append(bytes(chunk))

    def reset_input_buffer(self):
        self.resets += 1
        self._buffer.clear()
        self._pending.clear()

    def reset_output_buffer(self):
        pass

    @property
    def payload_writes(self):
        """Writes after the first command line."""
        return self.writes[1:]


class EchoDevice(FakeTransport):
    """Emulates the programmer's RAM buffer.

    Bytes following ``WRITEEEPROM=<n>`` are stored; ``READEEPROM=<n>``
    streams the stored bytes back in chunks of ``chunk_size``. After
    ``WRITEEEPROM=<n>,<page>`` each complete page is echoed back, as the
    firmware does after burning it.
    """

    def __init__(self, chunk_size=7):
        super().__init__()
        self.memory = bytearray()
        self.chunk_size = chunk_size
        self.page_size = None
        self._expect = 0

    def open(self):
        # Opening the port resets the board, abandoning any transfer.
        super().open()
        self._expect = 0

    def on_write(self, data):
        if self._expect:
            self.memory += data
            self._expect -= len(data)
            if self.page_size and len(self.memory) % self.page_size == 0:
                self.queue(self.memory[-self.page_size :])
            return
        text = data.decode("ascii").rstrip("\r")
        verb, _, arg = text.partition("=")
        args = [int(a) for a in arg.split(",")] if verb != "VERSION" else []
        if verb == "WRITEEEPROM":
            self.memory.clear()
            self._expect = args[0]
            self.page_size = args[1] if len(args) > 1 else None
        elif verb == "READEEPROM":
            dump = bytes(self.memory[: args[0]])
            for i in range(0, len(dump), self.chunk_size):
                self.queue(dump[i : i + self.chunk_size])


def fast_config(**overrides) -> SessionConfig:
    """Session timings shrunk so the tests do not sleep."""
    values = dict(
        settle_delay=0.0,
        identify_timeout=0.2,
        byte_reply_timeout=0.2,
        byte_delay=0.0,
        poll_interval=0.0005,
    )
    values.update(overrides)
    return SessionConfig(**values)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def echo_device():
    return EchoDevice()


@pytest.fixture
def make_session():
    """Build a Session around a transport and connect it."""

    def _make(transport, connect=True, **config):
        session = Session(transport=transport, config=fast_config(**config))
        if connect:
            assert session.connect()
        return session

    return _make
