"""Shared pytest fixtures for ulcd tests."""

from unittest.mock import patch

import pytest

from ulcd.device import Display
from ulcd.errors import ErrorCode


class FakeSerial:
    """Test double for serial.Serial: scripted replies, records writes.

    Args:
        replies: Bytes the display will "send", consumed by read().
        write_chunk: Max bytes accepted per write() call (None = all).
        read_chunk: Max bytes returned per read() call (None = all).
        read_sizes: Explicit per-call read sizes, used before read_chunk.
    """

    def __init__(self, replies=b"", write_chunk=None, read_chunk=None,
                 read_sizes=None):
        """Initialize with canned replies and transfer limits."""
        self.port = None
        self.baudrate = 9600
        self.settings = None
        self.is_open = False
        self.written = bytearray()
        self.write_calls = 0
        self.read_calls = []
        self.read_baudrates = []
        self.flush_calls = 0
        self.input_resets = 0
        self.write_chunk = write_chunk
        self.read_chunk = read_chunk
        self._rx = bytearray(replies)
        self._read_sizes = list(read_sizes or [])

    def open(self):
        self.is_open = True

    def apply_settings(self, settings):
        self.settings = dict(settings)
        self.baudrate = settings["baudrate"]

    def reset_input_buffer(self):
        # Canned replies stand for bytes that arrive later, so keep them.
        self.input_resets += 1

    def write(self, data):
        data = bytes(data)
        self.write_calls += 1
        if self.write_chunk is not None:
            data = data[:self.write_chunk]
        self.written += data
        return len(data)

    def read(self, size=1):
        self.read_calls.append(size)
        self.read_baudrates.append(self.baudrate)
        n = size
        if self._read_sizes:
            n = min(n, self._read_sizes.pop(0))
        elif self.read_chunk is not None:
            n = min(n, self.read_chunk)
        chunk = bytes(self._rx[:n])
        del self._rx[:n]
        return chunk

    def flush(self):
        self.flush_calls += 1

    def close(self):
        self.is_open = False

    @property
    def pending(self) -> bytes:
        """Reply bytes not yet read."""
        return bytes(self._rx)


@pytest.fixture
def open_display():
    """Return a factory that opens a Display on a given FakeSerial."""

    def _open(fake, baud_code=13):
        with patch("ulcd.device.serial.Serial", return_value=fake):
            display = Display("/dev/ttyUSB0", baud_code)
            assert display.open() == ErrorCode.OK
        return display

    return _open
