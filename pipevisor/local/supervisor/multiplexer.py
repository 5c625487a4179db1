"""
Line framing for child output streams.

Raw bytes read from a child's pipe are cut into newline-delimited lines,
sanitized, and handed to a sink one complete line at a time, so output from
different children (or from stdout and stderr of the same child) is never
spliced together.
"""
import os
import logging
from typing import Callable

log = logging.getLogger(__name__)

CR = 0x0D
LF = 0x0A
SPACE = 0x20
DEL = 0x7F

# Undecodable bytes survive as lone surrogates and are written back unchanged.
STREAM_ERRORS = "surrogateescape"


class LineBuffer:
    """A fixed-capacity accumulator holding one partial, not yet terminated line."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"Line buffer capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self.data = bytearray(capacity)
        self.position = 0

    @property
    def free(self) -> int:
        return self.capacity - self.position

    @property
    def is_full(self) -> bool:
        return self.position >= self.capacity

    def append(self, byte: int) -> None:
        self.data[self.position] = byte
        self.position += 1

    def take(self) -> bytes:
        """Returns the accumulated bytes and resets the buffer to empty."""
        content = bytes(self.data[:self.position])
        self.position = 0
        return content


class LineMultiplexer:
    """
    Frames one child stream into sanitized lines.

    Carriage returns are dropped, other control bytes and DEL become a space,
    and a line that fills the whole buffer is flushed without waiting for its
    terminator.
    """

    def __init__(self, name: str, capacity: int, sink: Callable[[str], None]):
        """
        :param name: The child's display name, used in diagnostics.
        :param capacity: Maximum line length before a forced wrap.
        :param sink: Receives every complete line, without the terminator.
        """
        self.name = name
        self.buffer = LineBuffer(capacity)
        self.sink = sink
        self._wrapped = False

    def flush(self) -> None:
        """Emits the buffered content as one line, even if it is empty."""
        line = self.buffer.take()
        self._wrapped = False
        self.sink(line.decode("utf-8", errors=STREAM_ERRORS))

    def flush_partial(self) -> None:
        """Emits the buffered content only if there is any."""
        if self.buffer.position:
            self.flush()

    def feed(self, chunk: bytes) -> None:
        """Scans a chunk byte by byte, flushing on every line feed and on a full buffer."""
        for byte in chunk:
            if byte == CR:
                continue
            if byte == LF:
                # The line was already emitted by a forced wrap.
                if self._wrapped and self.buffer.position == 0:
                    self._wrapped = False
                    continue
                self.flush()
                continue

            self._wrapped = False
            if byte < SPACE or byte == DEL:
                byte = SPACE
            self.buffer.append(byte)

            if self.buffer.is_full:
                self.flush()
                self._wrapped = True

    def pump(self, fd: int) -> bool:
        """
        Reads at most the free buffer capacity from `fd` and frames it.

        :param fd: A readable file descriptor reported ready by poll.
        :return: True while the stream stays open, False on end-of-file or error.
        """
        try:
            chunk = os.read(fd, self.buffer.free)
        except OSError as e:
            log.debug(f"Read error on a stream of {self.name}: {e}")
            return False

        if not chunk:
            self.flush_partial()
            return False

        self.feed(chunk)
        return True
