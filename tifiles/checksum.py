"""
16-bit additive checksum used by variable files, plus pass-through stream
wrappers that accumulate it over everything written or read while active.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import BinaryIO, Iterator

_MASK = 0xFFFF


def additive_checksum(data: bytes, initial: int = 0) -> int:
    return (initial + sum(data)) & _MASK


class _ChecksumStream:
    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self.checksum = 0
        self.active = False

    def begin(self) -> None:
        """Start (or resume) adding bytes to the checksum."""
        self.active = True

    def end(self) -> int:
        """Stop adding bytes to the checksum and return the accumulated value."""
        self.active = False
        return self.checksum

    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Exclude everything passed through inside the block from the checksum."""
        prev = self.active
        self.active = False
        try:
            yield
        finally:
            self.active = prev

    def _update(self, data: bytes) -> None:
        if self.active:
            self.checksum = additive_checksum(data, self.checksum)


class ChecksumWriter(_ChecksumStream):
    """Writes to the wrapped stream, updating the checksum while active."""

    def write(self, data: bytes) -> int:
        data = bytes(data)
        n = self.stream.write(data)
        if n is None:
            n = len(data)
        self._update(data[:n])
        return n

    def seek(self, offset: int, whence: int = 0) -> int:
        return self.stream.seek(offset, whence)

    def tell(self) -> int:
        return self.stream.tell()

    def seekable(self) -> bool:
        return self.stream.seekable()

    def flush(self) -> None:
        self.stream.flush()


class ChecksumReader(_ChecksumStream):
    """Reads from the wrapped stream, updating the checksum while active."""

    def read(self, size: int = -1) -> bytes:
        data = self.stream.read(size)
        self._update(data)
        return data
