from __future__ import annotations

import io
import logging
import struct
from typing import BinaryIO, Optional, Union

from .checksum import ChecksumWriter
from .constants import (
    SIGNATURE,
    COMMENT_SIZE,
    DEFAULT_COMMENT,
    ENTRY_HEADER_LEN,
    FLAG_ARCHIVED,
    MAX_DATA,
    VAR_OVERHEAD,
    DATA_SECTION_LEN_OFFSET,
    DATA_LEN1_OFFSET,
    DATA_LEN2_OFFSET,
    LENGTH_PREFIX_OFFSET,
    DATA_OFFSET,
)
from .errors import InvalidComment, TooLarge
from .names import encode_name, decode_name
from .vartypes import VariableType

logger = logging.getLogger(__name__)

_U16 = struct.Struct("<H")


def _write_all(stream, data: bytes) -> None:
    view = memoryview(bytes(data))
    while view:
        n = stream.write(view)
        if n is None:
            n = len(view)
        view = view[n:]


def encode_comment(comment: Union[str, bytes, None]) -> bytes:
    """Return the 42-byte zero-padded comment field."""
    if comment is None:
        comment = DEFAULT_COMMENT
    if isinstance(comment, str):
        try:
            comment = comment.encode("ascii")
        except UnicodeEncodeError:
            raise InvalidComment("Comment must be ASCII text") from None
    if len(comment) > COMMENT_SIZE:
        raise InvalidComment(f"Comment may not exceed {COMMENT_SIZE} bytes but was {len(comment)}")
    return bytes(comment).ljust(COMMENT_SIZE, b"\x00")


class VariableWriter:
    """Streaming writer for a single calculator variable file.

    Writing happens in two phases. Opening emits the constant header and the
    entry header with zeroed length fields; payload bytes are then streamed
    straight through. ``close()`` seeks back to patch the length fields at
    their fixed offsets and appends the checksum, so the output must be
    seekable by the time it is closed.

    A file is only valid once ``close()`` has been called.
    """

    def __init__(
        self,
        output: BinaryIO,
        var_type: VariableType,
        name: str,
        archived: bool = False,
        comment: Union[str, bytes, None] = None,
    ):
        var_type = VariableType(var_type)
        # Everything that can be rejected is checked before the first byte goes out
        raw_name = encode_name(name)
        prefixed = var_type.has_length_prefix
        comment_field = encode_comment(comment)

        self.var_type = var_type
        self.name = raw_name
        self.archived = bool(archived)
        self._prefixed = prefixed
        self._output = output
        self._base: Optional[int] = output.tell() if output.seekable() else None
        self._closed = False
        self.data_length = 0

        # Constant header, comment, and placeholder for the data section length
        _write_all(output, SIGNATURE + comment_field + b"\x00\x00")

        self._w = ChecksumWriter(output)
        self._w.begin()
        # Entry header: header length, data length (patched), type, name, version, flags, data length (patched)
        _write_all(self._w, _U16.pack(ENTRY_HEADER_LEN) + b"\x00\x00" + bytes([var_type]))
        _write_all(self._w, raw_name)
        _write_all(self._w, bytes([0, FLAG_ARCHIVED if archived else 0]) + b"\x00\x00")
        if prefixed:
            # The prefix counts against the data length, so it goes through write()
            _write_all(self, b"\x00\x00")
        logger.debug("opened %s variable %s (archived=%s)", var_type.name, decode_name(raw_name), self.archived)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None and not self._closed:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed VariableWriter")
        size = self.data_length + len(data)
        if size > MAX_DATA:
            raise TooLarge(size, MAX_DATA)
        n = self._w.write(data)
        self.data_length += n
        return n

    def flush(self) -> None:
        self._w.flush()

    def close(self) -> BinaryIO:
        """Patch the length fields, append the checksum and return the output.

        The output is left positioned just after the checksum.
        """
        if self._closed:
            raise ValueError("VariableWriter is already closed")
        if self._base is None or not self._output.seekable():
            raise io.UnsupportedOperation("VariableWriter output must be seekable to close")
        self._closed = True
        w = self._w
        base = self._base
        n = self.data_length

        with w.suspended():
            w.seek(base + DATA_SECTION_LEN_OFFSET)
            _write_all(w, _U16.pack(n + VAR_OVERHEAD))
        # The placeholders are zero, so writing the real values adds exactly their bytes
        w.seek(base + DATA_LEN1_OFFSET)
        _write_all(w, _U16.pack(n))
        w.seek(base + DATA_LEN2_OFFSET)
        _write_all(w, _U16.pack(n))
        if self._prefixed:
            w.seek(base + LENGTH_PREFIX_OFFSET)
            _write_all(w, _U16.pack(n - 2))
        checksum = w.end()

        self._output.seek(base + DATA_OFFSET + n)
        _write_all(self._output, _U16.pack(checksum))
        logger.debug(
            "closed %s variable %s: %d data bytes, checksum %#06x",
            self.var_type.name,
            decode_name(self.name),
            n,
            checksum,
        )
        return self._output


def dump_variable(
    var_type: VariableType,
    name: str,
    data: bytes,
    archived: bool = False,
    comment: Union[str, bytes, None] = None,
) -> bytes:
    """Encode a complete variable file in memory."""
    w = VariableWriter(io.BytesIO(), var_type, name, archived=archived, comment=comment)
    _write_all(w, data)
    return w.close().getvalue()
