from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO, Union

from .checksum import ChecksumReader
from .constants import (
    SIGNATURE,
    COMMENT_SIZE,
    ENTRY_HEADER_LEN,
    ENTRY_HEADER_LENGTHS,
    FLAG_ARCHIVED,
    NAME_SIZE,
    CHECKSUM_SIZE,
)
from .errors import (
    ChecksumMismatch,
    DataLengthMismatch,
    InvalidSignature,
    UnknownHeaderLength,
    UnrecognizedType,
)
from .names import decode_name
from .vartypes import VariableType

logger = logging.getLogger(__name__)

_U16 = struct.Struct("<H")


def read_exact(f, n: int) -> bytes:
    # Sources may return fewer bytes than asked for; only an empty read is EOF
    buf = bytearray()
    while len(buf) < n:
        chunk = f.read(n - len(buf))
        if not chunk:
            raise EOFError("Unexpected EOF")
        buf += chunk
    return bytes(buf)


def _read_u16(f) -> int:
    return _U16.unpack(read_exact(f, 2))[0]


class _BoundedReader:
    """Passes reads through to ``stream`` until ``remaining`` bytes have been consumed."""

    def __init__(self, stream: BinaryIO, limit: int):
        self.stream = stream
        self.remaining = limit

    def read(self, size: int = -1) -> bytes:
        if self.remaining <= 0:
            return b""
        if size is None or size < 0:
            chunks = []
            while self.remaining > 0:
                data = self.stream.read(self.remaining)
                if not data:
                    break
                self.remaining -= len(data)
                chunks.append(data)
            return b"".join(chunks)
        data = self.stream.read(min(size, self.remaining))
        self.remaining -= len(data)
        return data


@dataclass
class FinishResult:
    """Outcome of :meth:`VariableReader.finish`.

    ``stream`` is the underlying input, positioned after the checksum. A
    checksum mismatch is reported here rather than raised, leaving the caller
    to decide whether the data is still usable.
    """

    stream: BinaryIO
    computed_checksum: int
    stored_checksum: int

    @property
    def ok(self) -> bool:
        return self.computed_checksum == self.stored_checksum

    def raise_for_checksum(self) -> BinaryIO:
        if not self.ok:
            raise ChecksumMismatch(self.computed_checksum, self.stored_checksum, self.stream)
        return self.stream


class VariableReader:
    """Reads a single calculator variable file from a stream.

    The header is parsed and validated on construction. Variable data is then
    available through :meth:`read`; callers may stop early, since
    :meth:`finish` consumes whatever is left before validating the checksum.
    Only sequential reads are performed on the input.
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        signature = read_exact(stream, len(SIGNATURE))
        if signature != SIGNATURE:
            raise InvalidSignature(signature)
        self._comment = read_exact(stream, COMMENT_SIZE)
        data_section_len = _read_u16(stream)

        # The data section is checksummed in full, and its length bounds what we may read
        r = ChecksumReader(_BoundedReader(stream, data_section_len))
        r.begin()

        entry_header_len = _read_u16(r)
        if entry_header_len not in ENTRY_HEADER_LENGTHS:
            raise UnknownHeaderLength(entry_header_len)

        data_len = _read_u16(r)
        if data_len + entry_header_len + 4 != data_section_len:
            raise DataLengthMismatch(data_len + entry_header_len + 4, data_section_len)

        code = read_exact(r, 1)[0]
        try:
            var_type = VariableType(code)
        except ValueError:
            raise UnrecognizedType(code) from None

        self._name = read_exact(r, NAME_SIZE)

        if entry_header_len == ENTRY_HEADER_LEN:
            _version, flags = read_exact(r, 2)
            self._archived = bool(flags & FLAG_ARCHIVED)
        else:
            self._archived = False

        data_len2 = _read_u16(r)
        if data_len != data_len2:
            raise DataLengthMismatch(data_len, data_len2)

        if var_type.has_length_prefix:
            # The inner length excludes the prefix field itself
            inner_len = _read_u16(r)
            if data_len != inner_len + 2:
                raise DataLengthMismatch(data_len, inner_len + 2)
            data_len = inner_len

        self._r = r
        self._var_type = var_type
        self._data_len = data_len
        self._finished = False
        logger.debug(
            "opened %s variable %s: %d data bytes (archived=%s)",
            var_type.name,
            self.display_name,
            data_len,
            self._archived,
        )

    def __len__(self) -> int:
        return self._data_len

    @property
    def data_length(self) -> int:
        """Number of bytes of variable data, excluding any length prefix."""
        return self._data_len

    @property
    def var_type(self) -> VariableType:
        return self._var_type

    @property
    def name(self) -> bytes:
        """Raw 8-byte variable name, including zero padding."""
        return self._name

    @property
    def display_name(self) -> str:
        return decode_name(self._name)

    @property
    def archived(self) -> bool:
        return self._archived

    @property
    def comment(self) -> bytes:
        return self._comment

    def read(self, size: int = -1) -> bytes:
        if self._finished:
            raise ValueError("read from finished VariableReader")
        return self._r.read(size)

    def finish(self) -> FinishResult:
        """Consume any unread data and compare the stored checksum against what was read."""
        if self._finished:
            raise ValueError("VariableReader is already finished")
        self._finished = True
        while self._r.read(4096):
            pass
        computed = self._r.end()
        stored = _U16.unpack(read_exact(self._stream, CHECKSUM_SIZE))[0]
        if computed != stored:
            logger.debug("checksum mismatch for %s: computed %#06x, stored %#06x", self.display_name, computed, stored)
        return FinishResult(self._stream, computed, stored)


@dataclass
class Variable:
    var_type: VariableType
    name: str
    raw_name: bytes
    archived: bool
    comment: bytes
    data: bytes
    checksum_ok: bool


def load_variable(source: Union[bytes, bytearray, BinaryIO], strict: bool = True) -> Variable:
    """Decode a complete variable file.

    With ``strict`` a checksum mismatch raises :class:`ChecksumMismatch`;
    otherwise it is reported through ``Variable.checksum_ok``.
    """
    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(source)
    reader = VariableReader(source)
    chunks = []
    while True:
        chunk = reader.read()
        if not chunk:
            break
        chunks.append(chunk)
    data = b"".join(chunks)
    if len(data) != reader.data_length:
        raise EOFError("Unexpected EOF")
    result = reader.finish()
    if strict:
        result.raise_for_checksum()
    return Variable(
        var_type=reader.var_type,
        name=reader.display_name,
        raw_name=reader.name,
        archived=reader.archived,
        comment=reader.comment,
        data=data,
        checksum_ok=result.ok,
    )
