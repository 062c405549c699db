"""
B83 and B84 bundles.

Bundles are accepted by TI-Connect CE for sending several variables to a
calculator in one operation. A bundle is a zip archive holding ordinary
variable files followed by two special entries:

- METADATA: ``<key>:<value>\\n`` lines (bundle_identifier, bundle_format_version,
  bundle_target_device, bundle_target_type, bundle_comments)
- _CHECKSUM: the wrapping 32-bit sum of the CRC32 of every preceding entry's
  uncompressed data (METADATA included), as lowercase hex followed by CRLF

Entry order matters to consumers: variables first, then METADATA, then _CHECKSUM.

    with open("out.b84", "wb") as fh:
        bundle = BundleWriter(BundleKind.B84, fh)
        bundle.start_var(VariableType.PROTECTED_PROGRAM, "NOP", archived=False)
        bundle.write(b"\\xbb\\x6d\\xc9")
        bundle.start_var(VariableType.APPVAR, "GREETZ", archived=True)
        bundle.write(b"Hello, world!")
        bundle.close()
"""
from __future__ import annotations

import io
import logging
import zipfile
import zlib
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Dict, Iterator, List, Union

from .constants import (
    BUNDLE_METADATA_NAME,
    BUNDLE_CHECKSUM_NAME,
    BUNDLE_IDENTIFIER,
    BUNDLE_FORMAT_VERSION,
    BUNDLE_TARGET_TYPE,
    DEFAULT_BUNDLE_COMMENT,
)
from .errors import BundleChecksumMismatch, BundleStateError, MalformedBundle
from .names import decode_name
from .reader import Variable, load_variable
from .vartypes import VariableType
from .writer import VariableWriter

logger = logging.getLogger(__name__)


class BundleKind(Enum):
    """Supported bundle kinds.

    The kind has no effect on encoding, but TI-Connect may refuse to send a
    bundle whose kind does not match the connected calculator.
    """

    B83 = ("b83", "83CE")  # TI-83 Premium CE
    B84 = ("b84", "84CE")  # TI-84 Plus CE

    @property
    def file_extension(self) -> str:
        return self.value[0]

    @property
    def device_name(self) -> str:
        return self.value[1]

    @classmethod
    def from_device_name(cls, device: str) -> "BundleKind":
        for kind in cls:
            if kind.device_name == device:
                return kind
        raise ValueError(f"Unknown bundle target device {device!r}")


def build_metadata(kind: BundleKind, comment: str = DEFAULT_BUNDLE_COMMENT) -> str:
    return (
        f"bundle_identifier:{BUNDLE_IDENTIFIER}\n"
        f"bundle_format_version:{BUNDLE_FORMAT_VERSION}\n"
        f"bundle_target_device:{kind.device_name}\n"
        f"bundle_target_type:{BUNDLE_TARGET_TYPE}\n"
        f"bundle_comments:{comment}\n"
    )


def parse_metadata(text: str) -> Dict[str, str]:
    meta: Dict[str, str] = {}
    for line in text.splitlines():
        if ":" not in line:
            continue
        key, val = line.split(":", 1)
        meta.setdefault(key.strip(), val.strip())
    return meta


@dataclass
class _Idle:
    pass


@dataclass
class _Writing:
    writer: VariableWriter
    buffer: io.BytesIO
    entry_name: str


@dataclass
class _Closed:
    pass


class BundleWriter:
    """Writes bundle files.

    Each :meth:`start_var` begins a new variable; subsequent :meth:`write`
    calls append to it. Variable files are buffered in memory until the next
    variable starts (or the bundle closes) because zip entries cannot be
    seeked back into. :meth:`close` must be called to emit METADATA and
    _CHECKSUM and finish the archive.
    """

    def __init__(
        self,
        kind: BundleKind,
        output: BinaryIO,
        comment: str = DEFAULT_BUNDLE_COMMENT,
        compression: int = zipfile.ZIP_DEFLATED,
    ):
        self.kind = kind
        self.comment = comment
        self._output = output
        self._zip = zipfile.ZipFile(output, "w", compression=compression)
        self._crc_sum = 0
        self._state: Union[_Idle, _Writing, _Closed] = _Idle()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None and not isinstance(self._state, _Closed):
            self.close()

    @property
    def crc_sum(self) -> int:
        return self._crc_sum

    def start_var(self, var_type: VariableType, name: str, archived: bool = False) -> None:
        """Begin writing a variable; arguments are as for :class:`VariableWriter`."""
        if isinstance(self._state, _Closed):
            raise BundleStateError("Bundle is closed")
        self._finish_var()
        var_type = VariableType(var_type)
        buf = io.BytesIO()
        writer = VariableWriter(buf, var_type, name, archived=archived)
        entry_name = f"{decode_name(writer.name)}.{var_type.file_extension}"
        self._state = _Writing(writer=writer, buffer=buf, entry_name=entry_name)

    def write(self, data: bytes) -> int:
        state = self._state
        if not isinstance(state, _Writing):
            raise BundleStateError("start_var must be called on a bundle writer before data can be written")
        return state.writer.write(data)

    def flush(self) -> None:
        state = self._state
        if not isinstance(state, _Writing):
            raise BundleStateError("start_var must be called on a bundle writer before data can be flushed")
        state.writer.flush()

    def _add_entry(self, name: str, data: bytes, *, checksummed: bool = True) -> None:
        if checksummed:
            crc = zlib.crc32(data) & 0xFFFFFFFF
            self._crc_sum = (self._crc_sum + crc) & 0xFFFFFFFF
            logger.debug("bundle entry %s: %d bytes, crc32 %08x", name, len(data), crc)
        with self._zip.open(name, "w") as entry:
            entry.write(data)

    def _finish_var(self) -> None:
        state = self._state
        if not isinstance(state, _Writing):
            return
        self._state = _Idle()
        state.writer.close()
        self._add_entry(state.entry_name, state.buffer.getvalue())

    def close(self) -> BinaryIO:
        """Finish the archive and return the underlying output."""
        if isinstance(self._state, _Closed):
            raise BundleStateError("Bundle is already closed")
        self._finish_var()
        self._state = _Closed()
        self._add_entry(BUNDLE_METADATA_NAME, build_metadata(self.kind, self.comment).encode("utf-8"))
        self._add_entry(BUNDLE_CHECKSUM_NAME, f"{self._crc_sum:x}\r\n".encode("ascii"), checksummed=False)
        self._zip.close()
        logger.debug("closed %s bundle, checksum %08x", self.kind.name, self._crc_sum)
        return self._output


class BundleReader:
    """Reads an existing bundle and checks its structure and aggregate checksum."""

    def __init__(self, source: Union[str, BinaryIO, bytes]):
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        self._zip = zipfile.ZipFile(source, "r")
        self._infos = self._zip.infolist()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self) -> None:
        self._zip.close()

    @property
    def entry_names(self) -> List[str]:
        return [i.filename for i in self._infos]

    @property
    def variable_names(self) -> List[str]:
        special = (BUNDLE_METADATA_NAME, BUNDLE_CHECKSUM_NAME)
        return [n for n in self.entry_names if n not in special]

    @property
    def metadata(self) -> Dict[str, str]:
        if BUNDLE_METADATA_NAME not in self.entry_names:
            raise MalformedBundle(f"Bundle has no {BUNDLE_METADATA_NAME} entry")
        return parse_metadata(self._zip.read(BUNDLE_METADATA_NAME).decode("utf-8"))

    @property
    def kind(self) -> BundleKind:
        return BundleKind.from_device_name(self.metadata.get("bundle_target_device", ""))

    @property
    def stored_checksum(self) -> int:
        if BUNDLE_CHECKSUM_NAME not in self.entry_names:
            raise MalformedBundle(f"Bundle has no {BUNDLE_CHECKSUM_NAME} entry")
        text = self._zip.read(BUNDLE_CHECKSUM_NAME).decode("ascii").strip()
        try:
            return int(text, 16)
        except ValueError:
            raise MalformedBundle(f"{BUNDLE_CHECKSUM_NAME} is not a hex number: {text!r}") from None

    def computed_checksum(self) -> int:
        total = 0
        for info in self._infos:
            if info.filename == BUNDLE_CHECKSUM_NAME:
                break
            total = (total + info.CRC) & 0xFFFFFFFF
        return total

    def verify(self) -> None:
        """Raise if entries are out of order or the aggregate checksum is wrong."""
        names = self.entry_names
        if len(names) < 2 or names[-2:] != [BUNDLE_METADATA_NAME, BUNDLE_CHECKSUM_NAME]:
            raise MalformedBundle(
                f"Bundle must end with {BUNDLE_METADATA_NAME} then {BUNDLE_CHECKSUM_NAME}, got {names[-2:]}"
            )
        if any(n in (BUNDLE_METADATA_NAME, BUNDLE_CHECKSUM_NAME) for n in names[:-2]):
            raise MalformedBundle("Special entries may only appear once, after all variables")
        stored = self.stored_checksum
        computed = self.computed_checksum()
        if stored != computed:
            raise BundleChecksumMismatch(computed, stored)

    def read_entry(self, name: str) -> bytes:
        return self._zip.read(name)

    def variables(self, strict: bool = True) -> Iterator[Variable]:
        for name in self.variable_names:
            yield load_variable(self._zip.read(name), strict=strict)


def read_bundle(source: Union[str, BinaryIO, bytes]) -> BundleReader:
    return BundleReader(source)
