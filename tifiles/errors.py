from __future__ import annotations

from typing import Any


class TIFilesError(Exception):
    """Base class for tifiles-specific errors."""


# Reading variable files
class ReadError(TIFilesError):
    pass


class InvalidSignature(ReadError):
    def __init__(self, actual: bytes):
        super().__init__(f"File signature should be b'**TI83F*\\x1a\\n\\x00', but was {actual!r}")
        self.actual = actual


class UnknownHeaderLength(ReadError):
    def __init__(self, length: int):
        super().__init__(f"Variable header reports length {length}, which is unrecognized")
        self.length = length


class DataLengthMismatch(ReadError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"Variable data length fields disagree: {expected} != {actual}")
        self.expected = expected
        self.actual = actual


class UnrecognizedType(ReadError):
    def __init__(self, code: int):
        super().__init__(f"Variable type {code:#x} is not recognized")
        self.code = code


class ChecksumMismatch(ReadError):
    """Stored checksum disagrees with the data that was read.

    Carries the underlying stream (positioned after the file) so callers can
    keep going after deciding the mismatch is acceptable.
    """

    def __init__(self, computed: int, stored: int, stream: Any = None):
        super().__init__(f"File checksum was {stored:#x} but read data checksummed to {computed:#x}")
        self.computed = computed
        self.stored = stored
        self.stream = stream


# Writing variable files
class WriteError(TIFilesError):
    pass


class TooLarge(WriteError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"Variable data may not exceed {limit} bytes but would become {size}")
        self.size = size
        self.limit = limit


class InvalidName(WriteError):
    def __init__(self, name: str):
        super().__init__(
            f"Invalid variable name {name!r}: names must consist only of uppercase A-Z, "
            "θ, or after the first character 0-9"
        )
        self.name = name


class InvalidComment(WriteError):
    pass


# Catalog lookups for types without a documented layout
class UnsupportedVariableType(TIFilesError, ValueError):
    def __init__(self, var_type: Any, what: str):
        super().__init__(f"{what} for variable type {var_type!r} is unknown")
        self.var_type = var_type
        self.what = what


# Bundles
class BundleError(TIFilesError):
    pass


class BundleStateError(BundleError):
    pass


class BundleChecksumMismatch(BundleError):
    def __init__(self, computed: int, stored: int):
        super().__init__(f"Bundle checksum was {stored:x} but entries sum to {computed:x}")
        self.computed = computed
        self.stored = stored


class MalformedBundle(BundleError):
    pass
