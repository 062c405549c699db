from __future__ import annotations

from enum import IntEnum

from .errors import UnsupportedVariableType


class VariableType(IntEnum):
    """Types of calculator variables.

    Values match the ``*Obj`` constants from ti83plus.inc, i.e. the type byte
    stored in the VAT on a calculator.
    """

    REAL = 0x00                # 8xn
    LIST = 0x01                # 8xl
    MATRIX = 0x02              # 8xm
    EQUATION = 0x03            # 8xy
    STRING = 0x04              # 8xs
    PROGRAM = 0x05             # 8xp
    PROTECTED_PROGRAM = 0x06   # also 8xp
    PICTURE = 0x07             # 8xi
    GDB = 0x08                 # 8xd
    UNKNOWN = 0x09
    UNKNOWN_EQUATION = 0x0A
    NEW_EQUATION = 0x0B
    COMPLEX = 0x0C             # 8xc
    COMPLEX_LIST = 0x0D        # also 8xl
    UNDEFINED = 0x0E
    WINDOW = 0x0F
    ZOOM = 0x10                # 8xz (ZSto)
    TABLE_SETUP = 0x11         # 8xt (TblRng)
    LCD = 0x12
    BACKUP = 0x13
    # AppObj (0x14) never appears in the VAT; 8xk files use the flash format
    APPVAR = 0x15              # 8xv
    TEMPORARY_PROGRAM = 0x16
    GROUP = 0x17               # 8xg

    @property
    def has_length_prefix(self) -> bool:
        """Whether the payload starts with a 2-byte length duplicating the outer one."""
        try:
            return _LENGTH_PREFIXED[self]
        except KeyError:
            raise UnsupportedVariableType(self, "Data layout") from None

    @property
    def file_extension(self) -> str:
        """Customary file extension for a variable file of this type."""
        try:
            return _EXTENSIONS[self]
        except KeyError:
            raise UnsupportedVariableType(self, "File extension") from None

    @classmethod
    def from_extension(cls, ext: str) -> "VariableType":
        ext = ext.lower().lstrip(".")
        for vt, known in _EXTENSIONS.items():
            if known == ext:
                return vt
        raise ValueError(f"No variable type uses the file extension {ext!r}")


_LENGTH_PREFIXED = {
    VariableType.EQUATION: True,
    VariableType.STRING: True,
    VariableType.GDB: True,
    VariableType.PROGRAM: True,
    VariableType.PROTECTED_PROGRAM: True,
    VariableType.PICTURE: True,
    VariableType.WINDOW: True,
    VariableType.TABLE_SETUP: True,
    VariableType.APPVAR: True,
    VariableType.REAL: False,
    VariableType.LIST: False,
    VariableType.MATRIX: False,
    VariableType.COMPLEX: False,
    VariableType.COMPLEX_LIST: False,
}

# Insertion order decides which type an ambiguous extension maps back to.
_EXTENSIONS = {
    VariableType.REAL: "8xn",
    VariableType.COMPLEX: "8xc",
    VariableType.LIST: "8xl",
    VariableType.COMPLEX_LIST: "8xl",
    VariableType.MATRIX: "8xm",
    VariableType.EQUATION: "8xy",
    VariableType.STRING: "8xs",
    VariableType.PROGRAM: "8xp",
    VariableType.PROTECTED_PROGRAM: "8xp",
    VariableType.PICTURE: "8xi",
    VariableType.GDB: "8xd",
    VariableType.ZOOM: "8xz",
    VariableType.TABLE_SETUP: "8xt",
    VariableType.APPVAR: "8xv",
    VariableType.GROUP: "8xg",
}
