from __future__ import annotations

from .constants import NAME_SIZE, THETA, THETA_TOKEN
from .errors import InvalidName


def encode_name(name: str) -> bytes:
    """Encode a variable name into its 8-byte on-disk form.

    Rules:
    - Only the first 8 characters are used; the rest are dropped
    - Uppercase A-Z and θ anywhere, digits 0-9 after the first character
    - θ is stored as its token byte (0x5B)
    - Unused positions are zero-filled
    """
    if not name:
        raise InvalidName(name)
    out = bytearray(NAME_SIZE)
    for i, c in enumerate(name[:NAME_SIZE]):
        if c == THETA:
            out[i] = THETA_TOKEN
        elif "A" <= c <= "Z" or (i > 0 and "0" <= c <= "9"):
            out[i] = ord(c)
        else:
            raise InvalidName(name)
    return bytes(out)


def decode_name(raw: bytes) -> str:
    """Decode an on-disk name into display form (zero padding stripped, θ restored)."""
    raw = bytes(raw).rstrip(b"\x00")
    return "".join(THETA if b == THETA_TOKEN else chr(b) for b in raw)
