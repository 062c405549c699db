from __future__ import annotations

import argparse
import os
import random
import sys
from typing import List, Optional

from tifiles.constants import (
    CHECKSUM_SIZE,
    DATA_LEN1_OFFSET,
    DATA_LEN2_OFFSET,
    DATA_OFFSET,
    DATA_SECTION_LEN_OFFSET,
    ENTRY_HEADER_LEN_OFFSET,
    NAME_OFFSET,
    NAME_SIZE,
    SIGNATURE,
    TYPE_OFFSET,
    VERSION_OFFSET,
)
from tifiles.errors import TIFilesError
from tifiles.reader import VariableReader

# (start, field) pairs for a 13-byte entry header, in file order
_FIELDS = [
    (0, "signature"),
    (len(SIGNATURE), "comment"),
    (DATA_SECTION_LEN_OFFSET, "data section length"),
    (ENTRY_HEADER_LEN_OFFSET, "entry header length"),
    (DATA_LEN1_OFFSET, "data length"),
    (TYPE_OFFSET, "type"),
    (NAME_OFFSET, "name"),
    (VERSION_OFFSET, "version/flags"),
    (DATA_LEN2_OFFSET, "data length (repeat)"),
    (DATA_OFFSET, "data"),
]


def _field_at(offset: int, size: int) -> str:
    """Name the variable-file field holding ``offset`` in a file of ``size`` bytes."""
    if offset >= size - CHECKSUM_SIZE:
        return "checksum"
    name = _FIELDS[0][1]
    for start, field in _FIELDS:
        if offset < start:
            break
        name = field
    return name


def _flip_at(f, offset: int, xor_val: int) -> bool:
    f.seek(offset)
    b = f.read(1)
    if not b:
        return False
    f.seek(offset)
    f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
    return True


def _flip_bytes(path: str, offsets: List[int], xor_val: int = 0xFF) -> List[int]:
    """XOR the byte at each offset and return the offsets actually flipped."""
    if any(off < 0 for off in offsets):
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        flipped = [off for off in offsets if _flip_at(f, off, xor_val)]
        f.flush()
        os.fsync(f.fileno())
    return flipped


def _report(path: str, flipped: List[int]) -> None:
    size = os.path.getsize(path)
    for off in flipped:
        print(f"Flipped byte at offset {off} ({_field_at(off, size)})")


def cmd_by_offset(args: argparse.Namespace) -> None:
    if not _flip_bytes(args.file, [args.offset], xor_val=args.xor):
        raise ValueError("Offset beyond end of file")
    _report(args.file, [args.offset])


def cmd_data(args: argparse.Namespace) -> None:
    with open(args.file, "rb") as fh:
        r = VariableReader(fh)
        prefixed = r.var_type.has_length_prefix
        length = r.data_length
    if args.within < 0 or args.within >= length:
        raise ValueError(f"--within must be within the variable data (0..{length - 1})")
    off = DATA_OFFSET + (2 if prefixed else 0) + args.within
    _report(args.file, _flip_bytes(args.file, [off], xor_val=args.xor))


def cmd_name(args: argparse.Namespace) -> None:
    if args.within < 0 or args.within >= NAME_SIZE:
        raise ValueError(f"--within must be within the name (0..{NAME_SIZE - 1})")
    off = NAME_OFFSET + args.within
    _report(args.file, _flip_bytes(args.file, [off], xor_val=args.xor))


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    size = os.path.getsize(args.file)
    if size == 0:
        raise ValueError("File is empty")
    offsets = [rng.randrange(0, size) for _ in range(args.count)]
    _report(args.file, _flip_bytes(args.file, offsets, xor_val=args.xor))


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="tifiles.corrupt", description="Corrupt variable files for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute file offset")
    p_off.add_argument("file", help="Path to a variable file")
    p_off.add_argument("--offset", type=int, required=True, help="Absolute byte offset in the file")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_data = sub.add_parser("data", help="Flip a byte of variable data (checksum mismatch, lengths intact)")
    p_data.add_argument("file", help="Path to a variable file")
    p_data.add_argument("--within", type=int, default=0, help="Byte offset within the variable data (default 0)")
    p_data.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_data.set_defaults(func=cmd_data)

    p_name = sub.add_parser("name", help="Flip a byte of the variable name")
    p_name.add_argument("file", help="Path to a variable file")
    p_name.add_argument("--within", type=int, default=0, help="Byte offset within the name (default 0)")
    p_name.add_argument("--xor", type=lambda x: int(x, 0), default=0x01, help="XOR mask to apply (default 0x01)")
    p_name.set_defaults(func=cmd_name)

    p_rand = sub.add_parser("random", help="Flip N random bytes anywhere in the file")
    p_rand.add_argument("file", help="Path to a variable file")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (TIFilesError, EOFError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
