from __future__ import annotations

import argparse
import logging
import os
import sys
import zipfile
from pathlib import Path
from typing import List, Optional

from tifiles.bundle import BundleKind, BundleReader, BundleWriter
from tifiles.constants import DEFAULT_BUNDLE_COMMENT
from tifiles.errors import TIFilesError
from tifiles.reader import VariableReader
from tifiles.vartypes import VariableType
from tifiles.writer import VariableWriter


def _parse_type(value: str) -> VariableType:
    """Accept a type name (``APPVAR``), a numeric code (``0x15``) or an extension (``8xv``)."""
    key = value.strip().upper().replace("-", "_")
    if key in VariableType.__members__:
        return VariableType[key]
    try:
        return VariableType(int(value, 0))
    except ValueError:
        pass
    return VariableType.from_extension(value)


def _comment_text(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("ascii", errors="replace")


def cmd_pack(
    output: str,
    input_path: str,
    *,
    var_type: Optional[VariableType] = None,
    name: Optional[str] = None,
    archived: bool = False,
    comment: Optional[str] = None,
) -> bool:
    """Wrap a raw payload file into a variable file.

    Args:
        output: Destination variable file path.
        input_path: File holding the raw variable data ("-" for stdin).
        var_type: Variable type; inferred from the output extension when None.
        name: Variable name; defaults to the uppercased output file stem.
        archived: Mark the variable for placement in archive memory.
        comment: File comment (at most 42 ASCII characters).
    """
    out = Path(output)
    if var_type is None:
        var_type = VariableType.from_extension(out.suffix)
    if name is None:
        name = out.stem.upper()
    if input_path == "-":
        data = sys.stdin.buffer.read()
    else:
        data = Path(input_path).read_bytes()
    try:
        with open(out, "wb") as fh:
            w = VariableWriter(fh, var_type, name, archived=archived, comment=comment)
            w.write(data)
            w.close()
    except (TIFilesError, OSError, ValueError):
        # A variable file is only valid once closed; don't leave a partial one behind
        if out.exists():
            out.unlink(missing_ok=True)
        raise
    print(f"Wrote {var_type.name} {name} ({len(data)} bytes) to {out}")
    return True


def cmd_info(paths: List[str]) -> bool:
    """Print header details and checksum status for variable files."""
    all_ok = True
    for p in paths:
        with open(p, "rb") as fh:
            r = VariableReader(fh)
            result = r.finish()
        print(f"File: {p}")
        print(f"  Type: {r.var_type.name} ({r.var_type.value:#04x})")
        print(f"  Name: {r.display_name}")
        print(f"  Length: {r.data_length}")
        print(f"  Archived: {'yes' if r.archived else 'no'}")
        print(f"  Comment: {_comment_text(r.comment)}")
        if result.ok:
            print(f"  Checksum: {result.stored_checksum:#06x} (ok)")
        else:
            print(
                f"  Checksum: {result.stored_checksum:#06x} (MISMATCH, computed {result.computed_checksum:#06x})"
            )
            all_ok = False
    return all_ok


def cmd_extract(archive: str, output: str, *, force: bool = False) -> bool:
    """Write the payload of a variable file to ``output``.

    A checksum mismatch aborts extraction unless ``force`` is set, in which
    case the data is written anyway and a warning is printed.
    """
    with open(archive, "rb") as fh:
        r = VariableReader(fh)
        data = r.read()
        result = r.finish()
    if not result.ok:
        if not force:
            result.raise_for_checksum()
        print(
            f"Warning: checksum mismatch in {archive} (stored {result.stored_checksum:#06x}, "
            f"computed {result.computed_checksum:#06x}); extracting anyway",
            file=sys.stderr,
        )
    if output == "-":
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        Path(output).write_bytes(data)
        print(f"Extracted {len(data)} bytes from {r.display_name} to {output}")
    return True


def _verify_one(path: str) -> bool:
    if zipfile.is_zipfile(path):
        with BundleReader(path) as b:
            b.verify()
            for v in b.variables(strict=False):
                if not v.checksum_ok:
                    print(f"  bad variable checksum: {v.name}", file=sys.stderr)
                    return False
        return True
    with open(path, "rb") as fh:
        return VariableReader(fh).finish().ok


def cmd_verify(paths: List[str]) -> bool:
    """Verify variable files and bundles.

    Prints:
        "OK" or "FAIL" for each path.
    """
    all_ok = True
    for p in paths:
        try:
            ok = _verify_one(p)
        except (TIFilesError, EOFError, zipfile.BadZipFile) as exc:
            print(f"  {exc}", file=sys.stderr)
            ok = False
        print(f"{p}: {'OK' if ok else 'FAIL'}")
        all_ok = all_ok and ok
    return all_ok


def cmd_bundle(output: str, inputs: List[str], *, kind: BundleKind = BundleKind.B84, comment: str = DEFAULT_BUNDLE_COMMENT) -> bool:
    """Combine variable files into a bundle.

    Each input is fully validated (checksum included) before it is added.
    """
    with open(output, "wb") as fh:
        bundle = BundleWriter(kind, fh, comment=comment)
        for p in inputs:
            with open(p, "rb") as vf:
                r = VariableReader(vf)
                data = r.read()
                r.finish().raise_for_checksum()
            bundle.start_var(r.var_type, r.display_name, archived=r.archived)
            bundle.write(data)
            print(f"  adding: {os.path.basename(p)} ({r.var_type.name} {r.display_name})")
        bundle.close()
    print(f"Wrote {kind.name} bundle with {len(inputs)} variable(s) to {output}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="tifiles",
        description="TI-83 Plus/TI-84 Plus variable file and bundle tool",
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="Log debug details to stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Wrap raw data into a variable file")
    ap_pack.add_argument("output", help="Output variable file path (e.g. PROG.8xp)")
    ap_pack.add_argument("input", help="Raw data file, or - for stdin")
    ap_pack.add_argument("--type", dest="var_type", type=_parse_type, help="Variable type name, code or extension (default: from output extension)")
    ap_pack.add_argument("--name", help="Variable name (default: output file stem, uppercased)")
    ap_pack.add_argument("--archived", action="store_true", help="Mark the variable as archived")
    ap_pack.add_argument("--comment", help="File comment (max 42 ASCII characters)")

    ap_info = sub.add_parser("info", help="Show variable file information")
    ap_info.add_argument("files", nargs="+", help="Variable file paths")

    ap_extract = sub.add_parser("extract", help="Extract the data of a variable file")
    ap_extract.add_argument("file", help="Variable file path")
    ap_extract.add_argument("-o", "--output", required=True, help="Output path, or - for stdout")
    ap_extract.add_argument("--force", action="store_true", help="Extract even if the checksum does not match")

    ap_verify = sub.add_parser("verify", help="Verify variable files and bundles")
    ap_verify.add_argument("files", nargs="+", help="Variable file or bundle paths")

    ap_bundle = sub.add_parser("bundle", help="Combine variable files into a .b83/.b84 bundle")
    ap_bundle.add_argument("output", help="Output bundle path")
    ap_bundle.add_argument("inputs", nargs="+", help="Variable files to include, in order")
    ap_bundle.add_argument("--kind", choices=["b83", "b84"], default=None, help="Bundle kind (default: from output extension, else b84)")
    ap_bundle.add_argument("--comment", default=DEFAULT_BUNDLE_COMMENT, help="bundle_comments metadata value")

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    try:
        if args.cmd == "pack":
            cmd_pack(
                args.output,
                args.input,
                var_type=args.var_type,
                name=args.name,
                archived=args.archived,
                comment=args.comment,
            )
        elif args.cmd == "info":
            success = cmd_info(args.files)
            sys.exit(0 if success else 1)
        elif args.cmd == "extract":
            cmd_extract(args.file, args.output, force=args.force)
        elif args.cmd == "verify":
            success = cmd_verify(args.files)
            sys.exit(0 if success else 1)
        elif args.cmd == "bundle":
            kind_name = args.kind or Path(args.output).suffix.lstrip(".").lower()
            kind = BundleKind.B83 if kind_name == "b83" else BundleKind.B84
            cmd_bundle(args.output, args.inputs, kind=kind, comment=args.comment)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (TIFilesError, EOFError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
