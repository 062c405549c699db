from __future__ import annotations

import io
import unittest
import zipfile
import zlib

from tifiles.bundle import BundleKind, BundleReader, BundleWriter, build_metadata, parse_metadata
from tifiles.errors import BundleChecksumMismatch, BundleStateError, InvalidName, MalformedBundle
from tifiles.reader import load_variable
from tifiles.vartypes import VariableType
from tifiles.writer import dump_variable


def _build_bundle(kind: BundleKind = BundleKind.B83, **kwargs) -> bytes:
    w = BundleWriter(kind, io.BytesIO(), **kwargs)
    w.start_var(VariableType.APPVAR, "A", False)
    w.write(b"var one data")
    w.start_var(VariableType.APPVAR, "B", False)
    w.write(b"var two data")
    return w.close().getvalue()


def _zip_of(entries) -> bytes:
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return out.getvalue()


class BundleWriterTests(unittest.TestCase):
    def test_crc_matches_checksum_entry(self):
        data = _build_bundle()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            infos = zf.infolist()
            actual = 0
            for info in infos[:-1]:
                self.assertNotEqual(info.filename, "_CHECKSUM", "checksum file should be last")
                actual = (actual + info.CRC) & 0xFFFFFFFF
            text = zf.read("_CHECKSUM").decode("ascii")
        self.assertTrue(text.endswith("\r\n"))
        self.assertEqual(text, text.lower())
        self.assertEqual(int(text.strip(), 16), actual)

    def test_checksum_sums_uncompressed_entry_bytes(self):
        data = _build_bundle()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            expected = 0
            for name in ("A.8xv", "B.8xv", "METADATA"):
                expected = (expected + zlib.crc32(zf.read(name))) & 0xFFFFFFFF
            self.assertEqual(int(zf.read("_CHECKSUM").decode("ascii").strip(), 16), expected)

    def test_entry_order(self):
        data = _build_bundle()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(zf.namelist(), ["A.8xv", "B.8xv", "METADATA", "_CHECKSUM"])
            self.assertEqual(load_variable(zf.read("A.8xv")).data, b"var one data")
            self.assertEqual(load_variable(zf.read("B.8xv")).data, b"var two data")

    def test_entries_are_complete_variable_files(self):
        data = _build_bundle()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(zf.read("A.8xv"), dump_variable(VariableType.APPVAR, "A", b"var one data"))

    def test_metadata_contents(self):
        data = _build_bundle(BundleKind.B84, comment="hello")
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            text = zf.read("METADATA").decode("utf-8")
        self.assertEqual(
            text,
            "bundle_identifier:TI Bundle\n"
            "bundle_format_version:1\n"
            "bundle_target_device:84CE\n"
            "bundle_target_type:CUSTOM\n"
            "bundle_comments:hello\n",
        )
        self.assertEqual(parse_metadata(text)["bundle_target_device"], "84CE")

    def test_kinds(self):
        self.assertEqual(BundleKind.B83.file_extension, "b83")
        self.assertEqual(BundleKind.B84.device_name, "84CE")
        self.assertIs(BundleKind.from_device_name("83CE"), BundleKind.B83)
        self.assertIn("bundle_target_device:83CE\n", build_metadata(BundleKind.B83))

    def test_empty_bundle(self):
        data = BundleWriter(BundleKind.B84, io.BytesIO()).close().getvalue()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(zf.namelist(), ["METADATA", "_CHECKSUM"])
            meta_crc = zlib.crc32(zf.read("METADATA")) & 0xFFFFFFFF
            self.assertEqual(zf.read("_CHECKSUM"), f"{meta_crc:x}\r\n".encode("ascii"))

    def test_write_before_start_var(self):
        w = BundleWriter(BundleKind.B84, io.BytesIO())
        with self.assertRaises(BundleStateError):
            w.write(b"orphan")

    def test_use_after_close(self):
        w = BundleWriter(BundleKind.B84, io.BytesIO())
        w.close()
        with self.assertRaises(BundleStateError):
            w.start_var(VariableType.APPVAR, "A")
        with self.assertRaises(BundleStateError):
            w.write(b"x")
        with self.assertRaises(BundleStateError):
            w.close()

    def test_invalid_name_keeps_previous_variable(self):
        w = BundleWriter(BundleKind.B84, io.BytesIO())
        w.start_var(VariableType.PROGRAM, "GOOD")
        w.write(b"\xc9")
        with self.assertRaises(InvalidName):
            w.start_var(VariableType.PROGRAM, "bad")
        with self.assertRaises(BundleStateError):
            w.write(b"x")
        data = w.close().getvalue()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            self.assertEqual(zf.namelist(), ["GOOD.8xp", "METADATA", "_CHECKSUM"])

    def test_stored_compression_and_theta_names(self):
        out = io.BytesIO()
        with BundleWriter(BundleKind.B83, out, compression=zipfile.ZIP_STORED) as w:
            w.start_var(VariableType.STRING, "θ", archived=True)
            w.write(b"str")
        data = out.getvalue()
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            info = zf.getinfo("θ.8xs")
            self.assertEqual(info.compress_type, zipfile.ZIP_STORED)
            v = load_variable(zf.read(info))
        self.assertEqual(v.name, "θ")
        self.assertTrue(v.archived)


class BundleReaderTests(unittest.TestCase):
    def test_reads_back_written_bundle(self):
        with BundleReader(_build_bundle(BundleKind.B83)) as b:
            b.verify()
            self.assertIs(b.kind, BundleKind.B83)
            self.assertEqual(b.variable_names, ["A.8xv", "B.8xv"])
            self.assertEqual(b.stored_checksum, b.computed_checksum())
            datas = [v.data for v in b.variables()]
        self.assertEqual(datas, [b"var one data", b"var two data"])

    def test_checksum_mismatch(self):
        var = dump_variable(VariableType.APPVAR, "A", b"x")
        meta = build_metadata(BundleKind.B84).encode("utf-8")
        data = _zip_of([("A.8xv", var), ("METADATA", meta), ("_CHECKSUM", b"1234\r\n")])
        with BundleReader(data) as b:
            with self.assertRaises(BundleChecksumMismatch) as ctx:
                b.verify()
        self.assertEqual(ctx.exception.stored, 0x1234)

    def test_misordered_entries(self):
        var = dump_variable(VariableType.APPVAR, "A", b"x")
        meta = build_metadata(BundleKind.B84).encode("utf-8")
        crc = (zlib.crc32(var) + zlib.crc32(meta)) & 0xFFFFFFFF
        data = _zip_of([("METADATA", meta), ("A.8xv", var), ("_CHECKSUM", f"{crc:x}".encode("ascii"))])
        with BundleReader(data) as b:
            with self.assertRaises(MalformedBundle):
                b.verify()

    def test_checksum_without_crlf_is_accepted(self):
        var = dump_variable(VariableType.APPVAR, "A", b"x")
        meta = build_metadata(BundleKind.B84).encode("utf-8")
        crc = (zlib.crc32(var) + zlib.crc32(meta)) & 0xFFFFFFFF
        data = _zip_of([("A.8xv", var), ("METADATA", meta), ("_CHECKSUM", f"{crc:x}".encode("ascii"))])
        with BundleReader(data) as b:
            b.verify()

    def test_missing_special_entries(self):
        data = _zip_of([("A.8xv", dump_variable(VariableType.APPVAR, "A", b""))])
        with BundleReader(data) as b:
            with self.assertRaises(MalformedBundle):
                b.verify()
            with self.assertRaises(MalformedBundle):
                b.metadata


if __name__ == "__main__":
    unittest.main()
