from __future__ import annotations

import os
import subprocess
import sys
import tempfile
import unittest
import zipfile
from pathlib import Path

from tifiles.bundle import BundleReader
from tifiles.constants import MAX_DATA
from tifiles.reader import load_variable
from tifiles.vartypes import VariableType
from tifiles.writer import dump_variable


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None, stdin: bytes | None = None):
        cmd = [sys.executable, "-m", "tifiles.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            input=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\n"
                f"STDOUT:\n{proc.stdout.decode(errors='replace')}\nSTDERR:\n{proc.stderr.decode(errors='replace')}"
            )
        return proc

    def make_temp_dir(self) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        return Path(tmp.name)

    def test_pack_info_extract_roundtrip(self):
        root = self.make_temp_dir()
        payload = os.urandom(1000)
        (root / "raw.bin").write_bytes(payload)
        out = root / "model.8xv"

        self.run_cli(["pack", str(out), str(root / "raw.bin"), "--archived", "--comment", "cli test"])
        v = load_variable(out.read_bytes())
        self.assertIs(v.var_type, VariableType.APPVAR)
        self.assertEqual(v.name, "MODEL")
        self.assertTrue(v.archived)
        self.assertEqual(v.data, payload)

        info = self.run_cli(["info", str(out)]).stdout.decode()
        self.assertIn("Type: APPVAR (0x15)", info)
        self.assertIn("Name: MODEL", info)
        self.assertIn("Length: 1000", info)
        self.assertIn("Archived: yes", info)
        self.assertIn("Comment: cli test", info)
        self.assertIn("(ok)", info)

        self.run_cli(["extract", str(out), "-o", str(root / "back.bin")])
        self.assertEqual((root / "back.bin").read_bytes(), payload)

    def test_pack_from_stdin_with_explicit_type(self):
        root = self.make_temp_dir()
        out = root / "prog.bin"
        self.run_cli(["pack", str(out), "-", "--type", "protected_program", "--name", "NOP"], stdin=b"\xc9")
        v = load_variable(out.read_bytes())
        self.assertIs(v.var_type, VariableType.PROTECTED_PROGRAM)
        self.assertEqual(v.name, "NOP")
        self.assertEqual(v.data, b"\xc9")

    def test_pack_rejects_invalid_name(self):
        root = self.make_temp_dir()
        (root / "raw.bin").write_bytes(b"x")
        proc = self.run_cli(
            ["pack", str(root / "a.8xv"), str(root / "raw.bin"), "--name", "lower"],
            expect=2,
        )
        self.assertIn(b"Error:", proc.stderr)
        self.assertFalse((root / "a.8xv").exists())

    def test_pack_too_large_leaves_no_output(self):
        root = self.make_temp_dir()
        (root / "raw.bin").write_bytes(b"\x00" * (MAX_DATA + 1))
        out = root / "BIG.8xv"
        proc = self.run_cli(["pack", str(out), str(root / "raw.bin")], expect=2)
        self.assertIn(b"Error:", proc.stderr)
        self.assertFalse(out.exists())

    def test_verify_and_extract_corrupted_file(self):
        root = self.make_temp_dir()
        path = root / "BAD.8xv"
        data = bytearray(dump_variable(VariableType.APPVAR, "BAD", b"some data"))
        data[-3] ^= 0xFF
        path.write_bytes(bytes(data))

        proc = self.run_cli(["verify", str(path)], expect=1)
        self.assertIn(b"FAIL", proc.stdout)

        self.run_cli(["extract", str(path), "-o", str(root / "out.bin")], expect=2)
        self.assertFalse((root / "out.bin").exists())

        proc = self.run_cli(["extract", str(path), "-o", str(root / "out.bin"), "--force"])
        self.assertIn(b"checksum mismatch", proc.stderr)
        self.assertEqual((root / "out.bin").read_bytes()[:-1], b"some dat")

    def test_bundle_workflow(self):
        root = self.make_temp_dir()
        a = root / "A.8xp"
        b = root / "GREETZ.8xv"
        a.write_bytes(dump_variable(VariableType.PROTECTED_PROGRAM, "NOP", b"\xbb\x6d\xc9"))
        b.write_bytes(dump_variable(VariableType.APPVAR, "GREETZ", b"Hello, world!", archived=True))
        out = root / "both.b83"

        self.run_cli(["bundle", str(out), str(a), str(b), "--comment", "from cli"])
        with zipfile.ZipFile(out) as zf:
            self.assertEqual(zf.namelist(), ["NOP.8xp", "GREETZ.8xv", "METADATA", "_CHECKSUM"])
        with BundleReader(str(out)) as br:
            br.verify()
            self.assertEqual(br.metadata["bundle_target_device"], "83CE")
            self.assertEqual(br.metadata["bundle_comments"], "from cli")
            names = [(v.name, v.archived) for v in br.variables()]
        self.assertEqual(names, [("NOP", False), ("GREETZ", True)])

        proc = self.run_cli(["verify", str(out), str(a)])
        self.assertEqual(proc.stdout.decode().count("OK"), 2)

    def test_corrupt_script_breaks_checksum_only(self):
        root = self.make_temp_dir()
        path = root / "DATA.8xv"
        path.write_bytes(dump_variable(VariableType.APPVAR, "DATA", b"0123456789"))
        script = Path(__file__).resolve().parent / "scripts" / "corrupt.py"
        env = os.environ.copy()
        env["PYTHONPATH"] = str(Path(__file__).resolve().parent)
        proc = subprocess.run(
            [sys.executable, str(script), "data", str(path), "--within", "4"],
            check=True,
            stdout=subprocess.PIPE,
            env=env,
        )
        self.assertIn(b"(data)", proc.stdout)
        v = load_variable(path.read_bytes(), strict=False)
        self.assertFalse(v.checksum_ok)
        self.assertEqual(v.data, b"0123" + bytes([ord("4") ^ 0xFF]) + b"56789")

        proc = self.run_cli(["verify", str(path)], expect=1)
        self.assertIn(b"FAIL", proc.stdout)

    def test_corrupt_script_names_flipped_fields(self):
        root = self.make_temp_dir()
        path = root / "F.8xv"
        data = dump_variable(VariableType.APPVAR, "F", b"abc")
        path.write_bytes(data)
        script = Path(__file__).resolve().parent / "scripts" / "corrupt.py"
        env = os.environ.copy()
        env["PYTHONPATH"] = str(Path(__file__).resolve().parent)
        for args, field in (
            (["name", str(path)], b"(name)"),
            (["by-offset", str(path), "--offset", str(len(data) - 1)], b"(checksum)"),
            (["by-offset", str(path), "--offset", "20"], b"(comment)"),
        ):
            proc = subprocess.run(
                [sys.executable, str(script)] + args,
                check=True,
                stdout=subprocess.PIPE,
                env=env,
            )
            self.assertIn(field, proc.stdout)

    def test_verify_not_a_variable_file(self):
        root = self.make_temp_dir()
        junk = root / "junk.8xp"
        junk.write_bytes(b"not a calculator file at all" * 4)
        proc = self.run_cli(["verify", str(junk)], expect=1)
        self.assertIn(b"FAIL", proc.stdout)
        self.assertIn(b"signature", proc.stderr)


if __name__ == "__main__":
    unittest.main()
