from __future__ import annotations

import hashlib
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from kvnoid.cli import cmd_get, main
from kvnoid.fileio import load, save
from kvnoid.records import RecordDraft


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, cwd: Path | None = None):
        cmd = [sys.executable, "-m", "kvnoid.cli"] + list(args)
        env = os.environ.copy()
        repo_root = Path(__file__).resolve().parent
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(repo_root) if not existing else f"{repo_root}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def workspace(self) -> Path:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        return Path(tmp.name)

    def test_put_get_verify(self):
        ws = self.workspace()
        path = ws / "entry.kvn"
        put = self.run_cli(
            ["put", str(path), "--category", "dummy_category", "--nametag", "dummy_nametag", "--value", "sample v", "--passphrase", "test"]
        )
        self.assertIn("Wrote", put.stdout)

        get = self.run_cli(["get", str(path), "--passphrase", "test"])
        self.assertEqual(get.stdout.strip(), "sample v")

        verify = self.run_cli(["verify", str(path), "--passphrase", "test"])
        self.assertIn("OK", verify.stdout)

    def test_wrong_passphrase(self):
        ws = self.workspace()
        path = ws / "entry.kvn"
        self.run_cli(["put", str(path), "--category", "c", "--nametag", "n", "--value", "v", "--passphrase", "test"])

        get = self.run_cli(["get", str(path), "--passphrase", "wrong"], expect=2)
        self.assertIn("wrong passphrase", get.stderr)
        self.assertNotIn("v\n", get.stdout)

        verify = self.run_cli(["verify", str(path), "--passphrase", "wrong"], expect=1)
        self.assertIn("AuthenticationError", verify.stdout)

    def test_verify_reports_corruption(self):
        ws = self.workspace()
        path = ws / "entry.kvn"
        self.run_cli(["put", str(path), "--category", "c", "--nametag", "n", "--value", "v", "--passphrase", "test"])
        data = bytearray(path.read_bytes())
        data[28] ^= 0xFF  # date created
        path.write_bytes(bytes(data))
        verify = self.run_cli(["verify", str(path), "--passphrase", "test"], expect=1)
        self.assertIn("IntegrityError", verify.stdout)

    def test_info_without_passphrase(self):
        ws = self.workspace()
        path = ws / "entry.kvn"
        self.run_cli(["put", str(path), "--category", "web", "--nametag", "example", "--value", "pw", "--passphrase", "test"])
        record = load(path, "test")
        info = self.run_cli(["info", str(path)])
        self.assertIn("Version: 2026030101", info.stdout)
        self.assertIn(f"Identifier: {record.identifier}", info.stdout)
        self.assertIn("Category bytes: 3", info.stdout)
        self.assertIn(hashlib.sha3_256(path.read_bytes()).hexdigest(), info.stdout)

    def test_two_field_and_value_file(self):
        ws = self.workspace()
        src = ws / "secret.bin"
        src.write_bytes(b"from-file")
        path = ws / "pair.kvn"
        self.run_cli(
            [
                "put", str(path), "--category", "api", "--nametag", "svc",
                "--value-file", str(src), "--key", "id-123", "--two-field", "--passphrase", "test",
            ]
        )
        get = self.run_cli(["get", str(path), "--passphrase", "test", "--show-key"])
        self.assertEqual(get.stdout.splitlines(), ["id-123", "from-file"])
        info = self.run_cli(["info", str(path)])
        self.assertIn("Version: 202602167f", info.stdout)
        self.assertIn("Encrypted key bytes:", info.stdout)

    def test_two_field_without_key_fails(self):
        ws = self.workspace()
        path = ws / "pair.kvn"
        proc = self.run_cli(
            ["put", str(path), "--category", "c", "--nametag", "n", "--value", "v", "--two-field", "--passphrase", "test"],
            expect=2,
        )
        self.assertIn("missing required field", proc.stderr)
        self.assertFalse(path.exists())

    def test_not_a_kvn_file(self):
        ws = self.workspace()
        path = ws / "plain.txt"
        path.write_text("hello world\n")
        proc = self.run_cli(["info", str(path)], expect=2)
        self.assertIn("not a KVN file", proc.stderr)

    def test_hash(self):
        ws = self.workspace()
        path = ws / "plain.txt"
        path.write_bytes(b"hello")
        proc = self.run_cli(["hash", str(path), "--algorithm", "SHA3-512"])
        self.assertTrue(proc.stdout.startswith(hashlib.sha3_512(b"hello").hexdigest()))

    def test_get_writes_accessor_buffer_directly(self):
        ws = self.workspace()
        path = ws / "entry.kvn"
        save(path, RecordDraft(category="c", nametag="n", value="sample v"), "test")
        fake = mock.Mock()
        with mock.patch("sys.stdout", fake):
            cmd_get(str(path), passphrase="test")
        written = [c.args[0] for c in fake.buffer.write.call_args_list]
        self.assertEqual(len(written), 2)
        # The plaintext buffer itself was written, and has been zeroed since.
        self.assertIsInstance(written[0], bytearray)
        self.assertEqual(written[0], bytearray(8))
        self.assertEqual(written[1], b"\n")

    def test_missing_file_exits_with_error(self):
        ws = self.workspace()
        proc = self.run_cli(["get", str(ws / "missing.kvn"), "--passphrase", "test"], expect=2)
        self.assertIn("Error:", proc.stderr)
        self.assertIn("missing.kvn", proc.stderr)

    def test_in_process_main(self):
        ws = self.workspace()
        path = ws / "entry.kvn"
        main(["put", str(path), "--category", "c", "--nametag", "n", "--value", "v", "--passphrase", "test"])
        with self.assertRaises(SystemExit) as cm:
            main(["verify", str(path), "--passphrase", "test"])
        self.assertEqual(cm.exception.code, 0)
        with self.assertRaises(SystemExit) as cm:
            main(["get", str(ws / "missing.kvn"), "--passphrase", "test"])
        self.assertEqual(cm.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
