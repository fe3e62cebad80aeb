from __future__ import annotations

import hashlib
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from kvnoid.constants import VERSION_TWO_FIELD
from kvnoid.errors import AuthenticationError, SizeLimitError
from kvnoid.fileio import load, save
from kvnoid.hashutil import HASHES, digest, file_digest, get_hash
from kvnoid.records import RecordDraft


class FileIOTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_save_and_load(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "entry.kvn"
            written = save(path, RecordDraft(category="web", nametag="example.org", value="pw"), "test")
            self.assertTrue(path.exists())
            self.assertEqual(path.stat().st_size % 4, 0)
            record = load(path, "test")
            self.assertEqual(record.identifier, written.identifier)
            self.assertEqual(record.nametag, "example.org")
            with record.value.open() as acc:
                self.assertEqual(bytes(acc.get()), b"pw")
            with self.assertRaises(AuthenticationError):
                load(str(path), "wrong")
            self.assertEqual(os.listdir(tmp_path), ["entry.kvn"])

        self.run_with_tmpdir(scenario)

    def test_overwrite_existing(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "entry.kvn"
            first = save(path, RecordDraft(category="c", nametag="n", value="one"), "test")
            draft = load(path, "test").edit()
            draft.value = "two"
            save(path, draft)
            record = load(path, "test")
            self.assertEqual(record.identifier, first.identifier)
            with record.value.open() as acc:
                self.assertEqual(acc.text(), "two")

        self.run_with_tmpdir(scenario)

    def test_failed_save_leaves_destination_untouched(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "entry.kvn"
            save(path, RecordDraft(category="c", nametag="n", value="keep"), "test")
            before = path.read_bytes()
            with self.assertRaises(SizeLimitError):
                save(path, RecordDraft(category="c" * 300, nametag="n", value="v"), "test")
            self.assertEqual(path.read_bytes(), before)
            self.assertEqual(os.listdir(tmp_path), ["entry.kvn"])

        self.run_with_tmpdir(scenario)

    def test_limits_checked_before_temp_file(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "entry.kvn"
            with mock.patch("tempfile.mkstemp") as mkstemp:
                with self.assertRaises(SizeLimitError):
                    save(path, RecordDraft(category="c" * 300, nametag="n", value="v"), "test")
            mkstemp.assert_not_called()
            self.assertEqual(os.listdir(tmp_path), [])

        self.run_with_tmpdir(scenario)

    def test_two_field_file(self):
        def scenario(tmp_path: Path):
            path = tmp_path / "pair.kvn"
            save(
                path,
                RecordDraft(category="api", nametag="svc", key="id-123", value="s3cret", version=VERSION_TWO_FIELD),
                "test",
            )
            record = load(path, "test")
            with record.key.open() as acc:
                self.assertEqual(acc.text(), "id-123")

        self.run_with_tmpdir(scenario)


class HashUtilTests(unittest.TestCase):
    def test_registry(self):
        self.assertEqual(sorted(HASHES), ["SHA3-256", "SHA3-512"])
        self.assertEqual(get_hash("sha3-512").output_length, 64)
        with self.assertRaises(ValueError):
            get_hash("MD5")

    def test_digest(self):
        self.assertEqual(digest(b"abc"), hashlib.sha3_256(b"abc").digest())
        self.assertEqual(len(digest(b"abc", "SHA3-512")), 64)

    def test_file_digest(self):
        with tempfile.TemporaryDirectory() as tmp:
            p = Path(tmp) / "blob.bin"
            data = os.urandom(3000)
            p.write_bytes(data)
            self.assertEqual(file_digest(str(p), chunk_size=1024), hashlib.sha3_256(data).digest())


if __name__ == "__main__":
    unittest.main()
