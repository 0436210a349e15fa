import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from ai_chat_backend.persistence.blobs import LocalBlobStorage


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class LocalBlobStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"blobs-{uuid4().hex}"
        self._blobs = LocalBlobStorage(str(self._tmp_dir / "uploads"))

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_write_read_delete(self) -> None:
        self._blobs.write_file("20240101_120000_abcd1234.png", b"data")
        self.assertTrue(self._blobs.exists("20240101_120000_abcd1234.png"))
        self.assertEqual(b"data", self._blobs.read_file("20240101_120000_abcd1234.png"))
        self.assertTrue(self._blobs.delete_file("20240101_120000_abcd1234.png"))
        self.assertFalse(self._blobs.delete_file("20240101_120000_abcd1234.png"))

    def test_read_missing_raises_os_error(self) -> None:
        with self.assertRaises(OSError):
            self._blobs.read_file("missing.png")

    def test_keys_cannot_escape_root(self) -> None:
        for key in ("../secret.txt", "nested/file.png", "/etc/passwd", ""):
            with self.subTest(key=key):
                with self.assertRaises(ValueError):
                    self._blobs.read_file(key)
