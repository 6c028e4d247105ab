import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from chessdb.errors import BlobNotFoundError, ValidationError
from chessdb.local_blob_storage import LocalBlobStorage


class LocalBlobStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.root = Path(self._tmp.name) / "blobs"
        self.storage = LocalBlobStorage(self.root, chunk_size=4)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_ensure_bucket_is_idempotent(self) -> None:
        self.storage.ensure_bucket()
        self.storage.ensure_bucket()
        self.assertTrue(self.root.is_dir())

    def test_put_then_stream_in_chunks(self) -> None:
        self.storage.put_object("imports/user-1/a.pgn", b"1. e4 e5 *", "application/x-chess-pgn")

        chunks = list(self.storage.get_object_stream("imports/user-1/a.pgn"))

        self.assertEqual(chunks, [b"1. e", b"4 e5", b" *"])
        self.assertEqual(self.storage.read_object("imports/user-1/a.pgn"), b"1. e4 e5 *")

    def test_put_replaces_existing_object_without_leftovers(self) -> None:
        self.storage.put_object("exports/x.pgn", b"old", "application/x-chess-pgn")
        self.storage.put_object("exports/x.pgn", b"new body", "application/x-chess-pgn")

        self.assertEqual(self.storage.read_object("exports/x.pgn"), b"new body")
        self.assertEqual([path.name for path in (self.root / "exports").iterdir()], ["x.pgn"])

    def test_missing_object_raises_before_iteration(self) -> None:
        with self.assertRaises(BlobNotFoundError):
            self.storage.get_object_stream("imports/missing.pgn")

    def test_keys_cannot_escape_the_root(self) -> None:
        for key in ("", "/etc/passwd", "../outside.pgn", "imports/../../x"):
            with self.subTest(key=key), self.assertRaises(ValidationError):
                self.storage.put_object(key, b"x", "application/octet-stream")


if __name__ == "__main__":
    unittest.main()
