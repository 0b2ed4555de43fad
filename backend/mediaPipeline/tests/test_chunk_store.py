"""
test_merge_in_index_order:
Action: Write three chunks out of order (2, 0, 1) and merge.
Expect: The merged file is chunk 0 + chunk 1 + chunk 2, whatever the arrival order.

test_twelve_megabyte_upload:
Action: Upload 12 MB as chunks of 5 MB, 5 MB and 2 MB, then merge.
Expect: A 12 MB file under videos/, equal to the original bytes, and no chunk directory left.

test_merge_with_missing_chunk:
Action: Write chunks 0 and 2 of 3 and merge.
Expect: IncompleteUpload naming chunk 1; no final file; stored chunks untouched.

test_merge_twice:
Action: Merge an upload, then merge it again.
Expect: The second merge raises NotFound.

test_rewrite_chunk_replaces_bytes:
Action: Write index 0 twice with different contents.
Expect: Only the second write survives the merge.

test_rejects_bad_index_and_file_id:
Action: Write with an out-of-range index and with a path-like file id.
Expect: ValueError, nothing written.

test_save_file_never_overwrites:
Action: Save two direct uploads under the same name.
Expect: Two distinct files under videos/, each with its own bytes.

test_path_for_rejects_locations_outside_root:
Action: Resolve a storage location that climbs out of the root.
Expect: SuspiciousFileOperation.
"""

import os
import shutil
import tempfile

from django.core.exceptions import SuspiciousFileOperation
from django.test import SimpleTestCase

from mediaPipeline import IncompleteUpload, NotFound
from mediaPipeline.storage import ChunkStore

MB = 1024 * 1024


class ChunkStoreTests(SimpleTestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.store = ChunkStore(self.root)

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def test_merge_in_index_order(self):
        self.store.write_chunk("clip", 2, b"CCC", total=3)
        self.store.write_chunk("clip", 0, b"A", total=3)
        self.store.write_chunk("clip", 1, b"BB", total=3)

        path = self.store.merge("clip", 3)

        with open(path, "rb") as fh:
            self.assertEqual(fh.read(), b"ABBCCC")

    def test_twelve_megabyte_upload(self):
        original = os.urandom(12 * MB)
        pieces = [original[:5 * MB], original[5 * MB:10 * MB], original[10 * MB:]]
        for index, piece in enumerate(pieces):
            self.store.write_chunk("big-upload", index, piece, total=3)

        path = self.store.merge("big-upload", 3)

        self.assertEqual(path.parent.name, "videos")
        self.assertEqual(path.stat().st_size, 12 * MB)
        with open(path, "rb") as fh:
            self.assertEqual(fh.read(), original)
        self.assertFalse(self.store.chunk_dir("big-upload").exists())
        self.assertEqual(self.store.relative(path), "videos/big-upload")

    def test_merge_with_missing_chunk(self):
        self.store.write_chunk("gappy", 0, b"a", total=3)
        self.store.write_chunk("gappy", 2, b"c", total=3)

        with self.assertRaises(IncompleteUpload) as ctx:
            self.store.merge("gappy", 3)

        self.assertEqual(ctx.exception.missing, [1])
        self.assertFalse((self.store.get_upload_path("videos") / "gappy").exists())
        self.assertEqual(self.store.received_indices("gappy"), {0, 2})

    def test_merge_twice(self):
        self.store.write_chunk("once", 0, b"x", total=1)
        self.store.merge("once", 1)

        with self.assertRaises(NotFound):
            self.store.merge("once", 1)

    def test_rewrite_chunk_replaces_bytes(self):
        self.store.write_chunk("again", 0, b"first", total=1)
        self.store.write_chunk("again", 0, b"second", total=1)

        path = self.store.merge("again", 1)

        with open(path, "rb") as fh:
            self.assertEqual(fh.read(), b"second")

    def test_rejects_bad_index_and_file_id(self):
        with self.assertRaises(ValueError):
            self.store.write_chunk("clip", 3, b"x", total=3)
        with self.assertRaises(ValueError):
            self.store.write_chunk("clip", -1, b"x")
        with self.assertRaises(ValueError):
            self.store.write_chunk("../escape", 0, b"x", total=1)

        self.assertFalse(os.path.exists(os.path.join(self.root, "chunks")))

    def test_discard_removes_pending_chunks(self):
        self.store.write_chunk("abandoned", 0, b"x", total=2)

        self.assertTrue(self.store.discard("abandoned"))
        self.assertFalse(self.store.discard("abandoned"))
        self.assertEqual(self.store.received_indices("abandoned"), set())

    def test_save_file_never_overwrites(self):
        first = self.store.save_file(b"one", "speech.mp4")
        second = self.store.save_file(b"two", "speech.mp4")

        self.assertNotEqual(first, second)
        self.assertEqual(first.parent.name, "videos")
        self.assertEqual(second.parent.name, "videos")
        self.assertEqual(first.read_bytes(), b"one")
        self.assertEqual(second.read_bytes(), b"two")

    def test_save_file_keeps_only_the_base_name(self):
        path = self.store.save_file(b"x", "../../etc/passwd.mp4")

        self.assertEqual(self.store.relative(path), "videos/passwd.mp4")

    def test_path_for_rejects_locations_outside_root(self):
        with self.assertRaises(SuspiciousFileOperation):
            self.store.path_for("../outside.mp4")

    def test_delete_file(self):
        path = self.store.save_file(b"x", "gone.mp4")

        self.store.delete_file(self.store.relative(path))
        self.store.delete_file(self.store.relative(path))

        self.assertFalse(path.exists())

    def test_pending_size_and_merged_path(self):
        self.assertEqual(self.store.pending_size("sized"), 0)
        self.store.write_chunk("sized", 0, b"abc", total=2)
        self.store.write_chunk("sized", 1, b"de", total=2)

        self.assertEqual(self.store.pending_size("sized"), 5)
        self.assertEqual(self.store.merge("sized", 2), self.store.merged_path("sized"))
        self.assertEqual(self.store.relative(self.store.merged_path("sized")), "videos/sized")
