"""
test_chunked_upload_out_of_order:
Action: Upload chunks 2, 0, 1 of a 3-chunk file.
Expect: 200 with partial progress for the first two, 201 on the last; the merged file matches the
        original, a Video is created and a process-video job is enqueued once.

test_changed_parameters_conflict:
Action: Resend a chunk of an upload claiming a different chunk count.
Expect: Rejection (409), nothing merged.

test_direct_upload:
Action: Upload a whole file without chunk fields.
Expect: Success (201), Video saved, job enqueued.

test_missing_fields / test_unknown_project / test_bad_chunk_index:
Expect: 400 / 404 / 400 and no Video.

test_storage_fault:
Action: The storage medium fails while writing a chunk.
Expect: 503 so the client retries the chunk.

test_list_and_delete:
Action: List a project's videos and delete one.
Expect: 200 with the video, then 204 and the stored file removed.

test_failed_merge_rolls_back:
Action: The merge finds a chunk missing after the last index arrived.
Expect: 409; no Video, the session is back to its earlier chunks, stored bytes kept, nothing enqueued.

test_chunked_upload_enqueues_after_commit / test_direct_upload_enqueues_after_commit:
Action: Complete an upload against a real transaction.
Expect: The process-video job is enqueued once, outside any atomic block, with the Video row visible.
"""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import transaction
from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase, APITransactionTestCase

from api.models import Project, UploadSession, Video
from mediaPipeline import IncompleteUpload, StorageFault
from mediaPipeline.queue import PROCESS_VIDEO, VIDEO_LANE

MEDIA_ROOT = tempfile.mkdtemp()


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class UploadEndpointTests(APITestCase):

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.project = Project.objects.create(name="Wedding")
        self.url = reverse("videos-list")

    def _chunk(self, file_id, index, data, total, total_size=0):
        payload = {
            "file": SimpleUploadedFile("wedding.mp4", data, content_type="video/mp4"),
            "projectId": self.project.id,
            "fileId": file_id,
            "chunkIndex": index,
            "totalChunks": total,
            "totalSize": total_size,
        }
        return self.client.post(self.url, payload, format="multipart")

    @patch("api.views.enqueue")
    def test_chunked_upload_out_of_order(self, mock_enqueue):
        pieces = [b"first-", b"second-", b"third"]

        r2 = self._chunk("wedding-1", 2, pieces[2], 3, 18)
        r0 = self._chunk("wedding-1", 0, pieces[0], 3, 18)
        self.assertEqual(r2.status_code, status.HTTP_200_OK)
        self.assertEqual(r0.status_code, status.HTTP_200_OK)
        self.assertFalse(r0.data["completed"])
        self.assertEqual(r0.data["progress"], 67)
        mock_enqueue.assert_not_called()

        with self.captureOnCommitCallbacks(execute=True):
            r1 = self._chunk("wedding-1", 1, pieces[1], 3, 18)

        self.assertEqual(r1.status_code, status.HTTP_201_CREATED)
        self.assertTrue(r1.data["completed"])
        video = Video.objects.get()
        self.assertEqual(r1.data["video"]["id"], video.id)
        self.assertEqual(video.status, Video.UPLOADING)
        self.assertEqual(video.storage_url, "videos/wedding-1")
        self.assertEqual(video.size, 18)
        self.assertEqual((Path(MEDIA_ROOT) / "videos" / "wedding-1").read_bytes(), b"".join(pieces))
        self.assertFalse((Path(MEDIA_ROOT) / "chunks" / "wedding-1").exists())
        self.assertFalse(UploadSession.objects.exists())
        mock_enqueue.assert_called_once_with(
            VIDEO_LANE, PROCESS_VIDEO, video_id=video.id, storage_url="videos/wedding-1"
        )

    @patch("api.views.enqueue")
    def test_changed_parameters_conflict(self, mock_enqueue):
        self._chunk("wedding-2", 0, b"a", 2)

        response = self._chunk("wedding-2", 1, b"b", 3)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertFalse(Video.objects.exists())
        mock_enqueue.assert_not_called()

    @patch("api.views.enqueue")
    def test_direct_upload(self, mock_enqueue):
        payload = {
            "file": SimpleUploadedFile("speech.mp4", b"whole file", content_type="video/mp4"),
            "projectId": self.project.id,
            "fileId": "speech.mp4",
        }

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(self.url, payload, format="multipart")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        video = Video.objects.get()
        self.assertEqual(video.original_name, "speech.mp4")
        self.assertEqual(video.size, len(b"whole file"))
        mock_enqueue.assert_called_once()

    def test_missing_fields(self):
        response = self.client.post(self.url, {"projectId": self.project.id}, format="multipart")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["detail"], "file, projectId and fileId required")

    def test_unknown_project(self):
        payload = {
            "file": SimpleUploadedFile("a.mp4", b"x"),
            "projectId": 9999,
            "fileId": "a",
        }

        response = self.client.post(self.url, payload, format="multipart")

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_bad_chunk_index(self):
        response = self._chunk("wedding-3", 5, b"x", 3)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(UploadSession.objects.exists())

    @patch("api.views.enqueue")
    def test_storage_fault(self, mock_enqueue):
        with patch("mediaPipeline.storage.chunk_store.ChunkStore.write_chunk", side_effect=StorageFault("disk full")):
            response = self._chunk("wedding-4", 0, b"x", 2)

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(UploadSession.objects.exists())

    @patch("api.views.enqueue")
    def test_list_and_delete(self, mock_enqueue):
        self._chunk("wedding-5", 0, b"only chunk", 1)
        video = Video.objects.get()

        listed = self.client.get(self.url, {"project": self.project.id})
        self.assertEqual(listed.status_code, status.HTTP_200_OK)
        self.assertEqual([v["id"] for v in listed.data], [video.id])

        deleted = self.client.delete(reverse("videos-detail", args=[video.id]))
        self.assertEqual(deleted.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse((Path(MEDIA_ROOT) / "videos" / "wedding-5").exists())

    @patch("api.views.enqueue")
    def test_failed_merge_rolls_back(self, mock_enqueue):
        self._chunk("wedding-6", 0, b"a", 2)
        merge = patch(
            "mediaPipeline.storage.chunk_store.ChunkStore.merge",
            side_effect=IncompleteUpload("wedding-6", [1]),
        )

        with merge, self.captureOnCommitCallbacks(execute=True):
            response = self._chunk("wedding-6", 1, b"b", 2)

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["missing"], [1])
        self.assertFalse(Video.objects.exists())
        self.assertEqual(UploadSession.objects.get(file_id="wedding-6").received, [0])
        self.assertEqual((Path(MEDIA_ROOT) / "chunks" / "wedding-6" / "chunk-1").read_bytes(), b"b")
        mock_enqueue.assert_not_called()


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class UploadCommitTests(APITransactionTestCase):

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.project = Project.objects.create(name="Graduation")

    def _enqueue_after_commit(self, seen):
        def record(lane, job, video_id, storage_url):
            seen.append((
                transaction.get_connection().in_atomic_block,
                Video.objects.filter(id=video_id, storage_url=storage_url).exists(),
            ))
        return record

    def test_chunked_upload_enqueues_after_commit(self):
        seen = []
        payload = {
            "file": SimpleUploadedFile("grad.mp4", b"only chunk", content_type="video/mp4"),
            "projectId": self.project.id,
            "fileId": "grad-1",
            "chunkIndex": 0,
            "totalChunks": 1,
        }

        with patch("api.views.enqueue", side_effect=self._enqueue_after_commit(seen)):
            response = self.client.post(reverse("videos-list"), payload, format="multipart")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(seen, [(False, True)])

    def test_direct_upload_enqueues_after_commit(self):
        seen = []
        payload = {
            "file": SimpleUploadedFile("grad.mp4", b"whole file", content_type="video/mp4"),
            "projectId": self.project.id,
            "fileId": "grad.mp4",
        }

        with patch("api.views.enqueue", side_effect=self._enqueue_after_commit(seen)):
            response = self.client.post(reverse("videos-list"), payload, format="multipart")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(seen, [(False, True)])
