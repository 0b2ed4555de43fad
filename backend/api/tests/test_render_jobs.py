"""
test_render_without_videos:
Action: Run a render job for a project that has no videos.
Expect: Render FAILED with "No video files to render", never PROCESSING, no retry.

test_timeline_drives_input_order:
Action: Run a render job for a project whose timeline lists video 3, video 1 and a deleted video.
Expect: The orchestrator receives video 3 then video 1, with the stored render settings.

test_engine_failure_is_retried_once:
Action: ffmpeg fails on both attempts of the 2-attempt render lane.
Expect: First attempt re-queues the render and schedules a retry; the second marks it FAILED.

test_completed_render_end_to_end:
Action: Run a render job with a scripted ffmpeg.
Expect: Render COMPLETED at 100% with renders/<filename> as output.

test_cancelled_render_is_skipped:
Action: Redeliver a job for a render that was already cancelled.
Expect: Nothing runs and the render stays CANCELLED.
"""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

from celery.exceptions import Retry
from django.test import TestCase, override_settings

from api.models import Project, Render, Video
from api.reconciler import RETRY_PREFIX, RenderStore
from api.tasks import run_job
from mediaPipeline import EngineFailure
from mediaPipeline.queue import RENDER, RENDER_LANE, JobPayload
from mediaPipeline.tests.test_orchestrator import PROGRESS_SCRIPT, fake_engine
from mediaPipeline.transcoder import RenderSettings, TranscodeOrchestrator

MEDIA_ROOT = tempfile.mkdtemp()


def make_task(retries=0):
    task = MagicMock()
    task.request.retries = retries
    task.retry.side_effect = Retry()
    return task


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class RenderJobTests(TestCase):

    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.project = Project.objects.create(name="Trip")
        self.orchestrator = TranscodeOrchestrator(RenderStore(), Path(MEDIA_ROOT) / "renders", ffmpeg_binary="ffmpeg")

    def _render(self, **settings):
        render = Render.objects.create(
            project=self.project,
            filename="trip.mp4",
            settings={"resolution": "720p", "fps": 24, "format": "mp4", "quality": "low", **settings},
        )
        message = JobPayload(lane=RENDER_LANE, kind=RENDER, render_id=render.id).to_message()
        return render, message

    def _add_video(self, name, duration=10.0):
        return Video.objects.create(
            project=self.project, filename=name, storage_url=f"videos/{name}",
            status=Video.READY, duration=duration,
        )

    def test_render_without_videos(self):
        render, message = self._render()
        celery_task = make_task()

        with patch("api.tasks.get_orchestrator", return_value=self.orchestrator):
            self.assertIsNone(run_job(celery_task, message))

        celery_task.retry.assert_not_called()
        render.refresh_from_db()
        self.assertEqual(render.status, Render.FAILED)
        self.assertEqual(render.error, "No video files to render")
        self.assertIsNone(render.started_at)

    def test_timeline_drives_input_order(self):
        v1 = self._add_video("one")
        self._add_video("two")
        v3 = self._add_video("three")
        self.project.timeline = {"clips": [{"videoId": v3.id}, {"videoId": v1.id}, {"videoId": 9999}]}
        self.project.save()
        render, message = self._render()
        orchestrator = MagicMock()

        with patch("api.tasks.get_orchestrator", return_value=orchestrator):
            run_job(make_task(), message)

        args, kwargs = orchestrator.render.call_args
        render_id, inputs, settings, filename = args
        self.assertEqual(render_id, render.id)
        self.assertEqual([i.video_id for i in inputs], [v3.id, v1.id])
        self.assertEqual(inputs[0].path, str(Path(MEDIA_ROOT) / "videos" / "three"))
        self.assertEqual(settings, RenderSettings(resolution="720p", fps=24, format="mp4", quality="low"))
        self.assertEqual(filename, "trip.mp4")
        self.assertFalse(kwargs["final_attempt"])

    def test_engine_failure_is_retried_once(self):
        self._add_video("one")
        render, message = self._render()
        engine_cls = fake_engine(PROGRESS_SCRIPT[:3], returncode=1)

        with patch("api.tasks.get_orchestrator", return_value=self.orchestrator), \
                patch("mediaPipeline.transcoder.orchestrator.EngineProcess", engine_cls):
            first = make_task(retries=0)
            with self.assertRaises(Retry):
                run_job(first, message)
            self.assertEqual(first.retry.call_args.kwargs["countdown"], 5)
            render.refresh_from_db()
            self.assertEqual(render.status, Render.QUEUED)
            self.assertTrue(render.error.startswith(RETRY_PREFIX))

            with self.assertRaises(EngineFailure):
                run_job(make_task(retries=1), message)

        render.refresh_from_db()
        self.assertEqual(render.status, Render.FAILED)
        self.assertIn("ffmpeg exited with code 1", render.error)

    def test_completed_render_end_to_end(self):
        self._add_video("one")
        self._add_video("two")
        render, message = self._render()
        engine_cls = fake_engine(PROGRESS_SCRIPT)

        with patch("api.tasks.get_orchestrator", return_value=self.orchestrator), \
                patch("mediaPipeline.transcoder.orchestrator.EngineProcess", engine_cls):
            output_url = run_job(make_task(), message)

        render.refresh_from_db()
        self.assertEqual(output_url, "renders/trip.mp4")
        self.assertEqual(render.status, Render.COMPLETED)
        self.assertEqual(render.progress, 100)
        self.assertEqual(render.output_url, "renders/trip.mp4")
        self.assertTrue((Path(MEDIA_ROOT) / "renders" / "trip.mp4").exists())

    def test_cancelled_render_is_skipped(self):
        self._add_video("one")
        render, message = self._render()
        RenderStore().cancel(render.id, "Render cancelled")
        orchestrator = MagicMock()

        with patch("api.tasks.get_orchestrator", return_value=orchestrator):
            self.assertIsNone(run_job(make_task(), message))

        orchestrator.render.assert_not_called()
        render.refresh_from_db()
        self.assertEqual(render.status, Render.CANCELLED)
