"""
Persists job outcomes onto the Video, AITask and Render state machines.

Video:  UPLOADING -> PROCESSING -> READY | FAILED
AITask: PENDING -> PROCESSING -> COMPLETED | FAILED
Render: QUEUED -> PROCESSING -> COMPLETED | FAILED | CANCELLED

Terminal states never change again. Transitions that would leave one are
refused and reported as ``False`` so redelivered jobs become no-ops.
"""

import logging

from django.utils import timezone

from .models import AITask, Render, Video

logger = logging.getLogger(__name__)

RETRY_PREFIX = "Attempt failed, retrying: "


class InvalidTransition(Exception):
    pass


# === AITask ===

def _open_task(task_id) -> AITask | None:
    task = AITask.objects.get(id=task_id)
    if task.status in AITask.TERMINAL:
        logger.info("AITask %s is already %s, ignoring", task_id, task.status)
        return None
    return task


def task_processing(task_id) -> bool:
    task = _open_task(task_id)
    if task is None:
        return False
    task.status = AITask.PROCESSING
    if task.started_at is None:
        task.started_at = timezone.now()
    task.save(update_fields=["status", "started_at"])
    return True


def task_completed(task_id, output) -> bool:
    task = _open_task(task_id)
    if task is None:
        return False
    if task.status != AITask.PROCESSING:
        raise InvalidTransition(f"AITask {task_id} cannot complete from {task.status}")
    task.status = AITask.COMPLETED
    task.output = output
    task.error = None
    task.completed_at = timezone.now()
    task.save(update_fields=["status", "output", "error", "completed_at"])
    logger.info("AITask %s completed", task_id)
    return True


def task_failed(task_id, error: str) -> bool:
    task = _open_task(task_id)
    if task is None:
        return False
    task.status = AITask.FAILED
    task.output = None
    task.error = error or "Unknown error"
    task.completed_at = timezone.now()
    task.save(update_fields=["status", "output", "error", "completed_at"])
    logger.warning("AITask %s failed: %s", task_id, task.error)
    return True


def task_retrying(task_id, error: str) -> bool:
    task = _open_task(task_id)
    if task is None:
        return False
    task.status = AITask.PENDING
    task.error = f"{RETRY_PREFIX}{error}"
    task.save(update_fields=["status", "error"])
    return True


# === Video ===

def _open_video(video_id) -> Video | None:
    video = Video.objects.get(id=video_id)
    if video.status in (Video.READY, Video.FAILED):
        logger.info("Video %s is already %s, ignoring", video_id, video.status)
        return None
    return video


def video_processing(video_id) -> bool:
    video = _open_video(video_id)
    if video is None:
        return False
    video.status = Video.PROCESSING
    video.save(update_fields=["status", "updated_at"])
    return True


def video_ready(video_id, metadata: dict | None = None) -> bool:
    video = _open_video(video_id)
    if video is None:
        return False
    fields = ["status", "error", "updated_at"]
    for key in ("duration", "width", "height", "fps"):
        if metadata and metadata.get(key) is not None:
            setattr(video, key, metadata[key])
            fields.append(key)
    video.status = Video.READY
    video.error = ""
    video.save(update_fields=fields)
    logger.info("Video %s is ready", video_id)
    return True


def video_failed(video_id, error: str) -> bool:
    video = _open_video(video_id)
    if video is None:
        return False
    video.status = Video.FAILED
    video.error = error or "Unknown error"
    video.save(update_fields=["status", "error", "updated_at"])
    logger.warning("Video %s failed: %s", video_id, video.error)
    return True


def video_retrying(video_id, error: str) -> bool:
    video = _open_video(video_id)
    if video is None:
        return False
    # stays PROCESSING; the next attempt re-enters it
    video.error = f"{RETRY_PREFIX}{error}"
    video.save(update_fields=["error", "updated_at"])
    return True


# === Render ===

class RenderStore:
    """
    Render persistence used by the transcode orchestrator. Every write is a
    conditional UPDATE on the current status, so a cancel issued from the API
    is never overwritten by a worker that is still finishing.
    """

    OPEN = (Render.QUEUED, Render.PROCESSING)

    def status(self, render_id) -> str | None:
        return Render.objects.filter(id=render_id).values_list("status", flat=True).first()

    def claim(self, render_id) -> bool:
        updated = Render.objects.filter(id=render_id, status=Render.QUEUED).update(
            status=Render.PROCESSING,
            progress=0,
            error=None,
            started_at=timezone.now(),
        )
        if not updated:
            # redelivery after a worker crash: stays PROCESSING and keeps its
            # progress, which never decreases while PROCESSING
            updated = Render.objects.filter(id=render_id, status=Render.PROCESSING).update(error=None)
        if updated:
            logger.info("Render %s is processing", render_id)
        return bool(updated)

    def record_progress(self, render_id, percent: float) -> bool:
        """False once the render has left PROCESSING."""
        percent = min(float(percent), 99.0)
        updated = Render.objects.filter(
            id=render_id, status=Render.PROCESSING, progress__lt=percent
        ).update(progress=percent)
        if updated:
            return True
        return Render.objects.filter(id=render_id, status=Render.PROCESSING).exists()

    def complete(self, render_id, output_url: str) -> bool:
        updated = Render.objects.filter(id=render_id, status=Render.PROCESSING).update(
            status=Render.COMPLETED,
            output_url=output_url,
            progress=100,
            error=None,
            completed_at=timezone.now(),
        )
        return bool(updated)

    def fail(self, render_id, error: str, final: bool = True) -> bool:
        error = error or "Unknown error"
        if final:
            updated = Render.objects.filter(id=render_id, status__in=self.OPEN).update(
                status=Render.FAILED,
                error=error,
                completed_at=timezone.now(),
            )
            if updated:
                logger.warning("Render %s failed: %s", render_id, error)
            return bool(updated)

        updated = Render.objects.filter(id=render_id, status=Render.PROCESSING).update(
            status=Render.QUEUED,
            error=f"{RETRY_PREFIX}{error}",
        )
        return bool(updated)

    def cancel(self, render_id, reason: str) -> bool:
        updated = Render.objects.filter(id=render_id, status__in=self.OPEN).update(
            status=Render.CANCELLED,
            error=reason,
            completed_at=timezone.now(),
        )
        if updated:
            logger.info("Render %s cancelled", render_id)
        else:
            logger.info("Render %s already terminal, cancel ignored", render_id)
        return bool(updated)
