import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.utils import timezone

from mediaPipeline import NoInputMedia, RenderCancelled
from mediaPipeline.probe import probe_video
from mediaPipeline.queue import AI_TASK, PROCESS_VIDEO, RENDER, RENDER_LANE, VIDEO_LANE, JobPayload, get_lane
from mediaPipeline.transcoder import MediaInput, RenderSettings, resolve_inputs

from . import reconciler
from .locks import EntityBusy, entity_lock
from .models import AITask, Render, UploadSession, Video
from .reconciler import RenderStore
from .services import get_ai_client, get_chunk_store, get_orchestrator

logger = logging.getLogger(__name__)


class UnprocessableJob(Exception):
    """The job can never succeed as submitted; retrying would not help."""


# === handlers: one per job kind ===

def handle_process_video(payload: JobPayload, final_attempt: bool):
    if not reconciler.video_processing(payload.video_id):
        return None

    video = Video.objects.get(id=payload.video_id)
    path = get_chunk_store().path_for(payload.storage_url or video.storage_url)
    if not path.exists():
        raise UnprocessableJob(f"Video file not found: {video.storage_url}")

    metadata = probe_video(path)
    if metadata["duration"] <= 0:
        raise UnprocessableJob("Video has no decodable duration")

    reconciler.video_ready(video.id, metadata)
    return metadata


def _latest_output(video: Video, task_type: str) -> dict | None:
    task = (
        AITask.objects.filter(video=video, type=task_type, status=AITask.COMPLETED)
        .order_by("-completed_at")
        .first()
    )
    return task.output if task else None


def handle_ai_task(payload: JobPayload, final_attempt: bool):
    task = AITask.objects.select_related("video").get(id=payload.task_id)
    if not reconciler.task_processing(task.id):
        return None

    video = task.video
    data = payload.input or task.input or {}
    media_ref = data.get("videoUrl") or video.storage_url
    client = get_ai_client()
    task_type = payload.type or task.type

    if task_type == AITask.TRANSCRIBE:
        output = {"transcript": client.transcribe(media_ref)}
    elif task_type == AITask.SCENE_DETECTION:
        output = client.analyze_scenes(media_ref)
    elif task_type in (AITask.SUBTITLES, AITask.EDIT_SUGGESTIONS):
        transcript = data.get("transcript") or (_latest_output(video, AITask.TRANSCRIBE) or {}).get("transcript")
        if not transcript:
            raise UnprocessableJob("No transcript available; run a transcription first")
        if task_type == AITask.SUBTITLES:
            duration = data.get("duration") or video.duration or 0
            output = {"subtitles": client.generate_subtitles(transcript, duration)}
        else:
            scenes = data.get("scenes") or (_latest_output(video, AITask.SCENE_DETECTION) or {}).get("scenes") or []
            output = client.suggest_edits(transcript, scenes)
    else:
        raise UnprocessableJob(f"Unknown AI task type: {task_type}")

    reconciler.task_completed(task.id, output)
    return output


def handle_render(payload: JobPayload, final_attempt: bool):
    render = Render.objects.select_related("project").get(id=payload.render_id)
    if render.is_terminal:
        logger.info("Render %s is already %s, skipping", render.id, render.status)
        return None

    project = render.project
    store = get_chunk_store()
    videos = [
        MediaInput(video_id=v.id, path=str(store.path_for(v.storage_url)), duration=v.duration)
        for v in project.videos.order_by("created_at", "id")
    ]
    inputs = resolve_inputs(project.timeline, videos)
    settings_ = RenderSettings.from_dict(render.settings)

    return get_orchestrator().render(render.id, inputs, settings_, render.filename, final_attempt=final_attempt)


render_store = RenderStore()

HANDLERS = {
    # kind: (handler, on_retry, on_final_failure)
    PROCESS_VIDEO: (handle_process_video, reconciler.video_retrying, reconciler.video_failed),
    AI_TASK: (handle_ai_task, reconciler.task_retrying, reconciler.task_failed),
    RENDER: (
        handle_render,
        lambda render_id, error: render_store.fail(render_id, error, final=False),
        lambda render_id, error: render_store.fail(render_id, error, final=True),
    ),
}


def run_job(task, message: dict):
    """
    Dispatch one dequeued job and apply the lane's retry policy.

    Expected, permanent problems (no input media, unusable submissions) are
    recorded as FAILED straight away. Anything else is retried with
    exponential backoff until the lane's attempt ceiling, then recorded as
    FAILED and re-raised so the queue sees the job as failed too.
    """
    payload = JobPayload.from_message(message)
    lane = get_lane(payload.lane)
    retries = task.request.retries or 0
    final_attempt = retries >= lane.max_retries
    handler, on_retry, on_fail = HANDLERS[payload.kind]
    entity = payload.entity_id

    logger.info("Processing %s job for %s (attempt %d/%d)", payload.kind, entity, retries + 1, lane.max_attempts)
    try:
        with entity_lock(payload.kind, entity):
            try:
                return handler(payload, final_attempt)
            except ObjectDoesNotExist:
                logger.warning("%s job for %s: record no longer exists", payload.kind, entity)
                return f"{payload.kind} {entity} not found"
            except RenderCancelled:
                logger.info("Render %s was cancelled", entity)
                return None
            except (NoInputMedia, UnprocessableJob) as e:
                logger.warning("%s job for %s cannot be processed: %s", payload.kind, entity, e)
                on_fail(entity, str(e))
                return None
            except Exception as e:
                if final_attempt:
                    logger.exception("%s job for %s failed permanently", payload.kind, entity)
                    on_fail(entity, str(e))
                    raise
                delay = lane.retry_delay(retries)
                logger.warning(
                    "%s job for %s failed (%s), retrying in %.0fs", payload.kind, entity, e, delay
                )
                on_retry(entity, str(e))
                raise task.retry(exc=e, countdown=delay)
    except EntityBusy:
        # another job owns this entity; come back later without spending an attempt
        logger.info("%s job for %s is waiting on its entity lock", payload.kind, entity)
        task.apply_async(
            kwargs={"payload": message},
            countdown=settings.ENTITY_BUSY_RETRY_DELAY,
            retries=retries,
        )
        return None


@shared_task(
    bind=True,
    name="api.tasks.video_lane_job",
    acks_late=True,
    max_retries=get_lane(VIDEO_LANE).max_retries,
)
def video_lane_job(self, payload: dict):
    return run_job(self, payload)


@shared_task(
    bind=True,
    name="api.tasks.render_lane_job",
    acks_late=True,
    max_retries=get_lane(RENDER_LANE).max_retries,
)
def render_lane_job(self, payload: dict):
    return run_job(self, payload)


@shared_task(name="api.tasks.purge_abandoned_uploads")
def purge_abandoned_uploads(max_age_hours: int | None = None) -> int:
    """Drop upload sessions (and their chunks) that stopped receiving data."""
    hours = max_age_hours or settings.UPLOAD_SESSION_TTL_HOURS
    cutoff = timezone.now() - timedelta(hours=hours)
    store = get_chunk_store()
    purged = 0
    for session in UploadSession.objects.filter(updated_at__lt=cutoff):
        store.discard(session.file_id)
        session.delete()
        purged += 1
    if purged:
        logger.info("Purged %d abandoned uploads older than %dh", purged, hours)
    return purged
