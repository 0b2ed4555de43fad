import logging

from celery import current_app

from .lanes import get_lane
from .payload import JobPayload

logger = logging.getLogger(__name__)


def enqueue(lane: str, kind: str, countdown: float | None = None, **fields) -> str:
    """
    Admit a job into ``lane`` and return its id without waiting for it to run.
    Delivery is at-least-once; callers observe the outcome through persisted status.
    """
    payload = JobPayload(lane=lane, kind=kind, **fields)
    conf = get_lane(lane)
    result = current_app.send_task(
        conf.task,
        kwargs={"payload": payload.to_message()},
        queue=lane,
        countdown=countdown,
    )
    logger.info("Enqueued %s job %s on %s (entity %s)", kind, result.id, lane, payload.entity_id)
    return result.id
