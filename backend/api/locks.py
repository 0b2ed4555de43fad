import uuid
from contextlib import contextmanager

from django.conf import settings
from django.core.cache import cache


class EntityBusy(Exception):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"{key} is locked by another job")


def lock_key(kind: str, entity_id) -> str:
    return f"pipeline:lock:{kind}:{entity_id}"


@contextmanager
def entity_lock(kind: str, entity_id, ttl: int | None = None):
    """
    Advisory lock so only one job writes a given Video/AITask/Render at a time,
    whatever the lane's concurrency. The TTL bounds how long a crashed worker
    can hold it.
    """
    key = lock_key(kind, entity_id)
    token = uuid.uuid4().hex
    if not cache.add(key, token, timeout=ttl or settings.ENTITY_LOCK_TTL):
        raise EntityBusy(key)
    try:
        yield
    finally:
        if cache.get(key) == token:
            cache.delete(key)
