from functools import lru_cache
from pathlib import Path

from django.conf import settings

from mediaPipeline.ai import AIClient
from mediaPipeline.storage import ChunkStore
from mediaPipeline.transcoder import TranscodeOrchestrator

from .reconciler import RenderStore


def get_chunk_store() -> ChunkStore:
    return ChunkStore(settings.MEDIA_ROOT)


@lru_cache(maxsize=1)
def get_orchestrator() -> TranscodeOrchestrator:
    # one per process: its in-flight map is what cancel() looks in
    return TranscodeOrchestrator(
        store=RenderStore(),
        output_dir=Path(settings.MEDIA_ROOT) / "renders",
        ffmpeg_binary=settings.FFMPEG_BINARY or None,
    )


def get_ai_client() -> AIClient:
    return AIClient(
        api_key=settings.AI_API_KEY,
        base_url=settings.AI_BASE_URL,
        model=settings.AI_MODEL,
    )
