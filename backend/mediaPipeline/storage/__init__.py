from .chunk_store import ChunkStore
