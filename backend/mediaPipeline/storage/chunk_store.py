import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from django.core.files.base import ContentFile, File
from django.core.files.storage import FileSystemStorage

from ..errors import IncompleteUpload, NotFound, StorageFault

logger = logging.getLogger(__name__)

FILE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
STORAGE_KINDS = ("videos", "thumbnails", "renders")


def _iter_bytes(data):
    # Django UploadedFile streams through .chunks(); plain bytes are written as-is
    if hasattr(data, "chunks"):
        yield from data.chunks()
    else:
        yield bytes(data)


class ChunkStore:
    """
    Filesystem storage for uploaded media.

    Layout under ``root``:
        chunks/<file_id>/chunk-<index>   pending pieces of a chunked upload
        videos/<file_id>                 merged or directly uploaded videos
        renders/<filename>               transcoder output

    Stored files are named, saved, resolved and deleted through a Django
    ``FileSystemStorage`` rooted at ``root``. Chunk pieces and the merge are
    plain file I/O: a re-sent index overwrites in place and the merged file
    is renamed into position atomically.
    """

    def __init__(self, root):
        self.root = Path(root)
        self.storage = FileSystemStorage(location=str(self.root))

    def get_upload_path(self, kind: str = "videos") -> Path:
        if kind not in STORAGE_KINDS and kind != "chunks":
            raise ValueError(f"unknown storage kind: {kind}")
        return self.root / kind

    def ensure_dirs(self):
        try:
            for kind in STORAGE_KINDS:
                self.get_upload_path(kind).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFault(f"could not create storage directories under {self.root}: {e}") from e

    def chunk_dir(self, file_id: str) -> Path:
        if not file_id or not FILE_ID_RE.match(file_id) or ".." in file_id:
            raise ValueError(f"invalid file id: {file_id!r}")
        return self.root / "chunks" / file_id

    def write_chunk(self, file_id: str, index: int, data, total: int | None = None) -> Path:
        """
        Store one piece of a chunked upload. Writing the same index again
        replaces the earlier bytes.
        """
        if index < 0 or (total is not None and index >= total):
            raise ValueError(f"chunk index {index} out of range for {total} chunks")

        chunk_dir = self.chunk_dir(file_id)
        chunk_path = chunk_dir / f"chunk-{index}"
        try:
            chunk_dir.mkdir(parents=True, exist_ok=True)
            with open(chunk_path, "wb") as fh:
                for piece in _iter_bytes(data):
                    fh.write(piece)
        except OSError as e:
            raise StorageFault(f"could not write chunk {index} of {file_id}: {e}") from e
        return chunk_path

    def received_indices(self, file_id: str) -> set[int]:
        chunk_dir = self.chunk_dir(file_id)
        if not chunk_dir.is_dir():
            return set()
        indices = set()
        for entry in chunk_dir.iterdir():
            name = entry.name
            if name.startswith("chunk-") and name[6:].isdigit():
                indices.add(int(name[6:]))
        return indices

    def pending_size(self, file_id: str) -> int:
        chunk_dir = self.chunk_dir(file_id)
        if not chunk_dir.is_dir():
            return 0
        return sum(entry.stat().st_size for entry in chunk_dir.iterdir() if entry.name.startswith("chunk-"))

    def merged_path(self, file_id: str) -> Path:
        """Where ``merge`` puts the assembled file."""
        self.chunk_dir(file_id)
        return Path(self.storage.path(f"videos/{file_id}"))

    def merge(self, file_id: str, total_chunks: int) -> Path:
        """
        Concatenate chunks ``0..total_chunks-1`` in index order into
        ``videos/<file_id>`` and remove the chunk directory.

        Raises:
            NotFound: the chunks for ``file_id`` were never written or were already merged.
            IncompleteUpload: at least one index is missing; nothing is written.
            StorageFault: the medium failed while reading or writing.
        """
        chunk_dir = self.chunk_dir(file_id)
        if not chunk_dir.is_dir():
            raise NotFound(f"no chunks stored for upload {file_id}")

        present = self.received_indices(file_id)
        missing = [i for i in range(total_chunks) if i not in present]
        if missing:
            raise IncompleteUpload(file_id, missing)

        output_path = self.merged_path(file_id)
        output_dir = output_path.parent
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            # assemble next to the destination so the final rename is atomic
            fd, tmp_name = tempfile.mkstemp(dir=output_dir, prefix=f".{file_id}.", suffix=".part")
            try:
                with os.fdopen(fd, "wb") as out:
                    for i in range(total_chunks):
                        with open(chunk_dir / f"chunk-{i}", "rb") as src:
                            shutil.copyfileobj(src, out)
                os.replace(tmp_name, output_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
            shutil.rmtree(chunk_dir)
        except OSError as e:
            raise StorageFault(f"could not merge upload {file_id}: {e}") from e

        logger.info("Merged %d chunks of %s into %s", total_chunks, file_id, output_path)
        return output_path

    def discard(self, file_id: str) -> bool:
        chunk_dir = self.chunk_dir(file_id)
        if not chunk_dir.exists():
            return False
        shutil.rmtree(chunk_dir, ignore_errors=True)
        return True

    def save_file(self, data, filename: str, kind: str = "videos") -> Path:
        """
        Direct (non-chunked) upload through Django's storage API. An existing
        name is never overwritten; the storage picks a free one instead.
        """
        self.get_upload_path(kind)
        content = data if isinstance(data, File) else ContentFile(bytes(data))
        try:
            name = self.storage.save(f"{kind}/{Path(filename).name}", content)
        except OSError as e:
            raise StorageFault(f"could not save {filename}: {e}") from e
        return Path(self.storage.path(name))

    def delete_file(self, storage_url: str):
        try:
            self.storage.delete(storage_url)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", storage_url, e)

    def relative(self, path) -> str:
        return Path(path).resolve().relative_to(self.root.resolve()).as_posix()

    def path_for(self, storage_url: str) -> Path:
        p = Path(storage_url)
        if p.is_absolute():
            return p
        # raises SuspiciousFileOperation for locations outside the root
        return Path(self.storage.path(storage_url))
