import logging
import os
import shutil
import signal
import subprocess
from collections import deque
from pathlib import Path

from ..errors import EngineFailure
from .settings import RenderSettings, output_args

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


def find_ffmpeg(configured: str | None = None) -> str:
    if configured:
        return configured
    found = shutil.which("ffmpeg")
    if found:
        return found
    from imageio_ffmpeg import get_ffmpeg_exe

    return get_ffmpeg_exe()


def build_single_command(ffmpeg: str, input_path, output_path, settings: RenderSettings) -> list[str]:
    return [ffmpeg, "-y", "-i", str(input_path), *output_args(settings), str(output_path)]


def build_concat_command(ffmpeg: str, manifest_path, output_path, settings: RenderSettings) -> list[str]:
    return [
        ffmpeg, "-y",
        "-f", "concat", "-safe", "0",
        "-i", str(manifest_path),
        *output_args(settings),
        str(output_path),
    ]


def quote_manifest_path(path) -> str:
    # concat demuxer syntax: single-quoted, embedded quotes closed/escaped/reopened
    p = str(path)
    if os.sep == "\\":
        # Windows separators; on POSIX a backslash belongs to the file name
        p = p.replace("\\", "/")
    p = p.replace("'", "'\\''")
    return f"file '{p}'"


def write_manifest(paths, manifest_path) -> Path:
    manifest_path = Path(manifest_path)
    manifest_path.write_text("\n".join(quote_manifest_path(p) for p in paths) + "\n", encoding="utf-8")
    return manifest_path


class EngineProcess:
    """One running ffmpeg invocation."""

    def __init__(self, cmd: list[str]):
        self.cmd = cmd
        self.process: subprocess.Popen | None = None
        self.terminated = False
        self._stderr_tail = deque(maxlen=STDERR_TAIL_LINES)

    def start(self):
        try:
            self.process = subprocess.Popen(
                self.cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
            )
        except OSError as e:
            raise EngineFailure(-1, f"could not start {self.cmd[0]}: {e}") from e
        logger.info("FFmpeg started: %s", " ".join(self.cmd))
        return self

    def lines(self):
        """Yield stderr lines until ffmpeg closes the stream."""
        # universal newlines also splits the \r-terminated progress updates
        for line in iter(self.process.stderr.readline, ""):
            line = line.rstrip()
            if line:
                self._stderr_tail.append(line)
                yield line

    def wait(self) -> int:
        returncode = self.process.wait()
        if self.process.stderr:
            self.process.stderr.close()
        if returncode != 0:
            raise EngineFailure(returncode, self.stderr_tail)
        return returncode

    @property
    def stderr_tail(self) -> str:
        return "\n".join(self._stderr_tail)

    def terminate(self, sig=signal.SIGTERM):
        self.terminated = True
        if self.process is None or self.process.poll() is not None:
            return
        try:
            if sig == signal.SIGTERM:
                self.process.terminate()
            else:
                os.kill(self.process.pid, sig)
        except (ProcessLookupError, OSError):
            # already exited between poll() and the signal
            pass
