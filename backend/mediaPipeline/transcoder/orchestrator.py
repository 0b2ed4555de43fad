import logging
import threading
from pathlib import Path

from ..errors import NoInputMedia, RenderCancelled
from .engine import EngineProcess, build_concat_command, build_single_command, find_ffmpeg, write_manifest
from .inputs import MediaInput, total_duration
from .progress import ProgressTracker
from .settings import RenderSettings

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Render cancelled"


class TranscodeOrchestrator:
    """
    Drives one ffmpeg process per render and reports the outcome to ``store``.

    ``store`` is the persistence side of the render state machine and must provide:
        claim(render_id) -> bool
        record_progress(render_id, percent) -> bool
        complete(render_id, output_url) -> bool
        fail(render_id, error, final=True) -> bool
        cancel(render_id, reason) -> bool
    Each returns False when the render is no longer in a state that allows the change.
    """

    def __init__(self, store, output_dir, ffmpeg_binary: str | None = None):
        self.store = store
        self.output_dir = Path(output_dir)
        self.ffmpeg_binary = ffmpeg_binary
        self._in_flight: dict = {}
        self._lock = threading.Lock()

    # in-flight handle map

    def _register(self, render_id, engine: EngineProcess):
        with self._lock:
            if render_id in self._in_flight:
                raise RuntimeError(f"render {render_id} already has an engine process in flight")
            self._in_flight[render_id] = engine

    def _unregister(self, render_id, engine: EngineProcess | None = None):
        with self._lock:
            current = self._in_flight.get(render_id)
            if current is not None and (engine is None or current is engine):
                del self._in_flight[render_id]
            return current

    def in_flight(self, render_id) -> bool:
        with self._lock:
            return render_id in self._in_flight

    # rendering

    def render(
        self,
        render_id,
        inputs: list[MediaInput],
        settings: RenderSettings,
        filename: str,
        final_attempt: bool = True,
    ) -> str:
        """
        Encode ``inputs`` into ``<output_dir>/<filename>`` and return the
        output's location relative to the storage root.

        Raises:
            NoInputMedia: nothing to encode. The render is FAILED without entering PROCESSING.
            RenderCancelled: the render was cancelled before or while encoding.
            EngineFailure: ffmpeg failed. FAILED is persisted on the final attempt,
                otherwise the render goes back to QUEUED for the retry.
        """
        if not inputs:
            error = NoInputMedia(render_id)
            self.store.fail(render_id, str(error), final=True)
            raise error

        if not self.store.claim(render_id):
            raise RenderCancelled(render_id)

        output_path = self.output_dir / filename
        manifest_path = None
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            ffmpeg = find_ffmpeg(self.ffmpeg_binary)
            if len(inputs) == 1:
                cmd = build_single_command(ffmpeg, inputs[0].path, output_path, settings)
            else:
                manifest_path = self.output_dir / f"concat-{render_id}.txt"
                write_manifest([i.path for i in inputs], manifest_path)
                cmd = build_concat_command(ffmpeg, manifest_path, output_path, settings)

            self._run(render_id, cmd, ProgressTracker(duration=total_duration(inputs)))
        except RenderCancelled:
            output_path.unlink(missing_ok=True)
            raise
        except Exception as e:
            logger.error("Render %s failed: %s", render_id, e)
            self.store.fail(render_id, str(e), final=final_attempt)
            raise
        finally:
            if manifest_path is not None:
                manifest_path.unlink(missing_ok=True)

        output_url = f"renders/{filename}"
        if not self.store.complete(render_id, output_url):
            # cancelled after ffmpeg had already finished
            output_path.unlink(missing_ok=True)
            raise RenderCancelled(render_id)
        logger.info("Render %s completed: %s", render_id, output_url)
        return output_url

    def _run(self, render_id, cmd: list[str], tracker: ProgressTracker):
        engine = EngineProcess(cmd).start()
        try:
            # inside the try so a refused registration still stops the process
            self._register(render_id, engine)
            for line in engine.lines():
                percent = tracker.feed(line)
                if percent is None:
                    continue
                if not self._report_progress(render_id, percent):
                    logger.info("Render %s is no longer processing, stopping ffmpeg", render_id)
                    engine.terminate()
            try:
                engine.wait()
            except Exception:
                if engine.terminated:
                    raise RenderCancelled(render_id)
                raise
            if engine.terminated:
                raise RenderCancelled(render_id)
        finally:
            if engine.process.poll() is None:
                engine.terminate()
                engine.process.wait()
            self._unregister(render_id, engine)

    def _report_progress(self, render_id, percent: float) -> bool:
        # best-effort telemetry: a lost progress write never fails the render
        try:
            return self.store.record_progress(render_id, percent)
        except Exception as e:
            logger.warning("Could not persist progress %.2f for render %s: %s", percent, render_id, e)
            return True

    # cancellation

    def cancel(self, render_id) -> bool:
        """
        Stop the render's ffmpeg process if this instance owns it and mark the
        render CANCELLED unless it already reached a terminal state.

        Returns True when a local process was signalled. False is informational:
        the render finished already or runs in another worker process.
        """
        engine = self._unregister(render_id)
        if engine is not None:
            engine.terminate()
        else:
            logger.info("No local ffmpeg process for render %s", render_id)
        self.store.cancel(render_id, CANCELLED_MESSAGE)
        return engine is not None
