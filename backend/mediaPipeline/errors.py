class PipelineError(Exception):
    pass


class StorageFault(PipelineError):
    """The storage medium could not be read or written. Retryable."""


class NotFound(PipelineError):
    pass


class IncompleteUpload(PipelineError):
    def __init__(self, file_id: str, missing: list[int]):
        self.file_id = file_id
        self.missing = missing
        super().__init__(f"Upload {file_id} is missing chunks: {missing}")


class NoInputMedia(PipelineError):
    def __init__(self, render_id):
        self.render_id = render_id
        super().__init__("No video files to render")


class EngineFailure(PipelineError):
    def __init__(self, returncode: int, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        message = f"ffmpeg exited with code {returncode}"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)


class RenderCancelled(PipelineError):
    def __init__(self, render_id):
        self.render_id = render_id
        super().__init__(f"Render {render_id} was cancelled")


class CollaboratorFailure(PipelineError):
    pass
