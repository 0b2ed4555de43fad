from .errors import (
    CollaboratorFailure,
    EngineFailure,
    IncompleteUpload,
    NoInputMedia,
    NotFound,
    PipelineError,
    RenderCancelled,
    StorageFault,
)

