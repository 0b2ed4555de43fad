from .settings import RenderSettings, output_args, quality_params, resolution_params
from .progress import ProgressTracker, compute_percent, parse_timemark
from .inputs import MediaInput, resolve_inputs
from .engine import EngineProcess, build_concat_command, build_single_command, write_manifest
from .orchestrator import TranscodeOrchestrator
