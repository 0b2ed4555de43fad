from dataclasses import asdict, dataclass

RESOLUTIONS = {
    "4k": (3840, 2160),
    "1080p": (1920, 1080),
    "720p": (1280, 720),
}
DEFAULT_RESOLUTION = "1080p"

# quality tier -> (crf, video bitrate ceiling)
QUALITY = {
    "high": (18, "5000k"),
    "medium": (23, "2500k"),
    "low": (28, "1000k"),
}
DEFAULT_QUALITY = "medium"

# container -> (video codec, audio codec)
CONTAINER_CODECS = {
    "mp4": ("libx264", "aac"),
    "mov": ("libx264", "aac"),
    "webm": ("libvpx-vp9", "libopus"),
}
AUDIO_BITRATE = "192k"
FASTSTART_CONTAINERS = {"mp4", "mov"}


@dataclass
class RenderSettings:
    resolution: str = "1080p"
    fps: float = 30
    format: str = "mp4"
    quality: str = "high"

    @classmethod
    def from_dict(cls, data: dict | None) -> "RenderSettings":
        data = data or {}
        fmt = str(data.get("format") or "mp4").lower()
        if fmt not in CONTAINER_CODECS:
            raise ValueError(f"unsupported container format: {fmt}")
        fps = float(data.get("fps") or 30)
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        if fps.is_integer():
            # 24.0 -> "-r 24"
            fps = int(fps)
        return cls(
            resolution=str(data.get("resolution") or "1080p"),
            fps=fps,
            format=fmt,
            quality=str(data.get("quality") or "high"),
        )

    def to_dict(self) -> dict:
        return asdict(self)


def resolution_params(resolution: str) -> list[str]:
    width, height = RESOLUTIONS.get(resolution, RESOLUTIONS[DEFAULT_RESOLUTION])
    return ["-vf", f"scale={width}:{height}"]


def quality_params(quality: str) -> list[str]:
    crf, bitrate = QUALITY.get(quality, QUALITY[DEFAULT_QUALITY])
    return ["-crf", str(crf), "-b:v", bitrate]


def output_args(settings: RenderSettings) -> list[str]:
    """Encoder arguments shared by the single-input and concat paths."""
    video_codec, audio_codec = CONTAINER_CODECS.get(settings.format, CONTAINER_CODECS["mp4"])
    args = ["-c:v", video_codec]
    if video_codec == "libx264":
        args += ["-preset", "medium"]
    args += resolution_params(settings.resolution)
    args += ["-r", str(settings.fps)]
    args += quality_params(settings.quality)
    args += ["-c:a", audio_codec, "-b:a", AUDIO_BITRATE]
    if settings.format in FASTSTART_CONTAINERS:
        # moov atom before the payload for progressive playback
        args += ["-movflags", "+faststart"]
    return args
