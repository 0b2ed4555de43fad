from dataclasses import dataclass

VIDEO_LANE = "video-processing"
RENDER_LANE = "render-processing"

DEFAULT_LANES = {
    VIDEO_LANE: {
        "task": "api.tasks.video_lane_job",
        "concurrency": 2,
        "max_attempts": 3,
        "backoff": 2,
    },
    RENDER_LANE: {
        # one transcode at a time
        "task": "api.tasks.render_lane_job",
        "concurrency": 1,
        "max_attempts": 2,
        "backoff": 5,
    },
}


@dataclass(frozen=True)
class Lane:
    name: str
    task: str
    concurrency: int
    max_attempts: int
    backoff: float

    @property
    def max_retries(self) -> int:
        return max(self.max_attempts - 1, 0)

    def retry_delay(self, retries: int) -> float:
        """Exponential backoff in seconds before attempt ``retries + 2``."""
        return self.backoff * (2 ** retries)


def _configured_lanes() -> dict:
    from django.conf import settings

    if settings.configured:
        lanes = getattr(settings, "PIPELINE_LANES", None)
        if lanes:
            return lanes
    return DEFAULT_LANES


def get_lane(name: str) -> Lane:
    lanes = _configured_lanes()
    if name not in lanes:
        raise KeyError(f"unknown lane: {name}")
    conf = {**DEFAULT_LANES.get(name, {}), **lanes[name]}
    return Lane(
        name=name,
        task=conf["task"],
        concurrency=int(conf["concurrency"]),
        max_attempts=int(conf["max_attempts"]),
        backoff=float(conf["backoff"]),
    )


def lane_names() -> list[str]:
    return list(_configured_lanes().keys())
