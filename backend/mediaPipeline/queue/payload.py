from dataclasses import dataclass, field
from typing import Any

from .lanes import RENDER_LANE, VIDEO_LANE

PROCESS_VIDEO = "process-video"
AI_TASK = "ai-task"
RENDER = "render"

KIND_LANES = {
    PROCESS_VIDEO: VIDEO_LANE,
    AI_TASK: VIDEO_LANE,
    RENDER: RENDER_LANE,
}

KIND_REQUIRED = {
    PROCESS_VIDEO: ("video_id",),
    AI_TASK: ("task_id", "video_id", "type"),
    RENDER: ("render_id",),
}

# python attribute -> wire key
WIRE_KEYS = {
    "video_id": "videoId",
    "task_id": "taskId",
    "render_id": "renderId",
    "storage_url": "storageUrl",
    "type": "type",
    "input": "input",
}


@dataclass
class JobPayload:
    lane: str
    kind: str
    video_id: Any = None
    task_id: Any = None
    render_id: Any = None
    storage_url: str | None = None
    type: str | None = None
    input: dict = field(default_factory=dict)

    def __post_init__(self):
        expected = KIND_LANES.get(self.kind)
        if expected is None:
            raise ValueError(f"unknown job kind: {self.kind}")
        if self.lane != expected:
            raise ValueError(f"job kind {self.kind!r} belongs to lane {expected!r}, not {self.lane!r}")
        missing = [name for name in KIND_REQUIRED[self.kind] if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{self.kind} job is missing {', '.join(WIRE_KEYS[m] for m in missing)}")

    @property
    def entity_id(self):
        """Id of the record this job is the single writer for."""
        if self.kind == RENDER:
            return self.render_id
        if self.kind == AI_TASK:
            return self.task_id
        return self.video_id

    def to_message(self) -> dict:
        message = {"lane": self.lane, "kind": self.kind}
        for attr, key in WIRE_KEYS.items():
            value = getattr(self, attr)
            if value is None or (attr == "input" and not value):
                continue
            message[key] = value
        return message

    @classmethod
    def from_message(cls, message: dict) -> "JobPayload":
        kwargs = {attr: message[key] for attr, key in WIRE_KEYS.items() if message.get(key) is not None}
        return cls(lane=message.get("lane"), kind=message.get("kind"), **kwargs)
