from dataclasses import dataclass


@dataclass
class MediaInput:
    video_id: object
    path: str
    duration: float | None = None


def timeline_clips(timeline) -> list | None:
    if isinstance(timeline, dict) and isinstance(timeline.get("clips"), list):
        return timeline["clips"]
    return None


def resolve_inputs(timeline, videos: list[MediaInput]) -> list[MediaInput]:
    """
    Pick the files to encode, in order.

    With a timeline, follow its clip order and drop clips whose video is gone.
    Without one, use every project video in its stored order.
    """
    clips = timeline_clips(timeline)
    if clips is None:
        return list(videos)

    by_id = {str(v.video_id): v for v in videos}
    resolved = []
    for clip in clips:
        if not isinstance(clip, dict):
            continue
        video = by_id.get(str(clip.get("videoId")))
        if video is not None:
            resolved.append(video)
    return resolved


def total_duration(inputs: list[MediaInput]) -> float:
    if not inputs or any(not i.duration for i in inputs):
        return 0.0
    return float(sum(i.duration for i in inputs))
