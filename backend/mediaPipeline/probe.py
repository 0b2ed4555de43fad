from moviepy import VideoFileClip


def probe_video(path) -> dict:
    """Read duration, frame size and frame rate. Raises if the file can't be decoded."""
    with VideoFileClip(str(path)) as clip:
        width, height = clip.size
        return {
            "duration": float(clip.duration or 0),
            "width": int(width),
            "height": int(height),
            "fps": float(clip.fps or 0),
        }
