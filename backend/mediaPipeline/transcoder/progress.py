import re

DURATION_RE = re.compile(r"Duration:\s*(\d+:\d+:\d+(?:\.\d+)?)")
TIME_RE = re.compile(r"time=\s*(\d+:\d+:\d+(?:\.\d+)?)")

MAX_RUNNING_PERCENT = 99.0


def parse_timemark(mark: str) -> float:
    """'h:mm:ss[.fraction]' -> seconds. Anything else is 0."""
    parts = (mark or "").strip().split(":")
    if len(parts) != 3:
        return 0.0
    try:
        hours, minutes, seconds = (float(p) for p in parts)
    except ValueError:
        return 0.0
    return hours * 3600 + minutes * 60 + seconds


def compute_percent(elapsed: float, duration: float) -> float:
    if duration <= 0:
        return 0.0
    return min(MAX_RUNNING_PERCENT, max(0.0, elapsed / duration * 100))


def parse_duration_line(line: str) -> float | None:
    m = DURATION_RE.search(line)
    if not m:
        return None
    return parse_timemark(m.group(1)) or None


def parse_timemark_line(line: str) -> float | None:
    m = TIME_RE.search(line)
    if not m:
        return None
    return parse_timemark(m.group(1))


class ProgressTracker:
    """
    Turns ffmpeg stderr lines into percentages.

    The first ``Duration:`` line fixes the total; afterwards every ``time=``
    mark yields a percentage, but only when it moves forward, so the
    sequence handed to ``feed`` callers never decreases.
    """

    def __init__(self, duration: float = 0.0):
        self.duration = duration
        self.last_percent = 0.0
        self._duration_from_engine = False

    def feed(self, line: str) -> float | None:
        if not self._duration_from_engine:
            duration = parse_duration_line(line)
            if duration:
                self.duration = duration
                self._duration_from_engine = True
                return None

        elapsed = parse_timemark_line(line)
        if elapsed is None or self.duration <= 0:
            return None
        percent = round(compute_percent(elapsed, self.duration), 2)
        if percent <= self.last_percent:
            return None
        self.last_percent = percent
        return percent
