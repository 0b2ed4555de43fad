from .lanes import RENDER_LANE, VIDEO_LANE, Lane, get_lane, lane_names
from .payload import AI_TASK, PROCESS_VIDEO, RENDER, JobPayload
from .dispatch import enqueue
