import math

from core.exceptions import InvalidParameters

VIDEO_DEFAULT_DURATION = 6
VIDEO_MAX_DURATION = 60
VOICE_MAX_CHARS = 5000
WORDS_PER_MINUTE = 150
IMAGE_MAX_COUNT = 4


def compute_quantity(kind: str, parameters: dict) -> int:
    """
    Billable units, fixed before submission:
    video -> seconds requested, voice -> estimated minutes, image -> images requested.
    """
    if kind == "video":
        duration = _as_int(parameters.get("duration", VIDEO_DEFAULT_DURATION), "duration")
        if not 1 <= duration <= VIDEO_MAX_DURATION:
            raise InvalidParameters(f"duration must be between 1 and {VIDEO_MAX_DURATION} seconds",
                                    {"field": "duration"})
        return duration

    if kind == "voice":
        text = (parameters.get("text") or "").strip()
        if not text:
            raise InvalidParameters("text is required", {"field": "text"})
        if len(text) > VOICE_MAX_CHARS:
            raise InvalidParameters(f"text is limited to {VOICE_MAX_CHARS} characters", {"field": "text"})
        return max(1, math.ceil(len(text.split()) / WORDS_PER_MINUTE))

    if kind == "image":
        n = _as_int(parameters.get("n", 1), "n")
        if not 1 <= n <= IMAGE_MAX_COUNT:
            raise InvalidParameters(f"n must be between 1 and {IMAGE_MAX_COUNT}", {"field": "n"})
        return n

    raise InvalidParameters(f"unknown job kind '{kind}'", {"field": "kind"})


def _as_int(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidParameters(f"{name} must be an integer", {"field": name})
