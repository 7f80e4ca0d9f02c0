"""Enum types shared by the job record, the API schemas and the remote client.

Values match the strings the Gemini API and the web client exchange, so they
can be passed through without translation.
"""

from enum import StrEnum

# ── Job lifecycle ───────────────────────────────────────────────────────────


class JobStatusEnum(StrEnum):
    """Scheduler-visible job state."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


# ── Generation inputs ───────────────────────────────────────────────────────


class InputTypeEnum(StrEnum):
    """Which reference frames condition the generation."""

    TEXT_ONLY = "TEXT_ONLY"
    IMAGE_TO_VIDEO = "IMAGE_TO_VIDEO"
    FRAMES_TO_VIDEO = "FRAMES_TO_VIDEO"


class VeoModelEnum(StrEnum):
    """Veo model identifiers accepted by ``predictLongRunning``."""

    VEO_3_1_FAST = "veo-3.1-fast-generate-preview"
    VEO_3_1_HQ = "veo-3.1-generate-preview"


class AspectRatioEnum(StrEnum):
    square = "1:1"
    landscape = "16:9"
    portrait = "9:16"
    classic = "4:3"
    classic_portrait = "3:4"


class ResolutionEnum(StrEnum):
    hd = "720p"
    full_hd = "1080p"
