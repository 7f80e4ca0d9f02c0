"""Job model registry.

Application code can import everything from here::

    from veobatch.models import VideoJob, JobStatusEnum, ...
"""

# ── Enums ───────────────────────────────────────────────────────────────────
from veobatch.models.enums import (
    AspectRatioEnum,
    InputTypeEnum,
    JobStatusEnum,
    ResolutionEnum,
    VeoModelEnum,
)

# ── Job record ──────────────────────────────────────────────────────────────
from veobatch.models.jobs import ImagePayload, JobAttempt, VideoJob

__all__ = [
    "AspectRatioEnum",
    "ImagePayload",
    "InputTypeEnum",
    "JobAttempt",
    "JobStatusEnum",
    "ResolutionEnum",
    "VeoModelEnum",
    "VideoJob",
]
