"""In-memory video job record tracked by the job store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

from veobatch.models.enums import (
	AspectRatioEnum,
	InputTypeEnum,
	JobStatusEnum,
	ResolutionEnum,
	VeoModelEnum,
)


@dataclass(slots=True, frozen=True)
class ImagePayload:
	"""Decoded reference frame sent alongside the prompt."""

	data: bytes
	mime_type: str = "image/png"


@dataclass(slots=True, frozen=True)
class JobAttempt:
	"""Archived timestamps of a finished attempt, kept when a job is retried."""

	attempt: int
	started_at: datetime | None
	completed_at: datetime | None
	error: str | None


@dataclass(slots=True)
class VideoJob:
	"""Tracks lifecycle of a single video generation request."""

	prompt: str
	input_type: InputTypeEnum = InputTypeEnum.TEXT_ONLY
	model: VeoModelEnum = VeoModelEnum.VEO_3_1_FAST
	aspect_ratio: AspectRatioEnum = AspectRatioEnum.landscape
	resolution: ResolutionEnum = ResolutionEnum.hd
	start_image: ImagePayload | None = None
	end_image: ImagePayload | None = None
	id: str = field(default_factory=lambda: str(uuid.uuid4()))
	status: JobStatusEnum = JobStatusEnum.PENDING
	result_handle: str | None = None
	error: str | None = None
	created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
	started_at: datetime | None = None
	completed_at: datetime | None = None
	attempt: int = 0
	history: list[JobAttempt] = field(default_factory=list)

	@property
	def is_finished(self) -> bool:
		return self.status in (JobStatusEnum.SUCCESS, JobStatusEnum.FAILED)

	def __repr__(self) -> str:
		return f"<VideoJob id={self.id} status={self.status} attempt={self.attempt}>"
