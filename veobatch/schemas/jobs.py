"""Pydantic schemas for job submission and the live job feed."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from veobatch.models.enums import (
	AspectRatioEnum,
	InputTypeEnum,
	JobStatusEnum,
	ResolutionEnum,
	VeoModelEnum,
)
from veobatch.models.jobs import ImagePayload, VideoJob


def decode_image(value: str) -> ImagePayload:
	"""Decode a data URL (``data:image/png;base64,...``) or bare base64 string."""
	mime_type = "image/png"
	encoded = value.strip()
	if encoded.startswith("data:"):
		header, _, encoded = encoded.partition(",")
		media = header[len("data:"):].split(";")[0]
		if media:
			mime_type = media
	try:
		data = base64.b64decode(encoded, validate=True)
	except (binascii.Error, ValueError) as exc:
		raise ValueError("image must be base64 encoded") from exc
	if not data:
		raise ValueError("image must not be empty")
	return ImagePayload(data=data, mime_type=mime_type)


class JobCreateRequest(BaseModel):
	prompt: str | None = Field(default=None, max_length=4000)
	prompts: list[str] | None = Field(default=None, max_length=500)
	input_type: InputTypeEnum = InputTypeEnum.TEXT_ONLY
	model: VeoModelEnum = VeoModelEnum.VEO_3_1_FAST
	aspect_ratio: AspectRatioEnum = AspectRatioEnum.landscape
	resolution: ResolutionEnum = ResolutionEnum.hd
	start_image: str | None = None
	end_image: str | None = None

	@field_validator("start_image", "end_image")
	@classmethod
	def validate_image(cls, value: str | None) -> str | None:
		if value is None:
			return None
		decode_image(value)
		return value

	@model_validator(mode="after")
	def check_inputs(self) -> JobCreateRequest:
		if not self.prompt_list():
			raise ValueError("at least one non-empty prompt is required")
		if self.input_type == InputTypeEnum.IMAGE_TO_VIDEO and self.start_image is None:
			raise ValueError("IMAGE_TO_VIDEO jobs need a start_image")
		if self.input_type == InputTypeEnum.FRAMES_TO_VIDEO and (self.start_image is None or self.end_image is None):
			raise ValueError("FRAMES_TO_VIDEO jobs need both start_image and end_image")
		return self

	def prompt_list(self) -> list[str]:
		if self.prompts is not None:
			lines = [line for item in self.prompts for line in item.splitlines()]
			return [line.strip() for line in lines if line.strip()]
		if self.prompt is not None and self.prompt.strip():
			return [self.prompt.strip()]
		return []

	def to_jobs(self) -> list[VideoJob]:
		start_image = decode_image(self.start_image) if self.start_image is not None else None
		end_image = decode_image(self.end_image) if self.end_image is not None else None
		return [
			VideoJob(
				prompt=prompt,
				input_type=self.input_type,
				model=self.model,
				aspect_ratio=self.aspect_ratio,
				resolution=self.resolution,
				start_image=start_image,
				end_image=end_image,
			)
			for prompt in self.prompt_list()
		]


class JobAttemptResponse(BaseModel):
	attempt: int
	started_at: datetime | None = None
	completed_at: datetime | None = None
	error: str | None = None


class JobResponse(BaseModel):
	id: str
	prompt: str
	input_type: InputTypeEnum
	model: VeoModelEnum
	aspect_ratio: AspectRatioEnum
	resolution: ResolutionEnum
	has_start_image: bool
	has_end_image: bool
	status: JobStatusEnum
	result_handle: str | None = None
	video_url: str | None = None
	error: str | None = None
	created_at: datetime
	started_at: datetime | None = None
	completed_at: datetime | None = None
	attempt: int = 0
	history: list[JobAttemptResponse] = Field(default_factory=list)

	@classmethod
	def from_job(cls, job: VideoJob) -> JobResponse:
		return cls(
			id=job.id,
			prompt=job.prompt,
			input_type=job.input_type,
			model=job.model,
			aspect_ratio=job.aspect_ratio,
			resolution=job.resolution,
			has_start_image=job.start_image is not None,
			has_end_image=job.end_image is not None,
			status=job.status,
			result_handle=job.result_handle,
			video_url=f"/api/v1/{job.result_handle}" if job.result_handle else None,
			error=job.error,
			created_at=job.created_at,
			started_at=job.started_at,
			completed_at=job.completed_at,
			attempt=job.attempt,
			history=[
				JobAttemptResponse(
					attempt=item.attempt,
					started_at=item.started_at,
					completed_at=item.completed_at,
					error=item.error,
				)
				for item in job.history
			],
		)


class JobStatsResponse(BaseModel):
	total: int
	pending: int
	running: int
	success: int
	failed: int


class ClearFinishedResponse(BaseModel):
	removed: int
	job_ids: list[str] = Field(default_factory=list)


class DownloadLink(BaseModel):
	job_id: str
	filename: str
	url: str
