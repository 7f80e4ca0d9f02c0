"""Pydantic schemas for scheduler control and credential selection."""

from __future__ import annotations

from pydantic import BaseModel, Field

from veobatch.schemas.jobs import JobStatsResponse
from veobatch.services.scheduler import SchedulerStatus


class QueueConfigResponse(BaseModel):
	max_concurrent: int
	max_per_minute: int
	window_seconds: float


class QueueStatusResponse(BaseModel):
	enabled: bool
	credential_selected: bool
	in_flight: int
	window_count: int
	next_slot_in: float | None = Field(
		default=None,
		description="Seconds until the rate window frees a slot; null when one is free",
	)
	stats: JobStatsResponse
	config: QueueConfigResponse

	@classmethod
	def from_status(cls, status: SchedulerStatus) -> QueueStatusResponse:
		counts = status.counts
		return cls(
			enabled=status.enabled,
			credential_selected=status.credential_selected,
			in_flight=status.in_flight,
			window_count=status.window_count,
			next_slot_in=status.next_slot_in,
			stats=JobStatsResponse(
				total=counts.total,
				pending=counts.pending,
				running=counts.running,
				success=counts.success,
				failed=counts.failed,
			),
			config=QueueConfigResponse(
				max_concurrent=status.config.max_concurrent,
				max_per_minute=status.config.max_per_minute,
				window_seconds=status.config.window_seconds,
			),
		)


class CredentialSelectRequest(BaseModel):
	api_key: str = Field(min_length=1, max_length=512)


class CredentialStatusResponse(BaseModel):
	selected: bool
