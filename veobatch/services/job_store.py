"""Ordered in-memory job store, the single source of truth for job status."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from veobatch.models.enums import JobStatusEnum
from veobatch.models.jobs import JobAttempt, VideoJob

_ALLOWED_TRANSITIONS: dict[JobStatusEnum, frozenset[JobStatusEnum]] = {
	JobStatusEnum.PENDING: frozenset({JobStatusEnum.RUNNING}),
	JobStatusEnum.RUNNING: frozenset({JobStatusEnum.SUCCESS, JobStatusEnum.FAILED}),
	JobStatusEnum.SUCCESS: frozenset(),
	JobStatusEnum.FAILED: frozenset({JobStatusEnum.PENDING}),
}


class InvalidTransitionError(ValueError):
	"""Raised when a job is moved along an edge the state machine forbids."""


@dataclass(slots=True, frozen=True)
class QueueCounts:
	total: int = 0
	pending: int = 0
	running: int = 0
	success: int = 0
	failed: int = 0


class JobStore:
	"""Keeps job records in arrival order.

	Only the scheduler's event loop mutates the store, so no locking is done
	here. Status changes go through the ``mark_*`` / ``retry`` helpers, which
	enforce the state machine and keep ``result_handle`` / ``error`` consistent
	with the status.
	"""

	def __init__(self) -> None:
		self._jobs: dict[str, VideoJob] = {}

	def __len__(self) -> int:
		return len(self._jobs)

	def append(self, jobs: Iterable[VideoJob]) -> list[VideoJob]:
		added: list[VideoJob] = []
		for job in jobs:
			if job.id in self._jobs:
				raise ValueError(f"Job {job.id} already exists")
			if job.status != JobStatusEnum.PENDING:
				raise ValueError(f"Job {job.id} must be PENDING when enqueued")
			self._jobs[job.id] = job
			added.append(job)
		return added

	def update(self, job_id: str, **fields: Any) -> VideoJob | None:
		"""Merge ``fields`` into the job; unknown ids are ignored."""
		job = self._jobs.get(job_id)
		if job is None:
			return None
		if "id" in fields and fields["id"] != job_id:
			raise ValueError("Job id is immutable")
		for name, value in fields.items():
			setattr(job, name, value)
		return job

	def get(self, job_id: str) -> VideoJob | None:
		return self._jobs.get(job_id)

	def list(self) -> list[VideoJob]:
		return list(self._jobs.values())

	def counts(self) -> QueueCounts:
		jobs = self._jobs.values()
		return QueueCounts(
			total=len(self._jobs),
			pending=sum(1 for job in jobs if job.status == JobStatusEnum.PENDING),
			running=sum(1 for job in jobs if job.status == JobStatusEnum.RUNNING),
			success=sum(1 for job in jobs if job.status == JobStatusEnum.SUCCESS),
			failed=sum(1 for job in jobs if job.status == JobStatusEnum.FAILED),
		)

	def running_count(self) -> int:
		return sum(1 for job in self._jobs.values() if job.status == JobStatusEnum.RUNNING)

	def next_pending(self) -> VideoJob | None:
		for job in self._jobs.values():
			if job.status == JobStatusEnum.PENDING:
				return job
		return None

	def mark_running(self, job_id: str, started_at: datetime) -> VideoJob:
		job = self._transition(job_id, JobStatusEnum.RUNNING)
		job.started_at = started_at
		job.completed_at = None
		job.attempt += 1
		return job

	def mark_succeeded(self, job_id: str, result_handle: str, completed_at: datetime) -> VideoJob:
		if not result_handle:
			raise ValueError("A successful job needs a result handle")
		job = self._transition(job_id, JobStatusEnum.SUCCESS)
		job.result_handle = result_handle
		job.error = None
		job.completed_at = completed_at
		return job

	def mark_failed(self, job_id: str, error: str, completed_at: datetime) -> VideoJob:
		job = self._transition(job_id, JobStatusEnum.FAILED)
		job.error = error or "Unknown generation error"
		job.result_handle = None
		job.completed_at = completed_at
		return job

	def retry(self, job_id: str) -> VideoJob:
		job = self._transition(job_id, JobStatusEnum.PENDING)
		job.history.append(
			JobAttempt(
				attempt=job.attempt,
				started_at=job.started_at,
				completed_at=job.completed_at,
				error=job.error,
			)
		)
		job.error = None
		job.result_handle = None
		job.started_at = None
		job.completed_at = None
		return job

	def clear_finished(self) -> list[VideoJob]:
		removed = [job for job in self._jobs.values() if job.is_finished]
		for job in removed:
			del self._jobs[job.id]
		return removed

	def _transition(self, job_id: str, target: JobStatusEnum) -> VideoJob:
		job = self._jobs.get(job_id)
		if job is None:
			raise LookupError(f"Job {job_id} not found")
		if target not in _ALLOWED_TRANSITIONS[job.status]:
			raise InvalidTransitionError(
				f"Job {job_id} cannot move from {job.status.value} to {target.value}"
			)
		job.status = target
		return job
