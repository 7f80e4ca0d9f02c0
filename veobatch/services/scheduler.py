"""Admits pending jobs on a fixed tick and records how each one ends."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

import structlog

from veobatch.middleware.logging import bind_job_context
from veobatch.models.jobs import VideoJob
from veobatch.services.admission import AdmissionController, QueueConfig
from veobatch.services.credentials import CredentialState
from veobatch.services.errors import CredentialError, NoResultError, RemoteOperationError
from veobatch.services.job_store import JobStore, QueueCounts

_logger = structlog.get_logger("veobatch.scheduler")


class VideoGenerator(Protocol):
	async def submit(self, job: VideoJob) -> str: ...


@dataclass(slots=True, frozen=True)
class SchedulerStatus:
	enabled: bool
	credential_selected: bool
	counts: QueueCounts
	window_count: int
	next_slot_in: float | None
	in_flight: int
	config: QueueConfig


class SchedulerHandle:
	"""Owns the enabled flag, the rate window and the tick loop.

	``tick`` is synchronous and performs at most one admission; started jobs
	run as asyncio tasks on the same loop, so every job store write happens on
	a single thread of control. Pausing only stops new admissions.
	"""

	def __init__(
		self,
		store: JobStore,
		generator: VideoGenerator,
		credentials: CredentialState,
		config: QueueConfig,
		*,
		tick_interval: float = 2.0,
		clock: Callable[[], float] = time.time,
		monotonic: Callable[[], float] = time.monotonic,
		autorun: bool = True,
	):
		self.store = store
		self.generator = generator
		self.credentials = credentials
		self.admission = AdmissionController(config)
		self.tick_interval = tick_interval
		self._clock = clock
		self._monotonic = monotonic
		self._autorun = autorun
		self._enabled = False
		self._loop_task: asyncio.Task[None] | None = None
		self._in_flight: set[asyncio.Task[None]] = set()

	@property
	def enabled(self) -> bool:
		return self._enabled

	@property
	def in_flight(self) -> int:
		return len(self._in_flight)

	def start(self) -> None:
		if not self._enabled:
			self._enabled = True
			_logger.info("scheduler_started")
		if self._autorun and (self._loop_task is None or self._loop_task.done()):
			self._loop_task = asyncio.create_task(self._run_loop())

	def pause(self) -> None:
		if self._enabled:
			_logger.info("scheduler_paused", running=self.store.running_count())
		self._enabled = False

	def retry(self, job_id: str) -> VideoJob:
		job = self.store.retry(job_id)
		_logger.info("job_retried", job_id=job_id, attempts=len(job.history))
		self.start()
		return job

	def tick(self, now: float | None = None) -> VideoJob | None:
		"""Run one scheduling step; returns the job started, if any.

		``now`` is a monotonic reading used for the rate window. Job timestamps
		always come from the wall clock.
		"""
		if not self._enabled:
			return None

		now = self._monotonic() if now is None else now
		running = self.store.running_count()
		job = self.store.next_pending()
		if job is None:
			if running == 0:
				self._enabled = False
				_logger.info("scheduler_auto_paused")
			return None

		# Draining still runs without a key; admissions do not.
		if not self.credentials.is_selected:
			return None
		if not self.admission.may_start(now, running):
			return None

		self.admission.record_start(now)
		self.store.mark_running(job.id, started_at=self._wall_time())
		_logger.info("job_admitted", job_id=job.id, attempt=job.attempt, running=running + 1)

		task = asyncio.create_task(self._execute(job))
		self._in_flight.add(task)
		task.add_done_callback(self._in_flight.discard)
		return job

	def status(self, now: float | None = None) -> SchedulerStatus:
		now = self._monotonic() if now is None else now
		next_slot = self.admission.next_slot_at(now)
		return SchedulerStatus(
			enabled=self._enabled,
			credential_selected=self.credentials.is_selected,
			counts=self.store.counts(),
			window_count=self.admission.window_count(now),
			next_slot_in=None if next_slot is None else next_slot - now,
			in_flight=len(self._in_flight),
			config=self.admission.config,
		)

	async def wait_idle(self) -> None:
		"""Wait for every job started so far to settle."""
		while self._in_flight:
			await asyncio.gather(*list(self._in_flight), return_exceptions=True)

	async def shutdown(self) -> None:
		self._enabled = False
		tasks = list(self._in_flight)
		if self._loop_task is not None:
			tasks.append(self._loop_task)
		for task in tasks:
			task.cancel()
		await asyncio.gather(*tasks, return_exceptions=True)
		self._loop_task = None

	async def _run_loop(self) -> None:
		while self._enabled:
			await asyncio.sleep(self.tick_interval)
			try:
				self.tick()
			except Exception:
				_logger.exception("scheduler_tick_failed")

	async def _execute(self, job: VideoJob) -> None:
		bind_job_context(job)
		try:
			handle = await self.generator.submit(job)
			if not handle:
				raise NoResultError("Generation finished without a video handle")
			self.store.mark_succeeded(job.id, handle, completed_at=self._wall_time())
		except RemoteOperationError as exc:
			self._fail(job, str(exc))
			if isinstance(exc, CredentialError):
				self.credentials.invalidate()
			return
		except Exception as exc:
			_logger.exception("job_crashed", job_id=job.id)
			self._fail(job, str(exc))
			return

		_logger.info("job_succeeded", job_id=job.id, result_handle=handle)

	def _fail(self, job: VideoJob, message: str) -> None:
		self.store.mark_failed(
			job.id,
			message or "Unknown generation error",
			completed_at=self._wall_time(),
		)
		_logger.warning("job_failed", job_id=job.id, error=message)

	def _wall_time(self) -> datetime:
		return datetime.fromtimestamp(self._clock(), UTC)
