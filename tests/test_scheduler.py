from __future__ import annotations

import asyncio
import random

import pytest

from conftest import FakeClock, FakeGenerator, assert_job_invariants, settle
from veobatch.models.enums import JobStatusEnum
from veobatch.models.jobs import VideoJob
from veobatch.services.admission import QueueConfig
from veobatch.services.credentials import CredentialState
from veobatch.services.errors import CredentialError, NoResultError, TransientRemoteError
from veobatch.services.job_store import JobStore
from veobatch.services.scheduler import SchedulerHandle


def _enqueue(store: JobStore, count: int) -> list[VideoJob]:
	return store.append(VideoJob(prompt=f"shot {index}") for index in range(count))


def _statuses(store: JobStore) -> list[JobStatusEnum]:
	return [job.status for job in store.list()]


@pytest.mark.asyncio
async def test_one_admission_per_tick_in_fifo_order(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	jobs = _enqueue(store, 5)
	scheduler.start()

	started = [scheduler.tick(clock.now + 2.0 * step) for step in range(4)]
	await settle()

	assert [job.id for job in started if job] == [job.id for job in jobs[:4]]
	assert store.counts().running == 4
	assert store.counts().pending == 1
	assert generator.waiting == [job.id for job in jobs[:4]]

	assert scheduler.tick(clock.now + 8.0) is None
	assert store.counts().running == 4


@pytest.mark.asyncio
async def test_fifth_job_waits_for_free_slot_and_rate_window(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	jobs = _enqueue(store, 5)
	t0 = clock.now
	scheduler.start()
	for step in range(4):
		scheduler.tick(t0 + 2.0 * step)
	await settle()

	clock.now = t0 + 10.0
	generator.succeed(jobs[0].id)
	await settle()
	assert jobs[0].status == JobStatusEnum.SUCCESS

	# A slot is free but four starts still sit in the trailing window.
	assert scheduler.tick(t0 + 10.0) is None
	assert scheduler.tick(t0 + 59.9) is None
	assert jobs[4].status == JobStatusEnum.PENDING

	assert scheduler.tick(t0 + 60.0) is jobs[4]
	assert jobs[4].status == JobStatusEnum.RUNNING


@pytest.mark.asyncio
async def test_fifth_job_admitted_when_slot_frees_under_loose_rate(
	store: JobStore, generator: FakeGenerator, credentials: CredentialState, clock: FakeClock
) -> None:
	scheduler = SchedulerHandle(
		store,
		generator,
		credentials,
		QueueConfig(max_concurrent=4, max_per_minute=10),
		clock=clock,
		autorun=False,
	)
	jobs = _enqueue(store, 5)
	scheduler.start()
	for step in range(5):
		scheduler.tick(clock.now + step)
	await settle()
	assert jobs[4].status == JobStatusEnum.PENDING

	generator.succeed(jobs[2].id)
	await settle()

	assert scheduler.tick(clock.now + 6.0) is jobs[4]


@pytest.mark.asyncio
async def test_limits_hold_across_random_completions(
	store: JobStore, credentials: CredentialState, clock: FakeClock
) -> None:
	generator = FakeGenerator()
	config = QueueConfig(max_concurrent=3, max_per_minute=5)
	scheduler = SchedulerHandle(
		store, generator, credentials, config, clock=clock, monotonic=clock, autorun=False
	)
	jobs = _enqueue(store, 25)
	rng = random.Random(7)
	scheduler.start()

	for step in range(400):
		clock.now += 2.0
		scheduler.tick()
		await settle()
		assert store.counts().running <= config.max_concurrent
		for job_id in generator.waiting:
			roll = rng.random()
			if roll < 0.2:
				generator.succeed(job_id, handle=f"media/{job_id}")
			elif roll < 0.3:
				generator.fail(job_id, TransientRemoteError("service unavailable"))
		await settle()
		for job in store.list():
			assert_job_invariants(job)
		if not scheduler.enabled:
			break

	assert all(job.is_finished for job in jobs)
	assert not scheduler.enabled

	starts = sorted(job.started_at.timestamp() for job in jobs if job.started_at is not None)
	for first in starts:
		in_window = [ts for ts in starts if first <= ts < first + config.window_seconds]
		assert len(in_window) <= config.max_per_minute


@pytest.mark.asyncio
async def test_drained_queue_auto_pauses_within_one_tick(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	jobs = _enqueue(store, 4)
	scheduler.start()
	for step in range(4):
		scheduler.tick(clock.now + step)
	await settle()
	for job in jobs:
		generator.succeed(job.id)
	await settle()

	# The rate window is still full; draining must not depend on it.
	assert scheduler.enabled
	scheduler.tick(clock.now + 5.0)
	assert not scheduler.enabled


@pytest.mark.asyncio
async def test_empty_pending_with_running_jobs_keeps_waiting(
	scheduler: SchedulerHandle, store: JobStore, clock: FakeClock
) -> None:
	_enqueue(store, 1)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	scheduler.tick(clock.now + 2.0)
	assert scheduler.enabled


@pytest.mark.asyncio
async def test_credential_error_fails_job_and_invalidates_key(
	scheduler: SchedulerHandle,
	store: JobStore,
	generator: FakeGenerator,
	credentials: CredentialState,
	clock: FakeClock,
) -> None:
	jobs = _enqueue(store, 2)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	generator.fail(jobs[0].id, CredentialError("Requested entity was not found."))
	await settle()

	assert jobs[0].status == JobStatusEnum.FAILED
	assert jobs[0].error == "Requested entity was not found."
	assert credentials.is_selected is False

	# No admissions until a key is selected again.
	assert scheduler.tick(clock.now + 2.0) is None
	assert jobs[1].status == JobStatusEnum.PENDING

	credentials.select("fresh-key")
	assert scheduler.tick(clock.now + 4.0) is jobs[1]


@pytest.mark.asyncio
async def test_credential_failure_on_last_job_still_auto_pauses(
	scheduler: SchedulerHandle,
	store: JobStore,
	generator: FakeGenerator,
	credentials: CredentialState,
	clock: FakeClock,
) -> None:
	jobs = _enqueue(store, 1)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	generator.fail(jobs[0].id, CredentialError("Requested entity was not found."))
	await settle()
	assert credentials.is_selected is False
	assert scheduler.enabled

	scheduler.tick(clock.now + 2.0)
	assert not scheduler.enabled
	assert (store.counts().pending, store.counts().running) == (0, 0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
	("exc", "message"),
	[
		(TransientRemoteError("Operation poll failed (503): unavailable"), "Operation poll failed (503): unavailable"),
		(NoResultError("No video URI returned from the operation."), "No video URI returned from the operation."),
		(RuntimeError("boom"), "boom"),
		(RuntimeError(), "Unknown generation error"),
	],
)
async def test_failures_are_recorded_without_stopping_the_queue(
	scheduler: SchedulerHandle,
	store: JobStore,
	generator: FakeGenerator,
	credentials: CredentialState,
	clock: FakeClock,
	exc: Exception,
	message: str,
) -> None:
	jobs = _enqueue(store, 2)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	generator.fail(jobs[0].id, exc)
	await settle()

	assert jobs[0].status == JobStatusEnum.FAILED
	assert jobs[0].error == message
	assert jobs[0].completed_at is not None
	assert credentials.is_selected is True
	assert scheduler.tick(clock.now + 2.0) is jobs[1]


@pytest.mark.asyncio
async def test_success_attaches_handle_and_completion_time(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	jobs = _enqueue(store, 1)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	clock.advance(95.0)
	generator.succeed(jobs[0].id, handle="media/abc")
	await settle()

	assert jobs[0].status == JobStatusEnum.SUCCESS
	assert jobs[0].result_handle == "media/abc"
	assert (jobs[0].completed_at - jobs[0].started_at).total_seconds() == pytest.approx(95.0)
	assert scheduler.in_flight == 0


@pytest.mark.asyncio
async def test_empty_result_handle_fails_job_and_frees_slot(
	store: JobStore, credentials: CredentialState, clock: FakeClock
) -> None:
	generator = FakeGenerator()
	scheduler = SchedulerHandle(
		store,
		generator,
		credentials,
		QueueConfig(max_concurrent=1, max_per_minute=10),
		clock=clock,
		monotonic=clock,
		autorun=False,
	)
	jobs = _enqueue(store, 2)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	generator.succeed(jobs[0].id, handle="")
	await settle()

	assert jobs[0].status == JobStatusEnum.FAILED
	assert jobs[0].error == "Generation finished without a video handle"
	assert jobs[0].result_handle is None
	assert_job_invariants(jobs[0])
	assert scheduler.in_flight == 0
	assert scheduler.tick(clock.now + 2.0) is jobs[1]


@pytest.mark.asyncio
async def test_rate_window_follows_monotonic_clock_not_wall_clock(
	store: JobStore, generator: FakeGenerator, credentials: CredentialState
) -> None:
	wall = FakeClock(1_700_000_000.0)
	steady = FakeClock(500.0)
	scheduler = SchedulerHandle(
		store,
		generator,
		credentials,
		QueueConfig(max_concurrent=4, max_per_minute=1),
		clock=wall,
		monotonic=steady,
		autorun=False,
	)
	jobs = _enqueue(store, 2)
	scheduler.start()
	assert scheduler.tick() is jobs[0]
	await settle()
	generator.succeed(jobs[0].id)
	await settle()

	# A wall clock step forward must not reopen the window.
	wall.advance(3600.0)
	steady.advance(10.0)
	assert scheduler.tick() is None
	assert scheduler.status().next_slot_in == pytest.approx(50.0)

	steady.advance(50.0)
	assert scheduler.tick() is jobs[1]
	assert jobs[1].started_at is not None
	assert jobs[1].started_at.timestamp() == pytest.approx(wall.now)


@pytest.mark.asyncio
async def test_retry_on_disabled_queue_requeues_and_reenables(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	jobs = _enqueue(store, 1)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()
	generator.fail(jobs[0].id, TransientRemoteError("timeout"))
	await settle()
	scheduler.tick(clock.now + 2.0)
	assert not scheduler.enabled

	scheduler.retry(jobs[0].id)

	assert jobs[0].status == JobStatusEnum.PENDING
	assert jobs[0].error is None
	assert scheduler.enabled
	assert scheduler.tick(clock.now + 4.0) is jobs[0]
	assert jobs[0].attempt == 2


@pytest.mark.asyncio
async def test_pause_stops_admissions_but_not_running_jobs(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	jobs = _enqueue(store, 2)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()

	scheduler.pause()
	assert scheduler.tick(clock.now + 2.0) is None
	assert jobs[1].status == JobStatusEnum.PENDING

	generator.succeed(jobs[0].id)
	await settle()
	assert jobs[0].status == JobStatusEnum.SUCCESS


@pytest.mark.asyncio
async def test_tick_without_credential_does_nothing(
	scheduler: SchedulerHandle, store: JobStore, credentials: CredentialState, clock: FakeClock
) -> None:
	_enqueue(store, 1)
	credentials.invalidate()
	scheduler.start()

	assert scheduler.tick(clock.now) is None
	assert store.counts().pending == 1
	assert scheduler.enabled


@pytest.mark.asyncio
async def test_status_reports_window_and_counts(
	scheduler: SchedulerHandle, store: JobStore, clock: FakeClock
) -> None:
	_enqueue(store, 3)
	scheduler.start()
	scheduler.tick(clock.now)
	scheduler.tick(clock.now + 2.0)
	await settle()

	status = scheduler.status(clock.now + 3.0)
	assert status.enabled is True
	assert status.window_count == 2
	assert status.next_slot_in is None
	assert status.in_flight == 2
	assert (status.counts.running, status.counts.pending) == (2, 1)


@pytest.mark.asyncio
async def test_background_loop_drains_queue(store: JobStore, credentials: CredentialState) -> None:
	generator = FakeGenerator(auto_result="media/")
	scheduler = SchedulerHandle(
		store,
		generator,
		credentials,
		QueueConfig(max_concurrent=2, max_per_minute=10),
		tick_interval=0.01,
	)
	jobs = _enqueue(store, 3)
	scheduler.start()

	async def _drained() -> None:
		while scheduler.enabled:
			await asyncio.sleep(0.01)

	await asyncio.wait_for(_drained(), timeout=5.0)
	await scheduler.wait_idle()

	assert [job.status for job in jobs] == [JobStatusEnum.SUCCESS] * 3
	assert generator.calls == [job.id for job in jobs]
	await scheduler.shutdown()


@pytest.mark.asyncio
async def test_shutdown_cancels_in_flight_jobs(
	scheduler: SchedulerHandle, store: JobStore, generator: FakeGenerator, clock: FakeClock
) -> None:
	_enqueue(store, 1)
	scheduler.start()
	scheduler.tick(clock.now)
	await settle()
	assert scheduler.in_flight == 1

	await scheduler.shutdown()

	assert not scheduler.enabled
	assert scheduler.in_flight == 0
