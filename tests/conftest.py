"""Shared pytest fixtures: fake clock, fake Veo generator, async API client."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from veobatch.config import Settings
from veobatch.main import app
from veobatch.models.enums import JobStatusEnum
from veobatch.models.jobs import VideoJob
from veobatch.runtime import QueueRuntime, build_runtime
from veobatch.services.admission import QueueConfig
from veobatch.services.credentials import CredentialState
from veobatch.services.job_store import JobStore
from veobatch.services.scheduler import SchedulerHandle


class FakeClock:
	def __init__(self, now: float = 1_700_000_000.0) -> None:
		self.now = now

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> float:
		self.now += seconds
		return self.now


class FakeGenerator:
	"""Stands in for VeoClient; each submit waits until the test resolves it."""

	def __init__(self, *, auto_result: str | None = None) -> None:
		self.auto_result = auto_result
		self.calls: list[str] = []
		self._pending: dict[str, asyncio.Future[str]] = {}

	async def submit(self, job: VideoJob) -> str:
		self.calls.append(job.id)
		if self.auto_result is not None:
			return f"{self.auto_result}{job.id[:8]}"
		future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
		self._pending[job.id] = future
		return await future

	@property
	def waiting(self) -> list[str]:
		return list(self._pending)

	def succeed(self, job_id: str, handle: str = "media/done") -> None:
		self._pending.pop(job_id).set_result(handle)

	def fail(self, job_id: str, exc: BaseException) -> None:
		self._pending.pop(job_id).set_exception(exc)


async def settle() -> None:
	"""Let started job tasks run up to their next suspension point."""
	for _ in range(5):
		await asyncio.sleep(0)


def assert_job_invariants(job: VideoJob) -> None:
	assert (job.result_handle is not None) == (job.status == JobStatusEnum.SUCCESS)
	assert (job.error is not None) == (job.status == JobStatusEnum.FAILED)
	if job.status == JobStatusEnum.PENDING:
		assert job.started_at is None
	if job.status == JobStatusEnum.RUNNING:
		assert job.started_at is not None
		assert job.completed_at is None
	if job.is_finished:
		assert job.completed_at is not None


@pytest.fixture
def settings() -> Settings:
	return Settings(
		_env_file=None,
		gemini_api_key="test-key",
		gemini_base_url="https://veo.test/v1beta",
		poll_interval_seconds=10.0,
		operation_max_polls=5,
	)


@pytest.fixture
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def generator() -> FakeGenerator:
	return FakeGenerator()


@pytest.fixture
def store() -> JobStore:
	return JobStore()


@pytest.fixture
def credentials() -> CredentialState:
	return CredentialState("test-key")


@pytest.fixture
def scheduler(
	store: JobStore,
	generator: FakeGenerator,
	credentials: CredentialState,
	clock: FakeClock,
) -> SchedulerHandle:
	"""Scheduler driven by explicit ``tick`` calls (no background loop)."""
	return SchedulerHandle(
		store,
		generator,
		credentials,
		QueueConfig(max_concurrent=4, max_per_minute=4),
		clock=clock,
		monotonic=clock,
		autorun=False,
	)


@pytest.fixture
def runtime(settings: Settings, generator: FakeGenerator, clock: FakeClock) -> QueueRuntime:
	return build_runtime(settings, generator=generator, clock=clock, monotonic=clock, autorun=False)


@pytest.fixture
async def client(runtime: QueueRuntime) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled and a prebuilt queue runtime."""
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan
	app.state.runtime = runtime

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	await runtime.scheduler.shutdown()
	app.state.runtime = None
	app.router.lifespan_context = original_lifespan
