"""Process-wide queue components and the FastAPI dependency that exposes them."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from fastapi import Request

from veobatch.config import Settings
from veobatch.services.admission import QueueConfig
from veobatch.services.credentials import CredentialState
from veobatch.services.job_store import JobStore
from veobatch.services.media_store import MediaStore
from veobatch.services.scheduler import SchedulerHandle, VideoGenerator
from veobatch.services.veo_client import VeoClient


@dataclass(slots=True)
class QueueRuntime:
	store: JobStore
	media: MediaStore
	credentials: CredentialState
	scheduler: SchedulerHandle


def build_runtime(
	settings: Settings,
	*,
	generator: VideoGenerator | None = None,
	transport: httpx.AsyncBaseTransport | None = None,
	clock: Callable[[], float] = time.time,
	monotonic: Callable[[], float] = time.monotonic,
	autorun: bool = True,
) -> QueueRuntime:
	store = JobStore()
	media = MediaStore()
	credentials = CredentialState(settings.gemini_api_key)
	if generator is None:
		generator = VeoClient(credentials, media, settings, transport=transport)
	scheduler = SchedulerHandle(
		store,
		generator,
		credentials,
		QueueConfig.from_settings(settings),
		tick_interval=settings.scheduler_tick_seconds,
		clock=clock,
		monotonic=monotonic,
		autorun=autorun,
	)
	return QueueRuntime(store=store, media=media, credentials=credentials, scheduler=scheduler)


def get_runtime(request: Request) -> QueueRuntime:
	runtime = getattr(request.app.state, "runtime", None)
	if runtime is None:
		raise RuntimeError("Queue runtime is not initialized")
	return runtime
