"""Structured logging for the queue API and its background jobs.

Request handlers get an ``x-request-id`` in their log context; job tasks get
the job's id, attempt and model instead. The Gemini key travels as a header
and as a ``key=`` query parameter on download URIs, so every event passes
through ``redact_secrets`` before it is rendered.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import MutableMapping
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from veobatch.config import LogFormat, Settings, get_settings
from veobatch.models.jobs import VideoJob

REDACTED = "***"

_SECRET_FIELDS = frozenset({"api_key", "key", "x-goog-api-key", "authorization"})
_KEY_PARAM = re.compile(r"([?&]key=)[^&\s\"']+")

# Dashboards poll these every couple of seconds.
_POLLED_PATHS = frozenset(
	{"/health", "/health/ready", "/api/v1/queue", "/api/v1/jobs", "/api/v1/jobs/stats", "/api/v1/credentials"}
)

_configured = False


def redact_secrets(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
	for name, value in event_dict.items():
		if name.lower() in _SECRET_FIELDS and value:
			event_dict[name] = REDACTED
		elif isinstance(value, str) and "key=" in value:
			event_dict[name] = _KEY_PARAM.sub(rf"\g<1>{REDACTED}", value)
	return event_dict


def bind_job_context(job: VideoJob) -> None:
	"""Replace the inherited log context with the job's identity.

	Call from inside the job's own task: asyncio gives each task a copy of the
	context it was created in, which may carry an unrelated request id.
	"""
	structlog.contextvars.clear_contextvars()
	structlog.contextvars.bind_contextvars(job_id=job.id, attempt=job.attempt, model=str(job.model))


def is_polling_request(method: str, path: str) -> bool:
	"""Status reads that a dashboard repeats; logged at debug level."""
	return method == "GET" and path.rstrip("/") in _POLLED_PATHS


def configure_structured_logging(settings: Settings | None = None) -> None:
	"""Configure stdlib + structlog once per process."""
	global _configured
	if _configured:
		return

	settings = settings or get_settings()
	log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

	if settings.log_format == LogFormat.json:
		renderer: Any = structlog.processors.JSONRenderer()
		logging.basicConfig(level=log_level, format="%(message)s")
	else:
		renderer = structlog.dev.ConsoleRenderer()
		logging.basicConfig(level=log_level)

	# httpx logs each request URL at INFO, including the keyed download URI.
	logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

	structlog.configure(
		processors=[
			structlog.contextvars.merge_contextvars,
			structlog.processors.add_log_level,
			structlog.processors.TimeStamper(fmt="iso", utc=True),
			redact_secrets,
			structlog.processors.format_exc_info,
			renderer,
		],
		wrapper_class=structlog.make_filtering_bound_logger(log_level),
		logger_factory=structlog.PrintLoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


def _elapsed_ms(start: float) -> float:
	return round((time.perf_counter() - start) * 1000.0, 2)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Bind an ``x-request-id`` to the log context and echo it on the response."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
		request.state.request_id = request_id

		structlog.contextvars.clear_contextvars()
		structlog.contextvars.bind_contextvars(request_id=request_id)

		logger = structlog.get_logger("veobatch.request")
		method, path = request.method, request.url.path
		start = time.perf_counter()

		try:
			response = await call_next(request)
		except Exception as exc:
			logger.exception("http_request_failed", method=method, path=path, duration_ms=_elapsed_ms(start), error=str(exc))
			raise

		response.headers["x-request-id"] = request_id
		if response.status_code >= 500:
			log = logger.warning
		elif is_polling_request(method, path):
			log = logger.debug
		else:
			log = logger.info
		log("http_request", method=method, path=path, status_code=response.status_code, duration_ms=_elapsed_ms(start))
		return response
