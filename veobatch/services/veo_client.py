"""Gemini Veo integration — request payload, long-running operation polling, video download."""

from __future__ import annotations

import asyncio
import base64
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from veobatch.config import Settings, get_settings
from veobatch.models.enums import InputTypeEnum
from veobatch.models.jobs import ImagePayload, VideoJob
from veobatch.services.credentials import CredentialState
from veobatch.services.errors import (
	CredentialError,
	NoResultError,
	OperationTimeoutError,
	RemoteOperationError,
	TransientRemoteError,
	is_credential_failure,
)
from veobatch.services.media_store import MediaStore

_logger = structlog.get_logger("veobatch.veo_client")

SleepFn = Callable[[float], Awaitable[Any]]


def _encode_image(image: ImagePayload) -> dict[str, str]:
	return {
		"bytesBase64Encoded": base64.b64encode(image.data).decode("ascii"),
		"mimeType": image.mime_type,
	}


def _error_message(response: httpx.Response) -> str:
	try:
		payload = response.json()
	except ValueError:
		payload = None
	if isinstance(payload, dict):
		error = payload.get("error")
		if isinstance(error, dict) and error.get("message"):
			return str(error["message"])
	text = response.text.strip()
	return text or response.reason_phrase or f"HTTP {response.status_code}"


def _raise_for_status(response: httpx.Response, action: str) -> None:
	if response.is_success:
		return
	message = _error_message(response)
	if is_credential_failure(message):
		raise CredentialError(message)
	raise TransientRemoteError(f"{action} failed ({response.status_code}): {message}")


def _json_body(response: httpx.Response, action: str) -> dict[str, Any]:
	try:
		payload = response.json()
	except ValueError as exc:
		raise TransientRemoteError(f"{action} returned invalid JSON") from exc
	if not isinstance(payload, dict):
		raise TransientRemoteError(f"{action} returned an unexpected payload")
	return payload


class VeoClient:
	def __init__(
		self,
		credentials: CredentialState,
		media_store: MediaStore,
		settings: Settings | None = None,
		*,
		transport: httpx.AsyncBaseTransport | None = None,
		sleep: SleepFn = asyncio.sleep,
	):
		self.credentials = credentials
		self.media_store = media_store
		self.settings = settings or get_settings()
		self._transport = transport
		self._sleep = sleep

	async def submit(self, job: VideoJob) -> str:
		"""Generate the job's video and return a local media handle."""
		api_key = self.credentials.require_key()
		start = time.perf_counter()
		try:
			async with self._client(api_key) as client:
				operation = await self.start_operation(client, job)
				operation = await self.wait_for_operation(client, operation, job_id=job.id)
				uri = self.extract_video_uri(operation)
				if not uri:
					raise NoResultError("No video URI returned from the operation.")
				data, content_type = await self.download(client, uri, api_key)
		except RemoteOperationError as exc:
			self._log_call(job.id, start, ok=False, error=str(exc))
			raise
		except httpx.HTTPError as exc:
			message = str(exc) or type(exc).__name__
			self._log_call(job.id, start, ok=False, error=message)
			if is_credential_failure(message):
				raise CredentialError(message) from exc
			raise TransientRemoteError(f"Gemini request failed: {message}") from exc

		handle = self.media_store.put(data, content_type)
		self._log_call(job.id, start, ok=True)
		return handle

	@staticmethod
	def build_request(job: VideoJob) -> dict[str, Any]:
		instance: dict[str, Any] = {"prompt": job.prompt}
		if job.input_type == InputTypeEnum.IMAGE_TO_VIDEO and job.start_image is not None:
			instance["image"] = _encode_image(job.start_image)
		if (
			job.input_type == InputTypeEnum.FRAMES_TO_VIDEO
			and job.start_image is not None
			and job.end_image is not None
		):
			instance["image"] = _encode_image(job.start_image)
			instance["lastFrame"] = _encode_image(job.end_image)

		return {
			"instances": [instance],
			"parameters": {
				"aspectRatio": job.aspect_ratio.value,
				"resolution": job.resolution.value,
				"sampleCount": 1,
			},
		}

	async def start_operation(self, client: httpx.AsyncClient, job: VideoJob) -> dict[str, Any]:
		response = await client.post(
			f"/models/{job.model.value}:predictLongRunning",
			json=self.build_request(job),
		)
		_raise_for_status(response, "Video generation request")
		operation = _json_body(response, "Video generation request")
		if not operation.get("name"):
			raise TransientRemoteError("Video generation request returned no operation handle")
		_logger.info("operation_started", job_id=job.id, operation=operation["name"])
		return operation

	async def wait_for_operation(
		self,
		client: httpx.AsyncClient,
		operation: dict[str, Any],
		*,
		job_id: str | None = None,
	) -> dict[str, Any]:
		name = str(operation["name"])
		max_polls = self.settings.operation_max_polls
		polls = 0
		while not operation.get("done"):
			if max_polls and polls >= max_polls:
				raise OperationTimeoutError(
					f"Operation {name} still running after {polls} polls"
				)
			await self._sleep(self.settings.poll_interval_seconds)
			response = await client.get(f"/{name}")
			_raise_for_status(response, "Operation poll")
			operation = _json_body(response, "Operation poll")
			polls += 1
			_logger.debug("operation_polled", job_id=job_id, operation=name, poll=polls, done=bool(operation.get("done")))

		error = operation.get("error")
		if isinstance(error, dict) and error:
			message = str(error.get("message") or "Video generation failed")
			if is_credential_failure(message):
				raise CredentialError(message)
			raise TransientRemoteError(message)
		return operation

	@staticmethod
	def extract_video_uri(operation: dict[str, Any]) -> str | None:
		response = operation.get("response")
		if not isinstance(response, dict):
			return None
		nested = response.get("generateVideoResponse")
		samples = nested.get("generatedSamples") if isinstance(nested, dict) else None
		if not samples:
			samples = response.get("generatedVideos")
		if not isinstance(samples, list) or not samples or not isinstance(samples[0], dict):
			return None
		video = samples[0].get("video")
		if not isinstance(video, dict) or not video.get("uri"):
			return None
		return str(video["uri"])

	async def download(self, client: httpx.AsyncClient, uri: str, api_key: str) -> tuple[bytes, str]:
		response = await client.get(uri, params={"key": api_key})
		if not response.is_success:
			message = _error_message(response)
			if is_credential_failure(message):
				raise CredentialError(message)
			raise TransientRemoteError(f"Failed to download video: {response.reason_phrase or message}")
		content_type = response.headers.get("content-type", "video/mp4").split(";")[0].strip()
		return response.content, content_type or "video/mp4"

	def _client(self, api_key: str) -> httpx.AsyncClient:
		return httpx.AsyncClient(
			base_url=self.settings.gemini_base_url,
			headers={"x-goog-api-key": api_key},
			timeout=self.settings.gemini_timeout_seconds,
			follow_redirects=True,
			transport=self._transport,
		)

	@staticmethod
	def _log_call(job_id: str, start: float, *, ok: bool, error: str | None = None) -> None:
		duration_ms = round((time.perf_counter() - start) * 1000.0, 2)
		if ok:
			_logger.info("veo_generation", job_id=job_id, duration_ms=duration_ms, ok=True)
		else:
			_logger.error("veo_generation_failed", job_id=job_id, duration_ms=duration_ms, ok=False, error=error)
