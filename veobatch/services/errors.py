"""Failure taxonomy for remote video generation operations."""

from __future__ import annotations

CREDENTIAL_ERROR_MARKERS = (
	"requested entity was not found",
	"api key expired",
	"api key not found",
	"api_key_invalid",
)


class RemoteOperationError(RuntimeError):
	"""Base class for failures surfaced by the remote generation client."""


class TransientRemoteError(RemoteOperationError):
	"""Network or service error; the job may be retried by the caller."""


class CredentialError(RemoteOperationError):
	"""The selected API key was rejected as missing or expired.

	Besides failing the job, this invalidates the stored credential so no
	further jobs are admitted until a key is selected again.
	"""


class NoResultError(RemoteOperationError):
	"""The operation finished without an addressable video."""


class OperationTimeoutError(RemoteOperationError):
	"""The operation did not finish within the configured poll budget."""


def is_credential_failure(message: str) -> bool:
	normalized = message.lower()
	return any(marker in normalized for marker in CREDENTIAL_ERROR_MARKERS)
