"""Selected Gemini API key and its validity state."""

from __future__ import annotations

import structlog

from veobatch.services.errors import CredentialError

_logger = structlog.get_logger("veobatch.credentials")


class CredentialState:
	"""Holds the API key the scheduler submits with.

	The scheduler only admits jobs while a key is selected. A
	``CredentialError`` from the remote service invalidates the key, which
	parks the queue until a new one is selected.
	"""

	def __init__(self, api_key: str = "") -> None:
		self._api_key = api_key.strip() or None

	@property
	def is_selected(self) -> bool:
		return self._api_key is not None

	def select(self, api_key: str) -> None:
		key = api_key.strip()
		if not key:
			raise ValueError("API key must not be empty")
		self._api_key = key
		_logger.info("credential_selected")

	def invalidate(self) -> None:
		if self._api_key is not None:
			_logger.warning("credential_invalidated")
		self._api_key = None

	def require_key(self) -> str:
		if self._api_key is None:
			raise CredentialError("No API key selected")
		return self._api_key
