"""Admission control: concurrency cap plus a sliding-window start counter."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from veobatch.config import Settings


@dataclass(slots=True, frozen=True)
class QueueConfig:
	max_concurrent: int = 4
	max_per_minute: int = 4
	window_seconds: float = 60.0

	def __post_init__(self) -> None:
		if self.max_concurrent < 1:
			raise ValueError("max_concurrent must be at least 1")
		if self.max_per_minute < 1:
			raise ValueError("max_per_minute must be at least 1")
		if self.window_seconds <= 0:
			raise ValueError("window_seconds must be positive")

	@classmethod
	def from_settings(cls, settings: Settings) -> QueueConfig:
		return cls(
			max_concurrent=settings.queue_max_concurrent,
			max_per_minute=settings.queue_max_per_minute,
			window_seconds=settings.queue_window_seconds,
		)


class AdmissionController:
	"""Counts actual job starts in the trailing window.

	This is not a token bucket: at most ``max_per_minute`` starts fit in any
	``window_seconds`` span, regardless of calendar minute boundaries.
	"""

	def __init__(self, config: QueueConfig) -> None:
		self.config = config
		self._starts: deque[float] = deque()

	def may_start(self, now: float, running: int) -> bool:
		if running >= self.config.max_concurrent:
			return False
		self._trim(now)
		return len(self._starts) < self.config.max_per_minute

	def record_start(self, now: float) -> None:
		self._starts.append(now)

	def window_count(self, now: float) -> int:
		self._trim(now)
		return len(self._starts)

	def next_slot_at(self, now: float) -> float | None:
		"""Earliest time the rate window frees a slot, or None if one is free."""
		self._trim(now)
		if len(self._starts) < self.config.max_per_minute:
			return None
		return self._starts[0] + self.config.window_seconds

	def _trim(self, now: float) -> None:
		cutoff = now - self.config.window_seconds
		while self._starts and self._starts[0] <= cutoff:
			self._starts.popleft()
