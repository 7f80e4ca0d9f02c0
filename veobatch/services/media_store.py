"""In-memory storage for downloaded videos, addressed by opaque handles."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

HANDLE_PREFIX = "media/"


@dataclass(slots=True, frozen=True)
class StoredMedia:
	data: bytes
	content_type: str

	@property
	def size(self) -> int:
		return len(self.data)


class MediaStore:
	def __init__(self) -> None:
		self._items: dict[str, StoredMedia] = {}

	def __len__(self) -> int:
		return len(self._items)

	def put(self, data: bytes, content_type: str = "video/mp4") -> str:
		handle = f"{HANDLE_PREFIX}{uuid.uuid4().hex}"
		self._items[handle] = StoredMedia(data=data, content_type=content_type)
		return handle

	def get(self, handle: str) -> StoredMedia | None:
		return self._items.get(handle)

	def release(self, handle: str | None) -> bool:
		if handle is None:
			return False
		return self._items.pop(handle, None) is not None
