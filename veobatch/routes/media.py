"""Raw access to generated videos by result handle."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from veobatch.runtime import QueueRuntime, get_runtime
from veobatch.services.media_store import HANDLE_PREFIX

router = APIRouter(prefix="/media", tags=["media"])


@router.get("/{media_id}")
async def get_media(media_id: str, runtime: QueueRuntime = Depends(get_runtime)) -> Response:
	media = runtime.media.get(f"{HANDLE_PREFIX}{media_id}")
	if media is None:
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="media not found")
	return Response(content=media.data, media_type=media.content_type)
