"""Scheduler control and status routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from veobatch.runtime import QueueRuntime, get_runtime
from veobatch.schemas.queue import QueueStatusResponse

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("", response_model=QueueStatusResponse)
async def queue_status(runtime: QueueRuntime = Depends(get_runtime)) -> QueueStatusResponse:
	return QueueStatusResponse.from_status(runtime.scheduler.status())


@router.post("/start", response_model=QueueStatusResponse)
async def start_queue(runtime: QueueRuntime = Depends(get_runtime)) -> QueueStatusResponse:
	if len(runtime.store) == 0:
		raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No jobs in the queue")
	if not runtime.credentials.is_selected:
		raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No API key selected")
	runtime.scheduler.start()
	return QueueStatusResponse.from_status(runtime.scheduler.status())


@router.post("/pause", response_model=QueueStatusResponse)
async def pause_queue(runtime: QueueRuntime = Depends(get_runtime)) -> QueueStatusResponse:
	runtime.scheduler.pause()
	return QueueStatusResponse.from_status(runtime.scheduler.status())
