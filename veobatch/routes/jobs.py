"""Job submission, live feed, retry, clearing and download routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status

from veobatch.models.enums import JobStatusEnum
from veobatch.runtime import QueueRuntime, get_runtime
from veobatch.schemas.jobs import (
	ClearFinishedResponse,
	DownloadLink,
	JobCreateRequest,
	JobResponse,
	JobStatsResponse,
)
from veobatch.services.job_store import InvalidTransitionError

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, InvalidTransitionError):
		return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="job failure")


def download_filename(job_id: str, *, bulk: bool = False) -> str:
	"""Single downloads are named veo-video-*, download-all entries veo-batch-*."""
	prefix = "veo-batch" if bulk else "veo-video"
	return f"{prefix}-{job_id[:8]}.mp4"


@router.post("", response_model=list[JobResponse], status_code=status.HTTP_201_CREATED)
async def create_jobs(
	payload: JobCreateRequest,
	runtime: QueueRuntime = Depends(get_runtime),
) -> list[JobResponse]:
	try:
		jobs = runtime.store.append(payload.to_jobs())
	except Exception as exc:
		raise _map_error(exc) from exc
	return [JobResponse.from_job(job) for job in jobs]


@router.get("", response_model=list[JobResponse])
async def list_jobs(runtime: QueueRuntime = Depends(get_runtime)) -> list[JobResponse]:
	jobs = sorted(runtime.store.list(), key=lambda job: job.created_at, reverse=True)
	return [JobResponse.from_job(job) for job in jobs]


@router.get("/stats", response_model=JobStatsResponse)
async def job_stats(runtime: QueueRuntime = Depends(get_runtime)) -> JobStatsResponse:
	counts = runtime.store.counts()
	return JobStatsResponse(
		total=counts.total,
		pending=counts.pending,
		running=counts.running,
		success=counts.success,
		failed=counts.failed,
	)


@router.get("/downloads", response_model=list[DownloadLink])
async def list_downloads(runtime: QueueRuntime = Depends(get_runtime)) -> list[DownloadLink]:
	return [
		DownloadLink(
			job_id=job.id,
			filename=download_filename(job.id, bulk=True),
			url=f"/api/v1/jobs/{job.id}/download?bulk=true",
		)
		for job in runtime.store.list()
		if job.status == JobStatusEnum.SUCCESS and job.result_handle
	]


@router.delete("/finished", response_model=ClearFinishedResponse)
async def clear_finished(runtime: QueueRuntime = Depends(get_runtime)) -> ClearFinishedResponse:
	removed = runtime.store.clear_finished()
	for job in removed:
		runtime.media.release(job.result_handle)
	return ClearFinishedResponse(removed=len(removed), job_ids=[job.id for job in removed])


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, runtime: QueueRuntime = Depends(get_runtime)) -> JobResponse:
	job = runtime.store.get(job_id)
	if job is None:
		raise _map_error(LookupError(f"Job {job_id} not found"))
	return JobResponse.from_job(job)


@router.post("/{job_id}/retry", response_model=JobResponse)
async def retry_job(job_id: str, runtime: QueueRuntime = Depends(get_runtime)) -> JobResponse:
	try:
		job = runtime.scheduler.retry(job_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return JobResponse.from_job(job)


@router.get("/{job_id}/download")
async def download_job(
	job_id: str,
	bulk: bool = False,
	runtime: QueueRuntime = Depends(get_runtime),
) -> Response:
	job = runtime.store.get(job_id)
	if job is None:
		raise _map_error(LookupError(f"Job {job_id} not found"))
	media = runtime.media.get(job.result_handle) if job.result_handle else None
	if job.status != JobStatusEnum.SUCCESS or media is None:
		raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Job {job_id} has no video")
	return Response(
		content=media.data,
		media_type=media.content_type,
		headers={"content-disposition": f'attachment; filename="{download_filename(job.id, bulk=bulk)}"'},
	)
