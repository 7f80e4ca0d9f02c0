"""API key selection routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from veobatch.runtime import QueueRuntime, get_runtime
from veobatch.schemas.queue import CredentialSelectRequest, CredentialStatusResponse

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.get("", response_model=CredentialStatusResponse)
async def credential_status(runtime: QueueRuntime = Depends(get_runtime)) -> CredentialStatusResponse:
	return CredentialStatusResponse(selected=runtime.credentials.is_selected)


@router.put("", response_model=CredentialStatusResponse)
async def select_credential(
	payload: CredentialSelectRequest,
	runtime: QueueRuntime = Depends(get_runtime),
) -> CredentialStatusResponse:
	try:
		runtime.credentials.select(payload.api_key)
	except ValueError as exc:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
	return CredentialStatusResponse(selected=True)


@router.delete("", response_model=CredentialStatusResponse)
async def forget_credential(runtime: QueueRuntime = Depends(get_runtime)) -> CredentialStatusResponse:
	runtime.credentials.invalidate()
	return CredentialStatusResponse(selected=False)
