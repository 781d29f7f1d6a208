from __future__ import annotations

from fastapi import APIRouter

from client_provisioner.models.provisioning import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="healthy")
