from __future__ import annotations

from fastapi import APIRouter, Depends
from starlette import status

from client_provisioner.models.provisioning import ProvisionRequest, ProvisionResponse
from client_provisioner.services.dependencies import get_provisioning_service
from client_provisioner.services.provisioning_service import ProvisioningService

router = APIRouter(tags=["provisioning"])


@router.post("/provision", response_model=ProvisionResponse, status_code=status.HTTP_201_CREATED)
async def provision_client(
    payload: ProvisionRequest,
    svc: ProvisioningService = Depends(get_provisioning_service),
) -> ProvisionResponse:
    result = await svc.provision(payload)
    return ProvisionResponse.from_result(result)
