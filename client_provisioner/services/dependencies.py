from __future__ import annotations

from fastapi import Depends

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.config import ProvisionerConfig
from client_provisioner.services.provisioning_service import ProvisioningService


def get_provisioner_config() -> ProvisionerConfig:
    """FastAPI dependency provider for the provisioning configuration."""

    return ProvisionerConfig.from_env()


def get_resource_client(config: ProvisionerConfig = Depends(get_provisioner_config)) -> AwsResourceClient:
    """Dependency provider for the AWS resource facade (one per request, no shared handle)."""

    return AwsResourceClient(config)


def get_provisioning_service(
    config: ProvisionerConfig = Depends(get_provisioner_config),
    client: AwsResourceClient = Depends(get_resource_client),
) -> ProvisioningService:
    return ProvisioningService(config=config, client=client)
