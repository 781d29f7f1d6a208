from __future__ import annotations

import logging

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)


class LogGroupSetupService:
    _RETENTION_DAYS = 30

    def __init__(self, *, client: AwsResourceClient) -> None:
        self._client = client

    async def create_log_group(self, *, log_group_name: str, tags: dict[str, str]) -> str:
        logger.info("Creating CloudWatch Log Group: %s", log_group_name)
        return await self._client.create_log_group(log_group_name=log_group_name, tags=tags)

    async def apply_retention(self, *, log_group_name: str) -> None:
        await self._client.put_retention_policy(log_group_name=log_group_name, retention_days=self._RETENTION_DAYS)

    async def delete_log_group(self, *, log_group_name: str) -> None:
        logger.info("Deleting CloudWatch Log Group: %s", log_group_name)
        await ignore_missing(
            self._client.delete_log_group(log_group_name=log_group_name),
            description=f"log group {log_group_name}",
        )
