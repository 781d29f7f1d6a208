from __future__ import annotations

import asyncio
import logging

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.config import RetryPolicy
from client_provisioner.services.policy_documents import PolicyDocument, role_trust_policy
from client_provisioner.services.retry import Sleep, wait_until_ready
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)


class RoleSetupService:
    """IAM role used by the client's log processor.

    A freshly created role can stay invisible to other services for several
    seconds; callers poll `wait_until_ready` before handing it to Lambda.
    """

    def __init__(self, *, client: AwsResourceClient, retry_policy: RetryPolicy, sleep: Sleep = asyncio.sleep) -> None:
        self._client = client
        self._retry_policy = retry_policy
        self._sleep = sleep

    async def create_role(self, *, role_name: str, bucket_name: str, tags: dict[str, str]) -> str:
        logger.info("Creating IAM role: %s", role_name)
        return await self._client.create_role(
            role_name=role_name,
            trust_policy=role_trust_policy(),
            description=f"Role for client bucket access: {bucket_name}",
            tags=tags,
        )

    async def wait_until_ready(self, *, role_name: str) -> int:
        return await wait_until_ready(
            lambda: self._client.role_exists(role_name=role_name),
            policy=self._retry_policy,
            description=f"IAM role {role_name}",
            sleep=self._sleep,
        )

    async def attach_inline_policy(self, *, role_name: str, policy_name: str, policy: PolicyDocument) -> None:
        logger.info("Attaching inline policy %s to role %s", policy_name, role_name)
        await self._client.put_role_policy(role_name=role_name, policy_name=policy_name, policy=policy)

    async def delete_role(self, *, role_name: str, policy_name: str) -> None:
        """Remove the inline policy, then the role; either may already be gone."""

        logger.info("Deleting IAM role: %s", role_name)
        await ignore_missing(
            self._client.delete_role_policy(role_name=role_name, policy_name=policy_name),
            description=f"inline policy {policy_name}",
        )
        await ignore_missing(self._client.delete_role(role_name=role_name), description=f"IAM role {role_name}")
