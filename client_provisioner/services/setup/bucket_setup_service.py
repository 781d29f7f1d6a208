from __future__ import annotations

import asyncio
import logging

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.config import RetryPolicy
from client_provisioner.services.policy_documents import bucket_access_policy
from client_provisioner.services.retry import Sleep, wait_until_ready
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)


class BucketSetupService:
    """Create, wait for, configure and delete the client's S3 bucket.

    S3 bucket creation is eventually consistent: HeadBucket may 404 for a
    short while after CreateBucket returns, so configuration calls only run
    after `wait_until_ready`.
    """

    def __init__(self, *, client: AwsResourceClient, retry_policy: RetryPolicy, sleep: Sleep = asyncio.sleep) -> None:
        self._client = client
        self._retry_policy = retry_policy
        self._sleep = sleep

    async def create_bucket(self, *, bucket_name: str) -> str:
        logger.info("Creating S3 bucket: %s", bucket_name)
        return await self._client.create_bucket(bucket_name=bucket_name)

    async def wait_until_ready(self, *, bucket_name: str) -> int:
        return await wait_until_ready(
            lambda: self._client.bucket_exists(bucket_name=bucket_name),
            policy=self._retry_policy,
            description=f"S3 bucket {bucket_name}",
            sleep=self._sleep,
        )

    async def configure_bucket(self, *, bucket_name: str, tags: dict[str, str]) -> None:
        """Enable versioning and default AES256 encryption, then tag the bucket."""

        await self._client.enable_bucket_versioning(bucket_name=bucket_name)
        await self._client.enable_bucket_encryption(bucket_name=bucket_name)
        await self._client.tag_bucket(bucket_name=bucket_name, tags=tags)

    async def attach_role_access(self, *, bucket_name: str, role_arn: str) -> None:
        logger.info("Applying bucket policy for: %s", bucket_name)
        await self._client.put_bucket_policy(
            bucket_name=bucket_name,
            policy=bucket_access_policy(bucket_name=bucket_name, role_arn=role_arn),
        )

    async def delete_bucket(self, *, bucket_name: str) -> None:
        logger.info("Deleting S3 bucket: %s", bucket_name)
        await ignore_missing(self._client.delete_bucket(bucket_name=bucket_name), description=f"S3 bucket {bucket_name}")
