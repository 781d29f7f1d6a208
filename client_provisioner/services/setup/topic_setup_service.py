from __future__ import annotations

import logging

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.policy_documents import topic_policy
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)


class TopicSetupService:
    def __init__(self, *, client: AwsResourceClient) -> None:
        self._client = client

    async def create_topic(self, *, topic_name: str, tags: dict[str, str]) -> str:
        logger.info("Creating SNS topic: %s", topic_name)
        return await self._client.create_topic(topic_name=topic_name, tags=tags)

    async def attach_policy(self, *, topic_arn: str) -> None:
        await self._client.set_topic_policy(topic_arn=topic_arn, policy=topic_policy(topic_arn=topic_arn))

    async def delete_topic(self, *, topic_arn: str) -> None:
        logger.info("Deleting SNS topic: %s", topic_arn)
        await ignore_missing(self._client.delete_topic(topic_arn=topic_arn), description=f"SNS topic {topic_arn}")
