from __future__ import annotations

import io
import logging
import zipfile

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)

HANDLER = "index.handler"

# Deployed as index.py. Stores each matched log event under logs/<timestamp>.json.
LOG_PROCESSOR_SOURCE = '''\
import json
import os
from datetime import datetime, timezone

import boto3

s3 = boto3.client("s3")


def handler(event, context):
    log_data = (event.get("detail") or {}).get("requestParameters")
    key = "logs/" + datetime.now(timezone.utc).isoformat() + ".json"
    s3.put_object(Bucket=os.environ["TARGET_BUCKET"], Key=key, Body=json.dumps(log_data))
    print("Successfully processed logs")
    return {"statusCode": 200, "body": "Logs processed successfully"}
'''


def build_deployment_package(source: str = LOG_PROCESSOR_SOURCE) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("index.py", source)
    return buffer.getvalue()


class FunctionSetupService:
    """Lambda function that copies matched log events into the client bucket."""

    _TIMEOUT_SECONDS = 30
    _MEMORY_MB = 128

    def __init__(self, *, client: AwsResourceClient, runtime: str) -> None:
        self._client = client
        self._runtime = runtime

    async def create_function(
        self,
        *,
        function_name: str,
        role_arn: str,
        target_bucket: str,
        tags: dict[str, str],
    ) -> str:
        logger.info("Creating Lambda function: %s", function_name)
        return await self._client.create_function(
            function_name=function_name,
            role_arn=role_arn,
            runtime=self._runtime,
            handler=HANDLER,
            zip_file=build_deployment_package(),
            environment={"TARGET_BUCKET": target_bucket},
            timeout_seconds=self._TIMEOUT_SECONDS,
            memory_mb=self._MEMORY_MB,
            tags=tags,
        )

    async def delete_function(self, *, function_name: str) -> None:
        logger.info("Deleting Lambda function: %s", function_name)
        await ignore_missing(
            self._client.delete_function(function_name=function_name),
            description=f"Lambda function {function_name}",
        )
