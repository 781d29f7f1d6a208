from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import aioboto3
from botocore import xform_name
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from client_provisioner.services.config import ProvisionerConfig
from client_provisioner.services.errors import (
    PermanentResourceError,
    ResourceConflictError,
    ResourceError,
    ResourceNotFoundError,
    TransientResourceError,
)
from client_provisioner.services.policy_documents import PolicyDocument

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset(
    {
        "404",
        "NotFound",
        "NoSuchBucket",
        "NoSuchEntity",
        "NotFoundException",
        "ResourceNotFound",
        "ResourceNotFoundException",
    }
)
_CONFLICT_CODES = frozenset(
    {
        "BucketAlreadyExists",
        "BucketAlreadyOwnedByYou",
        "EntityAlreadyExists",
        "ResourceAlreadyExistsException",
        "ResourceConflictException",
    }
)
_TRANSIENT_CODES = frozenset(
    {
        "ConcurrentModificationException",
        "InternalError",
        "InternalFailure",
        "RequestLimitExceeded",
        "RequestTimeout",
        "ServiceFailure",
        "ServiceUnavailable",
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "TooManyRequestsException",
    }
)


def classify_client_error(exc: ClientError, *, operation: str) -> ResourceError:
    """Map a botocore ClientError onto the provisioning error taxonomy."""

    error = exc.response.get("Error") or {}
    aws_code = str(error.get("Code") or "")
    message = error.get("Message") or str(exc)
    status = (exc.response.get("ResponseMetadata") or {}).get("HTTPStatusCode")

    if aws_code in _NOT_FOUND_CODES:
        error_type: type[ResourceError] = ResourceNotFoundError
    elif aws_code in _CONFLICT_CODES:
        error_type = ResourceConflictError
    elif aws_code in _TRANSIENT_CODES or (isinstance(status, int) and status >= 500):
        error_type = TransientResourceError
    else:
        error_type = PermanentResourceError

    return error_type(f"{operation} failed ({aws_code or status}): {message}", operation=operation, aws_code=aws_code)


def classify_botocore_error(exc: BotoCoreError, *, operation: str) -> ResourceError:
    if isinstance(exc, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError)):
        return TransientResourceError(f"{operation} failed: {exc}", operation=operation)
    return PermanentResourceError(f"{operation} failed: {exc}", operation=operation)


def aws_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


class AwsResourceClient:
    """Capability-oriented facade over the AWS control-plane APIs used for provisioning.

    One method per (resource kind x verb). Every method opens a short-lived
    aioboto3 client, performs a single remote call and translates failures
    into TransientResourceError, ResourceConflictError, ResourceNotFoundError
    or PermanentResourceError. Nothing here retries or reverses anything.
    """

    def __init__(self, config: ProvisionerConfig, *, session: Optional[Any] = None) -> None:
        self._config = config
        self._session = session if session is not None else aioboto3.Session()

    @property
    def region_name(self) -> str:
        return self._config.region_name

    def _client(self, service_name: str) -> Any:
        return self._session.client(
            service_name,
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    async def _call(self, service_name: str, operation: str, **kwargs: Any) -> dict[str, Any]:
        try:
            client_cm: Any = self._client(service_name)
            async with client_cm as client:
                return await getattr(client, xform_name(operation))(**kwargs)
        except ClientError as exc:
            error = classify_client_error(exc, operation=operation)
            logger.warning("%s %s failed: %s", service_name, operation, error)
            raise error from exc
        except BotoCoreError as exc:
            error = classify_botocore_error(exc, operation=operation)
            logger.warning("%s %s failed: %s", service_name, operation, error)
            raise error from exc

    # -----------------
    # S3 bucket
    # -----------------

    async def create_bucket(self, *, bucket_name: str) -> str:
        kwargs: dict[str, Any] = {"Bucket": bucket_name}
        # us-east-1 rejects an explicit LocationConstraint.
        if self._config.region_name != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self._config.region_name}
        await self._call("s3", "CreateBucket", **kwargs)
        return bucket_name

    async def enable_bucket_versioning(self, *, bucket_name: str) -> None:
        await self._call(
            "s3",
            "PutBucketVersioning",
            Bucket=bucket_name,
            VersioningConfiguration={"Status": "Enabled"},
        )

    async def enable_bucket_encryption(self, *, bucket_name: str) -> None:
        await self._call(
            "s3",
            "PutBucketEncryption",
            Bucket=bucket_name,
            ServerSideEncryptionConfiguration={
                "Rules": [{"ApplyServerSideEncryptionByDefault": {"SSEAlgorithm": "AES256"}}]
            },
        )

    async def tag_bucket(self, *, bucket_name: str, tags: dict[str, str]) -> None:
        await self._call("s3", "PutBucketTagging", Bucket=bucket_name, Tagging={"TagSet": aws_tags(tags)})

    async def put_bucket_policy(self, *, bucket_name: str, policy: PolicyDocument) -> None:
        await self._call("s3", "PutBucketPolicy", Bucket=bucket_name, Policy=policy.to_json())

    async def bucket_exists(self, *, bucket_name: str) -> bool:
        try:
            await self._call("s3", "HeadBucket", Bucket=bucket_name)
        except ResourceNotFoundError:
            return False
        return True

    async def delete_bucket(self, *, bucket_name: str) -> None:
        await self._call("s3", "DeleteBucket", Bucket=bucket_name)

    # -----------------
    # IAM role
    # -----------------

    async def create_role(
        self,
        *,
        role_name: str,
        trust_policy: PolicyDocument,
        description: str,
        tags: dict[str, str],
    ) -> str:
        response = await self._call(
            "iam",
            "CreateRole",
            RoleName=role_name,
            AssumeRolePolicyDocument=trust_policy.to_json(),
            Description=description,
            Tags=aws_tags(tags),
        )
        return response["Role"]["Arn"]

    async def put_role_policy(self, *, role_name: str, policy_name: str, policy: PolicyDocument) -> None:
        await self._call(
            "iam",
            "PutRolePolicy",
            RoleName=role_name,
            PolicyName=policy_name,
            PolicyDocument=policy.to_json(),
        )

    async def role_exists(self, *, role_name: str) -> bool:
        try:
            await self._call("iam", "GetRole", RoleName=role_name)
        except ResourceNotFoundError:
            return False
        return True

    async def delete_role_policy(self, *, role_name: str, policy_name: str) -> None:
        await self._call("iam", "DeleteRolePolicy", RoleName=role_name, PolicyName=policy_name)

    async def delete_role(self, *, role_name: str) -> None:
        await self._call("iam", "DeleteRole", RoleName=role_name)

    # -----------------
    # CloudWatch Logs
    # -----------------

    async def create_log_group(self, *, log_group_name: str, tags: dict[str, str]) -> str:
        await self._call("logs", "CreateLogGroup", logGroupName=log_group_name, tags=tags)
        return log_group_name

    async def put_retention_policy(self, *, log_group_name: str, retention_days: int) -> None:
        await self._call(
            "logs",
            "PutRetentionPolicy",
            logGroupName=log_group_name,
            retentionInDays=retention_days,
        )

    async def delete_log_group(self, *, log_group_name: str) -> None:
        await self._call("logs", "DeleteLogGroup", logGroupName=log_group_name)

    # -----------------
    # Lambda
    # -----------------

    async def create_function(
        self,
        *,
        function_name: str,
        role_arn: str,
        runtime: str,
        handler: str,
        zip_file: bytes,
        environment: dict[str, str],
        timeout_seconds: int,
        memory_mb: int,
        tags: dict[str, str],
    ) -> str:
        response = await self._call(
            "lambda",
            "CreateFunction",
            FunctionName=function_name,
            Role=role_arn,
            Runtime=runtime,
            Handler=handler,
            Code={"ZipFile": zip_file},
            Environment={"Variables": environment},
            Timeout=timeout_seconds,
            MemorySize=memory_mb,
            Tags=tags,
        )
        return response["FunctionArn"]

    async def add_invoke_permission(
        self,
        *,
        function_name: str,
        statement_id: str,
        principal: str,
        source_arn: str,
    ) -> None:
        await self._call(
            "lambda",
            "AddPermission",
            FunctionName=function_name,
            StatementId=statement_id,
            Action="lambda:InvokeFunction",
            Principal=principal,
            SourceArn=source_arn,
        )

    async def delete_function(self, *, function_name: str) -> None:
        await self._call("lambda", "DeleteFunction", FunctionName=function_name)

    # -----------------
    # EventBridge
    # -----------------

    async def put_rule(self, *, rule_name: str, event_pattern: str, description: str) -> str:
        response = await self._call(
            "events",
            "PutRule",
            Name=rule_name,
            EventPattern=event_pattern,
            Description=description,
            State="ENABLED",
        )
        return response["RuleArn"]

    async def put_targets(self, *, rule_name: str, targets: Sequence[dict[str, str]]) -> None:
        response = await self._call("events", "PutTargets", Rule=rule_name, Targets=list(targets))
        # PutTargets reports per-target failures in a 200 response.
        if response.get("FailedEntryCount"):
            entries = response.get("FailedEntries") or []
            detail = "; ".join(f"{e.get('TargetId')}: {e.get('ErrorCode')} {e.get('ErrorMessage')}" for e in entries)
            raise PermanentResourceError(f"PutTargets failed for rule {rule_name}: {detail}", operation="PutTargets")

    async def remove_targets(self, *, rule_name: str, target_ids: Sequence[str]) -> None:
        await self._call("events", "RemoveTargets", Rule=rule_name, Ids=list(target_ids))

    async def delete_rule(self, *, rule_name: str) -> None:
        await self._call("events", "DeleteRule", Name=rule_name)

    # -----------------
    # SNS
    # -----------------

    async def create_topic(self, *, topic_name: str, tags: dict[str, str]) -> str:
        response = await self._call("sns", "CreateTopic", Name=topic_name, Tags=aws_tags(tags))
        return response["TopicArn"]

    async def set_topic_policy(self, *, topic_arn: str, policy: PolicyDocument) -> None:
        await self._call(
            "sns",
            "SetTopicAttributes",
            TopicArn=topic_arn,
            AttributeName="Policy",
            AttributeValue=policy.to_json(),
        )

    async def delete_topic(self, *, topic_arn: str) -> None:
        await self._call("sns", "DeleteTopic", TopicArn=topic_arn)

    # -----------------
    # CloudWatch alarms
    # -----------------

    async def put_metric_alarm(
        self,
        *,
        alarm_name: str,
        description: str,
        namespace: str,
        metric_name: str,
        dimensions: dict[str, str],
        period_seconds: int,
        evaluation_periods: int,
        threshold: float,
        alarm_actions: Sequence[str],
    ) -> str:
        await self._call(
            "cloudwatch",
            "PutMetricAlarm",
            AlarmName=alarm_name,
            AlarmDescription=description,
            Namespace=namespace,
            MetricName=metric_name,
            Dimensions=[{"Name": name, "Value": value} for name, value in dimensions.items()],
            Statistic="Sum",
            Period=period_seconds,
            EvaluationPeriods=evaluation_periods,
            Threshold=threshold,
            ComparisonOperator="GreaterThanThreshold",
            AlarmActions=list(alarm_actions),
        )
        return alarm_name

    async def delete_alarms(self, *, alarm_names: Sequence[str]) -> None:
        await self._call("cloudwatch", "DeleteAlarms", AlarmNames=list(alarm_names))
