"""IAM-style policy documents as values.

Documents are built per request from resource identifiers and only turned into
JSON at the AWS call boundary (`to_json()`), so callers and tests work with
structure instead of templated strings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

POLICY_VERSION = "2012-10-17"

BUCKET_OBJECT_ACTIONS: tuple[str, ...] = (
    "s3:GetObject",
    "s3:PutObject",
    "s3:ListBucket",
    "s3:DeleteObject",
)
LOG_WRITE_ACTIONS: tuple[str, ...] = (
    "logs:CreateLogStream",
    "logs:PutLogEvents",
)


@dataclass(frozen=True)
class Principal:
    """`{"Service": ...}` or `{"AWS": ...}` principal block."""

    kind: str
    identifiers: tuple[str, ...]

    @staticmethod
    def service(*names: str) -> "Principal":
        return Principal(kind="Service", identifiers=tuple(names))

    @staticmethod
    def aws(*arns: str) -> "Principal":
        return Principal(kind="AWS", identifiers=tuple(arns))

    def to_dict(self) -> dict[str, Any]:
        value: Any = self.identifiers[0] if len(self.identifiers) == 1 else list(self.identifiers)
        return {self.kind: value}


@dataclass(frozen=True)
class PolicyStatement:
    actions: tuple[str, ...]
    resources: tuple[str, ...] = ()
    principal: Optional[Principal] = None
    effect: str = "Allow"
    sid: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        statement: dict[str, Any] = {}
        if self.sid:
            statement["Sid"] = self.sid
        statement["Effect"] = self.effect
        if self.principal is not None:
            statement["Principal"] = self.principal.to_dict()
        statement["Action"] = self.actions[0] if len(self.actions) == 1 else list(self.actions)
        if self.resources:
            statement["Resource"] = self.resources[0] if len(self.resources) == 1 else list(self.resources)
        return statement


@dataclass(frozen=True)
class PolicyDocument:
    statements: tuple[PolicyStatement, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "Version": POLICY_VERSION,
            "Statement": [statement.to_dict() for statement in self.statements],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# -----------------
# ARN helpers
# -----------------


def bucket_arns(bucket_name: str) -> tuple[str, str]:
    return (f"arn:aws:s3:::{bucket_name}", f"arn:aws:s3:::{bucket_name}/*")


def log_group_arn(*, region_name: str, account_id: str, log_group_name: str) -> str:
    return f"arn:aws:logs:{region_name}:{account_id}:log-group:{log_group_name}:*"


def role_arn(*, account_id: str, role_name: str) -> str:
    return f"arn:aws:iam::{account_id}:role/{role_name}"


def function_arn(*, region_name: str, account_id: str, function_name: str) -> str:
    return f"arn:aws:lambda:{region_name}:{account_id}:function:{function_name}"


def rule_arn(*, region_name: str, account_id: str, rule_name: str) -> str:
    return f"arn:aws:events:{region_name}:{account_id}:rule/{rule_name}"


def topic_arn(*, region_name: str, account_id: str, topic_name: str) -> str:
    return f"arn:aws:sns:{region_name}:{account_id}:{topic_name}"


def lambda_log_group_name(function_name: str) -> str:
    return f"/aws/lambda/{function_name}"


# -----------------
# Documents
# -----------------


def role_trust_policy() -> PolicyDocument:
    """Trust policy letting the log processor function (and EC2 workloads) assume the role."""

    return PolicyDocument(
        statements=(
            PolicyStatement(
                principal=Principal.service("lambda.amazonaws.com", "ec2.amazonaws.com"),
                actions=("sts:AssumeRole",),
            ),
        )
    )


def role_access_policy(
    *,
    bucket_name: str,
    log_group_name: str,
    function_name: str,
    region_name: str,
    account_id: str,
) -> PolicyDocument:
    """Inline role policy: object access on the client bucket, log writes for the client and the function."""

    return PolicyDocument(
        statements=(
            PolicyStatement(
                sid="ClientBucketAccess",
                actions=BUCKET_OBJECT_ACTIONS,
                resources=bucket_arns(bucket_name),
            ),
            PolicyStatement(
                sid="ClientLogWrites",
                actions=LOG_WRITE_ACTIONS,
                resources=(
                    log_group_arn(region_name=region_name, account_id=account_id, log_group_name=log_group_name),
                    log_group_arn(
                        region_name=region_name,
                        account_id=account_id,
                        log_group_name=lambda_log_group_name(function_name),
                    ),
                ),
            ),
            PolicyStatement(
                sid="FunctionLogGroup",
                actions=("logs:CreateLogGroup",),
                resources=(f"arn:aws:logs:{region_name}:{account_id}:*",),
            ),
        )
    )


def bucket_access_policy(*, bucket_name: str, role_arn: str) -> PolicyDocument:
    return PolicyDocument(
        statements=(
            PolicyStatement(
                sid="AllowRoleAccess",
                principal=Principal.aws(role_arn),
                actions=BUCKET_OBJECT_ACTIONS,
                resources=bucket_arns(bucket_name),
            ),
        )
    )


def topic_policy(*, topic_arn: str) -> PolicyDocument:
    """Allow CloudWatch alarms to publish to the client alert topic."""

    return PolicyDocument(
        statements=(
            PolicyStatement(
                principal=Principal.service("cloudwatch.amazonaws.com"),
                actions=("sns:Publish",),
                resources=(topic_arn,),
            ),
        )
    )


def log_event_pattern(*, log_group_name: str) -> dict[str, Any]:
    """EventBridge pattern matching CloudTrail PutLogEvents calls on one log group."""

    return {
        "source": ["aws.logs"],
        "detail-type": ["AWS API Call via CloudTrail"],
        "detail": {
            "eventSource": ["logs.amazonaws.com"],
            "eventName": ["PutLogEvents"],
            "requestParameters": {"logGroupName": [log_group_name]},
        },
    }
