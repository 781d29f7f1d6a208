"""Pytest configuration and an in-memory AWS resource facade for provisioning tests."""
from __future__ import annotations

from collections import Counter
from typing import Any, Optional, Sequence

import pytest

from client_provisioner.models.provisioning import ProvisionRequest
from client_provisioner.services.config import ProvisionerConfig, RetryPolicy
from client_provisioner.services.errors import ResourceConflictError, ResourceNotFoundError
from client_provisioner.services.policy_documents import PolicyDocument
from client_provisioner.services.provisioning_service import ProvisioningService

ACCOUNT_ID = "123456789012"
REGION = "us-east-1"

CREATE_KINDS = {
    "create_bucket": "bucket",
    "create_role": "role",
    "create_log_group": "log_group",
    "create_function": "function",
    "put_rule": "event_rule",
    "create_topic": "topic",
    "put_metric_alarm": "alarms",
}
DELETE_KINDS = {
    "delete_bucket": "bucket",
    "delete_role": "role",
    "delete_log_group": "log_group",
    "delete_function": "function",
    "delete_rule": "event_rule",
    "delete_topic": "topic",
    "delete_alarms": "alarms",
}


class FakeResourceClient:
    """Records every call and keeps just enough state to behave like AWS.

    - `fail(method, error)` makes every call to `method` raise `error`;
      `fail(method, error, name=...)` only for that resource name.
    - `ready_after[method] = k` makes a readiness probe return False k-1 times.
    - Deleting something that does not exist raises ResourceNotFoundError,
      creating something that exists raises ResourceConflictError.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, Optional[str]], BaseException] = {}
        self.ready_after: dict[str, int] = {}
        self.polls: Counter[str] = Counter()
        self.existing: dict[str, set[str]] = {kind: set() for kind in set(CREATE_KINDS.values()) | {"role_policy"}}
        self.policies: dict[str, PolicyDocument] = {}

    def fail(self, method: str, error: BaseException, *, name: Optional[str] = None) -> None:
        self.failures[(method, name)] = error

    def kinds(self, mapping: dict[str, str]) -> list[str]:
        ordered: list[str] = []
        for method, _name in self.calls:
            kind = mapping.get(method)
            if kind and (not ordered or ordered[-1] != kind):
                ordered.append(kind)
        return ordered

    def created_kinds(self) -> list[str]:
        return self.kinds(CREATE_KINDS)

    def deleted_kinds(self) -> list[str]:
        return self.kinds(DELETE_KINDS)

    def methods(self) -> list[str]:
        return [method for method, _name in self.calls]

    def _invoke(self, method: str, name: str) -> None:
        self.calls.append((method, name))
        error = self.failures.get((method, name)) or self.failures.get((method, None))
        if error is not None:
            raise error

    def _add(self, kind: str, name: str) -> None:
        if name in self.existing[kind]:
            raise ResourceConflictError(f"{kind} {name} already exists")
        self.existing[kind].add(name)

    def _remove(self, kind: str, name: str) -> None:
        if name not in self.existing[kind]:
            raise ResourceNotFoundError(f"{kind} {name} not found")
        self.existing[kind].discard(name)

    def _probe(self, method: str, kind: str, name: str) -> bool:
        self._invoke(method, name)
        self.polls[method] += 1
        return name in self.existing[kind] and self.polls[method] >= self.ready_after.get(method, 1)

    # S3
    async def create_bucket(self, *, bucket_name: str) -> str:
        self._invoke("create_bucket", bucket_name)
        self._add("bucket", bucket_name)
        return bucket_name

    async def enable_bucket_versioning(self, *, bucket_name: str) -> None:
        self._invoke("enable_bucket_versioning", bucket_name)

    async def enable_bucket_encryption(self, *, bucket_name: str) -> None:
        self._invoke("enable_bucket_encryption", bucket_name)

    async def tag_bucket(self, *, bucket_name: str, tags: dict[str, str]) -> None:
        self._invoke("tag_bucket", bucket_name)

    async def put_bucket_policy(self, *, bucket_name: str, policy: PolicyDocument) -> None:
        self._invoke("put_bucket_policy", bucket_name)
        self.policies[f"bucket:{bucket_name}"] = policy

    async def bucket_exists(self, *, bucket_name: str) -> bool:
        return self._probe("bucket_exists", "bucket", bucket_name)

    async def delete_bucket(self, *, bucket_name: str) -> None:
        self._invoke("delete_bucket", bucket_name)
        self._remove("bucket", bucket_name)

    # IAM
    async def create_role(
        self, *, role_name: str, trust_policy: PolicyDocument, description: str, tags: dict[str, str]
    ) -> str:
        self._invoke("create_role", role_name)
        self._add("role", role_name)
        self.policies[f"trust:{role_name}"] = trust_policy
        return f"arn:aws:iam::{ACCOUNT_ID}:role/{role_name}"

    async def put_role_policy(self, *, role_name: str, policy_name: str, policy: PolicyDocument) -> None:
        self._invoke("put_role_policy", role_name)
        self.existing["role_policy"].add(policy_name)
        self.policies[f"role:{role_name}"] = policy

    async def role_exists(self, *, role_name: str) -> bool:
        return self._probe("role_exists", "role", role_name)

    async def delete_role_policy(self, *, role_name: str, policy_name: str) -> None:
        self._invoke("delete_role_policy", role_name)
        self._remove("role_policy", policy_name)

    async def delete_role(self, *, role_name: str) -> None:
        self._invoke("delete_role", role_name)
        self._remove("role", role_name)

    # Logs
    async def create_log_group(self, *, log_group_name: str, tags: dict[str, str]) -> str:
        self._invoke("create_log_group", log_group_name)
        self._add("log_group", log_group_name)
        return log_group_name

    async def put_retention_policy(self, *, log_group_name: str, retention_days: int) -> None:
        self._invoke("put_retention_policy", log_group_name)

    async def delete_log_group(self, *, log_group_name: str) -> None:
        self._invoke("delete_log_group", log_group_name)
        self._remove("log_group", log_group_name)

    # Lambda
    async def create_function(self, *, function_name: str, role_arn: str, **kwargs: Any) -> str:
        self._invoke("create_function", function_name)
        self._add("function", function_name)
        return f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:{function_name}"

    async def add_invoke_permission(self, *, function_name: str, **kwargs: Any) -> None:
        self._invoke("add_invoke_permission", function_name)

    async def delete_function(self, *, function_name: str) -> None:
        self._invoke("delete_function", function_name)
        self._remove("function", function_name)

    # EventBridge
    async def put_rule(self, *, rule_name: str, event_pattern: str, description: str) -> str:
        self._invoke("put_rule", rule_name)
        self._add("event_rule", rule_name)
        return f"arn:aws:events:{REGION}:{ACCOUNT_ID}:rule/{rule_name}"

    async def put_targets(self, *, rule_name: str, targets: Sequence[dict[str, str]]) -> None:
        self._invoke("put_targets", rule_name)

    async def remove_targets(self, *, rule_name: str, target_ids: Sequence[str]) -> None:
        self._invoke("remove_targets", rule_name)
        if rule_name not in self.existing["event_rule"]:
            raise ResourceNotFoundError(f"rule {rule_name} not found")

    async def delete_rule(self, *, rule_name: str) -> None:
        self._invoke("delete_rule", rule_name)
        self._remove("event_rule", rule_name)

    # SNS
    async def create_topic(self, *, topic_name: str, tags: dict[str, str]) -> str:
        self._invoke("create_topic", topic_name)
        topic_arn = f"arn:aws:sns:{REGION}:{ACCOUNT_ID}:{topic_name}"
        self._add("topic", topic_arn)
        return topic_arn

    async def set_topic_policy(self, *, topic_arn: str, policy: PolicyDocument) -> None:
        self._invoke("set_topic_policy", topic_arn)
        self.policies[f"topic:{topic_arn}"] = policy

    async def delete_topic(self, *, topic_arn: str) -> None:
        self._invoke("delete_topic", topic_arn)
        self._remove("topic", topic_arn)

    # CloudWatch
    async def put_metric_alarm(self, *, alarm_name: str, **kwargs: Any) -> str:
        self._invoke("put_metric_alarm", alarm_name)
        self.existing["alarms"].add(alarm_name)
        return alarm_name

    async def delete_alarms(self, *, alarm_names: Sequence[str]) -> None:
        self._invoke("delete_alarms", ",".join(alarm_names))
        for name in alarm_names:
            self.existing["alarms"].discard(name)

    def remaining(self) -> dict[str, set[str]]:
        return {kind: names for kind, names in self.existing.items() if names}


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def config() -> ProvisionerConfig:
    return ProvisionerConfig(
        account_id=ACCOUNT_ID,
        environment="dev",
        region_name=REGION,
        bucket_ready=RetryPolicy(max_attempts=3, interval_seconds=0),
        role_ready=RetryPolicy(max_attempts=3, interval_seconds=0),
    )


@pytest.fixture
def fake_client() -> FakeResourceClient:
    return FakeResourceClient()


@pytest.fixture
def service(config: ProvisionerConfig, fake_client: FakeResourceClient) -> ProvisioningService:
    return ProvisioningService(config=config, client=fake_client, sleep=no_sleep)  # type: ignore[arg-type]


@pytest.fixture
def acme_request() -> ProvisionRequest:
    return ProvisionRequest(client_id="acme", client_name="Acme Corp")
