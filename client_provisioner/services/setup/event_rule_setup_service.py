from __future__ import annotations

import json
import logging

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.policy_documents import log_event_pattern
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)

TARGET_ID = "ProcessLogsFunction"


class EventRuleSetupService:
    """EventBridge rule routing the client's log events to the processor function.

    Rule creation and target attachment are separate calls; once PutRule has
    returned the rule exists and must be cleaned up even if targeting fails.
    """

    def __init__(self, *, client: AwsResourceClient) -> None:
        self._client = client

    async def create_rule(self, *, rule_name: str, log_group_name: str) -> str:
        logger.info("Creating EventBridge rule: %s", rule_name)
        return await self._client.put_rule(
            rule_name=rule_name,
            event_pattern=json.dumps(log_event_pattern(log_group_name=log_group_name)),
            description=f"Process logs from {log_group_name}",
        )

    async def attach_function(self, *, rule_name: str, rule_arn: str, function_name: str, function_arn: str) -> None:
        await self._client.put_targets(rule_name=rule_name, targets=[{"Id": TARGET_ID, "Arn": function_arn}])
        await self._client.add_invoke_permission(
            function_name=function_name,
            statement_id=f"{rule_name}-invoke",
            principal="events.amazonaws.com",
            source_arn=rule_arn,
        )

    async def delete_rule(self, *, rule_name: str) -> None:
        logger.info("Deleting EventBridge rule: %s", rule_name)
        await ignore_missing(
            self._client.remove_targets(rule_name=rule_name, target_ids=[TARGET_ID]),
            description=f"targets of rule {rule_name}",
        )
        await ignore_missing(self._client.delete_rule(rule_name=rule_name), description=f"EventBridge rule {rule_name}")
