from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from client_provisioner.models.provisioning import ProvisionRequest
from client_provisioner.services import policy_documents
from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.config import ProvisionerConfig
from client_provisioner.services.errors import (
    IncompleteCreateError,
    ProvisioningCancelledError,
    ProvisioningFailedError,
    ProvisioningValidationError,
    RollbackError,
)
from client_provisioner.services.naming_service import ResourceNames, resource_names
from client_provisioner.services.policy_documents import role_access_policy
from client_provisioner.services.provisioning_state import (
    ProvisioningPhase,
    ProvisioningResult,
    ProvisioningState,
    ResourceKind,
)
from client_provisioner.services.retry import Sleep
from client_provisioner.services.setup import (
    AlarmSetupService,
    BucketSetupService,
    EventRuleSetupService,
    FunctionSetupService,
    LogGroupSetupService,
    RoleSetupService,
    TopicSetupService,
    client_alarms,
    join_alarm_names,
)

logger = logging.getLogger(__name__)

CLIENT_ID_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,30}[a-z0-9])?$")
_MAX_CLIENT_NAME_LENGTH = 256


@dataclass(frozen=True)
class SagaStep:
    """One forward action of the saga and its compensation.

    `create` returns the external identifier that is recorded for rollback.
    `await_ready` and `configure` run after the identifier is recorded, so a
    failure in either still rolls the resource back.

    `planned_identifier` is the identifier derived from names alone. It is
    recorded when `create` is cancelled mid-flight: the request may already
    have reached AWS, and the idempotent `delete` removes whatever exists.
    """

    kind: ResourceKind
    create: Callable[[], Awaitable[str]]
    delete: Callable[[str], Awaitable[None]]
    planned_identifier: str
    await_ready: Optional[Callable[[str], Awaitable[object]]] = None
    configure: Optional[Callable[[str], Awaitable[None]]] = None


def validate_request(request: ProvisionRequest) -> None:
    if not request.client_id:
        raise ProvisioningValidationError("client_id is required")
    if not CLIENT_ID_PATTERN.match(request.client_id):
        raise ProvisioningValidationError(
            "client_id must be 1-32 lowercase letters, digits or hyphens, "
            "and start and end with a letter or digit"
        )
    if not request.client_name or not request.client_name.strip():
        raise ProvisioningValidationError("client_name is required")
    if len(request.client_name) > _MAX_CLIENT_NAME_LENGTH:
        raise ProvisioningValidationError(f"client_name must be at most {_MAX_CLIENT_NAME_LENGTH} characters")


class ProvisioningService:
    """Provision the full per-client resource chain, or leave nothing behind.

    Steps run strictly in dependency order:

        bucket -> role -> log group -> function -> event rule -> topic -> alarms

    Each step only reads identifiers of steps that already completed. On the
    first failure the forward pass stops and every recorded resource is
    deleted in reverse creation order. Delete failures are collected, never
    short-circuit the remaining deletes, and never replace the original error.
    """

    def __init__(self, *, config: ProvisionerConfig, client: AwsResourceClient, sleep: Sleep = asyncio.sleep) -> None:
        self._config = config
        self._bucket = BucketSetupService(client=client, retry_policy=config.bucket_ready, sleep=sleep)
        self._role = RoleSetupService(client=client, retry_policy=config.role_ready, sleep=sleep)
        self._log_group = LogGroupSetupService(client=client)
        self._function = FunctionSetupService(client=client, runtime=config.lambda_runtime)
        self._event_rule = EventRuleSetupService(client=client)
        self._topic = TopicSetupService(client=client)
        self._alarms = AlarmSetupService(client=client)
        self._pending_rollbacks: set[asyncio.Task[list[RollbackError]]] = set()

    async def provision(self, request: ProvisionRequest) -> ProvisioningResult:
        """Create every client resource.

        Raises:
            ProvisioningValidationError: the request is invalid; nothing was called remotely.
            ProvisioningFailedError: a step failed (or the deadline expired) and
                rollback was attempted.
        """

        validate_request(request)

        names = resource_names(self._config.environment, request.client_id)
        state = ProvisioningState(client_id=request.client_id)
        steps = self._plan(request=request, names=names, state=state)

        logger.info("Starting resource provisioning for client: %s", request.client_id)

        deadline = asyncio.timeout(self._config.provisioning_timeout_seconds)
        try:
            async with deadline:
                await self._run_forward(steps=steps, state=state)
        except asyncio.CancelledError:
            logger.warning(
                "Provisioning for client %s cancelled during %s, rolling back",
                request.client_id,
                _step_label(state.current_step),
            )
            await self._rollback(steps=steps, state=state)
            raise
        except TimeoutError as exc:
            cause: BaseException = exc
            if deadline.expired():
                cause = ProvisioningCancelledError(
                    f"Provisioning deadline of {self._config.provisioning_timeout_seconds}s exceeded "
                    f"during {_step_label(state.current_step)}"
                )
            raise await self._fail(steps=steps, state=state, cause=cause) from exc
        except IncompleteCreateError as exc:
            raise await self._fail(steps=steps, state=state, cause=exc.cause) from exc
        except Exception as exc:
            raise await self._fail(steps=steps, state=state, cause=exc) from exc

        logger.info("Successfully provisioned resources for client: %s", request.client_id)
        return ProvisioningResult(
            client_id=request.client_id,
            client_name=request.client_name,
            resources=tuple(state.created),
        )

    # -----------------
    # Forward pass
    # -----------------

    async def _run_forward(self, *, steps: list[SagaStep], state: ProvisioningState) -> None:
        for index, step in enumerate(steps, start=1):
            state.begin_step(step.kind)
            logger.info("Client %s step %d/%d: %s", state.client_id, index, len(steps), step.kind.value)

            try:
                identifier = await step.create()
            except IncompleteCreateError as exc:
                state.record(step.kind, exc.identifier)
                raise
            except asyncio.CancelledError:
                # Deadline expiry surfaces here as cancellation too.
                logger.warning(
                    "Create of %s %s interrupted; scheduling it for cleanup",
                    step.kind.value,
                    step.planned_identifier,
                )
                state.record(step.kind, step.planned_identifier)
                raise
            state.record(step.kind, identifier)
            logger.info("Created %s: %s", step.kind.value, identifier)

            if step.await_ready is not None:
                await step.await_ready(identifier)
            if step.configure is not None:
                await step.configure(identifier)

        state.current_step = None
        state.transition(ProvisioningPhase.SUCCEEDED)

    def _plan(self, *, request: ProvisionRequest, names: ResourceNames, state: ProvisioningState) -> list[SagaStep]:
        tags = {
            "Environment": self._config.environment,
            "ManagedBy": "Provisioner",
            "ClientID": request.client_id,
            "ClientName": request.client_name,
        }
        region_name = self._config.region_name
        account_id = self._config.account_id

        async def configure_role(role_arn: str) -> None:
            bucket_name = state.identifier_of(ResourceKind.BUCKET)
            await self._role.attach_inline_policy(
                role_name=names.role_name,
                policy_name=names.role_policy_name,
                policy=role_access_policy(
                    bucket_name=bucket_name,
                    log_group_name=names.log_group_name,
                    function_name=names.function_name,
                    region_name=region_name,
                    account_id=account_id,
                ),
            )
            await self._bucket.attach_role_access(bucket_name=bucket_name, role_arn=role_arn)

        return [
            SagaStep(
                kind=ResourceKind.BUCKET,
                planned_identifier=names.bucket_name,
                create=lambda: self._bucket.create_bucket(bucket_name=names.bucket_name),
                await_ready=lambda bucket_name: self._bucket.wait_until_ready(bucket_name=bucket_name),
                configure=lambda bucket_name: self._bucket.configure_bucket(bucket_name=bucket_name, tags=tags),
                delete=lambda bucket_name: self._bucket.delete_bucket(bucket_name=bucket_name),
            ),
            SagaStep(
                kind=ResourceKind.ROLE,
                planned_identifier=policy_documents.role_arn(account_id=account_id, role_name=names.role_name),
                create=lambda: self._role.create_role(
                    role_name=names.role_name,
                    bucket_name=state.identifier_of(ResourceKind.BUCKET),
                    tags=tags,
                ),
                await_ready=lambda _arn: self._role.wait_until_ready(role_name=names.role_name),
                configure=configure_role,
                delete=lambda _arn: self._role.delete_role(
                    role_name=names.role_name,
                    policy_name=names.role_policy_name,
                ),
            ),
            SagaStep(
                kind=ResourceKind.LOG_GROUP,
                planned_identifier=names.log_group_name,
                create=lambda: self._log_group.create_log_group(log_group_name=names.log_group_name, tags=tags),
                configure=lambda log_group_name: self._log_group.apply_retention(log_group_name=log_group_name),
                delete=lambda log_group_name: self._log_group.delete_log_group(log_group_name=log_group_name),
            ),
            SagaStep(
                kind=ResourceKind.FUNCTION,
                planned_identifier=policy_documents.function_arn(
                    region_name=region_name, account_id=account_id, function_name=names.function_name
                ),
                create=lambda: self._function.create_function(
                    function_name=names.function_name,
                    role_arn=state.identifier_of(ResourceKind.ROLE),
                    target_bucket=state.identifier_of(ResourceKind.BUCKET),
                    tags=tags,
                ),
                delete=lambda _arn: self._function.delete_function(function_name=names.function_name),
            ),
            SagaStep(
                kind=ResourceKind.EVENT_RULE,
                planned_identifier=policy_documents.rule_arn(
                    region_name=region_name, account_id=account_id, rule_name=names.rule_name
                ),
                create=lambda: self._event_rule.create_rule(
                    rule_name=names.rule_name,
                    log_group_name=state.identifier_of(ResourceKind.LOG_GROUP),
                ),
                configure=lambda rule_arn: self._event_rule.attach_function(
                    rule_name=names.rule_name,
                    rule_arn=rule_arn,
                    function_name=names.function_name,
                    function_arn=state.identifier_of(ResourceKind.FUNCTION),
                ),
                delete=lambda _arn: self._event_rule.delete_rule(rule_name=names.rule_name),
            ),
            SagaStep(
                kind=ResourceKind.TOPIC,
                planned_identifier=policy_documents.topic_arn(
                    region_name=region_name, account_id=account_id, topic_name=names.topic_name
                ),
                create=lambda: self._topic.create_topic(topic_name=names.topic_name, tags=tags),
                configure=lambda topic_arn: self._topic.attach_policy(topic_arn=topic_arn),
                delete=lambda topic_arn: self._topic.delete_topic(topic_arn=topic_arn),
            ),
            SagaStep(
                kind=ResourceKind.ALARMS,
                planned_identifier=join_alarm_names(names.alarm_names),
                create=lambda: self._alarms.create_alarms(
                    alarms=client_alarms(
                        error_rate_alarm_name=names.error_rate_alarm_name,
                        log_volume_alarm_name=names.log_volume_alarm_name,
                        client_id=request.client_id,
                        log_group_name=state.identifier_of(ResourceKind.LOG_GROUP),
                    ),
                    topic_arn=state.identifier_of(ResourceKind.TOPIC),
                ),
                delete=lambda identifier: self._alarms.delete_alarms(identifier=identifier),
            ),
        ]

    # -----------------
    # Compensation
    # -----------------

    async def _fail(
        self,
        *,
        steps: list[SagaStep],
        state: ProvisioningState,
        cause: BaseException,
    ) -> ProvisioningFailedError:
        failed_step = _step_label(state.current_step)
        logger.error(
            "Provisioning for client %s failed at step %s: %s; rolling back %d resource(s)",
            state.client_id,
            failed_step,
            cause,
            len(state.created),
        )
        rollback_errors = await self._rollback(steps=steps, state=state)
        error = ProvisioningFailedError(
            client_id=state.client_id,
            failed_step=failed_step,
            cause=cause,
            rollback_errors=rollback_errors,
        )
        logger.error("%s. %s", error, error.rollback_summary())
        return error

    async def _rollback(self, *, steps: list[SagaStep], state: ProvisioningState) -> list[RollbackError]:
        # Shielded so that cancelling the caller cannot interrupt compensation.
        task = asyncio.ensure_future(self._compensate(steps=steps, state=state))
        self._pending_rollbacks.add(task)
        task.add_done_callback(self._pending_rollbacks.discard)
        return await asyncio.shield(task)

    async def _compensate(self, *, steps: list[SagaStep], state: ProvisioningState) -> list[RollbackError]:
        state.transition(ProvisioningPhase.ROLLING_BACK)
        steps_by_kind = {step.kind: step for step in steps}
        errors: list[RollbackError] = []

        while (resource := state.pop_latest()) is not None:
            logger.info("Rolling back %s: %s", resource.kind.value, resource.identifier)
            try:
                await steps_by_kind[resource.kind].delete(resource.identifier)
            except Exception as exc:
                logger.exception("Rollback of %s %s failed", resource.kind.value, resource.identifier)
                errors.append(RollbackError(resource.kind.value, resource.identifier, exc))

        state.transition(ProvisioningPhase.FAILED)
        if not errors:
            logger.info("Successfully cleaned up all resources for client: %s", state.client_id)
        return errors


def _step_label(kind: Optional[ResourceKind]) -> str:
    return kind.value if kind is not None else "startup"
