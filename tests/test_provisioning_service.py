"""Tests for the provisioning saga: ordering, rollback and failure classification."""
from __future__ import annotations

import asyncio
import dataclasses

import pytest

from client_provisioner.models.provisioning import ProvisionRequest
from client_provisioner.services.errors import (
    PermanentResourceError,
    ProvisioningFailedError,
    ProvisioningValidationError,
    TransientResourceError,
)
from client_provisioner.services.provisioning_service import ProvisioningService
from client_provisioner.services.provisioning_state import ResourceKind

from conftest import ACCOUNT_ID, CREATE_KINDS, no_sleep

ALL_KINDS = ["bucket", "role", "log_group", "function", "event_rule", "topic", "alarms"]


class TestSuccessfulProvisioning:
    @pytest.mark.asyncio
    async def test_creates_every_resource_in_dependency_order(self, service, fake_client, acme_request):
        result = await service.provision(acme_request)

        assert result.status == "success"
        assert fake_client.created_kinds() == ALL_KINDS
        assert [r.kind for r in result.resources] == list(ResourceKind)
        assert all(r.identifier for r in result.resources)
        assert fake_client.deleted_kinds() == []

    @pytest.mark.asyncio
    async def test_concrete_names_for_acme_in_dev(self, service, acme_request):
        result = await service.provision(acme_request)

        assert result.identifier(ResourceKind.BUCKET) == "dev-acme-bucket"
        assert result.identifier(ResourceKind.ROLE) == f"arn:aws:iam::{ACCOUNT_ID}:role/dev-acme-role"
        assert result.identifier(ResourceKind.LOG_GROUP) == "/dev/acme/logs"
        assert result.identifier(ResourceKind.FUNCTION).endswith(":function:dev-acme-log-processor")
        assert result.identifier(ResourceKind.EVENT_RULE).endswith(":rule/dev-acme-log-rule")
        assert result.identifier(ResourceKind.TOPIC).endswith(":dev-acme-alerts")

    @pytest.mark.asyncio
    async def test_readiness_configuration_runs_after_create(self, service, fake_client, acme_request):
        await service.provision(acme_request)
        methods = fake_client.methods()

        assert methods.index("create_bucket") < methods.index("bucket_exists") < methods.index("enable_bucket_versioning")
        assert methods.index("create_role") < methods.index("role_exists") < methods.index("put_role_policy")
        assert methods.index("put_role_policy") < methods.index("put_bucket_policy") < methods.index("create_log_group")
        assert methods.count("put_metric_alarm") == 2

    @pytest.mark.asyncio
    async def test_role_becomes_ready_on_second_poll(self, service, fake_client, acme_request):
        fake_client.ready_after["role_exists"] = 2

        await service.provision(acme_request)

        assert fake_client.polls["role_exists"] == 2

    @pytest.mark.asyncio
    async def test_policies_reference_sibling_resources(self, service, fake_client, acme_request):
        await service.provision(acme_request)

        role_policy = fake_client.policies["role:dev-acme-role"].to_dict()
        bucket_statement = role_policy["Statement"][0]
        assert bucket_statement["Resource"] == ["arn:aws:s3:::dev-acme-bucket", "arn:aws:s3:::dev-acme-bucket/*"]
        log_resources = role_policy["Statement"][1]["Resource"]
        assert any("/dev/acme/logs" in arn for arn in log_resources)
        assert any("/aws/lambda/dev-acme-log-processor" in arn for arn in log_resources)

        bucket_policy = fake_client.policies["bucket:dev-acme-bucket"].to_dict()
        assert bucket_policy["Statement"][0]["Principal"] == {"AWS": f"arn:aws:iam::{ACCOUNT_ID}:role/dev-acme-role"}


class TestRollback:
    @pytest.mark.asyncio
    async def test_function_failure_rolls_back_in_reverse_order(self, service, fake_client, acme_request):
        fake_client.fail("create_function", PermanentResourceError("role cannot be assumed"))

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        error = exc_info.value
        assert error.failed_step == "function"
        assert error.code == "PERMANENT"
        assert error.rollback_complete
        assert fake_client.deleted_kinds() == ["log_group", "role", "bucket"]
        for method in ("put_rule", "create_topic", "put_metric_alarm"):
            assert method not in fake_client.methods()
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_method", list(CREATE_KINDS))
    async def test_rollback_is_reverse_of_creation(self, service, fake_client, acme_request, failing_method):
        fake_client.fail(failing_method, TransientResourceError("throttled"))

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        created = fake_client.created_kinds()
        assert created[-1] == CREATE_KINDS[failing_method]
        assert fake_client.deleted_kinds() == list(reversed(created[:-1]))
        assert exc_info.value.failed_step == CREATE_KINDS[failing_method]
        assert exc_info.value.code == "TRANSIENT"
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    async def test_propagation_timeout_rolls_back_the_waited_resource(self, service, fake_client, acme_request):
        fake_client.ready_after["bucket_exists"] = 99

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.code == "PROPAGATION_TIMEOUT"
        assert exc_info.value.failed_step == "bucket"
        assert fake_client.polls["bucket_exists"] == 3
        assert fake_client.deleted_kinds() == ["bucket"]
        assert "create_role" not in fake_client.methods()

    @pytest.mark.asyncio
    async def test_target_attachment_failure_rolls_back_the_rule(self, service, fake_client, acme_request):
        fake_client.fail("put_targets", PermanentResourceError("bad target"))

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.failed_step == "event_rule"
        assert fake_client.deleted_kinds() == ["event_rule", "function", "log_group", "role", "bucket"]

    @pytest.mark.asyncio
    async def test_partial_alarm_creation_rolls_back_the_whole_unit(self, service, fake_client, acme_request):
        fake_client.fail(
            "put_metric_alarm",
            PermanentResourceError("invalid threshold"),
            name="dev-acme-log-volume-alarm",
        )

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.failed_step == "alarms"
        assert fake_client.deleted_kinds() == ["alarms", "topic", "event_rule", "function", "log_group", "role", "bucket"]
        assert ("delete_alarms", "dev-acme-error-rate-alarm,dev-acme-log-volume-alarm") in fake_client.calls
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    async def test_failed_delete_does_not_stop_remaining_deletes(self, service, fake_client, acme_request):
        fake_client.fail("create_function", PermanentResourceError("boom"))
        fake_client.fail("delete_role", PermanentResourceError("DeleteConflict"))

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        error = exc_info.value
        assert fake_client.deleted_kinds() == ["log_group", "role", "bucket"]
        assert not error.rollback_complete
        assert [(e.kind, e.identifier) for e in error.rollback_errors] == [
            ("role", f"arn:aws:iam::{ACCOUNT_ID}:role/dev-acme-role")
        ]
        assert str(error.cause) == "boom"
        assert error.code == "PERMANENT"
        assert "left behind" in error.rollback_summary()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_classified_internal(self, service, fake_client, acme_request):
        fake_client.fail("create_topic", RuntimeError("bug"))

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.code == "INTERNAL"
        assert fake_client.deleted_kinds() == ["event_rule", "function", "log_group", "role", "bucket"]


class TestReinvocation:
    @pytest.mark.asyncio
    async def test_second_run_after_success_conflicts_without_deleting(self, service, fake_client, acme_request):
        await service.provision(acme_request)

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.code == "CONFLICT"
        assert exc_info.value.failed_step == "bucket"
        assert fake_client.deleted_kinds() == []
        assert "dev-acme-bucket" in fake_client.existing["bucket"]

    @pytest.mark.asyncio
    async def test_second_run_after_rolled_back_failure_succeeds(self, service, fake_client, acme_request):
        fake_client.fail("create_topic", TransientResourceError("throttled"))
        with pytest.raises(ProvisioningFailedError):
            await service.provision(acme_request)

        fake_client.failures.clear()
        result = await service.provision(acme_request)

        assert result.status == "success"


class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "client_id, client_name",
        [
            ("", "Acme Corp"),
            ("Acme", "Acme Corp"),
            ("acme_corp", "Acme Corp"),
            ("-acme", "Acme Corp"),
            ("acme-", "Acme Corp"),
            ("a" * 33, "Acme Corp"),
            ("acme", ""),
            ("acme", "   "),
        ],
    )
    async def test_invalid_request_makes_no_remote_calls(self, service, fake_client, client_id, client_name):
        with pytest.raises(ProvisioningValidationError):
            await service.provision(ProvisionRequest(client_id=client_id, client_name=client_name))

        assert fake_client.calls == []


def _create_then_hang(fake_client, method, *, only_name=None, reached=None):
    """Replace a create call with one that creates the resource and then never returns."""
    create = getattr(fake_client, method)

    async def created_without_response(**kwargs):
        result = await create(**kwargs)
        if only_name is None or only_name in kwargs.values():
            if reached is not None:
                reached.set()
            await asyncio.Event().wait()
        return result

    setattr(fake_client, method, created_without_response)


def _with_deadline(config, fake_client, seconds=0.05):
    return ProvisioningService(
        config=dataclasses.replace(config, provisioning_timeout_seconds=seconds),
        client=fake_client,
        sleep=no_sleep,
    )


class TestCancellation:
    @pytest.mark.asyncio
    async def test_deadline_during_forward_pass_rolls_back(self, config, fake_client, acme_request):
        service = _with_deadline(config, fake_client)

        async def hanging_create_function(**kwargs):
            fake_client.calls.append(("create_function", kwargs["function_name"]))
            await asyncio.sleep(10)

        fake_client.create_function = hanging_create_function

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.code == "CANCELLED"
        assert exc_info.value.failed_step == "function"
        assert fake_client.deleted_kinds() == ["function", "log_group", "role", "bucket"]
        assert exc_info.value.rollback_complete
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("create_method", list(CREATE_KINDS))
    async def test_deadline_after_create_reached_aws_leaves_nothing(
        self, config, fake_client, acme_request, create_method
    ):
        _create_then_hang(fake_client, create_method)
        service = _with_deadline(config, fake_client)

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        kind = CREATE_KINDS[create_method]
        assert exc_info.value.code == "CANCELLED"
        assert exc_info.value.failed_step == kind
        assert fake_client.deleted_kinds()[0] == kind
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    async def test_deadline_while_second_alarm_pending_deletes_both(self, config, fake_client, acme_request):
        _create_then_hang(fake_client, "put_metric_alarm", only_name="dev-acme-log-volume-alarm")
        service = _with_deadline(config, fake_client)

        with pytest.raises(ProvisioningFailedError) as exc_info:
            await service.provision(acme_request)

        assert exc_info.value.failed_step == "alarms"
        assert ("delete_alarms", "dev-acme-error-rate-alarm,dev-acme-log-volume-alarm") in fake_client.calls
        assert exc_info.value.rollback_summary() == "All previously created resources were deleted."
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    async def test_task_cancellation_rolls_back_then_propagates(self, service, fake_client, acme_request):
        reached = asyncio.Event()

        async def blocking_put_rule(**kwargs):
            fake_client.calls.append(("put_rule", kwargs["rule_name"]))
            reached.set()
            await asyncio.Event().wait()

        fake_client.put_rule = blocking_put_rule

        task = asyncio.create_task(service.provision(acme_request))
        await reached.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert fake_client.deleted_kinds() == ["event_rule", "function", "log_group", "role", "bucket"]
        assert fake_client.remaining() == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("create_method", list(CREATE_KINDS))
    async def test_task_cancellation_after_create_reached_aws_leaves_nothing(
        self, service, fake_client, acme_request, create_method
    ):
        reached = asyncio.Event()
        _create_then_hang(fake_client, create_method, reached=reached)

        task = asyncio.create_task(service.provision(acme_request))
        await reached.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert fake_client.deleted_kinds()[0] == CREATE_KINDS[create_method]
        assert fake_client.remaining() == {}
