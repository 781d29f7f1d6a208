from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from client_provisioner.services.errors import ProvisioningFailedError, RollbackError
from client_provisioner.services.provisioning_state import ProvisioningResult, ResourceKind
from client_provisioner.services.setup.alarm_setup_service import split_alarm_names


class ProvisionRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., description="Client identifier embedded in resource names")
    client_name: str = Field(..., description="Human readable client name")


class ProvisionResponse(BaseModel):
    status: str = "success"
    client_id: str
    bucket_name: str
    role_arn: str
    log_group_name: str
    function_arn: str
    rule_arn: str
    topic_arn: str
    alarm_names: list[str]

    @staticmethod
    def from_result(result: ProvisioningResult) -> "ProvisionResponse":
        return ProvisionResponse(
            status=result.status,
            client_id=result.client_id,
            bucket_name=result.identifier(ResourceKind.BUCKET),
            role_arn=result.identifier(ResourceKind.ROLE),
            log_group_name=result.identifier(ResourceKind.LOG_GROUP),
            function_arn=result.identifier(ResourceKind.FUNCTION),
            rule_arn=result.identifier(ResourceKind.EVENT_RULE),
            topic_arn=result.identifier(ResourceKind.TOPIC),
            alarm_names=split_alarm_names(result.identifier(ResourceKind.ALARMS)),
        )


class RollbackFailure(BaseModel):
    kind: str
    identifier: str
    detail: str

    @staticmethod
    def from_error(error: RollbackError) -> "RollbackFailure":
        return RollbackFailure(kind=error.kind, identifier=error.identifier, detail=str(error.cause))


class ProvisionFailureResponse(BaseModel):
    status: str = "failed"
    client_id: str
    error_code: str
    failed_step: Optional[str] = None
    detail: str
    rollback_complete: bool
    rollback_summary: str
    rollback_failures: list[RollbackFailure] = Field(default_factory=list)

    @staticmethod
    def from_error(error: ProvisioningFailedError) -> "ProvisionFailureResponse":
        return ProvisionFailureResponse(
            client_id=error.client_id,
            error_code=error.code,
            failed_step=error.failed_step,
            detail=str(error.cause),
            rollback_complete=error.rollback_complete,
            rollback_summary=error.rollback_summary(),
            rollback_failures=[RollbackFailure.from_error(err) for err in error.rollback_errors],
        )


class ValidationErrorResponse(BaseModel):
    error_code: str
    detail: str


class HealthResponse(BaseModel):
    status: str
