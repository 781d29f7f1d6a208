from __future__ import annotations

from typing import Optional


class ProvisionerError(RuntimeError):
    """Base class for every error raised by the provisioning service layer."""

    code: str = "INTERNAL"


class ProvisioningValidationError(ProvisionerError, ValueError):
    code = "VALIDATION_ERROR"


class ResourceError(ProvisionerError):
    """A remote resource-management call failed.

    `operation` is the remote API operation name (e.g. "CreateBucket") and
    `aws_code` the error code reported by AWS, when there is one.
    """

    code = "REMOTE_ERROR"

    def __init__(self, message: str, *, operation: Optional[str] = None, aws_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.aws_code = aws_code


class TransientResourceError(ResourceError):
    code = "TRANSIENT"


class ResourceConflictError(ResourceError):
    code = "CONFLICT"


class ResourceNotFoundError(ResourceError):
    code = "NOT_FOUND"


class PermanentResourceError(ResourceError):
    code = "PERMANENT"


class PropagationTimeoutError(ProvisionerError):
    code = "PROPAGATION_TIMEOUT"

    def __init__(self, description: str, *, attempts: int) -> None:
        super().__init__(f"{description} did not become ready after {attempts} attempts")
        self.description = description
        self.attempts = attempts


class ProvisioningCancelledError(ProvisionerError):
    code = "CANCELLED"


class IncompleteCreateError(ProvisionerError):
    """The resource exists remotely but a later call of the same step failed.

    Raised by setup services so the orchestrator still records `identifier`
    for rollback before surfacing `cause`.
    """

    def __init__(self, identifier: str, cause: BaseException) -> None:
        super().__init__(f"{identifier} was created but could not be completed: {cause}")
        self.identifier = identifier
        self.cause = cause

    @property
    def code(self) -> str:  # type: ignore[override]
        return error_code(self.cause)


class RollbackError(ProvisionerError):
    code = "ROLLBACK_ERROR"

    def __init__(self, kind: str, identifier: str, cause: BaseException) -> None:
        super().__init__(f"failed to delete {kind} {identifier}: {cause}")
        self.kind = kind
        self.identifier = identifier
        self.cause = cause


class ProvisioningFailedError(ProvisionerError):
    """Terminal failure of one provisioning attempt.

    `cause` is always the error that stopped the forward pass; rollback failures
    are attached as `rollback_errors` and never replace it.
    """

    def __init__(
        self,
        *,
        client_id: str,
        failed_step: Optional[str],
        cause: BaseException,
        rollback_errors: Optional[list[RollbackError]] = None,
    ) -> None:
        self.client_id = client_id
        self.failed_step = failed_step
        self.cause = cause
        self.rollback_errors = list(rollback_errors or [])
        step = failed_step or "validation"
        super().__init__(f"Provisioning failed for client {client_id} at step {step}: {cause}")

    @property
    def code(self) -> str:  # type: ignore[override]
        return error_code(self.cause)

    @property
    def rollback_complete(self) -> bool:
        return not self.rollback_errors

    def rollback_summary(self) -> str:
        if not self.rollback_errors:
            return "All previously created resources were deleted."
        failures = "; ".join(str(err) for err in self.rollback_errors)
        return f"Cleanup incomplete, {len(self.rollback_errors)} resource(s) left behind: {failures}"


def error_code(exc: BaseException) -> str:
    if isinstance(exc, ProvisionerError):
        return exc.code
    return ProvisionerError.code
