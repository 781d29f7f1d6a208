from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    BUCKET = "bucket"
    ROLE = "role"
    LOG_GROUP = "log_group"
    FUNCTION = "function"
    EVENT_RULE = "event_rule"
    TOPIC = "topic"
    ALARMS = "alarms"


class ProvisioningPhase(str, Enum):
    NOT_STARTED = "not_started"
    CREATING = "creating"
    SUCCEEDED = "succeeded"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[ProvisioningPhase, frozenset[ProvisioningPhase]] = {
    ProvisioningPhase.NOT_STARTED: frozenset({ProvisioningPhase.CREATING, ProvisioningPhase.ROLLING_BACK}),
    ProvisioningPhase.CREATING: frozenset(
        {ProvisioningPhase.CREATING, ProvisioningPhase.SUCCEEDED, ProvisioningPhase.ROLLING_BACK}
    ),
    ProvisioningPhase.ROLLING_BACK: frozenset({ProvisioningPhase.FAILED}),
    ProvisioningPhase.SUCCEEDED: frozenset(),
    ProvisioningPhase.FAILED: frozenset(),
}


class InvalidPhaseTransition(ValueError):
    def __init__(self, from_phase: ProvisioningPhase, to_phase: ProvisioningPhase) -> None:
        self.from_phase = from_phase
        self.to_phase = to_phase
        super().__init__(f"invalid phase transition: {from_phase.value!r} -> {to_phase.value!r}")


@dataclass(frozen=True)
class CreatedResource:
    kind: ResourceKind
    identifier: str


@dataclass
class ProvisioningState:
    """Book-keeping of one provisioning attempt.

    `created` is append-only during the forward pass and only ever holds
    resources whose creation call returned successfully; rollback pops it
    from the end.
    """

    client_id: str
    phase: ProvisioningPhase = ProvisioningPhase.NOT_STARTED
    current_step: Optional[ResourceKind] = None
    created: list[CreatedResource] = field(default_factory=list)

    def transition(self, to_phase: ProvisioningPhase) -> None:
        if to_phase not in _ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidPhaseTransition(self.phase, to_phase)
        logger.debug("Provisioning %s: %s -> %s", self.client_id, self.phase.value, to_phase.value)
        self.phase = to_phase

    def begin_step(self, kind: ResourceKind) -> None:
        self.transition(ProvisioningPhase.CREATING)
        self.current_step = kind

    def record(self, kind: ResourceKind, identifier: str) -> None:
        if self.phase is not ProvisioningPhase.CREATING:
            raise InvalidPhaseTransition(self.phase, ProvisioningPhase.CREATING)
        if any(resource.kind is kind for resource in self.created):
            raise ValueError(f"{kind.value} already recorded for {self.client_id}")
        self.created.append(CreatedResource(kind=kind, identifier=identifier))

    def identifier_of(self, kind: ResourceKind) -> str:
        """Identifier returned by an already completed step.

        Raises:
            KeyError: the step has not produced a resource (yet).
        """

        for resource in self.created:
            if resource.kind is kind:
                return resource.identifier
        raise KeyError(kind.value)

    def pop_latest(self) -> Optional[CreatedResource]:
        return self.created.pop() if self.created else None


@dataclass(frozen=True)
class ProvisioningResult:
    client_id: str
    client_name: str
    resources: tuple[CreatedResource, ...]
    status: str = "success"

    def identifier(self, kind: ResourceKind) -> str:
        for resource in self.resources:
            if resource.kind is kind:
                return resource.identifier
        raise KeyError(kind.value)
