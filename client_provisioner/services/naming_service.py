"""Deterministic resource naming.

Every name is derived from (environment, client_id) only, so a rollback or a
later cleanup can always find the resources created for a client:

    dev + acme -> dev-acme-bucket, dev-acme-role, /dev/acme/logs, ...

`environment` never contains hyphens (see ProvisionerConfig), which keeps the
mapping injective for client ids made of lowercase letters, digits and hyphens.
Validation of `client_id` happens before names are derived.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResourceNames:
    bucket_name: str
    role_name: str
    role_policy_name: str
    log_group_name: str
    function_name: str
    rule_name: str
    topic_name: str
    error_rate_alarm_name: str
    log_volume_alarm_name: str

    @property
    def alarm_names(self) -> tuple[str, str]:
        return (self.error_rate_alarm_name, self.log_volume_alarm_name)


def resource_names(environment: str, client_id: str) -> ResourceNames:
    prefix = f"{environment}-{client_id}"
    role_name = f"{prefix}-role"
    return ResourceNames(
        bucket_name=f"{prefix}-bucket",
        role_name=role_name,
        role_policy_name=f"{role_name}-policy",
        log_group_name=f"/{environment}/{client_id}/logs",
        function_name=f"{prefix}-log-processor",
        rule_name=f"{prefix}-log-rule",
        topic_name=f"{prefix}-alerts",
        error_rate_alarm_name=f"{prefix}-error-rate-alarm",
        log_volume_alarm_name=f"{prefix}-log-volume-alarm",
    )
