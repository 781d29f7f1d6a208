"""Setup (provisioning) services.

One service per AWS resource kind. Each knows how to create its resource,
wait for it where AWS is eventually consistent, configure it and delete it
idempotently. Ordering and rollback live in ProvisioningService.
"""

from client_provisioner.services.setup.alarm_setup_service import (
    AlarmDefinition,
    AlarmSetupService,
    client_alarms,
    join_alarm_names,
)
from client_provisioner.services.setup.bucket_setup_service import BucketSetupService
from client_provisioner.services.setup.event_rule_setup_service import EventRuleSetupService
from client_provisioner.services.setup.function_setup_service import FunctionSetupService
from client_provisioner.services.setup.log_group_setup_service import LogGroupSetupService
from client_provisioner.services.setup.role_setup_service import RoleSetupService
from client_provisioner.services.setup.topic_setup_service import TopicSetupService

__all__ = [
    "AlarmDefinition",
    "AlarmSetupService",
    "BucketSetupService",
    "EventRuleSetupService",
    "FunctionSetupService",
    "LogGroupSetupService",
    "RoleSetupService",
    "TopicSetupService",
    "client_alarms",
    "join_alarm_names",
]
