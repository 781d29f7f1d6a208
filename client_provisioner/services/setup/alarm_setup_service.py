from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from client_provisioner.services.aws_resource_client import AwsResourceClient
from client_provisioner.services.errors import IncompleteCreateError
from client_provisioner.services.setup.idempotent import ignore_missing

logger = logging.getLogger(__name__)

ALARM_NAME_SEPARATOR = ","


@dataclass(frozen=True)
class AlarmDefinition:
    alarm_name: str
    description: str
    namespace: str
    metric_name: str
    dimensions: dict[str, str]
    period_seconds: int
    evaluation_periods: int
    threshold: float


def client_alarms(
    *,
    error_rate_alarm_name: str,
    log_volume_alarm_name: str,
    client_id: str,
    log_group_name: str,
) -> tuple[AlarmDefinition, AlarmDefinition]:
    return (
        AlarmDefinition(
            alarm_name=error_rate_alarm_name,
            description="Alert when error rate exceeds threshold",
            namespace="Custom/ClientLogs",
            metric_name="ErrorCount",
            dimensions={"ClientID": client_id},
            period_seconds=300,
            evaluation_periods=1,
            threshold=10,
        ),
        AlarmDefinition(
            alarm_name=log_volume_alarm_name,
            description="Alert on unusual log volume",
            namespace="AWS/Logs",
            metric_name="IncomingLogEvents",
            dimensions={"LogGroupName": log_group_name},
            period_seconds=300,
            evaluation_periods=2,
            threshold=1000,
        ),
    )


def join_alarm_names(alarm_names: Sequence[str]) -> str:
    return ALARM_NAME_SEPARATOR.join(alarm_names)


def split_alarm_names(identifier: str) -> list[str]:
    return [name for name in identifier.split(ALARM_NAME_SEPARATOR) if name]


class AlarmSetupService:
    """Error-rate and log-volume alarms notifying the client topic.

    The alarms are one unit for rollback: the identifier of the step is the
    joined alarm names, and deleting it deletes every alarm of the unit.
    """

    def __init__(self, *, client: AwsResourceClient) -> None:
        self._client = client

    async def create_alarms(self, *, alarms: Sequence[AlarmDefinition], topic_arn: str) -> str:
        logger.info("Setting up CloudWatch Alarms: %s", ", ".join(a.alarm_name for a in alarms))
        identifier = join_alarm_names([alarm.alarm_name for alarm in alarms])

        results = await asyncio.gather(
            *(self._put_alarm(alarm, topic_arn=topic_arn) for alarm in alarms),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if not failures:
            return identifier

        for result in failures:
            if not isinstance(result, Exception):
                raise result

        if len(failures) < len(results):
            raise IncompleteCreateError(identifier, failures[0])
        raise failures[0]

    async def _put_alarm(self, alarm: AlarmDefinition, *, topic_arn: str) -> str:
        return await self._client.put_metric_alarm(
            alarm_name=alarm.alarm_name,
            description=alarm.description,
            namespace=alarm.namespace,
            metric_name=alarm.metric_name,
            dimensions=alarm.dimensions,
            period_seconds=alarm.period_seconds,
            evaluation_periods=alarm.evaluation_periods,
            threshold=alarm.threshold,
            alarm_actions=[topic_arn],
        )

    async def delete_alarms(self, *, identifier: str) -> None:
        alarm_names = split_alarm_names(identifier)
        logger.info("Deleting CloudWatch Alarms: %s", ", ".join(alarm_names))
        await ignore_missing(
            self._client.delete_alarms(alarm_names=alarm_names),
            description=f"alarms {', '.join(alarm_names)}",
        )
