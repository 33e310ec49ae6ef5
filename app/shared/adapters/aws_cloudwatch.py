"""
AWS CloudWatch adapter.

Covers both the metrics read/write interface and alarm management; both are
served by the same CloudWatch API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.shared.adapters.aws_utils import (
    build_boto_config,
    get_boto_session,
    resolve_aws_region_hint,
)
from app.shared.adapters.base import AlarmAdapter, MetricsAdapter
from app.shared.core.exceptions import AdapterError

logger = structlog.get_logger()

# DeleteAlarms accepts at most 100 names per call.
DELETE_ALARMS_BATCH_SIZE = 100


class CloudWatchAdapter(MetricsAdapter, AlarmAdapter):
    def __init__(
        self,
        region: Optional[str] = None,
        session: Optional[aioboto3.Session] = None,
    ):
        self.region = resolve_aws_region_hint(region)
        self.session = session or get_boto_session()

    def _client(self) -> Any:
        return self.session.client(
            "cloudwatch", region_name=self.region, config=build_boto_config()
        )

    def _wrap(self, operation: str, exc: Exception) -> AdapterError:
        self._set_last_error_from_exception(exc, prefix=operation)
        logger.warning("cloudwatch_call_failed", operation=operation, error=str(exc))
        return AdapterError(
            f"CloudWatch {operation} failed: {exc}",
            details={"operation": operation, "region": self.region},
        )

    async def put_metric_point(
        self,
        namespace: str,
        metric_name: str,
        value: float,
        *,
        timestamp: datetime,
        dimensions: Optional[Dict[str, str]] = None,
    ) -> None:
        self._clear_last_error()
        datum: Dict[str, Any] = {
            "MetricName": metric_name,
            "Value": float(value),
            "Unit": "None",
            "Timestamp": timestamp,
        }
        if dimensions:
            datum["Dimensions"] = [
                {"Name": name, "Value": dim_value}
                for name, dim_value in dimensions.items()
            ]
        try:
            async with self._client() as cloudwatch:
                await cloudwatch.put_metric_data(
                    Namespace=namespace, MetricData=[datum]
                )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("put_metric_data", e) from e

    async def get_metric_statistics(
        self,
        namespace: str,
        metric_name: str,
        *,
        start_time: datetime,
        end_time: datetime,
        period_seconds: int,
        statistic: str,
    ) -> List[Dict[str, Any]]:
        self._clear_last_error()
        try:
            async with self._client() as cloudwatch:
                response = await cloudwatch.get_metric_statistics(
                    Namespace=namespace,
                    MetricName=metric_name,
                    StartTime=start_time,
                    EndTime=end_time,
                    Period=period_seconds,
                    Statistics=[statistic],
                )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("get_metric_statistics", e) from e
        return list(response.get("Datapoints") or [])

    async def put_metric_alarm(self, **alarm: Any) -> None:
        self._clear_last_error()
        try:
            async with self._client() as cloudwatch:
                await cloudwatch.put_metric_alarm(**alarm)
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("put_metric_alarm", e) from e

    async def list_alarm_names(self, prefix: str) -> List[str]:
        self._clear_last_error()
        names: List[str] = []
        try:
            async with self._client() as cloudwatch:
                paginator = cloudwatch.get_paginator("describe_alarms")
                async for page in paginator.paginate(AlarmNamePrefix=prefix):
                    names.extend(
                        alarm["AlarmName"]
                        for alarm in page.get("MetricAlarms", [])
                        if alarm.get("AlarmName")
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("describe_alarms", e) from e
        return names

    async def delete_alarms(self, alarm_names: Sequence[str]) -> None:
        self._clear_last_error()
        names = list(alarm_names)
        if not names:
            return
        try:
            async with self._client() as cloudwatch:
                for i in range(0, len(names), DELETE_ALARMS_BATCH_SIZE):
                    await cloudwatch.delete_alarms(
                        AlarmNames=names[i : i + DELETE_ALARMS_BATCH_SIZE]
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._wrap("delete_alarms", e) from e
