"""
Alerting / Metrics Gateway

Formats and dispatches budget notifications, writes cost time-series points
and provisions the per-threshold CloudWatch alarms.

Every public method swallows backend failures after logging them: a broken
notification path must never take the caller down with it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

import structlog

from app.modules.budget.domain.models import (
    SEVERITY_BY_HEALTH,
    BudgetStatus,
    CostAlert,
)
from app.schemas.budget import BudgetConfig, format_threshold
from app.shared.adapters.base import AlarmAdapter, MetricsAdapter, NotificationAdapter
from app.shared.core.ops_metrics import (
    BUDGET_ALERTS_SENT_TOTAL,
    BUDGET_GATEWAY_FAILURES_TOTAL,
)

logger = structlog.get_logger()

BUDGET_EXCEEDED_METRIC = "BudgetExceeded"
SERVICE_SHUTDOWN_METRIC = "ServiceShutdown"

ALARM_PERIOD_SECONDS = 86400
ALARM_EVALUATION_PERIODS = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def alarm_name_for(prefix: str, threshold: float) -> str:
    return f"{prefix}-{format_threshold(threshold)}Percent"


def format_alert_message(status: BudgetStatus, timestamp: datetime) -> str:
    if status.is_shutdown_required:
        guidance = (
            "AUTOMATIC SHUTDOWN REQUIRED: Budget limit exceeded. "
            "Services will be disabled."
        )
    else:
        guidance = "Monitor usage closely to avoid exceeding budget limits."

    return "\n".join(
        [
            "Kiro Kaiju Refactor Rampage - Budget Alert",
            "",
            f"Status: {status.status.value.upper()}",
            f"Current Spending: ${status.current_spending:.2f}",
            f"Budget Limit: ${status.budget_limit:.2f}",
            f"Percentage Used: {status.percentage_used:.1f}%",
            f"Remaining Budget: ${status.remaining_budget:.2f}",
            "",
            guidance,
            "",
            f"Alert Level: {format_threshold(status.alert_level)}%",
            f"Timestamp: {timestamp.isoformat()}",
        ]
    )


def build_cost_alert(status: BudgetStatus, timestamp: datetime) -> CostAlert:
    return CostAlert(
        timestamp=timestamp,
        alert_level=status.alert_level,
        current_spending=status.current_spending,
        budget_limit=status.budget_limit,
        percentage_used=status.percentage_used,
        severity=SEVERITY_BY_HEALTH[status.status],
        message=format_alert_message(status, timestamp),
    )


class AlertingGateway:
    def __init__(
        self,
        config: BudgetConfig,
        metrics: MetricsAdapter,
        alarms: AlarmAdapter,
        notifier: NotificationAdapter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.metrics = metrics
        self.alarms = alarms
        self.notifier = notifier
        self._clock = clock

    async def send_cost_alert(self, status: BudgetStatus) -> CostAlert | None:
        """Publish a budget alert; returns the alert sent, or None."""
        topic_arn = self.config.sns_topic_arn
        if not topic_arn:
            logger.warning("cost_alert_skipped_no_channel", status=status.status.value)
            return None

        alert = build_cost_alert(status, self._clock())
        subject = f"Kiro Kaiju Budget Alert - {status.status.value.upper()}"
        try:
            await self.notifier.publish(topic_arn, subject, alert.message)
        except Exception as e:
            BUDGET_GATEWAY_FAILURES_TOTAL.labels(operation="send_cost_alert").inc()
            logger.error(
                "cost_alert_failed",
                status=status.status.value,
                severity=alert.severity.value,
                error=str(e),
            )
            return None

        BUDGET_ALERTS_SENT_TOTAL.labels(severity=alert.severity.value).inc()
        logger.info(
            "cost_alert_sent",
            status=status.status.value,
            severity=alert.severity.value,
            alert_level=alert.alert_level,
        )
        return alert

    async def record_cost_metrics(self, amount: Decimal | float, tag: str) -> bool:
        """Write one cost point tagged with `tag`; returns False on failure."""
        try:
            await self.metrics.put_metric_point(
                self.config.metric_namespace,
                self.config.cost_metric_name,
                float(amount),
                timestamp=self._clock(),
                dimensions={"Service": tag},
            )
        except Exception as e:
            BUDGET_GATEWAY_FAILURES_TOTAL.labels(operation="record_cost_metrics").inc()
            logger.error("cost_metric_record_failed", tag=tag, error=str(e))
            return False
        return True

    async def record_event_marker(self, metric_name: str) -> bool:
        """Write a single `<metric_name> = 1` point; returns False on failure."""
        try:
            await self.metrics.put_metric_point(
                self.config.metric_namespace,
                metric_name,
                1.0,
                timestamp=self._clock(),
            )
        except Exception as e:
            BUDGET_GATEWAY_FAILURES_TOTAL.labels(operation="record_event_marker").inc()
            logger.error("budget_marker_record_failed", metric=metric_name, error=str(e))
            return False
        return True

    def _alarm_actions(self, threshold: float) -> list[str]:
        monitoring = self.config.cloud_watch
        if monitoring:
            action = monitoring.alert_actions.get(format_threshold(threshold))
            if action:
                return [action]
        return [self.config.sns_topic_arn] if self.config.sns_topic_arn else []

    async def setup_monitoring_alarms(self) -> list[str]:
        """Create one alarm per alert threshold; returns the names created."""
        monitoring = self.config.cloud_watch
        if not monitoring or not monitoring.enabled:
            logger.info("monitoring_alarms_skipped_disabled")
            return []

        created: list[str] = []
        for threshold in self.config.alert_thresholds:
            alarm_name = alarm_name_for(monitoring.alarm_prefix, threshold)
            threshold_amount = self.config.monthly_limit * Decimal(str(threshold)) / 100
            try:
                await self.alarms.put_metric_alarm(
                    AlarmName=alarm_name,
                    AlarmDescription=(
                        f"Budget alert when spending exceeds "
                        f"{format_threshold(threshold)}% (${threshold_amount:.2f})"
                    ),
                    MetricName=monitoring.cost_metric_name,
                    Namespace=monitoring.metric_namespace,
                    Statistic="Maximum",
                    Period=ALARM_PERIOD_SECONDS,
                    EvaluationPeriods=ALARM_EVALUATION_PERIODS,
                    Threshold=float(threshold_amount),
                    ComparisonOperator="GreaterThanThreshold",
                    AlarmActions=self._alarm_actions(threshold),
                    TreatMissingData="notBreaching",
                )
            except Exception as e:
                BUDGET_GATEWAY_FAILURES_TOTAL.labels(
                    operation="setup_monitoring_alarms"
                ).inc()
                logger.error("monitoring_alarm_create_failed", alarm=alarm_name, error=str(e))
                continue
            created.append(alarm_name)
            logger.info("monitoring_alarm_created", alarm=alarm_name)
        return created

    async def remove_monitoring_alarms(self) -> list[str]:
        """Delete every alarm under the configured prefix; returns the names removed."""
        monitoring = self.config.cloud_watch
        if not monitoring or not monitoring.enabled:
            return []

        try:
            names = await self.alarms.list_alarm_names(monitoring.alarm_prefix)
            if names:
                await self.alarms.delete_alarms(names)
        except Exception as e:
            BUDGET_GATEWAY_FAILURES_TOTAL.labels(
                operation="remove_monitoring_alarms"
            ).inc()
            logger.error(
                "monitoring_alarm_remove_failed",
                prefix=monitoring.alarm_prefix,
                error=str(e),
            )
            return []

        if names:
            logger.info("monitoring_alarms_removed", alarms=names)
        return names
