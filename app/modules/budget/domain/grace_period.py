"""
Grace period tracking for over-budget conditions.

The first time an exceeded budget is seen, a `BudgetExceeded = 1` point is
written to CloudWatch. Later evaluations find the earliest such point within
the lookback window and keep hard enforcement deferred until
`first_exceeded + grace_period_hours` has passed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import structlog

from app.modules.budget.domain.alerting import BUDGET_EXCEEDED_METRIC, AlertingGateway
from app.modules.budget.domain.models import BudgetStatus, GraceState
from app.schemas.budget import BudgetConfig
from app.shared.adapters.base import MetricsAdapter

logger = structlog.get_logger()

LOOKBACK_WINDOW = timedelta(hours=24)
MARKER_PERIOD_SECONDS = 3600

NOT_IN_GRACE = GraceState(active=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def earliest_exceeded_at(datapoints: list[dict[str, Any]]) -> datetime | None:
    marked = [
        _as_utc(point["Timestamp"])
        for point in datapoints
        if point.get("Maximum") == 1 and point.get("Timestamp") is not None
    ]
    return min(marked) if marked else None


class GracePeriodTracker:
    def __init__(
        self,
        config: BudgetConfig,
        metrics: MetricsAdapter,
        gateway: AlertingGateway,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config
        self.metrics = metrics
        self.gateway = gateway
        self._clock = clock

    async def evaluate(self, status: BudgetStatus) -> GraceState:
        """
        Read-only grace evaluation.

        A read failure denies grace. `newly_exceeded` tells the caller that the
        exceeded marker still has to be written.
        """
        if not status.is_exceeded or not self.config.automatic_shutoff:
            return NOT_IN_GRACE

        now = self._clock()
        try:
            datapoints = await self.metrics.get_metric_statistics(
                self.config.metric_namespace,
                BUDGET_EXCEEDED_METRIC,
                start_time=now - LOOKBACK_WINDOW,
                end_time=now,
                period_seconds=MARKER_PERIOD_SECONDS,
                statistic="Maximum",
            )
            first_exceeded = earliest_exceeded_at(datapoints)
        except Exception as e:
            logger.error("grace_period_check_failed", error=str(e))
            return NOT_IN_GRACE

        if first_exceeded is None:
            logger.warning(
                "budget_exceeded_first_detected",
                grace_period_hours=self.config.grace_period_hours,
            )
            return GraceState(active=True, newly_exceeded=True)

        grace_end = first_exceeded + timedelta(hours=self.config.grace_period_hours)
        active = now < grace_end
        logger.info(
            "grace_period_evaluated",
            first_exceeded=first_exceeded.isoformat(),
            grace_end=grace_end.isoformat(),
            active=active,
        )
        return GraceState(active=active)

    async def record_budget_exceeded(self) -> bool:
        return await self.gateway.record_event_marker(BUDGET_EXCEEDED_METRIC)

    async def is_in_grace_period(self, status: BudgetStatus) -> bool:
        state = await self.evaluate(status)
        if state.newly_exceeded:
            # Fire-and-forget: the grace decision stands even if this write fails.
            await self.record_budget_exceeded()
        return state.active
