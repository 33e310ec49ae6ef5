"""
Current-period spend.

Cost Explorer is the source of truth; when it fails the spend is estimated
from Lambda invocation counts, and when that fails too the spend is 0.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import structlog

from app.shared.adapters.base import BillingAdapter, MetricsAdapter
from app.shared.core.ops_metrics import BUDGET_SPEND_SOURCE_TOTAL

logger = structlog.get_logger()

# Rough Lambda pricing used by the invocation-count estimator.
COST_PER_INVOCATION_USD = Decimal("0.0000002")
COST_PER_GB_SECOND_USD = Decimal("0.0000166667")
ASSUMED_AVG_DURATION_SECONDS = Decimal("0.5")

LAMBDA_NAMESPACE = "AWS/Lambda"
INVOCATIONS_METRIC = "Invocations"
DAILY_PERIOD_SECONDS = 86400


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def current_month_window(now: datetime) -> tuple[date, date]:
    """First and last calendar day of the month containing `now`."""
    last_day = calendar.monthrange(now.year, now.month)[1]
    return date(now.year, now.month, 1), date(now.year, now.month, last_day)


def sum_blended_cost(results_by_time: list[dict[str, Any]]) -> Decimal:
    """
    Sum BlendedCost over every service group of the first result bucket.

    Raises ValueError on a response that does not have the expected shape.
    """
    if not results_by_time:
        return Decimal("0")
    groups = results_by_time[0].get("Groups") or []
    if not isinstance(groups, list):
        raise ValueError("Cost Explorer Groups is not a list")

    total = Decimal("0")
    for group in groups:
        amount = (
            group.get("Metrics", {}).get("BlendedCost", {}).get("Amount") or "0"
        )
        try:
            total += Decimal(str(amount))
        except InvalidOperation as exc:
            raise ValueError(f"Unparseable BlendedCost amount: {amount!r}") from exc
    return total


class SpendReader:
    def __init__(
        self,
        billing: BillingAdapter,
        metrics: MetricsAdapter,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.billing = billing
        self.metrics = metrics
        self._clock = clock

    async def get_current_period_spend(self) -> Decimal:
        now = self._clock()
        start, end = current_month_window(now)
        try:
            results = await self.billing.get_cost_and_usage(start, end)
            spend = sum_blended_cost(results)
        except Exception as e:
            logger.warning(
                "current_spend_cost_explorer_failed",
                start=start.isoformat(),
                end=end.isoformat(),
                error=str(e),
            )
            return await self._estimate_from_invocations(now)

        BUDGET_SPEND_SOURCE_TOTAL.labels(source="cost_explorer").inc()
        logger.debug("current_spend_resolved", source="cost_explorer", spend=str(spend))
        return spend

    async def _estimate_from_invocations(self, now: datetime) -> Decimal:
        month_start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
        try:
            datapoints = await self.metrics.get_metric_statistics(
                LAMBDA_NAMESPACE,
                INVOCATIONS_METRIC,
                start_time=month_start,
                end_time=now,
                period_seconds=DAILY_PERIOD_SECONDS,
                statistic="Sum",
            )
            invocations = sum(
                (Decimal(str(point.get("Sum") or 0)) for point in datapoints),
                Decimal("0"),
            )
        except Exception as e:
            logger.error("current_spend_estimate_failed", error=str(e))
            BUDGET_SPEND_SOURCE_TOTAL.labels(source="unavailable").inc()
            return Decimal("0")

        estimate = (
            invocations * COST_PER_INVOCATION_USD
            + invocations * ASSUMED_AVG_DURATION_SECONDS * COST_PER_GB_SECOND_USD
        )
        BUDGET_SPEND_SOURCE_TOTAL.labels(source="cloudwatch_estimate").inc()
        logger.info(
            "current_spend_estimated",
            invocations=str(invocations),
            estimate=str(estimate),
        )
        return estimate
