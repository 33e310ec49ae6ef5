from __future__ import annotations

from decimal import Decimal

import structlog

from app.modules.budget.domain.models import BudgetHealth, BudgetStatus
from app.modules.budget.domain.spend_reader import SpendReader
from app.schemas.budget import BudgetConfig
from app.shared.core.ops_metrics import (
    BUDGET_PERCENT_USED,
    BUDGET_REMAINING_USD,
    BUDGET_STATUS_EVALUATIONS_TOTAL,
)

logger = structlog.get_logger()

# Highest first. A crossed threshold below the last row raises the alert
# level without raising the status above OK.
SEVERITY_TABLE: tuple[tuple[float, BudgetHealth], ...] = (
    (95.0, BudgetHealth.CRITICAL),
    (80.0, BudgetHealth.WARNING),
)


def severity_for_threshold(threshold: float) -> BudgetHealth:
    for minimum, health in SEVERITY_TABLE:
        if threshold >= minimum:
            return health
    return BudgetHealth.OK


def classify_spend(spend: Decimal, config: BudgetConfig) -> BudgetStatus:
    """
    Derive a BudgetStatus from current spend.

    The highest configured threshold not above the percentage used sets the
    alert level and, through SEVERITY_TABLE, the status. Reaching 100% of the
    limit always means EXCEEDED, whatever the thresholds say.
    """
    if not isinstance(spend, Decimal):
        spend = Decimal(str(spend))
    limit = config.monthly_limit
    percentage_used = float(spend / limit * 100)

    status = BudgetHealth.OK
    alert_level = 0.0
    for threshold in sorted(config.alert_thresholds, reverse=True):
        if percentage_used >= threshold:
            alert_level = threshold
            status = severity_for_threshold(threshold)
            break

    if percentage_used >= 100:
        status = BudgetHealth.EXCEEDED

    return BudgetStatus(
        current_spending=spend,
        budget_limit=limit,
        percentage_used=percentage_used,
        status=status,
        alert_level=alert_level,
        remaining_budget=max(Decimal("0"), limit - spend),
        is_shutdown_required=(
            status is BudgetHealth.EXCEEDED and config.automatic_shutoff
        ),
    )


class BudgetClassifier:
    """Turns the live spend figure into a BudgetStatus on every call."""

    def __init__(self, config: BudgetConfig, spend_reader: SpendReader):
        self.config = config
        self.spend_reader = spend_reader

    async def get_budget_status(self) -> BudgetStatus:
        spend = await self.spend_reader.get_current_period_spend()
        status = classify_spend(spend, self.config)

        BUDGET_STATUS_EVALUATIONS_TOTAL.labels(status=status.status.value).inc()
        BUDGET_PERCENT_USED.set(status.percentage_used)
        BUDGET_REMAINING_USD.set(float(status.remaining_budget))
        logger.debug(
            "budget_status_evaluated",
            status=status.status.value,
            percentage_used=round(status.percentage_used, 2),
            alert_level=status.alert_level,
        )
        return status
