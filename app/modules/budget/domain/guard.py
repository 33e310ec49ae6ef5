from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from app.modules.budget.domain.classifier import BudgetClassifier
from app.modules.budget.domain.models import GuardDecision
from app.schemas.budget import BudgetConfig
from app.shared.core.exceptions import BudgetExceededError
from app.shared.core.ops_metrics import BUDGET_GUARD_DECISIONS_TOTAL
from app.shared.core.timeout import TimeoutManager

logger = structlog.get_logger()

REASON_BUDGET_EXCEEDED = "Monthly budget limit exceeded"
REASON_EXCEEDS_REMAINING = "Operation would exceed remaining budget"
REASON_EXCEEDS_PER_REQUEST = "Operation cost exceeds maximum per-request limit"

ALLOWED = GuardDecision(allowed=True)


def _parse_cost(value: Any) -> Decimal | None:
    """Decimal cost, or None when the value is not a number."""
    try:
        cost = Decimal(str(value))
    except InvalidOperation:
        return None
    if cost.is_nan():
        return None
    return cost


class BudgetGuard:
    """
    Synchronous pre-check run before every cost-incurring operation.

    Fails open: when the budget status cannot be determined in time the
    operation is allowed.
    """

    def __init__(
        self,
        config: BudgetConfig,
        classifier: BudgetClassifier,
        timeout_seconds: float | None = None,
    ):
        self.config = config
        self.classifier = classifier
        self.timeout = TimeoutManager("budget_guard", total_seconds=timeout_seconds)

    def _deny(self, reason: str, estimated_cost: Decimal) -> GuardDecision:
        BUDGET_GUARD_DECISIONS_TOTAL.labels(decision="deny", reason=reason).inc()
        logger.warning(
            "budget_guard_denied", reason=reason, estimated_cost=str(estimated_cost)
        )
        return GuardDecision(
            allowed=False,
            reason=reason,
            fallback_options=self.config.fallback_options,
        )

    async def check_before_operation(
        self, estimated_cost: Decimal | float = Decimal("0")
    ) -> GuardDecision:
        cost = _parse_cost(estimated_cost)
        if cost is None:
            # Unpriceable estimate: same fail-open policy as an unknown status.
            BUDGET_GUARD_DECISIONS_TOTAL.labels(decision="allow", reason="invalid_cost").inc()
            logger.error("budget_guard_invalid_cost", estimated_cost=repr(estimated_cost))
            return ALLOWED

        try:
            status = await self.timeout.execute_with_timeout(
                self.classifier.get_budget_status
            )
        except Exception as e:
            BUDGET_GUARD_DECISIONS_TOTAL.labels(
                decision="allow", reason="status_unavailable"
            ).inc()
            logger.error("budget_guard_check_failed_open", error=str(e))
            return ALLOWED

        if status.is_exceeded:
            return self._deny(REASON_BUDGET_EXCEEDED, cost)
        if cost > status.remaining_budget:
            return self._deny(REASON_EXCEEDS_REMAINING, cost)
        if cost > self.config.cost_optimization.max_cost_per_request:
            return self._deny(REASON_EXCEEDS_PER_REQUEST, cost)

        BUDGET_GUARD_DECISIONS_TOTAL.labels(decision="allow", reason="within_budget").inc()
        return ALLOWED

    async def require_operation_allowed(
        self, estimated_cost: Decimal | float = Decimal("0")
    ) -> None:
        """Raise BudgetExceededError when the pre-check denies the operation."""
        decision = await self.check_before_operation(estimated_cost)
        if decision.allowed:
            return
        raise BudgetExceededError(
            decision.reason or REASON_BUDGET_EXCEEDED,
            details=decision.to_dict(),
        )

    async def should_block_api_calls(self) -> bool:
        status = await self.classifier.get_budget_status()
        return status.is_exceeded
