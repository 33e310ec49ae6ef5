"""
Budget Governance Service

Composition root for the budget governor: builds every component once from a
single immutable BudgetConfig and shares one classifier between the request
guard and the enforcement engine.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

import structlog

from app.modules.budget.domain.alerting import AlertingGateway
from app.modules.budget.domain.classifier import BudgetClassifier
from app.modules.budget.domain.cost_optimization import (
    estimate_ai_request_cost,
    get_cost_optimization_strategies,
    get_cost_optimized_model,
)
from app.modules.budget.domain.enforcement import (
    BudgetEnforcementEngine,
    EnforcementEffectExecutor,
)
from app.modules.budget.domain.grace_period import GracePeriodTracker
from app.modules.budget.domain.guard import BudgetGuard
from app.modules.budget.domain.models import (
    BudgetConstraints,
    BudgetHealth,
    BudgetStatus,
    EnforcementResult,
    GuardDecision,
    OptimizationStrategies,
)
from app.modules.budget.domain.spend_reader import SpendReader
from app.schemas.budget import BudgetConfig, FallbackOptions
from app.shared.adapters.aws_billing import CostExplorerAdapter
from app.shared.adapters.aws_cloudwatch import CloudWatchAdapter
from app.shared.adapters.aws_sns import SNSNotificationAdapter
from app.shared.adapters.base import (
    AlarmAdapter,
    BillingAdapter,
    MetricsAdapter,
    NotificationAdapter,
)
from app.shared.core.config import Settings, get_settings, load_budget_config

logger = structlog.get_logger()


class BudgetGovernanceService:
    def __init__(
        self,
        config: BudgetConfig,
        *,
        billing: BillingAdapter,
        metrics: MetricsAdapter,
        alarms: AlarmAdapter,
        notifier: NotificationAdapter,
        guard_timeout_seconds: Optional[float] = None,
    ):
        self.config = config
        self.gateway = AlertingGateway(config, metrics, alarms, notifier)
        self.spend_reader = SpendReader(billing, metrics)
        self.classifier = BudgetClassifier(config, self.spend_reader)
        self.grace_tracker = GracePeriodTracker(config, metrics, self.gateway)
        self.guard = BudgetGuard(
            config, self.classifier, timeout_seconds=guard_timeout_seconds
        )
        self.engine = BudgetEnforcementEngine(
            config,
            self.classifier,
            self.grace_tracker,
            EnforcementEffectExecutor(self.gateway, self.grace_tracker),
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "BudgetGovernanceService":
        """Wire the service against live AWS adapters."""
        settings = settings or get_settings()
        config = load_budget_config(settings)
        cloudwatch = CloudWatchAdapter(region=config.region)
        return cls(
            config,
            billing=CostExplorerAdapter(),
            metrics=cloudwatch,
            alarms=cloudwatch,
            notifier=SNSNotificationAdapter(region=config.region),
            guard_timeout_seconds=settings.BUDGET_GUARD_TIMEOUT_SECONDS,
        )

    @property
    def fallback_options(self) -> FallbackOptions:
        return self.config.fallback_options

    async def get_budget_status(self) -> BudgetStatus:
        return await self.classifier.get_budget_status()

    async def check_before_operation(
        self, estimated_cost: Decimal | float = Decimal("0")
    ) -> GuardDecision:
        return await self.guard.check_before_operation(estimated_cost)

    async def require_operation_allowed(
        self, estimated_cost: Decimal | float = Decimal("0")
    ) -> None:
        await self.guard.require_operation_allowed(estimated_cost)

    async def should_block_api_calls(self) -> bool:
        return await self.guard.should_block_api_calls()

    async def enforce_budget_constraints(self) -> EnforcementResult:
        return await self.engine.enforce_budget_constraints()

    async def setup_monitoring_alarms(self) -> list[str]:
        return await self.gateway.setup_monitoring_alarms()

    async def remove_monitoring_alarms(self) -> list[str]:
        return await self.gateway.remove_monitoring_alarms()

    async def send_cost_alert(self, status: BudgetStatus) -> None:
        await self.gateway.send_cost_alert(status)

    async def check_budget_constraints(self) -> BudgetConstraints:
        """
        Snapshot for the UI: block flag, status and fallback options.

        Any status other than OK also triggers a cost alert.
        """
        status = await self.classifier.get_budget_status()
        if status.status is not BudgetHealth.OK:
            await self.gateway.send_cost_alert(status)
        return BudgetConstraints(
            should_block=status.is_exceeded,
            budget_status=status,
            fallback_options=self.config.fallback_options,
        )

    async def record_operation_cost(
        self, service: str, operation: str, cost: Decimal | float
    ) -> None:
        recorded = await self.gateway.record_cost_metrics(cost, service)
        if recorded:
            logger.info(
                "operation_cost_recorded",
                service=service,
                operation=operation,
                cost=f"{Decimal(str(cost)):.4f}",
            )

    def get_cost_optimized_model(self, available_models: Sequence[str]) -> str:
        return get_cost_optimized_model(available_models)

    def estimate_ai_request_cost(
        self, model: str, input_tokens: int, output_tokens: int
    ) -> Decimal:
        return estimate_ai_request_cost(model, input_tokens, output_tokens)

    async def get_cost_optimization_strategies(self) -> OptimizationStrategies:
        status = await self.classifier.get_budget_status()
        return get_cost_optimization_strategies(status)
