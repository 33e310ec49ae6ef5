from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from app.schemas.budget import FallbackOptions


class BudgetHealth(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    EXCEEDED = "exceeded"


class EnforcementAction(str, Enum):
    NONE = "none"
    API_CALLS_BLOCKED = "api-calls-blocked"
    SERVICE_SHUTDOWN = "service-shutdown"
    GRACE_PERIOD_ACTIVE = "grace-period-active"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class EffectKind(str, Enum):
    LOG_VIOLATION = "log-violation"
    RECORD_GRACE_MARKER = "record-grace-marker"
    RECORD_COST_METRIC = "record-cost-metric"
    SHUTDOWN_SERVICES = "shutdown-services"
    SEND_COST_ALERT = "send-cost-alert"


SEVERITY_BY_HEALTH = {
    BudgetHealth.OK: AlertSeverity.INFO,
    BudgetHealth.WARNING: AlertSeverity.WARNING,
    BudgetHealth.CRITICAL: AlertSeverity.CRITICAL,
    BudgetHealth.EXCEEDED: AlertSeverity.EMERGENCY,
}


@dataclass(frozen=True)
class BudgetStatus:
    current_spending: Decimal
    budget_limit: Decimal
    percentage_used: float
    status: BudgetHealth
    alert_level: float
    remaining_budget: Decimal
    is_shutdown_required: bool

    @property
    def is_exceeded(self) -> bool:
        return self.status is BudgetHealth.EXCEEDED

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentSpending": float(self.current_spending),
            "budgetLimit": float(self.budget_limit),
            "percentageUsed": self.percentage_used,
            "status": self.status.value,
            "alertLevel": self.alert_level,
            "remainingBudget": float(self.remaining_budget),
            "isShutdownRequired": self.is_shutdown_required,
        }


@dataclass(frozen=True)
class GraceState:
    active: bool
    # True when no exceeded marker was found and one must be written.
    newly_exceeded: bool = False


@dataclass(frozen=True)
class EnforcementResult:
    action_taken: EnforcementAction
    shutdown_required: bool
    grace_period_active: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "actionTaken": self.action_taken.value,
            "shutdownRequired": self.shutdown_required,
            "gracePeriodActive": self.grace_period_active,
        }


NO_ENFORCEMENT = EnforcementResult(
    action_taken=EnforcementAction.NONE,
    shutdown_required=False,
    grace_period_active=False,
)


@dataclass(frozen=True)
class EnforcementEffect:
    kind: EffectKind
    status: BudgetStatus | None = None
    amount: Decimal | float | None = None
    tag: str | None = None


@dataclass(frozen=True)
class EnforcementDecision:
    result: EnforcementResult
    effects: tuple[EnforcementEffect, ...] = ()


@dataclass(frozen=True)
class CostAlert:
    timestamp: datetime
    alert_level: float
    current_spending: Decimal
    budget_limit: Decimal
    percentage_used: float
    severity: AlertSeverity
    message: str


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    reason: str | None = None
    fallback_options: FallbackOptions | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"allowed": self.allowed}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.fallback_options is not None:
            payload["fallbackOptions"] = self.fallback_options.model_dump(
                by_alias=True
            )
        return payload


@dataclass(frozen=True)
class BudgetConstraints:
    should_block: bool
    budget_status: BudgetStatus
    fallback_options: FallbackOptions


@dataclass(frozen=True)
class OptimizationStrategies:
    strategies: list[str] = field(default_factory=list)
    recommended_actions: list[str] = field(default_factory=list)
    emergency_mode: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
