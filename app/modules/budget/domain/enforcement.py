"""
Budget Enforcement Engine

Decides what to do about the current budget state and applies the side
effects of that decision.

`decide_enforcement` is pure: it maps (status, policy, grace) to a result and
an ordered tuple of effects. `EnforcementEffectExecutor` performs the effects
through the alerting gateway; an effect that fails is logged and skipped and
never alters the result already decided.

Order of effects for an exceeded budget:
violation log -> grace marker -> enforcement metric -> shutdown | alert
Shutdown is terminal, so no alert is sent on that branch.
"""

from __future__ import annotations

import structlog

from app.modules.budget.domain.alerting import SERVICE_SHUTDOWN_METRIC, AlertingGateway
from app.modules.budget.domain.classifier import BudgetClassifier
from app.modules.budget.domain.grace_period import NOT_IN_GRACE, GracePeriodTracker
from app.modules.budget.domain.models import (
    NO_ENFORCEMENT,
    BudgetStatus,
    EffectKind,
    EnforcementAction,
    EnforcementDecision,
    EnforcementEffect,
    EnforcementResult,
    GraceState,
)
from app.schemas.budget import BudgetConfig, EnforcementPolicy
from app.shared.core.logging import audit_log
from app.shared.core.ops_metrics import BUDGET_ENFORCEMENT_ACTIONS_TOTAL

logger = structlog.get_logger()

VIOLATION_TAG = "budget-violation"
ENFORCEMENT_TAG = "budget-enforcement"


def decide_enforcement(
    status: BudgetStatus,
    policy: EnforcementPolicy | None,
    grace: GraceState,
) -> EnforcementDecision:
    if policy is None or not status.is_exceeded:
        return EnforcementDecision(result=NO_ENFORCEMENT)

    effects: list[EnforcementEffect] = []
    if policy.log_budget_violations:
        effects.append(EnforcementEffect(kind=EffectKind.LOG_VIOLATION, status=status))
    if grace.newly_exceeded:
        effects.append(EnforcementEffect(kind=EffectKind.RECORD_GRACE_MARKER))
    if policy.prevent_new_api_calls:
        effects.append(
            EnforcementEffect(
                kind=EffectKind.RECORD_COST_METRIC,
                amount=status.current_spending,
                tag=ENFORCEMENT_TAG,
            )
        )

    if policy.shutdown_services and not grace.active:
        effects.append(EnforcementEffect(kind=EffectKind.SHUTDOWN_SERVICES))
        return EnforcementDecision(
            result=EnforcementResult(
                action_taken=EnforcementAction.SERVICE_SHUTDOWN,
                shutdown_required=True,
                grace_period_active=False,
            ),
            effects=tuple(effects),
        )

    if policy.notify_administrators:
        effects.append(EnforcementEffect(kind=EffectKind.SEND_COST_ALERT, status=status))

    action = (
        EnforcementAction.GRACE_PERIOD_ACTIVE
        if grace.active
        else EnforcementAction.API_CALLS_BLOCKED
    )
    return EnforcementDecision(
        result=EnforcementResult(
            action_taken=action,
            shutdown_required=not grace.active,
            grace_period_active=grace.active,
        ),
        effects=tuple(effects),
    )


class EnforcementEffectExecutor:
    """Applies enforcement effects in order through the alerting gateway."""

    def __init__(self, gateway: AlertingGateway, grace_tracker: GracePeriodTracker):
        self.gateway = gateway
        self.grace_tracker = grace_tracker

    async def apply(self, effects: tuple[EnforcementEffect, ...]) -> list[EffectKind]:
        """Run every effect; returns the kinds that failed."""
        failed: list[EffectKind] = []
        for effect in effects:
            try:
                ok = await self._apply_one(effect)
            except Exception as e:
                logger.error(
                    "enforcement_effect_failed", effect=effect.kind.value, error=str(e)
                )
                ok = False
            if not ok:
                failed.append(effect.kind)
        return failed

    async def _apply_one(self, effect: EnforcementEffect) -> bool:
        if effect.kind is EffectKind.LOG_VIOLATION:
            return await self._log_violation(effect.status)
        if effect.kind is EffectKind.RECORD_GRACE_MARKER:
            return await self.grace_tracker.record_budget_exceeded()
        if effect.kind is EffectKind.RECORD_COST_METRIC:
            return await self.gateway.record_cost_metrics(
                effect.amount or 0, effect.tag or ENFORCEMENT_TAG
            )
        if effect.kind is EffectKind.SHUTDOWN_SERVICES:
            return await self._initiate_service_shutdown()
        if effect.kind is EffectKind.SEND_COST_ALERT:
            if effect.status is None:
                return False
            return await self.gateway.send_cost_alert(effect.status) is not None
        raise ValueError(f"Unknown enforcement effect: {effect.kind}")

    async def _log_violation(self, status: BudgetStatus | None) -> bool:
        if status is None:
            return False
        logger.warning(
            "budget_violation_logged",
            current_spending=str(status.current_spending),
            budget_limit=str(status.budget_limit),
            percentage_used=round(status.percentage_used, 2),
            status=status.status.value,
            alert_level=status.alert_level,
        )
        return await self.gateway.record_cost_metrics(
            status.percentage_used, VIOLATION_TAG
        )

    async def _initiate_service_shutdown(self) -> bool:
        # Advisory only: recorded for operators and the request guard; no
        # infrastructure is torn down here.
        logger.warning("service_shutdown_initiated")
        return await self.gateway.record_event_marker(SERVICE_SHUTDOWN_METRIC)


class BudgetEnforcementEngine:
    def __init__(
        self,
        config: BudgetConfig,
        classifier: BudgetClassifier,
        grace_tracker: GracePeriodTracker,
        executor: EnforcementEffectExecutor,
    ):
        self.config = config
        self.classifier = classifier
        self.grace_tracker = grace_tracker
        self.executor = executor

    async def evaluate(self) -> tuple[BudgetStatus, EnforcementDecision]:
        """Compute status and decision without applying any effect."""
        status = await self.classifier.get_budget_status()
        policy = self.config.budget_enforcement
        if policy is None or not status.is_exceeded:
            return status, decide_enforcement(status, policy, NOT_IN_GRACE)
        grace = await self.grace_tracker.evaluate(status)
        return status, decide_enforcement(status, policy, grace)

    async def enforce_budget_constraints(self) -> EnforcementResult:
        if self.config.budget_enforcement is None:
            BUDGET_ENFORCEMENT_ACTIONS_TOTAL.labels(action=NO_ENFORCEMENT.action_taken.value).inc()
            return NO_ENFORCEMENT

        try:
            status, decision = await self.evaluate()
        except Exception as e:
            logger.error("budget_enforcement_status_unavailable", error=str(e))
            BUDGET_ENFORCEMENT_ACTIONS_TOTAL.labels(action=NO_ENFORCEMENT.action_taken.value).inc()
            return NO_ENFORCEMENT

        failed = await self.executor.apply(decision.effects)
        result = decision.result

        BUDGET_ENFORCEMENT_ACTIONS_TOTAL.labels(action=result.action_taken.value).inc()
        if result.action_taken is not EnforcementAction.NONE:
            audit_log(
                "budget_enforcement_decision",
                details={
                    "action": result.action_taken.value,
                    "shutdown_required": result.shutdown_required,
                    "grace_period_active": result.grace_period_active,
                    "percentage_used": round(status.percentage_used, 2),
                    "effects": [effect.kind.value for effect in decision.effects],
                    "failed_effects": [kind.value for kind in failed],
                },
            )
        return result
