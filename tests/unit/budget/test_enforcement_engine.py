from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.modules.budget.domain.alerting import AlertingGateway
from app.modules.budget.domain.classifier import BudgetClassifier, classify_spend
from app.modules.budget.domain.enforcement import (
    ENFORCEMENT_TAG,
    BudgetEnforcementEngine,
    EnforcementEffectExecutor,
    decide_enforcement,
)
from app.modules.budget.domain.grace_period import GracePeriodTracker
from app.modules.budget.domain.models import (
    NO_ENFORCEMENT,
    EffectKind,
    EnforcementAction,
    GraceState,
)
from app.schemas.budget import EnforcementPolicy
from app.shared.core.exceptions import AdapterError


@pytest.fixture
def engine_for(metrics, alarms, notifier, clock):
    def _make(config, spend="16.00"):
        reader = AsyncMock()
        if isinstance(spend, Exception):
            reader.get_current_period_spend.side_effect = spend
        else:
            reader.get_current_period_spend.return_value = Decimal(spend)
        gateway = AlertingGateway(config, metrics, alarms, notifier, clock=clock)
        tracker = GracePeriodTracker(config, metrics, gateway, clock=clock)
        return BudgetEnforcementEngine(
            config,
            BudgetClassifier(config, reader),
            tracker,
            EnforcementEffectExecutor(gateway, tracker),
        )

    return _make


@pytest.fixture
def expired_grace(metrics, fixed_now):
    metrics.get_metric_statistics.return_value = [
        {"Timestamp": fixed_now - timedelta(hours=5), "Maximum": 1.0}
    ]


def _kinds(decision):
    return [effect.kind for effect in decision.effects]


class TestDecideEnforcement:
    def test_no_policy_is_noop(self, budget_config):
        status = classify_spend(Decimal("20"), budget_config)

        decision = decide_enforcement(status, None, GraceState(active=False))

        assert decision.result == NO_ENFORCEMENT
        assert decision.effects == ()

    def test_not_exceeded_is_noop(self, budget_config):
        status = classify_spend(Decimal("14.90"), budget_config)

        decision = decide_enforcement(status, EnforcementPolicy(), GraceState(active=False))

        assert decision.result == NO_ENFORCEMENT
        assert decision.effects == ()

    def test_shutdown_is_terminal_and_skips_alert(self, budget_config):
        status = classify_spend(Decimal("20"), budget_config)
        policy = EnforcementPolicy(shutdown_services=True)

        decision = decide_enforcement(status, policy, GraceState(active=False))

        assert decision.result.action_taken is EnforcementAction.SERVICE_SHUTDOWN
        assert decision.result.shutdown_required is True
        assert decision.result.grace_period_active is False
        assert _kinds(decision) == [
            EffectKind.LOG_VIOLATION,
            EffectKind.RECORD_COST_METRIC,
            EffectKind.SHUTDOWN_SERVICES,
        ]

    def test_new_exceed_in_grace_orders_effects(self, budget_config):
        status = classify_spend(Decimal("20"), budget_config)
        policy = EnforcementPolicy(shutdown_services=True)

        decision = decide_enforcement(
            status, policy, GraceState(active=True, newly_exceeded=True)
        )

        assert decision.result.action_taken is EnforcementAction.GRACE_PERIOD_ACTIVE
        assert decision.result.shutdown_required is False
        assert decision.result.grace_period_active is True
        assert _kinds(decision) == [
            EffectKind.LOG_VIOLATION,
            EffectKind.RECORD_GRACE_MARKER,
            EffectKind.RECORD_COST_METRIC,
            EffectKind.SEND_COST_ALERT,
        ]
        metric = decision.effects[2]
        assert metric.amount == Decimal("20")
        assert metric.tag == ENFORCEMENT_TAG

    def test_policy_flags_drop_their_effects(self, budget_config):
        status = classify_spend(Decimal("20"), budget_config)
        policy = EnforcementPolicy(
            prevent_new_api_calls=False,
            notify_administrators=False,
            log_budget_violations=False,
        )

        decision = decide_enforcement(status, policy, GraceState(active=False))

        assert decision.result.action_taken is EnforcementAction.API_CALLS_BLOCKED
        assert decision.effects == ()


@pytest.mark.asyncio
async def test_engine_without_policy_skips_status_read(engine_for, budget_config, metrics):
    result = await engine_for(budget_config).enforce_budget_constraints()

    assert result == NO_ENFORCEMENT
    metrics.put_metric_point.assert_not_awaited()
    metrics.get_metric_statistics.assert_not_awaited()


@pytest.mark.asyncio
async def test_engine_under_limit_takes_no_action(engine_for, enforcing_config, notifier):
    result = await engine_for(enforcing_config(), spend="10.00").enforce_budget_constraints()

    assert result == NO_ENFORCEMENT
    notifier.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_engine_shutdown_after_grace_expired(
    engine_for, enforcing_config, metrics, notifier, expired_grace
):
    engine = engine_for(enforcing_config(shutdown_services=True))

    result = await engine.enforce_budget_constraints()

    assert result.action_taken is EnforcementAction.SERVICE_SHUTDOWN
    assert result.shutdown_required is True
    assert result.grace_period_active is False
    notifier.publish.assert_not_awaited()
    written = [call.args[1] for call in metrics.put_metric_point.await_args_list]
    assert written == ["MonthlySpending", "MonthlySpending", "ServiceShutdown"]


@pytest.mark.asyncio
async def test_engine_grace_period_defers_shutdown(
    engine_for, enforcing_config, metrics, notifier
):
    engine = engine_for(enforcing_config(shutdown_services=True))

    result = await engine.enforce_budget_constraints()

    assert result.action_taken is EnforcementAction.GRACE_PERIOD_ACTIVE
    assert result.shutdown_required is False
    assert result.grace_period_active is True
    written = [call.args[1] for call in metrics.put_metric_point.await_args_list]
    assert written == ["MonthlySpending", "BudgetExceeded", "MonthlySpending"]
    notifier.publish.assert_awaited_once()


@pytest.mark.asyncio
async def test_engine_blocks_api_calls_after_grace(
    engine_for, enforcing_config, notifier, expired_grace
):
    result = await engine_for(enforcing_config()).enforce_budget_constraints()

    assert result.action_taken is EnforcementAction.API_CALLS_BLOCKED
    assert result.shutdown_required is True
    assert result.grace_period_active is False
    notifier.publish.assert_awaited_once()
    subject = notifier.publish.await_args.args[1]
    assert subject == "Kiro Kaiju Budget Alert - EXCEEDED"


@pytest.mark.asyncio
async def test_effect_failures_do_not_change_result(
    engine_for, enforcing_config, metrics, notifier, expired_grace
):
    metrics.put_metric_point.side_effect = AdapterError("throttled")
    notifier.publish.side_effect = AdapterError("throttled")

    result = await engine_for(enforcing_config()).enforce_budget_constraints()

    assert result.action_taken is EnforcementAction.API_CALLS_BLOCKED
    assert result.shutdown_required is True
    # Every effect was still attempted.
    assert metrics.put_metric_point.await_count == 2
    notifier.publish.assert_awaited_once()


@pytest.mark.asyncio
async def test_grace_read_failure_enforces_immediately(
    engine_for, enforcing_config, metrics
):
    metrics.get_metric_statistics.side_effect = AdapterError("throttled")

    result = await engine_for(
        enforcing_config(shutdown_services=True)
    ).enforce_budget_constraints()

    assert result.action_taken is EnforcementAction.SERVICE_SHUTDOWN


@pytest.mark.asyncio
async def test_status_failure_returns_no_enforcement(engine_for, enforcing_config, notifier):
    engine = engine_for(enforcing_config(), spend=RuntimeError("cost explorer down"))

    result = await engine.enforce_budget_constraints()

    assert result == NO_ENFORCEMENT
    notifier.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_executor_reports_failed_effect_kinds(
    engine_for, enforcing_config, metrics, notifier
):
    engine = engine_for(enforcing_config())
    _, decision = await engine.evaluate()
    notifier.publish.side_effect = AdapterError("throttled")

    failed = await engine.executor.apply(decision.effects)

    assert failed == [EffectKind.SEND_COST_ALERT]
