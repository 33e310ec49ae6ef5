from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from app.modules.budget.domain.classifier import (
    BudgetClassifier,
    classify_spend,
    severity_for_threshold,
)
from app.modules.budget.domain.models import BudgetHealth


def _classifier(config, spend):
    reader = AsyncMock()
    reader.get_current_period_spend.return_value = Decimal(spend)
    return BudgetClassifier(config, reader)


@pytest.mark.asyncio
async def test_ok_status_below_all_thresholds(budget_config):
    status = await _classifier(budget_config, "5.00").get_budget_status()

    assert status.status is BudgetHealth.OK
    assert status.current_spending == Decimal("5.00")
    assert status.budget_limit == Decimal("15.00")
    assert status.percentage_used == pytest.approx(33.33, abs=0.01)
    assert status.remaining_budget == Decimal("10.00")
    assert status.alert_level == 0
    assert status.is_shutdown_required is False


@pytest.mark.asyncio
async def test_warning_status_at_83_percent(budget_config):
    status = await _classifier(budget_config, "12.50").get_budget_status()

    assert status.status is BudgetHealth.WARNING
    assert status.alert_level == 80
    assert status.percentage_used == pytest.approx(83.33, abs=0.01)


@pytest.mark.asyncio
async def test_critical_status_at_96_percent(budget_config):
    status = await _classifier(budget_config, "14.50").get_budget_status()

    assert status.status is BudgetHealth.CRITICAL
    assert status.alert_level == 95
    assert status.percentage_used == pytest.approx(96.67, abs=0.01)


@pytest.mark.asyncio
async def test_exceeded_status_over_limit(budget_config):
    status = await _classifier(budget_config, "16.00").get_budget_status()

    assert status.status is BudgetHealth.EXCEEDED
    assert status.percentage_used == pytest.approx(106.67, abs=0.01)
    assert status.remaining_budget == Decimal("0")
    assert status.is_shutdown_required is True


def test_exceeded_without_automatic_shutoff_does_not_require_shutdown(make_config):
    status = classify_spend(Decimal("20"), make_config(automatic_shutoff=False))

    assert status.status is BudgetHealth.EXCEEDED
    assert status.is_shutdown_required is False


def test_low_threshold_raises_alert_level_but_not_status(budget_config):
    status = classify_spend(Decimal("9.00"), budget_config)  # 60%

    assert status.alert_level == 50
    assert status.status is BudgetHealth.OK


@pytest.mark.parametrize("thresholds", [(), (50,), (10, 20, 30), (120, 150)])
def test_spend_at_or_over_limit_is_always_exceeded(make_config, thresholds):
    config = make_config(alert_thresholds=thresholds)
    for spend in ("15.00", "15.01", "100"):
        assert classify_spend(Decimal(spend), config).status is BudgetHealth.EXCEEDED


def test_exactly_at_limit_is_exceeded(budget_config):
    status = classify_spend(Decimal("15.00"), budget_config)

    assert status.percentage_used == 100
    assert status.status is BudgetHealth.EXCEEDED
    assert status.remaining_budget == Decimal("0")


def test_threshold_above_100_still_sets_alert_level(make_config):
    config = make_config(alert_thresholds=(80, 120))
    status = classify_spend(Decimal("19.50"), config)  # 130%

    assert status.alert_level == 120
    assert status.status is BudgetHealth.EXCEEDED


def test_unsorted_thresholds_use_highest_crossed(make_config):
    config = make_config(alert_thresholds=(95, 50, 80))
    status = classify_spend(Decimal("12.50"), config)

    assert status.alert_level == 80
    assert status.status is BudgetHealth.WARNING


@pytest.mark.parametrize("spend", ["0", "7.5", "14.99", "15", "30"])
def test_remaining_budget_never_negative(budget_config, spend):
    status = classify_spend(Decimal(spend), budget_config)

    assert status.remaining_budget == max(Decimal("0"), Decimal("15.00") - Decimal(spend))
    assert status.remaining_budget >= 0


def test_float_spend_is_accepted(budget_config):
    status = classify_spend(12.5, budget_config)

    assert status.current_spending == Decimal("12.5")
    assert status.status is BudgetHealth.WARNING


@pytest.mark.parametrize(
    "threshold,expected",
    [
        (99, BudgetHealth.CRITICAL),
        (95, BudgetHealth.CRITICAL),
        (90, BudgetHealth.WARNING),
        (80, BudgetHealth.WARNING),
        (79.9, BudgetHealth.OK),
        (50, BudgetHealth.OK),
    ],
)
def test_severity_table(threshold, expected):
    assert severity_for_threshold(threshold) is expected


@pytest.mark.asyncio
async def test_spend_reader_errors_propagate(budget_config):
    reader = AsyncMock()
    reader.get_current_period_spend.side_effect = RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await BudgetClassifier(budget_config, reader).get_budget_status()


def test_status_to_dict_uses_api_field_names(budget_config):
    payload = classify_spend(Decimal("16"), budget_config).to_dict()

    assert payload["status"] == "exceeded"
    assert payload["remainingBudget"] == 0
    assert payload["isShutdownRequired"] is True
    assert payload["currentSpending"] == 16.0
