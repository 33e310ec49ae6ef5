"""
Global pytest fixtures for the budget governor test suite.

Provides:
- Test environment variables set before any app import
- Budget configuration factory
- AsyncMock-backed backend adapters
- A fixed clock
"""
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

# Set test environment BEFORE any app imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "local"
os.environ.pop("BUDGET_CONFIG_FILE", None)

from app.schemas.budget import (  # noqa: E402
    BudgetConfig,
    EnforcementPolicy,
    MonitoringConfig,
)
from app.shared.adapters.base import (  # noqa: E402
    AlarmAdapter,
    BillingAdapter,
    MetricsAdapter,
    NotificationAdapter,
)
from app.shared.core.config import get_settings  # noqa: E402

FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
TOPIC_ARN = "arn:aws:sns:us-east-1:123456789012:kaiju-budget-alerts"


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def make_config() -> Callable[..., BudgetConfig]:
    def _make(**overrides: Any) -> BudgetConfig:
        values: dict[str, Any] = {
            "monthly_limit": Decimal("15.00"),
            "alert_thresholds": (50, 80, 95),
            "automatic_shutoff": True,
            "grace_period_hours": 2,
            "sns_topic_arn": TOPIC_ARN,
            "cost_optimization": {"max_cost_per_request": Decimal("0.01")},
        }
        values.update(overrides)
        return BudgetConfig.model_validate(values)

    return _make


@pytest.fixture
def budget_config(make_config) -> BudgetConfig:
    return make_config()


@pytest.fixture
def enforcing_config(make_config) -> Callable[..., BudgetConfig]:
    def _make(**policy: Any) -> BudgetConfig:
        return make_config(budget_enforcement=EnforcementPolicy(**policy))

    return _make


@pytest.fixture
def monitoring_config(make_config) -> BudgetConfig:
    return make_config(
        cloud_watch=MonitoringConfig(
            enabled=True,
            metric_namespace="KiroKaiju/Costs",
            alarm_prefix="KiroKaiju-Budget",
            cost_metric_name="MonthlySpending",
        )
    )


@pytest.fixture
def billing() -> AsyncMock:
    return AsyncMock(spec=BillingAdapter)


@pytest.fixture
def metrics() -> AsyncMock:
    mock = AsyncMock(spec=MetricsAdapter)
    mock.get_metric_statistics.return_value = []
    return mock


@pytest.fixture
def alarms() -> AsyncMock:
    mock = AsyncMock(spec=AlarmAdapter)
    mock.list_alarm_names.return_value = []
    return mock


@pytest.fixture
def notifier() -> AsyncMock:
    return AsyncMock(spec=NotificationAdapter)


def cost_explorer_results(*amounts: str) -> list[dict[str, Any]]:
    """Build a Cost Explorer ResultsByTime payload with one group per amount."""
    return [
        {
            "TimePeriod": {"Start": "2026-03-01", "End": "2026-03-31"},
            "Groups": [
                {
                    "Keys": [f"Service-{i}"],
                    "Metrics": {"BlendedCost": {"Amount": amount, "Unit": "USD"}},
                }
                for i, amount in enumerate(amounts)
            ],
        }
    ]


@pytest.fixture
def ce_results() -> Callable[..., list[dict[str, Any]]]:
    return cost_explorer_results
