"""
Budget configuration schemas.

Accepts both the snake_case field names used in Python and the camelCase
keys of the product's `budget-config.json` file.
"""

from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_METRIC_NAMESPACE = "KiroKaiju/Costs"
DEFAULT_ALARM_PREFIX = "KiroKaiju-Budget"
DEFAULT_COST_METRIC_NAME = "MonthlySpending"


class _FrozenConfig(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class MonitoringConfig(_FrozenConfig):
    """CloudWatch alarm and metric settings."""

    enabled: bool = False
    metric_namespace: str = DEFAULT_METRIC_NAMESPACE
    alarm_prefix: str = DEFAULT_ALARM_PREFIX
    cost_metric_name: str = DEFAULT_COST_METRIC_NAME
    # Keyed by threshold as written in alarm names, e.g. {"80": "arn:aws:sns:..."}
    alert_actions: dict[str, str] = Field(default_factory=dict)
    monitoring_frequency: str = "daily"
    retention_days: int = Field(default=90, ge=1)


class EnforcementPolicy(_FrozenConfig):
    prevent_new_api_calls: bool = True
    shutdown_services: bool = False
    notify_administrators: bool = True
    log_budget_violations: bool = True


class CostOptimizationConfig(_FrozenConfig):
    prioritize_free_tier: bool = True
    max_cost_per_request: Decimal = Field(default=Decimal("0.10"), ge=0)
    preferred_models: tuple[str, ...] = ()


class FallbackOptions(_FrozenConfig):
    """Degraded-mode alternatives shown to players when paid calls are denied."""

    switch_to_local_mode: bool = True
    require_open_router_key: bool = True
    # budget-config.json spells this key "disableAIFeatures".
    disable_ai_features: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "disableAIFeatures", "disableAiFeatures", "disable_ai_features"
        ),
        serialization_alias="disableAIFeatures",
    )


class BudgetConfig(_FrozenConfig):
    """
    Immutable budget governance configuration.

    Built once at start-up and handed to every component by construction.
    """

    monthly_limit: Decimal = Field(..., gt=0)
    alert_thresholds: tuple[float, ...] = (50.0, 80.0, 95.0)
    automatic_shutoff: bool = True
    grace_period_hours: float = Field(default=2.0, ge=0)
    sns_topic_arn: Optional[str] = None
    region: str = "us-east-1"
    cloud_watch: Optional[MonitoringConfig] = None
    budget_enforcement: Optional[EnforcementPolicy] = None
    cost_optimization: CostOptimizationConfig = Field(
        default_factory=CostOptimizationConfig
    )
    fallback_options: FallbackOptions = Field(default_factory=FallbackOptions)

    @field_validator("alert_thresholds")
    @classmethod
    def _validate_thresholds(cls, value: tuple[float, ...]) -> tuple[float, ...]:
        for threshold in value:
            if threshold <= 0 or threshold > 200:
                raise ValueError(
                    f"alert threshold {threshold} must be within (0, 200]"
                )
        return value

    @property
    def monitoring_enabled(self) -> bool:
        return bool(self.cloud_watch and self.cloud_watch.enabled)

    @property
    def metric_namespace(self) -> str:
        if self.cloud_watch:
            return self.cloud_watch.metric_namespace
        return DEFAULT_METRIC_NAMESPACE

    @property
    def cost_metric_name(self) -> str:
        if self.cloud_watch:
            return self.cloud_watch.cost_metric_name
        return DEFAULT_COST_METRIC_NAME


def format_threshold(threshold: float) -> str:
    """Render a threshold the way alarm names and alert-action keys spell it."""
    return f"{threshold:g}"
