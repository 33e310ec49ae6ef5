from functools import lru_cache
from threading import Lock
from pathlib import Path
from typing import Any, Optional
import json
import structlog
from pydantic import Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.schemas.budget import (
    DEFAULT_ALARM_PREFIX,
    DEFAULT_COST_METRIC_NAME,
    DEFAULT_METRIC_NAMESPACE,
    BudgetConfig,
)
from app.shared.core.exceptions import ConfigurationError

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for the Kiro Kaiju budget governor.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "Kiro Kaiju Budget Governor"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # AWS
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_BOTO_READ_TIMEOUT_SECONDS: int = 30
    AWS_BOTO_CONNECT_TIMEOUT_SECONDS: int = 10
    AWS_BOTO_MAX_ATTEMPTS: int = 3

    # Budget limits
    BUDGET_MONTHLY_LIMIT_USD: float = 15.0
    BUDGET_ALERT_THRESHOLDS: list[float] = [50.0, 80.0, 95.0]
    BUDGET_AUTOMATIC_SHUTOFF: bool = True
    BUDGET_GRACE_PERIOD_HOURS: float = 2.0
    BUDGET_SNS_TOPIC_ARN: Optional[str] = None
    BUDGET_MAX_COST_PER_REQUEST_USD: float = 0.10
    BUDGET_PRIORITIZE_FREE_TIER: bool = True
    # Optional JSON file in budget-config.json shape; its keys win over the env.
    BUDGET_CONFIG_FILE: Optional[str] = None
    # Hot-path pre-checks fail open once this elapses.
    BUDGET_GUARD_TIMEOUT_SECONDS: float = Field(default=3.0, gt=0)

    # CloudWatch monitoring
    BUDGET_MONITORING_ENABLED: bool = False
    BUDGET_METRIC_NAMESPACE: str = DEFAULT_METRIC_NAMESPACE
    BUDGET_ALARM_PREFIX: str = DEFAULT_ALARM_PREFIX
    BUDGET_COST_METRIC_NAME: str = DEFAULT_COST_METRIC_NAME
    BUDGET_ALARM_ACTIONS: dict[str, str] = {}

    # Enforcement policy (disabled unless explicitly turned on)
    BUDGET_ENFORCEMENT_ENABLED: bool = False
    BUDGET_PREVENT_NEW_API_CALLS: bool = True
    BUDGET_SHUTDOWN_SERVICES: bool = False
    BUDGET_NOTIFY_ADMINISTRATORS: bool = True
    BUDGET_LOG_VIOLATIONS: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        if self.BUDGET_MONTHLY_LIMIT_USD <= 0:
            raise ValueError("BUDGET_MONTHLY_LIMIT_USD must be greater than zero.")
        if self.BUDGET_GRACE_PERIOD_HOURS < 0:
            raise ValueError("BUDGET_GRACE_PERIOD_HOURS must not be negative.")
        return self


def _settings_to_budget_payload(settings: Settings) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "monthly_limit": str(settings.BUDGET_MONTHLY_LIMIT_USD),
        "alert_thresholds": list(settings.BUDGET_ALERT_THRESHOLDS),
        "automatic_shutoff": settings.BUDGET_AUTOMATIC_SHUTOFF,
        "grace_period_hours": settings.BUDGET_GRACE_PERIOD_HOURS,
        "sns_topic_arn": settings.BUDGET_SNS_TOPIC_ARN,
        "region": settings.AWS_DEFAULT_REGION,
        "cost_optimization": {
            "prioritize_free_tier": settings.BUDGET_PRIORITIZE_FREE_TIER,
            "max_cost_per_request": str(settings.BUDGET_MAX_COST_PER_REQUEST_USD),
        },
    }
    if settings.BUDGET_MONITORING_ENABLED:
        payload["cloud_watch"] = {
            "enabled": True,
            "metric_namespace": settings.BUDGET_METRIC_NAMESPACE,
            "alarm_prefix": settings.BUDGET_ALARM_PREFIX,
            "cost_metric_name": settings.BUDGET_COST_METRIC_NAME,
            "alert_actions": dict(settings.BUDGET_ALARM_ACTIONS),
        }
    if settings.BUDGET_ENFORCEMENT_ENABLED:
        payload["budget_enforcement"] = {
            "prevent_new_api_calls": settings.BUDGET_PREVENT_NEW_API_CALLS,
            "shutdown_services": settings.BUDGET_SHUTDOWN_SERVICES,
            "notify_administrators": settings.BUDGET_NOTIFY_ADMINISTRATORS,
            "log_budget_violations": settings.BUDGET_LOG_VIOLATIONS,
        }
    return payload


def _read_budget_file(path: str) -> dict[str, Any]:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Budget config file could not be read: {path}",
            details={"path": path, "error": str(exc)},
        ) from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(
            "Budget config file must contain a JSON object",
            details={"path": path},
        )
    return raw


def load_budget_config(settings: Optional[Settings] = None) -> BudgetConfig:
    """
    Build the immutable BudgetConfig from settings and the optional JSON file.

    Keys present in the file (camelCase or snake_case) replace the env-derived
    values; nested blocks are replaced whole.
    """
    logger = structlog.get_logger()
    settings = settings or get_settings()
    payload = _settings_to_budget_payload(settings)

    if settings.BUDGET_CONFIG_FILE:
        file_payload = _read_budget_file(settings.BUDGET_CONFIG_FILE)
        # Normalise file keys onto the field names so they override cleanly.
        for key, value in file_payload.items():
            field_name = _FIELD_BY_ALIAS.get(key, key)
            payload[field_name] = value
        logger.info("budget_config_file_loaded", path=settings.BUDGET_CONFIG_FILE)

    try:
        config = BudgetConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigurationError(
            "Invalid budget configuration",
            details={"errors": exc.errors(include_url=False)},
        ) from exc

    logger.info(
        "budget_config_loaded",
        monthly_limit=str(config.monthly_limit),
        alert_thresholds=list(config.alert_thresholds),
        automatic_shutoff=config.automatic_shutoff,
        monitoring_enabled=config.monitoring_enabled,
        enforcement_enabled=config.budget_enforcement is not None,
    )
    return config


_FIELD_BY_ALIAS = {to_camel(name): name for name in BudgetConfig.model_fields}
