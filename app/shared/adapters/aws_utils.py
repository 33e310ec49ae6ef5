import aioboto3
from typing import Any
from botocore.config import Config as BotoConfig
from app.shared.core.config import get_settings

# Cost Explorer only answers on its global endpoint.
COST_EXPLORER_REGION = "us-east-1"


def build_boto_config() -> BotoConfig:
    """Standardized boto config with timeouts to prevent indefinite hangs."""
    settings = get_settings()
    return BotoConfig(
        read_timeout=settings.AWS_BOTO_READ_TIMEOUT_SECONDS,
        connect_timeout=settings.AWS_BOTO_CONNECT_TIMEOUT_SECONDS,
        retries={"max_attempts": settings.AWS_BOTO_MAX_ATTEMPTS, "mode": "adaptive"},
    )


def get_boto_session() -> aioboto3.Session:
    """Returns a centralized aioboto3 session."""
    return aioboto3.Session()


def resolve_aws_region_hint(region: Any) -> str:
    """
    Resolve AWS region hints to a concrete region.

    - Explicit non-global region wins
    - Otherwise use configured AWS_DEFAULT_REGION
    - Final fallback is us-east-1 for endpoint compatibility
    """
    candidate = str(region or "").strip()
    if candidate and candidate != "global":
        return candidate

    configured_default = str(get_settings().AWS_DEFAULT_REGION or "").strip()
    if configured_default:
        return configured_default

    return "us-east-1"
