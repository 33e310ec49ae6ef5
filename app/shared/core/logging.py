import re
import sys
import structlog
import logging
from typing import Any, cast
from app.shared.core.config import get_settings

_SECRET_FIELDS = {
    "password",
    "token",
    "secret",
    "authorization",
    "api_key",
    "apikey",
    "access_token",
    "aws_access_key_id",
    "aws_secret_access_key",
    "aws_session_token",
    "private_key",
}
_SECRET_SUFFIXES = ("_token", "_secret", "_password", "_key")
# AWS access key ids (AKIA / ASIA prefixed) leak into botocore error strings.
_AWS_KEY_ID_REGEX = re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b")


def secret_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Recursively redact credentials from log events before rendering.
    """

    def is_sensitive_key(key: Any) -> bool:
        key_norm = str(key).lower().strip().replace("-", "_")
        if key_norm in _SECRET_FIELDS:
            return True
        return key_norm.endswith(_SECRET_SUFFIXES)

    def redact_recursive(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: ("[REDACTED]" if is_sensitive_key(k) else redact_recursive(v))
                for k, v in data.items()
            }
        elif isinstance(data, list):
            return [redact_recursive(item) for item in data]
        elif isinstance(data, str):
            return _AWS_KEY_ID_REGEX.sub("[AWS_KEY_REDACTED]", data)
        return data

    redacted = redact_recursive(event_dict)
    if isinstance(redacted, dict):
        return cast(dict[str, Any], redacted)
    return {}


def setup_logging() -> None:
    settings = get_settings()

    # 1. Configure the common processors
    base_processors = [
        structlog.contextvars.merge_contextvars,  # Support async context
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        secret_redactor,  # Redact credentials before rendering
    ]

    # 2. Choose the renderer based on environment
    if settings.DEBUG:
        renderer: Any = structlog.dev.ConsoleRenderer()
        processors = base_processors + [renderer]
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        processors = base_processors + [structlog.processors.dict_tracebacks, renderer]
        min_level = logging.INFO

    # 3. Apply the configuration
    structlog.configure(
        processors=cast(Any, processors),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # 4. Route stdlib logging (botocore, aiobotocore) to stderr as well.
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=min_level,
    )


def audit_log(
    event: str,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Standardized helper for enforcement decisions that must be traceable.
    """
    logger = structlog.get_logger("audit")
    logger.info(
        event,
        environment=get_settings().ENVIRONMENT,
        metadata=details or {},
    )
