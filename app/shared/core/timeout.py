"""
Timeout handling for outbound budget operations.

Keeps hot-path budget checks from hanging on a slow billing backend.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog

from app.shared.core.exceptions import ExternalAPIError

logger = structlog.get_logger()

T = TypeVar("T")

# Total seconds allowed per operation type.
TIMEOUT_SECONDS: dict[str, float] = {
    "default": 30.0,
    "cloud_api": 60.0,  # Cost Explorer, CloudWatch, SNS
    "budget_guard": 3.0,  # Inline pre-check before a paid operation
}


class TimeoutManager:
    """Bounds a single awaited operation by its operation type's budget."""

    def __init__(
        self, operation_type: str = "default", total_seconds: float | None = None
    ):
        self.operation_type = operation_type
        if total_seconds is None:
            total_seconds = TIMEOUT_SECONDS.get(operation_type, TIMEOUT_SECONDS["default"])
        self.total_seconds = total_seconds

    async def execute_with_timeout(
        self,
        coro: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        started = time.perf_counter()
        try:
            return await asyncio.wait_for(
                coro(*args, **kwargs), timeout=self.total_seconds
            )
        except asyncio.TimeoutError:
            elapsed = round(time.perf_counter() - started, 3)
            logger.warning(
                "budget_operation_timed_out",
                operation_type=self.operation_type,
                elapsed_seconds=elapsed,
                timeout_seconds=self.total_seconds,
            )
            raise ExternalAPIError(
                f"{self.operation_type} timed out after {self.total_seconds}s",
                code="timeout_error",
                details={
                    "operation_type": self.operation_type,
                    "timeout_seconds": self.total_seconds,
                },
            )
