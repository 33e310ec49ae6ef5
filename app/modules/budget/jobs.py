"""
Scheduled budget enforcement.

The governor does not own a loop; an external scheduler (EventBridge rule,
cron, CI job) calls `run_budget_enforcement_job` periodically.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import structlog

from app.modules.budget.domain.service import BudgetGovernanceService

logger = structlog.get_logger()


async def run_budget_enforcement_job(
    service: Optional[BudgetGovernanceService] = None,
) -> dict[str, Any]:
    service = service or BudgetGovernanceService.from_settings()
    started = time.perf_counter()
    structlog.contextvars.bind_contextvars(job="budget_enforcement")
    try:
        result = await service.enforce_budget_constraints()
    finally:
        structlog.contextvars.unbind_contextvars("job")

    logger.info(
        "budget_enforcement_job_completed",
        action=result.action_taken.value,
        shutdown_required=result.shutdown_required,
        grace_period_active=result.grace_period_active,
        duration_seconds=round(time.perf_counter() - started, 3),
    )
    return {
        "enforcement": result.to_dict(),
        "fallbackOptions": service.fallback_options.model_dump(by_alias=True),
    }
