import argparse
import asyncio
import json
from typing import Any, Optional

import structlog

from app.modules.budget.domain.service import BudgetGovernanceService
from app.modules.budget.jobs import run_budget_enforcement_job
from app.shared.core.config import reload_settings_from_environment
from app.shared.core.logging import setup_logging

logger = structlog.get_logger()

COMMANDS = ("enforce", "status", "setup-alarms", "remove-alarms")


async def run_command(
    command: str, service: Optional[BudgetGovernanceService] = None
) -> dict[str, Any]:
    if service is None:
        # Pick up env / BUDGET_CONFIG_FILE edits made since the last run.
        service = BudgetGovernanceService.from_settings(
            reload_settings_from_environment()
        )

    if command == "enforce":
        return await run_budget_enforcement_job(service)
    if command == "status":
        return (await service.get_budget_status()).to_dict()
    if command == "setup-alarms":
        return {"created": await service.setup_monitoring_alarms()}
    if command == "remove-alarms":
        return {"removed": await service.remove_monitoring_alarms()}
    raise ValueError(f"Unknown command: {command}")


async def main(command: str) -> None:
    output = await run_command(command)
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Kiro Kaiju budget governor")
    parser.add_argument("command", choices=COMMANDS, help="Operation to run once")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(main(args.command))
