"""
Cost-aware AI model selection and degradation strategies.

Used by the grading and hint features to pick the cheapest Bedrock model
available and to decide how aggressively to degrade as the budget drains.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence, TypedDict

import structlog

from app.modules.budget.domain.models import BudgetStatus, OptimizationStrategies

logger = structlog.get_logger()

DEFAULT_MODEL = "anthropic.claude-3-haiku-20240307-v1:0"

# Cheapest first.
COST_PRIORITY: tuple[str, ...] = (
    "amazon.titan-text-lite-v1",
    "anthropic.claude-3-haiku-20240307-v1:0",
    "meta.llama2-13b-chat-v1",
    "anthropic.claude-instant-v1",
    "anthropic.claude-v2",
)


class ModelCost(TypedDict):
    input: Decimal
    output: Decimal


# USD per 1000 tokens.
MODEL_COSTS: dict[str, ModelCost] = {
    "amazon.titan-text-lite-v1": {"input": Decimal("0.0003"), "output": Decimal("0.0008")},
    "anthropic.claude-3-haiku-20240307-v1:0": {
        "input": Decimal("0.00025"),
        "output": Decimal("0.00125"),
    },
    "anthropic.claude-instant-v1": {"input": Decimal("0.0008"), "output": Decimal("0.0024")},
    "anthropic.claude-v2": {"input": Decimal("0.008"), "output": Decimal("0.024")},
    "meta.llama2-13b-chat-v1": {"input": Decimal("0.00075"), "output": Decimal("0.001")},
}
DEFAULT_MODEL_COST: ModelCost = {"input": Decimal("0.001"), "output": Decimal("0.002")}


def get_cost_optimized_model(available_models: Sequence[str]) -> str:
    for preferred in COST_PRIORITY:
        if preferred in available_models:
            return preferred
    if available_models:
        return available_models[0]
    return DEFAULT_MODEL


def estimate_ai_request_cost(model: str, input_tokens: int, output_tokens: int) -> Decimal:
    costs = MODEL_COSTS.get(model)
    if costs is None:
        logger.debug("model_cost_using_default", model=model)
        costs = DEFAULT_MODEL_COST
    return (
        Decimal(input_tokens) / 1000 * costs["input"]
        + Decimal(output_tokens) / 1000 * costs["output"]
    )


def get_cost_optimization_strategies(status: BudgetStatus) -> OptimizationStrategies:
    strategies: list[str] = []
    recommended_actions: list[str] = []
    emergency_mode = False

    if status.percentage_used > 80:
        strategies.extend(
            [
                "Use only the cheapest AI models",
                "Reduce token limits for AI requests",
                "Implement request caching to avoid duplicate calls",
            ]
        )
        recommended_actions.extend(
            ["Switch to local LLM if available", "Disable non-essential AI features"]
        )

    if status.percentage_used > 95:
        strategies.extend(
            ["Block all non-critical API calls", "Enable emergency fallback mode"]
        )
        recommended_actions.extend(
            ["Require OpenRouter API key for continued usage", "Switch to offline mode"]
        )
        emergency_mode = True

    if status.is_exceeded:
        strategies.append("Complete service shutdown")
        recommended_actions.extend(
            [
                "Manual intervention required",
                "Increase budget or wait for next billing cycle",
            ]
        )
        emergency_mode = True

    return OptimizationStrategies(
        strategies=strategies,
        recommended_actions=recommended_actions,
        emergency_mode=emergency_mode,
    )
