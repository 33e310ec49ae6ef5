from .models import (
    BudgetHealth,
    BudgetStatus,
    EnforcementAction,
    EnforcementResult,
    GuardDecision,
)
from .classifier import BudgetClassifier, classify_spend
from .guard import BudgetGuard
from .enforcement import BudgetEnforcementEngine, decide_enforcement
from .service import BudgetGovernanceService

__all__ = [
    "BudgetHealth",
    "BudgetStatus",
    "EnforcementAction",
    "EnforcementResult",
    "GuardDecision",
    "BudgetClassifier",
    "classify_spend",
    "BudgetGuard",
    "BudgetEnforcementEngine",
    "decide_enforcement",
    "BudgetGovernanceService",
]
