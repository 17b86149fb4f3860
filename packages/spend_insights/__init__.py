"""Public interface for the ``spend_insights`` package.

Exposes the category-learning and budget-status API functions and the public
models as the stable import surface. No runtime logic lives here.
"""

from .api import (
    apply_suggestion,
    budget_dashboard,
    build_recommendation,
    calculate_budget_status,
    generate_suggestions,
    rank_budgets,
    reject_suggestion,
    suggest_category,
)
from .models import (
    BudgetLine,
    BudgetStatus,
    CategorySuggestion,
    GenerationResult,
    HistoricalTransaction,
    RankedBudget,
    Recommendation,
)
from .normalizers import normalize_description

__all__ = [
    # API
    "suggest_category",
    "generate_suggestions",
    "apply_suggestion",
    "reject_suggestion",
    "calculate_budget_status",
    "rank_budgets",
    "build_recommendation",
    "budget_dashboard",
    "normalize_description",
    # Models
    "BudgetLine",
    "BudgetStatus",
    "CategorySuggestion",
    "GenerationResult",
    "HistoricalTransaction",
    "RankedBudget",
    "Recommendation",
]
