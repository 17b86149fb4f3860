"""Public API surface for the ``spend_insights`` package.

This module is a stable import surface: the category-learning engine lives in
``spend_insights.suggest``, budget math in ``spend_insights.budgets`` and
suggestion state changes in ``spend_insights.persistence``. The DB-backed
helpers defined here open their own session scope so callers outside a
request/session context can use them directly.
"""

from __future__ import annotations

from datetime import date

from .budgets import (  # noqa: F401  (re-export)
    build_recommendation,
    calculate_budget_status,
    rank_budgets,
)
from .models import CategorySuggestion, RankedBudget, Recommendation
from .suggest import suggest_category  # noqa: F401  (re-export)
from .workflows.suggestion_flow import generate_suggestions  # noqa: F401  (re-export)

# DB imports stay local to the functions below to keep the import surface
# light for consumers that only need the pure budget helpers.


def apply_suggestion(
    transaction_id: str, *, user_id: str | None = None, database_url: str | None = None
) -> str:
    """Accept the stored suggestion for a transaction; return the category id."""

    from db.client import session_scope

    from .persistence import NoSuggestionError
    from .persistence import apply_suggestion as _impl

    with session_scope(database_url=database_url) as session:
        category_id = _impl(session, transaction_id, user_id=user_id).category_id
    if category_id is None:
        raise NoSuggestionError(
            f"No suggested category found for transaction {transaction_id}"
        )
    return category_id


def reject_suggestion(
    transaction_id: str, *, user_id: str | None = None, database_url: str | None = None
) -> None:
    """Discard the stored suggestion for a transaction."""

    from db.client import session_scope

    from .persistence import reject_suggestion as _impl

    with session_scope(database_url=database_url) as session:
        _impl(session, transaction_id, user_id=user_id)


def budget_dashboard(
    user_id: str,
    period: date,
    *,
    database_url: str | None = None,
    limit: int = 5,
) -> tuple[list[RankedBudget], Recommendation | None]:
    """Ranked budget statuses for the month of ``period`` plus any weekly-cap
    recommendation for over-budget categories."""

    from db.client import session_scope

    from .budgets import load_budget_lines

    with session_scope(database_url=database_url) as session:
        lines = load_budget_lines(session, user_id, period)
    ranked = rank_budgets(lines, limit=limit)
    return ranked, build_recommendation(ranked)


__all__ = [
    "CategorySuggestion",
    "apply_suggestion",
    "budget_dashboard",
    "build_recommendation",
    "calculate_budget_status",
    "generate_suggestions",
    "rank_budgets",
    "reject_suggestion",
    "suggest_category",
]
