"""Budget status, dashboard ranking and weekly-cap recommendations."""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from db.models.finance import Budget, Category, Subcategory, Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .history import months_before
from .models import BudgetLine, BudgetStatus, RankedBudget, Recommendation, WeeklyCap

WARNING_THRESHOLD = 90.0
OVER_THRESHOLD = 100.0
DASHBOARD_LIMIT = 5
WEEKS_PER_MONTH = 4


def _as_float(value: Decimal | float | int | None) -> float:
    if value is None:
        return 0.0
    try:
        f = float(value)
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0


def calculate_budget_status(
    budget_amount: Decimal | float | int | None,
    actual_spend: Decimal | float | int | None,
    *,
    warning_threshold: float = WARNING_THRESHOLD,
) -> BudgetStatus:
    """Return the spend percentage and its status band.

    ``percentage`` is ``actual / budget * 100`` for a positive budget and ``0``
    otherwise; non-finite inputs also yield ``0``. Status is ``"over"`` from
    100%, ``"warning"`` from ``warning_threshold`` and ``"ok"`` below.
    """

    amount = _as_float(budget_amount)
    spend = _as_float(actual_spend)
    percentage = (spend / amount) * 100 if amount > 0 else 0.0
    if not math.isfinite(percentage):
        percentage = 0.0

    if percentage >= OVER_THRESHOLD:
        status = "over"
    elif percentage >= warning_threshold:
        status = "warning"
    else:
        status = "ok"
    return BudgetStatus(status=status, percentage=percentage)


def rank_budgets(lines: Iterable[BudgetLine], *, limit: int = DASHBOARD_LIMIT) -> list[RankedBudget]:
    """Attach status to each line and keep the ``limit`` most-consumed budgets."""

    ranked = []
    for line in lines:
        st = calculate_budget_status(line.amount, line.actual_spend)
        ranked.append(RankedBudget(line=line, status=st.status, percentage=st.percentage))
    ranked.sort(key=lambda r: r.percentage, reverse=True)
    return ranked[:limit]


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_money(value: Decimal | float | int) -> str:
    """``1234.5 -> "$1,234.50"``; negatives get a leading minus."""

    d = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if d < 0 else ""
    return f"{sign}${abs(d):,.2f}"


def build_recommendation(ranked: Sequence[RankedBudget]) -> Recommendation | None:
    """Suggest weekly spending caps for up to two over-budget categories."""

    over = [r for r in ranked if r.percentage >= OVER_THRESHOLD]
    if not over:
        return None

    caps = tuple(
        WeeklyCap(
            name=r.line.display_name,
            weekly_cap=_round_half_up(Decimal(str(r.line.amount)) / WEEKS_PER_MONTH),
        )
        for r in over[:2]
    )
    if len(caps) == 1:
        text = (
            f"Set weekly spending cap for {caps[0].name} "
            f"({format_money(caps[0].weekly_cap)}) to stay on track."
        )
    else:
        text = (
            f"Set weekly spending caps for {caps[0].name} ({format_money(caps[0].weekly_cap)}) "
            f"and {caps[1].name} ({format_money(caps[1].weekly_cap)}) to stay on track."
        )
    return Recommendation(text=text, categories=caps)


# ---------------------------------------------------------------------------
# DB-backed budget lines
# ---------------------------------------------------------------------------


def month_bounds(period: date) -> tuple[date, date]:
    """Return ``[first day, first day of next month)`` for ``period``'s month."""

    start = period.replace(day=1)
    end = months_before(start, -1)
    return start, end


def load_budget_lines(session: Session, user_id: str, period: date) -> list[BudgetLine]:
    """Load the user's budgets for ``period``'s month with actual spend.

    Spend is the sum of absolute amounts of categorized expense transactions
    dated within the month. Subcategory budgets use subcategory spend; other
    budgets use category spend.
    """

    start, end = month_bounds(period)

    # One pass over the month's expenses builds both spend maps.
    by_category: dict[str, Decimal] = defaultdict(Decimal)
    by_subcategory: dict[str, Decimal] = defaultdict(Decimal)
    spend_rows = session.execute(
        select(Transaction.amount, Transaction.category_id, Transaction.subcategory_id)
        .where(Transaction.user_id == user_id)
        .where(Transaction.type == "expense")
        .where(Transaction.category_id.is_not(None))
        .where(Transaction.date >= start)
        .where(Transaction.date < end)
    )
    for amount, category_id, subcategory_id in spend_rows:
        spent = abs(Decimal(str(amount)))
        by_category[category_id] += spent
        if subcategory_id:
            by_subcategory[subcategory_id] += spent

    stmt = (
        select(Budget, Category.name, Subcategory.name)
        .outerjoin(Category, Category.id == Budget.category_id)
        .outerjoin(Subcategory, Subcategory.id == Budget.subcategory_id)
        .where(Budget.user_id == user_id)
        .where(Budget.period >= start)
        .where(Budget.period < end)
        .order_by(Budget.created_at, Budget.id)
    )
    lines: list[BudgetLine] = []
    for budget, category_name, subcategory_name in session.execute(stmt):
        if budget.subcategory_id:
            spend = by_subcategory.get(budget.subcategory_id, Decimal("0"))
        elif budget.category_id:
            spend = by_category.get(budget.category_id, Decimal("0"))
        else:
            spend = Decimal("0")
        lines.append(
            BudgetLine(
                id=budget.id,
                display_name=budget.display_name or subcategory_name or category_name or "Unknown",
                amount=Decimal(str(budget.amount)),
                actual_spend=spend,
            )
        )
    return lines


__all__ = [
    "build_recommendation",
    "calculate_budget_status",
    "format_money",
    "load_budget_lines",
    "month_bounds",
    "rank_budgets",
]
