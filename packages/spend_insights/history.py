"""History scanner: categorized transactions feeding category learning."""

from __future__ import annotations

import calendar
import os
from datetime import date

from db.models.finance import Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import HistoricalTransaction

DEFAULT_LOOKBACK_MONTHS = 12


def resolve_lookback_months(value: int | None = None) -> int:
    """Return ``value`` or the ``SPEND_INSIGHTS_LOOKBACK_MONTHS`` override.

    Invalid or non-positive overrides fall back to 12 months.
    """

    if value is not None:
        if value <= 0:
            raise ValueError("lookback_months must be a positive integer")
        return value
    env_val = os.getenv("SPEND_INSIGHTS_LOOKBACK_MONTHS")
    try:
        months = int(env_val) if env_val else DEFAULT_LOOKBACK_MONTHS
    except ValueError:
        months = DEFAULT_LOOKBACK_MONTHS
    return months if months > 0 else DEFAULT_LOOKBACK_MONTHS


def months_before(day: date, months: int) -> date:
    """Return the same calendar day ``months`` earlier, clamped to month end.

    ``months_before(date(2026, 3, 31), 1) == date(2026, 2, 28)``.
    """

    total = day.year * 12 + (day.month - 1) - months
    year, month0 = divmod(total, 12)
    month = month0 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def load_history(
    session: Session,
    user_id: str,
    type_: str,
    *,
    lookback_months: int | None = None,
    today: date | None = None,
) -> list[HistoricalTransaction]:
    """Return the user's categorized transactions of ``type_`` in the window.

    Rows are ordered newest first; the suggestion engine relies on this order
    to decide which category is "seen first" when breaking ties.
    """

    start = months_before(today or date.today(), resolve_lookback_months(lookback_months))
    stmt = (
        select(
            Transaction.id,
            Transaction.description,
            Transaction.amount,
            Transaction.category_id,
            Transaction.subcategory_id,
            Transaction.type,
        )
        .where(Transaction.user_id == user_id)
        .where(Transaction.type == type_)
        .where(Transaction.category_id.is_not(None))
        .where(Transaction.date >= start)
        .order_by(
            Transaction.date.desc(),
            Transaction.created_at.desc(),
            Transaction.id,
        )
    )
    return [
        HistoricalTransaction(
            id=row.id,
            description=row.description,
            amount=row.amount,
            category_id=row.category_id,
            subcategory_id=row.subcategory_id,
            type=row.type,
        )
        for row in session.execute(stmt)
    ]


__all__ = [
    "DEFAULT_LOOKBACK_MONTHS",
    "load_history",
    "months_before",
    "resolve_lookback_months",
]
