# ruff: noqa: I001
"""Persistence integration for spend_insights.

Functions here write transactions and suggestion state to the shared database
owned by ``libs/db``. Callers own the session and its transaction scope (see
``db.client.session_scope``); nothing here commits.

Scope:
- Insert transactions, attaching a learned category when none was given.
- Store, apply, and reject advisory category suggestions.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from db.models.finance import Transaction
from .logging_setup import get_logger
from .models import TRANSACTION_TYPES, CategorySuggestion
from .suggest import suggest_category

_logger = get_logger("spend_insights.persistence")


class TransactionNotFoundError(LookupError):
    """Raised when a transaction id does not exist for the acting user."""


class NoSuggestionError(LookupError):
    """Raised when applying a suggestion to a transaction that has none."""


def to_decimal_2(raw: Any) -> Decimal:
    try:
        d = Decimal(str(raw))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _norm_str(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s if s else None


def record_transaction(
    session: Session,
    *,
    user_id: str,
    date: date,
    type: str,
    amount: Any,
    description: str | None = None,
    category_id: str | None = None,
    subcategory_id: str | None = None,
    category_source: str = "manual",
    suggest: bool = True,
) -> Transaction:
    """Insert a transaction and return the flushed ORM row.

    Transfers never carry a category. When no category is supplied and the
    row has a description, the user's history is consulted (best effort):

    - ``high`` confidence: the category is assigned directly with
      ``category_source="suggestion"``;
    - ``medium``/``low``: stored in ``suggested_*`` for the user to confirm.
    """

    if not user_id:
        raise ValueError("user_id is required")
    tx_type = (type or "").strip().lower()
    if tx_type not in TRANSACTION_TYPES:
        raise ValueError(f"invalid transaction type: {type!r}")

    amount_d = to_decimal_2(amount)
    description = _norm_str(description)
    if tx_type == "transfer":
        category_id = None
        subcategory_id = None

    row = Transaction(
        user_id=user_id,
        date=date,
        type=tx_type,
        amount=amount_d,
        description=description,
        category_id=category_id,
        subcategory_id=subcategory_id if category_id else None,
        category_source=category_source if category_id else "unknown",
    )

    if suggest and not category_id and description and tx_type != "transfer":
        suggestion = suggest_category(user_id, description, amount_d, tx_type, session=session)
        if suggestion is not None:
            _attach_suggestion(row, suggestion)

    session.add(row)
    session.flush()
    return row


def _attach_suggestion(row: Transaction, suggestion: CategorySuggestion) -> None:
    if suggestion.confidence == "high":
        row.category_id = suggestion.category_id
        row.subcategory_id = suggestion.subcategory_id
        row.category_source = "suggestion"
    else:
        row.suggested_category_id = suggestion.category_id
        row.suggested_subcategory_id = suggestion.subcategory_id


def store_suggestion(
    session: Session, transaction_id: str, suggestion: CategorySuggestion
) -> None:
    """Record ``suggestion`` as the pending suggestion for a transaction."""

    session.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id)
        .values(
            suggested_category_id=suggestion.category_id,
            suggested_subcategory_id=suggestion.subcategory_id,
            updated_at=func.now(),
        )
    )


def _get_owned(session: Session, transaction_id: str, user_id: str | None) -> Transaction:
    stmt = select(Transaction).where(Transaction.id == transaction_id)
    if user_id is not None:
        stmt = stmt.where(Transaction.user_id == user_id)
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise TransactionNotFoundError(f"Transaction not found: {transaction_id}")
    return row


def apply_suggestion(
    session: Session, transaction_id: str, *, user_id: str | None = None
) -> Transaction:
    """Promote the stored suggestion to the transaction's category.

    Raises
    ------
    TransactionNotFoundError
        Unknown id, or the row belongs to a different ``user_id``.
    NoSuggestionError
        The transaction has no stored suggestion.
    """

    row = _get_owned(session, transaction_id, user_id)
    if not row.suggested_category_id:
        raise NoSuggestionError(
            f"No suggested category found for transaction {transaction_id}"
        )

    row.category_id = row.suggested_category_id
    row.subcategory_id = row.suggested_subcategory_id
    row.category_source = "suggestion"
    row.suggested_category_id = None
    row.suggested_subcategory_id = None
    row.updated_at = func.now()
    session.flush()
    return row


def reject_suggestion(
    session: Session, transaction_id: str, *, user_id: str | None = None
) -> Transaction:
    """Discard the stored suggestion; the category is left untouched."""

    row = _get_owned(session, transaction_id, user_id)
    if row.suggested_category_id is None and row.suggested_subcategory_id is None:
        return row
    row.suggested_category_id = None
    row.suggested_subcategory_id = None
    row.updated_at = func.now()
    session.flush()
    return row


__all__ = [
    "NoSuggestionError",
    "TransactionNotFoundError",
    "apply_suggestion",
    "record_transaction",
    "reject_suggestion",
    "store_suggestion",
    "to_decimal_2",
]
