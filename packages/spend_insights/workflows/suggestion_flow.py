# ruff: noqa: I001
"""Batch generation of category suggestions for uncategorized transactions.

Runs in the background after imports: every recent transaction without a
category or a pending suggestion is matched against the user's history, and
any resulting suggestion is stored for the user to accept or reject.
"""

from __future__ import annotations

import os
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from db.client import session_scope
from db.models.finance import Transaction

from ..logging_setup import get_logger
from ..models import GenerationResult
from ..persistence import store_suggestion
from ..suggest import suggest_category

DEFAULT_LIMIT = 100

_logger = get_logger("spend_insights.workflows.suggestion_flow")


def resolve_limit(limit: int | None = None) -> int:
    """Honor ``SPEND_INSIGHTS_SUGGESTION_LIMIT`` when ``limit`` is omitted."""

    if limit is not None:
        if limit <= 0:
            raise ValueError("limit must be a positive integer")
        return limit
    env_val = os.getenv("SPEND_INSIGHTS_SUGGESTION_LIMIT")
    try:
        value = int(env_val) if env_val else DEFAULT_LIMIT
    except ValueError:
        value = DEFAULT_LIMIT
    return value if value > 0 else DEFAULT_LIMIT


def generate_suggestions(
    user_id: str,
    *,
    database_url: str | None = None,
    limit: int | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> GenerationResult:
    """Store suggestions for the user's uncategorized transactions.

    Parameters
    ----------
    user_id:
        Owner of the transactions to process.
    database_url:
        Optional DB URL override. Falls back to ``DATABASE_URL`` when ``None``.
    limit:
        Maximum number of transactions processed per run (newest first).
    on_progress:
        Optional callable receiving one short line per stored suggestion.

    Returns
    -------
    GenerationResult
        ``processed`` counts stored suggestions; ``errors`` counts rows whose
        update failed. Failures never abort the batch.
    """

    if not user_id:
        raise ValueError("user_id is required")
    cap = resolve_limit(limit)

    with session_scope(database_url=database_url) as session:
        pending = session.execute(
            select(Transaction.id, Transaction.description, Transaction.amount, Transaction.type)
            .where(Transaction.user_id == user_id)
            .where(Transaction.category_id.is_(None))
            .where(Transaction.suggested_category_id.is_(None))
            .where(Transaction.description.is_not(None))
            .where(Transaction.type != "transfer")
            .order_by(Transaction.date.desc(), Transaction.id)
            .limit(cap)
        ).all()

        processed = 0
        errors = 0
        for tx_id, description, amount, tx_type in pending:
            if not description:
                continue
            suggestion = suggest_category(
                user_id, description, amount, tx_type, session=session
            )
            if suggestion is None:
                continue
            try:
                with session.begin_nested():
                    store_suggestion(session, tx_id, suggestion)
            except SQLAlchemyError as exc:
                _logger.error("failed to store suggestion for transaction %s: %s", tx_id, exc)
                errors += 1
                continue
            processed += 1
            _logger.info(
                "generated suggestion for transaction %s: category=%s confidence=%s matches=%d",
                tx_id,
                suggestion.category_id,
                suggestion.confidence,
                suggestion.match_count,
            )
            if on_progress:
                on_progress(f"{tx_id}\t{suggestion.category_id}\t{suggestion.confidence}")

    result = GenerationResult(processed=processed, errors=errors, total=len(pending))
    _logger.info("suggestion generation for user %s: %s", user_id, result.message)
    return result


__all__ = ["DEFAULT_LIMIT", "generate_suggestions", "resolve_limit"]
