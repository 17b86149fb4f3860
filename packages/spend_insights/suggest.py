"""Category learning: suggest a category from the user's own history.

The engine is a single aggregation pass over the user's categorized
transactions of the same type from the lookback window:

1. Normalize the incoming description (see ``normalizers``).
2. Tally, per ``(category_id, subcategory_id)``, how many historical rows share
   the normalized description *and* the amount (``|delta| < 0.01``) versus the
   description only.
3. Classify the tallies into a confidence tier.

Confidence tiers
----------------
- ``high`` (safe to auto-apply): 3+ description+amount matches, or 5+
  description-only matches, for one category.
- ``medium`` (suggest): 2 description+amount matches, or 3-4 description-only.
- ``low``: any single match.

High-confidence groups short-circuit in the order their keys were first seen
while scanning history newest-first, so the most recently used qualifying
category wins over a larger but older one.

The lookup is advisory: any failure to read history is logged and reported as
"no suggestion" instead of being raised to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal, InvalidOperation

from db.client import session_scope
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .history import load_history
from .logging_setup import get_logger
from .models import CategorySuggestion, HistoricalTransaction, MatchTally
from .normalizers import normalize_description

AMOUNT_TOLERANCE = Decimal("0.01")

HIGH_AMOUNT_MATCHES = 3
HIGH_DESCRIPTION_MATCHES = 5
MEDIUM_AMOUNT_MATCHES = 2
MEDIUM_DESCRIPTION_MATCHES = 3

_logger = get_logger("spend_insights.suggest")


def _to_decimal(value: Decimal | float | int | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc


def amounts_match(a: Decimal | float | int | str, b: Decimal | float | int | str) -> bool:
    """Return True when two amounts differ by strictly less than one cent."""

    return abs(_to_decimal(a) - _to_decimal(b)) < AMOUNT_TOLERANCE


def _group_key(category_id: str, subcategory_id: str | None) -> str:
    return f"{category_id}-{subcategory_id or 'null'}"


def tally_matches(
    history: Iterable[HistoricalTransaction],
    normalized_description: str,
    amount: Decimal | float | int | str,
) -> dict[str, MatchTally]:
    """Aggregate description/amount matches per category group.

    Every categorized row registers its group, matching or not, so the dict's
    insertion order is first-seen order over ``history``.
    """

    target = _to_decimal(amount)
    tallies: dict[str, MatchTally] = {}
    for tx in history:
        if not tx.category_id or not tx.description:
            continue

        key = _group_key(tx.category_id, tx.subcategory_id)
        tally = tallies.get(key)
        if tally is None:
            tally = MatchTally(category_id=tx.category_id, subcategory_id=tx.subcategory_id)
            tallies[key] = tally

        if normalize_description(tx.description) != normalized_description:
            continue
        if amounts_match(tx.amount, target):
            tally.description_and_amount_count += 1
        else:
            tally.description_only_count += 1
    return tallies


def _high_confidence(tallies: dict[str, MatchTally]) -> CategorySuggestion | None:
    # Each group is checked against both thresholds before moving on.
    for tally in tallies.values():
        if tally.description_and_amount_count >= HIGH_AMOUNT_MATCHES:
            return CategorySuggestion(
                category_id=tally.category_id,
                subcategory_id=tally.subcategory_id,
                confidence="high",
                match_count=tally.description_and_amount_count,
                match_type="description_and_amount",
            )
        if tally.description_only_count >= HIGH_DESCRIPTION_MATCHES:
            return CategorySuggestion(
                category_id=tally.category_id,
                subcategory_id=tally.subcategory_id,
                confidence="high",
                match_count=tally.description_only_count,
                match_type="description_only",
            )
    return None


def _classify(tally: MatchTally) -> CategorySuggestion | None:
    amt = tally.description_and_amount_count
    desc = tally.description_only_count
    if amt >= MEDIUM_AMOUNT_MATCHES or desc >= MEDIUM_DESCRIPTION_MATCHES:
        by_amount = amt >= MEDIUM_AMOUNT_MATCHES
        confidence = "medium"
    elif amt >= 1 or desc >= 1:
        by_amount = amt >= 1
        confidence = "low"
    else:
        return None
    return CategorySuggestion(
        category_id=tally.category_id,
        subcategory_id=tally.subcategory_id,
        confidence=confidence,
        match_count=amt if by_amount else desc,
        match_type="description_and_amount" if by_amount else "description_only",
    )


def classify_tallies(tallies: dict[str, MatchTally]) -> CategorySuggestion | None:
    """Pick the single best suggestion from per-group tallies."""

    high = _high_confidence(tallies)
    if high is not None:
        return high

    best: CategorySuggestion | None = None
    best_score = 0
    for tally in tallies.values():
        # Strictly greater: the first group seen keeps a tie.
        if tally.score > best_score:
            best_score = tally.score
            best = _classify(tally)
    return best


def suggest_from_history(
    history: Iterable[HistoricalTransaction],
    description: str,
    amount: Decimal | float | int | str,
) -> CategorySuggestion | None:
    """Run matching and classification over an already-loaded history."""

    normalized = normalize_description(description)
    return classify_tallies(tally_matches(history, normalized, amount))


def suggest_category(
    user_id: str,
    description: str,
    amount: Decimal | float | int | str,
    type_: str,
    *,
    session: Session | None = None,
    database_url: str | None = None,
    lookback_months: int | None = None,
    today: date | None = None,
) -> CategorySuggestion | None:
    """Suggest a category for a new transaction from the user's history.

    Parameters
    ----------
    user_id / description / amount / type_:
        The transaction being categorized. Empty ``user_id`` or
        ``description`` returns ``None`` without touching the database.
    session:
        Optional active session (read-only use). History is read inside a
        SAVEPOINT so a failure leaves the caller's transaction usable. When
        omitted, a short-lived session is opened via ``db.client.session_scope``.
    database_url:
        Optional DB URL override when no ``session`` is given.
    lookback_months / today:
        History window controls (default: 12 months back from today).

    Returns
    -------
    CategorySuggestion | None
        ``None`` when there is no matching history or history could not be
        read.
    """

    if not description or not user_id:
        return None

    try:
        if session is not None:
            # A failed read must not poison the caller's transaction.
            with session.begin_nested():
                history = load_history(
                    session, user_id, type_, lookback_months=lookback_months, today=today
                )
        else:
            with session_scope(database_url=database_url) as s:
                history = load_history(
                    s, user_id, type_, lookback_months=lookback_months, today=today
                )
    except (SQLAlchemyError, RuntimeError) as exc:
        _logger.warning("category learning: history unavailable for user %s: %s", user_id, exc)
        return None

    if not history:
        return None

    suggestion = suggest_from_history(history, description, amount)
    if suggestion is not None:
        _logger.debug(
            "category learning: %s confidence (%s x%d) for user %s",
            suggestion.confidence,
            suggestion.match_type,
            suggestion.match_count,
            user_id,
        )
    return suggestion


__all__ = [
    "AMOUNT_TOLERANCE",
    "amounts_match",
    "classify_tallies",
    "suggest_category",
    "suggest_from_history",
    "tally_matches",
]
