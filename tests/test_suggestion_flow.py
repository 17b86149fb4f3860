from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from db.client import session_scope
from db.models.finance import Transaction
from sqlalchemy import text, update
from sqlalchemy.exc import OperationalError

import spend_insights.persistence as persistence_mod
import spend_insights.suggest as suggest_mod
import spend_insights.workflows.suggestion_flow as flow_mod
from spend_insights import apply_suggestion, generate_suggestions, reject_suggestion
from spend_insights.persistence import (
    NoSuggestionError,
    TransactionNotFoundError,
    record_transaction,
    to_decimal_2,
)
from spend_insights.workflows.suggestion_flow import resolve_limit

from tests.helpers.db import add_category, add_transaction, get_transaction

# History must fall inside the default lookback window, which is anchored on
# the real current date.
RECENT = date.today() - timedelta(days=7)


def _history(db_url: str, n: int, *, description: str, amount: str, category_id: str,
             subcategory_id: str | None = None, user_id: str = "u1") -> None:
    for i in range(n):
        add_transaction(
            db_url,
            user_id=user_id,
            day=RECENT - timedelta(days=i),
            description=description,
            amount=amount,
            category_id=category_id,
            subcategory_id=subcategory_id,
        )


# ---- record_transaction -------------------------------------------------------


def test_record_transaction_auto_applies_high_confidence(db_url: str):
    cat, subs = add_category(db_url, "Entertainment", subcategories=("Streaming",))
    _history(db_url, 3, description="NETFLIX", amount="15.99", category_id=cat,
             subcategory_id=subs["Streaming"])

    with session_scope(database_url=db_url) as session:
        row = record_transaction(
            session, user_id="u1", date=date.today(), type="expense",
            amount="15.99", description="Netflix",
        )
        tx_id = row.id

    stored = get_transaction(db_url, tx_id)
    assert stored.category_id == cat
    assert stored.subcategory_id == subs["Streaming"]
    assert stored.category_source == "suggestion"
    assert stored.suggested_category_id is None


def test_record_transaction_stores_medium_suggestion(db_url: str):
    cat, _ = add_category(db_url, "Health")
    _history(db_url, 2, description="Gym", amount="40.00", category_id=cat)

    with session_scope(database_url=db_url) as session:
        tx_id = record_transaction(
            session, user_id="u1", date=date.today(), type="expense",
            amount=40, description="GYM",
        ).id

    stored = get_transaction(db_url, tx_id)
    assert stored.category_id is None
    assert stored.category_source == "unknown"
    assert stored.suggested_category_id == cat


def test_record_transaction_keeps_explicit_category(db_url: str):
    health, _ = add_category(db_url, "Health")
    other, _ = add_category(db_url, "Other")
    _history(db_url, 3, description="Gym", amount="40.00", category_id=health)

    with session_scope(database_url=db_url) as session:
        tx_id = record_transaction(
            session, user_id="u1", date=date.today(), type="expense",
            amount="40.00", description="Gym", category_id=other,
        ).id

    stored = get_transaction(db_url, tx_id)
    assert (stored.category_id, stored.category_source) == (other, "manual")
    assert stored.suggested_category_id is None


def test_record_transfer_never_carries_a_category(db_url: str):
    cat, _ = add_category(db_url, "Other")

    with session_scope(database_url=db_url) as session:
        tx_id = record_transaction(
            session, user_id="u1", date=date.today(), type="transfer",
            amount="-500", description="To savings", category_id=cat,
        ).id

    stored = get_transaction(db_url, tx_id)
    assert stored.category_id is None
    assert stored.amount == Decimal("-500.00")


@pytest.mark.parametrize("bad", [{"type": "refund"}, {"amount": "abc"}, {"user_id": ""}])
def test_record_transaction_rejects_invalid_input(db_url: str, bad):
    kwargs = {"user_id": "u1", "date": date.today(), "type": "expense", "amount": "1.00"}
    kwargs.update(bad)
    with session_scope(database_url=db_url) as session, pytest.raises(ValueError):
        record_transaction(session, **kwargs)


def test_failed_history_read_does_not_block_the_insert(
    monkeypatch: pytest.MonkeyPatch, db_url: str
):
    def _write_then_fail(session, *_a, **_kw):
        session.execute(update(Transaction).values(description="clobbered"))
        session.execute(text("SELECT amount FROM no_such_table"))

    monkeypatch.setattr(suggest_mod, "load_history", _write_then_fail)

    with session_scope(database_url=db_url) as session:
        first_id = record_transaction(
            session, user_id="u1", date=date.today(), type="expense",
            amount="3.00", description="Bagel", suggest=False,
        ).id
        second_id = record_transaction(
            session, user_id="u1", date=date.today(), type="expense",
            amount="4.00", description="Latte",
        ).id

    # The failed read is rolled back on its own; both inserts commit.
    assert get_transaction(db_url, first_id).description == "Bagel"
    second = get_transaction(db_url, second_id)
    assert second.description == "Latte"
    assert second.category_id is None and second.suggested_category_id is None


def test_to_decimal_2_rounds_half_up():
    assert to_decimal_2("2.345") == Decimal("2.35")
    assert to_decimal_2(7) == Decimal("7.00")
    with pytest.raises(ValueError):
        to_decimal_2("NaN")


# ---- apply / reject -----------------------------------------------------------


def test_apply_suggestion_promotes_pending_category(db_url: str):
    cat, subs = add_category(db_url, "Food", subcategories=("Coffee Shops",))
    tx_id = add_transaction(
        db_url, user_id="u1", day=RECENT, description="Blue Bottle", amount="6.50",
        suggested_category_id=cat, suggested_subcategory_id=subs["Coffee Shops"],
    )

    assert apply_suggestion(tx_id, user_id="u1", database_url=db_url) == cat

    stored = get_transaction(db_url, tx_id)
    assert (stored.category_id, stored.subcategory_id) == (cat, subs["Coffee Shops"])
    assert stored.category_source == "suggestion"
    assert stored.suggested_category_id is None
    assert stored.suggested_subcategory_id is None


def test_apply_suggestion_errors(db_url: str):
    tx_id = add_transaction(db_url, user_id="u1", day=RECENT, description="x", amount="1")

    with pytest.raises(NoSuggestionError):
        apply_suggestion(tx_id, database_url=db_url)
    with pytest.raises(TransactionNotFoundError):
        apply_suggestion("missing", database_url=db_url)
    with pytest.raises(TransactionNotFoundError):
        apply_suggestion(tx_id, user_id="someone-else", database_url=db_url)


def test_apply_suggestion_without_resulting_category_raises(
    monkeypatch: pytest.MonkeyPatch, db_url: str
):
    monkeypatch.setattr(
        persistence_mod,
        "apply_suggestion",
        lambda *_a, **_kw: SimpleNamespace(category_id=None),
    )

    with pytest.raises(NoSuggestionError):
        apply_suggestion("t1", database_url=db_url)


def test_reject_suggestion_clears_pending_category(db_url: str):
    cat, _ = add_category(db_url, "Food")
    tx_id = add_transaction(
        db_url, user_id="u1", day=RECENT, description="Blue Bottle", amount="6.50",
        suggested_category_id=cat,
    )

    reject_suggestion(tx_id, user_id="u1", database_url=db_url)
    # Rejecting again is a no-op.
    reject_suggestion(tx_id, user_id="u1", database_url=db_url)

    stored = get_transaction(db_url, tx_id)
    assert stored.suggested_category_id is None
    assert stored.category_id is None


# ---- generate_suggestions -----------------------------------------------------


def test_generate_suggestions_stores_pending_suggestions(db_url: str):
    cat, _ = add_category(db_url, "Entertainment")
    _history(db_url, 3, description="Spotify", amount="9.99", category_id=cat)
    match_id = add_transaction(
        db_url, user_id="u1", day=date.today(), description="SPOTIFY", amount="9.99"
    )
    no_match_id = add_transaction(
        db_url, user_id="u1", day=date.today(), description="Hardware store", amount="30"
    )
    transfer_id = add_transaction(
        db_url, user_id="u1", day=date.today(), description="Spotify", amount="9.99",
        type="transfer",
    )
    lines: list[str] = []

    result = generate_suggestions("u1", database_url=db_url, on_progress=lines.append)

    assert (result.processed, result.errors, result.total) == (1, 0, 2)
    assert result.message == "Processed 1 transactions, 0 errors"
    assert lines == [f"{match_id}\t{cat}\thigh"]
    assert get_transaction(db_url, match_id).suggested_category_id == cat
    # Batch suggestions are always advisory.
    assert get_transaction(db_url, match_id).category_id is None
    assert get_transaction(db_url, no_match_id).suggested_category_id is None
    assert get_transaction(db_url, transfer_id).suggested_category_id is None


def test_generate_suggestions_with_nothing_pending(db_url: str):
    result = generate_suggestions("u1", database_url=db_url)

    assert result.total == 0
    assert result.message == "No transactions to process"


def test_generate_suggestions_counts_store_failures(
    monkeypatch: pytest.MonkeyPatch, db_url: str
):
    cat, _ = add_category(db_url, "Entertainment")
    _history(db_url, 1, description="Spotify", amount="9.99", category_id=cat)
    add_transaction(db_url, user_id="u1", day=date.today(), description="Spotify", amount="9.99")

    def _fail(*_a, **_kw):
        raise OperationalError("UPDATE", {}, Exception("disk I/O error"))

    monkeypatch.setattr(flow_mod, "store_suggestion", _fail)

    result = generate_suggestions("u1", database_url=db_url)

    assert (result.processed, result.errors, result.total) == (0, 1, 1)


def test_failed_store_is_rolled_back_without_aborting_the_batch(
    monkeypatch: pytest.MonkeyPatch, db_url: str
):
    cat, _ = add_category(db_url, "Entertainment")
    _history(db_url, 1, description="Spotify", amount="9.99", category_id=cat)
    failing_id = add_transaction(
        db_url, user_id="u1", day=date.today(), description="Spotify", amount="9.99"
    )
    ok_id = add_transaction(
        db_url, user_id="u1", day=date.today() - timedelta(days=1),
        description="Spotify", amount="9.99",
    )
    real_store = flow_mod.store_suggestion

    def _store_then_violate(session, tx_id, suggestion):
        real_store(session, tx_id, suggestion)
        if tx_id == failing_id:
            session.execute(
                update(Transaction)
                .where(Transaction.id == tx_id)
                .values(category_source="bogus")
            )

    monkeypatch.setattr(flow_mod, "store_suggestion", _store_then_violate)

    result = generate_suggestions("u1", database_url=db_url)

    assert (result.processed, result.errors, result.total) == (1, 1, 2)
    assert get_transaction(db_url, failing_id).suggested_category_id is None
    assert get_transaction(db_url, ok_id).suggested_category_id == cat


def test_generate_suggestions_honors_limit(db_url: str):
    cat, _ = add_category(db_url, "Entertainment")
    _history(db_url, 3, description="Spotify", amount="9.99", category_id=cat)
    for _ in range(3):
        add_transaction(
            db_url, user_id="u1", day=date.today(), description="Spotify", amount="9.99"
        )

    result = generate_suggestions("u1", database_url=db_url, limit=2)

    assert (result.processed, result.total) == (2, 2)


def test_resolve_limit(monkeypatch: pytest.MonkeyPatch):
    assert resolve_limit() == 100
    monkeypatch.setenv("SPEND_INSIGHTS_SUGGESTION_LIMIT", "25")
    assert resolve_limit() == 25
    monkeypatch.setenv("SPEND_INSIGHTS_SUGGESTION_LIMIT", "-3")
    assert resolve_limit() == 100
    with pytest.raises(ValueError):
        resolve_limit(0)
