"""Adapter for importing a generic transaction CSV export.

CSV header (exact keys expected; ``Type``, ``Category`` and ``Subcategory``
are optional):
Date, Description, Amount, Type, Category, Subcategory

Rows are resolved against the user's categories by case-insensitive name and
recorded through :func:`spend_insights.persistence.record_transaction`, so
uncategorized rows pick up learned categories as they are imported.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from os import PathLike
from pathlib import Path
from typing import Any

from db.client import session_scope
from db.models.finance import Category, Subcategory
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..logging_setup import get_logger
from ..persistence import record_transaction

REQUIRED_HEADERS: frozenset[str] = frozenset({"Date", "Description", "Amount"})

_logger = get_logger("spend_insights.ingest.csv_import")


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = re.sub(r"\s+", " ", value).strip()
    return cleaned or None


def parse_amount(raw: str | None) -> Decimal:
    """Parse ``"$1,234.56"``, ``"(12.00)"`` or ``"-3"`` into a ``Decimal``."""

    if raw is None or not raw.strip():
        raise ValueError("amount is required")
    s = raw.strip()
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    if s.startswith("-"):
        negative = True
        s = s[1:].strip()
    s = s.replace("$", "").replace(",", "").strip()
    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return -abs(d) if negative else d


def parse_date(raw: str | None) -> date:
    if raw is None or not raw.strip():
        raise ValueError("date is required")
    s = raw.strip().split()[0].split("T", 1)[0]
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date: {raw!r}")


class CategoryIndex:
    """Case-insensitive lookup of a user's categories and subcategories."""

    def __init__(
        self,
        categories: Mapping[str, str],
        subcategories: Mapping[tuple[str, str], str],
    ) -> None:
        self._categories = {k.lower(): v for k, v in categories.items()}
        self._subcategories = {(c, s.lower()): v for (c, s), v in subcategories.items()}

    @classmethod
    def load(cls, session: Session, user_id: str) -> CategoryIndex:
        cats: dict[str, str] = {}
        rows = session.execute(
            select(Category.id, Category.name, Category.user_id)
            .where(or_(Category.user_id == user_id, Category.user_id.is_(None)))
            .order_by(Category.sort_order, Category.name)
        ).all()
        # User-owned names shadow system categories with the same name.
        for cid, name, owner in sorted(rows, key=lambda r: r[2] is not None):
            cats[name] = cid
        subs: dict[tuple[str, str], str] = {}
        if cats:
            for sid, cid, name in session.execute(
                select(Subcategory.id, Subcategory.category_id, Subcategory.name).where(
                    Subcategory.category_id.in_(list(cats.values()))
                )
            ):
                subs[(cid, name)] = sid
        return cls(cats, subs)

    def resolve(
        self, category: str | None, subcategory: str | None
    ) -> tuple[str | None, str | None]:
        if not category:
            return None, None
        cid = self._categories.get(category.lower())
        if cid is None:
            return None, None
        sid = self._subcategories.get((cid, subcategory.lower())) if subcategory else None
        return cid, sid


def to_transaction_rows(
    rows: Iterable[Mapping[str, str]], *, categories: CategoryIndex
) -> Iterator[dict[str, Any]]:
    """Convert CSV dict rows to ``record_transaction`` keyword payloads.

    Blank lines are skipped. ``Type`` defaults to ``expense``; unknown
    category names leave the row uncategorized.
    """

    for line_no, row in enumerate(rows, start=2):
        if all((v or "").strip() == "" for v in row.values()):
            continue
        try:
            tx_date = parse_date(row.get("Date"))
            amount = parse_amount(row.get("Amount"))
        except ValueError as exc:
            raise ValueError(f"line {line_no}: {exc}") from exc
        tx_type = (row.get("Type") or "").strip().lower() or "expense"
        category_id, subcategory_id = categories.resolve(
            _clean_text(row.get("Category")), _clean_text(row.get("Subcategory"))
        )
        yield {
            "date": tx_date,
            "type": tx_type,
            "amount": abs(amount) if tx_type != "transfer" else amount,
            "description": _clean_text(row.get("Description")),
            "category_id": category_id,
            "subcategory_id": subcategory_id,
        }


def import_csv(
    csv_path: str | PathLike[str],
    *,
    user_id: str,
    database_url: str | None = None,
    suggest: bool = True,
) -> int:
    """Import a transaction CSV for ``user_id`` and return the row count.

    Raises ``csv.Error`` when the header is missing required columns and
    ``ValueError`` for malformed values; nothing is written in either case.
    """

    p = Path(csv_path)
    with p.open(encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        headers = set(reader.fieldnames or [])
        if not headers:
            raise csv.Error(f"CSV appears to have no header row: {csv_path}")
        missing = sorted(REQUIRED_HEADERS - headers)
        if missing:
            raise csv.Error("CSV header mismatch. Missing columns: " + ", ".join(missing))
        raw_rows = list(reader)

    count = 0
    with session_scope(database_url=database_url) as session:
        index = CategoryIndex.load(session, user_id)
        for payload in to_transaction_rows(raw_rows, categories=index):
            record_transaction(
                session,
                user_id=user_id,
                category_source="import",
                suggest=suggest,
                **payload,
            )
            count += 1
    _logger.info("imported %d transactions for user %s from %s", count, user_id, p.name)
    return count


__all__ = [
    "CategoryIndex",
    "import_csv",
    "parse_amount",
    "parse_date",
    "to_transaction_rows",
]
