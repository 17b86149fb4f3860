"""Data models and type aliases for ``spend_insights``.

Value objects produced by the suggestion engine and the budget calculator are
frozen dataclasses. Inputs crossing the CLI boundary are validated with
pydantic models.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

type TransactionType = Literal["income", "expense", "transfer"]
type ConfidenceLevel = Literal["high", "medium", "low", "none"]
type MatchType = Literal["description_and_amount", "description_only"]
type BudgetState = Literal["ok", "warning", "over"]

TRANSACTION_TYPES: frozenset[str] = frozenset({"income", "expense", "transfer"})


# ---------------------------------------------------------------------------
# Category learning
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class HistoricalTransaction:
    """A categorized transaction from the user's history (read-only)."""

    id: str
    description: str | None
    amount: Decimal
    category_id: str | None
    subcategory_id: str | None
    type: str


@dataclass(slots=True)
class MatchTally:
    """Per (category, subcategory) counters for one suggestion call."""

    category_id: str
    subcategory_id: str | None
    description_and_amount_count: int = 0
    description_only_count: int = 0

    @property
    def score(self) -> int:
        # Amount matches are the stronger signal.
        return self.description_and_amount_count * 2 + self.description_only_count


@dataclass(frozen=True, slots=True)
class CategorySuggestion:
    """Best category guess for a transaction, derived from history.

    ``high`` suggestions are safe to auto-apply; ``medium`` and ``low`` should
    be confirmed by the user.
    """

    category_id: str
    subcategory_id: str | None
    confidence: ConfidenceLevel
    match_count: int
    match_type: MatchType

    def as_dict(self) -> dict[str, object]:
        return {
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "confidence": self.confidence,
            "match_count": self.match_count,
            "match_type": self.match_type,
        }


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BudgetStatus:
    status: BudgetState
    percentage: float


@dataclass(frozen=True, slots=True)
class BudgetLine:
    """A budget with the spend recorded against it for the period."""

    id: str
    display_name: str
    amount: Decimal
    actual_spend: Decimal


@dataclass(frozen=True, slots=True)
class RankedBudget:
    line: BudgetLine
    status: BudgetState
    percentage: float


@dataclass(frozen=True, slots=True)
class WeeklyCap:
    name: str
    weekly_cap: int


@dataclass(frozen=True, slots=True)
class Recommendation:
    text: str
    categories: tuple[WeeklyCap, ...]


# ---------------------------------------------------------------------------
# Workflow results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GenerationResult:
    processed: int
    errors: int
    total: int

    @property
    def message(self) -> str:
        if self.total == 0:
            return "No transactions to process"
        return f"Processed {self.processed} transactions, {self.errors} errors"


# ---------------------------------------------------------------------------
# Boundary DTOs
# ---------------------------------------------------------------------------


class SuggestionRequest(BaseModel):
    """Validated input for a single suggestion lookup."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    user_id: str
    description: str
    amount: Decimal
    type: Literal["income", "expense"]

    @field_validator("amount")
    @classmethod
    def _finite_amount(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("amount must be a finite number")
        return v


class BudgetInput(BaseModel):
    """A budget entry read from a JSON file for offline status reports."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    id: str
    display_name: str | None = None
    category: str | None = None
    amount: float = 0.0
    actual_spend: float = 0.0

    @field_validator("amount", "actual_spend")
    @classmethod
    def _finite(cls, v: float) -> float:
        # Non-finite values are treated like missing data.
        return v if math.isfinite(v) else 0.0

    def to_line(self) -> BudgetLine:
        return BudgetLine(
            id=self.id,
            display_name=self.display_name or self.category or "Unknown",
            amount=Decimal(str(self.amount)),
            actual_spend=Decimal(str(self.actual_spend)),
        )
