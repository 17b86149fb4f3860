# ruff: noqa: I001
"""CLI for the ``spend_insights`` package.

This module exposes callable command handlers (``cmd_*``, each returning a
process exit code) and a Typer-based console interface. Environment variables
(notably ``DATABASE_URL``) are loaded from a local ``.env`` using
``python-dotenv`` before delegating to command logic. Business logic lives in
``spend_insights.api`` and related modules.
"""

from __future__ import annotations

import json
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import TypeAdapter, ValidationError
from typer.models import OptionInfo

from .logging_setup import configure_logging
from .models import BudgetInput, RankedBudget, Recommendation, SuggestionRequest


# ---- Small module-level helpers used by CLI commands -------------------------


def _err(msg: str) -> int:
    print(f"Error: {msg}", file=sys.stderr)
    return 1


def _parse_period(raw: str | None) -> date:
    """Accept ``YYYY-MM`` or ``YYYY-MM-DD``; default to the current month."""

    if not raw:
        return date.today().replace(day=1)
    s = raw.strip()
    for fmt in ("%Y-%m", "%Y-%m-%d"):
        try:
            return datetime.strptime(s, fmt).date().replace(day=1)
        except ValueError:
            continue
    raise ValueError(f"invalid period {raw!r}; expected YYYY-MM")


def _print_budget_report(ranked: list[RankedBudget], recommendation: Recommendation | None) -> None:
    if not ranked:
        print("No budgets found.")
        return
    for r in ranked:
        print(f"{r.line.display_name}\t{round(r.percentage)}%\t{r.status}")
    if recommendation is not None:
        print()
        print(f"Recommendation: {recommendation.text}")
    elif any(r.percentage >= 100 for r in ranked):
        print()
        print("Recommendation: Review your budgets to stay on track.")


# ---- Command handlers ---------------------------------------------------------


def cmd_suggest(
    *,
    user_id: str,
    description: str,
    amount: str,
    type_: str,
    database_url: str | None = None,
) -> int:
    """Print the learned category suggestion as JSON (``null`` when none)."""

    from .suggest import suggest_category

    try:
        req = SuggestionRequest(
            user_id=user_id, description=description, amount=amount, type=type_
        )
    except ValidationError as e:
        return _err(f"invalid input: {e.errors()[0]['msg']}")

    suggestion = suggest_category(
        req.user_id, req.description, req.amount, req.type, database_url=database_url
    )
    print(json.dumps(suggestion.as_dict() if suggestion else None))
    return 0


def cmd_generate_suggestions(
    *, user_id: str, limit: int | None = None, database_url: str | None = None
) -> int:
    from .workflows.suggestion_flow import generate_suggestions

    try:
        result = generate_suggestions(user_id, database_url=database_url, limit=limit)
    except ValueError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"suggestion generation failed: {e}")
    print(result.message)
    return 0 if result.errors == 0 else 2


def cmd_apply_suggestion(
    transaction_id: str, *, user_id: str | None = None, database_url: str | None = None
) -> int:
    from .api import apply_suggestion
    from .persistence import NoSuggestionError, TransactionNotFoundError

    try:
        category_id = apply_suggestion(
            transaction_id, user_id=user_id, database_url=database_url
        )
    except (TransactionNotFoundError, NoSuggestionError) as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"failed to apply suggestion: {e}")
    print(f"{transaction_id}\t{category_id}")
    return 0


def cmd_reject_suggestion(
    transaction_id: str, *, user_id: str | None = None, database_url: str | None = None
) -> int:
    from .api import reject_suggestion
    from .persistence import TransactionNotFoundError

    try:
        reject_suggestion(transaction_id, user_id=user_id, database_url=database_url)
    except TransactionNotFoundError as e:
        return _err(str(e))
    except Exception as e:
        return _err(f"failed to reject suggestion: {e}")
    print(f"{transaction_id}\trejected")
    return 0


def cmd_budget_status(
    *,
    user_id: str | None = None,
    period: str | None = None,
    budgets_file: Path | None = None,
    database_url: str | None = None,
) -> int:
    """Print ranked budget statuses from the DB or from a JSON file."""

    from .budgets import build_recommendation, rank_budgets

    if budgets_file is not None:
        try:
            raw = json.loads(budgets_file.read_text(encoding="utf-8"))
            entries = TypeAdapter(list[BudgetInput]).validate_python(raw)
        except FileNotFoundError:
            return _err(f"File not found: {budgets_file}")
        except json.JSONDecodeError as e:
            return _err(f"Failed to parse JSON: {e}")
        except ValidationError as e:
            return _err(f"invalid budgets file: {e.errors()[0]['msg']}")
        ranked = rank_budgets([b.to_line() for b in entries])
        _print_budget_report(ranked, build_recommendation(ranked))
        return 0

    if not user_id:
        return _err("either --user-id or --budgets-file is required")
    try:
        month = _parse_period(period)
    except ValueError as e:
        return _err(str(e))

    from .api import budget_dashboard

    try:
        ranked, recommendation = budget_dashboard(user_id, month, database_url=database_url)
    except Exception as e:
        return _err(f"failed to load budgets: {e}")
    _print_budget_report(ranked, recommendation)
    return 0


def cmd_import_csv(
    csv_path: str,
    *,
    user_id: str,
    suggest: bool = True,
    database_url: str | None = None,
) -> int:
    import csv

    from .ingest.csv_import import import_csv

    try:
        count = import_csv(csv_path, user_id=user_id, database_url=database_url, suggest=suggest)
    except FileNotFoundError:
        return _err(f"File not found: {csv_path}")
    except PermissionError:
        return _err(f"Permission denied: {csv_path}")
    except csv.Error as e:
        return _err(f"Failed to parse CSV: {e}")
    except ValueError as e:
        return _err(f"Invalid CSV value: {e}")
    except Exception as e:
        return _err(f"import failed: {e}")
    print(f"Imported {count} transactions.")
    return 0


def cmd_seed_categories(
    *, file: Path | None = None, user_id: str | None = None, database_url: str | None = None
) -> int:
    from .ingest.seed_categories import DEFAULT_SEED_FILE, seed_categories

    try:
        created = seed_categories(
            database_url=database_url, file=file or DEFAULT_SEED_FILE, user_id=user_id
        )
    except FileNotFoundError:
        return _err(f"File not found: {file}")
    except (ValueError, json.JSONDecodeError) as e:
        return _err(f"invalid seed file: {e}")
    except Exception as e:
        return _err(f"seeding failed: {e}")
    print(f"Created {created} categories/subcategories.")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Learn transaction categories from history and report budget status. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("suggest")
def suggest_cmd(
    *,
    user_id: str = typer.Option(..., help="Owner of the transaction history."),
    description: str = typer.Option(..., help="Transaction description."),
    amount: str = typer.Option(..., help="Transaction amount."),
    type_: str = typer.Option("expense", "--type", help="income or expense."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Suggest a category for a transaction from the user's history."""

    _exit(
        cmd_suggest(
            user_id=user_id,
            description=description,
            amount=amount,
            type_=type_,
            database_url=database_url,
        )
    )


@app.command("generate-suggestions")
def generate_suggestions_cmd(
    *,
    user_id: str = typer.Option(..., help="Owner of the transactions."),
    limit: int | None = typer.Option(
        None, help="Max transactions per run (env SPEND_INSIGHTS_SUGGESTION_LIMIT, default 100)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Store suggestions for uncategorized transactions."""

    _exit(cmd_generate_suggestions(user_id=user_id, limit=limit, database_url=database_url))


@app.command("apply-suggestion")
def apply_suggestion_cmd(
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    *,
    user_id: str | None = typer.Option(None, help="Restrict to this user's transactions."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Accept the stored category suggestion."""

    _exit(cmd_apply_suggestion(transaction_id, user_id=user_id, database_url=database_url))


@app.command("reject-suggestion")
def reject_suggestion_cmd(
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    *,
    user_id: str | None = typer.Option(None, help="Restrict to this user's transactions."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Discard the stored category suggestion."""

    _exit(cmd_reject_suggestion(transaction_id, user_id=user_id, database_url=database_url))


@app.command("budget-status")
def budget_status_cmd(
    *,
    user_id: str | None = typer.Option(None, help="Load budgets for this user from the DB."),
    period: str | None = typer.Option(None, help="Budget month as YYYY-MM (default: current)."),
    budgets_file: Path | None = typer.Option(
        None, dir_okay=False, help="JSON list of budgets with amount/actual_spend."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Show the five most-consumed budgets and a weekly-cap recommendation."""

    _exit(
        cmd_budget_status(
            user_id=user_id,
            period=period,
            budgets_file=budgets_file,
            database_url=database_url,
        )
    )


# Shared by `import-csv` via `Annotated`.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--csv-path",
    help="Path to a transaction CSV (Date, Description, Amount[, Type, Category, Subcategory])",
    dir_okay=False,
    file_okay=True,
    exists=False,  # missing files are reported by cmd_import_csv
)


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    user_id: str = typer.Option(..., help="Owner of the imported transactions."),
    suggest: bool = typer.Option(True, help="Learn categories for uncategorized rows."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Import transactions from a CSV export."""

    _exit(
        cmd_import_csv(str(csv_path), user_id=user_id, suggest=suggest, database_url=database_url)
    )


@app.command("seed-categories")
def seed_categories_cmd(
    *,
    file: Path | None = typer.Option(None, dir_okay=False, help="Seed JSON file."),
    user_id: str | None = typer.Option(None, help="Owner; omit for system categories."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Seed the category taxonomy."""

    _exit(cmd_seed_categories(file=file, user_id=user_id, database_url=database_url))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the current directory (without overriding existing
    variables) and configure logging before any subcommand runs."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m spend_insights.cli`
    app()
