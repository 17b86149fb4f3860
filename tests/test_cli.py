import json
from datetime import date, timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from spend_insights.cli import app, cmd_budget_status, cmd_suggest

from tests.helpers.db import add_category, add_transaction, get_transaction

runner = CliRunner()
RECENT = date.today() - timedelta(days=5)


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # The CLI loads ``.env`` from the working directory.
    monkeypatch.chdir(tmp_path)


def _netflix_history(db_url: str, n: int = 3) -> str:
    cat, _ = add_category(db_url, "Subscriptions")
    for i in range(n):
        add_transaction(
            db_url, user_id="u1", day=RECENT - timedelta(days=i),
            description="NETFLIX.COM", amount="15.99", category_id=cat,
        )
    return cat


# ---- Handlers ------------------------------------------------------------------


def test_cmd_suggest_prints_json(capsys: pytest.CaptureFixture[str], db_url: str):
    cat = _netflix_history(db_url)

    code = cmd_suggest(
        user_id="u1", description="netflix.com", amount="15.99", type_="expense",
        database_url=db_url,
    )

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload == {
        "category_id": cat,
        "subcategory_id": None,
        "confidence": "high",
        "match_count": 3,
        "match_type": "description_and_amount",
    }


def test_cmd_suggest_validates_input(capsys: pytest.CaptureFixture[str]):
    code = cmd_suggest(user_id="u1", description="x", amount="1", type_="transfer")

    assert code == 1
    assert capsys.readouterr().err.startswith("Error: invalid input")


def test_cmd_budget_status_requires_a_source(capsys: pytest.CaptureFixture[str]):
    assert cmd_budget_status() == 1
    assert "--user-id or --budgets-file" in capsys.readouterr().err


def test_cmd_budget_status_rejects_bad_period(capsys: pytest.CaptureFixture[str]):
    assert cmd_budget_status(user_id="u1", period="June") == 1
    assert "invalid period" in capsys.readouterr().err


# ---- Typer app ---------------------------------------------------------------


def test_suggest_command_without_history_prints_null(db_url: str):
    result = runner.invoke(
        app,
        ["suggest", "--user-id", "u1", "--description", "Netflix", "--amount", "15.99",
         "--database-url", db_url],
    )

    assert result.exit_code == 0
    assert result.stdout.strip() == "null"


def test_budget_status_from_file(tmp_path: Path):
    budgets = tmp_path / "budgets.json"
    budgets.write_text(
        json.dumps(
            [
                {"id": "1", "display_name": "Dining", "amount": 300, "actual_spend": 360},
                {"id": "2", "category": "Groceries", "amount": 600, "actual_spend": 550},
                {"id": "3", "amount": 100, "actual_spend": 10},
            ]
        ),
        encoding="utf-8",
    )

    result = runner.invoke(app, ["budget-status", "--budgets-file", str(budgets)])

    assert result.exit_code == 0
    assert result.stdout == (
        "Dining\t120%\tover\n"
        "Groceries\t92%\twarning\n"
        "Unknown\t10%\tok\n"
        "\n"
        "Recommendation: Set weekly spending cap for Dining ($75.00) to stay on track.\n"
    )


def test_budget_status_from_db_without_budgets(db_url: str):
    result = runner.invoke(
        app, ["budget-status", "--user-id", "u1", "--period", "2026-06", "--database-url", db_url]
    )

    assert result.exit_code == 0
    assert result.stdout.strip() == "No budgets found."


def test_seed_import_and_generate(tmp_path: Path, db_url: str):
    seeded = runner.invoke(app, ["seed-categories", "--database-url", db_url])
    assert seeded.exit_code == 0
    assert seeded.stdout.strip() == "Created 40 categories/subcategories."

    csv_path = tmp_path / "tx.csv"
    rows = ["Date,Description,Amount,Category,Subcategory"]
    rows += [f"{RECENT - timedelta(days=i)},Spotify,9.99,Subscriptions,Streaming" for i in range(2)]
    rows += [f"{RECENT},SPOTIFY,9.99,,"]
    csv_path.write_text("\n".join(rows) + "\n", encoding="utf-8")

    imported = runner.invoke(
        app,
        ["import-csv", "--csv-path", str(csv_path), "--user-id", "u1", "--no-suggest",
         "--database-url", db_url],
    )
    assert imported.exit_code == 0
    assert imported.stdout.strip() == "Imported 3 transactions."

    generated = runner.invoke(
        app, ["generate-suggestions", "--user-id", "u1", "--database-url", db_url]
    )
    assert generated.exit_code == 0
    assert generated.stdout.strip() == "Processed 1 transactions, 0 errors"


def test_import_csv_missing_file(tmp_path: Path, db_url: str):
    result = runner.invoke(
        app,
        ["import-csv", "--csv-path", str(tmp_path / "nope.csv"), "--user-id", "u1",
         "--database-url", db_url],
    )

    assert result.exit_code == 1
    assert "File not found" in result.output


def test_apply_and_reject_commands(db_url: str):
    cat, _ = add_category(db_url, "Food")
    applied_id = add_transaction(
        db_url, user_id="u1", day=RECENT, description="Deli", amount="8",
        suggested_category_id=cat,
    )
    rejected_id = add_transaction(
        db_url, user_id="u1", day=RECENT, description="Deli", amount="9",
        suggested_category_id=cat,
    )

    applied = runner.invoke(
        app, ["apply-suggestion", applied_id, "--user-id", "u1", "--database-url", db_url]
    )
    rejected = runner.invoke(
        app, ["reject-suggestion", rejected_id, "--user-id", "u1", "--database-url", db_url]
    )
    again = runner.invoke(app, ["apply-suggestion", applied_id, "--database-url", db_url])

    assert applied.exit_code == 0
    assert applied.stdout.strip() == f"{applied_id}\t{cat}"
    assert rejected.exit_code == 0
    assert rejected.stdout.strip() == f"{rejected_id}\trejected"
    assert get_transaction(db_url, applied_id).category_id == cat
    assert get_transaction(db_url, rejected_id).suggested_category_id is None
    assert again.exit_code == 1
    assert "No suggested category" in again.output
