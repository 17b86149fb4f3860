"""Pytest configuration for test isolation.

The ``db.client`` engine is a process-wide singleton keyed to one database
URL, and the CLI reads ``DATABASE_URL`` plus ``SPEND_INSIGHTS_*`` overrides
from the environment. To keep tests hermetic, every test starts with a
disposed engine and a clean set of those variables.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import reset_engine

import spend_insights.logging_setup as logging_setup

from tests.helpers.db import bootstrap_sqlite_db

_ENV_VARS = (
    "DATABASE_URL",
    "SPEND_INSIGHTS_LOG_LEVEL",
    "SPEND_INSIGHTS_LOOKBACK_MONTHS",
    "SPEND_INSIGHTS_SUGGESTION_LIMIT",
)


@pytest.fixture(autouse=True)
def _isolate_db_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()


@pytest.fixture(autouse=True)
def _no_log_handlers(monkeypatch: pytest.MonkeyPatch) -> None:
    # CLI runs would otherwise attach a handler to the runner's stderr.
    monkeypatch.setattr(logging_setup, "_configured", True)


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """A fresh file-backed SQLite database with the full schema."""

    return bootstrap_sqlite_db(tmp_path / "spend-insights.db")
