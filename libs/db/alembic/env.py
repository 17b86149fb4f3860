# ruff: noqa: I001
"""Migration environment for the ``db`` library.

``DATABASE_URL`` wins over ``sqlalchemy.url`` from ``alembic.ini``; a ``.env``
found from the working directory upwards is loaded first without overriding
the environment. Autogenerate compares against ``db.metadata`` (categories,
subcategories, transactions, budgets).
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

import db

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = db.metadata


def _resolve_url() -> str:
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError(
            "No database configured: set DATABASE_URL (or sqlalchemy.url in alembic.ini) "
            "before running spend_insights migrations"
        )
    return url


def _configure(**kwargs) -> None:
    # Type changes on Numeric amounts should show up in autogenerate diffs.
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)


def run_offline(url: str) -> None:
    """Emit SQL to stdout instead of connecting."""

    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


database_url = _resolve_url()
if context.is_offline_mode():
    run_offline(database_url)
else:
    run_online(database_url)
