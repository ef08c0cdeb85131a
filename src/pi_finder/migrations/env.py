"""Alembic environment configuration for pi_finder."""

from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any, Dict

from alembic import context
from sqlalchemy import engine_from_config, pool

from pi_finder.store.sql import METADATA, _resolve_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = METADATA


def _database_url() -> str:
    """Determine the database URL used for migrations."""

    override = os.getenv("PI_FINDER_DATABASE_URL") or os.getenv("ALEMBIC_DATABASE_URL")
    if override:
        return override
    return _resolve_database_url()


def _prepare_config_section() -> Dict[str, Any]:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _database_url()
    return section


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""

    section = _prepare_config_section()
    context.configure(
        url=section["sqlalchemy.url"],
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode using a SQLAlchemy engine."""

    section = _prepare_config_section()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
