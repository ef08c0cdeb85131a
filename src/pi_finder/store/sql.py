"""SQLAlchemy metadata and engine helpers for the investigator tables."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Engine
from sqlalchemy.engine import URL
from sqlalchemy.orm import sessionmaker

from pi_finder.settings import Settings, get_settings

TIMESTAMP = sa.DateTime(timezone=True)

METADATA = sa.MetaData()

investigators = sa.Table(
    "investigators",
    METADATA,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("name", sa.Text(), nullable=False),
    sa.Column("role", sa.Text(), nullable=True),
    sa.Column("facility", sa.Text(), nullable=True),
    sa.Column("city", sa.Text(), nullable=True),
    sa.Column("state", sa.Text(), nullable=True),
    sa.Column("zip", sa.Text(), nullable=True),
    sa.Column("affiliation", sa.Text(), nullable=True),
    sa.Column("nct_id", sa.Text(), nullable=True),
    sa.Column("start_date", sa.Date(), nullable=True),
    sa.Column("inserted_at", TIMESTAMP, nullable=True, server_default=sa.text("CURRENT_TIMESTAMP")),
)
sa.Index("investigators_nct_id_idx", investigators.c.nct_id)
sa.Index("investigators_zip_idx", investigators.c.zip)


def _resolve_database_url(settings: Settings | None = None) -> str:
    """Return the SQLAlchemy URL considering overrides and configured backend."""

    resolved = settings or get_settings()
    if resolved.storage.database_url:
        return resolved.storage.database_url

    backend = resolved.storage.backend
    if backend == "sqlite":
        sqlite_path = Path(resolved.storage.sqlite_path)
        return URL.create("sqlite", database=sqlite_path.as_posix()).render_as_string(hide_password=False)

    raise NotImplementedError(f"Backend '{backend}' requires PI_FINDER_DATABASE_URL to be set")


def build_engine(*, echo: bool = False, settings: Settings | None = None, url: str | None = None) -> Engine:
    """Instantiate a SQLAlchemy engine aligned with project settings."""

    resolved_url = url or _resolve_database_url(settings)
    connect_args: dict[str, Any] = {}
    if resolved_url.startswith("sqlite:///"):
        connect_args["check_same_thread"] = False
        database = resolved_url.removeprefix("sqlite:///")
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    return sa.create_engine(resolved_url, echo=echo, future=True, pool_pre_ping=True, connect_args=connect_args)


def session_factory(*, settings: Settings | None = None, url: str | None = None) -> sessionmaker:
    """Return a configured sessionmaker bound to the active engine."""

    engine = build_engine(settings=settings, url=url)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
