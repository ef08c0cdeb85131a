"""Investigator search queries backed by the ``investigators`` SQL table."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Sequence, Tuple

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pi_finder.errors import UpstreamFetchError
from pi_finder.models import DateRange, Investigator
from pi_finder.store import sql as sql_schema
from pi_finder.store.sql import session_factory as default_session_factory

LOGGER = logging.getLogger(__name__)

_INSERT_COLUMNS = ("name", "role", "facility", "city", "state", "zip", "affiliation", "nct_id", "start_date")


class InvestigatorStore:
    """Read helper for the geo-scoped investigator search.

    Results are ordered by study start date (newest first, missing dates last),
    with ties broken by insertion order.
    """

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or default_session_factory()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    def search(
        self,
        postal_codes: Iterable[str],
        date_range: DateRange | None = None,
        *,
        page: int = 1,
        page_size: int = 6,
    ) -> Tuple[List[Investigator], int]:
        """Return one page of investigators plus the total matching count.

        Args:
            postal_codes: Postal codes resolved from the radius lookup.
            date_range: Optional inclusive start/end year window.
            page: 1-based page number.
            page_size: Number of records per page.

        Returns:
            Tuple of ``(records, total_count)``.
        """

        codes = _normalize_codes(postal_codes)
        if not codes:
            return [], 0

        offset = (max(page, 1) - 1) * page_size
        where = _where_clause(codes, date_range)
        stmt = _ordered(sa.select(sql_schema.investigators).where(where)).limit(page_size).offset(offset)
        count_stmt = sa.select(sa.func.count()).select_from(sql_schema.investigators).where(where)

        try:
            with self._session_scope() as session:
                rows = session.execute(stmt).mappings().all()
                total = session.execute(count_stmt).scalar_one()
        except SQLAlchemyError as exc:
            LOGGER.exception("Investigator page query failed")
            raise UpstreamFetchError(f"Investigator query failed: {exc.__class__.__name__}") from exc

        return [_row_to_investigator(row) for row in rows], int(total or 0)

    def search_all(self, postal_codes: Iterable[str], date_range: DateRange | None = None) -> List[Investigator]:
        """Return every matching investigator in the same order as :meth:`search`."""

        codes = _normalize_codes(postal_codes)
        if not codes:
            return []

        stmt = _ordered(sa.select(sql_schema.investigators).where(_where_clause(codes, date_range)))
        try:
            with self._session_scope() as session:
                rows = session.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            LOGGER.exception("Investigator full-set query failed")
            raise UpstreamFetchError(f"Investigator query failed: {exc.__class__.__name__}") from exc

        return [_row_to_investigator(row) for row in rows]

    def insert_many(self, rows: Sequence[Dict[str, Any]]) -> int:
        """Insert investigator rows (used by the CSV import command)."""

        if not rows:
            return 0
        payload = [{column: row.get(column) for column in _INSERT_COLUMNS} for row in rows]
        with self._session_scope() as session:
            try:
                session.execute(sql_schema.investigators.insert(), payload)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise UpstreamFetchError(f"Investigator insert failed: {exc.__class__.__name__}") from exc
        return len(payload)


def _normalize_codes(postal_codes: Iterable[str]) -> List[str]:
    return sorted({code.strip() for code in postal_codes if code and code.strip()})


def _where_clause(codes: Sequence[str], date_range: DateRange | None) -> sa.ColumnElement[bool]:
    table = sql_schema.investigators
    clauses: List[sa.ColumnElement[bool]] = [table.c.zip.in_(codes)]
    if date_range is not None:
        if date_range.start_inclusive:
            clauses.append(table.c.start_date >= date_range.start_inclusive)
        if date_range.end_inclusive:
            clauses.append(table.c.start_date <= date_range.end_inclusive)
    return sa.and_(*clauses)


def _ordered(stmt: sa.Select) -> sa.Select:
    table = sql_schema.investigators
    return stmt.order_by(table.c.start_date.desc().nullslast(), table.c.id.asc())


def _coerce_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _row_to_investigator(row: Any) -> Investigator:
    return Investigator(
        id=int(row["id"]),
        name=row["name"],
        role=row["role"],
        facility=row["facility"],
        city=row["city"],
        state=row["state"],
        zip=row["zip"],
        affiliation=row["affiliation"],
        nct_id=row["nct_id"] or None,
        start_date=_coerce_date(row["start_date"]),
    )


__all__ = ["InvestigatorStore"]
