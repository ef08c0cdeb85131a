"""Load an investigator CSV export into the ``investigators`` table.

Usage:
    pi-finder-import data/raw_investigator_dump.csv [--dry-run] [--database-url URL]

Blank cells are stored as NULL. Rows without a name are skipped.
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Sequence

from pi_finder.errors import UpstreamFetchError
from pi_finder.observability import configure_logging
from pi_finder.store.investigator_store import InvestigatorStore
from pi_finder.store.sql import METADATA, session_factory

LOGGER = logging.getLogger("pi_finder.cli.import_investigators")

CHUNK_SIZE = 500
CSV_COLUMNS = ("name", "role", "facility", "city", "state", "zip", "affiliation", "nct_id", "start_date")
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%Y/%m/%d", "%B %d, %Y", "%B %Y", "%Y-%m")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Import investigators from a CSV export")
    p.add_argument("csv_path", type=Path, help="Path to the investigator CSV file")
    p.add_argument("--database-url", default=None, help="SQLAlchemy URL overriding configured storage")
    p.add_argument("--chunk-size", type=int, default=CHUNK_SIZE, help="Rows per insert statement")
    p.add_argument("--dry-run", action="store_true", help="Parse and validate without writing")
    p.add_argument("--create-schema", action="store_true", help="Create the investigators table if missing")
    return p.parse_args(argv)


def parse_start_date(raw: str | None) -> date | None:
    """Parse the registry's assorted start-date spellings; unknown formats become ``None``."""

    if not raw:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    LOGGER.debug("Unparseable start_date %r", raw)
    return None


def normalize_zip(raw: str | None) -> str | None:
    """Keep the five digit prefix of ZIP+4 values and restore dropped leading zeros."""

    if not raw:
        return None
    digits = raw.split("-")[0].strip()
    if digits.isdigit() and len(digits) < 5:
        digits = digits.zfill(5)
    return digits or None


def cleanse(row: Dict[str, Any]) -> Dict[str, Any]:
    """Trim strings and convert blanks to ``None``."""

    cleaned: Dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            continue
        normalized_key = key.strip().lower()
        if isinstance(value, str):
            value = value.strip() or None
        cleaned[normalized_key] = value
    return cleaned


def iter_rows(path: Path) -> Iterator[Dict[str, Any]]:
    with path.open("r", encoding="utf-8-sig", newline="") as fh:
        for raw in csv.DictReader(fh):
            row = cleanse(raw)
            if not row.get("name"):
                continue
            yield {
                **{column: row.get(column) for column in CSV_COLUMNS},
                "zip": normalize_zip(row.get("zip")),
                "start_date": parse_start_date(row.get("start_date")),
            }


def chunked(rows: Iterable[Dict[str, Any]], size: int) -> Iterator[List[Dict[str, Any]]]:
    chunk: List[Dict[str, Any]] = []
    for row in rows:
        chunk.append(row)
        if len(chunk) >= size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging()
    if not args.csv_path.exists():
        LOGGER.error("CSV file not found at %s", args.csv_path)
        return 1

    store: InvestigatorStore | None = None
    if not args.dry_run:
        factory = session_factory(url=args.database_url)
        if args.create_schema:
            METADATA.create_all(factory.kw["bind"])
        store = InvestigatorStore(session_factory=factory)

    total = 0
    for chunk in chunked(iter_rows(args.csv_path), max(args.chunk_size, 1)):
        if store is not None:
            try:
                store.insert_many(chunk)
            except UpstreamFetchError as exc:
                LOGGER.error("Failed inserting chunk starting at row %s: %s", total + 1, exc)
                return 1
        total += len(chunk)
        LOGGER.info("%s records %s-%s", "Parsed" if args.dry_run else "Inserted", total - len(chunk) + 1, total)

    LOGGER.info("Import completed: %s records%s", total, " (dry run)" if args.dry_run else "")
    return 0


if __name__ == "__main__":
    sys.exit(main())
