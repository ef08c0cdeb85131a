"""Geo-scoped investigator search: validation, radius resolution, paging, distances."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from pi_finder.errors import NotFoundError, ValidationError
from pi_finder.models import DateRange, Distance, Investigator
from pi_finder.services.geo import GeoResolver, ZipcodeGeoResolver, is_valid_zip
from pi_finder.settings import Settings, get_settings
from pi_finder.store.investigator_store import InvestigatorStore

LOGGER = logging.getLogger(__name__)

_YEAR_PATTERN = re.compile(r"^[0-9]{4}$")


def _parse_year(raw: str | int | None) -> int | None:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    if not _YEAR_PATTERN.match(text):
        raise ValidationError("startYear/endYear must be 4-digit numbers")
    return int(text)


@dataclass(frozen=True)
class SearchRequest:
    """Validated investigator search parameters."""

    zip: str
    radius: float
    page: int = 1
    date_range: DateRange = field(default_factory=DateRange)
    indications: Tuple[str, ...] = ()

    @classmethod
    def from_params(
        cls,
        *,
        zip: str | None,
        radius: str | float | None = None,
        page: str | int | None = None,
        start_year: str | int | None = None,
        end_year: str | int | None = None,
        indications: str | Sequence[str] | None = None,
        settings: Settings | None = None,
    ) -> "SearchRequest":
        """Validate raw query parameters.

        Inverted year ranges are swapped rather than rejected. ``indications`` is
        accepted for forward compatibility and does not affect the query.

        Raises:
            ValidationError: Malformed zip, year, radius, or page.
        """

        resolved = settings or get_settings()

        start = _parse_year(start_year)
        end = _parse_year(end_year)
        if start and end and start > end:
            start, end = end, start

        postal_code = (zip or "").strip()
        if not is_valid_zip(postal_code):
            raise ValidationError("Invalid zip")

        try:
            radius_value = float(radius) if radius not in (None, "") else float(resolved.search.default_radius)
        except (TypeError, ValueError) as exc:
            raise ValidationError("radius must be numeric") from exc
        if radius_value != radius_value or radius_value < 0:
            raise ValidationError("radius must be a non-negative number")

        try:
            page_value = int(page) if page not in (None, "") else 1
        except (TypeError, ValueError) as exc:
            raise ValidationError("page must be an integer") from exc

        if isinstance(indications, str):
            indications = indications.split(",")
        cleaned = tuple(item.strip() for item in indications or () if item and item.strip())

        return cls(
            zip=postal_code,
            radius=radius_value,
            page=max(page_value, 1),
            date_range=DateRange(start_year=start, end_year=end),
            indications=cleaned,
        )


@dataclass
class SearchPage:
    """One page of decorated investigators plus the server-side total."""

    physicians: List[Investigator]
    total_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "physicians": [investigator.to_dict() for investigator in self.physicians],
            "totalCount": self.total_count,
        }


class InvestigatorSearchService:
    """Resolve the radius around a postal code and query investigators inside it."""

    def __init__(
        self,
        *,
        geo: GeoResolver | None = None,
        store: InvestigatorStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.geo = geo or ZipcodeGeoResolver()
        self.store = store or InvestigatorStore()

    @property
    def page_size(self) -> int:
        return self.settings.search.page_size

    def search(self, request: SearchRequest) -> SearchPage:
        """Return the requested page ordered by study start date (newest first)."""

        postal_codes = self._radius(request)
        records, total = self.store.search(
            postal_codes,
            request.date_range,
            page=request.page,
            page_size=self.page_size,
        )
        LOGGER.info(
            "Investigator search zip=%s radius=%s page=%s zips=%s total=%s",
            request.zip,
            request.radius,
            request.page,
            len(postal_codes),
            total,
        )
        return SearchPage(physicians=self._decorate(request.zip, records), total_count=total)

    def search_all(self, request: SearchRequest) -> List[Investigator]:
        """Return the full unpaged candidate pool in the same order as :meth:`search`."""

        postal_codes = self._radius(request)
        records = self.store.search_all(postal_codes, request.date_range)
        LOGGER.info("Investigator full-set search zip=%s radius=%s count=%s", request.zip, request.radius, len(records))
        return self._decorate(request.zip, records)

    def _radius(self, request: SearchRequest) -> frozenset[str]:
        self.geo.resolve_origin(request.zip)
        return frozenset(self.geo.postal_codes_within_radius(request.zip, request.radius))

    def _decorate(self, origin: str, records: Sequence[Investigator]) -> List[Investigator]:
        """Attach the distance from ``origin`` to in-memory copies of ``records``."""

        decorated: List[Investigator] = []
        for record in records:
            distance = Distance.unknown()
            if record.zip and is_valid_zip(record.zip):
                try:
                    distance = Distance.known(self.geo.distance(origin, record.zip))
                except NotFoundError:
                    LOGGER.debug("No coordinates for investigator zip %s", record.zip)
            decorated.append(record.with_distance(distance))
        return decorated


__all__ = ["InvestigatorSearchService", "SearchPage", "SearchRequest"]
