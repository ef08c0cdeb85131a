"""Postal-code geography backed by the offline ``zipcodes`` dataset."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, FrozenSet, Protocol

import zipcodes
from geopy.distance import great_circle

from pi_finder.errors import NotFoundError, ValidationError

LOGGER = logging.getLogger(__name__)

ZIP_PATTERN = re.compile(r"^[0-9]{5}$")
# One degree of latitude is ~69 miles; used for a cheap bounding-box prefilter.
_MILES_PER_DEGREE_LAT = 69.0


@dataclass(frozen=True)
class Coordinate:
    """Latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class GeoResolver(Protocol):
    """Contract for postal-code geography used by the search service."""

    def resolve_origin(self, postal_code: str) -> Coordinate: ...

    def postal_codes_within_radius(self, postal_code: str, radius_miles: float) -> FrozenSet[str]: ...

    def distance(self, postal_code_a: str, postal_code_b: str) -> float: ...


def is_valid_zip(value: str | None) -> bool:
    """Return True for a five digit postal code string."""

    return bool(value) and bool(ZIP_PATTERN.match(value or ""))


@lru_cache(maxsize=1)
def _coordinate_table() -> Dict[str, Coordinate]:
    """Load every US postal code with usable coordinates (cached for the process)."""

    table: Dict[str, Coordinate] = {}
    for entry in zipcodes.list_all():
        code = entry.get("zip_code")
        try:
            coordinate = Coordinate(float(entry["lat"]), float(entry["long"]))
        except (KeyError, TypeError, ValueError):
            continue
        if code and code not in table:
            table[code] = coordinate
    LOGGER.debug("Loaded %s postal code coordinates", len(table))
    return table


class ZipcodeGeoResolver:
    """Resolve postal codes, radius sets, and great-circle distances in miles."""

    def __init__(self, table: Dict[str, Coordinate] | None = None) -> None:
        self._table = table

    @property
    def table(self) -> Dict[str, Coordinate]:
        if self._table is None:
            self._table = _coordinate_table()
        return self._table

    def resolve_origin(self, postal_code: str) -> Coordinate:
        """Return the centroid for ``postal_code`` or raise :class:`NotFoundError`."""

        if not is_valid_zip(postal_code):
            raise ValidationError("Invalid zip")
        coordinate = self.table.get(postal_code)
        if coordinate is None:
            raise NotFoundError("Unknown zip")
        return coordinate

    def postal_codes_within_radius(self, postal_code: str, radius_miles: float) -> FrozenSet[str]:
        """Return every postal code whose centroid lies within ``radius_miles`` (origin included)."""

        origin = self.resolve_origin(postal_code)
        radius = max(float(radius_miles), 0.0)
        lat_window = radius / _MILES_PER_DEGREE_LAT

        matches = {postal_code}
        for code, coordinate in self.table.items():
            if abs(coordinate.latitude - origin.latitude) > lat_window:
                continue
            if great_circle(origin.as_tuple(), coordinate.as_tuple()).miles <= radius:
                matches.add(code)
        return frozenset(matches)

    def distance(self, postal_code_a: str, postal_code_b: str) -> float:
        """Return the great-circle distance in miles between two postal codes."""

        a = self.resolve_origin(postal_code_a)
        b = self.resolve_origin(postal_code_b)
        return great_circle(a.as_tuple(), b.as_tuple()).miles


__all__ = ["Coordinate", "GeoResolver", "ZipcodeGeoResolver", "ZIP_PATTERN", "is_valid_zip"]
