"""Domain records shared across the store, services, and API layers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, Optional

PHASE_OPTIONS: tuple[str, ...] = ("1", "2", "3", "4", "NA")


@dataclass(frozen=True)
class Distance:
    """Distance from the search origin, either known (miles) or unknown.

    Unknown distances serialize as ``None``.
    """

    miles: Optional[float] = None

    @classmethod
    def known(cls, miles: float) -> "Distance":
        if math.isnan(miles) or math.isinf(miles):
            return cls(None)
        return cls(float(miles))

    @classmethod
    def unknown(cls) -> "Distance":
        return cls(None)

    @property
    def is_known(self) -> bool:
        return self.miles is not None

    def to_json(self) -> Optional[float]:
        return None if self.miles is None else round(self.miles, 2)


@dataclass(frozen=True)
class Investigator:
    """One person associated with a trial at a location.

    Attributes:
        id: Stable database identifier.
        name: Investigator display name.
        role: Role on the trial (for example ``Principal Investigator``).
        facility: Site or facility name.
        city: Facility city.
        state: Facility state.
        zip: Five digit postal code when known.
        affiliation: Institutional affiliation.
        nct_id: ClinicalTrials.gov identifier, if the record is tied to a trial.
        start_date: Study start date.
        distance: Distance from the query origin, computed per search.
    """

    id: int
    name: str
    role: Optional[str] = None
    facility: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    affiliation: Optional[str] = None
    nct_id: Optional[str] = None
    start_date: Optional[date] = None
    distance: Distance = field(default_factory=Distance.unknown)

    def with_distance(self, distance: Distance) -> "Investigator":
        """Return a copy decorated with ``distance``; stored records stay untouched."""

        return replace(self, distance=distance)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase payload the search endpoints return."""

        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "facility": self.facility,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "affiliation": self.affiliation,
            "nctId": self.nct_id,
            "distance": self.distance.to_json(),
            "startDate": self.start_date.isoformat() if self.start_date else "",
            "trialTitle": self.nct_id,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Investigator":
        """Deserialize the payload produced by :meth:`to_dict`."""

        raw_start = d.get("startDate") or None
        raw_distance = d.get("distance")
        return Investigator(
            id=int(d["id"]),
            name=str(d.get("name") or ""),
            role=d.get("role"),
            facility=d.get("facility"),
            city=d.get("city"),
            state=d.get("state"),
            zip=d.get("zip"),
            affiliation=d.get("affiliation"),
            nct_id=d.get("nctId") or None,
            start_date=date.fromisoformat(raw_start[:10]) if raw_start else None,
            distance=Distance.known(float(raw_distance)) if raw_distance is not None else Distance.unknown(),
        )


@dataclass(frozen=True)
class TrialAttributes:
    """Normalized registry facts about one trial."""

    nct_id: str
    phase: str = "NA"
    funded_by: Optional[str] = None
    overall_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nctId": self.nct_id,
            "phase": self.phase,
            "fundedBy": self.funded_by,
            "overallStatus": self.overall_status,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TrialAttributes":
        """Build from the ``/api/trial-meta`` JSON shape."""

        return TrialAttributes(
            nct_id=str(d["nctId"]),
            phase=str(d.get("phase") or "NA"),
            funded_by=d.get("fundedBy"),
            overall_status=d.get("overallStatus"),
        )


@dataclass(frozen=True)
class DateRange:
    """Inclusive start-year window applied to investigator study start dates."""

    start_year: Optional[int] = None
    end_year: Optional[int] = None

    @property
    def start_inclusive(self) -> Optional[date]:
        return date(self.start_year, 1, 1) if self.start_year else None

    @property
    def end_inclusive(self) -> Optional[date]:
        return date(self.end_year, 12, 31) if self.end_year else None


__all__ = ["PHASE_OPTIONS", "Distance", "Investigator", "TrialAttributes", "DateRange"]
