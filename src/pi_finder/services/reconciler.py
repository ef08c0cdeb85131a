"""Merge investigator pages with trial metadata, filter, and re-paginate.

The reconciler runs in one of two modes. In unfiltered mode the displayed set
is exactly the server page. In filtered mode the full unpaged candidate pool is
filtered against trial attributes and paginated in memory, and the filtered
count replaces the server total.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pi_finder.errors import ValidationError
from pi_finder.models import PHASE_OPTIONS, Investigator, TrialAttributes

METADATA_WARNING = "Failed to fetch trial metadata. Filters may be incomplete."


class SponsorConstraint(str, Enum):
    """Sponsor filter choices."""

    ANY = "Any"
    INDUSTRY = "Industry"


class SearchMode(str, Enum):
    """Operating mode of the reconciler."""

    UNFILTERED = "unfiltered"
    FILTERED = "filtered"


@dataclass(frozen=True)
class FilterCriteria:
    """User-selected predicate over trial attributes.

    An empty ``phases`` set places no constraint on phase.
    """

    phases: frozenset[str] = frozenset()
    sponsor: SponsorConstraint = SponsorConstraint.ANY
    recruiting_only: bool = False

    @classmethod
    def identity(cls) -> "FilterCriteria":
        return cls()

    @property
    def is_identity(self) -> bool:
        return self == FilterCriteria.identity()

    @classmethod
    def parse(
        cls,
        phases: Iterable[str] | str | None = None,
        sponsor_type: str | None = None,
        recruiting_only: bool = False,
    ) -> "FilterCriteria":
        """Validate raw user input into criteria.

        Args:
            phases: Phase labels (``1``-``4``, ``NA``) or a comma-joined string.
            sponsor_type: ``Any`` or ``Industry`` (case-insensitive); blank means ``Any``.
            recruiting_only: Restrict to trials whose status starts with "recruit".

        Raises:
            ValidationError: Unknown phase or sponsor value.
        """

        if isinstance(phases, str):
            phases = phases.split(",")
        selected = set()
        for raw in phases or ():
            value = raw.strip()
            if not value:
                continue
            normalized = "NA" if value.upper() == "NA" else value
            if normalized not in PHASE_OPTIONS:
                raise ValidationError(f"Unknown phase '{value}'")
            selected.add(normalized)

        sponsor = SponsorConstraint.ANY
        if sponsor_type and sponsor_type.strip():
            lookup = {member.value.lower(): member for member in SponsorConstraint}
            try:
                sponsor = lookup[sponsor_type.strip().lower()]
            except KeyError as exc:
                raise ValidationError(f"Unknown sponsorType '{sponsor_type}'") from exc

        return cls(phases=frozenset(selected), sponsor=sponsor, recruiting_only=bool(recruiting_only))

    def matches(self, investigator: Investigator, lookup: Mapping[str, TrialAttributes]) -> bool:
        """Return True when ``investigator``'s trial satisfies every active constraint.

        Investigators whose trial attributes are unknown never match.
        """

        attributes = lookup.get(investigator.nct_id) if investigator.nct_id else None
        if attributes is None:
            return False
        if self.phases and attributes.phase not in self.phases:
            return False
        if self.sponsor is SponsorConstraint.INDUSTRY and (attributes.funded_by or "").lower() != "industry":
            return False
        if self.recruiting_only and not (attributes.overall_status or "").lower().startswith("recruit"):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phases": sorted(self.phases),
            "sponsorType": self.sponsor.value,
            "recruitingOnly": self.recruiting_only,
        }


def next_mode(criteria: FilterCriteria) -> SearchMode:
    """Transition function: the mode is fully determined by the active criteria."""

    return SearchMode.UNFILTERED if criteria.is_identity else SearchMode.FILTERED


def phase_counts(metadata: Iterable[TrialAttributes]) -> Dict[str, int]:
    """Count trials per phase for the filter options."""

    counts: Dict[str, int] = {}
    for attributes in metadata:
        phase = attributes.phase or "NA"
        counts[phase] = counts.get(phase, 0) + 1
    return counts


def distinct_trial_ids(investigators: Iterable[Investigator]) -> List[str]:
    """Return the sorted distinct NCT identifiers referenced by ``investigators``."""

    return sorted({investigator.nct_id for investigator in investigators if investigator.nct_id})


@dataclass(frozen=True)
class ReconciledPage:
    """Displayed page plus the counts and flags the presentation layer needs."""

    physicians: tuple[Investigator, ...]
    total_count: int
    page: int
    page_size: int
    mode: SearchMode
    warning: Optional[str] = None
    error: Optional[str] = None
    phase_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)

    @classmethod
    def failed(cls, message: str, *, page: int, page_size: int, mode: SearchMode) -> "ReconciledPage":
        """Empty display carrying an explicit error state."""

        return cls(physicians=(), total_count=0, page=page, page_size=page_size, mode=mode, error=message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "physicians": [investigator.to_dict() for investigator in self.physicians],
            "totalCount": self.total_count,
            "totalPages": self.total_pages,
            "page": self.page,
            "mode": self.mode.value,
            "warning": self.warning,
            "phaseCounts": dict(sorted(self.phase_counts.items())),
        }
        if self.error:
            payload["error"] = self.error
        return payload


class ResultReconciler:
    """Pure merge/filter/paginate step over already fetched inputs."""

    def __init__(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size

    def reconcile(
        self,
        criteria: FilterCriteria,
        *,
        page: int = 1,
        server_page: Sequence[Investigator] = (),
        server_total: int = 0,
        full_set: Sequence[Investigator] | None = None,
        metadata: Sequence[TrialAttributes] | None = None,
        metadata_error: BaseException | None = None,
    ) -> ReconciledPage:
        """Produce the displayed page for ``criteria``.

        Args:
            criteria: Active filter criteria.
            page: 1-based page requested by the user.
            server_page: Page returned by the paged query (unfiltered mode).
            server_total: Total count reported by the paged query (unfiltered mode).
            full_set: Every matching investigator, required in filtered mode.
            metadata: Trial attributes snapshot, or ``None`` when unavailable.
            metadata_error: Failure raised while fetching ``metadata``.

        Returns:
            The reconciled page. Metadata failures become ``warning``.
        """

        page = max(int(page), 1)
        warning = METADATA_WARNING if metadata_error is not None else None
        snapshot = tuple(metadata) if metadata is not None and metadata_error is None else ()
        counts = phase_counts(snapshot)
        mode = next_mode(criteria)

        if mode is SearchMode.UNFILTERED:
            return ReconciledPage(
                physicians=tuple(server_page),
                total_count=int(server_total),
                page=page,
                page_size=self.page_size,
                mode=mode,
                warning=warning,
                phase_counts=counts,
            )

        if full_set is None:
            raise ValueError("Filtered mode requires the full unpaged investigator set")

        lookup = {attributes.nct_id: attributes for attributes in snapshot}
        filtered = [investigator for investigator in full_set if criteria.matches(investigator, lookup)]
        start = (page - 1) * self.page_size
        return ReconciledPage(
            physicians=tuple(filtered[start : start + self.page_size]),
            total_count=len(filtered),
            page=page,
            page_size=self.page_size,
            mode=mode,
            warning=warning,
            phase_counts=counts,
        )


__all__ = [
    "METADATA_WARNING",
    "FilterCriteria",
    "ReconciledPage",
    "ResultReconciler",
    "SearchMode",
    "SponsorConstraint",
    "distinct_trial_ids",
    "next_mode",
    "phase_counts",
]
