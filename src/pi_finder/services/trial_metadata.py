"""Batched ClinicalTrials.gov v2 lookups trimmed to the attributes used for filtering."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import httpx

from pi_finder.errors import MetadataFetchError
from pi_finder.models import TrialAttributes
from pi_finder.observability import Observability, get_observability
from pi_finder.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

MAX_BATCH = 100

# Only the JSON paths needed to build filters; keeps registry payloads small.
KEEP_FIELDS = ",".join(
    [
        "protocolSection.identificationModule.nctId",
        "protocolSection.designModule.phases",
        "protocolSection.sponsorCollaboratorsModule.leadSponsor.class",
        "protocolSection.statusModule.overallStatus",
    ]
)

_PHASE_DIGIT = re.compile(r"[1-4]")


def normalize_phase(phases: Optional[Sequence[str]]) -> str:
    """Map a registry phase list (``["PHASE2", "PHASE3"]``) to ``1``-``4`` or ``NA``.

    Only the first element is considered.
    """

    if not phases:
        return "NA"
    match = _PHASE_DIGIT.search(str(phases[0]))
    return match.group(0) if match else "NA"


def normalize_study(study: Mapping[str, Any]) -> TrialAttributes | None:
    """Trim one raw registry study to :class:`TrialAttributes`.

    Returns ``None`` when the study carries no NCT identifier.
    """

    protocol = study.get("protocolSection") or {}
    nct_id = (protocol.get("identificationModule") or {}).get("nctId")
    if not nct_id:
        return None
    phases = (protocol.get("designModule") or {}).get("phases")
    lead_sponsor = (protocol.get("sponsorCollaboratorsModule") or {}).get("leadSponsor") or {}
    status = (protocol.get("statusModule") or {}).get("overallStatus")
    return TrialAttributes(
        nct_id=str(nct_id),
        phase=normalize_phase(phases),
        funded_by=lead_sponsor.get("class"),
        overall_status=status,
    )


def partition(ids: Iterable[str], batch_size: int = MAX_BATCH) -> List[List[str]]:
    """Deduplicate ``ids`` and split them into sorted batches of at most ``batch_size``."""

    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    unique = sorted({identifier.strip() for identifier in ids if identifier and identifier.strip()})
    return [unique[index : index + batch_size] for index in range(0, len(unique), batch_size)]


class TrialMetadataGateway:
    """Translate NCT identifiers into normalized :class:`TrialAttributes`.

    Batches are requested sequentially. Any non-success response aborts the
    whole fetch with :class:`MetadataFetchError`; partial results are discarded.
    """

    def __init__(
        self,
        *,
        client: httpx.Client | None = None,
        settings: Settings | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        registry = self.settings.registry
        self.base_url = registry.base_url
        self.batch_size = min(registry.batch_size, MAX_BATCH)
        self._client = client or httpx.Client(
            timeout=registry.timeout_seconds,
            headers={"accept": "application/json"},
        )
        self._observability = observability or get_observability(component="trial_metadata", settings=self.settings)

    def fetch_metadata(self, ids: Iterable[str]) -> List[TrialAttributes]:
        """Return at most one record per distinct requested identifier.

        Args:
            ids: NCT identifiers; order and duplicates are irrelevant.

        Returns:
            Normalized attributes for every identifier the registry knows about.

        Raises:
            MetadataFetchError: The registry failed for any batch.
        """

        batches = partition(ids, self.batch_size)
        if not batches:
            return []

        requested = {identifier for batch in batches for identifier in batch}
        started = time.perf_counter()
        records: Dict[str, TrialAttributes] = {}
        for batch in batches:
            for study in self._iter_batch(batch):
                attributes = normalize_study(study)
                if attributes is None or attributes.nct_id not in requested:
                    continue
                records.setdefault(attributes.nct_id, attributes)

        elapsed_ms = (time.perf_counter() - started) * 1000
        self._observability.record_timing("trial_meta.fetch", elapsed_ms, tags={"batches": str(len(batches))})
        self._observability.increment("trial_meta.batches", value=len(batches))
        LOGGER.debug(
            "Fetched trial metadata for %s/%s ids in %s batches (%.1f ms)",
            len(records),
            len(requested),
            len(batches),
            elapsed_ms,
        )
        return list(records.values())

    def _iter_batch(self, batch: Sequence[str]) -> Iterator[Mapping[str, Any]]:
        page_token: str | None = None
        while True:
            params = {
                "filter.ids": ",".join(batch),
                "fields": KEEP_FIELDS,
                "format": "json",
                "pageSize": str(len(batch)),
            }
            if page_token:
                params["pageToken"] = page_token

            payload = self._request(params)
            yield from payload.get("studies") or []

            page_token = payload.get("nextPageToken") or None
            if not page_token:
                return

    def _request(self, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = self._client.get(self.base_url, params=params)
        except httpx.HTTPError as exc:
            self._observability.increment("trial_meta.errors", tags={"status": "transport"})
            raise MetadataFetchError(f"ClinicalTrials.gov request failed ({exc.__class__.__name__})") from exc

        if not response.is_success:
            self._observability.increment("trial_meta.errors", tags={"status": str(response.status_code)})
            raise MetadataFetchError(
                f"ClinicalTrials.gov request failed ({response.status_code})",
                status=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise MetadataFetchError("ClinicalTrials.gov returned invalid JSON", status=response.status_code) from exc
        return payload if isinstance(payload, dict) else {}

    def close(self) -> None:
        self._client.close()


__all__ = [
    "KEEP_FIELDS",
    "MAX_BATCH",
    "TrialMetadataGateway",
    "normalize_phase",
    "normalize_study",
    "partition",
]
