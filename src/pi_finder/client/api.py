"""HTTP helpers for the investigator and trial metadata endpoints."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlencode

import httpx

from pi_finder.errors import MetadataFetchError, UpstreamFetchError, ValidationError
from pi_finder.models import Investigator, TrialAttributes
from pi_finder.services.metadata_cache import MetadataCache
from pi_finder.services.search import SearchPage, SearchRequest
from pi_finder.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)

TRIAL_META_PATH = "/api/trial-meta"
INVESTIGATORS_PATH = "/api/investigators"
_ZIP_PATTERN = re.compile(r"^[0-9]{5}$")


def should_post_trial_meta(ids: Sequence[str], limit: int = 1800) -> bool:
    """Return True when ``GET /api/trial-meta?ids=...`` would exceed ``limit`` characters."""

    return len(f"{TRIAL_META_PATH}?ids={','.join(ids)}") > limit


def _error_message(response: httpx.Response) -> str:
    message = f"Request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return message
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return message


class PiFinderClient:
    """Synchronous client for a PI Finder deployment.

    Trial metadata responses are cached by the sorted identifier set, so the
    same trials requested in a different order are served from memory.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        client: httpx.Client | None = None,
        cache: MetadataCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        base = (base_url or self.settings.api.base_url).rstrip("/")
        self._client = client or httpx.Client(base_url=base, timeout=30.0)
        self.cache = cache or MetadataCache(ttl_seconds=self.settings.registry.cache_ttl_seconds)
        self.query_length_limit = self.settings.registry.query_length_limit

    def fetch_results(
        self,
        zip_code: str,
        radius: float,
        indications: Sequence[str] = (),
        page: int = 1,
        start_year: int | None = None,
        end_year: int | None = None,
    ) -> SearchPage:
        """Fetch one page from ``/api/investigators``.

        Raises:
            ValidationError: ``zip_code`` is not five digits or a year is out of range.
            UpstreamFetchError: The API answered with a non-success status.
        """

        if not _ZIP_PATTERN.match(zip_code or ""):
            raise ValidationError("Invalid ZIP code. Please enter a valid 5-digit ZIP code.")
        for year in (start_year, end_year):
            if year is not None and not (self.settings.search.min_year <= year <= self.settings.search.max_year):
                raise ValidationError(
                    f"Please enter valid 4-digit years ({self.settings.search.min_year}-{self.settings.search.max_year})"
                )

        params: Dict[str, str] = {"zip": zip_code, "radius": str(radius), "page": str(page)}
        if indications:
            params["indications"] = ",".join(indications)
        if start_year:
            params["startYear"] = str(start_year)
        if end_year:
            params["endYear"] = str(end_year)

        response = self._send("GET", INVESTIGATORS_PATH, params=params)
        if not response.is_success:
            raise UpstreamFetchError(_error_message(response), status=response.status_code)
        body = response.json()
        return SearchPage(
            physicians=[Investigator.from_dict(item) for item in body.get("physicians") or []],
            total_count=int(body.get("totalCount") or 0),
        )

    def fetch_trial_meta(self, ids: Sequence[str]) -> List[TrialAttributes]:
        """Return trial attributes for ``ids``, choosing GET or POST by URL length."""

        if not ids:
            return []
        return list(self.cache.fetch(ids, self._request_trial_meta))

    def _request_trial_meta(self, ids: Sequence[str]) -> List[TrialAttributes]:
        if should_post_trial_meta(ids, self.query_length_limit):
            response = self._send("POST", TRIAL_META_PATH, json={"ids": list(ids)})
        else:
            response = self._send("GET", f"{TRIAL_META_PATH}?{urlencode({'ids': ','.join(ids)}, safe=',')}")
        if not response.is_success:
            raise MetadataFetchError(f"Failed to fetch trial meta ({response.status_code})", status=response.status_code)
        return [TrialAttributes.from_dict(item) for item in response.json()]

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"{method} {url.split('?')[0]} failed: {exc.__class__.__name__}") from exc

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PiFinderClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class RemoteSearchBackend:
    """Adapt :class:`PiFinderClient` to the paged/unpaged search used by the reconciler.

    The page size starts from local settings (or ``page_size``) and is then
    taken from the server: a first page shorter than ``totalCount`` is exactly
    one server page. ``search_all`` walks every page of ``/api/investigators``
    until the reported total is reached.
    """

    def __init__(self, client: PiFinderClient, *, page_size: Optional[int] = None) -> None:
        self.client = client
        self.settings = client.settings
        self._page_size = page_size or client.settings.search.page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    def search(self, request: SearchRequest) -> SearchPage:
        return self._fetch(request, request.page)

    def search_all(self, request: SearchRequest) -> List[Investigator]:
        collected: List[Investigator] = []
        page = 1
        while True:
            result = self._fetch(request, page)
            collected.extend(result.physicians)
            if not result.physicians or len(collected) >= result.total_count:
                return collected
            page += 1

    def _fetch(self, request: SearchRequest, page: int) -> SearchPage:
        result = self.client.fetch_results(
            request.zip,
            request.radius,
            request.indications,
            page=page,
            start_year=request.date_range.start_year,
            end_year=request.date_range.end_year,
        )
        if page == 1:
            self._learn_page_size(len(result.physicians), result.total_count)
        return result

    def _learn_page_size(self, returned: int, total: int) -> None:
        if returned and returned < total:
            size = returned
        elif returned > self._page_size:
            # Everything fit on one page, so the server page is at least this large.
            size = returned
        else:
            return
        if size != self._page_size:
            LOGGER.info("Using server page size %s (configured %s)", size, self._page_size)
            self._page_size = size


__all__ = ["PiFinderClient", "RemoteSearchBackend", "should_post_trial_meta"]
