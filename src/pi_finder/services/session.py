"""Search pipeline tying the query service, metadata source, and reconciler together."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, List, Optional, Protocol, Sequence

from pi_finder.errors import PartialDataError, PiFinderError, UpstreamFetchError
from pi_finder.models import Investigator, TrialAttributes
from pi_finder.observability import Observability, get_observability
from pi_finder.services.reconciler import (
    FilterCriteria,
    ReconciledPage,
    ResultReconciler,
    SearchMode,
    distinct_trial_ids,
    next_mode,
)
from pi_finder.services.search import SearchPage, SearchRequest
from pi_finder.settings import Settings

LOGGER = logging.getLogger(__name__)

MetadataLoader = Callable[[Sequence[str]], Sequence[TrialAttributes]]


class SearchBackend(Protocol):
    """Paged and unpaged investigator search (local service or remote client)."""

    settings: Settings

    @property
    def page_size(self) -> int: ...

    def search(self, request: SearchRequest) -> SearchPage: ...

    def search_all(self, request: SearchRequest) -> List[Investigator]: ...


class ResultsPipeline:
    """Run one reconciled search: query, fetch metadata, reconcile.

    Validation and unknown-zip errors propagate to the caller. Investigator
    query failures produce an empty page with ``error`` set. Metadata failures
    produce a warning instead of an exception.
    """

    def __init__(
        self,
        *,
        search_service: SearchBackend,
        metadata_loader: MetadataLoader,
        reconciler: ResultReconciler | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.search_service = search_service
        self.metadata_loader = metadata_loader
        self._reconciler = reconciler
        self._observability = observability or get_observability(
            component="reconciler", settings=search_service.settings
        )

    @property
    def reconciler(self) -> ResultReconciler:
        """Injected reconciler, or one sized to the backend's current page size."""

        return self._reconciler or ResultReconciler(self.search_service.page_size)

    def run(self, request: SearchRequest, criteria: FilterCriteria) -> ReconciledPage:
        mode = next_mode(criteria)
        if mode is SearchMode.UNFILTERED:
            page = self._run_unfiltered(request, criteria)
        else:
            page = self._run_filtered(request, criteria)
        self._observability.emit_event(
            "reconcile.completed",
            mode=page.mode.value,
            page=page.page,
            displayed=len(page.physicians),
            total=page.total_count,
            warning=bool(page.warning),
            error=bool(page.error),
        )
        return page

    def _run_unfiltered(self, request: SearchRequest, criteria: FilterCriteria) -> ReconciledPage:
        try:
            result = self.search_service.search(request)
        except UpstreamFetchError as exc:
            LOGGER.warning("Paged investigator search failed: %s", exc)
            return ReconciledPage.failed(
                exc.message, page=request.page, page_size=self.reconciler.page_size, mode=SearchMode.UNFILTERED
            )

        metadata, metadata_error = self._load_metadata(result.physicians)
        return self.reconciler.reconcile(
            criteria,
            page=request.page,
            server_page=result.physicians,
            server_total=result.total_count,
            metadata=metadata,
            metadata_error=metadata_error,
        )

    def _run_filtered(self, request: SearchRequest, criteria: FilterCriteria) -> ReconciledPage:
        try:
            full_set = self.search_service.search_all(request)
        except UpstreamFetchError as exc:
            LOGGER.warning("Full-set investigator search failed: %s", exc)
            return ReconciledPage.failed(
                exc.message, page=request.page, page_size=self.reconciler.page_size, mode=SearchMode.FILTERED
            )

        metadata, metadata_error = self._load_metadata(full_set)
        return self.reconciler.reconcile(
            criteria,
            page=request.page,
            full_set=full_set,
            metadata=metadata,
            metadata_error=metadata_error,
        )

    def _load_metadata(
        self, investigators: Sequence[Investigator]
    ) -> tuple[Optional[Sequence[TrialAttributes]], Optional[PartialDataError]]:
        ids = distinct_trial_ids(investigators)
        if not ids:
            return (), None
        try:
            return self.metadata_loader(ids), None
        except PiFinderError as exc:
            LOGGER.warning("Trial metadata unavailable for %s ids: %s", len(ids), exc)
            return None, PartialDataError(exc.message, cause=exc)


class SearchSession:
    """Per-user search state with an explicit Unfiltered/Filtered mode.

    Every new search or filter change starts a new generation; results computed
    for an older generation are discarded when they arrive.
    """

    def __init__(self, pipeline: ResultsPipeline) -> None:
        self.pipeline = pipeline
        self.request: SearchRequest | None = None
        self.criteria = FilterCriteria.identity()
        self.mode = SearchMode.UNFILTERED
        self.display: ReconciledPage | None = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def new_search(self, request: SearchRequest) -> Optional[ReconciledPage]:
        """Start a fresh search; any active filters reset to identity."""

        with self._lock:
            self.request = request
            self.criteria = FilterCriteria.identity()
            self.mode = next_mode(self.criteria)
            self._generation += 1
        return self._load()

    def apply_filters(self, criteria: FilterCriteria) -> Optional[ReconciledPage]:
        """Change the criteria and reload from page 1 in the resulting mode."""

        with self._lock:
            if criteria == self.criteria:
                return self.display
            self.criteria = criteria
            self.mode = next_mode(criteria)
            self._generation += 1
            if self.request is not None:
                self.request = _with_page(self.request, 1)
        return self._load()

    def go_to_page(self, page: int) -> Optional[ReconciledPage]:
        with self._lock:
            if self.request is None:
                return None
            self.request = _with_page(self.request, page)
            self._generation += 1
        return self._load()

    def _load(self) -> Optional[ReconciledPage]:
        with self._lock:
            token = self._generation
            request = self.request
            criteria = self.criteria
        if request is None:
            return None

        result = self.pipeline.run(request, criteria)

        with self._lock:
            if token != self._generation:
                LOGGER.info("Discarding stale search result (generation %s, current %s)", token, self._generation)
                return None
            self.display = result
            return result


def _with_page(request: SearchRequest, page: int) -> SearchRequest:
    return replace(request, page=max(int(page), 1))


__all__ = ["MetadataLoader", "ResultsPipeline", "SearchBackend", "SearchSession"]
