"""Factory helpers that instantiate core services based on configuration.

These helpers centralize construction of the shared, process-wide objects
(database session factory, registry gateway, metadata cache) so that API
dependencies and the CLI build them the same way.
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.orm import sessionmaker

from pi_finder.services.geo import ZipcodeGeoResolver
from pi_finder.services.metadata_cache import MetadataCache
from pi_finder.services.search import InvestigatorSearchService
from pi_finder.services.session import ResultsPipeline
from pi_finder.services.trial_metadata import TrialMetadataGateway
from pi_finder.settings import get_settings
from pi_finder.store.investigator_store import InvestigatorStore
from pi_finder.store.sql import session_factory as build_sql_session_factory


@lru_cache(maxsize=1)
def _shared_session_factory() -> sessionmaker:
    return build_sql_session_factory(settings=get_settings())


@lru_cache(maxsize=1)
def build_geo_resolver() -> ZipcodeGeoResolver:
    """Return the process-wide geo resolver (its coordinate table loads lazily)."""

    return ZipcodeGeoResolver()


def build_investigator_store() -> InvestigatorStore:
    """Instantiate an :class:`InvestigatorStore` bound to the configured database."""

    return InvestigatorStore(session_factory=_shared_session_factory())


def build_search_service() -> InvestigatorSearchService:
    """Return a search service wired to the configured geo resolver and store."""

    return InvestigatorSearchService(
        geo=build_geo_resolver(),
        store=build_investigator_store(),
        settings=get_settings(),
    )


@lru_cache(maxsize=1)
def build_trial_metadata_gateway() -> TrialMetadataGateway:
    """Return the shared registry gateway (one pooled HTTP client per process)."""

    return TrialMetadataGateway(settings=get_settings())


@lru_cache(maxsize=1)
def build_metadata_cache() -> MetadataCache:
    """Return the shared trial metadata cache keyed by sorted identifier sets."""

    return MetadataCache(ttl_seconds=get_settings().registry.cache_ttl_seconds)


def build_results_pipeline() -> ResultsPipeline:
    """Wire search, cached metadata lookups, and reconciliation together."""

    gateway = build_trial_metadata_gateway()
    cache = build_metadata_cache()
    return ResultsPipeline(
        search_service=build_search_service(),
        metadata_loader=lambda ids: cache.fetch(ids, gateway.fetch_metadata),
    )


def reset_factories() -> None:
    """Drop cached singletons (used in tests and after settings reloads)."""

    _shared_session_factory.cache_clear()
    build_geo_resolver.cache_clear()
    build_trial_metadata_gateway.cache_clear()
    build_metadata_cache.cache_clear()
