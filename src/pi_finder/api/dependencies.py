"""FastAPI dependency providers; tests override these through ``app.dependency_overrides``."""

from __future__ import annotations

from pi_finder.services import factories
from pi_finder.services.search import InvestigatorSearchService
from pi_finder.services.session import ResultsPipeline
from pi_finder.services.trial_metadata import TrialMetadataGateway


def get_search_service() -> InvestigatorSearchService:
    """Dependency provider returning a configured investigator search service."""

    return factories.build_search_service()


def get_trial_metadata_gateway() -> TrialMetadataGateway:
    """Dependency provider for the shared ClinicalTrials.gov gateway."""

    return factories.build_trial_metadata_gateway()


def get_results_pipeline() -> ResultsPipeline:
    """Dependency provider for the reconciled-results pipeline."""

    return factories.build_results_pipeline()
