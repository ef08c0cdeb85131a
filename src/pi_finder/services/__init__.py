"""Search, metadata, and reconciliation services for pi_finder."""

from .reconciler import FilterCriteria, ReconciledPage, ResultReconciler, SearchMode, SponsorConstraint, next_mode
from .search import InvestigatorSearchService, SearchPage, SearchRequest
from .session import ResultsPipeline, SearchSession

__all__ = [
    "FilterCriteria",
    "InvestigatorSearchService",
    "ReconciledPage",
    "ResultReconciler",
    "ResultsPipeline",
    "SearchMode",
    "SearchPage",
    "SearchRequest",
    "SearchSession",
    "SponsorConstraint",
    "next_mode",
]
