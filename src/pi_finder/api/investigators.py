"""Geo-radius investigator search endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from pi_finder.api.dependencies import get_search_service
from pi_finder.services.search import InvestigatorSearchService, SearchRequest

router = APIRouter(prefix="/api", tags=["investigators"])
LOGGER = logging.getLogger(__name__)


@router.get("/investigators")
def search_investigators(
    zip: str = Query("", description="Five digit postal code at the centre of the search."),
    radius: str | None = Query(None, description="Search radius in miles."),
    page: str | None = Query(None, description="1-based page number."),
    start_year: str | None = Query(None, alias="startYear", description="Earliest study start year (YYYY)."),
    end_year: str | None = Query(None, alias="endYear", description="Latest study start year (YYYY)."),
    indications: str | None = Query(None, description="Comma-separated indications (reserved)."),
    service: InvestigatorSearchService = Depends(get_search_service),
) -> Dict[str, Any]:
    """Return one page of investigators near ``zip`` plus the total matching count.

    ``indications`` is accepted but not applied yet.
    """

    request = SearchRequest.from_params(
        zip=zip,
        radius=radius,
        page=page,
        start_year=start_year,
        end_year=end_year,
        indications=indications,
        settings=service.settings,
    )
    return service.search(request).to_dict()


__all__ = ["router"]
