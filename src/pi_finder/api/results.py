"""Reconciled investigator results with trial-attribute filters applied."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from pi_finder.api.dependencies import get_results_pipeline
from pi_finder.services.reconciler import FilterCriteria
from pi_finder.services.search import SearchRequest
from pi_finder.services.session import ResultsPipeline

router = APIRouter(prefix="/api", tags=["results"])


@router.get("/results", response_model=None)
def reconciled_results(
    zip: str = Query(""),
    radius: str | None = Query(None),
    page: str | None = Query(None),
    start_year: str | None = Query(None, alias="startYear"),
    end_year: str | None = Query(None, alias="endYear"),
    indications: str | None = Query(None),
    phases: str | None = Query(None, description="Comma-separated phases (1, 2, 3, 4, NA)."),
    sponsor_type: str | None = Query(None, alias="sponsorType", description="Any or Industry."),
    recruiting_only: bool = Query(False, alias="recruitingOnly"),
    pipeline: ResultsPipeline = Depends(get_results_pipeline),
) -> Dict[str, Any] | JSONResponse:
    """Return the displayed page for the search plus filters.

    Identity filters return the server page as-is. Any active filter pages over
    the full candidate pool and reports the filtered count. Trial metadata
    failures come back as ``warning``; investigator query failures as a 500.
    """

    request = SearchRequest.from_params(
        zip=zip,
        radius=radius,
        page=page,
        start_year=start_year,
        end_year=end_year,
        indications=indications,
        settings=pipeline.search_service.settings,
    )
    criteria = FilterCriteria.parse(phases, sponsor_type, recruiting_only)
    result = pipeline.run(request, criteria)
    if result.error:
        return JSONResponse(result.to_dict(), status_code=500)
    return result.to_dict()


__all__ = ["router"]
