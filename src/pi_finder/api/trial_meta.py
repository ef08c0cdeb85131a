"""Trial metadata proxy over ClinicalTrials.gov (GET with ``ids`` or POST with a body)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from pi_finder.api.dependencies import get_trial_metadata_gateway
from pi_finder.errors import PiFinderError, ValidationError
from pi_finder.services.trial_metadata import TrialMetadataGateway

router = APIRouter(prefix="/api", tags=["trial-meta"])
LOGGER = logging.getLogger(__name__)


def _fetch(gateway: TrialMetadataGateway, ids: List[str], *, method: str) -> List[Dict[str, Any]] | JSONResponse:
    try:
        return [attributes.to_dict() for attributes in gateway.fetch_metadata(ids)]
    except PiFinderError:
        raise
    except Exception as exc:
        LOGGER.exception("/api/trial-meta %s error", method)
        return JSONResponse({"error": str(exc) or "Internal server error"}, status_code=500)


@router.get("/trial-meta")
def get_trial_meta(
    ids: str = Query("", description="Comma-joined NCT identifiers."),
    gateway: TrialMetadataGateway = Depends(get_trial_metadata_gateway),
):
    """Return trimmed trial attributes for the comma-joined ``ids``."""

    requested = [identifier.strip() for identifier in ids.split(",") if identifier.strip()]
    if not requested:
        raise ValidationError("Missing ids query parameter")
    return _fetch(gateway, requested, method="GET")


@router.post("/trial-meta")
def post_trial_meta(
    payload: Dict[str, Any] | None = Body(None),
    gateway: TrialMetadataGateway = Depends(get_trial_metadata_gateway),
):
    """Body-based variant used when the identifier list is too long for a URL."""

    raw_ids = payload.get("ids") if isinstance(payload, dict) else None
    requested = [str(identifier).strip() for identifier in raw_ids if identifier] if isinstance(raw_ids, list) else []
    requested = [identifier for identifier in requested if identifier]
    if not requested:
        raise ValidationError("Request body must include 'ids' array")
    return _fetch(gateway, requested, method="POST")


__all__ = ["router"]
