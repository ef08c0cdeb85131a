"""Exception taxonomy shared by the search, metadata, and reconciliation layers."""

from __future__ import annotations


class PiFinderError(Exception):
    """Base class for every error surfaced by pi_finder."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PiFinderError):
    """User input failed validation (postal code, year, radius, page, filters)."""

    status_code = 400


class NotFoundError(PiFinderError):
    """The requested postal code is unknown to the geo dataset."""

    status_code = 404


class UpstreamFetchError(PiFinderError):
    """A collaborator (geo dataset, database, trials registry) failed.

    Attributes:
        status: Upstream HTTP status when the failure came from a remote call.
    """

    status_code = 500

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MetadataFetchError(UpstreamFetchError):
    """ClinicalTrials.gov returned a non-success response for a metadata batch."""

    status_code = 502


class PartialDataError(PiFinderError):
    """Trial metadata failed while the investigator data itself succeeded.

    Never returned as an HTTP error; the reconciler converts it into a warning.
    """

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


__all__ = [
    "PiFinderError",
    "ValidationError",
    "NotFoundError",
    "UpstreamFetchError",
    "MetadataFetchError",
    "PartialDataError",
]
