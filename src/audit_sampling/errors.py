"""Error taxonomy raised by the sampling engine."""

from __future__ import annotations


class SamplingError(Exception):
    """Base class for engine failures surfaced to the caller.

    ``message`` is the human-readable text returned to clients while
    ``details`` carries the underlying cause.
    """

    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or message

    def to_payload(self) -> dict[str, str]:
        """Return the structured error body for the transport layer."""

        return {"error": self.message, "details": self.details}


class SamplingValidationError(SamplingError):
    """Request parameters are missing, invalid or mathematically unusable."""

    status_code = 422


class PopulationFetchError(SamplingError):
    """The ledger query failed or returned malformed data."""

    status_code = 502


class PersistenceError(SamplingError):
    """The plan or its sample items could not be stored."""

    status_code = 500


class InternalComputationError(SamplingError):
    """A numeric step produced an undefined or inconsistent result."""

    status_code = 500


class PlanNotFoundError(SamplingError):
    """No persisted plan exists for the requested identifier."""

    status_code = 404
