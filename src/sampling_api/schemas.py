"""Pydantic models specific to the REST API."""

from __future__ import annotations

from audit_sampling.models import CamelModel, SampleItem, SamplingPlan


class ErrorResponse(CamelModel):
    """Structured error body returned with every non-2xx response."""

    error: str
    details: str


class PlanListResponse(CamelModel):
    """Saved plans of a client, newest first."""

    items: list[SamplingPlan]
    total: int


class PlanDetailResponse(CamelModel):
    """A saved plan together with its sample items."""

    plan: SamplingPlan
    items: list[SampleItem]
