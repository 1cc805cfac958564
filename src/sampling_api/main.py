"""FastAPI service exposing the audit sampling engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from audit_sampling.config import EngineSettings
from audit_sampling.engine import SamplingOrchestrator
from audit_sampling.errors import SamplingError
from audit_sampling.ledger import PopulationQuery
from audit_sampling.logging_setup import configure_logging
from audit_sampling.models import (
    HealthStatus,
    PopulationSummary,
    SamplingRequest,
    SamplingResult,
)

from .schemas import ErrorResponse, PlanDetailResponse, PlanListResponse

configure_logging()
for noisy in ("uvicorn", "uvicorn.access"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

api_logger = logging.getLogger("sampling_api.api")

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


def get_orchestrator(request: Request) -> SamplingOrchestrator:
    return request.app.state.orchestrator


def create_app(
    orchestrator: SamplingOrchestrator | None = None,
    settings: EngineSettings | None = None,
) -> FastAPI:
    """Build the API application.

    Args:
        orchestrator (SamplingOrchestrator | None): Engine to serve; one is
            wired from ``settings`` at startup when omitted.
        settings (EngineSettings | None): Settings used when no orchestrator
            is given; read from the environment when omitted.

    Returns:
        FastAPI: Configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = (
            orchestrator
            if orchestrator is not None
            else SamplingOrchestrator.from_settings(
                settings if settings is not None else EngineSettings.from_env()
            )
        )
        app.state.orchestrator = engine
        api_logger.info("Sampling engine started")
        try:
            yield
        finally:
            api_logger.info("Sampling engine stopping")
            engine.shutdown()

    app = FastAPI(
        title="Audit Sampling API",
        version="1.0.0",
        description="Statistical sample sizing and selection for audits.",
        lifespan=lifespan,
    )

    @app.exception_handler(SamplingError)
    async def sampling_error_handler(
        request: Request, exc: SamplingError
    ) -> JSONResponse:
        log = api_logger.warning if exc.status_code < 500 else api_logger.error
        log(
            "%s %s failed: %s (%s)",
            request.method,
            request.url.path,
            exc.message,
            exc.details,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        api_logger.warning("Invalid request on %s: %s", request.url.path, details)
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid sampling request", "details": details},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        api_logger.exception(
            "%s %s failed unexpectedly", request.method, request.url.path
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "details": f"{type(exc).__name__}: {exc}",
            },
        )

    @app.middleware("http")
    async def log_requests(request, call_next):
        api_logger.info("HTTP %s %s started", request.method, request.url.path)
        response = await call_next(request)
        api_logger.info(
            "HTTP %s %s completed -> %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response

    @app.get("/", include_in_schema=False)
    async def docs_redirect():
        return RedirectResponse(url="/docs")

    @app.post(
        "/sampling",
        response_model=SamplingResult,
        responses=ERROR_RESPONSES,
        tags=["Audit Sampling"],
    )
    def create_sample(
        payload: SamplingRequest,
        engine: SamplingOrchestrator = Depends(get_orchestrator),
    ) -> SamplingResult:
        """Size and select a sample; persist it when ``save`` is set."""
        return engine.run(payload)

    @app.get("/health", response_model=HealthStatus, tags=["Service"])
    def health(
        engine: SamplingOrchestrator = Depends(get_orchestrator),
    ) -> HealthStatus:
        return engine.health()

    @app.get(
        "/population/summary",
        response_model=PopulationSummary,
        responses=ERROR_RESPONSES,
        tags=["Audit Sampling"],
    )
    def population_summary(
        client_id: str = Query(..., alias="clientId", min_length=1),
        fiscal_year: int = Query(..., alias="fiscalYear", ge=1900, le=2999),
        excluded_account_numbers: list[str] = Query(
            default=[], alias="excludedAccountNumbers"
        ),
        selected_standard_numbers: list[str] = Query(
            default=[], alias="selectedStandardNumbers"
        ),
        version_id: str | None = Query(default=None, alias="versionId"),
        engine: SamplingOrchestrator = Depends(get_orchestrator),
    ) -> PopulationSummary:
        """Population size and value needed to build a sampling request."""
        return engine.population_summary(
            PopulationQuery(
                client_id=client_id,
                fiscal_year=fiscal_year,
                excluded_account_numbers=excluded_account_numbers,
                selected_standard_numbers=selected_standard_numbers,
                version_id=version_id,
            )
        )

    @app.get(
        "/plans",
        response_model=PlanListResponse,
        responses=ERROR_RESPONSES,
        tags=["Saved Plans"],
    )
    def list_plans(
        client_id: str = Query(..., alias="clientId", min_length=1),
        fiscal_year: int | None = Query(default=None, alias="fiscalYear"),
        engine: SamplingOrchestrator = Depends(get_orchestrator),
    ) -> PlanListResponse:
        """List saved plans of a client, newest first."""
        plans = engine.list_plans(client_id, fiscal_year)
        return PlanListResponse(items=plans, total=len(plans))

    @app.get(
        "/plans/{plan_id}",
        response_model=PlanDetailResponse,
        responses=ERROR_RESPONSES,
        tags=["Saved Plans"],
    )
    def get_plan(
        plan_id: str,
        engine: SamplingOrchestrator = Depends(get_orchestrator),
    ) -> PlanDetailResponse:
        """Retrieve a saved plan with its sample items."""
        plan, items = engine.load_plan(plan_id)
        return PlanDetailResponse(plan=plan, items=items)

    return app


app = create_app()


def run() -> None:
    """Serve the module-level application with uvicorn."""

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
