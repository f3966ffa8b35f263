from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from devkit.config import CheckinSettings
from devkit.observability import configure_logging, configure_otel, configure_probe_access_log_filter

from checkin_api.dependencies import build_checkin_service, get_checkin_service, settings as default_settings
from checkin_api.errors import ApiError
from checkin_api.middleware import ObservabilityMiddleware
from checkin_api.observability import (
    CompositeApiMetricsCollector,
    InMemoryApiMetricsCollector,
    PrometheusApiMetricsCollector,
)
from checkin_api.response import error_response, success_response
from checkin_api.routers.checkin import router as checkin_router
from checkin_api.services.checkin_service import CheckinService


def create_app(
    settings: CheckinSettings | None = None,
    checkin_service: CheckinService | None = None,
) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Check-in Verification API", version="0.1.0")
    configure_logging(settings.LOG_LEVEL)
    configure_otel(service_name=settings.SERVICE_NAME)
    configure_probe_access_log_filter()
    app.state.api_metrics = InMemoryApiMetricsCollector()
    app.state.prom_metrics = PrometheusApiMetricsCollector()
    app.state.composite_metrics = CompositeApiMetricsCollector(
        [app.state.api_metrics, app.state.prom_metrics]
    )
    app.state.checkin_service = checkin_service or build_checkin_service(
        settings,
        outcome_recorder=app.state.prom_metrics,
    )
    app.dependency_overrides[get_checkin_service] = lambda: app.state.checkin_service
    app.add_middleware(ObservabilityMiddleware, collector=app.state.composite_metrics)
    app.include_router(checkin_router)

    @app.get("/healthz")
    async def healthz() -> dict:
        return success_response({"status": "ok"}, meta={})

    @app.get("/readyz")
    async def readyz() -> dict:
        return success_response({"status": "ready"}, meta={})

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = app.state.prom_metrics.render()
        return Response(content=payload, media_type="text/plain; version=0.0.4")

    @app.exception_handler(ApiError)
    async def handle_api_error(_: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        message = "; ".join(err["msg"] for err in exc.errors())
        return JSONResponse(
            status_code=422,
            content=error_response("VALIDATION_ERROR", message),
        )

    return app


app = create_app()
