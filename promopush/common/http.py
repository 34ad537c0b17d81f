"""Shared FastAPI wiring: request metrics, trace ids and error mapping."""

from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from promopush.common.errors import NotFoundError, PushCoreError, ValidationError
from promopush.common.logging import logger, trace_id_ctx
from promopush.common.metrics import http_request_duration_seconds, http_requests_total


def install_http_support(app: FastAPI, service_name: str) -> None:
    """Attach metrics middleware and the error-to-status mapping to `app`."""

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        token = trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            trace_id_ctx.reset(token)
            http_request_duration_seconds.labels(
                service=service_name,
                route=route,
                method=method,
            ).observe(max(0.0, perf_counter() - start))
            http_requests_total.labels(
                service=service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(ValidationError)
    async def validation_error(_: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found(_: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(PushCoreError)
    async def core_error(_: Request, exc: PushCoreError):
        logger.error("request_failed error=%s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error(_: Request, exc: Exception):
        logger.exception("unexpected_request_error")
        return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})
