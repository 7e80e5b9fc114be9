"""
Claimdesk API Server - authenticated gateway in front of the claims data API.
"""
# ruff: noqa: S104
# S104: Development server binding (guarded by __name__ check)

import logging
import os
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.auth_router import auth_router
from api.claims_router import claims_router
from api.reference_router import reference_router
from claimdesk import __version__
from claimdesk.auth import ResponseCookieWriter
from claimdesk.config import UpstreamConfig, load_config
from claimdesk.errors import AggregationFailedError, ClaimdeskError, truncate_detail
from claimdesk.observability import CorrelationIdMiddleware, HealthChecker, HealthStatus, configure_logging
from claimdesk.upstream import UpstreamClient

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    # Dev default: allow all origins; Production: set CORS_ORIGINS to comma-separated list
    cors_origins_env = os.getenv("CORS_ORIGINS", "*")
    return ["*"] if cors_origins_env == "*" else [o.strip() for o in cors_origins_env.split(",")]


def error_body(exc: ClaimdeskError) -> dict:
    body = {"error": exc.public_message}
    if exc.detail and exc.detail != exc.public_message:
        body["detail"] = exc.detail
    if isinstance(exc, AggregationFailedError):
        body["errors"] = exc.errors
    return body


async def handle_claimdesk_error(request: Request, exc: ClaimdeskError) -> JSONResponse:
    """Render the structured error and still apply any cookie rotation or clearing."""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.status_code} {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.public_message}")

    response = JSONResponse(error_body(exc), status_code=exc.status_code)
    store = getattr(request.state, "credential_store", None)
    return request.app.state.cookie_writer.apply(response, store)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies and query params use the same {error, detail} shape."""
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(
        {"error": "Bad Request", "detail": truncate_detail(problems)},
        status_code=400,
    )


def create_app(
    config: UpstreamConfig | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Upstream settings; loaded from the environment at startup when omitted
        transport: Optional httpx transport for the upstream client (tests)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = config or load_config()
        app.state.config = resolved
        app.state.cookie_writer = ResponseCookieWriter(resolved)
        app.state.upstream_client = UpstreamClient(resolved, transport=transport)
        logger.info("=== Claimdesk gateway startup ===")
        logger.info(f"Upstream: {resolved.base_url}")
        has_fallback = bool(resolved.static_fallback_token or resolved.service_account_credentials)
        logger.info(f"Service fallback configured: {has_fallback}")
        try:
            yield
        finally:
            app.state.upstream_client.close()
            logger.info("Upstream client closed")

    app = FastAPI(
        title="Claimdesk API",
        description="Authenticated gateway for claims management",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    app.add_exception_handler(ClaimdeskError, handle_claimdesk_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(auth_router)
    app.include_router(claims_router)
    app.include_router(reference_router)

    @app.get("/health")
    def health(request: Request):
        """Upstream reachability report; 503 when the upstream is down."""
        checker = HealthChecker(
            request.app.state.upstream_client,
            service_token=request.app.state.config.static_fallback_token,
        )
        report = checker.run_all()
        status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(report.to_dict(), status_code=status_code)

    return app


app = create_app()


def main():
    """Run the server."""
    configure_logging(
        os.environ.get("LOG_LEVEL", "INFO"),
        json_format={"1": True, "0": False}.get(os.environ.get("LOG_JSON", "")),
    )
    port = int(os.environ.get("PORT", 8420))
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
