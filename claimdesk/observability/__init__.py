"""
Observability: structured logging, request IDs, health checks.

Usage:
    from claimdesk.observability import configure_logging, RequestContext

    configure_logging("INFO")
    with RequestContext() as ctx:
        logger.info("Processing", extra={"request_id": ctx.request_id})
"""

from .context import RequestContext, bind_context, get_request_id, set_request_id
from .health import HealthChecker, HealthStatus
from .logging import JSONFormatter, TokenMaskingFilter, configure_logging, mask_tokens
from .middleware import CorrelationIdMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "JSONFormatter",
    "TokenMaskingFilter",
    "mask_tokens",
    # Context
    "RequestContext",
    "bind_context",
    "get_request_id",
    "set_request_id",
    "CorrelationIdMiddleware",
    # Health
    "HealthChecker",
    "HealthStatus",
]
