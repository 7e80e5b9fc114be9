"""
Request-scoped wiring shared by the gateway routers.

Every request gets its own CredentialStore, RefreshCoordinator and
ResilientCaller (refresh happens at most once per request, so this state
must never be shared across requests). The UpstreamClient and config are
app-wide and live on app.state.

Usage:
    @router.get("/things")
    def list_things(scope: RequestScope = Depends(get_scope)):
        outcome = scope.caller.run(catalog.THINGS)
        data, warning = surface_list(outcome, ForbiddenPolicy.EMPTY_LIST, "things")
        return scope.respond({"data": data})
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from claimdesk.auth import CredentialStore, ResponseCookieWriter
from claimdesk.auth.refresh import RefreshCoordinator
from claimdesk.config import UpstreamConfig
from claimdesk.errors import UpstreamError
from claimdesk.upstream import CallOutcome, DegradingQueryPlanner, OutcomeKind, UpstreamClient
from claimdesk.upstream.resilient import ResilientCaller

logger = logging.getLogger(__name__)


class ForbiddenPolicy(Enum):
    """What a route does when every variant was denied."""

    EMPTY_LIST = "empty_list"  # 200 with [] so list views stay usable
    FORBIDDEN = "forbidden"  # 403 {error: "Forbidden"}


@dataclass
class RequestScope:
    config: UpstreamConfig
    client: UpstreamClient
    store: CredentialStore
    coordinator: RefreshCoordinator
    caller: ResilientCaller
    writer: ResponseCookieWriter

    def respond(self, body: Any, status_code: int = 200) -> JSONResponse:
        """JSON response with any pending credential rotation attached."""
        return self.writer.apply(JSONResponse(body, status_code=status_code), self.store)


def get_scope(request: Request) -> RequestScope:
    config: UpstreamConfig = request.app.state.config
    client: UpstreamClient = request.app.state.upstream_client
    store = CredentialStore(request.cookies, config.access_cookie, config.refresh_cookie)
    # The error handlers need the store to apply rotation to error responses.
    request.state.credential_store = store
    coordinator = RefreshCoordinator(store, client, config)
    return RequestScope(
        config=config,
        client=client,
        store=store,
        coordinator=coordinator,
        caller=ResilientCaller(DegradingQueryPlanner(client), coordinator),
        writer=request.app.state.cookie_writer,
    )


def raise_for_outcome(outcome: CallOutcome, resource: str) -> None:
    """
    Turn a terminal non-success outcome into an UpstreamError.

    Raises:
        UpstreamError: always, unless the outcome is a success
    """
    if outcome.ok:
        return
    if outcome.kind is OutcomeKind.PERMISSION_DENIED:
        raise UpstreamError(403, "Forbidden", outcome.detail)
    if outcome.kind is OutcomeKind.NOT_FOUND:
        raise UpstreamError(404, "Not Found", outcome.detail)
    status = outcome.status_code
    if status is not None and 400 <= status < 500:
        raise UpstreamError(status, "Bad Request", outcome.detail)
    logger.warning(f"Upstream failure fetching {resource}: {outcome.describe()}")
    raise UpstreamError(502, "Upstream Error", outcome.detail)


def surface_list(
    outcome: CallOutcome,
    policy: ForbiddenPolicy,
    resource: str,
) -> tuple[list, str | None]:
    """
    Result rows of a list read, applying the route's forbidden policy.

    Returns (rows, warning). The warning is set when a denial was degraded
    to an empty list.
    """
    if outcome.ok:
        data = outcome.data
        return (data if isinstance(data, list) else []), None
    if outcome.kind is OutcomeKind.PERMISSION_DENIED and policy is ForbiddenPolicy.EMPTY_LIST:
        logger.info(f"Forbidden fetching {resource}; returning empty list")
        return [], f"Forbidden fetching {resource}; returning empty list"
    raise_for_outcome(outcome, resource)
    return [], None


def surface_detail(outcome: CallOutcome, resource: str) -> Any:
    """
    The record of a detail read.

    Raises:
        UpstreamError: 403/404/502 per the outcome; 404 on an empty record
    """
    raise_for_outcome(outcome, resource)
    data = outcome.data
    if not data:
        raise UpstreamError(404, "Not Found")
    return data
