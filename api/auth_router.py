"""
Authentication API Router.

Cookie-based session endpoints in front of the upstream auth API:
- password login (sets both cookies)
- logout (best-effort upstream revoke, expires cookies)
- explicit refresh (rotates cookies)
- current user
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import RequestScope, get_scope, raise_for_outcome
from api.response_models import ErrorResponse, LoginRequest, MeResponse, OkResponse
from claimdesk import catalog
from claimdesk.errors import UnauthenticatedError
from claimdesk.upstream import OutcomeKind

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"],
    responses={401: {"model": ErrorResponse}},
)


@auth_router.post("/login", response_model=OkResponse)
def login(body: LoginRequest, scope: RequestScope = Depends(get_scope)):
    """Password login upstream; sets the access and refresh cookies."""
    outcome = scope.client.login(body.email, body.password)
    if outcome.kind in (OutcomeKind.AUTH_EXPIRED, OutcomeKind.PERMISSION_DENIED):
        raise UnauthenticatedError("Invalid credentials")
    raise_for_outcome(outcome, "login")

    scope.store.write(outcome.payload)
    logger.info("User logged in")
    return scope.respond({"ok": True})


@auth_router.post("/logout", response_model=OkResponse)
def logout(scope: RequestScope = Depends(get_scope)):
    """
    Revoke the refresh token upstream and expire both cookies.

    The upstream revoke is best effort: the cookies are expired even when
    it fails.
    """
    refresh_token = scope.store.refresh_token
    if refresh_token:
        outcome = scope.client.logout(refresh_token)
        if not outcome.ok:
            logger.info(f"Upstream logout not acknowledged: {outcome.describe()}")
    scope.store.clear()
    return scope.respond({"ok": True})


@auth_router.post("/refresh", response_model=OkResponse)
def refresh(scope: RequestScope = Depends(get_scope)):
    """Exchange the refresh cookie for a new pair."""
    scope.coordinator.refresh()
    return scope.respond({"ok": True})


@auth_router.get("/me", response_model=MeResponse)
def me(scope: RequestScope = Depends(get_scope)):
    """
    The signed-in user, or user=null.

    Never 401s: a caller without a usable session just has no user. A
    rejected refresh still expires the stale cookies.
    """
    if scope.store.is_empty:
        return scope.respond({"ok": True, "user": None})

    try:
        outcome = scope.caller.run(catalog.CURRENT_USER)
    except UnauthenticatedError as e:
        logger.debug(f"No user session: {e}")
        return scope.respond({"ok": True, "user": None})

    if not outcome.ok:
        logger.warning(f"Could not load current user: {outcome.describe()}")
        return scope.respond({"ok": True, "user": None})
    return scope.respond({"ok": True, "user": outcome.data})
