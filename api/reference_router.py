"""
Reference data API Router.

Lookup lists the claim forms need: claim statuses and causes of loss.
"""

import logging

from fastapi import APIRouter, Depends

from api.dependencies import ForbiddenPolicy, RequestScope, get_scope, surface_list
from api.response_models import ListResponse
from claimdesk import catalog

logger = logging.getLogger(__name__)

reference_router = APIRouter(prefix="/api", tags=["Reference"])


@reference_router.get("/claim-status", response_model=ListResponse)
def list_claim_statuses(scope: RequestScope = Depends(get_scope)):
    outcome = scope.caller.run(catalog.CLAIM_STATUSES, service_fallback=True)
    rows, _ = surface_list(outcome, ForbiddenPolicy.FORBIDDEN, "claim statuses")
    return scope.respond({"data": rows})


@reference_router.get("/loss-causes", response_model=ListResponse)
def list_loss_causes(scope: RequestScope = Depends(get_scope)):
    outcome = scope.caller.run(catalog.LOSS_CAUSES, service_fallback=True)
    rows, _ = surface_list(outcome, ForbiddenPolicy.FORBIDDEN, "loss causes")
    return scope.respond({"data": rows})
