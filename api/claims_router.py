"""
Claims API Router.

REST endpoints for claim records and their related collections:
- claim list, detail and lookup by claim number
- notes (read and create)
- tasks
- participants (read and add)
- aggregated activity timeline
"""

import asyncio
import logging
import threading
from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import (
    ForbiddenPolicy,
    RequestScope,
    get_scope,
    raise_for_outcome,
    surface_detail,
    surface_list,
)
from api.response_models import (
    DataResponse,
    ErrorResponse,
    ListResponse,
    NoteCreateRequest,
    ParticipantCreateRequest,
    TimelineResponse,
)
from claimdesk import catalog
from claimdesk.aggregation import AggregationEngine, SortOrder, claim_timeline_sources
from claimdesk.errors import UpstreamError
from claimdesk.observability.context import bind_context
from claimdesk.upstream import OutcomeKind

logger = logging.getLogger(__name__)

claims_router = APIRouter(
    prefix="/api/claims",
    tags=["Claims"],
    responses={401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)

# How often the timeline handler checks whether the client is still there.
DISCONNECT_POLL_SECONDS = 0.25


def _list_body(rows: list, warning: str | None) -> dict:
    body: dict[str, Any] = {"data": rows}
    if warning:
        body["warning"] = warning
    return body


# ==== Claims ====


@claims_router.get("", response_model=ListResponse)
def list_claims(
    limit: int = Query(50, ge=1, le=500, description="Page size"),
    offset: int = Query(0, ge=0, description="Rows to skip"),
    scope: RequestScope = Depends(get_scope),
):
    """List claims, newest first. Address lines are dropped when not readable."""
    outcome = scope.caller.run(catalog.CLAIMS_LIST, {"limit": limit, "offset": offset})
    rows, warning = surface_list(outcome, ForbiddenPolicy.EMPTY_LIST, "claims")
    return scope.respond(_list_body(rows, warning))


@claims_router.get("/by-number/{claim_number}", response_model=DataResponse)
def get_claim_by_number(claim_number: str, scope: RequestScope = Depends(get_scope)):
    """Resolve a claim number to its id, then return the claim detail."""
    outcome = scope.caller.run(catalog.CLAIM_BY_NUMBER, {"claim_number": claim_number})
    rows, _ = surface_list(outcome, ForbiddenPolicy.FORBIDDEN, "claim lookup")
    if not rows or not isinstance(rows[0], dict) or rows[0].get("id") is None:
        raise UpstreamError(404, "Not Found", f"No claim numbered {claim_number}")

    detail = scope.caller.run(catalog.CLAIM_DETAIL, {"claim_id": rows[0]["id"]})
    return scope.respond({"data": surface_detail(detail, "claim")})


@claims_router.get("/{claim_id}", response_model=DataResponse)
def get_claim(claim_id: str, scope: RequestScope = Depends(get_scope)):
    outcome = scope.caller.run(catalog.CLAIM_DETAIL, {"claim_id": claim_id})
    return scope.respond({"data": surface_detail(outcome, "claim")})


# ==== Notes ====


def _with_date_created(notes: list) -> list:
    """Older clients read date_created; newer collections store created_at."""
    mapped = []
    for note in notes:
        if isinstance(note, dict):
            note = {**note, "date_created": note.get("date_created") or note.get("created_at")}
        mapped.append(note)
    return mapped


@claims_router.get("/{claim_id}/notes", response_model=ListResponse)
def list_notes(claim_id: str, scope: RequestScope = Depends(get_scope)):
    """
    Notes for a claim.

    Probes the known notes collections and both timestamp columns. A
    deployment without any notes collection yields an empty list.
    """
    outcome = scope.caller.run(catalog.NOTES_LIST, {"claim_id": claim_id}, service_fallback=True)
    if outcome.kind is OutcomeKind.NOT_FOUND:
        logger.info(f"No notes collection found for claim {claim_id}")
        return scope.respond({"data": []})
    rows, warning = surface_list(outcome, ForbiddenPolicy.EMPTY_LIST, "notes")
    return scope.respond(_list_body(_with_date_created(rows), warning))


@claims_router.post("/{claim_id}/notes", response_model=DataResponse, status_code=201)
def create_note(claim_id: str, body: NoteCreateRequest, scope: RequestScope = Depends(get_scope)):
    payload: dict[str, Any] = {"claim": claim_id, "note": body.note}
    if body.visibility:
        payload["visibility"] = body.visibility

    outcome = scope.caller.run(
        catalog.NOTES_CREATE, {"claim_id": claim_id}, json=payload, service_fallback=True
    )
    raise_for_outcome(outcome, "note")
    logger.info(f"Created note on claim {claim_id}")
    return scope.respond({"data": outcome.data}, status_code=201)


# ==== Tasks ====


@claims_router.get("/{claim_id}/tasks", response_model=ListResponse)
def list_tasks(claim_id: str, scope: RequestScope = Depends(get_scope)):
    """Tasks for a claim. A forbidden collection yields [] plus a warning."""
    outcome = scope.caller.run(catalog.TASKS_LIST, {"claim_id": claim_id}, service_fallback=True)
    rows, warning = surface_list(outcome, ForbiddenPolicy.EMPTY_LIST, "tasks")
    return scope.respond(_list_body(rows, warning))


# ==== Participants ====


def flatten_participants(claim: Any) -> list[dict]:
    """Flatten the claims_contacts junction rows into {id, role, contactId, name}."""
    junction = claim.get("claims_contacts") if isinstance(claim, dict) else None
    rows = []
    for link in junction or []:
        if not isinstance(link, dict):
            continue
        contact = link.get("contacts_id")
        if not isinstance(contact, dict):
            contact = {"id": contact}
        name = f"{contact.get('first_name') or ''} {contact.get('last_name') or ''}".strip()
        rows.append(
            {
                "id": link.get("id"),
                "role": link.get("role") or "",
                "contactId": contact.get("id"),
                "name": name,
            }
        )
    return rows


@claims_router.get("/{claim_id}/participants", response_model=ListResponse)
def list_participants(claim_id: str, scope: RequestScope = Depends(get_scope)):
    outcome = scope.caller.run(catalog.PARTICIPANTS_LIST, {"claim_id": claim_id})
    if outcome.kind is OutcomeKind.PERMISSION_DENIED:
        return scope.respond({"data": [], "warning": "Forbidden fetching participants; returning empty list"})
    raise_for_outcome(outcome, "participants")
    return scope.respond({"data": flatten_participants(outcome.data)})


@claims_router.post("/{claim_id}/participants", response_model=DataResponse, status_code=201)
def add_participant(
    claim_id: str,
    body: ParticipantCreateRequest,
    scope: RequestScope = Depends(get_scope),
):
    """Link a contact to the claim through the first junction collection that exists."""
    payload = {"claim_id": claim_id, "contacts_id": body.contact_id, "role": body.role}
    outcome = scope.caller.run(catalog.PARTICIPANTS_CREATE, {"claim_id": claim_id}, json=payload)
    raise_for_outcome(outcome, "participant")
    logger.info(f"Added participant to claim {claim_id}")
    return scope.respond({"data": outcome.data}, status_code=201)


# ==== Timeline ====


@claims_router.get("/{claim_id}/timeline", response_model=TimelineResponse)
async def claim_timeline(
    request: Request,
    claim_id: str,
    order: str = Query("desc", description="asc or desc"),
    scope: RequestScope = Depends(get_scope),
):
    """
    Aggregated activity feed for a claim.

    Claim record, status events, notes, tasks and documents are fetched in
    parallel and merged by timestamp. Failed sources are listed in
    `errors` and flip `partial`; the request fails only when all fail.
    If the client disconnects, outstanding upstream work is abandoned.
    """
    engine = AggregationEngine(
        scope.caller,
        max_workers=scope.config.max_workers,
        source_timeout=scope.config.aggregation_timeout,
        service_fallback=True,
    )
    cancel_event = threading.Event()
    loop = asyncio.get_running_loop()
    work = loop.run_in_executor(
        None,
        bind_context(engine.aggregate),
        claim_timeline_sources(),
        {"claim_id": claim_id},
        SortOrder.parse(order),
        cancel_event,
    )

    while not work.done():
        done, _ = await asyncio.wait({work}, timeout=DISCONNECT_POLL_SECONDS)
        if not done and await request.is_disconnected():
            logger.info(f"Client disconnected; cancelling timeline for claim {claim_id}")
            cancel_event.set()

    result = await work
    return scope.respond(result.to_dict())
