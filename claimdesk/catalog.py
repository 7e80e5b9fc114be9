"""
Query catalogue - the static variant lists for every logical read/write.

Variant order and the safe-minimum guarantee are data here rather than
control flow in the routes. Field-set plans are strict (each variant a
subset of the previous one); plans that probe collection names, filter
shapes or legacy timestamp columns are location plans (strict=False).

Template keys used below: claim_id, claim_number, limit, offset.
"""

from itertools import product

from .upstream.query import QueryPlan, build_plan

# ============================================================
# Field sets
# ============================================================

_CLAIM_FIELDS_BASE = [
    "id",
    "claim_number",
    "date_of_loss",
    "reported_date",
    "description",
    "date_created",
    "status.*",
    "claim_type.*",
    "primary_insured.id",
    "primary_insured.first_name",
    "primary_insured.last_name",
]
_ADDRESS_LINES = ["loss_location.street_1", "loss_location.street_2"]
_ADDRESS_REGION = ["loss_location.city", "loss_location.state", "loss_location.postal_code"]
_ASSIGNEE = [
    "assigned_to_user.id",
    "assigned_to_user.first_name",
    "assigned_to_user.last_name",
    "assigned_to_user.email",
]
_CLAIM_CONTACTS = [
    "claims_contacts.id",
    "claims_contacts.role",
    "claims_contacts.contacts_id.id",
    "claims_contacts.contacts_id.first_name",
    "claims_contacts.contacts_id.last_name",
]

CLAIM_DETAIL_FULL = _CLAIM_FIELDS_BASE + _ADDRESS_LINES + _ADDRESS_REGION + _ASSIGNEE
CLAIM_DETAIL_SAFE = _CLAIM_FIELDS_BASE + _ADDRESS_REGION + _ASSIGNEE
CLAIM_LIST_FULL = CLAIM_DETAIL_FULL + _CLAIM_CONTACTS
CLAIM_LIST_SAFE = CLAIM_DETAIL_SAFE + _CLAIM_CONTACTS

# Bare relation keys ride along with their expansions so the safe variant stays a subset.
TASK_FIELDS_FULL = [
    "id", "claim", "status", "priority", "assignee", "assignee.id", "assignee.name", "title",
    "details", "due_date", "date_created", "created_by", "created_by.first_name", "created_by.last_name",
]
TASK_FIELDS_SAFE = [
    "id", "claim", "status", "priority", "assignee", "title", "details", "due_date",
    "date_created", "created_by",
]

NOTES_COLLECTIONS = ("claim_notes", "claims_notes", "notes")
DOCUMENT_COLLECTIONS = ("claim_documents", "claim_files", "claims_files", "claims_documents")
PARTICIPANT_COLLECTIONS = ("claims_contacts", "claim_contacts")

# Directus accepts the claim relation either as a bare key or via its id.
_CLAIM_FILTERS = ("filter[claim][_eq]", "filter[claim][id][_eq]")


def _claim_list_params() -> dict:
    return {
        "limit": "{limit}",
        "offset": "{offset}",
        "sort[]": "-date_created",
        "deep[claims_contacts][_limit]": "10",
    }


# ============================================================
# Claims
# ============================================================

CLAIMS_LIST = build_plan(
    "claims.list",
    [
        {"path": "/items/claims", "fields": CLAIM_LIST_FULL, "params": _claim_list_params()},
        {"path": "/items/claims", "fields": CLAIM_LIST_SAFE, "params": _claim_list_params()},
    ],
)

CLAIM_DETAIL = build_plan(
    "claims.detail",
    [
        {"path": "/items/claims/{claim_id}", "fields": CLAIM_DETAIL_FULL},
        {"path": "/items/claims/{claim_id}", "fields": CLAIM_DETAIL_SAFE},
    ],
)

CLAIM_BY_NUMBER = build_plan(
    "claims.by_number",
    [
        {
            "path": "/items/claims",
            "fields": ["id", "claim_number"],
            "params": {"filter[claim_number][_eq]": "{claim_number}", "limit": "1"},
        },
    ],
)

CLAIM_TIMELINE_CORE = build_plan(
    "timeline.claim",
    [
        {
            "path": "/items/claims/{claim_id}",
            "fields": [
                "id", "claim_number", "date_created", "description", "status.name",
                "status.code", "status.status", "user_created.first_name",
                "user_created.last_name", "assigned_to_user.first_name",
                "assigned_to_user.last_name",
            ],
        },
        {
            "path": "/items/claims/{claim_id}",
            "fields": ["id", "claim_number", "date_created", "description", "status.name"],
        },
        {"path": "/items/claims/{claim_id}", "fields": ["id", "date_created"]},
    ],
)

# ============================================================
# Notes
# ============================================================


def _notes_candidates() -> list[dict]:
    candidates = []
    for collection, (ts_field, flt) in product(
        NOTES_COLLECTIONS, product(("created_at", "date_created"), _CLAIM_FILTERS)
    ):
        candidates.append(
            {
                "path": f"/items/{collection}",
                "fields": ["id", "claim", "note", "visibility", ts_field,
                           "created_by.first_name", "created_by.last_name"],
                "params": {flt: "{claim_id}", "sort[]": f"-{ts_field}"},
            }
        )
    return candidates


NOTES_LIST = build_plan("notes.list", _notes_candidates(), not_found_degrades=True, strict=False)

NOTES_CREATE = build_plan(
    "notes.create",
    [{"path": f"/items/{c}", "method": "POST"} for c in NOTES_COLLECTIONS],
    not_found_degrades=True,
    strict=False,
)

# ============================================================
# Tasks
# ============================================================

TASKS_LIST = build_plan(
    "tasks.list",
    [
        {"path": "/items/claim_tasks", "fields": TASK_FIELDS_FULL,
         "params": {"filter[claim][id][_eq]": "{claim_id}", "sort[]": "-date_created"}},
        {"path": "/items/claim_tasks", "fields": TASK_FIELDS_SAFE,
         "params": {"filter[claim][id][_eq]": "{claim_id}", "sort[]": "-date_created"}},
        {"path": "/items/claim_tasks", "fields": TASK_FIELDS_SAFE,
         "params": {"filter[claim][_eq]": "{claim_id}", "sort[]": "-date_created"}},
    ],
)

# ============================================================
# Documents and status events (timeline only)
# ============================================================


def _document_candidates() -> list[dict]:
    candidates = []
    for collection in DOCUMENT_COLLECTIONS:
        for flt in _CLAIM_FILTERS:
            candidates.append(
                {
                    "path": f"/items/{collection}",
                    "fields": ["id", "created_at", "created_by.first_name", "created_by.last_name",
                               "file.id", "file.title", "file.filename_download", "file.type",
                               "file.uploaded_on"],
                    "params": {flt: "{claim_id}", "sort[]": "-created_at"},
                }
            )
        candidates.append(
            {
                "path": f"/items/{collection}",
                "fields": ["id", "uploaded_at", "uploaded_by.first_name", "uploaded_by.last_name",
                           "file.id", "file.title", "file.filename_download", "file.type",
                           "file.uploaded_on"],
                "params": {"filter[claim][_eq]": "{claim_id}", "sort[]": "-uploaded_at"},
            }
        )
    return candidates


DOCUMENTS_LIST = build_plan(
    "documents.list", _document_candidates(), not_found_degrades=True, strict=False
)

STATUS_EVENTS_LIST = build_plan(
    "status_events.list",
    [
        {
            "path": "/items/claim_events",
            "fields": ["id", "created_at", "old_status", "new_status",
                       "created_by.first_name", "created_by.last_name"],
            "params": {"filter[claim][_eq]": "{claim_id}", "sort[]": "-created_at"},
        },
        {
            "path": "/items/claim_events",
            "fields": ["id", "created_at", "old_status", "new_status"],
            "params": {"filter[claim][_eq]": "{claim_id}", "sort[]": "-created_at"},
        },
    ],
)

# ============================================================
# Participants
# ============================================================

PARTICIPANTS_LIST = build_plan(
    "participants.list",
    [
        {"path": "/items/claims/{claim_id}", "fields": _CLAIM_CONTACTS},
        {"path": "/items/claims/{claim_id}",
         "fields": ["claims_contacts.id", "claims_contacts.role", "claims_contacts.contacts_id.id"]},
    ],
)

PARTICIPANTS_CREATE = build_plan(
    "participants.create",
    [{"path": f"/items/{c}", "method": "POST"} for c in PARTICIPANT_COLLECTIONS],
    not_found_degrades=True,
    strict=False,
)

# ============================================================
# Reference data and identity
# ============================================================

CLAIM_STATUSES = build_plan(
    "claim_status.list",
    [
        {"path": "/items/claim_status", "fields": ["id", "name", "code", "status"], "params": {"sort": "name"}},
        {"path": "/items/claim_status", "fields": ["id", "name"], "params": {"sort": "name"}},
    ],
)

LOSS_CAUSES = build_plan(
    "loss_cause.list",
    [{"path": "/items/loss_cause", "fields": ["id", "name"], "params": {"sort": "name"}}],
)

CURRENT_USER = build_plan(
    "users.me",
    [
        {"path": "/users/me",
         "fields": ["id", "email", "first_name", "last_name", "role", "role.id", "role.name"]},
        {"path": "/users/me", "fields": ["id", "email", "first_name", "last_name", "role"]},
        {"path": "/users/me", "fields": ["id", "email"]},
    ],
)

ALL_PLANS: tuple[QueryPlan, ...] = (
    CLAIMS_LIST,
    CLAIM_DETAIL,
    CLAIM_BY_NUMBER,
    CLAIM_TIMELINE_CORE,
    NOTES_LIST,
    NOTES_CREATE,
    TASKS_LIST,
    DOCUMENTS_LIST,
    STATUS_EVENTS_LIST,
    PARTICIPANTS_LIST,
    PARTICIPANTS_CREATE,
    CLAIM_STATUSES,
    LOSS_CAUSES,
    CURRENT_USER,
)
