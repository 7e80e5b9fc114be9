"""
Timeline events and the per-source adapters that produce them.

Every source payload is normalized into TimelineEvent. Upstream schemas
drift (created_at vs the legacy date_created, uploaded_at on older
document tables), so adapters look fields up through short synonym lists
and leave the timestamp unset when none resolves; the merge step drops
such events instead of sorting them as null.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .. import catalog
from ..upstream.query import QueryPlan

CREATED_SYNONYMS = ("created_at", "date_created")
DOCUMENT_TIME_SYNONYMS = ("created_at", "uploaded_at", "date_created", "file.uploaded_on")
DOCUMENT_ACTOR_SYNONYMS = ("created_by", "uploaded_by", "user_created")


class EventKind(str, Enum):
    STATUS = "status"
    DOCUMENT = "document"
    COMMENT = "comment"
    ASSIGNMENT = "assignment"


@dataclass(frozen=True)
class TimelineEvent:
    """Normalized activity entry."""

    id: str
    timestamp: datetime | None
    kind: EventKind
    action: str
    summary: str
    actor: str
    status: str | None = None
    meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z") if self.timestamp else None,
            "kind": self.kind.value,
            "action": self.action,
            "summary": self.summary,
            "actor": self.actor,
            "status": self.status,
            "meta": self.meta,
        }


# ============================================================
# Field helpers
# ============================================================


def lookup(record: Any, path: str) -> Any:
    """Resolve a dotted path ("file.uploaded_on") on nested mappings."""
    value = record
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def first_present(record: Any, *paths: str) -> Any:
    """First non-empty value among the synonym paths, else None."""
    for path in paths:
        value = lookup(record, path)
        if value not in (None, ""):
            return value
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an upstream timestamp to an aware UTC datetime.

    Accepts ISO-8601 strings (with or without "Z") and datetimes.
    Anything else resolves to None.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def person_name(person: Any) -> str:
    if not isinstance(person, Mapping):
        return "System"
    first = (person.get("first_name") or "").strip()
    last = (person.get("last_name") or "").strip()
    full = f"{first} {last}".strip()
    return full or person.get("name") or str(person.get("id") or "") or "System"


def _rows(data: Any) -> list[Mapping]:
    if isinstance(data, list):
        return [r for r in data if isinstance(r, Mapping)]
    return []


def _lower(value: Any) -> str | None:
    text = str(value or "").strip()
    return text.lower() or None


# ============================================================
# Adapters
# ============================================================


def adapt_claim(data: Any) -> list[TimelineEvent]:
    if not isinstance(data, Mapping) or data.get("id") is None:
        return []
    status = data.get("status")
    status_label = first_present(status, "name", "status", "code") if isinstance(status, Mapping) else status
    return [
        TimelineEvent(
            id=f"claim-{data['id']}-created",
            timestamp=parse_timestamp(first_present(data, *CREATED_SYNONYMS)),
            kind=EventKind.STATUS,
            action="Claim Created",
            summary=data.get("description") or "",
            actor=person_name(data.get("user_created") or data.get("assigned_to_user")),
            status=_lower(status_label),
            meta={"claimId": data["id"]},
        )
    ]


def adapt_notes(data: Any) -> list[TimelineEvent]:
    return [
        TimelineEvent(
            id=f"note-{n.get('id')}",
            timestamp=parse_timestamp(first_present(n, *CREATED_SYNONYMS)),
            kind=EventKind.COMMENT,
            action="Note Added",
            summary=n.get("note") or "",
            actor=person_name(n.get("created_by")),
            meta={"noteId": n.get("id"), "visibility": n.get("visibility")},
        )
        for n in _rows(data)
    ]


def adapt_tasks(data: Any) -> list[TimelineEvent]:
    events = []
    for t in _rows(data):
        title = t.get("title") or "Task"
        details = t.get("details")
        events.append(
            TimelineEvent(
                id=f"task-{t.get('id')}",
                timestamp=parse_timestamp(first_present(t, *CREATED_SYNONYMS)),
                kind=EventKind.ASSIGNMENT,
                action="Task Created",
                summary=f"{title}: {details}" if details else title,
                actor=person_name(t.get("created_by")),
                status=t.get("status") or None,
                meta={"taskId": t.get("id"), "priority": t.get("priority"), "due_date": t.get("due_date")},
            )
        )
    return events


def adapt_documents(data: Any) -> list[TimelineEvent]:
    events = []
    for d in _rows(data):
        file_info = d.get("file") if isinstance(d.get("file"), Mapping) else {}
        events.append(
            TimelineEvent(
                id=f"doc-{d.get('id')}",
                timestamp=parse_timestamp(first_present(d, *DOCUMENT_TIME_SYNONYMS)),
                kind=EventKind.DOCUMENT,
                action="File Uploaded",
                summary=file_info.get("title") or file_info.get("filename_download") or "Document",
                actor=person_name(first_present(d, *DOCUMENT_ACTOR_SYNONYMS)),
                meta={"documentId": d.get("id"), "fileId": file_info.get("id"), "fileType": file_info.get("type")},
            )
        )
    return events


def adapt_status_events(data: Any) -> list[TimelineEvent]:
    return [
        TimelineEvent(
            id=f"status-{ev.get('id')}",
            timestamp=parse_timestamp(first_present(ev, *CREATED_SYNONYMS)),
            kind=EventKind.STATUS,
            action="Status Changed",
            summary=f"{ev.get('old_status') or 'Unknown'} -> {ev.get('new_status') or 'Unknown'}",
            actor=person_name(ev.get("created_by")),
            status=_lower(ev.get("new_status")),
            meta={"eventId": ev.get("id")},
        )
        for ev in _rows(data)
    ]


# ============================================================
# Sources
# ============================================================


@dataclass(frozen=True)
class TimelineSource:
    """
    One independent sub-query of an aggregation.

    priority breaks timestamp ties (lower first). An optional source whose
    collection does not exist contributes nothing, not even an error.
    """

    name: str
    plan: QueryPlan
    adapter: Callable[[Any], Iterable[TimelineEvent]]
    priority: int = 100
    optional: bool = False


def claim_timeline_sources() -> list[TimelineSource]:
    return [
        TimelineSource("claim", catalog.CLAIM_TIMELINE_CORE, adapt_claim, priority=0),
        TimelineSource("status", catalog.STATUS_EVENTS_LIST, adapt_status_events, priority=1, optional=True),
        TimelineSource("notes", catalog.NOTES_LIST, adapt_notes, priority=2),
        TimelineSource("tasks", catalog.TASKS_LIST, adapt_tasks, priority=3),
        TimelineSource("docs", catalog.DOCUMENTS_LIST, adapt_documents, priority=4),
    ]
