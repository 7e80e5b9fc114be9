"""
CallOutcome - classification of a single upstream attempt.

Every UpstreamClient.call produces exactly one CallOutcome. Retry,
refresh and degradation logic branch on `kind`; request handlers only
ever see the final outcome of a resilient call.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import truncate_detail


class OutcomeKind(Enum):
    SUCCESS = "success"
    AUTH_EXPIRED = "auth_expired"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    TRANSIENT_ERROR = "transient_error"


@dataclass(frozen=True)
class CallOutcome:
    """Tagged result of one upstream attempt."""

    kind: OutcomeKind
    payload: Any = None
    detail: str | None = None
    status_code: int | None = None

    @classmethod
    def success(cls, payload: Any, status_code: int = 200) -> "CallOutcome":
        return cls(OutcomeKind.SUCCESS, payload=payload, status_code=status_code)

    @classmethod
    def auth_expired(cls, detail: str | None = None) -> "CallOutcome":
        return cls(OutcomeKind.AUTH_EXPIRED, detail=_bounded(detail), status_code=401)

    @classmethod
    def permission_denied(cls, detail: str | None = None, status_code: int = 403) -> "CallOutcome":
        return cls(OutcomeKind.PERMISSION_DENIED, detail=_bounded(detail), status_code=status_code)

    @classmethod
    def not_found(cls, detail: str | None = None) -> "CallOutcome":
        return cls(OutcomeKind.NOT_FOUND, detail=_bounded(detail), status_code=404)

    @classmethod
    def transient(cls, detail: str | None = None, status_code: int | None = None) -> "CallOutcome":
        return cls(OutcomeKind.TRANSIENT_ERROR, detail=_bounded(detail), status_code=status_code)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def data(self) -> Any:
        """The `data` member of a successful upstream envelope."""
        if not self.ok:
            return None
        if isinstance(self.payload, dict) and "data" in self.payload:
            return self.payload["data"]
        return self.payload

    @property
    def is_request_rejection(self) -> bool:
        """A 4xx transient error: the upstream refused this request's shape."""
        return (
            self.kind is OutcomeKind.TRANSIENT_ERROR
            and self.status_code is not None
            and 400 <= self.status_code < 500
        )

    def describe(self) -> str:
        """Short human-readable summary used in error annotations."""
        parts = [self.kind.value]
        if self.status_code:
            parts.append(str(self.status_code))
        if self.detail:
            parts.append(self.detail)
        return truncate_detail(" ".join(parts))


def _bounded(detail: str | None) -> str | None:
    return truncate_detail(detail) if detail else None
