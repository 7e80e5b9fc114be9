"""
Credential pair and the per-request credential store.

The store reads the inbound cookie carrier once and records any rotation
(or invalidation) that happens while the request is served. Writing the
pending change onto the outbound response is the job of
ResponseCookieWriter, which runs on every response path.
"""

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialPair:
    """
    Access/refresh credential pair. Immutable; rotation creates a new pair.

    A pair without a refresh token is valid (e.g. a static service token)
    but cannot be renewed.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def __repr__(self) -> str:
        # Never render token values.
        return (
            f"CredentialPair(refreshable={self.can_refresh}, "
            f"expires_at={self.expires_at.isoformat() if self.expires_at else None})"
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def max_age(self, now: datetime | None = None) -> int | None:
        """Seconds until expiry, or None when expiry is unknown."""
        if self.expires_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return max(0, int((self.expires_at - now).total_seconds()))

    @classmethod
    def from_exchange(
        cls,
        payload: Mapping[str, Any],
        previous_refresh: str | None = None,
        now: datetime | None = None,
    ) -> "CredentialPair":
        """
        Build a pair from an upstream login/refresh response.

        Accepts the envelope ({"data": {...}}) or the bare object. `expires`
        is a TTL in milliseconds when numeric, or an ISO timestamp string.
        The upstream may omit the refresh token, in which case the previous
        one stays in use.

        Raises:
            ValueError: when the response carries no access token
        """
        data = payload.get("data", payload) if isinstance(payload, Mapping) else {}
        if not isinstance(data, Mapping) or not data.get("access_token"):
            raise ValueError("Credential exchange returned no access token")

        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh,
            expires_at=parse_expiry(data.get("expires"), now=now),
        )


def parse_expiry(expires: Any, now: datetime | None = None) -> datetime | None:
    now = now or datetime.now(timezone.utc)
    if isinstance(expires, bool) or expires is None:
        return None
    if isinstance(expires, (int, float)):
        if expires <= 0:
            return None
        return now + timedelta(milliseconds=expires)
    if isinstance(expires, str) and expires:
        try:
            when = datetime.fromisoformat(expires.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable credential expiry: {expires!r}")
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return when
    return None


class CredentialStore:
    """
    Request-scoped view of the caller's credential pair.

    Usage:
        store = CredentialStore(request.cookies, "ctrk_jwt", "ctrk_refresh")
        pair = store.read()
        ...
        store.write(new_pair)   # rotation, applied to the response later
    """

    def __init__(self, carrier: Mapping[str, str], access_name: str, refresh_name: str):
        self.access_name = access_name
        self.refresh_name = refresh_name
        access = carrier.get(access_name) or None
        refresh = carrier.get(refresh_name) or None
        self._inbound_access = access
        self._inbound_refresh = refresh
        self._lock = threading.Lock()
        self._rotated: CredentialPair | None = None
        self._cleared = False

    def read(self) -> CredentialPair | None:
        """Current pair: the rotated one if any, else what the request carried."""
        with self._lock:
            if self._cleared:
                return None
            if self._rotated is not None:
                return self._rotated
        if self._inbound_access:
            return CredentialPair(self._inbound_access, self._inbound_refresh)
        return None

    @property
    def refresh_token(self) -> str | None:
        with self._lock:
            if self._cleared:
                return None
            if self._rotated is not None:
                return self._rotated.refresh_token
        return self._inbound_refresh

    @property
    def is_empty(self) -> bool:
        return not self._inbound_access and not self._inbound_refresh

    def write(self, pair: CredentialPair) -> None:
        """Schedule `pair` to be attached to the outbound response."""
        with self._lock:
            self._rotated = pair
            self._cleared = False

    def clear(self) -> None:
        """Schedule both cookies to be expired on the outbound response."""
        with self._lock:
            self._rotated = None
            self._cleared = True

    @property
    def pending_rotation(self) -> CredentialPair | None:
        with self._lock:
            return self._rotated

    @property
    def pending_clear(self) -> bool:
        with self._lock:
            return self._cleared
