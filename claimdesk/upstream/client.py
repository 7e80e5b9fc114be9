"""
UpstreamClient - single-attempt HTTP access to the upstream data API.

Performs exactly one network attempt per call and classifies the result
into a CallOutcome. No retry, refresh or fallback happens here; those are
layered on top by the planner and the refresh coordinator.
Uses httpx for HTTP calls.
"""

import logging
import re
import time
from typing import Any

import httpx

from ..auth.credentials import CredentialPair
from ..config import ServiceAccountCredentials, UpstreamConfig
from ..errors import MalformedResponseError, truncate_detail
from .outcome import CallOutcome
from .query import UpstreamRequest

logger = logging.getLogger(__name__)

# A 400 whose body matches this is a permission/field rejection.
PERMISSION_PATTERN = re.compile(r"field|permission|forbidden", re.IGNORECASE)


def extract_error_detail(response: httpx.Response) -> str:
    """Pull the upstream's error messages out of a non-2xx response."""
    try:
        body = response.json()
    except ValueError:
        return truncate_detail(response.text or response.reason_phrase)

    errors = body.get("errors") if isinstance(body, dict) else None
    if isinstance(errors, list) and errors:
        messages = [
            str(e.get("message", "")) if isinstance(e, dict) else str(e) for e in errors
        ]
        return truncate_detail("; ".join(m for m in messages if m))
    if isinstance(body, dict) and body.get("error"):
        return truncate_detail(body["error"])
    return truncate_detail(response.text)


def classify(status_code: int, detail: str) -> CallOutcome | None:
    """
    Map a non-2xx status to an outcome.

    Returns None for 2xx; the caller parses the body in that case.
    """
    if 200 <= status_code < 300:
        return None
    if status_code == 401:
        return CallOutcome.auth_expired(detail)
    if status_code == 403:
        return CallOutcome.permission_denied(detail, status_code=403)
    if status_code == 400 and PERMISSION_PATTERN.search(detail or ""):
        return CallOutcome.permission_denied(detail, status_code=400)
    if status_code == 404:
        return CallOutcome.not_found(detail)
    return CallOutcome.transient(f"Upstream error {status_code}: {detail}", status_code=status_code)


class UpstreamClient:
    """Thin classified client for the upstream REST API."""

    def __init__(self, config: UpstreamConfig, transport: httpx.BaseTransport | None = None):
        """
        Initialize the client.

        Args:
            config: Upstream settings (base URL, timeouts)
            transport: Optional httpx transport, e.g. httpx.MockTransport in tests
        """
        self.config = config
        self._http = httpx.Client(
            base_url=config.base_url,
            timeout=config.request_timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "UpstreamClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _send(self, request: UpstreamRequest, token: str | None) -> httpx.Response:
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return self._http.request(
            request.method,
            request.path,
            params=list(request.params) or None,
            json=request.json,
            headers=headers,
        )

    def call(self, request: UpstreamRequest, credential: CredentialPair | str | None) -> CallOutcome:
        """
        Issue one request and classify the response.

        Raises:
            MalformedResponseError: 2xx response whose body is not JSON
        """
        token = credential.access_token if isinstance(credential, CredentialPair) else credential
        start = time.monotonic()
        try:
            response = self._send(request, token)
        except httpx.TimeoutException as e:
            logger.warning(f"{request.describe()} timed out after {self.config.request_timeout}s")
            return CallOutcome.transient(f"Upstream timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"{request.describe()} failed: {e}")
            return CallOutcome.transient(f"Upstream unreachable: {e}")

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.debug(f"{request.describe()} -> {response.status_code} ({elapsed_ms:.0f}ms)")

        if 200 <= response.status_code < 300:
            if response.status_code == 204 or not response.content:
                return CallOutcome.success(None, status_code=response.status_code)
            try:
                payload = response.json()
            except ValueError as e:
                raise MalformedResponseError(
                    f"{request.describe()} returned non-JSON body: {response.text}"
                ) from e
            return CallOutcome.success(payload, status_code=response.status_code)

        return classify(response.status_code, extract_error_detail(response))

    # ==== Credential exchange endpoints ====

    def _auth_post(self, path: str, body: dict[str, Any]) -> CallOutcome:
        request = UpstreamRequest(method="POST", path=path, json=body)
        try:
            return self.call(request, None)
        except MalformedResponseError as e:
            return CallOutcome.transient(e.detail, status_code=502)

    def exchange_refresh(self, refresh_token: str) -> CallOutcome:
        """
        Trade a refresh token for a new pair.

        Success payload is a CredentialPair. A rejected token is returned as
        the classified outcome (AUTH_EXPIRED, PERMISSION_DENIED, ...).
        """
        outcome = self._auth_post("/auth/refresh", {"refresh_token": refresh_token, "mode": "json"})
        return self._to_credential(outcome, previous_refresh=refresh_token)

    def login(self, email: str, password: str) -> CallOutcome:
        """Password login. Success payload is a CredentialPair."""
        outcome = self._auth_post("/auth/login", {"email": email, "password": password})
        return self._to_credential(outcome)

    def login_service_account(self, account: ServiceAccountCredentials) -> CallOutcome:
        return self.login(account.email, account.password)

    def logout(self, refresh_token: str) -> CallOutcome:
        return self._auth_post("/auth/logout", {"refresh_token": refresh_token})

    def _to_credential(self, outcome: CallOutcome, previous_refresh: str | None = None) -> CallOutcome:
        if not outcome.ok:
            return outcome
        try:
            pair = CredentialPair.from_exchange(outcome.payload or {}, previous_refresh=previous_refresh)
        except ValueError as e:
            return CallOutcome.transient(str(e), status_code=502)
        return CallOutcome.success(pair, status_code=outcome.status_code or 200)
