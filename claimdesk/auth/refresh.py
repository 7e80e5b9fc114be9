"""
RefreshCoordinator - credential renewal, at most once per inbound request.

One coordinator is created per inbound request. Aggregation runs several
resilient calls on worker threads; when more than one of them sees an
expired credential at the same moment, the first performs the exchange
and the others block on the lock and reuse its result. A duplicate
exchange would invalidate the refresh token the first one just rotated.
"""

import logging
import threading
from collections.abc import Callable

from ..config import UpstreamConfig
from ..errors import RequestCancelledError, UnauthenticatedError, UpstreamError
from ..upstream.client import UpstreamClient
from ..upstream.outcome import OutcomeKind
from .credentials import CredentialPair, CredentialStore

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """Hands out the request's credential and renews it on demand."""

    def __init__(self, store: CredentialStore, client: UpstreamClient, config: UpstreamConfig):
        self.store = store
        self.client = client
        self.config = config
        self._lock = threading.Lock()
        self._service_lock = threading.Lock()
        self._attempted = False
        self._refreshed: CredentialPair | None = None
        self._failure: tuple[type, tuple] | None = None
        self._service_pair: CredentialPair | None = None
        self.exchange_count = 0

    @property
    def has_service_fallback(self) -> bool:
        return bool(self.config.static_fallback_token or self.config.service_account_credentials)

    def ensure_fresh_credential(self, allow_service: bool = False) -> CredentialPair:
        """
        Return the credential to use for this request.

        Optimistic: a stored access token is returned as-is and expiry is
        discovered by the upstream answering 401. With only a refresh token
        on hand, the refresh happens up front. With nothing on hand, routes
        that allow it run under the service credential.

        Raises:
            UnauthenticatedError: nothing usable and no service fallback
        """
        pair = self.store.read()
        if pair is not None:
            return pair
        if self.store.refresh_token:
            logger.info("No access token on request; refreshing before first call")
            return self._refresh_once(stale=None)
        if allow_service and self.has_service_fallback:
            return self.service_credential()
        raise UnauthenticatedError("No credentials on request")

    def refresh(self) -> CredentialPair:
        """Explicit refresh (the /auth/refresh route); same once-per-request rule."""
        return self._refresh_once(stale=None)

    def refresh_and_retry(
        self, stale: CredentialPair, is_cancelled: Callable[[], bool] | None = None
    ) -> CredentialPair:
        """
        Renew after `stale` was rejected with 401.

        Returns the pair to retry with. If another branch already rotated
        past `stale`, that newer pair is returned without a second exchange.

        Raises:
            UnauthenticatedError: refresh impossible or rejected
            RequestCancelledError: the branch was abandoned before an exchange started
        """
        current = self.store.read()
        if current is not None and current.access_token != stale.access_token:
            return current
        return self._refresh_once(stale=stale, is_cancelled=is_cancelled)

    def settle(self) -> None:
        """Block until no exchange is in flight, so the store holds its final state."""
        with self._lock:
            pass

    def _refresh_once(
        self, stale: CredentialPair | None, is_cancelled: Callable[[], bool] | None = None
    ) -> CredentialPair:
        with self._lock:
            if self._attempted:
                if self._refreshed is None:
                    self._raise_failure()
                if stale is not None and self._refreshed.access_token == stale.access_token:
                    # The refreshed credential itself was rejected.
                    raise UnauthenticatedError("Refreshed credential was rejected")
                return self._refreshed

            if is_cancelled is not None and is_cancelled():
                # Checked under the lock; see settle().
                raise RequestCancelledError("Branch abandoned before credential refresh")

            self._attempted = True
            refresh_token = self.store.refresh_token
            if not refresh_token:
                self._failure = (UnauthenticatedError, ("No refresh token",))
                self._raise_failure()

            self.exchange_count += 1
            outcome = self.client.exchange_refresh(refresh_token)

            if outcome.ok:
                pair = outcome.payload
                self.store.write(pair)
                self._refreshed = pair
                logger.info("Credential refreshed")
                return pair

            if outcome.kind is OutcomeKind.TRANSIENT_ERROR and not outcome.is_request_rejection:
                # Upstream trouble, not a bad token: keep the cookies.
                logger.warning(f"Credential refresh failed transiently: {outcome.describe()}")
                self._failure = (UpstreamError, (503, "Service Unavailable", outcome.detail))
            else:
                logger.info(f"Credential refresh rejected: {outcome.describe()}")
                self.store.clear()
                self._failure = (UnauthenticatedError, ("Refresh rejected",))
            self._raise_failure()

    def _raise_failure(self):
        exc_type, args = self._failure
        raise exc_type(*args)

    def service_credential(self) -> CredentialPair:
        """
        The deployment's own credential: static token, else service login.

        Never written to the store; it must not end up in user cookies.

        Raises:
            UnauthenticatedError: no service credential configured or login failed
        """
        if self.config.static_fallback_token:
            return CredentialPair(access_token=self.config.static_fallback_token)

        account = self.config.service_account_credentials
        if account is None:
            raise UnauthenticatedError("No service credential configured")

        with self._service_lock:
            if self._service_pair is None:
                outcome = self.client.login_service_account(account)
                if not outcome.ok:
                    logger.warning(f"Service account login failed: {outcome.describe()}")
                    raise UnauthenticatedError("Service account login failed")
                # Strip the refresh token so it is never rotated into cookies.
                self._service_pair = CredentialPair(
                    access_token=outcome.payload.access_token,
                    expires_at=outcome.payload.expires_at,
                )
            return self._service_pair
