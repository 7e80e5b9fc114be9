"""
ResponseCookieWriter - serializes credential rotation onto responses.

Rotation and payload assembly are independent: the writer is applied to
whatever response a route produces (data, partial data, or an error), so
a pair refreshed on one aggregation branch still reaches the client even
when the body was built from other branches' results.
"""

import logging

from starlette.responses import Response

from ..config import UpstreamConfig
from .credentials import CredentialPair, CredentialStore

logger = logging.getLogger(__name__)


class ResponseCookieWriter:
    """Writes or expires the access/refresh cookies on an outbound response."""

    def __init__(self, config: UpstreamConfig):
        self.config = config

    def _options(self) -> dict:
        opts = {
            "httponly": True,
            "samesite": "lax",
            "secure": self.config.secure_cookies,
            "path": "/",
        }
        if self.config.cookie_domain:
            opts["domain"] = self.config.cookie_domain
        return opts

    def set_pair(self, response: Response, pair: CredentialPair) -> None:
        opts = self._options()
        access_age = pair.max_age() or self.config.access_max_age
        response.set_cookie(self.config.access_cookie, pair.access_token, max_age=access_age, **opts)
        if pair.refresh_token:
            response.set_cookie(
                self.config.refresh_cookie,
                pair.refresh_token,
                max_age=self.config.refresh_max_age,
                **opts,
            )

    def expire(self, response: Response) -> None:
        opts = self._options()
        for name in (self.config.access_cookie, self.config.refresh_cookie):
            response.set_cookie(name, "", max_age=0, **opts)

    def apply(self, response: Response, store: CredentialStore | None) -> Response:
        """Attach whatever the store has pending. Returns the same response."""
        if store is None:
            return response
        if store.pending_clear:
            logger.info("Expiring credential cookies")
            self.expire(response)
        elif store.pending_rotation is not None:
            logger.info("Attaching rotated credential cookies")
            self.set_pair(response, store.pending_rotation)
        return response
