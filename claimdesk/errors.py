"""
Exception hierarchy for the claimdesk gateway.

Expected upstream statuses never raise; they travel as CallOutcome values.
These exceptions mark the terminal conditions a request handler has to
turn into a structured HTTP error.
"""

DETAIL_LIMIT = 300


def truncate_detail(detail: object, limit: int = DETAIL_LIMIT) -> str:
    """Bound an error detail so upstream text never leaks unbounded."""
    text = str(detail or "")
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class ClaimdeskError(Exception):
    """Base class for all gateway errors."""

    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, detail: str | None = None):
        self.detail = truncate_detail(detail) if detail else None
        super().__init__(self.detail or self.public_message)


class ConfigError(ClaimdeskError):
    """Required configuration is missing or invalid."""

    public_message = "Server misconfiguration"


class UnauthenticatedError(ClaimdeskError):
    """No usable credential, or the refresh exchange was rejected."""

    status_code = 401
    public_message = "Unauthorized"


class UpstreamError(ClaimdeskError):
    """A terminal upstream outcome that the route surfaces as-is."""

    def __init__(self, status_code: int, public_message: str, detail: str | None = None):
        self.status_code = status_code
        self.public_message = public_message
        super().__init__(detail)


class MalformedResponseError(ClaimdeskError):
    """Upstream answered 2xx with a body that is not JSON."""

    status_code = 502
    public_message = "Bad Gateway"


class AggregationFailedError(ClaimdeskError):
    """Every source of an aggregation failed."""

    status_code = 502
    public_message = "Bad Gateway"

    def __init__(self, errors: list[str]):
        self.errors = [truncate_detail(e) for e in errors]
        super().__init__("; ".join(self.errors))


class RequestCancelledError(ClaimdeskError):
    """The inbound request went away before the work finished."""

    status_code = 499
    public_message = "Client Closed Request"
