"""
Request context management.

The request ID lives in a ContextVar so every log line emitted while
serving a request can be correlated, including lines from aggregation
worker threads (see bind_context).
"""

import contextvars
import uuid
from collections.abc import Callable
from typing import Any, Optional

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return _request_id_var.get()


def set_request_id(request_id: str) -> contextvars.Token:
    """Set the request ID in context. Returns token for reset."""
    return _request_id_var.set(request_id)


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:16]}"


def bind_context(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Capture the caller's context so func runs with it on another thread.

    ThreadPoolExecutor workers start with an empty context; without this
    their log lines lose the request ID.
    """
    ctx = contextvars.copy_context()

    def runner(*args, **kwargs):
        return ctx.run(func, *args, **kwargs)

    return runner


class RequestContext:
    """
    Context manager for request-scoped operations.

    Usage:
        with RequestContext(request_id="req-abc123"):
            ...
    """

    def __init__(self, request_id: Optional[str] = None):
        self.request_id = request_id or generate_request_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "RequestContext":
        self._token = set_request_id(self.request_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _request_id_var.reset(self._token)
