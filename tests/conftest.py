"""
Test configuration: repo root on sys.path plus shared upstream fixtures.

This allows tests to import from top-level packages (api, claimdesk, tests).
Every test talks to FakeUpstream through httpx.MockTransport; nothing here
opens a network connection.
"""

import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import api.*, claimdesk.*, tests.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from claimdesk.auth import CredentialStore  # noqa: E402
from claimdesk.auth.refresh import RefreshCoordinator  # noqa: E402
from claimdesk.config import UpstreamConfig  # noqa: E402
from claimdesk.upstream import DegradingQueryPlanner, UpstreamClient  # noqa: E402
from claimdesk.upstream.resilient import ResilientCaller  # noqa: E402
from tests.fixtures import BASE_URL, FakeUpstream  # noqa: E402

ACCESS_COOKIE = "ctrk_jwt"
REFRESH_COOKIE = "ctrk_refresh"


@pytest.fixture(autouse=True)
def isolate_env(monkeypatch):
    """Keep deployment settings from the developer's shell out of tests."""
    for name in (
        "DIRECTUS_URL",
        "NEXT_PUBLIC_DIRECTUS_URL",
        "DIRECTUS_STATIC_TOKEN",
        "DIRECTUS_SERVICE_TOKEN",
        "DIRECTUS_TOKEN",
        "DIRECTUS_ADMIN_TOKEN",
        "DIRECTUS_SERVICE_EMAIL",
        "DIRECTUS_SERVICE_PASSWORD",
        "COOKIE_NAME",
        "REFRESH_COOKIE_NAME",
        "COOKIE_DOMAIN",
        "COOKIE_SECURE",
        "CLAIMDESK_CONFIG",
        "CLAIMDESK_REQUEST_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def config():
    return UpstreamConfig(base_url=BASE_URL, request_timeout=2.0, aggregation_timeout=5.0)


@pytest.fixture
def upstream_client(config, upstream):
    client = UpstreamClient(config, transport=upstream.transport())
    yield client
    client.close()


@pytest.fixture
def make_caller(config, upstream_client):
    """
    Build a request-scoped (store, coordinator, caller) triple from cookies.

    Usage:
        store, coordinator, caller = make_caller({"ctrk_jwt": "access-1"})
    """

    def _make(cookies: dict | None = None, cfg: UpstreamConfig | None = None):
        cfg = cfg or config
        store = CredentialStore(cookies or {}, ACCESS_COOKIE, REFRESH_COOKIE)
        coordinator = RefreshCoordinator(store, upstream_client, cfg)
        caller = ResilientCaller(DegradingQueryPlanner(upstream_client), coordinator)
        return store, coordinator, caller

    return _make
