"""
Tests for credential refresh and the resilient caller.

Covers:
- refresh-and-restart from variants[0] after a 401
- at most one refresh exchange per request, even under concurrency
- rejected vs transiently failed refresh
- pre-refresh when only a refresh token is present
- service credential fallback
"""

import threading

import pytest

from claimdesk.config import ServiceAccountCredentials
from claimdesk.errors import RequestCancelledError, UnauthenticatedError, UpstreamError
from claimdesk.upstream import OutcomeKind, build_plan
from tests.fixtures import bearer, error_response, json_response, requested_fields

PLAN = build_plan(
    "claims.detail",
    [
        {"path": "/items/claims/{claim_id}", "fields": ["id", "street_1"]},
        {"path": "/items/claims/{claim_id}", "fields": ["id"]},
    ],
)

EXPIRED = {"ctrk_jwt": "expired-1", "ctrk_refresh": "refresh-1"}


def _claim_ok(request):
    return json_response(200, {"data": {"id": 7, "token": bearer(request)}})


class TestRefreshAndRestart:
    def test_expired_token_is_refreshed_and_plan_restarted(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        store, coordinator, caller = make_caller(EXPIRED)

        outcome = caller.run(PLAN, {"claim_id": 7})

        assert outcome.ok
        assert outcome.data["token"] == "access-2"
        assert upstream.refresh_calls == 1
        # Both attempts used the richest variant: the retry restarts at variant 0.
        attempted = [requested_fields(r) for r in upstream.calls_to("/items/claims/7")]
        assert attempted == [{"id", "street_1"}, {"id", "street_1"}]

    def test_expiry_mid_plan_restarts_at_first_variant(self, make_caller, upstream):
        """401 on variant 1 refreshes, then the retry begins again at variant 0."""
        upstream.valid_tokens.add("expired-1")

        def handler(request):
            token = bearer(request)
            if token == "access-2":
                return _claim_ok(request)
            if "street_1" in requested_fields(request):
                return error_response(403, "Forbidden")
            return error_response(401, "Token expired.")

        upstream.on("GET", "/items/claims/7", handler)
        _, _, caller = make_caller(EXPIRED)

        outcome = caller.run(PLAN, {"claim_id": 7})

        assert outcome.ok
        attempted = [requested_fields(r) for r in upstream.calls_to("/items/claims/7")]
        assert attempted == [{"id", "street_1"}, {"id"}, {"id", "street_1"}]
        assert upstream.refresh_calls == 1

    def test_rotation_is_recorded_in_store(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        store, _, caller = make_caller(EXPIRED)

        caller.run(PLAN, {"claim_id": 7})

        rotated = store.pending_rotation
        assert rotated.access_token == "access-2"
        assert rotated.refresh_token == "refresh-2"
        assert not store.pending_clear

    def test_valid_token_needs_no_refresh(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        store, _, caller = make_caller({"ctrk_jwt": "access-1", "ctrk_refresh": "refresh-1"})

        assert caller.run(PLAN, {"claim_id": 7}).ok
        assert upstream.refresh_calls == 0
        assert store.pending_rotation is None

    def test_rejected_refresh_clears_credentials(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        store, _, caller = make_caller({"ctrk_jwt": "expired-1", "ctrk_refresh": "revoked"})

        with pytest.raises(UnauthenticatedError):
            caller.run(PLAN, {"claim_id": 7})
        assert store.pending_clear

    def test_transient_refresh_failure_keeps_credentials(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        upstream.refresh_status = 503
        store, _, caller = make_caller(EXPIRED)

        with pytest.raises(UpstreamError) as exc_info:
            caller.run(PLAN, {"claim_id": 7})
        assert exc_info.value.status_code == 503
        assert not store.pending_clear

    def test_refreshed_token_rejected_again(self, make_caller, upstream):
        """A second 401 after the one refresh is terminal; no second exchange."""
        upstream.on("GET", "/items/claims/7", lambda r: error_response(401, "Token expired."))
        upstream.valid_tokens.add("access-2")
        _, _, caller = make_caller(EXPIRED)

        with pytest.raises(UnauthenticatedError):
            caller.run(PLAN, {"claim_id": 7})
        assert upstream.refresh_calls == 1

    def test_no_refresh_token_is_unauthenticated(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        _, _, caller = make_caller({"ctrk_jwt": "expired-1"})

        with pytest.raises(UnauthenticatedError):
            caller.run(PLAN, {"claim_id": 7})
        assert upstream.refresh_calls == 0

    def test_no_credentials_at_all(self, make_caller, upstream):
        _, _, caller = make_caller({})
        with pytest.raises(UnauthenticatedError):
            caller.run(PLAN, {"claim_id": 7})
        assert upstream.requests == []


class TestPreRefresh:
    def test_refresh_only_request_refreshes_up_front(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        store, _, caller = make_caller({"ctrk_refresh": "refresh-1"})

        outcome = caller.run(PLAN, {"claim_id": 7})

        assert outcome.data["token"] == "access-2"
        assert upstream.refresh_calls == 1
        assert len(upstream.calls_to("/items/claims/7")) == 1
        assert store.pending_rotation.access_token == "access-2"


class TestRefreshCoalescing:
    """Concurrent branches of one request share a single exchange."""

    def test_concurrent_expiry_triggers_one_exchange(self, make_caller, upstream):
        upstream.on("GET", "/items/claims/7", _claim_ok)
        upstream.refresh_delay = 0.05
        _, coordinator, caller = make_caller(EXPIRED)

        barrier = threading.Barrier(5)
        results = []
        errors = []

        def branch():
            barrier.wait()
            try:
                results.append(caller.run(PLAN, {"claim_id": 7}))
            except Exception as e:  # noqa: BLE001 - surfaced by the assertion below
                errors.append(e)

        threads = [threading.Thread(target=branch) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert errors == []
        assert len(results) == 5
        assert all(r.data["token"] == "access-2" for r in results)
        assert upstream.refresh_calls == 1
        assert coordinator.exchange_count == 1

    def test_explicit_refresh_runs_once_per_request(self, make_caller, upstream):
        _, coordinator, _ = make_caller(EXPIRED)

        first = coordinator.refresh()
        second = coordinator.refresh()

        assert first is second
        assert upstream.refresh_calls == 1

    def test_abandoned_branch_does_not_exchange(self, make_caller, upstream):
        store, coordinator, _ = make_caller(EXPIRED)

        with pytest.raises(RequestCancelledError):
            coordinator.refresh_and_retry(store.read(), is_cancelled=lambda: True)
        coordinator.settle()

        assert upstream.refresh_calls == 0
        assert store.pending_rotation is None
        assert not store.pending_clear


class TestServiceFallback:
    def test_static_token_used_without_user_credentials(self, make_caller, upstream, config):
        from dataclasses import replace

        upstream.valid_tokens.add("static-svc")
        upstream.on("GET", "/items/claims/7", _claim_ok)
        _, _, caller = make_caller({}, cfg=replace(config, static_fallback_token="static-svc"))

        outcome = caller.run(PLAN, {"claim_id": 7}, service_fallback=True)

        assert outcome.data["token"] == "static-svc"

    def test_denied_user_retries_with_service_credential(self, make_caller, upstream, config):
        from dataclasses import replace

        upstream.valid_tokens.add("static-svc")

        def handler(request):
            if bearer(request) == "access-1":
                return error_response(403, "Forbidden")
            return _claim_ok(request)

        upstream.on("GET", "/items/claims/7", handler)
        store, _, caller = make_caller(
            {"ctrk_jwt": "access-1"}, cfg=replace(config, static_fallback_token="static-svc")
        )

        outcome = caller.run(PLAN, {"claim_id": 7}, service_fallback=True)

        assert outcome.data["token"] == "static-svc"
        # The service credential never reaches the user's cookies.
        assert store.pending_rotation is None

    def test_fallback_not_used_unless_allowed(self, make_caller, upstream, config):
        from dataclasses import replace

        upstream.on("GET", "/items/claims/7", lambda r: error_response(403, "Forbidden"))
        _, _, caller = make_caller(
            {"ctrk_jwt": "access-1"}, cfg=replace(config, static_fallback_token="static-svc")
        )

        outcome = caller.run(PLAN, {"claim_id": 7})

        assert outcome.kind is OutcomeKind.PERMISSION_DENIED
        assert all(bearer(r) == "access-1" for r in upstream.calls_to("/items/claims/7"))

    def test_service_account_login(self, make_caller, upstream, config):
        from dataclasses import replace

        upstream.users["svc@example.com"] = "svc-pass"
        upstream.on("GET", "/items/claims/7", _claim_ok)
        cfg = replace(
            config,
            service_account_credentials=ServiceAccountCredentials("svc@example.com", "svc-pass"),
        )
        _, coordinator, caller = make_caller({}, cfg=cfg)

        outcome = caller.run(PLAN, {"claim_id": 7}, service_fallback=True)

        assert outcome.data["token"] == "access-login"
        assert coordinator.service_credential().refresh_token is None
        assert len(upstream.calls_to("/auth/login")) == 1

    def test_failed_service_login_keeps_user_outcome(self, make_caller, upstream, config):
        """A broken service account leaves the user's denial in place instead of a 401."""
        from dataclasses import replace

        upstream.on("GET", "/items/claims/7", lambda r: error_response(403, "Forbidden"))
        cfg = replace(
            config,
            service_account_credentials=ServiceAccountCredentials("svc@example.com", "wrong"),
        )
        store, _, caller = make_caller({"ctrk_jwt": "access-1"}, cfg=cfg)

        outcome = caller.run(PLAN, {"claim_id": 7}, service_fallback=True)

        assert outcome.kind is OutcomeKind.PERMISSION_DENIED
        assert len(upstream.calls_to("/auth/login")) == 1
        assert not store.pending_clear

    def test_rejected_service_token_keeps_user_outcome(self, make_caller, upstream, config):
        from dataclasses import replace

        upstream.on("GET", "/items/claims/7", lambda r: error_response(403, "Forbidden"))
        _, _, caller = make_caller(
            {"ctrk_jwt": "access-1"}, cfg=replace(config, static_fallback_token="revoked-svc")
        )

        outcome = caller.run(PLAN, {"claim_id": 7}, service_fallback=True)

        assert outcome.kind is OutcomeKind.PERMISSION_DENIED
        assert upstream.refresh_calls == 0
