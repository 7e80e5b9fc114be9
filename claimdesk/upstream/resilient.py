"""
ResilientCaller - one degrading plan with refresh-and-restart on 401.

    credential -> plan -> (401) -> refresh once -> plan from variants[0]

A refreshed credential may regain access to richer variants, so the retry
always restarts at the top of the plan instead of resuming where the 401
happened.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from ..auth.refresh import RefreshCoordinator
from ..errors import UnauthenticatedError
from .outcome import CallOutcome, OutcomeKind
from .planner import DegradingQueryPlanner
from .query import QueryPlan

logger = logging.getLogger(__name__)

# Outcomes after which the service credential gets a turn, when allowed.
_SERVICE_FALLBACK_KINDS = (OutcomeKind.PERMISSION_DENIED, OutcomeKind.NOT_FOUND)


class ResilientCaller:
    """Request-scoped executor combining the planner and the refresh coordinator."""

    def __init__(self, planner: DegradingQueryPlanner, coordinator: RefreshCoordinator):
        self.planner = planner
        self.coordinator = coordinator

    def run(
        self,
        plan: QueryPlan,
        context: Mapping[str, Any] | None = None,
        *,
        json: Any = None,
        service_fallback: bool = False,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> CallOutcome:
        """
        Execute `plan` with the request's credential.

        Args:
            plan: Query variants to attempt
            context: Template values for the variants
            json: Body for write plans
            service_fallback: Run under the service credential when the request
                carries none, and retry the exhausted plan once with it when
                the user's credential is denied
            is_cancelled: Cooperative cancellation check

        Returns:
            The final CallOutcome (never AUTH_EXPIRED)

        Raises:
            UnauthenticatedError: no credential, refresh rejected, or the
                refreshed credential is rejected as well
            RequestCancelledError: cancelled before an attempt or before refresh
        """
        credential = self.coordinator.ensure_fresh_credential(allow_service=service_fallback)
        outcome = self.planner.execute(plan, credential, context, json=json, is_cancelled=is_cancelled)

        if outcome.kind is OutcomeKind.AUTH_EXPIRED:
            logger.info(f"{plan.name}: credential expired, refreshing and restarting plan")
            credential = self.coordinator.refresh_and_retry(credential, is_cancelled=is_cancelled)
            outcome = self.planner.execute(plan, credential, context, json=json, is_cancelled=is_cancelled)
            if outcome.kind is OutcomeKind.AUTH_EXPIRED:
                raise UnauthenticatedError(f"{plan.name}: refreshed credential rejected")

        if (
            service_fallback
            and outcome.kind in _SERVICE_FALLBACK_KINDS
            and self.coordinator.has_service_fallback
        ):
            outcome = self._run_as_service(plan, credential, outcome, context, json, is_cancelled)

        return outcome

    def _run_as_service(self, plan, credential, outcome, context, json, is_cancelled) -> CallOutcome:
        """Retry a denied plan with the service credential; keep `outcome` if that fails."""
        try:
            service = self.coordinator.service_credential()
        except UnauthenticatedError as e:
            logger.warning(f"{plan.name}: service credential unavailable, keeping user outcome: {e}")
            return outcome
        if service.access_token == credential.access_token:
            return outcome

        logger.info(f"{plan.name}: user credential denied, retrying with service credential")
        fallback = self.planner.execute(plan, service, context, json=json, is_cancelled=is_cancelled)
        if fallback.kind is OutcomeKind.AUTH_EXPIRED:
            logger.warning(f"{plan.name}: service credential rejected, keeping user outcome")
            return outcome
        return fallback
