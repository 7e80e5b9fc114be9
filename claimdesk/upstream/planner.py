"""
DegradingQueryPlanner - discovers the richest satisfiable query variant.

Upstream permissions are not known at call time and differ per deployment
and role, so a read is attempted with its richest variant first and
degraded on permission-shaped failures until one succeeds or the plan is
exhausted.

Attempt rules per outcome:
- SUCCESS: stop, return it
- AUTH_EXPIRED: stop immediately and return it; the caller refreshes and
  restarts the whole plan from variants[0]
- PERMISSION_DENIED: advance
- NOT_FOUND: advance if the plan probes locations (not_found_degrades),
  otherwise stop
- TRANSIENT_ERROR: advance on a 4xx request rejection, stop on 5xx,
  timeouts and network failures
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from ..errors import MalformedResponseError, RequestCancelledError
from .client import UpstreamClient
from .outcome import CallOutcome, OutcomeKind
from .query import QueryPlan

logger = logging.getLogger(__name__)


def _should_advance(plan: QueryPlan, outcome: CallOutcome) -> bool:
    if outcome.kind is OutcomeKind.PERMISSION_DENIED:
        return True
    if outcome.kind is OutcomeKind.NOT_FOUND:
        return plan.not_found_degrades
    if outcome.kind is OutcomeKind.TRANSIENT_ERROR:
        return outcome.is_request_rejection
    return False


class DegradingQueryPlanner:
    """Runs a QueryPlan's variants sequentially against the upstream."""

    def __init__(self, client: UpstreamClient):
        self.client = client

    def execute(
        self,
        plan: QueryPlan,
        credential,
        context: Mapping[str, Any] | None = None,
        json: Any = None,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> CallOutcome:
        """
        Attempt the plan's variants in order.

        Args:
            plan: Ordered variants, richest first
            credential: CredentialPair or bare token for the Authorization header
            context: Template values for variant paths/params (e.g. claim_id)
            json: Request body sent with every variant (writes)
            is_cancelled: Checked before each attempt

        Returns:
            The first SUCCESS, an AUTH_EXPIRED, a non-degradable failure,
            or the last outcome once every variant was tried.

        Raises:
            RequestCancelledError: is_cancelled() became true between attempts
        """
        context = context or {}
        last: CallOutcome | None = None

        for variant in plan.variants:
            if is_cancelled is not None and is_cancelled():
                raise RequestCancelledError(f"{plan.name} cancelled before variant {variant.ordinal}")

            request = variant.render(context, json=json)
            try:
                outcome = self.client.call(request, credential)
            except MalformedResponseError as e:
                outcome = CallOutcome.transient(e.detail, status_code=502)

            if outcome.ok:
                if variant.ordinal > 0:
                    logger.info(f"{plan.name}: satisfied by degraded variant {variant.ordinal}")
                return outcome

            if outcome.kind is OutcomeKind.AUTH_EXPIRED:
                logger.debug(f"{plan.name}: credential expired at variant {variant.ordinal}")
                return outcome

            last = outcome
            if not _should_advance(plan, outcome):
                logger.debug(f"{plan.name}: variant {variant.ordinal} failed terminally: {outcome.describe()}")
                return outcome

            logger.debug(f"{plan.name}: variant {variant.ordinal} rejected ({outcome.describe()}), degrading")

        logger.warning(f"{plan.name}: all {len(plan)} variants exhausted: {last.describe()}")
        return last
