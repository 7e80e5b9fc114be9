"""
Upstream access: classified single-attempt client and degrading query plans.

ResilientCaller (refresh-and-restart) lives in claimdesk.upstream.resilient.
"""

from .client import UpstreamClient, classify
from .outcome import CallOutcome, OutcomeKind
from .planner import DegradingQueryPlanner
from .query import QueryPlan, QueryVariant, UpstreamRequest, build_plan

__all__ = [
    "CallOutcome",
    "DegradingQueryPlanner",
    "OutcomeKind",
    "QueryPlan",
    "QueryVariant",
    "UpstreamClient",
    "UpstreamRequest",
    "build_plan",
    "classify",
]
