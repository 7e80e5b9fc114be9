"""
Multi-source aggregation: parallel fan-out, normalization and merge.
"""

from .engine import AggregatedResult, AggregationEngine, SortOrder, SourceFetchResult, merge_results
from .timeline import EventKind, TimelineEvent, TimelineSource, claim_timeline_sources

__all__ = [
    "AggregatedResult",
    "AggregationEngine",
    "EventKind",
    "SortOrder",
    "SourceFetchResult",
    "TimelineEvent",
    "TimelineSource",
    "claim_timeline_sources",
    "merge_results",
]
