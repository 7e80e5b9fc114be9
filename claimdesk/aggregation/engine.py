"""
AggregationEngine - concurrent fan-out over independent sources.

Each source's plan runs through the request's ResilientCaller on its own
worker thread. The engine joins on all of them (no early return on the
first failure or the first success), adapts the successes, and merges
them into one time-ordered feed. A failing source costs its events and
adds one error annotation; only when every source fails is the whole
aggregation a failure.
"""

import logging
import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import AggregationFailedError, RequestCancelledError, UnauthenticatedError
from ..observability.context import bind_context
from ..upstream.outcome import OutcomeKind
from ..upstream.resilient import ResilientCaller
from .timeline import TimelineEvent, TimelineSource

logger = logging.getLogger(__name__)

# Adapter bugs on odd payloads are a source failure, not a request failure.
_ADAPTER_ERRORS = (KeyError, TypeError, ValueError, AttributeError)

# Seconds between deadline and cancellation checks while joining.
_POLL_INTERVAL = 0.05


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value: str | None) -> "SortOrder":
        return cls.ASC if (value or "").strip().lower() == "asc" else cls.DESC


@dataclass
class SourceFetchResult:
    source_name: str
    events: list[TimelineEvent] = field(default_factory=list)
    error: str | None = None
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.skipped


@dataclass
class AggregatedResult:
    events: list[TimelineEvent]
    partial: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {
            "data": [e.to_dict() for e in self.events],
            "count": len(self.events),
            "partial": self.partial,
        }
        if self.errors:
            body["errors"] = self.errors
        return body


def merge_results(
    results: Sequence[SourceFetchResult],
    order: SortOrder,
    priorities: Mapping[str, int] | None = None,
) -> AggregatedResult:
    """
    Merge per-source results into one ordered feed.

    Events without a resolvable timestamp are dropped. Sorting is stable;
    equal timestamps fall back to source priority (lower first), then to
    each source's own order.

    Raises:
        AggregationFailedError: no source succeeded and at least one failed
    """
    priorities = priorities or {}
    errors = [r.error for r in results if r.error]
    if errors and not any(r.succeeded for r in results):
        raise AggregationFailedError(errors)

    keyed = []
    dropped = 0
    for result in results:
        prio = priorities.get(result.source_name, 100)
        for event in result.events:
            if event.timestamp is None:
                dropped += 1
                continue
            keyed.append((event.timestamp.timestamp(), prio, event))

    if dropped:
        logger.debug(f"Dropped {dropped} events without a resolvable timestamp")

    if order is SortOrder.ASC:
        keyed.sort(key=lambda k: (k[0], k[1]))
    else:
        keyed.sort(key=lambda k: (-k[0], k[1]))

    return AggregatedResult(events=[k[2] for k in keyed], partial=bool(errors), errors=errors)


class AggregationEngine:
    """Runs sources in parallel and merges their events."""

    def __init__(
        self,
        caller: ResilientCaller,
        max_workers: int = 5,
        source_timeout: float = 30.0,
        service_fallback: bool = False,
    ):
        self.caller = caller
        self.max_workers = max_workers
        self.source_timeout = source_timeout
        self.service_fallback = service_fallback

    def _fetch_source(
        self,
        source: TimelineSource,
        context: Mapping[str, Any],
        is_cancelled,
    ) -> SourceFetchResult:
        outcome = self.caller.run(
            source.plan,
            context,
            service_fallback=self.service_fallback,
            is_cancelled=is_cancelled,
        )

        if outcome.ok:
            try:
                events = list(source.adapter(outcome.data))
            except _ADAPTER_ERRORS as e:
                logger.warning(f"Timeline source '{source.name}' adapter failed: {e}")
                return SourceFetchResult(source.name, error=f"{source.name}:unreadable payload")
            return SourceFetchResult(source.name, events=events)

        if source.optional and outcome.kind is OutcomeKind.NOT_FOUND:
            logger.debug(f"Optional timeline source '{source.name}' not present upstream")
            return SourceFetchResult(source.name, skipped=True)

        logger.warning(f"Timeline source '{source.name}' failed: {outcome.describe()}")
        return SourceFetchResult(source.name, error=f"{source.name}:{outcome.describe()}")

    def aggregate(
        self,
        sources: Sequence[TimelineSource],
        context: Mapping[str, Any],
        order: SortOrder = SortOrder.DESC,
        cancel_event: threading.Event | None = None,
    ) -> AggregatedResult:
        """
        Fan out over `sources`, wait for all, merge.

        Args:
            sources: Independent sources with their plans and adapters
            context: Template values shared by all plans (e.g. claim_id)
            order: Timestamp direction of the merged feed
            cancel_event: Set by the caller when the client went away

        Raises:
            UnauthenticatedError: any branch could not authenticate
            RequestCancelledError: cancel_event was set; nothing is merged
            AggregationFailedError: every source failed
        """
        if not sources:
            return AggregatedResult(events=[], partial=False)

        cancel_event = cancel_event or threading.Event()
        stop = threading.Event()

        def is_cancelled() -> bool:
            return cancel_event.is_set() or stop.is_set()

        # Each source's deadline starts when a worker picks it up, not at submit.
        started: dict[int, float] = {}

        def fetch(index: int, source: TimelineSource) -> SourceFetchResult:
            started[index] = time.monotonic()
            return self._fetch_source(source, context, is_cancelled)

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(sources)),
            thread_name_prefix="aggregate",
        )
        try:
            futures = {
                executor.submit(bind_context(fetch), index, source): index
                for index, source in enumerate(sources)
            }
            pending = set(futures)
            timed_out = set()
            while pending and not cancel_event.is_set():
                _, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                now = time.monotonic()
                for future in list(pending):
                    begun = started.get(futures[future])
                    if begun is not None and now - begun >= self.source_timeout:
                        pending.discard(future)
                        timed_out.add(future)
        finally:
            # Stragglers stop before their next attempt or refresh; do not wait for them.
            stop.set()
            executor.shutdown(wait=False, cancel_futures=True)
        # A refresh already under way still lands in the store before the response is built.
        self.caller.coordinator.settle()

        if cancel_event.is_set():
            raise RequestCancelledError("Aggregation cancelled by client")

        results: list[SourceFetchResult] = []
        auth_failure: UnauthenticatedError | None = None
        for future, index in futures.items():
            source = sources[index]
            if future in timed_out:
                logger.warning(f"Timeline source '{source.name}' timed out after {self.source_timeout}s")
                results.append(SourceFetchResult(source.name, error=f"{source.name}:timeout"))
                continue
            try:
                results.append(future.result())
            except UnauthenticatedError as e:
                auth_failure = e

        if auth_failure is not None:
            raise auth_failure

        priorities = {s.name: s.priority for s in sources}
        merged = merge_results(results, order, priorities)
        logger.info(
            f"Aggregated {len(merged.events)} events from {len(sources)} sources"
            + (f" (partial: {len(merged.errors)} failed)" if merged.partial else "")
        )
        return merged
