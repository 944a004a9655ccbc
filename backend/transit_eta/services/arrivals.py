"""
Query orchestration: adapter fetch, matching, schedule fallback and merge.
"""

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from transit_eta.core.exceptions import QueryTimeout, TransitEtaException, UnsupportedMode
from transit_eta.core.metrics import QUERY_SECONDS
from transit_eta.core.models import AgencyMode, Alert, Arrival, Query
from transit_eta.feeds.alerts import AlertsClient
from transit_eta.feeds.base import FeedAdapter
from transit_eta.matching.matcher import match_trips
from transit_eta.matching.policy import policy_for
from transit_eta.schedule.store import ScheduleBook, ScheduleLookup
from transit_eta.services.reconciler import Reconciler, live_arrivals, scheduled_arrivals
from transit_eta.utils.localtime import TimeLocalizer

logger = structlog.get_logger()

ALERT_MODES = frozenset({AgencyMode.SUBWAY})


@dataclass
class QueryResult:
    arrivals: List[Arrival]
    alerts: List[Alert] = field(default_factory=list)
    debug: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchItemResult:
    etas: List[str] = field(default_factory=list)
    arrivals: List[int] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_arrivals(cls, arrivals: Sequence[Arrival]) -> "BatchItemResult":
        return cls(
            etas=[f"{a.minutes_until} min" for a in arrivals],
            arrivals=[a.time for a in arrivals],
        )

    @classmethod
    def failed(cls, error: str) -> "BatchItemResult":
        return cls(error=error)


class ArrivalService:
    """Resolves saved-trip queries into merged arrival lists."""

    def __init__(
        self,
        adapters: Mapping[AgencyMode, FeedAdapter],
        schedules: ScheduleBook,
        reconciler: Reconciler,
        localizer: TimeLocalizer,
        alerts: Optional[AlertsClient] = None,
        query_timeout: float = 25.0,
        alerts_timeout: float = 3.0,
    ):
        self.adapters = dict(adapters)
        self.schedules = schedules
        self.reconciler = reconciler
        self.localizer = localizer
        self.alerts = alerts
        self.query_timeout = query_timeout
        self.alerts_timeout = alerts_timeout

    async def _fetch_alerts(self, query: Query) -> List[Alert]:
        try:
            return await asyncio.wait_for(self.alerts.for_route(query.route_id), timeout=self.alerts_timeout)
        except asyncio.TimeoutError:
            logger.warning("Alerts timed out", route=query.route_id, timeout=self.alerts_timeout)
        except Exception as e:
            logger.warning("Alerts failed", route=query.route_id, error=str(e))
        return []

    async def resolve(self, query: Query) -> QueryResult:
        adapter = self.adapters.get(query.mode)
        if adapter is None:
            raise UnsupportedMode(f"No adapter configured for mode {query.mode.value}")

        started = time.perf_counter()
        policy = policy_for(query.mode)
        has_fallback = policy.schedule_family is not None

        alerts_task = None
        if self.alerts is not None and query.mode in ALERT_MODES:
            alerts_task = asyncio.create_task(self._fetch_alerts(query))

        debug: Dict[str, Any] = {
            "mode": query.mode.value,
            "routeId": query.route_id,
            "stopId": query.stop_id,
            "destinationStopId": query.destination_stop_id,
        }

        try:
            schedule = ScheduleLookup()
            if has_fallback:
                schedule = self.schedules.lookup(policy.schedule_family, query, self.localizer.now())
            debug["scheduleSource"] = schedule.source

            try:
                updates = await asyncio.wait_for(adapter.fetch(query), timeout=self.query_timeout)
            except asyncio.TimeoutError:
                if not has_fallback:
                    raise QueryTimeout(self.query_timeout) from None
                logger.warning("Live fetch timed out, using schedule", mode=query.mode.value, route=query.route_id)
                updates = []
                debug["liveError"] = f"timed out after {self.query_timeout:g}s"
            except TransitEtaException as e:
                if not has_fallback:
                    raise
                logger.warning("Live fetch failed, using schedule", mode=query.mode.value, error=e.detail)
                updates = []
                debug["liveError"] = e.detail

            now = self.localizer.now()
            matches = match_trips(query, updates)
            live = live_arrivals(matches, now)
            scheduled = scheduled_arrivals(schedule.trips, self.localizer, now)
            arrivals = self.reconciler.merge(scheduled, live, now)
        except BaseException:
            if alerts_task is not None:
                alerts_task.cancel()
            raise

        debug.update(
            liveTrips=len(updates),
            matched=len(matches),
            matchRules=dict(Counter(m.rule for m in matches)),
            scheduled=len(scheduled),
        )

        alerts: List[Alert] = []
        if alerts_task is not None:
            alerts = await alerts_task

        elapsed = time.perf_counter() - started
        QUERY_SECONDS.labels(mode=query.mode.value).observe(elapsed)
        logger.info(
            "Resolved query",
            mode=query.mode.value,
            route=query.route_id,
            stop=query.stop_id,
            arrivals=len(arrivals),
            elapsed_ms=round(elapsed * 1000, 1),
        )
        return QueryResult(arrivals=arrivals, alerts=alerts, debug=debug)

    async def _resolve_item(self, item_id: str, query: Query) -> Tuple[str, BatchItemResult]:
        try:
            result = await self.resolve(query)
        except TransitEtaException as e:
            logger.warning("Batch item failed", id=item_id, error=e.detail)
            return item_id, BatchItemResult.failed(e.detail)
        except Exception as e:
            logger.exception("Batch item crashed", id=item_id)
            return item_id, BatchItemResult.failed(str(e) or e.__class__.__name__)
        return item_id, BatchItemResult.from_arrivals(result.arrivals)

    async def resolve_batch(self, items: Sequence[Tuple[str, Query]]) -> Dict[str, BatchItemResult]:
        """Resolve every item concurrently; one item's failure never affects another."""
        results = await asyncio.gather(*(self._resolve_item(item_id, query) for item_id, query in items))
        return dict(results)
