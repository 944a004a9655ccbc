"""
Hybrid merge of scheduled and live arrivals.

The schedule is the skeleton: each live arrival replaces the scheduled
slot closest to it within the correlation window, or is appended when no
slot is close enough. Unconfirmed scheduled slots that are already past
are dropped, the rest is sorted and cut to the top N.
"""

import math
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from transit_eta.core.metrics import MERGE_OUTCOMES
from transit_eta.core.models import Arrival, ArrivalStatus, ScheduledTrip
from transit_eta.matching.matcher import Match
from transit_eta.utils.localtime import TimeLocalizer

logger = structlog.get_logger()


def minutes_until(instant: int, now: float) -> int:
    return max(0, math.floor((instant - now) / 60))


def live_arrivals(matches: Sequence[Match], now: float) -> List[Arrival]:
    """One Live arrival per matched trip, first occurrence wins."""
    arrivals: List[Arrival] = []
    seen = set()
    for match in matches:
        if match.trip.trip_id in seen:
            continue
        seen.add(match.trip.trip_id)
        arrivals.append(
            Arrival(
                route_id=match.route_id,
                time=match.origin.time,
                minutes_until=minutes_until(match.origin.time, now),
                status=ArrivalStatus.LIVE,
                source_trip_id=match.trip.trip_id,
                destination=match.headsign,
                destination_arrival_time=match.destination.time if match.destination else None,
                track=match.origin.track,
            )
        )
    return arrivals


def scheduled_arrivals(
    trips: Sequence[Tuple[date, ScheduledTrip]],
    localizer: TimeLocalizer,
    now: float,
) -> List[Arrival]:
    arrivals = []
    for service_date, trip in trips:
        departs = localizer.to_timestamp(trip.origin_minutes, service_date, reference=now)
        arrives = None
        if trip.dest_minutes is not None:
            arrives = localizer.to_timestamp(trip.dest_minutes, service_date, reference=now)
        arrivals.append(
            Arrival(
                route_id=trip.route_id,
                time=departs,
                minutes_until=minutes_until(departs, now),
                status=ArrivalStatus.SCHEDULED,
                source_trip_id=trip.trip_id,
                destination=trip.headsign or None,
                destination_arrival_time=arrives,
            )
        )
    return arrivals


class Reconciler:
    def __init__(self, window_seconds: int = 1200, grace_seconds: int = 300, limit: int = 3):
        self.window_seconds = window_seconds
        self.grace_seconds = grace_seconds
        self.limit = limit

    def _slot_for(self, merged: List[Arrival], live: Arrival) -> Optional[int]:
        for index, existing in enumerate(merged):
            if existing.status is ArrivalStatus.LIVE and existing.source_trip_id == live.source_trip_id:
                return index

        best = None
        best_gap = None
        for index, existing in enumerate(merged):
            if existing.status is not ArrivalStatus.SCHEDULED:
                continue
            gap = abs(existing.time - live.time)
            if gap <= self.window_seconds and (best_gap is None or gap < best_gap):
                best, best_gap = index, gap
        return best

    def merge(
        self,
        scheduled: Sequence[Arrival],
        live: Sequence[Arrival],
        now: float,
        limit: Optional[int] = None,
    ) -> List[Arrival]:
        """
        Fold `live` into `scheduled` and return the top arrivals.

        A live arrival already present (same trip) is replaced rather than
        duplicated, so merging the same live data twice changes nothing.
        Scheduled slots stay until `grace_seconds` after their time; live
        arrivals are dropped as soon as they are past.
        """
        merged = list(scheduled)
        outcomes: Dict[str, int] = {"replaced": 0, "appended": 0}

        for arrival in live:
            slot = self._slot_for(merged, arrival)
            if slot is None:
                merged.append(arrival)
                outcomes["appended"] += 1
            else:
                merged[slot] = arrival
                outcomes["replaced"] += 1

        # Arrival times are whole seconds; a departure stamped this second is not past
        current = math.floor(now)
        kept = []
        for arrival in merged:
            if arrival.status is ArrivalStatus.SCHEDULED and arrival.time < current - self.grace_seconds:
                continue
            if arrival.status is ArrivalStatus.LIVE and arrival.time < current:
                continue
            kept.append(arrival)

        dropped = len(merged) - len(kept)
        for outcome, count in outcomes.items():
            if count:
                MERGE_OUTCOMES.labels(outcome=outcome).inc(count)
        if dropped:
            MERGE_OUTCOMES.labels(outcome="dropped_past").inc(dropped)

        kept.sort(key=lambda a: a.time)
        result = kept[: self.limit if limit is None else limit]
        logger.debug(
            "Merged arrivals",
            scheduled=len(scheduled),
            live=len(live),
            dropped=dropped,
            returned=len(result),
            **outcomes,
        )
        return result
