"""
Decides which reported trips satisfy a rider's query.

Zero matches is a normal outcome meaning "no live data"; the orchestrator
then relies on the schedule alone.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import structlog

from transit_eta.core.models import Query, RawTripUpdate, StopTimeUpdate
from transit_eta.matching.policy import ROUTE_RULES, MatchPolicy, policy_for
from transit_eta.matching.topology import (
    candidate_lines,
    infer_destination,
    infer_line,
    is_generic_ferry_route,
    path_proxy_direction,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class Match:
    """A trip accepted for a query, with the stops that made it match."""

    trip: RawTripUpdate
    origin: StopTimeUpdate
    route_id: str
    destination: Optional[StopTimeUpdate] = None
    headsign: Optional[str] = None
    rule: str = "exact"  # exact | ordered | relaxed | proxy


def _numeric_direction(direction: Optional[str]) -> Optional[int]:
    if direction in ("0", "1"):
        return int(direction)
    return None


def _position(trip: RawTripUpdate, update: StopTimeUpdate) -> int:
    if update.sequence is not None:
        return update.sequence
    return trip.stop_time_updates.index(update)


def _resolve_route(query: Query, trip: RawTripUpdate, policy: MatchPolicy) -> Tuple[bool, str, Optional[str]]:
    """Whether the trip's route qualifies, the route id to report, and the inferred ferry line."""
    if policy.route_rule == "ferry":
        if trip.route_id and not is_generic_ferry_route(query.route_id):
            return trip.route_id == query.route_id, trip.route_id, trip.route_id
        if is_generic_ferry_route(query.route_id):
            line = infer_line(trip.stop_ids, anchors=(query.stop_id, query.destination_stop_id or ""))
            return True, line or trip.route_id or "NYC Ferry", line
        # A specific line was asked for and the feed carries no route id
        if query.route_id in candidate_lines(trip.stop_ids):
            return True, query.route_id, query.route_id
        return False, query.route_id, None

    rule = ROUTE_RULES[policy.route_rule]
    return rule(query.route_id, trip.route_id), trip.route_id or query.route_id, None


def _find_origin(query: Query, trip: RawTripUpdate, policy: MatchPolicy) -> Tuple[Optional[StopTimeUpdate], str]:
    targets = {query.stop_id}
    if policy.direction_suffix and query.direction:
        targets.add(f"{query.stop_id}{query.direction}")

    for update in trip.stop_time_updates:
        if update.stop_id in targets:
            return update, "exact"

    if policy.directional_proxy and trip.stop_time_updates:
        first = trip.stop_time_updates[0]
        direction = path_proxy_direction(query.stop_id, first.stop_id)
        if direction is None:
            return None, ""
        if trip.direction_id is not None and trip.direction_id != direction:
            return None, ""
        wanted = _numeric_direction(query.direction)
        if wanted is not None and wanted != direction:
            return None, ""
        return first, "proxy"

    return None, ""


def match_trip(query: Query, trip: RawTripUpdate, policy: Optional[MatchPolicy] = None) -> Optional[Match]:
    policy = policy or policy_for(query.mode)

    accepted, route_id, line = _resolve_route(query, trip, policy)
    if not accepted:
        return None

    wanted = _numeric_direction(query.direction)
    if wanted is not None and trip.direction_id is not None and trip.direction_id != wanted:
        return None

    origin, rule = _find_origin(query, trip, policy)
    if origin is None or origin.time is None:
        return None

    destination = None
    if query.destination_stop_id:
        origin_at = _position(trip, origin)
        candidates = [u for u in trip.stop_time_updates if u.stop_id == query.destination_stop_id]
        later = [u for u in candidates if _position(trip, u) > origin_at]
        if later:
            destination = later[0]
            if rule == "exact":
                rule = "ordered"
        elif candidates:
            # Destination reported before the origin: travelling the other way
            return None
        elif policy.relaxed_destination:
            rule = "relaxed"
        else:
            return None

    headsign = trip.headsign
    if headsign is None and policy.infer_line and line:
        headsign = infer_destination(line, trip.stop_ids)

    return Match(
        trip=trip,
        origin=origin,
        route_id=route_id,
        destination=destination,
        headsign=headsign,
        rule=rule,
    )


def match_trips(query: Query, trips: Sequence[RawTripUpdate]) -> List[Match]:
    """Every trip in `trips` that serves the query, in feed order."""
    policy = policy_for(query.mode)
    matches = []
    for trip in trips:
        found = match_trip(query, trip, policy)
        if found is not None:
            matches.append(found)

    logger.debug(
        "Matched trips",
        mode=query.mode.value,
        route=query.route_id,
        stop=query.stop_id,
        trips=len(trips),
        matches=len(matches),
    )
    return matches
