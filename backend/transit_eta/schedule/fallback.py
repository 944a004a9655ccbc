"""
Static timetables consulted only when a snapshot cannot be opened.

These are representative, hand-curated patterns rather than published
timetables: an East River ferry pattern with fixed inter-stop running
times, and the Staten Island Ferry's frequency rules.
"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from transit_eta.core.models import ScheduledTrip
from transit_eta.matching.topology import FERRY_ROUTES, FERRY_STOP_NAMES

EAST_RIVER = "East River"
EAST_RIVER_OFFSETS = (0, 8, 16, 23, 29, 36, 42)  # minutes from the first stop
PEAK_HOURS = set(range(7, 10)) | set(range(16, 20))

SI_FERRY = "SI_FERRY"
SI_FERRY_TERMINALS = {"whitehall": "St. George", "st-george": "Whitehall"}
SI_FERRY_CROSSING = 25

# (start, end, headway) in minutes since midnight
SI_FERRY_RULES: Dict[str, Tuple[Tuple[int, int, int], ...]] = {
    "weekday": (
        (0, 6 * 60, 30),
        (6 * 60, 9 * 60 + 30, 15),
        (9 * 60 + 30, 15 * 60 + 30, 30),
        (15 * 60 + 30, 20 * 60, 15),
        (20 * 60, 24 * 60, 30),
    ),
    "weekend": ((0, 24 * 60, 30),),
}


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def east_river_departures(day: date) -> List[Tuple[int, int]]:
    """(first-stop minutes, direction) for every East River trip on `day`."""
    departures = []
    if is_weekend(day):
        for hour in range(8, 22):
            departures.append((hour * 60, 0))
            departures.append((hour * 60 + 30, 1))
    else:
        for hour in range(6, 22):
            departures.append((hour * 60, 0))
            departures.append((hour * 60 + 15, 1))
            if hour in PEAK_HOURS:
                departures.append((hour * 60 + 30, 0))
                departures.append((hour * 60 + 45, 1))
    return sorted(departures)


def _east_river_trips(origin: str, destination: Optional[str], day: date) -> List[ScheduledTrip]:
    northbound = FERRY_ROUTES[EAST_RIVER]
    if origin not in northbound:
        return []

    trips = []
    for start, direction in east_river_departures(day):
        stops: Sequence[str] = northbound if direction == 0 else tuple(reversed(northbound))
        origin_index = stops.index(origin)
        dest_minutes = None
        if destination is not None:
            if destination not in stops or stops.index(destination) <= origin_index:
                continue
            dest_minutes = start + EAST_RIVER_OFFSETS[stops.index(destination)]

        trips.append(
            ScheduledTrip(
                trip_id=f"SCH_ER_{direction}_{start // 60:02d}{start % 60:02d}",
                route_id=EAST_RIVER,
                headsign=FERRY_STOP_NAMES[stops[-1]],
                direction_id=direction,
                origin_minutes=start + EAST_RIVER_OFFSETS[origin_index],
                dest_minutes=dest_minutes,
            )
        )
    return trips


def _si_ferry_trips(origin: str, destination: Optional[str], day: date) -> List[ScheduledTrip]:
    if origin not in SI_FERRY_TERMINALS:
        return []
    if destination is not None and (destination == origin or destination not in SI_FERRY_TERMINALS):
        return []

    direction = 0 if origin == "whitehall" else 1
    trips = []
    for start, end, headway in SI_FERRY_RULES["weekend" if is_weekend(day) else "weekday"]:
        for minutes in range(start, end, headway):
            trips.append(
                ScheduledTrip(
                    trip_id=f"SCH_SIF_{origin}_{minutes // 60:02d}{minutes % 60:02d}",
                    route_id=SI_FERRY,
                    headsign=SI_FERRY_TERMINALS[origin],
                    direction_id=direction,
                    origin_minutes=minutes,
                    dest_minutes=minutes + SI_FERRY_CROSSING if destination else None,
                )
            )
    return trips


def static_trips(
    family: str,
    origin: str,
    destination: Optional[str],
    service_date: date,
    after_minutes: int,
    limit: int,
    direction_id: Optional[int] = None,
) -> List[ScheduledTrip]:
    """Same contract as ScheduleStore.next_trips, answered from the static tables."""
    if family != "ferry":
        return []

    trips = _east_river_trips(origin, destination, service_date) + _si_ferry_trips(
        origin, destination, service_date
    )
    trips = [
        t
        for t in trips
        if t.origin_minutes >= after_minutes and (direction_id is None or t.direction_id == direction_id)
    ]
    trips.sort(key=lambda t: t.origin_minutes)
    return trips[:limit]
