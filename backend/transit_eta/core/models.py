"""
Domain types shared by adapters, matcher, schedule store and reconciler.

Everything here is immutable: a query's working set is built once per
request and later steps replace values rather than patching them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from transit_eta.core.exceptions import UnsupportedMode


class AgencyMode(str, Enum):
    """Upstream source family a saved trip belongs to."""

    SUBWAY = "subway"
    LIRR = "lirr"
    MNR = "mnr"
    PATH = "path"
    FERRY = "nyc-ferry"
    BUS = "bus"  # vehicle-monitoring JSON
    MTA_BUS = "mta-bus"  # fleet-wide binary feed
    NJT_RAIL = "njt-rail"
    NJT_BUS = "njt-bus"

    @classmethod
    def parse(cls, value: str) -> "AgencyMode":
        aliases = {"njt": cls.NJT_RAIL, "ferry": cls.FERRY}
        key = (value or "").strip().lower()
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedMode(f"Unknown mode: {value!r}") from None


class ArrivalStatus(str, Enum):
    LIVE = "Live"
    SCHEDULED = "Scheduled"


@dataclass(frozen=True)
class Query:
    """One saved trip: board `stop_id` on `route_id`, optionally ride to a destination."""

    mode: AgencyMode
    route_id: str
    stop_id: str
    direction: Optional[str] = None
    destination_stop_id: Optional[str] = None


@dataclass(frozen=True)
class StopTimeUpdate:
    """One stop's expected arrival/departure within a trip, times in unix seconds."""

    stop_id: str
    sequence: Optional[int] = None
    arrival_time: Optional[int] = None
    departure_time: Optional[int] = None
    delay_seconds: Optional[int] = None
    track: Optional[str] = None

    @property
    def time(self) -> Optional[int]:
        """Arrival time when known, departure otherwise."""
        return self.arrival_time if self.arrival_time else self.departure_time


@dataclass(frozen=True)
class RawTripUpdate:
    """One vehicle's reported progress, normalized at the adapter boundary."""

    trip_id: str
    stop_time_updates: Tuple[StopTimeUpdate, ...] = ()
    route_id: Optional[str] = None
    direction_id: Optional[int] = None
    headsign: Optional[str] = None

    def find_stop(self, stop_id: str) -> Optional[StopTimeUpdate]:
        for update in self.stop_time_updates:
            if update.stop_id == stop_id:
                return update
        return None

    @property
    def stop_ids(self) -> Tuple[str, ...]:
        return tuple(u.stop_id for u in self.stop_time_updates)


@dataclass(frozen=True)
class ScheduledTrip:
    """A timetable row for the matched service date, in minutes since midnight."""

    trip_id: str
    route_id: str
    headsign: str
    direction_id: Optional[int]
    origin_minutes: int
    dest_minutes: Optional[int] = None


@dataclass(frozen=True)
class Arrival:
    """Output unit returned to callers."""

    route_id: str
    time: int
    minutes_until: int
    status: ArrivalStatus
    source_trip_id: str
    destination: Optional[str] = None
    destination_arrival_time: Optional[int] = None
    track: Optional[str] = None


@dataclass(frozen=True)
class Alert:
    header: str
    description: str = ""
    route_ids: Tuple[str, ...] = field(default=())
