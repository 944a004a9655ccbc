"""
Wall-clock localization for schedule data.

Timetables store minutes since midnight with no zone attached. They are
always read in one fixed civil timezone, whatever zone the host runs in.
The zone's UTC offset is derived per call by rendering the same instant
twice (as UTC and as local wall clock) and subtracting, so a DST change
between two calls is always picked up.
"""

import time
from datetime import date, datetime, timedelta, timezone
from datetime import time as dtime
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo


class TimeLocalizer:
    """Converts between unix seconds and wall clock in one civil timezone."""

    def __init__(self, tz_name: str = "America/New_York", clock: Callable[[], float] = time.time):
        self.tz_name = tz_name
        self.zone = ZoneInfo(tz_name)
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def utc_offset(self, instant: float) -> timedelta:
        """UTC offset of the civil zone at `instant`."""
        as_utc = datetime.fromtimestamp(instant, tz=timezone.utc).replace(tzinfo=None)
        as_wall = datetime.fromtimestamp(instant, tz=self.zone).replace(tzinfo=None)
        return as_wall - as_utc

    def wall_clock(self, instant: Optional[float] = None) -> datetime:
        """Naive local wall-clock datetime for `instant` (default: now)."""
        instant = self.now() if instant is None else instant
        return datetime.fromtimestamp(instant, tz=timezone.utc).replace(tzinfo=None) + self.utc_offset(instant)

    def service_date(self, instant: Optional[float] = None) -> date:
        return self.wall_clock(instant).date()

    def minutes_since_midnight(self, instant: Optional[float] = None) -> int:
        wall = self.wall_clock(instant)
        return wall.hour * 60 + wall.minute

    def split(self, instant: float) -> Tuple[date, int]:
        """Service date and minutes since midnight for `instant`."""
        wall = self.wall_clock(instant)
        return wall.date(), wall.hour * 60 + wall.minute

    def wall_to_timestamp(self, wall: datetime, reference: Optional[float] = None) -> int:
        """Absolute unix seconds for a naive local wall-clock datetime."""
        reference = self.now() if reference is None else reference
        offset = self.utc_offset(reference)
        candidate = (wall - offset).replace(tzinfo=timezone.utc).timestamp()

        # Reference and target may sit on opposite sides of a DST switch
        corrected = self.utc_offset(candidate)
        if corrected != offset:
            candidate = (wall - corrected).replace(tzinfo=timezone.utc).timestamp()
        return int(candidate)

    def to_timestamp(
        self,
        minutes: int,
        service_date: Optional[date] = None,
        reference: Optional[float] = None,
    ) -> int:
        """
        Absolute unix seconds for `minutes` past midnight on `service_date`.

        Minutes beyond 1440 (after-midnight trips of the same service day)
        roll onto the following calendar date.
        """
        reference = self.now() if reference is None else reference
        if service_date is None:
            service_date = self.service_date(reference)
        wall = datetime.combine(service_date, dtime()) + timedelta(minutes=minutes)
        return self.wall_to_timestamp(wall, reference)

    def parse(self, text: str, fmt: str, reference: Optional[float] = None) -> int:
        """Parse a local date-time string in the civil zone into unix seconds."""
        return self.wall_to_timestamp(datetime.strptime(text.strip(), fmt), reference)


def date_to_int(day: date) -> int:
    """YYYYMMDD integer used by the schedule snapshots."""
    return day.year * 10000 + day.month * 100 + day.day
