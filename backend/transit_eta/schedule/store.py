"""
Read-only access to the per-family timetable snapshots.

Snapshots are SQLite files named `<family>_schedule.db`. They are opened
read-only on first use; when the shipped directory is not writable (some
deployments mount it read-only and SQLite may still need a lock file
beside it) the file is copied once into a scratch directory first.

Queries are short synchronous reads and are never held across an await.
"""

import os
import shutil
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import structlog
from sqlalchemy import and_, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased

from transit_eta.core.exceptions import ScheduleStoreUnavailable
from transit_eta.core.models import Query, ScheduledTrip
from transit_eta.schedule.fallback import static_trips
from transit_eta.schedule.models import Service, StopTime, Trip
from transit_eta.utils.localtime import TimeLocalizer, date_to_int

logger = structlog.get_logger()

MINUTES_PER_DAY = 24 * 60


class ScheduleStore:
    """One family's snapshot."""

    def __init__(self, family: str, db_dir: Path, scratch_dir: Path):
        self.family = family
        self.source_path = Path(db_dir) / f"{family}_schedule.db"
        self.scratch_dir = Path(scratch_dir)
        self._engine: Optional[Engine] = None
        self._lock = threading.Lock()

    def _resolve_path(self) -> Path:
        if not self.source_path.is_file():
            raise ScheduleStoreUnavailable(self.family, f"{self.source_path} not found")
        if os.access(self.source_path.parent, os.W_OK):
            return self.source_path

        target = self.scratch_dir / self.source_path.name
        if not target.is_file():
            try:
                self.scratch_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(self.source_path, target)
            except OSError as e:
                raise ScheduleStoreUnavailable(self.family, f"copy to {target} failed: {e}") from e
            logger.info("Copied schedule snapshot to scratch", family=self.family, path=str(target))
        return target

    def engine(self) -> Engine:
        with self._lock:
            if self._engine is None:
                path = self._resolve_path().resolve()
                self._engine = create_engine(f"sqlite:///file:{path}?mode=ro&uri=true")
                logger.info("Opened schedule snapshot", family=self.family, path=str(path))
            return self._engine

    def available(self) -> bool:
        try:
            with self.engine().connect() as conn:
                conn.execute(select(func.count()).select_from(Service)).scalar()
            return True
        except (ScheduleStoreUnavailable, SQLAlchemyError):
            return False

    def next_trips(
        self,
        origin: str,
        destination: Optional[str],
        service_date: date,
        after_minutes: int,
        limit: int,
        direction_id: Optional[int] = None,
    ) -> List[ScheduledTrip]:
        """
        Trips departing `origin` at or after `after_minutes` on `service_date`.

        With a destination, only trips that reach it later in the same
        trip qualify and `dest_minutes` is filled in. Without one, trips
        are optionally filtered by `direction_id` instead.
        """
        origin_st = aliased(StopTime)
        stmt = (
            select(
                Trip.trip_id,
                Trip.route_id,
                Trip.headsign,
                Trip.direction_id,
                origin_st.departure_minutes,
            )
            .select_from(Trip)
            .join(Service, Service.service_id == Trip.service_id)
            .join(origin_st, origin_st.trip_id == Trip.trip_id)
            .where(
                Service.date == date_to_int(service_date),
                origin_st.stop_id == origin,
                origin_st.departure_minutes >= after_minutes,
            )
        )

        if destination:
            dest_st = aliased(StopTime)
            stmt = (
                stmt.add_columns(func.coalesce(dest_st.arrival_minutes, dest_st.departure_minutes))
                .join(dest_st, and_(dest_st.trip_id == Trip.trip_id, dest_st.sequence > origin_st.sequence))
                .where(dest_st.stop_id == destination)
            )
        elif direction_id is not None:
            stmt = stmt.where(Trip.direction_id == direction_id)

        stmt = stmt.order_by(origin_st.departure_minutes).limit(limit)

        try:
            with self.engine().connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error("Schedule query failed", family=self.family, error=str(e))
            raise ScheduleStoreUnavailable(self.family, str(e)) from e

        return [
            ScheduledTrip(
                trip_id=row[0],
                route_id=row[1],
                headsign=row[2] or "",
                direction_id=row[3],
                origin_minutes=row[4],
                dest_minutes=row[5] if destination else None,
            )
            for row in rows
        ]

    def close(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
                self._engine = None


@dataclass
class ScheduleLookup:
    """Scheduled trips for one query, each tagged with its service date."""

    trips: List[Tuple[date, ScheduledTrip]] = field(default_factory=list)
    source: str = "none"  # snapshot | static | none


class ScheduleBook:
    """
    Answers "what is scheduled next" for every family with a snapshot.

    Looks at the previous service day (trips running past midnight), the
    current one, and the next one when the current day is nearly over.
    A snapshot that cannot be read is replaced by the static tables; this
    never raises.
    """

    def __init__(
        self,
        stores: Dict[str, ScheduleStore],
        localizer: TimeLocalizer,
        limit: int = 10,
        grace_seconds: int = 300,
    ):
        self.stores = stores
        self.localizer = localizer
        self.limit = limit
        self.grace_seconds = grace_seconds

    def lookup(self, family: str, query: Query, now: Optional[float] = None) -> ScheduleLookup:
        now = self.localizer.now() if now is None else now
        today, minutes = self.localizer.split(now)
        after = minutes - self.grace_seconds // 60
        direction_id = int(query.direction) if query.direction in ("0", "1") else None

        store = self.stores.get(family)
        source = "snapshot"

        def from_store(day: date, after_minutes: int) -> List[ScheduledTrip]:
            return store.next_trips(
                query.stop_id, query.destination_stop_id, day, after_minutes, self.limit, direction_id
            )

        def from_static(day: date, after_minutes: int) -> List[ScheduledTrip]:
            return static_trips(
                family, query.stop_id, query.destination_stop_id, day, after_minutes, self.limit, direction_id
            )

        fetch: Callable[[date, int], List[ScheduledTrip]] = from_store if store is not None else from_static
        if store is None:
            source = "static"

        try:
            found = self._collect(fetch, today, after)
        except ScheduleStoreUnavailable as e:
            logger.warning("Schedule snapshot unavailable, using static table", family=family, error=e.detail)
            source = "static"
            found = self._collect(from_static, today, after)

        if not found:
            source = "none"
        return ScheduleLookup(trips=found, source=source)

    def _collect(
        self,
        fetch: Callable[[date, int], List[ScheduledTrip]],
        today: date,
        after: int,
    ) -> List[Tuple[date, ScheduledTrip]]:
        yesterday = today - timedelta(days=1)
        found = [(yesterday, t) for t in fetch(yesterday, after + MINUTES_PER_DAY)]
        found += [(today, t) for t in fetch(today, after)]
        if len(found) < self.limit:
            tomorrow = today + timedelta(days=1)
            found += [(tomorrow, t) for t in fetch(tomorrow, max(0, after - MINUTES_PER_DAY))]

        def absolute(item: Tuple[date, ScheduledTrip]) -> int:
            day, trip = item
            return (day - today).days * MINUTES_PER_DAY + trip.origin_minutes

        found.sort(key=absolute)
        return found[: self.limit]

    def available(self) -> Dict[str, bool]:
        return {family: store.available() for family, store in self.stores.items()}

    def close(self) -> None:
        for store in self.stores.values():
            store.close()
