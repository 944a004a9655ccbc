"""
Builds a pruned timetable snapshot from a GTFS static archive.

The calendar is flattened into explicit (service_id, date) rows for a
rolling window, and trips with no active date inside the window are
dropped along with their stop times.
"""

import csv
import io
import os
import re
import zipfile
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

import structlog
from sqlalchemy import create_engine, insert
from sqlalchemy.orm import Session

from transit_eta.core.exceptions import DecodeError
from transit_eta.schedule.models import Base, Route, Service, Stop, StopTime, Trip
from transit_eta.utils.localtime import TimeLocalizer, date_to_int

logger = structlog.get_logger()

SOURCE = "gtfs-static"
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
GTFS_TIME = re.compile(r"^\s*(\d{1,3}):(\d{2})(?::(\d{2}))?\s*$")
INSERT_CHUNK = 5000


def gtfs_minutes(value: Optional[str]) -> Optional[int]:
    """"25:10:00" -> 1510. Seconds are dropped; blank means no time."""
    if value is None or not value.strip():
        return None
    match = GTFS_TIME.match(value)
    if not match:
        raise DecodeError(SOURCE, f"bad time {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def parse_gtfs_date(value: str) -> date:
    value = value.strip()
    try:
        return date(int(value[:4]), int(value[4:6]), int(value[6:8]))
    except ValueError as e:
        raise DecodeError(SOURCE, f"bad date {value!r}") from e


def read_table(archive: zipfile.ZipFile, name: str) -> Iterator[Dict[str, str]]:
    """Rows of one GTFS file; optional files that are absent yield nothing."""
    if name not in archive.namelist():
        return
    with archive.open(name) as raw:
        yield from csv.DictReader(io.TextIOWrapper(raw, encoding="utf-8-sig"))


def service_dates(
    calendar: Iterable[Dict[str, str]],
    calendar_dates: Iterable[Dict[str, str]],
    start: date,
    end: date,
) -> Dict[str, Set[int]]:
    """
    Active dates per service within [start, end].

    Weekly rules from calendar.txt come first; calendar_dates.txt then adds
    (exception_type 1) or removes (exception_type 2) single dates.
    """
    active: Dict[str, Set[int]] = {}

    for rule in calendar:
        days = active.setdefault(rule["service_id"], set())
        first = max(parse_gtfs_date(rule["start_date"]), start)
        last = min(parse_gtfs_date(rule["end_date"]), end)
        current = first
        while current <= last:
            if rule.get(WEEKDAYS[current.weekday()], "0").strip() == "1":
                days.add(date_to_int(current))
            current += timedelta(days=1)

    for exception in calendar_dates:
        days = active.setdefault(exception["service_id"], set())
        day = parse_gtfs_date(exception["date"])
        kind = exception["exception_type"].strip()
        if kind == "1" and start <= day <= end:
            days.add(date_to_int(day))
        elif kind == "2":
            days.discard(date_to_int(day))

    return active


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    return int(value)


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


def _insert_chunks(session: Session, model, rows: Iterable[dict]) -> int:
    count = 0
    chunk: List[dict] = []
    for row in rows:
        chunk.append(row)
        if len(chunk) >= INSERT_CHUNK:
            session.execute(insert(model), chunk)
            count += len(chunk)
            chunk = []
    if chunk:
        session.execute(insert(model), chunk)
        count += len(chunk)
    return count


def build_snapshot(
    archive_bytes: bytes,
    target: Path,
    start: Optional[date] = None,
    window_days: int = 30,
    localizer: Optional[TimeLocalizer] = None,
) -> Dict[str, int]:
    """
    Write `target` from a GTFS zip and return the row count per table.

    The window starts at `start`, or at today's service date in the
    localizer's zone when no start is given.

    The file is written beside the target and moved into place at the
    end, so a running service never opens a half-built snapshot.
    """
    if start is None:
        start = (localizer or TimeLocalizer()).service_date()
    end = start + timedelta(days=window_days - 1)
    target = Path(target)
    staging = target.with_name(target.name + ".building")
    if staging.exists():
        staging.unlink()

    try:
        archive = zipfile.ZipFile(io.BytesIO(archive_bytes))
    except zipfile.BadZipFile as e:
        raise DecodeError(SOURCE, str(e)) from e

    with archive:
        dates = service_dates(read_table(archive, "calendar.txt"), read_table(archive, "calendar_dates.txt"), start, end)
        kept_services = {service_id for service_id, days in dates.items() if days}

        trips = [
            {
                "trip_id": row["trip_id"],
                "route_id": row["route_id"],
                "service_id": row["service_id"],
                "headsign": (row.get("trip_headsign") or "").strip() or None,
                "direction_id": _optional_int(row.get("direction_id")),
            }
            for row in read_table(archive, "trips.txt")
            if row["service_id"] in kept_services
        ]
        kept_trips = {trip["trip_id"] for trip in trips}

        def stop_times():
            for row in read_table(archive, "stop_times.txt"):
                if row["trip_id"] not in kept_trips:
                    continue
                arrival = gtfs_minutes(row.get("arrival_time"))
                departure = gtfs_minutes(row.get("departure_time"))
                if arrival is None and departure is None:
                    continue
                yield {
                    "trip_id": row["trip_id"],
                    "sequence": int(row["stop_sequence"]),
                    "stop_id": row["stop_id"],
                    "arrival_minutes": arrival,
                    "departure_minutes": departure if departure is not None else arrival,
                }

        stops = (
            {
                "stop_id": row["stop_id"],
                "name": (row.get("stop_name") or row.get("stop_desc") or row["stop_id"]).strip(),
                "lat": _optional_float(row.get("stop_lat")),
                "lon": _optional_float(row.get("stop_lon")),
            }
            for row in read_table(archive, "stops.txt")
        )
        routes = (
            {
                "route_id": row["route_id"],
                "short_name": row.get("route_short_name") or None,
                "long_name": row.get("route_long_name") or None,
            }
            for row in read_table(archive, "routes.txt")
        )
        services = (
            {"service_id": service_id, "date": day}
            for service_id in sorted(kept_services)
            for day in sorted(dates[service_id])
        )

        engine = create_engine(f"sqlite:///{staging}")
        try:
            Base.metadata.create_all(engine)
            with Session(engine) as session:
                counts = {
                    "stops": _insert_chunks(session, Stop, stops),
                    "routes": _insert_chunks(session, Route, routes),
                    "trips": _insert_chunks(session, Trip, trips),
                    "stop_times": _insert_chunks(session, StopTime, stop_times()),
                    "services": _insert_chunks(session, Service, services),
                }
                session.commit()
        finally:
            engine.dispose()

    os.replace(staging, target)
    logger.info("Built schedule snapshot", path=str(target), start=start.isoformat(), end=end.isoformat(), **counts)
    return counts
