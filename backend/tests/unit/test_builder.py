"""Tests for building snapshots from GTFS static archives."""

import io
import zipfile
from datetime import date

import pytest

from transit_eta.core.exceptions import DecodeError
from transit_eta.schedule.builder import build_snapshot, gtfs_minutes, service_dates
from transit_eta.schedule.store import ScheduleStore
from transit_eta.utils.localtime import TimeLocalizer

from conftest import NOW

CALENDAR = [
    {"service_id": "WK", "monday": "1", "tuesday": "1", "wednesday": "1", "thursday": "1", "friday": "1",
     "saturday": "0", "sunday": "0", "start_date": "20250701", "end_date": "20250731"},
    {"service_id": "WE", "monday": "0", "tuesday": "0", "wednesday": "0", "thursday": "0", "friday": "0",
     "saturday": "1", "sunday": "1", "start_date": "20250701", "end_date": "20250731"},
    {"service_id": "OLD", "monday": "1", "tuesday": "1", "wednesday": "1", "thursday": "1", "friday": "1",
     "saturday": "1", "sunday": "1", "start_date": "20250501", "end_date": "20250601"},
]
CALENDAR_DATES = [
    {"service_id": "WK", "date": "20250716", "exception_type": "2"},
    {"service_id": "HOL", "date": "20250716", "exception_type": "1"},
    {"service_id": "HOL", "date": "20250901", "exception_type": "1"},
]

FILES = {
    "stops.txt": "stop_id,stop_name,stop_lat,stop_lon\nA,Atlantic Terminal,40.68,-73.97\nB,Babylon,40.70,-73.32\n",
    "routes.txt": "route_id,route_short_name,route_long_name\nBAB,,Babylon Branch\n",
    "trips.txt": (
        "route_id,service_id,trip_id,trip_headsign,direction_id\n"
        "BAB,WK,T1,Babylon,0\n"
        "BAB,HOL,T2,Babylon,0\n"
        "BAB,OLD,T3,Babylon,0\n"
    ),
    "stop_times.txt": (
        "trip_id,arrival_time,departure_time,stop_id,stop_sequence\n"
        "T1,08:00:00,08:00:30,A,1\n"
        "T1,25:10:00,,B,2\n"
        "T2,09:00:00,09:00:00,A,1\n"
        "T2,10:05:00,10:05:00,B,2\n"
        "T3,07:00:00,07:00:00,A,1\n"
        "T3,08:00:00,08:00:00,B,2\n"
    ),
}


def csv_text(rows):
    header = list(rows[0])
    lines = [",".join(header)] + [",".join(row[column] for column in header) for row in rows]
    return "\n".join(lines) + "\n"


def gtfs_zip() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in FILES.items():
            archive.writestr(name, text)
        archive.writestr("calendar.txt", csv_text(CALENDAR))
        archive.writestr("calendar_dates.txt", csv_text(CALENDAR_DATES))
    return buffer.getvalue()


class TestGtfsMinutes:
    def test_values(self):
        assert gtfs_minutes("08:05:59") == 485
        assert gtfs_minutes(" 7:05:00") == 425
        assert gtfs_minutes("25:10:00") == 1510
        assert gtfs_minutes("") is None

    def test_garbage(self):
        with pytest.raises(DecodeError):
            gtfs_minutes("8 o'clock")


def test_calendar_flattening():
    dates = service_dates(CALENDAR, CALENDAR_DATES, date(2025, 7, 15), date(2025, 7, 21))

    assert dates["WK"] == {20250715, 20250717, 20250718, 20250721}
    assert dates["WE"] == {20250719, 20250720}
    assert dates["HOL"] == {20250716}
    assert dates["OLD"] == set()


def test_build_and_query(tmp_path):
    target = tmp_path / "lirr_schedule.db"

    counts = build_snapshot(gtfs_zip(), target, date(2025, 7, 15), window_days=7)

    assert counts == {"stops": 2, "routes": 1, "trips": 2, "stop_times": 4, "services": 7}
    assert target.is_file()
    assert not (tmp_path / "lirr_schedule.db.building").exists()

    store = ScheduleStore("lirr", tmp_path, tmp_path / "scratch")
    try:
        tuesday = store.next_trips("A", "B", date(2025, 7, 15), 0, 10)
        assert [t.trip_id for t in tuesday] == ["T1"]
        assert (tuesday[0].origin_minutes, tuesday[0].dest_minutes) == (480, 1510)

        holiday = store.next_trips("A", "B", date(2025, 7, 16), 0, 10)
        assert [t.trip_id for t in holiday] == ["T2"]
    finally:
        store.close()


@pytest.mark.usefixtures("tokyo_host")
def test_window_starts_on_new_york_service_date(tmp_path):
    # 22:00 EDT on Tuesday the 15th is already Wednesday in Tokyo
    localizer = TimeLocalizer(clock=lambda: NOW + 14 * 3600)

    counts = build_snapshot(gtfs_zip(), tmp_path / "lirr_schedule.db", window_days=1, localizer=localizer)

    assert counts["services"] == 1
    store = ScheduleStore("lirr", tmp_path, tmp_path / "scratch")
    try:
        assert [t.trip_id for t in store.next_trips("A", "B", date(2025, 7, 15), 0, 10)] == ["T1"]
    finally:
        store.close()


def test_rebuild_replaces_existing(tmp_path):
    target = tmp_path / "ferry_schedule.db"
    target.write_bytes(b"stale")

    build_snapshot(gtfs_zip(), target, date(2025, 7, 15), window_days=1)

    assert target.read_bytes()[:15] == b"SQLite format 3"


def test_not_a_zip(tmp_path):
    with pytest.raises(DecodeError):
        build_snapshot(b"<html>login required</html>", tmp_path / "njt_schedule.db", date(2025, 7, 15))
