"""Tests for the schedule snapshots and static fallback tables."""

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from transit_eta.core.exceptions import ScheduleStoreUnavailable
from transit_eta.core.models import AgencyMode, Query
from transit_eta.schedule.fallback import east_river_departures, static_trips
from transit_eta.schedule.models import Base, Route, Service, Stop, StopTime, Trip
from transit_eta.schedule.store import ScheduleBook, ScheduleStore

TUESDAY = date(2025, 7, 15)
SATURDAY = date(2025, 7, 19)


def build_snapshot(path):
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    with Session(engine) as session:
        session.add_all(
            [
                Stop(stop_id="A", name="Atlantic Terminal"),
                Stop(stop_id="B", name="Babylon"),
                Stop(stop_id="C", name="Jamaica"),
                Route(route_id="BAB", short_name="Babylon", long_name="Babylon Branch"),
                Service(service_id="WK", date=20250715),
                Service(service_id="NEXT", date=20250716),
                Trip(trip_id="T1", route_id="BAB", service_id="WK", headsign="Babylon", direction_id=0),
                Trip(trip_id="T2", route_id="BAB", service_id="WK", headsign="Babylon", direction_id=0),
                Trip(trip_id="T3", route_id="BAB", service_id="WK", headsign="Atlantic Terminal", direction_id=1),
                Trip(trip_id="T4", route_id="BAB", service_id="NEXT", headsign="Jamaica", direction_id=0),
                StopTime(trip_id="T1", stop_id="A", sequence=1, arrival_minutes=500, departure_minutes=500),
                StopTime(trip_id="T1", stop_id="C", sequence=2, arrival_minutes=510, departure_minutes=511),
                StopTime(trip_id="T1", stop_id="B", sequence=3, arrival_minutes=520, departure_minutes=521),
                StopTime(trip_id="T2", stop_id="A", sequence=1, arrival_minutes=530, departure_minutes=530),
                StopTime(trip_id="T2", stop_id="B", sequence=2, arrival_minutes=None, departure_minutes=550),
                StopTime(trip_id="T3", stop_id="B", sequence=1, arrival_minutes=505, departure_minutes=505),
                StopTime(trip_id="T3", stop_id="A", sequence=2, arrival_minutes=525, departure_minutes=525),
                StopTime(trip_id="T4", stop_id="A", sequence=1, arrival_minutes=600, departure_minutes=600),
                StopTime(trip_id="T4", stop_id="C", sequence=2, arrival_minutes=615, departure_minutes=615),
            ]
        )
        session.commit()
    engine.dispose()


@pytest.fixture
def snapshot_dir(tmp_path):
    db_dir = tmp_path / "data"
    db_dir.mkdir()
    build_snapshot(db_dir / "lirr_schedule.db")
    return db_dir


@pytest.fixture
def store(snapshot_dir, tmp_path):
    store = ScheduleStore("lirr", snapshot_dir, tmp_path / "scratch")
    yield store
    store.close()


class TestScheduleStore:
    def test_origin_destination_join(self, store):
        trips = store.next_trips("A", "B", TUESDAY, 480, 10)

        assert [t.trip_id for t in trips] == ["T1", "T2"]
        assert (trips[0].origin_minutes, trips[0].dest_minutes) == (500, 520)
        # Destination without an arrival time falls back to its departure
        assert trips[1].dest_minutes == 550
        assert trips[0].headsign == "Babylon"

    def test_after_minutes_and_limit(self, store):
        assert [t.trip_id for t in store.next_trips("A", "B", TUESDAY, 501, 10)] == ["T2"]
        assert [t.trip_id for t in store.next_trips("A", "B", TUESDAY, 0, 1)] == ["T1"]

    def test_direction_variant(self, store):
        trips = store.next_trips("A", None, TUESDAY, 0, 10, direction_id=1)
        assert [t.trip_id for t in trips] == ["T3"]
        assert trips[0].dest_minutes is None

        assert [t.trip_id for t in store.next_trips("A", None, TUESDAY, 0, 10)] == ["T1", "T3", "T2"]

    def test_service_date_filter(self, store):
        assert [t.trip_id for t in store.next_trips("A", "C", date(2025, 7, 16), 0, 10)] == ["T4"]
        assert store.next_trips("A", "B", date(2025, 7, 17), 0, 10) == []

    def test_missing_snapshot(self, tmp_path):
        store = ScheduleStore("ferry", tmp_path, tmp_path / "scratch")
        assert not store.available()
        with pytest.raises(ScheduleStoreUnavailable):
            store.next_trips("4", None, TUESDAY, 0, 3)

    def test_read_only_directory_copies_to_scratch(self, store, tmp_path, monkeypatch):
        monkeypatch.setattr("transit_eta.schedule.store.os.access", lambda path, mode: False)

        assert store.available()
        assert (tmp_path / "scratch" / "lirr_schedule.db").is_file()
        assert [t.trip_id for t in store.next_trips("A", "B", TUESDAY, 480, 10)] == ["T1", "T2"]


class TestStaticFallback:
    def test_east_river_patterns(self):
        assert len(east_river_departures(TUESDAY)) == 46
        assert len(east_river_departures(SATURDAY)) == 28

    def test_east_river_with_destination(self):
        trips = static_trips("ferry", "4", "17", TUESDAY, 480, 3)

        assert [t.origin_minutes for t in trips] == [486, 516, 546]
        assert [t.dest_minutes for t in trips] == [492, 522, 552]
        assert {t.direction_id for t in trips} == {0}
        assert trips[0].headsign == "East 34th St"
        assert trips[0].trip_id == "SCH_ER_0_0730"

    def test_direction_filter(self):
        trips = static_trips("ferry", "4", None, TUESDAY, 480, 2, direction_id=1)
        # Southbound trips leave East 34th St at :15 and reach Hunters Point 8 minutes later
        assert [t.origin_minutes for t in trips] == [503, 533]
        assert trips[0].headsign == "Wall St/Pier 11"

    def test_staten_island_ferry(self):
        trips = static_trips("ferry", "whitehall", None, TUESDAY, 490, 3)
        assert [t.origin_minutes for t in trips] == [495, 510, 525]
        assert trips[0].headsign == "St. George"

        weekend = static_trips("ferry", "st-george", "whitehall", SATURDAY, 490, 2)
        assert [t.origin_minutes for t in weekend] == [510, 540]
        assert weekend[0].dest_minutes == 535

    def test_other_families_have_no_table(self):
        assert static_trips("lirr", "A", None, TUESDAY, 0, 3) == []
        assert static_trips("ferry", "unknown", None, TUESDAY, 0, 3) == []


class TestScheduleBook:
    def test_snapshot_lookup_spans_service_days(self, snapshot_dir, tmp_path, localizer):
        book = ScheduleBook({"lirr": ScheduleStore("lirr", snapshot_dir, tmp_path)}, localizer, limit=5)
        result = book.lookup("lirr", Query(AgencyMode.LIRR, "LIRR", "A"))

        assert result.source == "snapshot"
        assert [(day, t.trip_id) for day, t in result.trips] == [
            (TUESDAY, "T1"),
            (TUESDAY, "T3"),
            (TUESDAY, "T2"),
            (date(2025, 7, 16), "T4"),
        ]

    def test_unreadable_snapshot_falls_back_to_static(self, tmp_path, localizer):
        book = ScheduleBook({"ferry": ScheduleStore("ferry", tmp_path, tmp_path)}, localizer, limit=3)
        result = book.lookup("ferry", Query(AgencyMode.FERRY, "nyc-ferry", "4", destination_stop_id="17"))

        assert result.source == "static"
        assert [t.origin_minutes for _, t in result.trips] == [486, 516, 546]

    def test_no_data_anywhere(self, tmp_path, localizer):
        book = ScheduleBook({"lirr": ScheduleStore("lirr", tmp_path, tmp_path)}, localizer)
        result = book.lookup("lirr", Query(AgencyMode.LIRR, "LIRR", "A"))
        assert result.source == "none"
        assert result.trips == []

    def test_availability_report(self, snapshot_dir, tmp_path, localizer):
        book = ScheduleBook(
            {
                "lirr": ScheduleStore("lirr", snapshot_dir, tmp_path),
                "mnr": ScheduleStore("mnr", snapshot_dir, tmp_path),
            },
            localizer,
        )
        assert book.available() == {"lirr": True, "mnr": False}
        book.close()
