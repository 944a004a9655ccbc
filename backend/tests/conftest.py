"""Shared fixtures: fixed clock, feed builders and the API client."""

import time
from typing import Iterable, Optional, Sequence, Tuple

import pytest
import pytest_asyncio
from google.transit import gtfs_realtime_pb2
from httpx import ASGITransport, AsyncClient

# 2025-07-15 08:00 America/New_York (EDT), a Tuesday
NOW = 1752580800


class FakeClock:
    def __init__(self, start: float = NOW):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tokyo_host(monkeypatch):
    """Run with the host zone set to Asia/Tokyo, a calendar day ahead of New York."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is unavailable on this platform")
    monkeypatch.setenv("TZ", "Asia/Tokyo")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def localizer(clock):
    from transit_eta.utils.localtime import TimeLocalizer

    return TimeLocalizer("America/New_York", clock=clock)


StopSpec = Tuple[str, Optional[int]]


def build_feed(trips: Iterable[Tuple[str, Optional[str], Sequence[StopSpec]]], direction_ids=None) -> bytes:
    """Serialize (trip_id, route_id, [(stop_id, arrival_time)]) into a GTFS-RT FeedMessage."""
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    feed.header.timestamp = NOW

    for index, (trip_id, route_id, stops) in enumerate(trips):
        entity = feed.entity.add(id=f"e{index}")
        entity.trip_update.trip.trip_id = trip_id
        if route_id:
            entity.trip_update.trip.route_id = route_id
        if direction_ids and trip_id in direction_ids:
            entity.trip_update.trip.direction_id = direction_ids[trip_id]
        for stop_id, arrival in stops:
            update = entity.trip_update.stop_time_update.add(stop_id=stop_id)
            if arrival is not None:
                update.arrival.time = arrival
    return feed.SerializeToString()


@pytest.fixture
def make_feed():
    return build_feed


@pytest_asyncio.fixture
async def client(arrival_service):
    """API client bound to the app with the arrival service swapped in."""
    from transit_eta.main import app
    from transit_eta.routers.arrivals import get_arrival_service

    app.dependency_overrides[get_arrival_service] = lambda: arrival_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
