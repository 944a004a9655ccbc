"""Tests for the vehicle-monitoring and NJ Transit JSON adapters."""

from urllib.parse import parse_qs

import httpx
import pytest

from transit_eta.core.exceptions import AuthFailure, DecodeError
from transit_eta.core.models import AgencyMode, Query
from transit_eta.feeds.auth import TokenCache
from transit_eta.feeds.njt import NjtBusAdapter, NjtRailAdapter, parse_minutes
from transit_eta.feeds.siri import SiriStopMonitoringAdapter, iter_visits, parse_iso_time
from transit_eta.matching.matcher import match_trips
from transit_eta.services.reconciler import Reconciler, live_arrivals

from conftest import NOW

RAIL_BASE = "https://rail.example.test/api/TrainData"
BUS_BASE = "https://bus.example.test/api/BUSDV2"


def visit(line_ref, published, expected, aimed=None, journey="J1", destination="SELECT BUS CHELSEA PIERS"):
    return {
        "MonitoredVehicleJourney": {
            "LineRef": line_ref,
            "PublishedLineName": [published],
            "DirectionRef": "1",
            "DestinationName": [destination],
            "FramedVehicleJourneyRef": {"DataFrameRef": "2025-07-15", "DatedVehicleJourneyRef": journey},
            "MonitoredCall": {
                "StopPointRef": "MTA_400001",
                "ExpectedArrivalTime": expected,
                "AimedArrivalTime": aimed,
            },
        }
    }


def form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestSiriParsing:
    def test_iso_times(self):
        assert parse_iso_time("2025-07-15T12:00:00Z") == NOW
        assert parse_iso_time("2025-07-15T08:00:00.000-04:00") == NOW
        assert parse_iso_time(None) is None
        with pytest.raises(DecodeError):
            parse_iso_time("2025-07-15T08:00:00")
        with pytest.raises(DecodeError):
            parse_iso_time("soon")

    def test_bare_and_wrapped_roots(self):
        delivery = {"StopMonitoringDelivery": {"MonitoredStopVisit": [visit("MTA NYCT_M15", "M15", None)]}}
        assert len(list(iter_visits({"Siri": {"ServiceDelivery": delivery}}))) == 1
        assert len(list(iter_visits({"ServiceDelivery": delivery}))) == 1
        assert list(iter_visits({"Siri": {}})) == []

    def test_route_drift_and_expected_time(self):
        payload = {
            "Siri": {
                "ServiceDelivery": {
                    "StopMonitoringDelivery": [
                        {
                            "MonitoredStopVisit": [
                                visit("MTA NYCT_M15+", "M15-SBS", "2025-07-15T08:05:00-04:00", "2025-07-15T08:03:00-04:00"),
                                visit("MTA NYCT_B63", "B63", "2025-07-15T08:01:00-04:00", journey="J2"),
                                visit("MTA NYCT_M15", "M15", None, "2025-07-15T08:09:00-04:00", journey="J3"),
                            ]
                        }
                    ]
                }
            }
        }
        adapter = SiriStopMonitoringAdapter(None, "https://siri.example.test/api/siri", "key")
        updates = adapter.parse(payload, Query(AgencyMode.BUS, "M15", "400001"))

        assert [u.trip_id for u in updates] == ["J1", "J3"]
        assert updates[0].stop_time_updates[0].arrival_time == NOW + 300
        assert updates[1].stop_time_updates[0].arrival_time == NOW + 540
        assert updates[0].headsign == "SELECT BUS CHELSEA PIERS"
        assert updates[0].direction_id == 1
        assert updates[0].stop_ids == ("400001",)

    @pytest.mark.asyncio
    async def test_fetch_sends_monitoring_ref(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"Siri": {"ServiceDelivery": {}}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        adapter = SiriStopMonitoringAdapter(client, "https://siri.example.test/api/siri/", "key")
        assert await adapter.fetch(Query(AgencyMode.BUS, "M15", "400001")) == []

        params = seen[0].url.params
        assert seen[0].url.path == "/api/siri/stop-monitoring.json"
        assert params["MonitoringRef"] == "400001"
        assert params["key"] == "key"


class TestBusMinutes:
    """NOW + 4.5h is 12:30 PM in New York."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("in 18 mins", 18),
            ("1 min", 1),
            ("APPROACHING", 0),
            ("", 0),
            ("12:50 PM", 20),
            ("12:10 PM", 0),
            ("8:00 AM", 19 * 60 + 30),
            ("1:05 pm", 35),
        ],
    )
    def test_parse(self, localizer, text, expected):
        assert parse_minutes(text, localizer, NOW + 4.5 * 3600) == expected

    def test_garbage(self, localizer):
        with pytest.raises(DecodeError):
            parse_minutes("whenever", localizer, NOW)


RAIL_ITEMS = {
    "STATION_2CHAR": "NY",
    "ITEMS": [
        {
            "TRAIN_ID": "3837",
            "LINE": "Northeast Corridor Line",
            "DESTINATION": "Trenton &#9992",
            "TRACK": "3",
            "SCHED_DEP_DATE": "15-Jul-2025 08:30:00 AM",
            "SEC_LATE": "120",
            "STATUS": "ALL ABOARD",
            "STOPS": [
                {"STATION_2CHAR": "NY", "TIME": "15-Jul-2025 08:30:00 AM"},
                {"STATION_2CHAR": "SE", "TIME": "15-Jul-2025 08:40:00 AM"},
                {"STATION_2CHAR": "NP", "TIME": "15-Jul-2025 08:48:00 AM"},
            ],
        },
        {
            "TRAIN_ID": "6211",
            "LINE": "Morris & Essex Line",
            "DESTINATION": "Dover",
            "TRACK": "",
            "SCHED_DEP_DATE": "15-Jul-2025 08:35:00 AM",
            "SEC_LATE": "0",
            "STOPS": [{"STATION_2CHAR": "SE", "TIME": "15-Jul-2025 08:45:00 AM"}],
        },
    ],
}


@pytest.mark.asyncio
class TestNjtRailAdapter:
    def rail_client(self, calls):
        def handler(request):
            calls.append(request.url.path.rsplit("/", 1)[-1])
            data = form(request)
            if request.url.path.endswith("/getToken"):
                assert data == {"username": "rider", "password": "secret"}
                return httpx.Response(200, json={"Authenticated": "True", "UserToken": f"tok{calls.count('getToken')}"})
            if data["token"] == "tok1":
                return httpx.Response(401, json={"errorMessage": "Invalid token"})
            assert data["station"] == "NY"
            return httpx.Response(200, json=RAIL_ITEMS)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def test_reauthenticates_once_and_parses(self, clock, localizer):
        calls = []
        adapter = NjtRailAdapter(
            self.rail_client(calls), RAIL_BASE, "rider", "secret", TokenCache(clock=clock), localizer
        )
        query = Query(AgencyMode.NJT_RAIL, "Northeast Corridor", "NY", destination_stop_id="NP")

        updates = await adapter.fetch(query)

        assert calls == ["getToken", "getScheduleWithStops", "getToken", "getScheduleWithStops"]
        assert [u.trip_id for u in updates] == ["3837", "6211"]

        trip = updates[0]
        assert trip.headsign == "Trenton"
        origin = trip.find_stop("NY")
        assert origin.departure_time == NOW + 30 * 60 + 120
        assert origin.delay_seconds == 120
        assert origin.track == "3"
        assert trip.find_stop("NP").arrival_time == NOW + 48 * 60

        # Origin missing from STOPS is prepended
        assert updates[1].stop_ids == ("NY", "SE")

        matches = match_trips(query, updates)
        assert [m.trip.trip_id for m in matches] == ["3837"]
        assert matches[0].destination.arrival_time == NOW + 48 * 60

    async def test_token_message_counts_as_rejection(self, clock, localizer):
        def handler(request):
            if request.url.path.endswith("/getToken"):
                return httpx.Response(200, json={"UserToken": "tok"})
            return httpx.Response(200, json={"errorMessage": "Token has expired"})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        adapter = NjtRailAdapter(client, RAIL_BASE, "rider", "secret", TokenCache(clock=clock), localizer)

        with pytest.raises(AuthFailure):
            await adapter.fetch(Query(AgencyMode.NJT_RAIL, "", "NY"))

    async def test_malformed_item(self, localizer):
        adapter = NjtRailAdapter(None, RAIL_BASE, "rider", "secret", TokenCache(), localizer)
        with pytest.raises(DecodeError):
            adapter.parse({"ITEMS": [{"TRAIN_ID": "1", "SCHED_DEP_DATE": "tomorrow-ish"}]}, "NY")

    @pytest.mark.parametrize(
        "payload",
        [
            {"ITEMS": [{"TRAIN_ID": "3821", "SCHED_DEP_DATE": None}]},
            {"ITEMS": [{"TRAIN_ID": "3821", "SCHED_DEP_DATE": 1752582600}]},
            {"ITEMS": ["3821"]},
            {"ITEMS": {"TRAIN_ID": "3821"}},
            {"ITEMS": [{"TRAIN_ID": "3821", "SCHED_DEP_DATE": "15-Jul-2025 08:30:00 AM", "STOPS": ["NY"]}]},
            {"ITEMS": [{"TRAIN_ID": "3821", "SCHED_DEP_DATE": "15-Jul-2025 08:30:00 AM", "STOPS": [{"STATION_2CHAR": "SE", "TIME": 5}]}]},
        ],
    )
    async def test_wrong_types_are_decode_errors(self, localizer, payload):
        adapter = NjtRailAdapter(None, RAIL_BASE, "rider", "secret", TokenCache(), localizer)
        with pytest.raises(DecodeError):
            adapter.parse(payload, "NY")


@pytest.mark.asyncio
class TestNjtBusAdapter:
    async def test_departures(self, clock, localizer):
        seen = []

        def handler(request):
            seen.append((request.url.path.rsplit("/", 1)[-1], form(request)))
            if request.url.path.endswith("/authenticateUser"):
                return httpx.Response(200, json={"Authenticated": "True", "UserToken": "bus-token"})
            return httpx.Response(
                200,
                json={
                    "DVTrip": [
                        {"public_route": "158", "header": "158 NEW YORK", "departuretime": "in 7 mins", "internal_trip_number": "991"},
                        {"public_route": "158", "header": "158 NEW YORK", "departuretime": "APPROACHING", "internal_trip_number": "990"},
                    ]
                },
            )

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        adapter = NjtBusAdapter(client, BUS_BASE, "rider", "secret", TokenCache(clock=clock), localizer)
        query = Query(AgencyMode.NJT_BUS, "158", "20496", direction="New York")

        updates = await adapter.fetch(query)

        assert [u.trip_id for u in updates] == ["991", "990"]
        assert updates[0].stop_time_updates[0].departure_time == NOW + 7 * 60
        assert updates[1].stop_time_updates[0].departure_time == NOW
        assert updates[0].headsign == "158 NEW YORK"
        assert seen[1][1] == {"token": "bus-token", "stop": "20496", "route": "158", "direction": "New York"}

    async def test_rejected_credentials(self, clock, localizer):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"Authenticated": "False"}))
        )
        adapter = NjtBusAdapter(client, BUS_BASE, "rider", "secret", TokenCache(clock=clock), localizer)
        with pytest.raises(AuthFailure):
            await adapter.fetch(Query(AgencyMode.NJT_BUS, "158", "20496"))

    def test_bus_at_stop_survives_merge(self, clock, localizer):
        adapter = NjtBusAdapter(None, BUS_BASE, "rider", "secret", TokenCache(clock=clock), localizer)
        query = Query(AgencyMode.NJT_BUS, "158", "20496")
        clock.advance(30.25)

        updates = adapter.parse(
            {
                "DVTrip": [
                    {"public_route": "158", "header": "158 NEW YORK", "departuretime": "APPROACHING", "internal_trip_number": "990"},
                    {"public_route": "158", "header": "158 NEW YORK", "departuretime": "8:00 AM", "internal_trip_number": "991"},
                ]
            },
            query,
        )
        now = localizer.now()
        arrivals = Reconciler().merge([], live_arrivals(match_trips(query, updates), now), now)

        assert [a.source_trip_id for a in arrivals] == ["990", "991"]
        assert [a.minutes_until for a in arrivals] == [0, 0]
