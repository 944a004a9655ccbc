"""
GTFS-Realtime feed adapter for subway, commuter rail, PATH and NYC Ferry.
Handles async fetching from the binary protobuf endpoints.
"""

from typing import Callable, Dict, List, Optional

import httpx
import structlog
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2

from transit_eta.core.exceptions import DecodeError, UnsupportedMode
from transit_eta.core.models import Query, RawTripUpdate, StopTimeUpdate
from transit_eta.feeds.base import FeedAdapter, decode_time
from transit_eta.feeds.mta_railroad import read_track

logger = structlog.get_logger()

# Subway route -> feed group key in Settings.subway_feeds
SUBWAY_ROUTE_GROUPS = {
    "1": "123456S", "2": "123456S", "3": "123456S", "4": "123456S",
    "5": "123456S", "6": "123456S", "7": "123456S", "S": "123456S",
    "A": "ACE", "C": "ACE", "E": "ACE",
    "B": "BDFM", "D": "BDFM", "F": "BDFM", "M": "BDFM",
    "G": "G",
    "J": "JZ", "Z": "JZ",
    "N": "NQRW", "Q": "NQRW", "R": "NQRW", "W": "NQRW",
    "L": "L",
    "SIR": "SIR", "SI": "SIR",
}


def subway_feed_url(route_id: str, feeds: Dict[str, str]) -> str:
    group = SUBWAY_ROUTE_GROUPS.get(route_id.upper())
    if group is None or group not in feeds:
        raise UnsupportedMode(f"No feed URL found for route: {route_id}")
    return feeds[group]


def decode_feed(payload: bytes, source: str) -> gtfs_realtime_pb2.FeedMessage:
    """Parse raw protobuf bytes into a FeedMessage."""
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(payload)
    except ProtobufDecodeError as e:
        logger.error("Failed to parse feed", source=source, size=len(payload), error=str(e))
        raise DecodeError(source, str(e)) from e
    return feed


def _event_time(stop_update, event: str, source: str) -> Optional[int]:
    if not stop_update.HasField(event):
        return None
    evt = getattr(stop_update, event)
    if not evt.HasField("time"):
        return None
    return decode_time(evt.time, source) or None


def _event_delay(stop_update) -> Optional[int]:
    for event in ("arrival", "departure"):
        if stop_update.HasField(event) and getattr(stop_update, event).HasField("delay"):
            return getattr(stop_update, event).delay
    return None


def parse_trip_updates(
    feed: gtfs_realtime_pb2.FeedMessage,
    source: str,
    with_tracks: bool = False,
) -> List[RawTripUpdate]:
    """Convert trip-update entities into RawTripUpdate, dropping alerts and vehicles."""
    updates: List[RawTripUpdate] = []

    for entity in feed.entity:
        if not entity.HasField("trip_update"):
            continue

        trip_update = entity.trip_update
        descriptor = trip_update.trip
        stop_updates = []

        for index, stop_update in enumerate(trip_update.stop_time_update):
            stop_updates.append(
                StopTimeUpdate(
                    stop_id=str(stop_update.stop_id),
                    sequence=stop_update.stop_sequence if stop_update.HasField("stop_sequence") else index,
                    arrival_time=_event_time(stop_update, "arrival", source),
                    departure_time=_event_time(stop_update, "departure", source),
                    delay_seconds=_event_delay(stop_update),
                    track=read_track(stop_update) if with_tracks else None,
                )
            )

        updates.append(
            RawTripUpdate(
                trip_id=descriptor.trip_id or entity.id,
                route_id=descriptor.route_id or None,
                direction_id=descriptor.direction_id if descriptor.HasField("direction_id") else None,
                stop_time_updates=tuple(stop_updates),
            )
        )

    return updates


class GtfsRealtimeAdapter(FeedAdapter):
    """Fetches one GTFS-RT endpoint per query and decodes its trip updates."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        source: str,
        url_for: Callable[[Query], str],
        api_key: Optional[str] = None,
        with_tracks: bool = False,
    ):
        super().__init__(client)
        self.source = source
        self.url_for = url_for
        self.api_key = api_key
        self.with_tracks = with_tracks

    async def fetch(self, query: Query) -> List[RawTripUpdate]:
        url = self.url_for(query)
        headers = {"x-api-key": self.api_key} if self.api_key else None

        logger.debug("Fetching GTFS feed", source=self.source, url=url)
        response = await self._get(url, headers=headers)

        feed = decode_feed(response.content, self.source)
        updates = parse_trip_updates(feed, self.source, with_tracks=self.with_tracks)
        logger.debug("Parsed feed", source=self.source, entities=len(feed.entity), trips=len(updates))
        return updates
