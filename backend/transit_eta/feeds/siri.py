"""
SIRI StopMonitoring adapter for legacy bus tracking.
"""

from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import httpx
import structlog

from transit_eta.core.exceptions import DecodeError
from transit_eta.core.models import Query, RawTripUpdate, StopTimeUpdate
from transit_eta.feeds.base import FeedAdapter, parse_json
from transit_eta.matching.policy import route_loose

logger = structlog.get_logger()


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _text(value: Any) -> Optional[str]:
    """SIRI v2 wraps some strings as [{"value": ...}] or a bare list."""
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("value")
    return str(value) if value is not None else None


def parse_iso_time(value: Optional[str], source: str = "siri") -> Optional[int]:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        stamp = datetime.fromisoformat(text)
    except ValueError:
        raise DecodeError(source, f"bad timestamp {value!r}") from None
    if stamp.tzinfo is None:
        raise DecodeError(source, f"timestamp without offset {value!r}")
    return int(stamp.timestamp())


def iter_visits(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    """
    Yield every MonitoredStopVisit in the payload.

    Works whether the response has a top-level 'Siri' key or not, and
    whether StopMonitoringDelivery is a list or a single dict.
    """
    if not isinstance(payload, dict):
        return
    root = payload.get("Siri", payload)
    delivery = root.get("ServiceDelivery") if isinstance(root, dict) else None
    if not isinstance(delivery, dict):
        return
    for monitoring in _as_list(delivery.get("StopMonitoringDelivery")):
        if not isinstance(monitoring, dict):
            continue
        for visit in _as_list(monitoring.get("MonitoredStopVisit")):
            if isinstance(visit, dict):
                yield visit


class SiriStopMonitoringAdapter(FeedAdapter):
    source = "siri"

    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: Optional[str]):
        super().__init__(client)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def fetch(self, query: Query) -> List[RawTripUpdate]:
        params = {"MonitoringRef": query.stop_id, "version": "2"}
        if self.api_key:
            params["key"] = self.api_key

        response = await self._get(f"{self.base_url}/stop-monitoring.json", params=params)
        payload = parse_json(response, self.source)
        return self.parse(payload, query)

    def parse(self, payload: Dict[str, Any], query: Query) -> List[RawTripUpdate]:
        updates: List[RawTripUpdate] = []

        for index, visit in enumerate(iter_visits(payload)):
            journey = visit.get("MonitoredVehicleJourney") or {}
            call = journey.get("MonitoredCall") or {}

            line_ref = _text(journey.get("LineRef"))
            published = _text(journey.get("PublishedLineName"))
            if not route_loose(query.route_id, line_ref, published):
                continue

            arrival = parse_iso_time(call.get("ExpectedArrivalTime")) or parse_iso_time(
                call.get("AimedArrivalTime")
            )
            departure = parse_iso_time(call.get("ExpectedDepartureTime")) or parse_iso_time(
                call.get("AimedDepartureTime")
            )
            if arrival is None and departure is None:
                continue

            framed = journey.get("FramedVehicleJourneyRef") or {}
            trip_id = _text(framed.get("DatedVehicleJourneyRef")) or f"siri-{index}"
            direction = _text(journey.get("DirectionRef"))

            updates.append(
                RawTripUpdate(
                    trip_id=trip_id,
                    route_id=published or line_ref,
                    direction_id=int(direction) if direction and direction.isdigit() else None,
                    headsign=_text(journey.get("DestinationName")),
                    stop_time_updates=(
                        # Visits are requested per MonitoringRef; StopPointRef adds an agency prefix
                        StopTimeUpdate(
                            stop_id=query.stop_id,
                            arrival_time=arrival,
                            departure_time=departure,
                        ),
                    ),
                )
            )

        logger.debug("Parsed SIRI visits", stop=query.stop_id, route=query.route_id, trips=len(updates))
        return updates
