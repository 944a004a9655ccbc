"""
NJ Transit rail and bus departure adapters.

Both APIs take form-encoded POSTs authenticated with a per-family token:
rail uses getToken/getScheduleWithStops, bus uses
authenticateUser/getBusDV. Their tokens are independent.
"""

import math
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx
import structlog

from transit_eta.core.exceptions import AuthFailure, DecodeError, UpstreamUnavailable
from transit_eta.core.models import Query, RawTripUpdate, StopTimeUpdate
from transit_eta.feeds.auth import FormAuthAdapter, TokenCache
from transit_eta.feeds.base import parse_json
from transit_eta.utils.localtime import TimeLocalizer

logger = structlog.get_logger()

NJT_DATE_FORMAT = "%d-%b-%Y %I:%M:%S %p"  # 19-Dec-2025 07:46:00 AM
AUTH_REJECTED_STATUSES = {401, 403}


def _raise_if_rejected(payload: Any, family: str) -> None:
    if isinstance(payload, dict):
        message = str(payload.get("errorMessage") or payload.get("Message") or "")
        if "token" in message.lower() or "authenticat" in message.lower():
            raise AuthFailure(family, message)


def parse_minutes(text: str, localizer: TimeLocalizer, now: Optional[float] = None) -> int:
    """
    Minutes until departure from a bus display string.

    Understands "in 18 mins", "APPROACHING" and clock times like
    "12:50 PM"; a clock time more than 30 minutes in the past is taken to
    be tomorrow's.
    """
    now = localizer.now() if now is None else now
    clean = (text or "").strip().lower()
    if not clean or "approaching" in clean or clean in ("now", "due"):
        return 0

    relative = re.search(r"(\d+)\s*min", clean)
    if relative:
        return int(relative.group(1))

    clock = re.match(r"^(\d{1,2}):(\d{2})\s*([ap]\.?m\.?)?$", clean)
    if clock is None:
        raise DecodeError("njt-bus", f"unrecognized departure time {text!r}")

    hours, minutes = int(clock.group(1)), int(clock.group(2))
    period = (clock.group(3) or "").replace(".", "")
    if period == "pm" and hours < 12:
        hours += 12
    if period == "am" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        raise DecodeError("njt-bus", f"unrecognized departure time {text!r}")

    wall_now = localizer.wall_clock(now)
    departure = wall_now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if departure < wall_now - timedelta(minutes=30):
        departure += timedelta(days=1)
    return max(0, math.floor((departure - wall_now).total_seconds() / 60))


class NjtRailAdapter(FormAuthAdapter):
    source = "njt-rail"
    family = "njt-rail"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        tokens: TokenCache,
        localizer: TimeLocalizer,
        token_ttl: float = 12 * 3600,
    ):
        super().__init__(client, base_url, username, password, tokens, token_ttl)
        self.localizer = localizer

    async def authenticate(self) -> str:
        response = await self._post_form(f"{self.base_url}/getToken", self.credentials())
        payload = parse_json(response, self.source)
        token = payload.get("UserToken") if isinstance(payload, dict) else None
        if not token:
            raise AuthFailure(self.family, "getToken returned no UserToken")
        logger.info("Refreshed NJT rail token")
        return token

    async def fetch(self, query: Query) -> List[RawTripUpdate]:
        async def call(token: str) -> Any:
            data = dict(self.credentials(), token=token, station=query.stop_id)
            try:
                response = await self._post_form(f"{self.base_url}/getScheduleWithStops", data)
            except UpstreamUnavailable as e:
                if e.upstream_status in AUTH_REJECTED_STATUSES:
                    raise AuthFailure(self.family, e.detail) from e
                raise
            payload = parse_json(response, self.source)
            _raise_if_rejected(payload, self.family)
            return payload

        payload = await self.with_token(call)
        return self.parse(payload, query.stop_id)

    def parse(self, payload: Any, station: str) -> List[RawTripUpdate]:
        if not isinstance(payload, dict):
            raise DecodeError(self.source, "expected a JSON object")
        items = payload.get("ITEMS")
        if items is None and isinstance(payload.get("STATION"), dict):
            items = payload["STATION"].get("ITEMS")
        if items is None:
            return []
        if not isinstance(items, list):
            raise DecodeError(self.source, "ITEMS is not a list")

        updates = []
        for item in items:
            try:
                updates.append(self._parse_item(item, station))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise DecodeError(self.source, f"bad departure item: {e}") from e
        return updates

    def _parse_item(self, item: Dict[str, Any], station: str) -> RawTripUpdate:
        if not isinstance(item, dict):
            raise TypeError(f"item is {type(item).__name__}, not an object")
        scheduled = item["SCHED_DEP_DATE"]
        if not isinstance(scheduled, str):
            raise TypeError(f"SCHED_DEP_DATE is {type(scheduled).__name__}, not a string")

        departure = self.localizer.parse(scheduled, NJT_DATE_FORMAT)
        delay = int(item.get("SEC_LATE") or 0) or None
        track = (item.get("TRACK") or "").strip() or None
        if departure is not None and delay:
            departure += delay

        origin = StopTimeUpdate(
            stop_id=station,
            departure_time=departure,
            delay_seconds=delay,
            track=track,
        )

        stop_updates: List[StopTimeUpdate] = []
        seen_origin = False
        for stop in item.get("STOPS") or []:
            if not isinstance(stop, dict):
                raise TypeError(f"stop is {type(stop).__name__}, not an object")
            code = str(stop.get("STATION_2CHAR") or "")
            sequence = len(stop_updates)
            if code == station and not seen_origin:
                seen_origin = True
                stop_updates.append(
                    StopTimeUpdate(
                        stop_id=code,
                        sequence=sequence,
                        departure_time=origin.departure_time,
                        delay_seconds=delay,
                        track=track,
                    )
                )
                continue
            stop_time = stop.get("TIME")
            stop_updates.append(
                StopTimeUpdate(
                    stop_id=code,
                    sequence=sequence,
                    arrival_time=self.localizer.parse(stop_time, NJT_DATE_FORMAT) if stop_time else None,
                )
            )

        if not seen_origin:
            stop_updates = [
                StopTimeUpdate(
                    stop_id=origin.stop_id,
                    sequence=0,
                    departure_time=origin.departure_time,
                    delay_seconds=delay,
                    track=track,
                )
            ] + [
                StopTimeUpdate(
                    stop_id=u.stop_id,
                    sequence=u.sequence + 1,
                    arrival_time=u.arrival_time,
                )
                for u in stop_updates
            ]

        return RawTripUpdate(
            trip_id=str(item.get("TRAIN_ID") or ""),
            route_id=item.get("LINE"),
            headsign=_clean_destination(item.get("DESTINATION")),
            stop_time_updates=tuple(stop_updates),
        )


def _clean_destination(value: Optional[str]) -> Optional[str]:
    """Strip HTML entities NJT appends to destinations (e.g. '&#9992' for airport)."""
    if not value:
        return None
    return re.sub(r"&#\d+;?", "", value).strip()


class NjtBusAdapter(FormAuthAdapter):
    source = "njt-bus"
    family = "njt-bus"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        tokens: TokenCache,
        localizer: TimeLocalizer,
        token_ttl: float = 23 * 3600,
    ):
        super().__init__(client, base_url, username, password, tokens, token_ttl)
        self.localizer = localizer

    async def authenticate(self) -> str:
        response = await self._post_form(f"{self.base_url}/authenticateUser", self.credentials())
        payload = parse_json(response, self.source)
        if not isinstance(payload, dict) or payload.get("Authenticated") != "True" or not payload.get("UserToken"):
            raise AuthFailure(self.family, "authenticateUser rejected credentials")
        logger.info("Refreshed NJT bus token")
        return payload["UserToken"]

    async def fetch(self, query: Query) -> List[RawTripUpdate]:
        async def call(token: str) -> Any:
            data = {
                "token": token,
                "stop": query.stop_id,
                "route": query.route_id or "",
                "direction": query.direction or "",
                "IP": "",
            }
            try:
                response = await self._post_form(f"{self.base_url}/getBusDV", data)
            except UpstreamUnavailable as e:
                if e.upstream_status in AUTH_REJECTED_STATUSES:
                    raise AuthFailure(self.family, e.detail) from e
                raise
            payload = parse_json(response, self.source)
            _raise_if_rejected(payload, self.family)
            return payload

        payload = await self.with_token(call)
        return self.parse(payload, query)

    def parse(self, payload: Any, query: Query, now: Optional[float] = None) -> List[RawTripUpdate]:
        if not isinstance(payload, dict):
            raise DecodeError(self.source, "expected a JSON object")
        now = self.localizer.now() if now is None else now
        base = int(now)

        updates = []
        for index, trip in enumerate(payload.get("DVTrip") or []):
            minutes = parse_minutes(str(trip.get("departuretime") or ""), self.localizer, now)
            trip_id = trip.get("internal_trip_number") or f"{trip.get('public_route', 'bus')}-{index}"
            updates.append(
                RawTripUpdate(
                    trip_id=str(trip_id),
                    route_id=trip.get("public_route") or query.route_id,
                    headsign=trip.get("header"),
                    stop_time_updates=(
                        StopTimeUpdate(stop_id=query.stop_id, departure_time=base + minutes * 60),
                    ),
                )
            )
        return updates
