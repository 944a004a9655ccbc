"""
Service alerts from the subway alerts GTFS-RT feed.

Alerts are metadata attached to a response, never merged into arrivals.
The decoded feed is cached for a minute; when a refresh fails the last
good copy is served instead.
"""

import time
from typing import List, Optional

import httpx
import structlog

from transit_eta.core.exceptions import TransitEtaException
from transit_eta.core.models import Alert
from transit_eta.feeds.base import FeedAdapter
from transit_eta.feeds.gtfs import decode_feed
from transit_eta.utils.cache import Clock, TTLCache

logger = structlog.get_logger()

CACHE_KEY = "subway-alerts"
PREFERRED_LANGUAGES = ("en", "en-html")


def pick_translation(translated) -> str:
    """English text of a TranslatedString, else the first translation."""
    translations = list(translated.translation)
    if not translations:
        return ""
    for translation in translations:
        if translation.language in PREFERRED_LANGUAGES:
            return translation.text
    return translations[0].text


def parse_alerts(feed) -> List[Alert]:
    alerts = []
    for entity in feed.entity:
        if not entity.HasField("alert"):
            continue
        alert = entity.alert
        routes = set()
        for informed in alert.informed_entity:
            if informed.route_id:
                routes.add(informed.route_id)
            if informed.HasField("trip") and informed.trip.route_id:
                routes.add(informed.trip.route_id)
        alerts.append(
            Alert(
                header=pick_translation(alert.header_text),
                description=pick_translation(alert.description_text),
                route_ids=tuple(sorted(routes)),
            )
        )
    return alerts


class AlertsClient(FeedAdapter):
    source = "alerts"

    def __init__(
        self,
        client: httpx.AsyncClient,
        feed_url: str,
        api_key: Optional[str] = None,
        ttl: float = 60,
        clock: Clock = time.time,
        cache: Optional[TTLCache] = None,
    ):
        super().__init__(client)
        self.feed_url = feed_url
        self.api_key = api_key
        self.ttl = ttl
        self.cache = cache if cache is not None else TTLCache(default_ttl=ttl, clock=clock)
        # Outlives the TTL entry; served only when a refresh fails
        self._last_good: Optional[List[Alert]] = None

    async def all_alerts(self) -> List[Alert]:
        cached = await self.cache.get(CACHE_KEY)
        if cached is not None:
            return cached

        headers = {"x-api-key": self.api_key} if self.api_key else None
        try:
            response = await self._get(self.feed_url, headers=headers)
            alerts = parse_alerts(decode_feed(response.content, self.source))
        except TransitEtaException as e:
            logger.warning(
                "Alert refresh failed, serving last copy", error=e.detail, cached=self._last_good is not None
            )
            return self._last_good or []

        await self.cache.set(CACHE_KEY, alerts, ex=self.ttl)
        self._last_good = alerts
        logger.debug("Refreshed alerts", count=len(alerts))
        return alerts

    async def for_route(self, route_id: str) -> List[Alert]:
        return [a for a in await self.all_alerts() if route_id in a.route_ids]
