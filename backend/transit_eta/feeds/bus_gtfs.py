"""
Fleet-wide MTA bus GTFS-RT feed.

The feed covers every bus at once and is large, so the decoded trip list
is cached process-wide for a short TTL and filtered per query. Concurrent
misses may both refetch; the later write simply wins.
"""

from typing import List, Optional

import httpx
import structlog

from transit_eta.core.models import Query, RawTripUpdate
from transit_eta.feeds.base import FeedAdapter
from transit_eta.feeds.gtfs import decode_feed, parse_trip_updates
from transit_eta.matching.policy import route_agency_prefixed
from transit_eta.utils.cache import TTLCache

logger = structlog.get_logger()

CACHE_KEY = "bus-fleet"


class BusFleetAdapter(FeedAdapter):
    source = "mta-bus-gtfs"

    def __init__(
        self,
        client: httpx.AsyncClient,
        feed_url: str,
        api_key: Optional[str],
        cache: TTLCache,
        ttl: float = 30,
    ):
        super().__init__(client)
        self.feed_url = feed_url
        self.api_key = api_key
        self.cache = cache
        self.ttl = ttl

    async def fleet(self) -> List[RawTripUpdate]:
        cached = await self.cache.get(CACHE_KEY)
        if cached is not None:
            logger.debug("Using cached bus feed", trips=len(cached))
            return cached

        params = {"key": self.api_key} if self.api_key else None
        response = await self._get(self.feed_url, params=params)
        updates = parse_trip_updates(decode_feed(response.content, self.source), self.source)
        await self.cache.set(CACHE_KEY, updates, ex=self.ttl)
        logger.info("Updated bus feed cache", trips=len(updates))
        return updates

    async def fetch(self, query: Query) -> List[RawTripUpdate]:
        updates = await self.fleet()
        return [u for u in updates if route_agency_prefixed(query.route_id, u.route_id)]
