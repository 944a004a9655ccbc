"""
Wires adapters, schedule snapshots and the reconciler from Settings.
"""

from typing import Dict

import httpx

from transit_eta.config import Settings
from transit_eta.core.models import AgencyMode
from transit_eta.feeds.alerts import AlertsClient
from transit_eta.feeds.auth import TokenCache
from transit_eta.feeds.base import FeedAdapter
from transit_eta.feeds.bus_gtfs import BusFleetAdapter
from transit_eta.feeds.gtfs import GtfsRealtimeAdapter, subway_feed_url
from transit_eta.feeds.njt import NjtBusAdapter, NjtRailAdapter
from transit_eta.feeds.siri import SiriStopMonitoringAdapter
from transit_eta.matching.policy import schedule_families
from transit_eta.schedule.store import ScheduleBook, ScheduleStore
from transit_eta.services.arrivals import ArrivalService
from transit_eta.services.reconciler import Reconciler
from transit_eta.utils.cache import TTLCache
from transit_eta.utils.localtime import TimeLocalizer


def build_adapters(
    settings: Settings,
    client: httpx.AsyncClient,
    localizer: TimeLocalizer,
    tokens: TokenCache,
    feed_cache: TTLCache,
) -> Dict[AgencyMode, FeedAdapter]:
    key = settings.mta_api_key

    def fixed(url: str):
        return lambda query: url

    return {
        AgencyMode.SUBWAY: GtfsRealtimeAdapter(
            client, "subway", lambda query: subway_feed_url(query.route_id, settings.subway_feeds), api_key=key
        ),
        AgencyMode.LIRR: GtfsRealtimeAdapter(
            client, "lirr", fixed(settings.lirr_feed_url), api_key=key, with_tracks=True
        ),
        AgencyMode.MNR: GtfsRealtimeAdapter(
            client, "mnr", fixed(settings.mnr_feed_url), api_key=key, with_tracks=True
        ),
        AgencyMode.PATH: GtfsRealtimeAdapter(client, "path", fixed(settings.path_feed_url)),
        AgencyMode.FERRY: GtfsRealtimeAdapter(client, "nyc-ferry", fixed(settings.ferry_feed_url)),
        AgencyMode.BUS: SiriStopMonitoringAdapter(client, settings.siri_base_url, settings.mta_bus_api_key),
        AgencyMode.MTA_BUS: BusFleetAdapter(
            client, settings.bus_feed_url, settings.mta_bus_api_key, feed_cache, ttl=settings.bus_feed_ttl
        ),
        AgencyMode.NJT_RAIL: NjtRailAdapter(
            client,
            settings.njt_rail_base_url,
            settings.njt_username,
            settings.njt_password,
            tokens,
            localizer,
            token_ttl=settings.njt_rail_token_ttl,
        ),
        AgencyMode.NJT_BUS: NjtBusAdapter(
            client,
            settings.njt_bus_base_url,
            settings.njt_username,
            settings.njt_password,
            tokens,
            localizer,
            token_ttl=settings.njt_bus_token_ttl,
        ),
    }


def build_schedule_book(settings: Settings, localizer: TimeLocalizer) -> ScheduleBook:
    families = sorted(set(schedule_families().values()))
    stores = {
        family: ScheduleStore(family, settings.schedule_db_dir, settings.schedule_scratch_dir)
        for family in families
    }
    return ScheduleBook(
        stores,
        localizer,
        limit=settings.schedule_lookahead,
        grace_seconds=settings.scheduled_grace_seconds,
    )


def build_arrival_service(settings: Settings, client: httpx.AsyncClient) -> ArrivalService:
    localizer = TimeLocalizer(settings.timezone)
    tokens = TokenCache()
    feed_cache = TTLCache(default_ttl=settings.bus_feed_ttl)
    adapters = build_adapters(settings, client, localizer, tokens, feed_cache)

    return ArrivalService(
        adapters=adapters,
        schedules=build_schedule_book(settings, localizer),
        reconciler=Reconciler(
            window_seconds=settings.correlation_window_seconds,
            grace_seconds=settings.scheduled_grace_seconds,
            limit=settings.max_arrivals,
        ),
        localizer=localizer,
        alerts=AlertsClient(
            client, settings.alerts_feed_url, api_key=settings.mta_api_key, ttl=settings.alerts_ttl, cache=feed_cache
        ),
        query_timeout=settings.query_timeout,
        alerts_timeout=settings.alerts_timeout,
    )
