"""
Shared plumbing for feed adapters: HTTP access, time normalization and the
adapter contract.

Every adapter turns one upstream source into a list of RawTripUpdate.
Nothing above this layer sees wire-format fields or unnormalized times.
"""

from typing import Any, Dict, List, Mapping, Optional

import httpx
import structlog

from transit_eta.core.exceptions import DecodeError, UpstreamUnavailable
from transit_eta.core.metrics import UPSTREAM_REQUESTS
from transit_eta.core.models import Query, RawTripUpdate

logger = structlog.get_logger()

USER_AGENT = "Mozilla/5.0 (compatible; commute-eta/1.0)"


def decode_time(value: Any, source: str = "feed") -> Optional[int]:
    """
    Normalize an upstream time value to signed integer seconds.

    Accepts plain integers, decimal strings and 64-bit values split into
    {"low", "high"} 32-bit words. Returns None for a missing value and
    raises DecodeError for anything else.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise DecodeError(source, f"boolean is not a time value: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise DecodeError(source, f"fractional time value: {value!r}")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text, 10)
        except ValueError:
            raise DecodeError(source, f"non-numeric time string: {value!r}") from None
    if isinstance(value, Mapping) and "low" in value:
        low = value.get("low")
        high = value.get("high", 0) or 0
        if not isinstance(low, int) or not isinstance(high, int):
            raise DecodeError(source, f"malformed 64-bit time value: {value!r}")
        combined = ((high & 0xFFFFFFFF) << 32) | (low & 0xFFFFFFFF)
        if combined >= 1 << 63 and not value.get("unsigned", False):
            combined -= 1 << 64
        return combined
    raise DecodeError(source, f"unsupported time encoding: {type(value).__name__}")


async def request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    source: str,
    **kwargs,
) -> httpx.Response:
    """Issue one upstream call, mapping transport errors and non-2xx to UpstreamUnavailable."""
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        UPSTREAM_REQUESTS.labels(source=source, outcome="timeout").inc()
        logger.warning("Upstream timed out", source=source, url=url)
        raise UpstreamUnavailable(source, f"timeout: {e}") from e
    except httpx.HTTPError as e:
        UPSTREAM_REQUESTS.labels(source=source, outcome="error").inc()
        logger.warning("Upstream request failed", source=source, url=url, error=str(e))
        raise UpstreamUnavailable(source, str(e)) from e

    if response.is_error:
        UPSTREAM_REQUESTS.labels(source=source, outcome=str(response.status_code)).inc()
        logger.warning("Upstream returned error status", source=source, status=response.status_code)
        raise UpstreamUnavailable(
            source,
            f"HTTP {response.status_code}: {response.text[:100]}",
            upstream_status=response.status_code,
        )

    UPSTREAM_REQUESTS.labels(source=source, outcome="ok").inc()
    return response


def parse_json(response: httpx.Response, source: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise DecodeError(source, f"invalid JSON: {e}") from e


class FeedAdapter:
    """Base class for all upstream adapters."""

    source = "feed"

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def fetch(self, query: Query) -> List[RawTripUpdate]:
        raise NotImplementedError

    async def _get(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs) -> httpx.Response:
        merged = {"User-Agent": USER_AGENT}
        if headers:
            merged.update(headers)
        return await request(self.client, "GET", url, self.source, headers=merged, **kwargs)

    async def _post_form(self, url: str, data: Dict[str, str]) -> httpx.Response:
        return await request(
            self.client,
            "POST",
            url,
            self.source,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded", "User-Agent": USER_AGENT},
        )
