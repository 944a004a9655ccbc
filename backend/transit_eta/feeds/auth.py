"""
Bearer-token handling for the form-authenticated NJ Transit APIs.

Tokens are cached process-wide per API family. Upstream limits how often a
token may be requested, so concurrent refreshes for one family collapse
into a single authentication call, and a rejected token is refreshed
exactly once before the failure is surfaced.
"""

import time
from typing import Awaitable, Callable, Dict, Optional, TypeVar

import httpx
import structlog

from transit_eta.core.exceptions import AuthFailure
from transit_eta.feeds.base import FeedAdapter
from transit_eta.utils.cache import Clock, LoadingCache

logger = structlog.get_logger()

T = TypeVar("T")


class TokenCache:
    """Process-wide token store keyed by API family, with single-flight refresh."""

    def __init__(self, clock: Clock = time.time, default_ttl: float = 12 * 3600):
        self._tokens = LoadingCache(default_ttl=default_ttl, clock=clock)

    async def get(
        self,
        family: str,
        authenticate: Callable[[], Awaitable[str]],
        ttl: Optional[float] = None,
        force: bool = False,
    ) -> str:
        return await self._tokens.get(family, authenticate, force=force, ttl=ttl)

    async def invalidate(self, family: str) -> None:
        await self._tokens.invalidate(family)


class FormAuthAdapter(FeedAdapter):
    """Adapter whose data calls need a token obtained with username/password."""

    family = "form-auth"

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        tokens: TokenCache,
        token_ttl: float,
    ):
        super().__init__(client)
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.tokens = tokens
        self.token_ttl = token_ttl

    def credentials(self) -> Dict[str, str]:
        if not self.username or not self.password:
            raise AuthFailure(self.family, "username/password not configured")
        return {"username": self.username, "password": self.password}

    async def authenticate(self) -> str:
        raise NotImplementedError

    async def with_token(self, call: Callable[[str], Awaitable[T]]) -> T:
        """Run `call` with a cached token; on rejection force one refresh and retry once."""
        token = await self.tokens.get(self.family, self.authenticate, ttl=self.token_ttl)
        try:
            return await call(token)
        except AuthFailure:
            logger.warning("Token rejected, re-authenticating", family=self.family)

        await self.tokens.invalidate(self.family)
        token = await self.tokens.get(self.family, self.authenticate, ttl=self.token_ttl, force=True)
        return await call(token)
