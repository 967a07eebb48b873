"""
Per-domain pacing for live fetches.

Every worker shares one Redis key per domain. Claiming the key with
SET NX PX is the permission to hit the site; a worker that loses the race
sleeps out the key's remaining TTL and tries again. Cache hits never get
here, so only real requests to the site are spaced out.
"""
import asyncio
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "pacing:"

# PTTL answers -1/-2 for a key without TTL or one that just expired
MIN_POLL_SECONDS = 0.05


def _default_client() -> redis.Redis:
    return redis.from_url(settings.redis_url, socket_connect_timeout=2)


class DomainPacer:
    """Keeps consecutive fetches to one domain at least `min_interval` seconds apart."""

    def __init__(
        self,
        min_interval: Optional[float] = None,
        client_factory: Callable[[], redis.Redis] = _default_client,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = (
            settings.scrape_domain_min_interval_seconds if min_interval is None else min_interval
        )
        self.client_factory = client_factory
        self.sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.min_interval > 0

    async def wait(self, domain: str) -> float:
        """
        Block until `domain` may be fetched again. Returns the seconds waited.

        Pacing is best effort: with Redis unreachable the fetch goes ahead
        unpaced and a warning is logged.
        """
        if not self.enabled or not domain:
            return 0.0

        key = f"{KEY_PREFIX}{domain}"
        interval_ms = max(int(self.min_interval * 1000), 1)
        waited = 0.0
        client = self.client_factory()
        try:
            while not await client.set(key, "1", px=interval_ms, nx=True):
                remaining_ms = await client.pttl(key)
                delay = max(remaining_ms / 1000, MIN_POLL_SECONDS)
                await self.sleep(delay)
                waited += delay
        except redis.RedisError as exc:
            logger.warning("domain_pacing_unavailable", domain=domain, error=str(exc))
        finally:
            await client.aclose()

        if waited:
            logger.info("domain_paced", domain=domain, waited_seconds=round(waited, 3))
        return waited
