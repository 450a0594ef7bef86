"""
HTTP health checks for the updater's own service.

Used by the release controller after a deploy or rollback, and by the
`containerpulse health` command.
"""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class HttpHealthChecker:
    """
    Polls a liveness URL until it answers 2xx or the attempts run out.

    Args:
        url: liveness endpoint (e.g. http://localhost:3000/api/health)
        attempts: number of polls before giving up
        interval: seconds between polls
        timeout: per-request timeout in seconds
    """

    def __init__(self, url: str, attempts: int = 30, interval: float = 2.0, timeout: float = 5.0):
        self.url = url
        self.attempts = attempts
        self.interval = interval
        self.timeout = timeout

    async def check_once(self, client: Optional[httpx.AsyncClient] = None) -> bool:
        """Single probe; connection errors and non-2xx count as unhealthy"""
        if client is None:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as own_client:
                return await self.check_once(own_client)
        try:
            response = await client.get(self.url)
        except httpx.HTTPError as e:
            logger.debug(f"Health probe to {self.url} failed: {e}")
            return False
        return response.is_success

    async def wait_healthy(self, attempts: Optional[int] = None) -> bool:
        """
        Poll until healthy.

        Returns:
            True on the first 2xx answer, False after `attempts` failures
        """
        attempts = attempts or self.attempts
        logger.info(f"Checking health at {self.url} (up to {attempts} attempts)")

        client_kwargs = {
            'timeout': httpx.Timeout(self.timeout),
            'limits': httpx.Limits(max_connections=1, max_keepalive_connections=0),
        }
        async with httpx.AsyncClient(**client_kwargs) as client:
            for attempt in range(1, attempts + 1):
                if await self.check_once(client):
                    logger.info(f"Service is healthy (attempt {attempt}/{attempts})")
                    return True
                if attempt < attempts:
                    await asyncio.sleep(self.interval)

        logger.error(f"Health check failed after {attempts} attempts")
        return False
