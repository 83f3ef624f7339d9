"""Shared pipeline primitives: risk levels, channels, errors, and Redis/HTTP client helpers."""

from enum import Enum
import asyncio
import logging
from typing import AsyncGenerator, Awaitable, Iterable, Optional, TypeVar

import httpx
import redis.asyncio as redis

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RiskLevel(Enum):
    """Ordinal risk classification. INCONCLUSIVE sits outside the LOW < MEDIUM < HIGH order."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    INCONCLUSIVE = "INCONCLUSIVE"

    @property
    def severity(self) -> int:
        """Rank used for most-severe-wins; INCONCLUSIVE ranks below LOW."""
        return _SEVERITY[self]

    @staticmethod
    def most_severe(levels: Iterable["RiskLevel"], default: Optional["RiskLevel"] = None) -> "RiskLevel":
        """Return the most severe level, ignoring INCONCLUSIVE.

        Args:
            levels: Levels to combine.
            default: Returned when nothing numeric was given (LOW if unset).

        Returns:
            RiskLevel: The maximum of the numeric levels.
        """
        result: RiskLevel = default or RiskLevel.LOW
        for level in levels:
            if level is RiskLevel.INCONCLUSIVE:
                continue
            if level.severity > result.severity:
                result = level
        return result


_SEVERITY = {
    RiskLevel.INCONCLUSIVE: -1,
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
}


class Channel(Enum):
    """Worker pub/sub channels"""
    # Input
    ANALYZE = "analyze"
    # Results
    REPORT = "report"


# ---------- Errors ----------

class TrustScanError(Exception):
    """Base class for pipeline errors."""


class InvalidHostname(TrustScanError, ValueError):
    """Input cannot be reduced to a public, ICANN-registered hostname."""


class WhoisUnavailable(TrustScanError):
    """No WHOIS server produced a response."""


class WhoisTimeout(WhoisUnavailable):
    """A WHOIS server did not answer in time."""


class TlsHandshakeError(TrustScanError):
    """No TLS session could be established with the target."""


class TlsTimeout(TlsHandshakeError):
    """The TLS connection or handshake did not complete in time."""


class GeoLookupFailure(TrustScanError):
    """Geolocation lookup for a single address failed."""


# ---------- Async helpers ----------

async def run_with_deadline(aw: Awaitable[T], timeout: float) -> Optional[T]:
    """Run an awaitable as a task and give up on it after ``timeout`` seconds.

    The losing task is cancelled and awaited before returning, so any
    connection it holds is closed by its own cleanup before the caller moves on.
    The same happens when the caller itself is cancelled while waiting.

    Args:
        aw: Coroutine or awaitable to run.
        timeout: Maximum wait in seconds.

    Returns:
        Optional[T]: The result, or None if the deadline passed first.
    """
    task: asyncio.Task = asyncio.ensure_future(aw)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if task in done:
            return task.result()
        return None
    finally:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                if asyncio.current_task().cancelling():
                    raise
            except Exception as e:
                logger.debug("Abandoned task failed during cancellation: %s", e)


# ---------- Clients ----------

class RedisClient:
    """Async Redis pub/sub accessor for the worker channels."""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0) -> None:
        self.client: redis.Redis = redis.Redis(host=host, port=port, db=db, decode_responses=False)

    async def get(self) -> redis.Redis:
        """Return the connected Redis client."""
        if not await self.client.ping():
            raise ConnectionError("Redis client is not connected")
        return self.client

    async def close(self) -> None:
        """Close the Redis client, if open."""
        await self.client.aclose()

    async def subscribe(self, listening_channel: Channel) -> AsyncGenerator[str, None]:
        """Yield each message published on ``listening_channel``.

        Raises:
            ValueError: If no listening channel is given.
        """
        if not listening_channel:
            raise ValueError("No listening channel configured.")

        r: redis.Redis = await self.get()
        pubsub = r.pubsub()
        await pubsub.subscribe(listening_channel.value)
        try:
            async for msg in pubsub.listen():
                if msg.get("type") != "message":
                    continue
                data: Optional[bytes] = msg.get("data")
                yield data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else str(data)
        finally:
            await pubsub.aclose()

    async def publish(self, target_channel: Channel, payload: str) -> None:
        """Publish a payload to a target channel.

        Args:
            target_channel: Channel to publish to.
            payload: String payload.
        """
        if not target_channel:
            raise ValueError("No target channel specified for publish.")
        if not payload:
            raise ValueError("No payload specified for publish.")

        r: redis.Redis = await self.get()
        await r.publish(target_channel.value, payload)


class HTTPClient:
    """Factory for the async HTTP client shared by one Processor."""

    @staticmethod
    def create(timeout_s: float, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
        """Build an httpx client that never follows redirects on its own."""
        return httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s, connect=min(timeout_s, 5.0)),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            follow_redirects=False,
            transport=transport,
        )
