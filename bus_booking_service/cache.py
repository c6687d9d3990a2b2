"""
Redis-backed seat lock and booking expiration store.
"""

import json
import logging
from datetime import datetime
from typing import Iterable, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError
from redis.exceptions import ConnectionError as RedisConnectionError

from .config import get_settings
from .utils.exceptions import CacheServiceError

logger = logging.getLogger(__name__)


class CacheKeyBuilder:
    """Helper class for building consistent cache keys."""

    @staticmethod
    def booking_expiration(booking_id: str) -> str:
        """Build key for the TTL entry of a pending booking."""
        return f"booking:expiration:{booking_id}"

    @staticmethod
    def seat_lock(trip_id: str, seat_code: str) -> str:
        """Build key for a seat hold owned by the trip service."""
        return f"seat_lock:{trip_id}:{seat_code}"


class RedisCache:
    """Redis connection manager with the key operations the store needs."""

    def __init__(self):
        self.client: Optional[Redis] = None
        self.pool: Optional[redis.ConnectionPool] = None

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client."""
        settings = get_settings()

        try:
            self.pool = redis.ConnectionPool.from_url(
                settings.redis_url,
                max_connections=settings.redis_max_connections,
                retry_on_timeout=True,
                socket_keepalive=True,
                health_check_interval=30
            )
            self.client = Redis(connection_pool=self.pool)

            await self.client.ping()
            logger.info("Redis store initialized successfully")

        except RedisConnectionError as e:
            logger.error("Failed to connect to Redis: %s", e)
            raise

    async def close(self) -> None:
        """Close Redis connections."""
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        logger.info("Redis store connections closed")

    def _require_client(self) -> Redis:
        if not self.client:
            raise CacheServiceError("Redis client not initialized")
        return self.client

    async def set_with_ttl(self, key: str, ttl: int, value: str) -> None:
        """Store a value that Redis expires after ``ttl`` seconds."""
        try:
            await self._require_client().setex(key, ttl, value)
        except RedisError as e:
            raise CacheServiceError(f"Failed to set key {key}: {e}")

    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        if not keys:
            return 0
        try:
            return await self._require_client().delete(*keys)
        except RedisError as e:
            raise CacheServiceError(f"Failed to delete keys {', '.join(keys)}: {e}")

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        try:
            return bool(await self._require_client().exists(key))
        except RedisError as e:
            raise CacheServiceError(f"Failed to check key {key}: {e}")


class SeatLockStore:
    """
    Seat lock and expiration entries for bookings.

    Pending bookings get a TTL entry that mirrors ``locked_until``. Seat holds
    themselves are written by the trip service; this store only removes them
    when a booking reaches a terminal state.
    """

    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def schedule_expiration(self, booking_id, locked_until: datetime, now: datetime) -> bool:
        """
        Write the expiration entry for a pending booking.

        Returns:
            False when ``locked_until`` is already in the past and nothing was written
        """
        ttl = int((locked_until - now).total_seconds())
        if ttl <= 0:
            logger.warning(f"Skipping expiration entry for booking {booking_id}: lock already elapsed")
            return False

        payload = json.dumps({
            "booking_id": str(booking_id),
            "expiration_time": locked_until.isoformat(),
        })
        await self.cache.set_with_ttl(CacheKeyBuilder.booking_expiration(str(booking_id)), ttl, payload)
        logger.debug(f"Scheduled expiration for booking {booking_id} in {ttl}s")
        return True

    async def clear_expiration(self, booking_id) -> None:
        await self.cache.delete(CacheKeyBuilder.booking_expiration(str(booking_id)))

    async def has_expiration(self, booking_id) -> bool:
        return await self.cache.exists(CacheKeyBuilder.booking_expiration(str(booking_id)))

    async def release_seat_locks(self, trip_id, seat_codes: Iterable[str]) -> int:
        """Delete the per-seat holds for a trip."""
        keys = [CacheKeyBuilder.seat_lock(str(trip_id), code) for code in seat_codes]
        released = await self.cache.delete(*keys)
        logger.debug(f"Released {released} seat lock keys for trip {trip_id}")
        return released


# Global store instance
_cache = RedisCache()


async def init_cache() -> None:
    """Initialize the global Redis connection."""
    await _cache.initialize()


async def close_cache() -> None:
    """Close the global Redis connection."""
    await _cache.close()


def get_seat_lock_store() -> SeatLockStore:
    """Get a seat lock store bound to the global Redis connection."""
    return SeatLockStore(_cache)
