"""Redis service for settings storage, per-player locking and round state."""
import asyncio
import json
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis

from prizegame.config import settings
from prizegame.errors import ErrorCode, GameError


@dataclass
class LockMetrics:
    """Metrics from lock acquisition for telemetry."""

    acquire_ms: float


class RedisService:
    """Redis client for the settings document, player locks and round state."""

    # Key prefixes
    SETTINGS_KEY = "settings:game"
    LOCK_PREFIX = "lock:player:"
    SETTINGS_LOCK_KEY = "lock:settings"
    ROUND_PREFIX = "round:"

    # TTLs in seconds
    LOCK_TTL = settings.lock_ttl_seconds
    ROUND_TTL = settings.round_state_ttl_seconds

    # Settings lock waiting, in seconds
    SETTINGS_LOCK_WAIT = settings.settings_lock_wait_ms / 1000
    SETTINGS_LOCK_RETRY = settings.settings_lock_retry_ms / 1000

    # Lua script for token-safe lock release (compare-and-delete)
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, redis_url: str | None = None):
        self._url = redis_url or settings.redis_url
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected")
        return self._client

    # === Settings document ===

    async def get_settings(self) -> str | None:
        """Raw JSON of the stored settings, None when never saved."""
        return await self.client.get(self.SETTINGS_KEY)

    async def set_settings(self, raw: str) -> None:
        await self.client.set(self.SETTINGS_KEY, raw)

    # === Locks ===

    async def _acquire_lock(self, key: str) -> str | None:
        token = str(uuid.uuid4())
        acquired = await self.client.set(key, token, nx=True, ex=self.LOCK_TTL)
        return token if acquired is True else None

    async def _release_lock(self, key: str, token: str) -> bool:
        result = await self.client.eval(self.RELEASE_LOCK_SCRIPT, 1, key, token)
        return result == 1

    async def acquire_player_lock(self, player_id: str) -> str | None:
        """
        Attempt to acquire per-player lock with unique token.

        Returns token string if lock acquired, None if already locked.
        """
        return await self._acquire_lock(f"{self.LOCK_PREFIX}{player_id}")

    async def release_player_lock(self, player_id: str, token: str) -> bool:
        """Release per-player lock only if token matches."""
        return await self._release_lock(f"{self.LOCK_PREFIX}{player_id}", token)

    @asynccontextmanager
    async def player_lock(self, player_id: str):
        """
        Serialize read-modify-write of one player's round.

        Raises ROUND_IN_PROGRESS if lock cannot be acquired.
        Yields LockMetrics for telemetry.
        """
        t0 = time.monotonic()
        token = await self.acquire_player_lock(player_id)
        if token is None:
            raise GameError(
                ErrorCode.ROUND_IN_PROGRESS,
                "Another action is in progress for this player.",
            )
        metrics = LockMetrics(acquire_ms=(time.monotonic() - t0) * 1000)
        try:
            yield metrics
        finally:
            await self.release_player_lock(player_id, token)

    @asynccontextmanager
    async def settings_lock(self):
        """
        Serialize read-modify-write of the shared settings document.

        Every player and both games write the same document, so stock
        changes and admin saves queue here. Waits up to SETTINGS_LOCK_WAIT,
        then raises ROUND_IN_PROGRESS.
        """
        deadline = time.monotonic() + self.SETTINGS_LOCK_WAIT
        token = await self._acquire_lock(self.SETTINGS_LOCK_KEY)
        while token is None:
            if time.monotonic() >= deadline:
                raise GameError(
                    ErrorCode.ROUND_IN_PROGRESS,
                    "Prize catalog is busy, try again.",
                )
            await asyncio.sleep(self.SETTINGS_LOCK_RETRY)
            token = await self._acquire_lock(self.SETTINGS_LOCK_KEY)
        try:
            yield
        finally:
            await self._release_lock(self.SETTINGS_LOCK_KEY, token)

    # === Round state ===

    def _round_key(self, game: str, player_id: str) -> str:
        return f"{self.ROUND_PREFIX}{game}:{player_id}"

    async def get_round_state(self, game: str, player_id: str) -> dict[str, Any] | None:
        """Load a player's round for one game, None if no round was stored."""
        cached = await self.client.get(self._round_key(game, player_id))
        if cached is None:
            return None
        return json.loads(cached)

    async def save_round_state(self, game: str, player_id: str, state: dict[str, Any]) -> None:
        await self.client.setex(self._round_key(game, player_id), self.ROUND_TTL, json.dumps(state))


# Global instance
redis_service = RedisService()
