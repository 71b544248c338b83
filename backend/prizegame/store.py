"""Settings store collaborators.

Every store speaks the same two calls: load() returns the stored settings or
None when nothing was saved yet, save() replaces the stored settings whole.
Callers go through load_settings() / persist_settings(), which apply the
fallback and failure policy the games rely on.
"""
import json
import logging
from pathlib import Path
from typing import Protocol

import anyio
import httpx
from redis.exceptions import RedisError
from pydantic import ValidationError

from prizegame.config import settings
from prizegame.logic.models import GameSettings, default_game_settings
from prizegame.redis_service import RedisService, redis_service


logger = logging.getLogger(__name__)


class SettingsStoreError(Exception):
    """Raised when a store cannot be read or written."""


class SettingsStore(Protocol):
    """Protocol for settings persistence."""

    async def load(self) -> GameSettings | None:
        ...

    async def save(self, game_settings: GameSettings) -> None:
        ...


def _parse(raw: str | bytes, source: str) -> GameSettings:
    try:
        return GameSettings.model_validate_json(raw)
    except ValidationError as e:
        raise SettingsStoreError(f"Unparsable settings in {source}: {e}") from e


def _dump(game_settings: GameSettings) -> str:
    return json.dumps(game_settings.to_payload())


class RedisSettingsStore:
    """Server-side durable store: the whole document under one Redis key."""

    def __init__(self, service: RedisService | None = None):
        self._service = service or redis_service

    async def load(self) -> GameSettings | None:
        try:
            raw = await self._service.get_settings()
        except RedisError as e:
            raise SettingsStoreError(f"Failed to read settings from redis: {e}") from e
        if raw is None:
            return None
        return _parse(raw, "redis")

    async def save(self, game_settings: GameSettings) -> None:
        try:
            await self._service.set_settings(_dump(game_settings))
        except RedisError as e:
            raise SettingsStoreError(f"Failed to write settings to redis: {e}") from e


class FileSettingsStore:
    """Local JSON file, keeps a kiosk playable while the remote is unreachable."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.local_settings_path)

    def _read(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def _write(self, raw: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(raw, encoding="utf-8")
        tmp.replace(self.path)

    async def load(self) -> GameSettings | None:
        try:
            raw = await anyio.to_thread.run_sync(self._read)
        except OSError as e:
            raise SettingsStoreError(f"Cannot read {self.path}: {e}") from e
        if raw is None:
            return None
        return _parse(raw, str(self.path))

    async def save(self, game_settings: GameSettings) -> None:
        try:
            await anyio.to_thread.run_sync(self._write, _dump(game_settings))
        except OSError as e:
            raise SettingsStoreError(f"Cannot write {self.path}: {e}") from e


class RemoteSettingsStore:
    """Settings API of another game server (GET/POST {base}/api/settings)."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        base_url = base_url or settings.remote_settings_url
        if not base_url:
            raise ValueError("Remote settings store requires a base URL")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or settings.remote_settings_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        )

    async def load(self) -> GameSettings | None:
        try:
            async with self._client() as client:
                response = await client.get("/api/settings")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise SettingsStoreError(f"Failed to load remote settings: {e}") from e
        return _parse(response.content, self._base_url)

    async def save(self, game_settings: GameSettings) -> None:
        try:
            async with self._client() as client:
                response = await client.post("/api/settings", json=game_settings.to_payload())
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise SettingsStoreError(f"Failed to push remote settings: {e}") from e


class MirroredSettingsStore:
    """
    Local copy first, remote as the shared source.

    load: the local copy when present, otherwise the remote one (cached
    locally). save: local first, then pushed to the remote. A remote failure
    is logged and the local save still stands; a local failure is raised
    after the remote push has been attempted.
    """

    def __init__(self, local: SettingsStore, remote: SettingsStore):
        self.local = local
        self.remote = remote

    async def load(self) -> GameSettings | None:
        try:
            stored = await self.local.load()
        except SettingsStoreError as e:
            logger.warning("Local settings unreadable, trying remote: %s", e)
            stored = None
        if stored is not None:
            return stored

        stored = await self.remote.load()
        if stored is not None:
            await persist_settings(self.local, stored)
        return stored

    async def pull(self) -> GameSettings | None:
        """Refresh the local copy from the remote ("Load From Server")."""
        stored = await self.remote.load()
        if stored is not None:
            await self.local.save(stored)
        return stored

    async def save(self, game_settings: GameSettings) -> None:
        try:
            await self.local.save(game_settings)
        except SettingsStoreError:
            # The shared copy still gets the document
            await persist_settings(self.remote, game_settings)
            raise
        await persist_settings(self.remote, game_settings)


async def read_settings(store: SettingsStore) -> tuple[GameSettings, bool]:
    """
    Stored settings plus whether the read failed.

    On a failed read the built-in defaults are returned with True; they stand
    in for play but must never be written back over the real document. When
    nothing was ever saved the defaults are returned with False and may be
    persisted to seed the store.
    """
    try:
        stored = await store.load()
    except SettingsStoreError as e:
        logger.warning("Falling back to default settings: %s", e)
        return default_game_settings(), True
    if stored is None:
        return default_game_settings(), False
    return stored, False


async def load_settings(store: SettingsStore) -> GameSettings:
    """Stored settings, or the built-in defaults when absent or unreadable."""
    game_settings, _ = await read_settings(store)
    return game_settings


async def persist_settings(store: SettingsStore, game_settings: GameSettings) -> bool:
    """
    Save without blocking play on failure.

    Returns False when the store rejected the write; the failure is logged.
    """
    try:
        await store.save(game_settings)
    except SettingsStoreError as e:
        logger.error("Settings save failed: %s", e)
        return False
    return True


def build_settings_store() -> SettingsStore:
    """Store selected by APP_SETTINGS_BACKEND."""
    if settings.settings_backend == "file":
        return FileSettingsStore()
    if settings.settings_backend == "mirrored":
        return MirroredSettingsStore(FileSettingsStore(), RemoteSettingsStore())
    return RedisSettingsStore()
