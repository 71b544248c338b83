"""Pytest fixtures for backend tests."""
import json
from typing import Any, Generator, Sequence

import pytest
from fastapi.testclient import TestClient

from prizegame import main
from prizegame.logic.models import GameSettings, Prize
from prizegame.logic.rng import RNGBase
from prizegame.redis_service import RedisService, redis_service
from prizegame.store import RedisSettingsStore


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (statistical runs)"
    )


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._last_set_ex: int | None = None

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        self._last_set_ex = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._store[key] = value
        return True

    async def delete(self, key: str) -> int:
        if key in self._store:
            del self._store[key]
            return 1
        return 0

    async def eval(self, script: str, numkeys: int, *args) -> int:
        """Compare-and-delete, the only script the service runs."""
        key = args[0]
        expected_value = args[1]
        if self._store.get(key) == expected_value:
            del self._store[key]
            return 1
        return 0

    async def close(self) -> None:
        pass

    def clear(self) -> None:
        self._store.clear()
        self._last_set_ex = None

    # Test helpers

    def put_settings(self, game_settings: GameSettings | dict[str, Any]) -> None:
        if isinstance(game_settings, GameSettings):
            game_settings = game_settings.to_payload()
        self._store[RedisService.SETTINGS_KEY] = json.dumps(game_settings)

    def stored_settings(self) -> GameSettings:
        return GameSettings.model_validate_json(self._store[RedisService.SETTINGS_KEY])


class ScriptedRNG(RNGBase):
    """
    RNG that replays fixed draws.

    random() pops from `floats` (repeating the last one); randint() pops from
    `indexes` and falls back to the lower bound.
    """

    def __init__(self, floats: Sequence[float] = (0.0,), indexes: Sequence[int] = ()):
        self.floats = list(floats)
        self.indexes = list(indexes)

    def random(self) -> float:
        if len(self.floats) > 1:
            return self.floats.pop(0)
        return self.floats[0]

    def randint(self, a: int, b: int) -> int:
        if self.indexes:
            return min(max(a + self.indexes.pop(0), a), b)
        return a


class RecordingTelemetrySink:
    """Telemetry sink that keeps every event."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        self.events.append((event_name, data))

    def get_events(self, event_name: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event_name]


def make_prize(
    prize_id: str,
    amount: int = 10,
    is_active: bool = True,
    name: str | None = None,
    image: str | None = None,
    kind: str = "prize",
) -> Prize:
    return Prize(
        id=prize_id,
        name=name if name is not None else f"Prize {prize_id}",
        amount=amount,
        is_active=is_active,
        image=image,
        kind=kind,
    )


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis()


@pytest.fixture
def redis_service_with_mock(mock_redis: MockRedis) -> Generator[RedisService, None, None]:
    """Create RedisService with mock client."""
    service = RedisService()
    service._client = mock_redis
    yield service
    mock_redis.clear()


@pytest.fixture
def scripted_rng(monkeypatch: pytest.MonkeyPatch) -> ScriptedRNG:
    """Install a ScriptedRNG as the app RNG; tests tune floats/indexes."""
    rng = ScriptedRNG()
    monkeypatch.setattr(main, "game_rng", rng)
    return rng


@pytest.fixture
def recording_telemetry() -> Generator[RecordingTelemetrySink, None, None]:
    from prizegame.telemetry import LoggingTelemetrySink, telemetry_service

    sink = RecordingTelemetrySink()
    telemetry_service.set_sink(sink)
    yield sink
    telemetry_service.set_sink(LoggingTelemetrySink())


@pytest.fixture
def client_with_mock_redis(
    mock_redis: MockRedis, monkeypatch: pytest.MonkeyPatch
) -> Generator[TestClient, None, None]:
    """Create TestClient with mocked Redis backing both rounds and settings."""
    original_client = redis_service._client
    redis_service._client = mock_redis
    monkeypatch.setattr(main, "settings_store", RedisSettingsStore(redis_service))

    with TestClient(main.app) as client:
        yield client

    redis_service._client = original_client
    mock_redis.clear()
