"""Shared catalog tests: concurrent stock changes and unreadable settings."""
import asyncio

import pytest
from conftest import MockRedis, RecordingTelemetrySink, ScriptedRNG, make_prize
from redis.exceptions import RedisError

from prizegame.errors import ErrorCode, GameError
from prizegame.logic.catalog import find_prize
from prizegame.logic.models import GameSettings, default_game_settings
from prizegame.logic.session import ShuffleSession, ShuffleView, SpinSession
from prizegame.redis_service import RedisService
from prizegame.store import RedisSettingsStore
from prizegame.telemetry import TelemetryService


class YieldingRedis(MockRedis):
    """Hands control back to the loop after every read, like a real round trip."""

    async def get(self, key: str) -> str | None:
        value = await super().get(key)
        await asyncio.sleep(0)
        return value


class UnreadableSettingsRedis(MockRedis):
    """Settings reads fail; everything else works."""

    async def get(self, key: str) -> str | None:
        if key == RedisService.SETTINGS_KEY:
            raise RedisError("connection reset by peer")
        return await super().get(key)


def service_for(client: MockRedis) -> RedisService:
    service = RedisService()
    service._client = client
    return service


def shuffle_session(player_id: str, service: RedisService, sink=None) -> ShuffleSession:
    return ShuffleSession(
        player_id,
        RedisSettingsStore(service),
        rng=ScriptedRNG(),
        service=service,
        telemetry=TelemetryService(sink or RecordingTelemetrySink()),
    )


def spin_session(player_id: str, service: RedisService, sink=None) -> SpinSession:
    return SpinSession(
        player_id,
        RedisSettingsStore(service),
        rng=ScriptedRNG(),
        service=service,
        telemetry=TelemetryService(sink or RecordingTelemetrySink()),
    )


def admin_settings() -> GameSettings:
    return default_game_settings().model_copy(
        update={
            "shuffle_prizes": [make_prize("vip", amount=3)],
            "spin_prizes": [make_prize("vip", amount=3), make_prize("miss", kind="lose")],
            "spin_winning_probability": 0.9,
        }
    )


class TestConcurrentStock:
    @pytest.mark.asyncio
    async def test_two_players_cannot_share_the_last_unit(self):
        redis = YieldingRedis()
        service = service_for(redis)
        redis.put_settings(
            default_game_settings().model_copy(
                update={"shuffle_prizes": [make_prize("1", amount=1)]}
            )
        )

        results = await asyncio.gather(
            shuffle_session("player-a", service).pick(0),
            shuffle_session("player-b", service).pick(0),
            return_exceptions=True,
        )

        views = [r for r in results if isinstance(r, ShuffleView)]
        errors = [r for r in results if isinstance(r, GameError)]
        assert len(views) == 1
        assert [e.code for e in errors] == [ErrorCode.PRIZES_DEPLETED]
        assert find_prize(redis.stored_settings().shuffle_prizes, "1").amount == 0

    @pytest.mark.asyncio
    async def test_concurrent_picks_each_take_one_unit(self):
        redis = YieldingRedis()
        service = service_for(redis)
        redis.put_settings(
            default_game_settings().model_copy(
                update={"shuffle_prizes": [make_prize("1", amount=5)]}
            )
        )

        await asyncio.gather(
            *(shuffle_session(f"player-{i}", service).pick(0) for i in range(3))
        )

        assert find_prize(redis.stored_settings().shuffle_prizes, "1").amount == 2

    @pytest.mark.asyncio
    async def test_spin_completion_after_sell_out_is_a_loss(self):
        redis = YieldingRedis()
        service = service_for(redis)
        redis.put_settings(
            default_game_settings().model_copy(
                update={
                    "spin_prizes": [make_prize("1", amount=1), make_prize("2", kind="lose")],
                    "spin_winning_probability": 1.0,
                }
            )
        )
        sink = RecordingTelemetrySink()
        first = spin_session("player-a", service, sink)
        second = spin_session("player-b", service, sink)
        await first.spin()
        await second.spin()

        await first.complete()
        late = await second.complete()

        assert late.round.selection.won is False
        assert find_prize(redis.stored_settings().spin_prizes, "1").amount == 0
        assert len(sink.get_events("stock_consumed")) == 1
        assert [e["won"] for e in sink.get_events("round_resolved")] == [True, False]

    @pytest.mark.asyncio
    async def test_settings_lock_released_after_pick(self):
        redis = MockRedis()
        service = service_for(redis)
        await shuffle_session("player-a", service).pick(0)
        assert await redis.get(RedisService.SETTINGS_LOCK_KEY) is None

    @pytest.mark.asyncio
    async def test_busy_settings_lock_gives_up(self):
        redis = MockRedis()
        service = service_for(redis)
        service.SETTINGS_LOCK_WAIT = 0.0
        redis._store[RedisService.SETTINGS_LOCK_KEY] = "admin-save"

        with pytest.raises(GameError) as exc_info:
            await shuffle_session("player-a", service).pick(0)
        assert exc_info.value.code == ErrorCode.ROUND_IN_PROGRESS


class TestUnreadableSettings:
    @pytest.mark.asyncio
    async def test_first_pick_does_not_overwrite_admin_catalog(self):
        redis = UnreadableSettingsRedis()
        service = service_for(redis)
        redis.put_settings(admin_settings())

        view = await shuffle_session("player-a", service).pick(0)

        assert view.reveal.prize_id is not None
        stored = redis.stored_settings()
        assert [p.id for p in stored.shuffle_prizes] == ["vip"]
        assert stored == admin_settings()

    @pytest.mark.asyncio
    async def test_spin_completion_does_not_overwrite_admin_catalog(self):
        redis = UnreadableSettingsRedis()
        service = service_for(redis)
        redis.put_settings(admin_settings())
        session = spin_session("player-a", service)

        await session.spin()
        view = await session.complete()

        assert view.round.selection.won is True
        assert redis.stored_settings() == admin_settings()
