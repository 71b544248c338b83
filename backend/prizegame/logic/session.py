"""Game session controllers.

One controller per game variant and player. A controller loads the player's
round from Redis and the catalog from the settings store, runs the pure
selectors at the right transition, and writes both back. Callers hold the
player lock around every mutating call; stock changes additionally run under
the settings lock since every player shares one catalog.
"""
import logging
from dataclasses import dataclass

from prizegame.config import settings
from prizegame.errors import ErrorCode, GameError
from prizegame.logic.catalog import find_prize, is_depleted
from prizegame.logic.models import GameSettings
from prizegame.logic.rng import ProductionRNG, RNGBase
from prizegame.logic.shuffle import (
    Reveal,
    ShufflePhase,
    ShuffleRound,
    pick_first,
    pick_second,
    resolve,
)
from prizegame.logic.spin import (
    SpinPhase,
    SpinRound,
    apply_spin,
    is_spin_depleted,
    select_segment,
)
from prizegame.redis_service import RedisService, redis_service
from prizegame.store import SettingsStore, load_settings, persist_settings, read_settings
from prizegame.telemetry import (
    RoundResolvedEvent,
    StockConsumedEvent,
    TelemetryService,
    telemetry_service,
)


logger = logging.getLogger(__name__)


@dataclass
class ShuffleView:
    round: ShuffleRound
    depleted: bool
    reveal: Reveal | None = None


@dataclass
class SpinView:
    round: SpinRound
    game_settings: GameSettings
    depleted: bool


class _Session:
    GAME = ""

    def __init__(
        self,
        player_id: str,
        store: SettingsStore,
        rng: RNGBase | None = None,
        service: RedisService | None = None,
        telemetry: TelemetryService | None = None,
        lock_acquire_ms: float = 0.0,
    ):
        self.player_id = player_id
        self.store = store
        self.rng = rng or ProductionRNG()
        self.service = service or redis_service
        self.telemetry = telemetry or telemetry_service
        self.lock_acquire_ms = lock_acquire_ms

    async def _save_round(self, round_state) -> None:
        await self.service.save_round_state(
            self.GAME, self.player_id, round_state.model_dump(mode="json")
        )

    async def _commit_stock(self, game_settings: GameSettings, read_failed: bool) -> None:
        """Persist a stock change, unless the catalog is the fallback for a failed read."""
        if read_failed:
            logger.warning(
                "Settings unreadable, %s stock change for %s not persisted",
                self.GAME,
                self.player_id,
            )
            return
        await persist_settings(self.store, game_settings)

    def _emit_stock_consumed(self, prize_id: str, catalog) -> None:
        prize = find_prize(catalog, prize_id)
        self.telemetry.emit_stock_consumed(
            StockConsumedEvent(
                game=self.GAME,
                player_id=self.player_id,
                prize_id=prize_id,
                remaining=prize.amount if prize else 0,
                lock_acquire_ms=self.lock_acquire_ms,
            )
        )


class ShuffleSession(_Session):
    """
    Two-pick cap shuffle.

    IDLE -> FIRST_PICKED -> RESOLVED -> (reset) -> IDLE, with NO_PRIZES_LEFT
    taking the place of IDLE while the catalog is depleted.
    """

    GAME = "shuffle"

    async def _load_round(self) -> ShuffleRound:
        data = await self.service.get_round_state(self.GAME, self.player_id)
        if data is None:
            return ShuffleRound()
        return ShuffleRound.model_validate(data)

    @staticmethod
    def _gate(round_state: ShuffleRound, depleted: bool) -> ShuffleRound:
        # Only a round that has not started is gated; a started round may finish
        if round_state.phase in (ShufflePhase.IDLE, ShufflePhase.NO_PRIZES_LEFT):
            round_state.phase = ShufflePhase.NO_PRIZES_LEFT if depleted else ShufflePhase.IDLE
        return round_state

    async def state(self) -> ShuffleView:
        game_settings = await load_settings(self.store)
        depleted = is_depleted(game_settings.shuffle_prizes)
        round_state = self._gate(await self._load_round(), depleted)
        return ShuffleView(round=round_state, depleted=depleted)

    async def pick(self, slot: int) -> ShuffleView:
        round_state = await self._load_round()
        if not 0 <= slot < len(round_state.slots):
            raise GameError(ErrorCode.INVALID_PICK, f"Slot {slot} is not on the board.")
        if round_state.phase == ShufflePhase.RESOLVED:
            raise GameError(ErrorCode.INVALID_PICK, "Round is over, reset before picking again.")

        if round_state.phase == ShufflePhase.FIRST_PICKED:
            game_settings = await load_settings(self.store)
            return await self._second_pick(round_state, game_settings, slot)

        # Stock is consumed by the reveal and committed before anything else
        async with self.service.settings_lock():
            game_settings, read_failed = await read_settings(self.store)
            catalog = game_settings.shuffle_prizes
            if is_depleted(catalog):
                round_state.phase = ShufflePhase.NO_PRIZES_LEFT
                await self._save_round(round_state)
                raise GameError(ErrorCode.PRIZES_DEPLETED, "No prizes left.")

            reveal, catalog = pick_first(catalog, slot, self.rng)
            await self._commit_stock(
                game_settings.model_copy(update={"shuffle_prizes": catalog}), read_failed
            )
        self._emit_stock_consumed(reveal.prize_id, catalog)

        round_state.phase = ShufflePhase.FIRST_PICKED
        round_state.picks = [reveal]
        round_state.outcome = None
        await self._save_round(round_state)
        return ShuffleView(round=round_state, depleted=is_depleted(catalog), reveal=reveal)

    async def _second_pick(
        self, round_state: ShuffleRound, game_settings: GameSettings, slot: int
    ) -> ShuffleView:
        first = round_state.picks[0]
        if slot == first.slot:
            raise GameError(ErrorCode.INVALID_PICK, "Pick a different cap.")

        catalog = game_settings.shuffle_prizes
        second = pick_second(
            catalog, first, slot, game_settings.shuffle_winning_probability, self.rng
        )
        outcome = resolve(first, second)
        depleted = is_depleted(catalog)

        round_state.phase = ShufflePhase.RESOLVED
        round_state.picks = [first, second]
        round_state.outcome = outcome
        await self._save_round(round_state)

        self.telemetry.emit_round_resolved(
            RoundResolvedEvent(
                game=self.GAME,
                player_id=self.player_id,
                won=outcome.matched,
                prize_id=outcome.prize_id,
                depleted_after=depleted,
            )
        )
        return ShuffleView(round=round_state, depleted=depleted, reveal=second)

    async def reset(self) -> ShuffleView:
        """Close a resolved round; the board is reshuffled when configured."""
        round_state = await self._load_round()
        if round_state.phase == ShufflePhase.FIRST_PICKED:
            raise GameError(ErrorCode.INVALID_REQUEST, "Finish the round before resetting.")

        if round_state.phase == ShufflePhase.RESOLVED:
            round_state.picks = []
            round_state.outcome = None
            round_state.phase = ShufflePhase.IDLE
            if settings.shuffle_auto_reshuffle:
                round_state.slots = self.rng.shuffled(round_state.slots)

        game_settings = await load_settings(self.store)
        depleted = is_depleted(game_settings.shuffle_prizes)
        round_state = self._gate(round_state, depleted)
        await self._save_round(round_state)
        return ShuffleView(round=round_state, depleted=depleted)

    async def reshuffle(self) -> ShuffleView:
        round_state = await self._load_round()
        if round_state.phase in (ShufflePhase.FIRST_PICKED, ShufflePhase.RESOLVED):
            raise GameError(ErrorCode.INVALID_REQUEST, "Caps can only be shuffled between rounds.")

        round_state.slots = self.rng.shuffled(round_state.slots)
        game_settings = await load_settings(self.store)
        depleted = is_depleted(game_settings.shuffle_prizes)
        round_state = self._gate(round_state, depleted)
        await self._save_round(round_state)
        return ShuffleView(round=round_state, depleted=depleted)


class SpinSession(_Session):
    """
    Wheel spin.

    IDLE -> SPINNING -> RESOLVED -> (close) -> IDLE, with DEPLETED taking the
    place of IDLE whenever no prize segment can be won.
    """

    GAME = "spin"

    async def _load_round(self) -> SpinRound:
        data = await self.service.get_round_state(self.GAME, self.player_id)
        if data is None:
            return SpinRound()
        return SpinRound.model_validate(data)

    @staticmethod
    def _gate(round_state: SpinRound, depleted: bool) -> SpinRound:
        if round_state.phase in (SpinPhase.IDLE, SpinPhase.DEPLETED):
            round_state.phase = SpinPhase.DEPLETED if depleted else SpinPhase.IDLE
        return round_state

    async def state(self) -> SpinView:
        game_settings = await load_settings(self.store)
        depleted = is_spin_depleted(game_settings.spin_prizes)
        round_state = self._gate(await self._load_round(), depleted)
        return SpinView(round=round_state, game_settings=game_settings, depleted=depleted)

    async def spin(self) -> SpinView:
        round_state = await self._load_round()
        if round_state.phase == SpinPhase.SPINNING:
            raise GameError(ErrorCode.ROUND_IN_PROGRESS, "The wheel is already spinning.")
        if round_state.phase == SpinPhase.RESOLVED:
            raise GameError(ErrorCode.INVALID_REQUEST, "Close the last result before spinning.")

        game_settings = await load_settings(self.store)
        catalog = game_settings.spin_prizes
        if is_spin_depleted(catalog):
            round_state.phase = SpinPhase.DEPLETED
            round_state.selection = None
            await self._save_round(round_state)
            raise GameError(ErrorCode.PRIZES_DEPLETED, "No prizes left.")

        selection = select_segment(catalog, game_settings.spin_winning_probability, self.rng)
        round_state.phase = SpinPhase.SPINNING
        round_state.selection = selection
        await self._save_round(round_state)
        return SpinView(round=round_state, game_settings=game_settings, depleted=False)

    async def complete(self) -> SpinView:
        """The wheel stopped: a prize segment takes one unit of stock."""
        round_state = await self._load_round()
        if round_state.phase != SpinPhase.SPINNING or round_state.selection is None:
            raise GameError(ErrorCode.INVALID_REQUEST, "The wheel is not spinning.")

        selection = round_state.selection
        if not selection.won:
            game_settings = await load_settings(self.store)
            catalog = game_settings.spin_prizes
        else:
            async with self.service.settings_lock():
                game_settings, read_failed = await read_settings(self.store)
                catalog = game_settings.spin_prizes
                current = find_prize(catalog, selection.prize.id)
                if current is None or not current.is_available:
                    # Another player took the last unit while this wheel was turning
                    logger.warning(
                        "Spin prize %s sold out before completion for %s",
                        selection.prize.id,
                        self.player_id,
                    )
                    selection = selection.model_copy(update={"won": False})
                    round_state.selection = selection
                else:
                    catalog = apply_spin(catalog, selection)
                    game_settings = game_settings.model_copy(update={"spin_prizes": catalog})
                    await self._commit_stock(game_settings, read_failed)
            if selection.won:
                self._emit_stock_consumed(selection.prize.id, catalog)

        depleted = is_spin_depleted(catalog)
        round_state.phase = SpinPhase.RESOLVED
        await self._save_round(round_state)

        self.telemetry.emit_round_resolved(
            RoundResolvedEvent(
                game=self.GAME,
                player_id=self.player_id,
                won=selection.won,
                prize_id=selection.prize.id if selection.won else None,
                depleted_after=depleted,
            )
        )
        return SpinView(round=round_state, game_settings=game_settings, depleted=depleted)

    async def close(self) -> SpinView:
        round_state = await self._load_round()
        if round_state.phase == SpinPhase.SPINNING:
            raise GameError(ErrorCode.ROUND_IN_PROGRESS, "The wheel is still spinning.")

        round_state.phase = SpinPhase.IDLE
        round_state.selection = None
        game_settings = await load_settings(self.store)
        depleted = is_spin_depleted(game_settings.spin_prizes)
        round_state = self._gate(round_state, depleted)
        await self._save_round(round_state)
        return SpinView(round=round_state, game_settings=game_settings, depleted=depleted)
