"""Promo prize games FastAPI application."""
import json
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from prizegame.errors import ErrorCode, GameError
from prizegame.logic.catalog import available_prizes
from prizegame.logic.rng import ProductionRNG, RNGBase
from prizegame.logic.session import ShuffleSession, SpinSession, SpinView
from prizegame.logic.spin import winning_segments
from prizegame.middleware import ErrorHandlerMiddleware, PlayerIdMiddleware
from prizegame.protocol import (
    PickRequest,
    PickResponse,
    RevealBody,
    SegmentBody,
    ShuffleStateResponse,
    SpinSelectionBody,
    SpinStateResponse,
)
from prizegame.redis_service import redis_service
from prizegame.store import (
    MirroredSettingsStore,
    SettingsStore,
    SettingsStoreError,
    build_settings_store,
    load_settings,
    persist_settings,
)
from prizegame.telemetry import PlayRejectedEvent, SettingsSavedEvent, telemetry_service
from prizegame.validators import parse_settings_payload


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage Redis connection lifecycle."""
    await redis_service.connect()
    yield
    await redis_service.close()


app = FastAPI(
    title="Promo Prize Games",
    version="0.1.0",
    description="Cap shuffle and spin-the-wheel prize games with a settings store",
    lifespan=lifespan,
)

app.add_middleware(ErrorHandlerMiddleware)
app.add_middleware(PlayerIdMiddleware)


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError) -> JSONResponse:
    return exc.to_response()


# Swapped out by tests and simulations
settings_store: SettingsStore = build_settings_store()
game_rng: RNGBase = ProductionRNG()


def _reject(game: str, player_id: str, error: GameError) -> None:
    telemetry_service.emit_play_rejected(
        PlayRejectedEvent(game=game, player_id=player_id, reason=error.code.value)
    )


def _spin_response(view: SpinView) -> dict:
    selection = view.round.selection
    return SpinStateResponse(
        phase=view.round.phase,
        segments=[SegmentBody.from_prize(p) for p in view.game_settings.spin_prizes],
        selection=SpinSelectionBody.from_selection(selection) if selection else None,
        depleted=view.depleted,
    ).model_dump(mode="json")


@app.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


# === Settings ===


@app.get("/api/settings")
async def get_settings() -> dict:
    """Current settings; built-in defaults when nothing usable is stored."""
    game_settings = await load_settings(settings_store)
    return game_settings.to_payload()


@app.post("/api/settings")
async def save_settings(request: Request) -> dict:
    """Validate and store a full settings document from the admin page."""
    try:
        payload = await request.json()
    except json.JSONDecodeError as e:
        raise GameError(ErrorCode.INVALID_SETTINGS, f"Body is not valid JSON: {e}") from e

    game_settings = parse_settings_payload(payload)
    async with redis_service.settings_lock():
        persisted = await persist_settings(settings_store, game_settings)

    telemetry_service.emit_settings_saved(
        SettingsSavedEvent(
            shuffle_available=len(available_prizes(game_settings.shuffle_prizes)),
            spin_available=len(winning_segments(game_settings.spin_prizes)),
            persisted=persisted,
        )
    )
    if not persisted:
        raise GameError(ErrorCode.SETTINGS_UNAVAILABLE, "Settings could not be saved.")
    return game_settings.to_payload()


@app.post("/api/settings/pull")
async def pull_settings() -> dict:
    """Replace the local copy with the remote settings (mirrored backend only)."""
    if not isinstance(settings_store, MirroredSettingsStore):
        raise GameError(ErrorCode.INVALID_REQUEST, "No remote settings store is configured.")
    try:
        async with redis_service.settings_lock():
            pulled = await settings_store.pull()
    except SettingsStoreError as e:
        raise GameError(ErrorCode.SETTINGS_UNAVAILABLE, str(e)) from e
    if pulled is None:
        raise GameError(ErrorCode.SETTINGS_UNAVAILABLE, "Remote has no settings yet.")
    return pulled.to_payload()


# === Cap shuffle ===


@app.get("/shuffle/state")
async def shuffle_state(request: Request) -> dict:
    session = ShuffleSession(request.state.player_id, settings_store, rng=game_rng)
    view = await session.state()
    return ShuffleStateResponse.from_round(view.round, view.depleted).model_dump(mode="json")


@app.post("/shuffle/pick")
async def shuffle_pick(request: Request, body: PickRequest) -> dict:
    """
    Reveal a cap.

    The first pick of a round consumes one unit of the revealed prize; the
    second resolves the round.
    """
    player_id = request.state.player_id
    try:
        async with redis_service.player_lock(player_id) as lock_metrics:
            session = ShuffleSession(
                player_id,
                settings_store,
                rng=game_rng,
                lock_acquire_ms=lock_metrics.acquire_ms,
            )
            view = await session.pick(body.slot)
    except GameError as e:
        _reject(ShuffleSession.GAME, player_id, e)
        raise

    state = ShuffleStateResponse.from_round(view.round, view.depleted)
    return PickResponse(
        **state.model_dump(),
        reveal=RevealBody.from_reveal(view.reveal),
    ).model_dump(mode="json")


@app.post("/shuffle/reset")
async def shuffle_reset(request: Request) -> dict:
    player_id = request.state.player_id
    async with redis_service.player_lock(player_id):
        view = await ShuffleSession(player_id, settings_store, rng=game_rng).reset()
    return ShuffleStateResponse.from_round(view.round, view.depleted).model_dump(mode="json")


@app.post("/shuffle/reshuffle")
async def shuffle_reshuffle(request: Request) -> dict:
    player_id = request.state.player_id
    async with redis_service.player_lock(player_id):
        view = await ShuffleSession(player_id, settings_store, rng=game_rng).reshuffle()
    return ShuffleStateResponse.from_round(view.round, view.depleted).model_dump(mode="json")


# === Spin the wheel ===


@app.get("/spin/state")
async def spin_state(request: Request) -> dict:
    view = await SpinSession(request.state.player_id, settings_store, rng=game_rng).state()
    return _spin_response(view)


@app.post("/spin")
async def spin(request: Request) -> dict:
    """Choose the landing segment; stock moves only once the spin completes."""
    player_id = request.state.player_id
    try:
        async with redis_service.player_lock(player_id):
            view = await SpinSession(player_id, settings_store, rng=game_rng).spin()
    except GameError as e:
        _reject(SpinSession.GAME, player_id, e)
        raise
    return _spin_response(view)


@app.post("/spin/complete")
async def spin_complete(request: Request) -> dict:
    player_id = request.state.player_id
    async with redis_service.player_lock(player_id) as lock_metrics:
        session = SpinSession(
            player_id,
            settings_store,
            rng=game_rng,
            lock_acquire_ms=lock_metrics.acquire_ms,
        )
        view = await session.complete()
    return _spin_response(view)


@app.post("/spin/close")
async def spin_close(request: Request) -> dict:
    player_id = request.state.player_id
    async with redis_service.player_lock(player_id):
        view = await SpinSession(player_id, settings_store, rng=game_rng).close()
    return _spin_response(view)
