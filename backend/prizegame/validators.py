"""Admin settings validation, matching the limits of the settings page."""
from typing import Any

from pydantic import ValidationError

from prizegame.config import settings
from prizegame.errors import ErrorCode, GameError
from prizegame.logic.models import GameSettings, Prize


def clamp_probability(value: float) -> float:
    """Keep the winning probability inside the admin slider range."""
    return min(max(value, settings.admin_min_probability), settings.admin_max_probability)


def clamp_amount(value: int) -> int:
    return min(max(value, 0), settings.admin_max_prize_amount)


def _clamp_catalog(catalog: list[Prize]) -> list[Prize]:
    return [prize.model_copy(update={"amount": clamp_amount(prize.amount)}) for prize in catalog]


def parse_settings_payload(payload: Any) -> GameSettings:
    """
    Validate an admin settings document.

    Raises INVALID_SETTINGS for a malformed document (duplicate prize ids,
    negative amounts, wrong types). Amounts above the admin maximum and
    probabilities outside the slider range are clamped, not rejected.
    """
    if not isinstance(payload, dict):
        raise GameError(ErrorCode.INVALID_SETTINGS, "Settings must be a JSON object.")
    try:
        game_settings = GameSettings.model_validate(payload)
    except ValidationError as e:
        raise GameError(ErrorCode.INVALID_SETTINGS, f"Invalid settings: {e.errors()[0]['msg']}") from e

    return game_settings.model_copy(
        update={
            "shuffle_prizes": _clamp_catalog(game_settings.shuffle_prizes),
            "spin_prizes": _clamp_catalog(game_settings.spin_prizes),
            "shuffle_winning_probability": clamp_probability(
                game_settings.shuffle_winning_probability
            ),
            "spin_winning_probability": clamp_probability(game_settings.spin_winning_probability),
        }
    )
