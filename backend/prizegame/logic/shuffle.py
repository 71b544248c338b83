"""Cap shuffle: pick two caps, win when both reveal the same prize.

The first pick is drawn from available stock and consumes one unit at
reveal time, whatever the round outcome. The second pick is biased toward
matching by the shuffle winning probability.
"""
from enum import Enum
from typing import Sequence

from pydantic import BaseModel, Field

from prizegame.config import settings
from prizegame.errors import ErrorCode, GameError
from prizegame.logic.catalog import available_prizes, decrement
from prizegame.logic.models import Prize
from prizegame.logic.rng import RNGBase


class ShufflePhase(str, Enum):
    IDLE = "IDLE"
    FIRST_PICKED = "FIRST_PICKED"
    RESOLVED = "RESOLVED"
    NO_PRIZES_LEFT = "NO_PRIZES_LEFT"


class Reveal(BaseModel):
    """What a cap shows once picked. prize_id is None for the lose placeholder."""

    slot: int
    prize_id: str | None
    label: str
    image: str | None = None


class ShuffleOutcome(BaseModel):
    matched: bool
    prize_id: str | None = None


class ShuffleRound(BaseModel):
    """Per-player round state, persisted between requests."""

    phase: ShufflePhase = ShufflePhase.IDLE
    picks: list[Reveal] = Field(default_factory=list)
    slots: list[int] = Field(default_factory=lambda: list(range(settings.shuffle_slots)))
    outcome: ShuffleOutcome | None = None


def _reveal(slot: int, prize: Prize) -> Reveal:
    return Reveal(slot=slot, prize_id=prize.id, label=prize.label, image=prize.image)


def lose_placeholder(slot: int) -> Reveal:
    return Reveal(slot=slot, prize_id=None, label=settings.shuffle_lose_placeholder_label)


def _is_distinct(prize: Prize, first: Reveal) -> bool:
    # Same label with a different id would still look like a match to the player
    return prize.id != first.prize_id and prize.label.casefold() != first.label.casefold()


def pick_first(
    catalog: Sequence[Prize], slot: int, rng: RNGBase
) -> tuple[Reveal, list[Prize]]:
    """
    Reveal the first cap and take one unit of its stock.

    Raises PRIZES_DEPLETED when nothing is available.
    """
    candidates = available_prizes(catalog)
    if not candidates:
        raise GameError(ErrorCode.PRIZES_DEPLETED, "No prizes left.")
    prize = rng.choice(candidates)
    return _reveal(slot, prize), decrement(catalog, prize.id)


def pick_second(
    catalog: Sequence[Prize],
    first: Reveal,
    slot: int,
    winning_probability: float,
    rng: RNGBase,
) -> Reveal:
    """
    Reveal the second cap.

    Below the winning probability the first prize is shown again. Otherwise a
    different prize is shown, preferring available stock, then inactive
    prizes that have an image, then the generic lose placeholder. Never
    touches stock.
    """
    if rng.random() < winning_probability:
        return first.model_copy(update={"slot": slot})

    others = [prize for prize in available_prizes(catalog) if _is_distinct(prize, first)]
    if others:
        return _reveal(slot, rng.choice(others))

    retired = [
        prize
        for prize in catalog
        if not prize.is_active and prize.image and _is_distinct(prize, first)
    ]
    if retired:
        return _reveal(slot, rng.choice(retired))

    return lose_placeholder(slot)


def resolve(first: Reveal, second: Reveal) -> ShuffleOutcome:
    """A round is won only when both caps reveal the same prize id."""
    matched = first.prize_id is not None and first.prize_id == second.prize_id
    return ShuffleOutcome(matched=matched, prize_id=first.prize_id if matched else None)
