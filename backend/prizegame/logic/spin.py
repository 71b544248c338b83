"""Spin the wheel: one spin lands on a prize segment or a lose segment.

Segment order follows catalog order. Lose segments are tagged with
SegmentKind.LOSE and may be landed on whatever their stock or activity;
landing on them never consumes stock.
"""
from enum import Enum
from typing import Sequence

from pydantic import BaseModel

from prizegame.config import settings
from prizegame.errors import ErrorCode, GameError
from prizegame.logic.catalog import available_prizes, decrement, find_prize, index_of
from prizegame.logic.models import Prize, SegmentKind
from prizegame.logic.rng import RNGBase


class SpinPhase(str, Enum):
    IDLE = "IDLE"
    SPINNING = "SPINNING"
    RESOLVED = "RESOLVED"
    DEPLETED = "DEPLETED"


class SpinSelection(BaseModel):
    prize: Prize
    index: int
    won: bool
    degree: float


class SpinRound(BaseModel):
    """Per-player wheel state, persisted between requests."""

    phase: SpinPhase = SpinPhase.IDLE
    selection: SpinSelection | None = None


def winning_segments(catalog: Sequence[Prize]) -> list[Prize]:
    return [prize for prize in available_prizes(catalog) if prize.kind == SegmentKind.PRIZE]


def lose_segments(catalog: Sequence[Prize]) -> list[Prize]:
    return [prize for prize in catalog if prize.kind == SegmentKind.LOSE]


def is_spin_depleted(catalog: Sequence[Prize]) -> bool:
    """No prize segment can be won."""
    return not winning_segments(catalog)


def check_spinnable(catalog: Sequence[Prize]) -> None:
    """Raise when the wheel cannot be spun for the given catalog."""
    if not available_prizes(catalog) or not winning_segments(catalog):
        raise GameError(ErrorCode.PRIZES_DEPLETED, "No prizes left.")
    if not lose_segments(catalog):
        raise GameError(
            ErrorCode.SPIN_UNAVAILABLE,
            "The wheel has no lose segments configured.",
        )


def rotation_degree(index: int, segment_count: int, extra_turns: int) -> float:
    """
    Wheel rotation that brings segment `index` under the marker.

    Segments are drawn in reverse order, so the index is mirrored; the
    result points at the middle of the segment.
    """
    segment_angle = 360 / segment_count
    visual_index = segment_count - index - 1
    return extra_turns * 360 + visual_index * segment_angle + segment_angle / 2


def select_segment(
    catalog: Sequence[Prize],
    winning_probability: float,
    rng: RNGBase,
    extra_turns: int | None = None,
) -> SpinSelection:
    """Decide where the wheel stops. Does not touch stock."""
    check_spinnable(catalog)

    won = rng.random() < winning_probability
    pool = winning_segments(catalog) if won else lose_segments(catalog)
    prize = rng.choice(pool)
    index = index_of(catalog, prize.id)
    turns = settings.spin_extra_turns if extra_turns is None else extra_turns
    return SpinSelection(
        prize=prize,
        index=index,
        won=won,
        degree=rotation_degree(index, len(catalog), turns),
    )


def apply_spin(catalog: Sequence[Prize], selection: SpinSelection) -> list[Prize]:
    """Consume one unit of stock when the wheel stopped on a prize segment."""
    prize = find_prize(catalog, selection.prize.id)
    if prize is None or prize.kind == SegmentKind.LOSE:
        return list(catalog)
    return decrement(catalog, prize.id)
