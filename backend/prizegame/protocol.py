"""HTTP request and response models for the game endpoints."""
from pydantic import BaseModel, Field

from prizegame.config import settings
from prizegame.logic.models import Prize, SegmentKind
from prizegame.logic.shuffle import Reveal, ShufflePhase, ShuffleRound
from prizegame.logic.spin import SpinPhase, SpinSelection


# === Request Models ===


class PickRequest(BaseModel):
    """POST /shuffle/pick request body."""

    slot: int = Field(..., description="Board position of the picked cap")


# === Shuffle ===


class RevealBody(BaseModel):
    slot: int
    prizeId: str | None
    label: str
    image: str | None = None

    @classmethod
    def from_reveal(cls, reveal: Reveal) -> "RevealBody":
        return cls(
            slot=reveal.slot,
            prizeId=reveal.prize_id,
            label=reveal.label,
            image=reveal.image,
        )


class ShuffleOutcomeBody(BaseModel):
    matched: bool
    prizeId: str | None = None


class ShuffleStateResponse(BaseModel):
    """Shuffle board and round as the client renders it."""

    phase: ShufflePhase
    slots: list[int]
    picks: list[RevealBody] = Field(default_factory=list)
    outcome: ShuffleOutcomeBody | None = None
    depleted: bool = False
    resetAfterMs: int = settings.shuffle_reset_after_ms

    @classmethod
    def from_round(cls, round_state: ShuffleRound, depleted: bool) -> "ShuffleStateResponse":
        outcome = None
        if round_state.outcome is not None:
            outcome = ShuffleOutcomeBody(
                matched=round_state.outcome.matched,
                prizeId=round_state.outcome.prize_id,
            )
        return cls(
            phase=round_state.phase,
            slots=round_state.slots,
            picks=[RevealBody.from_reveal(pick) for pick in round_state.picks],
            outcome=outcome,
            depleted=depleted,
        )


class PickResponse(ShuffleStateResponse):
    """POST /shuffle/pick response: the board plus the cap just revealed."""

    reveal: RevealBody


# === Spin ===


class SegmentBody(BaseModel):
    """One wheel segment, in drawing order."""

    id: str
    label: str
    kind: SegmentKind
    image: str | None = None

    @classmethod
    def from_prize(cls, prize: Prize) -> "SegmentBody":
        return cls(id=prize.id, label=prize.label, kind=prize.kind, image=prize.image)


class SpinSelectionBody(BaseModel):
    prizeId: str
    label: str
    image: str | None = None
    index: int
    degree: float
    won: bool

    @classmethod
    def from_selection(cls, selection: SpinSelection) -> "SpinSelectionBody":
        return cls(
            prizeId=selection.prize.id,
            label=selection.prize.label,
            image=selection.prize.image,
            index=selection.index,
            degree=selection.degree,
            won=selection.won,
        )


class SpinStateResponse(BaseModel):
    phase: SpinPhase
    segments: list[SegmentBody] = Field(default_factory=list)
    selection: SpinSelectionBody | None = None
    depleted: bool = False
