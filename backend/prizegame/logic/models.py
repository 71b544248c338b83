"""Prize catalog and game settings models."""
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from prizegame.config import settings


class SegmentKind(str, Enum):
    """What landing on a catalog entry means."""

    PRIZE = "prize"
    LOSE = "lose"


class _CamelModel(BaseModel):
    """Stored and served as camelCase, constructed with either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Prize(_CamelModel):
    """
    A configured reward entry.

    amount is the remaining stock and never drops below zero. A prize is
    available for new awards only while it is active and has stock left.
    """

    id: str
    name: str | None = None
    amount: int = Field(default=0, ge=0)
    is_active: bool = False
    image: str | None = None
    kind: SegmentKind = SegmentKind.PRIZE

    @property
    def label(self) -> str:
        """Display key: the name when set, else the id."""
        if self.name and self.name.strip():
            return self.name
        return self.id

    @property
    def is_available(self) -> bool:
        return self.is_active and self.amount > 0


class Colors(_CamelModel):
    primary: str | None = None
    secondary: str | None = None


class Images(_CamelModel):
    cap: str | None = None
    header: str | None = None
    banner: str | None = None
    wheel: str | None = None
    lose: str | None = None


class Messages(_CamelModel):
    win: str | None = None
    lose: str | None = None


class Texts(_CamelModel):
    am: Messages = Field(default_factory=Messages)
    en: Messages = Field(default_factory=Messages)


class GameSettings(_CamelModel):
    """
    Everything an administrator configures for both games.

    Unknown keys are kept as-is so a newer admin UI can round-trip fields
    this server does not know about.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    shuffle_prizes: list[Prize] = Field(default_factory=list)
    spin_prizes: list[Prize] = Field(default_factory=list)
    shuffle_winning_probability: float = Field(
        default=settings.default_winning_probability, ge=0.0, le=1.0
    )
    spin_winning_probability: float = Field(
        default=settings.default_winning_probability, ge=0.0, le=1.0
    )
    colors: Colors = Field(default_factory=Colors)
    images: Images = Field(default_factory=Images)
    texts: Texts = Field(default_factory=Texts)

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_shape(cls, data: Any) -> Any:
        """
        Upgrade settings stored by older clients.

        - a single "winningProbability" applied to both games
        - a single "prizes" list used as the shuffle catalog
        - spin entries without "kind" tagged from the legacy lose id set
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        legacy_probability = data.pop("winningProbability", None)
        if legacy_probability is not None:
            data.setdefault("shuffleWinningProbability", legacy_probability)
            data.setdefault("spinWinningProbability", legacy_probability)

        legacy_prizes = data.pop("prizes", None)
        if legacy_prizes is not None and "shufflePrizes" not in data:
            data["shufflePrizes"] = legacy_prizes

        spin_prizes = data.get("spinPrizes", data.get("spin_prizes"))
        if isinstance(spin_prizes, list):
            lose_ids = set(settings.legacy_lose_segment_ids)
            tagged = []
            for entry in spin_prizes:
                if isinstance(entry, dict) and "kind" not in entry:
                    entry = dict(entry)
                    entry["kind"] = (
                        SegmentKind.LOSE.value
                        if str(entry.get("id")) in lose_ids
                        else SegmentKind.PRIZE.value
                    )
                tagged.append(entry)
            key = "spinPrizes" if "spinPrizes" in data else "spin_prizes"
            data[key] = tagged

        return data

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "GameSettings":
        for field_name in ("shuffle_prizes", "spin_prizes"):
            ids = [prize.id for prize in getattr(self, field_name)]
            if len(ids) != len(set(ids)):
                raise ValueError(f"{to_camel(field_name)} contains duplicate prize ids")
        return self

    def to_payload(self) -> dict[str, Any]:
        """Serialize in the camelCase shape clients and stores expect."""
        return self.model_dump(mode="json", by_alias=True)


# === Defaults shipped with the game ===

DEFAULT_PRIMARY_COLOR = "#D60007"
DEFAULT_SECONDARY_COLOR = "#FFF9EC"
DEFAULT_WIN_TEXT = "YOU WIN"
DEFAULT_LOSE_TEXT = "YOU LOSE"

_DEFAULT_AMOUNTS = [100, 200, 300, 100, 100, 100, 100, 100]


def default_shuffle_prizes() -> list[Prize]:
    return [
        Prize(
            id=str(i),
            name=f"Prize {i}",
            amount=amount,
            is_active=i <= 2,
        )
        for i, amount in enumerate(_DEFAULT_AMOUNTS, start=1)
    ]


def default_spin_prizes() -> list[Prize]:
    lose_ids = set(settings.legacy_lose_segment_ids)
    prizes = []
    for i, amount in enumerate(_DEFAULT_AMOUNTS, start=1):
        is_lose = str(i) in lose_ids
        prizes.append(
            Prize(
                id=str(i),
                name="Try Again" if is_lose else f"Prize {i}",
                amount=amount,
                is_active=True,
                kind=SegmentKind.LOSE if is_lose else SegmentKind.PRIZE,
            )
        )
    return prizes


def default_game_settings() -> GameSettings:
    """Fresh copy of the built-in settings used when nothing is stored."""
    return GameSettings(
        shuffle_prizes=default_shuffle_prizes(),
        spin_prizes=default_spin_prizes(),
        shuffle_winning_probability=settings.default_winning_probability,
        spin_winning_probability=settings.default_winning_probability,
        colors=Colors(primary=DEFAULT_PRIMARY_COLOR, secondary=DEFAULT_SECONDARY_COLOR),
        texts=Texts(
            am=Messages(win=DEFAULT_WIN_TEXT, lose=DEFAULT_LOSE_TEXT),
            en=Messages(win=DEFAULT_WIN_TEXT, lose=DEFAULT_LOSE_TEXT),
        ),
    )
