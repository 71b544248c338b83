"""Catalog availability and stock bookkeeping.

A catalog is an ordered list of prizes for one game variant. Functions here
never mutate their input; decrement returns a new list.
"""
import logging
from typing import Sequence

from prizegame.logic.models import Prize

logger = logging.getLogger(__name__)


def available_prizes(catalog: Sequence[Prize]) -> list[Prize]:
    """Prizes that may be newly awarded (active with stock left), in catalog order."""
    return [prize for prize in catalog if prize.is_available]


def is_depleted(catalog: Sequence[Prize]) -> bool:
    """True when nothing in the catalog can be awarded."""
    return not available_prizes(catalog)


def find_prize(catalog: Sequence[Prize], prize_id: str) -> Prize | None:
    for prize in catalog:
        if prize.id == prize_id:
            return prize
    return None


def index_of(catalog: Sequence[Prize], prize_id: str) -> int:
    """Catalog position of prize_id, or -1."""
    for index, prize in enumerate(catalog):
        if prize.id == prize_id:
            return index
    return -1


def decrement(catalog: Sequence[Prize], prize_id: str) -> list[Prize]:
    """
    Take one unit of stock from prize_id.

    Stock is floored at zero. An unknown id leaves the catalog unchanged.
    """
    if find_prize(catalog, prize_id) is None:
        logger.debug("Decrement of unknown prize id %r ignored", prize_id)
        return list(catalog)

    return [
        prize.model_copy(update={"amount": max(prize.amount - 1, 0)})
        if prize.id == prize_id
        else prize
        for prize in catalog
    ]
