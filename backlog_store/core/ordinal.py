"""Ordinal helpers for intra-status ordering.

Tasks with an ordinal sort first (ascending); tasks without one sort last by id.
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from backlog_store.constants import DEFAULT_ORDINAL_STEP
from backlog_store.core.naming import id_sort_key


@dataclass
class OrdinalCard:
    """Position-relevant view of a task within one status group."""

    task_id: str
    ordinal: Optional[float] = None


@dataclass
class OrdinalUpdate:
    task_id: str
    ordinal: float


def compare_by_ordinal(a: OrdinalCard, b: OrdinalCard) -> int:
    """Three-way comparison usable with functools.cmp_to_key."""
    if a.ordinal is not None and b.ordinal is None:
        return -1
    if a.ordinal is None and b.ordinal is not None:
        return 1
    if a.ordinal is not None and b.ordinal is not None:
        if a.ordinal != b.ordinal:
            return -1 if a.ordinal < b.ordinal else 1
        return 0
    ka, kb = id_sort_key(a.task_id), id_sort_key(b.task_id)
    if ka == kb:
        return 0
    return -1 if ka < kb else 1


def ordinal_sort_key(card: OrdinalCard):
    """Sort key equivalent to compare_by_ordinal."""
    if card.ordinal is not None:
        return (0, card.ordinal, ())
    return (1, 0.0, id_sort_key(card.task_id))


def sort_by_ordinal(cards: Sequence[OrdinalCard]) -> List[OrdinalCard]:
    return sorted(cards, key=ordinal_sort_key)


def midpoint_ordinal(before: Optional[float], after: Optional[float]) -> float:
    """Ordinal halfway between two neighbours (either may be missing)."""
    if before is None and after is None:
        return DEFAULT_ORDINAL_STEP
    if before is None:
        return after / 2
    if after is None:
        return before + DEFAULT_ORDINAL_STEP
    return (before + after) / 2


def calculate_ordinals_for_drop(
    existing: Sequence[OrdinalCard], dropped: OrdinalCard, drop_index: int
) -> List[OrdinalUpdate]:
    """Compute ordinal updates for inserting a card at a position.

    Besides the dropped card, every card at or above the drop position that has
    no ordinal receives one, so it does not jump to the end on reload.

    Args:
        existing: Cards currently in the target status group, in display order.
        dropped: The card being placed.
        drop_index: Insert position (0 = top) in the pre-move order.

    Returns:
        Ordinal updates to persist.
    """
    original_index = next(
        (i for i, card in enumerate(existing) if card.task_id == dropped.task_id), -1
    )
    remaining = [card for card in existing if card.task_id != dropped.task_id]

    index = drop_index
    if original_index != -1 and original_index < drop_index:
        index -= 1
    index = max(0, min(index, len(remaining)))

    order = list(remaining)
    order.insert(index, dropped)

    needing = [
        (i, card)
        for i, card in enumerate(order[: index + 1])
        if card.ordinal is None or card.task_id == dropped.task_id
    ]
    if not needing:
        return []

    first_index = needing[0][0]
    base = 0.0
    if first_index > 0 and order[first_index - 1].ordinal is not None:
        base = order[first_index - 1].ordinal

    ceiling = math.inf
    for card in order[index + 1 :]:
        if card.ordinal is not None:
            ceiling = card.ordinal
            break

    step = DEFAULT_ORDINAL_STEP
    if ceiling != math.inf:
        step = min(DEFAULT_ORDINAL_STEP, (ceiling - base) / (len(needing) + 1))

    return [
        OrdinalUpdate(task_id=card.task_id, ordinal=base + step * (n + 1))
        for n, (_, card) in enumerate(needing)
    ]
