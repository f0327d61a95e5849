"""Position arithmetic for columns and cards.

Boards keep column positions and per-column card positions as contiguous
integers ``0..N-1``. Every helper here returns fresh tuples with positions
rewritten, so callers never patch a position by hand.
"""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Optional, Sequence, TypeVar

from .models import Card, Column

T = TypeVar("T")


class Direction(Enum):
    LEFT = "left"
    RIGHT = "right"


def clamp_index(position: Optional[int], length: int) -> int:
    """Insertion index for ``position`` in a list of ``length`` items.

    ``None`` means append.
    """
    if position is None or position > length:
        return length
    return max(position, 0)


def insert_at(items: Sequence[T], item: T, position: Optional[int]) -> list[T]:
    out = list(items)
    out.insert(clamp_index(position, len(out)), item)
    return out


def neighbour_index(index: int, direction: Direction, length: int) -> Optional[int]:
    """Index of the adjacent slot in ``direction`` or ``None`` at the edge."""
    target = index - 1 if direction is Direction.LEFT else index + 1
    if target < 0 or target >= length:
        return None
    return target


def swap(items: Sequence[T], first: int, second: int) -> list[T]:
    out = list(items)
    out[first], out[second] = out[second], out[first]
    return out


def renumber_cards(column_id: str, cards: Sequence[Card]) -> tuple[Card, ...]:
    out = []
    for index, card in enumerate(cards):
        if card.position != index or card.column_id != column_id:
            card = replace(card, position=index, column_id=column_id)
        out.append(card)
    return tuple(out)


def renumber_columns(columns: Sequence[Column]) -> tuple[Column, ...]:
    out = []
    for index, column in enumerate(columns):
        if column.position != index:
            column = replace(column, position=index)
        out.append(column)
    return tuple(out)


def sort_columns(columns: Sequence[Column]) -> tuple[Column, ...]:
    """Order by stored position and close any gaps or duplicates."""
    ordered = sorted(enumerate(columns), key=lambda pair: (pair[1].position, pair[0]))
    return renumber_columns([column for _, column in ordered])


def is_contiguous(positions: Sequence[int]) -> bool:
    return sorted(positions) == list(range(len(positions)))


def swapped_positions(columns: Sequence[Column], column_id: str, direction: Direction) -> Optional[tuple[tuple[str, int], tuple[str, int]]]:
    """Position writes needed to move ``column_id`` one slot in ``direction``.

    Returns ``((moved_id, new_position), (neighbour_id, new_position))`` or
    ``None`` when the column is missing or already at the edge.
    """
    ids = [c.id for c in columns]
    if column_id not in ids:
        return None
    index = ids.index(column_id)
    target = neighbour_index(index, direction, len(ids))
    if target is None:
        return None
    return (column_id, target), (ids[target], index)
