from __future__ import annotations

from dataclasses import replace
from enum import Enum

from .config import DEFAULT_CONFIG, BoardConfig
from .models import Board, Card, Column, ColumnRole, OrderCard, QuoteCard


class CardState(Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    ESCALATED = "escalated"
    DEESCALATED = "deescalated"
    WON = "won"
    LOST = "lost"
    ARCHIVED = "archived"
    DONE = "done"


TERMINAL_STATES = frozenset({CardState.LOST, CardState.ARCHIVED, CardState.DONE})


def card_state(board: Board, card: Card) -> CardState:
    """Classify ``card`` for presentation.

    Escalation is a side channel: a source card whose mirror sits in the
    Escalations column reports ESCALATED while staying in its own column.
    Mirror cards report the queue they are in.
    """
    if card.is_archived:
        return CardState.LOST if isinstance(card, QuoteCard) else CardState.ARCHIVED
    column = board.column(card.column_id)
    if column is not None and column.role is ColumnRole.ESCALATIONS:
        return CardState.ESCALATED
    if column is not None and column.role is ColumnRole.DEESCALATED:
        return CardState.DEESCALATED
    if column is not None and column.is_final:
        return CardState.DONE
    if board.is_actively_escalated(card):
        return CardState.ESCALATED
    if isinstance(card, OrderCard) and card.quote_reference:
        return CardState.WON
    if board.columns and board.columns[0].id == card.column_id:
        return CardState.NEW
    return CardState.IN_PROGRESS


def is_terminal(board: Board, card: Card) -> bool:
    return card_state(board, card) in TERMINAL_STATES


# === Views ===


def active_view(board: Board, config: BoardConfig = DEFAULT_CONFIG) -> tuple[Column, ...]:
    """Columns shown on the board, archived cards left out."""
    columns = []
    for column in board.columns:
        if config.hide_role_columns and column.role is not ColumnRole.STAGE:
            continue
        columns.append(replace(column, cards=column.active_cards))
    return tuple(columns)


def escalation_queue(board: Board) -> tuple[Card, ...]:
    column = board.column_by_role(ColumnRole.ESCALATIONS)
    return column.active_cards if column is not None else ()
