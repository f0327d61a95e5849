"""In-memory board snapshot holder.

The store only ever swaps one immutable ``Board`` for another. ``apply``
builds the next snapshot from the current one without touching it, so a
snapshot captured before an optimistic change stays valid for rollback.
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from typing import Awaitable, Callable, Iterable, Optional, Union

from .config import DEFAULT_CONFIG, BoardConfig
from .errors import BoardNotLoaded
from .models import CARD_TYPES, Board, Card, CardKind, Column, ColumnRole, Priority
from .ordering import insert_at, renumber_cards, renumber_columns, sort_columns
from .schemas import BoardRecord, CaseRecord, ColumnRecord
from .transitions import (
    Change,
    Delta,
    DropColumn,
    InsertCard,
    InsertColumn,
    PutCard,
    PutColumn,
    Rekey,
    RelocateCard,
    SwapColumns,
)

logger = logging.getLogger(__name__)

BoardFetcher = Callable[[str], Awaitable[BoardRecord]]


# === Record normalization ===


def card_from_record(record: CaseRecord) -> Card:
    try:
        kind = CardKind(record.caseType.upper())
    except ValueError:
        logger.warning("case %s has unknown type %r, treating as order", record.id, record.caseType)
        kind = CardKind.ORDER
    card_type = CARD_TYPES[kind]
    values = dict(
        id=record.id,
        title=record.title,
        column_id=record.columnId,
        position=record.position,
        priority=Priority.parse(record.priority),
        assignee=record.assignee,
        due_date=record.dueDate,
        created_at=record.createdAt,
        archived_at=record.archivedAt,
        escalated_to_id=record.escalatedToId,
        customer_name=record.customerName,
        quote_reference=record.quoteId,
        po_number=record.poNumber,
        product_type=record.productType,
        specs=record.specs,
    )
    accepted = {f.name for f in fields(card_type)}
    return card_type(**{k: v for k, v in values.items() if k in accepted})


def column_from_record(record: ColumnRecord, config: BoardConfig = DEFAULT_CONFIG) -> Column:
    role = config.role_for_name(record.name)
    if record.role:
        try:
            role = ColumnRole(record.role)
        except ValueError:
            logger.warning("column %s has unknown role %r", record.id, record.role)
    cards = sorted((card_from_record(c) for c in record.cases), key=lambda card: card.position)
    return Column(
        id=record.id,
        name=record.name,
        position=record.position,
        color=record.color,
        is_final=record.isFinal,
        role=role,
        cards=renumber_cards(record.id, cards),
    )


def board_from_record(record: Union[BoardRecord, dict], config: BoardConfig = DEFAULT_CONFIG) -> Board:
    """Normalize a fetched board into the snapshot model.

    Positions are made contiguous. A forward link survives only while the
    linked card sits in the Escalations column, so a card de-escalated in an
    earlier session can be escalated again.
    """
    if isinstance(record, dict):
        record = BoardRecord.model_validate(record)
    columns = sort_columns([column_from_record(c, config) for c in record.columns])
    board = Board(id=record.id, name=record.name, columns=columns)
    queue = board.column_by_role(ColumnRole.ESCALATIONS)
    return _drop_links(board, {c.id for c in queue.cards} if queue is not None else set())


def _drop_dangling_links(board: Board) -> Board:
    return _drop_links(board, {card.id for card in board.iter_cards()})


def _drop_links(board: Board, targets: set[str]) -> Board:
    """Clear ``escalated_to_id`` on cards linked outside ``targets``."""
    columns = []
    for column in board.columns:
        cards = tuple(
            replace(card, escalated_to_id=None)
            if card.escalated_to_id is not None and card.escalated_to_id not in targets
            else card
            for card in column.cards
        )
        columns.append(column if cards == column.cards else replace(column, cards=cards))
    return replace(board, columns=tuple(columns))


# === Applying deltas ===


class _Draft:
    """Mutable working copy used while a delta is replayed."""

    def __init__(self, board: Board) -> None:
        self.board = board
        self.order = [c.id for c in board.columns]
        self.columns = {c.id: c for c in board.columns}
        self.cards = {c.id: list(c.cards) for c in board.columns}

    def locate(self, card_id: str) -> tuple[str, int]:
        for column_id, cards in self.cards.items():
            for index, card in enumerate(cards):
                if card.id == card_id:
                    return column_id, index
        raise KeyError(card_id)

    def apply(self, change: Change) -> None:
        if isinstance(change, PutCard):
            column_id, index = self.locate(change.card.id)
            self.cards[column_id][index] = change.card
        elif isinstance(change, InsertCard):
            column_id = change.card.column_id
            self.cards[column_id] = insert_at(self.cards[column_id], change.card, change.position)
        elif isinstance(change, RelocateCard):
            column_id, index = self.locate(change.card_id)
            card = self.cards[column_id].pop(index)
            self.cards[change.column_id] = insert_at(self.cards[change.column_id], card, change.position)
        elif isinstance(change, InsertColumn):
            column = change.column
            self.columns[column.id] = column
            self.cards[column.id] = list(column.cards)
            self.order = insert_at(self.order, column.id, column.position)
        elif isinstance(change, PutColumn):
            self.columns[change.column.id] = change.column
        elif isinstance(change, DropColumn):
            self.order.remove(change.column_id)
            del self.columns[change.column_id]
            del self.cards[change.column_id]
        elif isinstance(change, SwapColumns):
            first = self.order.index(change.first_id)
            second = self.order.index(change.second_id)
            self.order[first], self.order[second] = self.order[second], self.order[first]
        elif isinstance(change, Rekey):
            self._rekey(change.old_id, change.new_id)
        else:
            raise TypeError(f"unsupported change: {change!r}")

    def _rekey(self, old_id: str, new_id: str) -> None:
        if old_id in self.columns:
            self.order[self.order.index(old_id)] = new_id
            self.columns[new_id] = replace(self.columns.pop(old_id), id=new_id)
            self.cards[new_id] = self.cards.pop(old_id)
        for cards in self.cards.values():
            for index, card in enumerate(cards):
                if card.id == old_id:
                    cards[index] = card = replace(card, id=new_id)
                if card.escalated_to_id == old_id:
                    cards[index] = replace(card, escalated_to_id=new_id)

    def build(self) -> Board:
        columns = [
            replace(self.columns[cid], cards=renumber_cards(cid, self.cards[cid]))
            for cid in self.order
        ]
        board = replace(self.board, columns=renumber_columns(columns))
        return _drop_dangling_links(board)


def apply_delta(board: Board, changes: Iterable[Change]) -> Board:
    draft = _Draft(board)
    for change in changes:
        draft.apply(change)
    return draft.build()


# === Store ===


class BoardStore:
    """Holds the authoritative in-memory board snapshot."""

    def __init__(self, fetcher: Optional[BoardFetcher] = None, config: BoardConfig = DEFAULT_CONFIG) -> None:
        self.fetcher = fetcher
        self.config = config
        self.stale = False
        self._board: Optional[Board] = None

    @property
    def board(self) -> Board:
        if self._board is None:
            raise BoardNotLoaded("no board has been loaded")
        return self._board

    @property
    def loaded(self) -> bool:
        return self._board is not None

    async def load(self, board_id: str) -> Board:
        if self.fetcher is None:
            raise BoardNotLoaded("store has no board source")
        record = await self.fetcher(board_id)
        return self.load_record(record)

    def load_record(self, record: Union[BoardRecord, dict]) -> Board:
        self._board = board_from_record(record, self.config)
        self.stale = False
        logger.debug("loaded board %s with %d columns", self._board.id, len(self._board.columns))
        return self._board

    def apply(self, delta: Union[Delta, Iterable[Change]]) -> Board:
        changes = delta.changes if isinstance(delta, Delta) else tuple(delta)
        self._board = apply_delta(self.board, changes)
        return self._board

    def snapshot(self) -> Board:
        return self.board

    def restore(self, snapshot: Board) -> None:
        self._board = snapshot

    def rekey(self, old_id: str, new_id: str) -> Board:
        return self.apply([Rekey(old_id, new_id)])

    def adopt_card(self, provisional_id: str, card: Card) -> Board:
        """Swap a provisional card for the service's record, keeping its slot."""
        self.rekey(provisional_id, card.id)
        column_id, _ = _Draft(self.board).locate(card.id)
        return self.apply([PutCard(replace(card, column_id=column_id))])

    def mark_stale(self) -> None:
        self.stale = True
