"""Transition engine.

``decide(board, intent)`` inspects an immutable board snapshot and returns
either ``Approved(delta)`` or ``Rejected(reason, message)``. It performs no
I/O and never touches the store; the delta is a list of primitive changes
that ``BoardStore.apply`` knows how to replay.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from typing import Any, Callable, Mapping, Optional, Union

from .config import DEFAULT_CONFIG, BoardConfig
from .errors import RejectionReason
from .models import (
    CARD_TYPES,
    STRUCTURAL_FIELDS,
    Board,
    Card,
    CardKind,
    Column,
    ColumnRole,
    OrderCard,
    Priority,
    QuoteCard,
)
from .ordering import Direction, clamp_index, swapped_positions
from .utils import new_id, utcnow


# === Intents ===


@dataclass(frozen=True)
class Move:
    card_id: str
    column_id: str
    position: Optional[int] = None


@dataclass(frozen=True)
class Escalate:
    card_id: str


@dataclass(frozen=True)
class Deescalate:
    card_id: str


@dataclass(frozen=True)
class Win:
    card_id: str


@dataclass(frozen=True)
class Lose:
    card_id: str


@dataclass(frozen=True)
class ReorderColumn:
    column_id: str
    direction: Direction


@dataclass(frozen=True)
class CreateCard:
    title: str
    kind: CardKind = CardKind.ORDER
    column_id: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    assignee: Optional[str] = None
    due_date: Optional[date] = None
    details: Optional[Mapping[str, Any]] = None  # kind-specific fields


@dataclass(frozen=True)
class EditCard:
    card_id: str
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class AddColumn:
    name: Optional[str] = None
    color: Optional[str] = None
    is_final: bool = False


@dataclass(frozen=True)
class EditColumn:
    column_id: str
    name: Optional[str] = None
    color: Optional[str] = None
    is_final: Optional[bool] = None


@dataclass(frozen=True)
class RemoveColumn:
    column_id: str


Intent = Union[
    Move, Escalate, Deescalate, Win, Lose, ReorderColumn,
    CreateCard, EditCard, AddColumn, EditColumn, RemoveColumn,
]


# === Primitive changes ===


@dataclass(frozen=True)
class PutCard:
    """Replace the card with the same id, keeping its slot."""

    card: Card


@dataclass(frozen=True)
class InsertCard:
    card: Card
    position: Optional[int] = None


@dataclass(frozen=True)
class RelocateCard:
    card_id: str
    column_id: str
    position: Optional[int] = None


@dataclass(frozen=True)
class InsertColumn:
    column: Column


@dataclass(frozen=True)
class PutColumn:
    column: Column


@dataclass(frozen=True)
class DropColumn:
    column_id: str


@dataclass(frozen=True)
class SwapColumns:
    first_id: str
    second_id: str


@dataclass(frozen=True)
class Rekey:
    old_id: str
    new_id: str


Change = Union[PutCard, InsertCard, RelocateCard, InsertColumn, PutColumn, DropColumn, SwapColumns, Rekey]


@dataclass(frozen=True)
class Delta:
    intent: Any
    changes: tuple[Change, ...]
    created_card_id: Optional[str] = None
    created_column_id: Optional[str] = None

    @property
    def provisional_ids(self) -> tuple[str, ...]:
        return tuple(i for i in (self.created_card_id, self.created_column_id) if i)


@dataclass(frozen=True)
class Approved:
    delta: Delta


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    message: str


Decision = Union[Approved, Rejected]


# === Engine ===


class TransitionEngine:
    """Pure decision logic. Clock and id factory are injectable for tests."""

    def __init__(
        self,
        config: BoardConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_id,
    ) -> None:
        self.config = config
        self.clock = clock
        self.id_factory = id_factory
        self._handlers = {
            Move: self._move,
            Escalate: self._escalate,
            Deescalate: self._deescalate,
            Win: self._win,
            Lose: self._lose,
            ReorderColumn: self._reorder_column,
            CreateCard: self._create_card,
            EditCard: self._edit_card,
            AddColumn: self._add_column,
            EditColumn: self._edit_column,
            RemoveColumn: self._remove_column,
        }

    def decide(self, board: Board, intent: Intent) -> Decision:
        handler = self._handlers.get(type(intent))
        if handler is None:
            raise TypeError(f"unsupported intent: {intent!r}")
        return handler(board, intent)

    # === Card transitions ===

    def _live_card(self, board: Board, card_id: str) -> Union[Card, Rejected]:
        card = board.card(card_id)
        if card is None:
            return Rejected(RejectionReason.UNKNOWN_CARD, f"card {card_id} is not on this board")
        if card.is_archived:
            return Rejected(RejectionReason.INVALID_TRANSITION, "archived cards cannot change")
        return card

    def _move(self, board: Board, intent: Move) -> Decision:
        card = self._live_card(board, intent.card_id)
        if isinstance(card, Rejected):
            return card
        target = board.column(intent.column_id)
        if target is None:
            return Rejected(RejectionReason.UNKNOWN_COLUMN, f"column {intent.column_id} does not exist")
        if isinstance(card, QuoteCard) and target.id != card.column_id:
            return Rejected(
                RejectionReason.INVALID_TRANSITION,
                "Quote cards cannot be moved manually. Use Win/Lose actions.",
            )
        # Same-column moves see the list without the card itself.
        length = len(target.cards) - (1 if target.id == card.column_id else 0)
        position = clamp_index(intent.position, length)
        return Approved(Delta(intent, (RelocateCard(card.id, target.id, position),)))

    def _escalate(self, board: Board, intent: Escalate) -> Decision:
        card = self._live_card(board, intent.card_id)
        if isinstance(card, Rejected):
            return card
        if card.escalated_to_id is not None:
            return Rejected(RejectionReason.ALREADY_ESCALATED, f"card {card.id} is already escalated")
        home = board.column(card.column_id)
        if home is not None and home.role is not ColumnRole.STAGE:
            return Rejected(RejectionReason.INVALID_TRANSITION, "escalation mirrors cannot be escalated")

        changes: list[Change] = []
        column, created_column = self._role_column(board, ColumnRole.ESCALATIONS)
        if created_column:
            changes.append(InsertColumn(column))
        mirror = replace(
            card,
            id=self.id_factory(),
            title=f"{self.config.escalated_title_prefix}{card.title}",
            column_id=column.id,
            created_at=self.clock(),
            escalated_to_id=None,
        )
        changes.append(InsertCard(mirror))
        changes.append(PutCard(replace(card, escalated_to_id=mirror.id)))
        return Approved(Delta(
            intent,
            tuple(changes),
            created_card_id=mirror.id,
            created_column_id=column.id if created_column else None,
        ))

    def _deescalate(self, board: Board, intent: Deescalate) -> Decision:
        card = board.card(intent.card_id)
        if card is None:
            return Rejected(RejectionReason.UNKNOWN_CARD, f"card {intent.card_id} is not on this board")
        mirror_id = card.escalated_to_id
        if mirror_id is None and board.source_of(card.id) is not None:
            mirror_id = card.id
        mirror = board.card(mirror_id) if mirror_id else None
        if mirror is None:
            return Rejected(RejectionReason.NOT_ESCALATED, f"card {card.id} has no escalation")
        home = board.column(mirror.column_id)
        if home is None or home.role is not ColumnRole.ESCALATIONS:
            return Rejected(RejectionReason.NOT_ESCALATED, f"card {card.id} is not in the escalation queue")

        changes: list[Change] = []
        column, created_column = self._role_column(board, ColumnRole.DEESCALATED)
        if created_column:
            changes.append(InsertColumn(column))
        # The source keeps its forward link; only the mirror moves.
        changes.append(RelocateCard(mirror.id, column.id, None))
        return Approved(Delta(
            intent,
            tuple(changes),
            created_column_id=column.id if created_column else None,
        ))

    def _win(self, board: Board, intent: Win) -> Decision:
        card = self._live_card(board, intent.card_id)
        if isinstance(card, Rejected):
            return card
        if not isinstance(card, QuoteCard):
            return Rejected(RejectionReason.INVALID_TRANSITION, "only quotes can be won")
        if len(board.columns) < 2:
            return Rejected(
                RejectionReason.INSUFFICIENT_COLUMNS,
                "Cannot move to next stage: Board has fewer than 2 columns.",
            )
        target = board.columns[1]
        title = card.title
        if card.quote_reference:
            title = f"{title} (Ref: {card.quote_reference})"
        changes: list[Change] = [PutCard(convert(card, OrderCard, title=title))]
        if card.column_id != target.id:
            changes.append(RelocateCard(card.id, target.id, None))
        return Approved(Delta(intent, tuple(changes)))

    def _lose(self, board: Board, intent: Lose) -> Decision:
        card = self._live_card(board, intent.card_id)
        if isinstance(card, Rejected):
            return card
        if not isinstance(card, QuoteCard):
            return Rejected(RejectionReason.INVALID_TRANSITION, "only quotes can be lost")
        return Approved(Delta(intent, (PutCard(replace(card, archived_at=self.clock())),)))

    def _create_card(self, board: Board, intent: CreateCard) -> Decision:
        if not board.columns:
            return Rejected(RejectionReason.INSUFFICIENT_COLUMNS, "Board has no columns")
        column = board.column(intent.column_id) if intent.column_id else board.columns[0]
        if column is None:
            return Rejected(RejectionReason.UNKNOWN_COLUMN, f"column {intent.column_id} does not exist")
        if intent.kind is CardKind.QUOTE and column.id != board.columns[0].id:
            return Rejected(RejectionReason.INVALID_TRANSITION, "quotes start in the first column")
        card_type = CARD_TYPES[intent.kind]
        details = dict(intent.details or {})
        unknown = set(details) - _detail_fields(card_type)
        if unknown:
            return Rejected(
                RejectionReason.INVALID_TRANSITION,
                f"unknown fields for {intent.kind.name}: {', '.join(sorted(unknown))}",
            )
        card = card_type(
            id=self.id_factory(),
            title=intent.title.strip(),
            column_id=column.id,
            priority=intent.priority,
            assignee=intent.assignee,
            due_date=intent.due_date,
            created_at=self.clock(),
            **details,
        )
        return Approved(Delta(intent, (InsertCard(card),), created_card_id=card.id))

    def _edit_card(self, board: Board, intent: EditCard) -> Decision:
        card = self._live_card(board, intent.card_id)
        if isinstance(card, Rejected):
            return card
        structural = set(intent.changes) & (STRUCTURAL_FIELDS | {"kind"})
        if structural:
            return Rejected(
                RejectionReason.INVALID_TRANSITION,
                f"{', '.join(sorted(structural))} change only through workflow transitions",
            )
        unknown = set(intent.changes) - _editable_fields(type(card))
        if unknown:
            return Rejected(
                RejectionReason.INVALID_TRANSITION,
                f"unknown fields for {card.kind.name}: {', '.join(sorted(unknown))}",
            )
        try:
            changes = _coerce_changes(intent.changes)
        except ValueError as exc:
            return Rejected(RejectionReason.INVALID_TRANSITION, str(exc))
        return Approved(Delta(intent, (PutCard(replace(card, **changes)),)))

    # === Column transitions ===

    def _reorder_column(self, board: Board, intent: ReorderColumn) -> Decision:
        if board.column(intent.column_id) is None:
            return Rejected(RejectionReason.UNKNOWN_COLUMN, f"column {intent.column_id} does not exist")
        writes = swapped_positions(board.columns, intent.column_id, intent.direction)
        if writes is None:
            edge = "first" if intent.direction is Direction.LEFT else "last"
            return Rejected(RejectionReason.COLUMN_AT_EDGE, f"column is already {edge}")
        (moved_id, _), (neighbour_id, _) = writes
        return Approved(Delta(intent, (SwapColumns(moved_id, neighbour_id),)))

    def _add_column(self, board: Board, intent: AddColumn) -> Decision:
        name = (intent.name or self.config.new_column_name).strip()
        column = Column(
            id=self.id_factory(),
            name=name,
            position=len(board.columns),
            color=intent.color or self.config.new_column_color,
            is_final=intent.is_final,
            role=self.config.role_for_name(name),
        )
        return Approved(Delta(intent, (InsertColumn(column),), created_column_id=column.id))

    def _edit_column(self, board: Board, intent: EditColumn) -> Decision:
        column = board.column(intent.column_id)
        if column is None:
            return Rejected(RejectionReason.UNKNOWN_COLUMN, f"column {intent.column_id} does not exist")
        updates: dict[str, Any] = {}
        if intent.name is not None:
            if not intent.name.strip():
                return Rejected(RejectionReason.INVALID_TRANSITION, "column name cannot be empty")
            updates["name"] = intent.name.strip()
        if intent.color is not None:
            updates["color"] = intent.color
        if intent.is_final is not None:
            updates["is_final"] = intent.is_final
        if not updates:
            return Rejected(RejectionReason.INVALID_TRANSITION, "nothing to change")
        return Approved(Delta(intent, (PutColumn(replace(column, **updates)),)))

    def _remove_column(self, board: Board, intent: RemoveColumn) -> Decision:
        if board.column(intent.column_id) is None:
            return Rejected(RejectionReason.UNKNOWN_COLUMN, f"column {intent.column_id} does not exist")
        return Approved(Delta(intent, (DropColumn(intent.column_id),)))

    # === Helpers ===

    def _role_column(self, board: Board, role: ColumnRole) -> tuple[Column, bool]:
        """Find the column for ``role`` or build a provisional one at the end."""
        column = board.column_by_role(role)
        if column is not None:
            return column, False
        column = Column(
            id=self.id_factory(),
            name=self.config.name_for_role(role),
            position=len(board.columns),
            color=self.config.color_for_role(role),
            role=role,
        )
        return column, True


def _editable_fields(card_type: type[Card]) -> set[str]:
    return {f.name for f in fields(card_type)} - STRUCTURAL_FIELDS


def _detail_fields(card_type: type[Card]) -> set[str]:
    return _editable_fields(card_type) - {"title", "priority", "assignee", "due_date"}


def _coerce_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Parse wire-style values for typed card fields."""
    out = dict(changes)
    priority = out.get("priority")
    if isinstance(priority, str):
        out["priority"] = Priority.parse(priority)
    due_date = out.get("due_date")
    if isinstance(due_date, datetime):
        out["due_date"] = due_date.date()
    elif isinstance(due_date, str):
        try:
            out["due_date"] = date.fromisoformat(due_date)
        except ValueError:
            raise ValueError(f"invalid due date: {due_date!r}") from None
    return out


def convert(card: Card, card_type: type[Card], **overrides: Any) -> Card:
    """Rebuild ``card`` as another variant, carrying every shared field."""
    target = {f.name for f in fields(card_type)}
    values = {f.name: getattr(card, f.name) for f in fields(card) if f.name in target}
    values.update(overrides)
    return card_type(**values)


_default_engine = TransitionEngine()


def decide(board: Board, intent: Intent) -> Decision:
    return _default_engine.decide(board, intent)
