from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Iterator, Optional


# === Enumerations ===


class CardKind(Enum):
    ORDER = "ORDER"
    QUOTE = "QUOTE"
    QUESTION = "QUESTION"
    SERVICE_REQUEST = "SR"


class Priority(Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Priority":
        if not value:
            return cls.MEDIUM
        for member in cls:
            if member.value.lower() == value.strip().lower():
                return member
        return cls.MEDIUM


class ColumnRole(Enum):
    """Stable tag for columns the workflow treats specially."""

    STAGE = "stage"
    ESCALATIONS = "escalations"
    DEESCALATED = "deescalated"


# === Cards ===


@dataclass(frozen=True)
class Card:
    """Shared base of every card variant.

    ``column_id`` and ``position`` always mirror where the card sits in the
    owning board snapshot; the store rewrites them whenever a column's card
    list changes.
    """

    kind: ClassVar[CardKind]

    id: str
    title: str
    column_id: str
    position: int = 0
    priority: Priority = Priority.MEDIUM
    assignee: Optional[str] = None
    due_date: Optional[date] = None
    created_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    escalated_to_id: Optional[str] = None
    customer_name: Optional[str] = None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


@dataclass(frozen=True)
class OrderCard(Card):
    kind: ClassVar[CardKind] = CardKind.ORDER

    po_number: Optional[str] = None
    quote_reference: Optional[str] = None  # kept when a quote is won
    product_type: Optional[str] = None


@dataclass(frozen=True)
class QuoteCard(Card):
    kind: ClassVar[CardKind] = CardKind.QUOTE

    quote_reference: Optional[str] = None
    product_type: Optional[str] = None
    specs: Optional[str] = None


@dataclass(frozen=True)
class QuestionCard(Card):
    kind: ClassVar[CardKind] = CardKind.QUESTION


@dataclass(frozen=True)
class ServiceRequestCard(Card):
    kind: ClassVar[CardKind] = CardKind.SERVICE_REQUEST

    product_type: Optional[str] = None


CARD_TYPES: dict[CardKind, type[Card]] = {
    CardKind.ORDER: OrderCard,
    CardKind.QUOTE: QuoteCard,
    CardKind.QUESTION: QuestionCard,
    CardKind.SERVICE_REQUEST: ServiceRequestCard,
}

# Fields that only workflow transitions may change.
STRUCTURAL_FIELDS = frozenset(
    {"id", "column_id", "position", "archived_at", "escalated_to_id", "created_at"}
)


# === Board ===


@dataclass(frozen=True)
class Column:
    id: str
    name: str
    position: int
    color: Optional[str] = None
    is_final: bool = False
    role: ColumnRole = ColumnRole.STAGE
    cards: tuple[Card, ...] = ()

    @property
    def active_cards(self) -> tuple[Card, ...]:
        return tuple(c for c in self.cards if not c.is_archived)


@dataclass(frozen=True)
class Board:
    """Immutable board snapshot. Columns are kept sorted by position."""

    id: str
    name: str
    columns: tuple[Column, ...] = field(default=())

    def column(self, column_id: str) -> Optional[Column]:
        for column in self.columns:
            if column.id == column_id:
                return column
        return None

    def column_at(self, index: int) -> Optional[Column]:
        if 0 <= index < len(self.columns):
            return self.columns[index]
        return None

    def column_by_role(self, role: ColumnRole) -> Optional[Column]:
        for column in self.columns:
            if column.role is role:
                return column
        return None

    def iter_cards(self) -> Iterator[Card]:
        for column in self.columns:
            yield from column.cards

    def card(self, card_id: str) -> Optional[Card]:
        for card in self.iter_cards():
            if card.id == card_id:
                return card
        return None

    def source_of(self, mirror_id: str) -> Optional[Card]:
        """Return the card whose forward link points at ``mirror_id``."""
        for card in self.iter_cards():
            if card.escalated_to_id == mirror_id:
                return card
        return None

    def is_actively_escalated(self, card: Card) -> bool:
        """True while the card's mirror sits in the Escalations column."""
        if card.escalated_to_id is None:
            return False
        mirror = self.card(card.escalated_to_id)
        if mirror is None:
            return False
        column = self.column(mirror.column_id)
        return column is not None and column.role is ColumnRole.ESCALATIONS
