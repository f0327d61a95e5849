from datetime import datetime, timezone
from itertools import count

import pytest

from caseboard.models import Board, Column, ColumnRole, OrderCard, QuestionCard, QuoteCard
from caseboard.storage import storage
from caseboard.transitions import TransitionEngine

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
AUTH = {"Authorization": "Bearer tester"}


@pytest.fixture(autouse=True)
def clean_storage():
    storage.clear()
    yield
    storage.clear()


@pytest.fixture
def engine():
    ids = count(1)
    return TransitionEngine(clock=lambda: FIXED_NOW, id_factory=lambda: f"tmp-{next(ids)}")


def make_board(with_escalations: bool = False) -> Board:
    """New / Progress / Review / Done with one card of each kind in New."""
    new = Column(
        id="col-new",
        name="New",
        position=0,
        cards=(
            OrderCard(id="order-1", title="Pallet order", column_id="col-new", position=0, po_number="PO-7"),
            QuoteCard(id="quote-1", title="Bulk quote", column_id="col-new", position=1, quote_reference="AB12CD34"),
            QuestionCard(id="question-1", title="Lead time?", column_id="col-new", position=2),
        ),
    )
    columns = [
        new,
        Column(id="col-progress", name="Progress", position=1),
        Column(id="col-review", name="Review", position=2),
        Column(id="col-done", name="Done", position=3, is_final=True),
    ]
    if with_escalations:
        columns.append(Column(id="col-esc", name="Escalations", position=4, role=ColumnRole.ESCALATIONS))
    return Board(id="board-1", name="Sales", columns=tuple(columns))


@pytest.fixture
def board():
    return make_board()


@pytest.fixture
def escalation_board():
    return make_board(with_escalations=True)
