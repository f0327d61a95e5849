from caseboard.config import BoardConfig
from caseboard.lifecycle import CardState, active_view, card_state, escalation_queue, is_terminal
from caseboard.models import ColumnRole
from caseboard.store import apply_delta
from caseboard.transitions import Deescalate, Escalate, Lose, Move, Win


def step(engine, board, intent):
    return apply_delta(board, engine.decide(board, intent).delta.changes)


def test_fresh_cards_are_new(board):
    for card in board.columns[0].cards:
        assert card_state(board, card) is CardState.NEW


def test_moved_card_is_in_progress(engine, board):
    board = step(engine, board, Move("order-1", "col-review"))
    assert card_state(board, board.card("order-1")) is CardState.IN_PROGRESS


def test_final_column_is_terminal(engine, board):
    board = step(engine, board, Move("order-1", "col-done"))
    card = board.card("order-1")
    assert card_state(board, card) is CardState.DONE
    assert is_terminal(board, card)


def test_won_and_lost_quotes(engine, board):
    won = step(engine, board, Win("quote-1"))
    assert card_state(won, won.card("quote-1")) is CardState.WON

    lost = step(engine, board, Lose("quote-1"))
    assert card_state(lost, lost.card("quote-1")) is CardState.LOST
    assert is_terminal(lost, lost.card("quote-1"))


def test_escalation_is_a_side_channel(engine, board):
    board = step(engine, board, Escalate("order-1"))
    source = board.card("order-1")
    mirror = board.card(source.escalated_to_id)

    assert source.column_id == "col-new"
    assert card_state(board, source) is CardState.ESCALATED
    assert card_state(board, mirror) is CardState.ESCALATED
    assert escalation_queue(board) == (mirror,)

    board = step(engine, board, Deescalate(mirror.id))
    assert card_state(board, board.card("order-1")) is CardState.NEW
    assert card_state(board, board.card(mirror.id)) is CardState.DEESCALATED
    assert escalation_queue(board) == ()


def test_active_view_hides_archived_and_role_columns(engine, board):
    board = step(engine, board, Escalate("order-1"))
    board = step(engine, board, Lose("quote-1"))

    view = active_view(board)

    assert [c.id for c in view] == ["col-new", "col-progress", "col-review", "col-done"]
    assert [c.id for c in view[0].cards] == ["order-1", "question-1"]


def test_active_view_can_show_role_columns(engine, board):
    board = step(engine, board, Escalate("order-1"))
    view = active_view(board, BoardConfig(hide_role_columns=False))
    assert view[-1].role is ColumnRole.ESCALATIONS
