import asyncio

import httpx
import pytest

from caseboard.config import SyncSettings
from caseboard.errors import AlreadyEscalated, InvalidTransition, PartialReorderFailure, SyncFailure
from caseboard.models import ColumnRole
from caseboard.ordering import Direction
from caseboard.reconcile import ReconciliationManager
from caseboard.store import BoardStore
from caseboard.sync import SyncClient
from caseboard.transitions import Deescalate, Escalate, Lose, Move, ReorderColumn


class FakeService:
    """Records requests and answers from a route table."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.calls.append(key)
        answer = self.routes[key] if key in self.routes else self.default(request)
        if isinstance(answer, Exception):
            raise answer
        return answer

    @staticmethod
    def default(request):
        path = request.url.path
        if "/columns/" in path:
            column_id = path.rsplit("/", 1)[1]
            return httpx.Response(200, json={"id": column_id, "boardId": "board-1", "name": "Column", "position": 0})
        return httpx.Response(200, json={})


def make_manager(board, service, engine):
    settings = SyncSettings(base_url="http://test/v1")
    client = httpx.AsyncClient(transport=httpx.MockTransport(service), base_url=settings.base_url)
    store = BoardStore()
    store.restore(board)
    manager = ReconciliationManager(store, SyncClient(settings, client), engine=engine)
    notices = []
    for event in ("rejected", "reverted", "partial_reorder"):
        manager.subscribe(event, notices.append)
    return manager, notices


def test_rejection_sends_nothing(board, engine):
    service = FakeService()
    manager, notices = make_manager(board, service, engine)

    with pytest.raises(InvalidTransition):
        asyncio.run(manager.dispatch(Move("quote-1", "col-progress")))

    assert service.calls == []
    assert manager.store.board is board
    assert [n.event for n in notices] == ["rejected"]


def test_repeat_escalation_is_rejected(board, engine):
    manager, _ = make_manager(board, FakeService(), engine)
    manager.store.apply(engine.decide(board, Escalate("order-1")).delta)
    with pytest.raises(AlreadyEscalated):
        asyncio.run(manager.dispatch(Escalate("order-1")))


def test_successful_move_keeps_optimistic_state(board, engine):
    service = FakeService()
    manager, notices = make_manager(board, service, engine)

    after = asyncio.run(manager.dispatch(Move("order-1", "col-progress")))

    assert service.calls == [("POST", "/v1/cases/order-1/move")]
    assert after.card("order-1").column_id == "col-progress"
    assert manager.store.board is after
    assert notices == []


@pytest.mark.parametrize("failure", [
    httpx.Response(500, json={"detail": "boom"}),
    httpx.Response(404, json={"detail": "case_not_found"}),
    httpx.ConnectError("unreachable"),
])
def test_failed_push_restores_snapshot(board, engine, failure):
    service = FakeService({("POST", "/v1/cases/order-1/move"): failure})
    manager, notices = make_manager(board, service, engine)

    with pytest.raises(SyncFailure):
        asyncio.run(manager.dispatch(Move("order-1", "col-review", 0)))

    assert manager.store.board == board
    assert [n.event for n in notices] == ["reverted"]


def test_failed_lose_restores_snapshot(board, engine):
    service = FakeService({("PUT", "/v1/cases/quote-1"): httpx.Response(503)})
    manager, _ = make_manager(board, service, engine)

    with pytest.raises(SyncFailure) as info:
        asyncio.run(manager.dispatch(Lose("quote-1")))

    assert info.value.status_code == 503
    assert manager.store.board.card("quote-1").archived_at is None


def test_escalate_adopts_service_ids(board, engine):
    mirror = {
        "id": "srv-mirror",
        "boardId": "board-1",
        "columnId": "srv-col",
        "position": 0,
        "title": "[ESCALATED] Pallet order",
        "caseType": "ORDER",
        "poNumber": "PO-7",
    }
    service = FakeService({("POST", "/v1/cases/order-1/escalate"): httpx.Response(201, json=mirror)})
    manager, _ = make_manager(board, service, engine)

    after = asyncio.run(manager.dispatch(Escalate("order-1")))

    assert service.calls == [("POST", "/v1/cases/order-1/escalate")]
    assert after.column("srv-col").role is ColumnRole.ESCALATIONS
    assert after.card("srv-mirror").column_id == "srv-col"
    assert after.card("order-1").escalated_to_id == "srv-mirror"
    assert after.card("tmp-2") is None


def test_unresolved_column_triggers_reload(escalation_board, engine):
    reloaded = {"id": "board-1", "name": "Reloaded", "columns": []}
    service = FakeService({("GET", "/v1/boards/board-1"): httpx.Response(200, json=reloaded)})
    manager, _ = make_manager(escalation_board, service, engine)
    delta = engine.decide(escalation_board, Escalate("order-1")).delta
    manager.store.apply(delta)
    service.routes[("POST", f"/v1/cases/{delta.created_card_id}/deescalate")] = httpx.Response(
        200, json={"message": "De-escalated successfully", "id": delta.created_card_id}
    )

    after = asyncio.run(manager.dispatch(Deescalate(delta.created_card_id)))

    assert service.calls == [
        ("POST", f"/v1/cases/{delta.created_card_id}/deescalate"),
        ("GET", "/v1/boards/board-1"),
    ]
    assert after.name == "Reloaded"


def test_partial_reorder_is_left_in_place(board, engine):
    service = FakeService({("PUT", "/v1/boards/board-1/columns/col-review"): httpx.Response(500)})
    manager, notices = make_manager(board, service, engine)

    with pytest.raises(PartialReorderFailure) as info:
        asyncio.run(manager.dispatch(ReorderColumn("col-progress", Direction.RIGHT)))

    assert info.value.failed_column_ids == ("col-review",)
    assert info.value.message == "Failed to save column order. Please refresh."
    assert manager.store.stale
    assert [c.id for c in manager.store.board.columns] == ["col-new", "col-review", "col-progress", "col-done"]
    assert [n.event for n in notices] == ["partial_reorder"]


def test_reorder_with_both_writes_failing_reverts(board, engine):
    service = FakeService({
        ("PUT", "/v1/boards/board-1/columns/col-progress"): httpx.Response(500),
        ("PUT", "/v1/boards/board-1/columns/col-review"): httpx.Response(500),
    })
    manager, notices = make_manager(board, service, engine)

    with pytest.raises(SyncFailure) as info:
        asyncio.run(manager.dispatch(ReorderColumn("col-progress", Direction.RIGHT)))

    assert not isinstance(info.value, PartialReorderFailure)
    assert manager.store.board == board
    assert not manager.store.stale
    assert [n.event for n in notices] == ["reverted"]


def test_failing_subscriber_does_not_break_dispatch(board, engine):
    manager, _ = make_manager(board, FakeService(), engine)

    def explode(notice):
        raise RuntimeError("listener bug")

    manager.subscribe("rejected", explode)
    with pytest.raises(InvalidTransition):
        asyncio.run(manager.dispatch(Move("quote-1", "col-done")))
