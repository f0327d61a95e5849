"""Adapter between approved deltas and the persistence service.

``SyncClient`` exposes one coroutine per remote operation and ``push``,
which turns a delta into the remote call(s) its intent needs. Any transport
error or non-success response surfaces as ``SyncFailure``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from .config import SyncSettings
from .errors import PartialReorderFailure, SyncFailure
from .models import Board, Card, CardKind, Column
from .schemas import BoardRecord, CaseRecord, ColumnRecord, DeescalateResult
from .store import card_from_record
from .transitions import (
    AddColumn,
    CreateCard,
    Deescalate,
    Delta,
    EditCard,
    EditColumn,
    Escalate,
    Lose,
    Move,
    RemoveColumn,
    ReorderColumn,
    Win,
)
from .utils import utcnow

logger = logging.getLogger(__name__)

# Card attribute -> service field.
CARD_FIELDS = {
    "title": "title",
    "priority": "priority",
    "assignee": "assignee",
    "due_date": "dueDate",
    "customer_name": "customerName",
    "quote_reference": "quoteId",
    "po_number": "poNumber",
    "product_type": "productType",
    "specs": "specs",
}


def _wire_value(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


@dataclass
class SyncResult:
    """Service-side identities for records the engine created provisionally."""

    cards: dict[str, Card] = field(default_factory=dict)
    columns: dict[str, str] = field(default_factory=dict)


class SyncClient:
    def __init__(self, settings: Optional[SyncSettings] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings or SyncSettings.from_env()
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.base_url,
            headers=self.settings.headers,
            timeout=self.settings.timeout,
        )

    async def __aenter__(self) -> "SyncClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise SyncFailure(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            detail = _error_detail(response)
            logger.warning("%s %s returned %s: %s", method, path, response.status_code, detail)
            raise SyncFailure(f"{method} {path} returned {response.status_code}: {detail}", response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # === Remote operations ===

    async def fetch_board(self, board_id: str) -> BoardRecord:
        return BoardRecord.model_validate(await self._request("GET", f"/boards/{board_id}"))

    async def move_case(self, case_id: str, column_id: str, position: Optional[int]) -> None:
        await self._request("POST", f"/cases/{case_id}/move", {"columnId": column_id, "position": position})

    async def update_case(self, case_id: str, fields: dict[str, Any]) -> CaseRecord:
        return CaseRecord.model_validate(await self._request("PUT", f"/cases/{case_id}", fields))

    async def create_case(self, payload: dict[str, Any]) -> CaseRecord:
        return CaseRecord.model_validate(await self._request("POST", "/cases", payload))

    async def escalate_case(self, case_id: str) -> CaseRecord:
        return CaseRecord.model_validate(await self._request("POST", f"/cases/{case_id}/escalate"))

    async def deescalate_case(self, case_id: str) -> DeescalateResult:
        return DeescalateResult.model_validate(await self._request("POST", f"/cases/{case_id}/deescalate"))

    async def update_column(self, board_id: str, column_id: str, fields: dict[str, Any]) -> ColumnRecord:
        data = await self._request("PUT", f"/boards/{board_id}/columns/{column_id}", fields)
        return ColumnRecord.model_validate(data)

    async def delete_column(self, board_id: str, column_id: str) -> None:
        await self._request("DELETE", f"/boards/{board_id}/columns/{column_id}")

    async def create_column(self, board_id: str, name: str, position: int, is_final: bool = False, color: Optional[str] = None) -> ColumnRecord:
        payload = {"name": name, "position": position, "isFinal": is_final, "color": color}
        return ColumnRecord.model_validate(await self._request("POST", f"/boards/{board_id}/columns", payload))

    # === Delta dispatch ===

    async def push(self, delta: Delta, board: Board) -> SyncResult:
        """Send ``delta`` to the service.

        ``board`` is the optimistic snapshot the delta produced; it supplies
        the final positions and the provisional records to send.
        """
        intent = delta.intent
        result = SyncResult()

        if isinstance(intent, Move):
            card = board.card(intent.card_id)
            await self.move_case(card.id, card.column_id, card.position)
        elif isinstance(intent, Escalate):
            record = await self.escalate_case(intent.card_id)
            result.cards[delta.created_card_id] = card_from_record(record)
            if delta.created_column_id:
                result.columns[delta.created_column_id] = record.columnId
        elif isinstance(intent, Deescalate):
            await self.deescalate_case(intent.card_id)
        elif isinstance(intent, Win):
            card = board.card(intent.card_id)
            await self.update_case(card.id, {
                "caseType": CardKind.ORDER.value,
                "columnId": card.column_id,
                "title": card.title,
            })
        elif isinstance(intent, Lose):
            card = board.card(intent.card_id)
            archived_at = card.archived_at or utcnow()
            await self.update_case(card.id, {"archivedAt": archived_at.isoformat()})
        elif isinstance(intent, CreateCard):
            card = board.card(delta.created_card_id)
            record = await self.create_case(_case_payload(board.id, card))
            result.cards[card.id] = card_from_record(record)
        elif isinstance(intent, EditCard):
            card = board.card(intent.card_id)
            payload = {CARD_FIELDS[k]: _wire_value(getattr(card, k)) for k in intent.changes}
            await self.update_case(intent.card_id, payload)
        elif isinstance(intent, ReorderColumn):
            await self._push_reorder(board, delta)
        elif isinstance(intent, AddColumn):
            column = board.column(delta.created_column_id)
            record = await self.create_column(board.id, column.name, column.position, column.is_final, column.color)
            result.columns[column.id] = record.id
        elif isinstance(intent, EditColumn):
            payload = {"name": intent.name, "color": intent.color, "isFinal": intent.is_final}
            await self.update_column(board.id, intent.column_id, {k: v for k, v in payload.items() if v is not None})
        elif isinstance(intent, RemoveColumn):
            await self.delete_column(board.id, intent.column_id)
        else:
            raise TypeError(f"no remote mapping for {intent!r}")
        return result

    async def _push_reorder(self, board: Board, delta: Delta) -> None:
        """Write both swapped positions concurrently.

        The two writes are independent: when only one lands the service and
        the local snapshot disagree, and that is reported rather than undone.
        """
        swap = delta.changes[0]
        columns: list[Column] = [board.column(swap.first_id), board.column(swap.second_id)]
        outcomes = await asyncio.gather(
            *(self.update_column(board.id, c.id, {"position": c.position}) for c in columns),
            return_exceptions=True,
        )
        failed = [c.id for c, outcome in zip(columns, outcomes) if isinstance(outcome, BaseException)]
        for outcome in outcomes:
            if isinstance(outcome, BaseException) and not isinstance(outcome, SyncFailure):
                raise outcome
        if len(failed) == len(columns):
            raise SyncFailure(f"column reorder failed: {outcomes[0]}")
        if failed:
            raise PartialReorderFailure(
                "Failed to save column order. Please refresh.",
                failed_column_ids=failed,
            )


def _case_payload(board_id: str, card: Card) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "boardId": board_id,
        "columnId": card.column_id,
        "caseType": card.kind.value,
    }
    for attr, wire in CARD_FIELDS.items():
        value = getattr(card, attr, None)
        if value is not None:
            payload[wire] = _wire_value(value)
    return payload


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or "error"
    if isinstance(data, dict):
        return str(data.get("detail") or data.get("message") or data)
    return str(data)
