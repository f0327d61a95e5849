"""Optimistic apply / remote confirm / rollback orchestration.

For each intent the manager asks the engine for a decision, applies an
approved delta to the store before awaiting anything, pushes it through the
sync client, and restores the captured snapshot if the push fails.

Rapid intents against the same card are not serialized: a rollback restores
the snapshot taken for its own intent, which can also undo a later intent
that completed in the meantime. No timeout is added on top of the sync
client's transport timeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .config import DEFAULT_CONFIG, BoardConfig
from .errors import PartialReorderFailure, SyncFailure, rejection_error
from .models import Board
from .store import BoardStore
from .sync import SyncClient, SyncResult
from .transitions import Approved, Delta, Intent, TransitionEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """What a presentation layer should tell the user."""

    event: str
    message: str
    intent: Any = None


class ReconciliationManager:
    def __init__(
        self,
        store: BoardStore,
        sync: SyncClient,
        engine: Optional[TransitionEngine] = None,
        config: BoardConfig = DEFAULT_CONFIG,
    ) -> None:
        self.store = store
        self.sync = sync
        if store.fetcher is None:
            store.fetcher = sync.fetch_board
        self.config = config
        self.engine = engine or TransitionEngine(config)
        self.subscribers: dict[str, list[Callable[[Notice], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Notice], None]) -> None:
        """Register a callback for ``rejected``, ``reverted`` or ``partial_reorder``."""
        self.subscribers.setdefault(event, []).append(callback)

    def _emit(self, notice: Notice) -> None:
        for callback in self.subscribers.get(notice.event, []):
            try:
                callback(notice)
            except Exception:
                logger.exception("error in %s callback", notice.event)

    async def load(self, board_id: str) -> Board:
        return await self.store.load(board_id)

    async def refresh(self) -> Board:
        return await self.load(self.store.board.id)

    async def dispatch(self, intent: Intent) -> Board:
        """Run one user intent through decide / apply / push.

        Returns the board after the remote confirmed. Raises a
        ``TransitionRejected`` subclass when the engine refuses (nothing
        changed), ``SyncFailure`` after a rollback, and
        ``PartialReorderFailure`` when a column swap half-landed.
        """
        decision = self.engine.decide(self.store.board, intent)
        if not isinstance(decision, Approved):
            logger.info("rejected %r: %s", intent, decision.message)
            self._emit(Notice("rejected", decision.message, intent))
            raise rejection_error(decision.reason, decision.message)

        saved = self.store.snapshot()
        optimistic = self.store.apply(decision.delta)
        try:
            result = await self.sync.push(decision.delta, optimistic)
        except PartialReorderFailure as exc:
            # Left as is: one position write landed remotely.
            self.store.mark_stale()
            logger.error("partial column reorder for %r, failed columns %s", intent, exc.failed_column_ids)
            self._emit(Notice("partial_reorder", exc.message, intent))
            raise
        except SyncFailure as exc:
            self.store.restore(saved)
            logger.warning("reverted %r: %s", intent, exc.message)
            self._emit(Notice("reverted", exc.message, intent))
            raise

        if self._adopt(decision.delta, result):
            return await self.refresh()
        return self.store.board

    def _adopt(self, delta: Delta, result: SyncResult) -> bool:
        """Swap provisional ids for service ids; True if a reload is needed."""
        pending = set(delta.provisional_ids)
        for provisional_id, column_id in result.columns.items():
            self.store.rekey(provisional_id, column_id)
            pending.discard(provisional_id)
        for provisional_id, card in result.cards.items():
            self.store.adopt_card(provisional_id, card)
            pending.discard(provisional_id)
        if pending:
            logger.debug("reloading board to resolve %s", sorted(pending))
        return bool(pending)
