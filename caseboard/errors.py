from __future__ import annotations

from enum import Enum
from typing import Optional, Sequence


class RejectionReason(Enum):
    INVALID_TRANSITION = "invalid_transition"
    ALREADY_ESCALATED = "already_escalated"
    INSUFFICIENT_COLUMNS = "insufficient_columns"
    NOT_ESCALATED = "not_escalated"
    COLUMN_AT_EDGE = "column_at_edge"
    UNKNOWN_CARD = "unknown_card"
    UNKNOWN_COLUMN = "unknown_column"


class CaseboardError(Exception):
    """Base class for every error raised by the workflow core."""


class BoardNotLoaded(CaseboardError):
    pass


# === Local validation failures (nothing changed, nothing sent) ===


class TransitionRejected(CaseboardError):
    reason: RejectionReason = RejectionReason.INVALID_TRANSITION

    def __init__(self, message: str, reason: Optional[RejectionReason] = None) -> None:
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason


class InvalidTransition(TransitionRejected):
    reason = RejectionReason.INVALID_TRANSITION


class AlreadyEscalated(TransitionRejected):
    reason = RejectionReason.ALREADY_ESCALATED


class InsufficientColumns(TransitionRejected):
    reason = RejectionReason.INSUFFICIENT_COLUMNS


class NotEscalated(TransitionRejected):
    reason = RejectionReason.NOT_ESCALATED


class ColumnAtEdge(TransitionRejected):
    reason = RejectionReason.COLUMN_AT_EDGE


class UnknownCard(TransitionRejected):
    reason = RejectionReason.UNKNOWN_CARD


class UnknownColumn(TransitionRejected):
    reason = RejectionReason.UNKNOWN_COLUMN


_BY_REASON: dict[RejectionReason, type[TransitionRejected]] = {
    cls.reason: cls
    for cls in (
        InvalidTransition,
        AlreadyEscalated,
        InsufficientColumns,
        NotEscalated,
        ColumnAtEdge,
        UnknownCard,
        UnknownColumn,
    )
}


def rejection_error(reason: RejectionReason, message: str) -> TransitionRejected:
    return _BY_REASON[reason](message)


# === Remote failures (after an optimistic apply) ===


class SyncFailure(CaseboardError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PartialReorderFailure(SyncFailure):
    """One of the two column position writes failed and the other landed.

    Local and remote positions disagree until the board is reloaded.
    """

    def __init__(self, message: str, failed_column_ids: Sequence[str]) -> None:
        super().__init__(message)
        self.failed_column_ids = tuple(failed_column_ids)
