from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import DEFAULT_CONFIG, BoardConfig
from .models import CardKind, ColumnRole
from .schemas import BoardRecord, CaseRecord, ColumnRecord
from .utils import new_id, quote_reference, utcnow

DEFAULT_COLUMNS = ("To Do", "In Progress", "Done")


@dataclass
class BoardRow:
    id: str
    name: str
    owner: str
    created_at: datetime
    columns: Dict[str, ColumnRecord] = field(default_factory=dict)
    cases: Dict[str, CaseRecord] = field(default_factory=dict)


class Storage:
    """In-memory record store behind the reference service."""

    def __init__(self, config: BoardConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.boards: Dict[str, BoardRow] = {}
        self.case_index: Dict[str, str] = {}  # caseId -> boardId

    def clear(self) -> None:
        self.boards.clear()
        self.case_index.clear()

    # === Board operations ===
    def create_board(self, owner: str, name: str, column_names: Optional[List[str]] = None) -> BoardRow:
        board = BoardRow(id=new_id(), name=name.strip(), owner=owner, created_at=utcnow())
        self.boards[board.id] = board
        names = column_names or list(DEFAULT_COLUMNS)
        for index, column_name in enumerate(names):
            self.create_column(board, column_name, None, is_final=index == len(names) - 1)
        return board

    def get_board(self, board_id: str) -> BoardRow:
        return self.boards[board_id]

    def board_record(self, board: BoardRow) -> BoardRecord:
        columns = []
        for column in self.ordered_columns(board):
            cases = [c.model_copy() for c in self.cases_in(board, column.id)]
            columns.append(column.model_copy(update={"cases": cases}))
        return BoardRecord(id=board.id, name=board.name, columns=columns)

    def ordered_columns(self, board: BoardRow) -> List[ColumnRecord]:
        return sorted(board.columns.values(), key=lambda c: (c.position, c.name))

    # === Column operations ===
    def create_column(
        self,
        board: BoardRow,
        name: str,
        position: Optional[int],
        is_final: bool = False,
        color: Optional[str] = None,
        role: Optional[ColumnRole] = None,
    ) -> ColumnRecord:
        columns = self.ordered_columns(board)
        if position is None or position > len(columns):
            position = len(columns)
        for existing in columns:
            if existing.position >= position:
                existing.position += 1
        role = role or self.config.role_for_name(name.strip())
        column = ColumnRecord(
            id=new_id(),
            boardId=board.id,
            name=name.strip(),
            position=position,
            color=color or self.config.color_for_role(role),
            isFinal=is_final,
            role=role.value,
        )
        board.columns[column.id] = column
        return column

    def update_column(self, board: BoardRow, column_id: str, fields: Dict[str, Any]) -> ColumnRecord:
        # Positions are written as given; callers keep them consistent.
        column = board.columns[column_id]
        for key, value in fields.items():
            setattr(column, key, value.strip() if key == "name" else value)
        return column

    def delete_column(self, board: BoardRow, column_id: str) -> None:
        for case in self.cases_in(board, column_id):
            self._drop_case(board, case.id)
        del board.columns[column_id]
        for index, column in enumerate(self.ordered_columns(board)):
            column.position = index

    def role_column(self, board: BoardRow, role: ColumnRole) -> ColumnRecord:
        """Find the column for ``role`` or append a new one."""
        for column in self.ordered_columns(board):
            if column.role == role.value:
                return column
        return self.create_column(board, self.config.name_for_role(role), None, role=role)

    # === Case operations ===
    def get_case(self, case_id: str) -> tuple[BoardRow, CaseRecord]:
        board = self.boards[self.case_index[case_id]]
        return board, board.cases[case_id]

    def cases_in(self, board: BoardRow, column_id: str) -> List[CaseRecord]:
        cases = [c for c in board.cases.values() if c.columnId == column_id]
        return sorted(cases, key=lambda c: c.position)

    def create_case(self, board: BoardRow, column: ColumnRecord, fields: Dict[str, Any]) -> CaseRecord:
        case = CaseRecord(
            id=new_id(),
            boardId=board.id,
            columnId=column.id,
            position=len(self.cases_in(board, column.id)),
            createdAt=utcnow(),
            **fields,
        )
        if case.caseType == CardKind.QUOTE.value and not case.quoteId:
            case.quoteId = quote_reference()
        self._put(board, case)
        return case

    def move_case(self, board: BoardRow, case: CaseRecord, column_id: str, position: Optional[int]) -> CaseRecord:
        source = case.columnId
        target = [c for c in self.cases_in(board, column_id) if c.id != case.id]
        if position is None or position > len(target):
            position = len(target)
        target.insert(position, case)
        case.columnId = column_id
        self._renumber(target)
        if source != column_id:
            self._renumber(self.cases_in(board, source))
        return case

    def update_case(self, board: BoardRow, case: CaseRecord, fields: Dict[str, Any]) -> CaseRecord:
        column_id = fields.pop("columnId", None)
        for key, value in fields.items():
            setattr(case, key, value)
        if column_id and column_id != case.columnId:
            self.move_case(board, case, column_id, None)
        return case

    def escalate_case(self, board: BoardRow, case: CaseRecord) -> CaseRecord:
        column = self.role_column(board, ColumnRole.ESCALATIONS)
        mirror = case.model_copy(update={
            "id": new_id(),
            "columnId": column.id,
            "position": len(self.cases_in(board, column.id)),
            "title": f"{self.config.escalated_title_prefix}{case.title}",
            "createdAt": utcnow(),
            "archivedAt": None,
            "escalatedToId": None,
        })
        self._put(board, mirror)
        # Newest escalation wins if the case was linked before.
        case.escalatedToId = mirror.id
        return mirror

    def deescalate_case(self, board: BoardRow, case: CaseRecord) -> CaseRecord:
        target = board.cases.get(case.escalatedToId) if case.escalatedToId else case
        if target is None:
            raise KeyError(case.escalatedToId)
        column = self.role_column(board, ColumnRole.DEESCALATED)
        # The source keeps escalatedToId.
        return self.move_case(board, target, column.id, None)

    def delete_case(self, board: BoardRow, case_id: str) -> None:
        case = board.cases[case_id]
        doomed = [case]
        if case.escalatedToId and case.escalatedToId in board.cases:
            doomed.append(board.cases[case.escalatedToId])
        for doomed_case in doomed:
            self._drop_case(board, doomed_case.id)
        for column_id in {c.columnId for c in doomed}:
            self._renumber(self.cases_in(board, column_id))

    # === Helpers ===
    def _put(self, board: BoardRow, case: CaseRecord) -> None:
        board.cases[case.id] = case
        self.case_index[case.id] = board.id

    def _drop_case(self, board: BoardRow, case_id: str) -> None:
        del board.cases[case_id]
        del self.case_index[case_id]
        for other in board.cases.values():
            if other.escalatedToId == case_id:
                other.escalatedToId = None

    @staticmethod
    def _renumber(cases: List[CaseRecord]) -> None:
        for index, case in enumerate(cases):
            case.position = index


storage = Storage()
