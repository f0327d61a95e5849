import logging

from fastapi import Depends, FastAPI, HTTPException, Response

from .auth import get_current_user
from .models import CardKind
from .schemas import (
    BoardCreate,
    BoardRecord,
    CaseCreate,
    CaseMove,
    CaseRecord,
    CaseUpdate,
    ColumnCreate,
    ColumnRecord,
    ColumnUpdate,
    DeescalateResult,
)
from .storage import BoardRow, storage

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(title="Caseboard Records API", version=VERSION)


# === Helpers ===


def load_board(board_id: str) -> BoardRow:
    try:
        return storage.get_board(board_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="board_not_found")


def load_case(case_id: str):
    try:
        return storage.get_case(case_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="case_not_found")


def check_column(board: BoardRow, column_id: str) -> ColumnRecord:
    column = board.columns.get(column_id)
    if column is None:
        raise HTTPException(status_code=404, detail="column_not_found")
    return column


def check_case_type(case_type: str) -> str:
    try:
        return CardKind(case_type.upper()).value
    except ValueError:
        raise HTTPException(status_code=422, detail="invalid_case_type")


# === Health & metadata ===


@app.get("/v1/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/v1/version")
def version() -> dict:
    return {"version": VERSION}


# === Board endpoints ===


@app.post("/v1/boards", response_model=BoardRecord, status_code=201)
def create_board(payload: BoardCreate, user: str = Depends(get_current_user)):
    board = storage.create_board(user, payload.name, payload.columns)
    logger.info("board %s created by %s", board.id, user)
    return storage.board_record(board)


@app.get("/v1/boards/{board_id}", response_model=BoardRecord)
def get_board(board_id: str, user: str = Depends(get_current_user)):
    return storage.board_record(load_board(board_id))


# === Column endpoints ===


@app.post("/v1/boards/{board_id}/columns", response_model=ColumnRecord, status_code=201)
def create_column(board_id: str, payload: ColumnCreate, user: str = Depends(get_current_user)):
    board = load_board(board_id)
    return storage.create_column(
        board, payload.name, payload.position, payload.isFinal, payload.color, payload.role
    )


@app.put("/v1/boards/{board_id}/columns/{column_id}", response_model=ColumnRecord)
def update_column(
    board_id: str,
    column_id: str,
    payload: ColumnUpdate,
    user: str = Depends(get_current_user),
):
    board = load_board(board_id)
    check_column(board, column_id)
    return storage.update_column(board, column_id, payload.model_dump(exclude_unset=True))


@app.delete("/v1/boards/{board_id}/columns/{column_id}", status_code=204)
def delete_column(board_id: str, column_id: str, user: str = Depends(get_current_user)):
    board = load_board(board_id)
    check_column(board, column_id)
    storage.delete_column(board, column_id)
    return Response(status_code=204)


# === Case endpoints ===


@app.post("/v1/cases", response_model=CaseRecord, status_code=201)
def create_case(payload: CaseCreate, user: str = Depends(get_current_user)):
    board = load_board(payload.boardId)
    if payload.columnId:
        column = check_column(board, payload.columnId)
    else:
        columns = storage.ordered_columns(board)
        if not columns:
            raise HTTPException(status_code=400, detail="board_has_no_columns")
        column = columns[0]
    fields = payload.model_dump(exclude={"boardId", "columnId"}, exclude_none=True)
    fields["caseType"] = check_case_type(payload.caseType)
    return storage.create_case(board, column, fields)


@app.post("/v1/cases/{case_id}/move", response_model=CaseRecord)
def move_case(case_id: str, payload: CaseMove, user: str = Depends(get_current_user)):
    board, case = load_case(case_id)
    if payload.columnId not in board.columns:
        raise HTTPException(status_code=409, detail="invalid_move")
    return storage.move_case(board, case, payload.columnId, payload.position)


@app.put("/v1/cases/{case_id}", response_model=CaseRecord)
def update_case(case_id: str, payload: CaseUpdate, user: str = Depends(get_current_user)):
    board, case = load_case(case_id)
    fields = payload.model_dump(exclude_unset=True)
    if "columnId" in fields and fields["columnId"] not in board.columns:
        raise HTTPException(status_code=409, detail="invalid_move")
    if fields.get("caseType"):
        fields["caseType"] = check_case_type(fields["caseType"])
    return storage.update_case(board, case, fields)


@app.post("/v1/cases/{case_id}/escalate", response_model=CaseRecord, status_code=201)
def escalate_case(case_id: str, user: str = Depends(get_current_user)):
    board, case = load_case(case_id)
    mirror = storage.escalate_case(board, case)
    logger.info("case %s escalated to %s", case_id, mirror.id)
    return mirror


@app.post("/v1/cases/{case_id}/deescalate", response_model=DeescalateResult)
def deescalate_case(case_id: str, user: str = Depends(get_current_user)):
    board, case = load_case(case_id)
    try:
        target = storage.deescalate_case(board, case)
    except KeyError:
        raise HTTPException(status_code=404, detail="escalated_case_not_found")
    return DeescalateResult(message="De-escalated successfully", id=target.id)


@app.delete("/v1/cases/{case_id}", status_code=204)
def delete_case(case_id: str, user: str = Depends(get_current_user)):
    board, _ = load_case(case_id)
    storage.delete_case(board, case_id)
    return Response(status_code=204)
