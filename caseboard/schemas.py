from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from .models import ColumnRole


# === Records returned by the persistence service ===


class CaseRecord(BaseModel):
    id: str
    boardId: str
    columnId: str
    position: int = 0
    title: str
    caseType: str = "ORDER"
    priority: Optional[str] = "Medium"
    assignee: Optional[str] = None
    dueDate: Optional[date] = None
    createdAt: Optional[datetime] = None
    archivedAt: Optional[datetime] = None
    escalatedToId: Optional[str] = None
    quoteId: Optional[str] = None
    poNumber: Optional[str] = None
    customerName: Optional[str] = None
    productType: Optional[str] = None
    specs: Optional[str] = None


class ColumnRecord(BaseModel):
    id: str
    boardId: str
    name: str
    position: int
    color: Optional[str] = None
    isFinal: bool = False
    role: Optional[str] = None
    cases: list[CaseRecord] = Field(default_factory=list)


class BoardRecord(BaseModel):
    id: str
    name: str
    columns: list[ColumnRecord] = Field(default_factory=list)


class DeescalateResult(BaseModel):
    message: str
    id: str


# === Request bodies ===


class BoardCreate(BaseModel):
    name: str = Field(min_length=1, max_length=140)
    columns: Optional[list[str]] = None


class ColumnCreate(BaseModel):
    name: str = Field(min_length=1, max_length=80)
    position: Optional[int] = Field(default=None, ge=0)
    isFinal: bool = False
    color: Optional[str] = None
    role: Optional[ColumnRole] = None


class ColumnUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=80)
    position: Optional[int] = Field(default=None, ge=0)
    color: Optional[str] = None
    isFinal: Optional[bool] = None


class CaseCreate(BaseModel):
    boardId: str
    columnId: Optional[str] = None
    title: str = Field(min_length=1, max_length=200)
    caseType: str = "ORDER"
    priority: Optional[str] = None
    assignee: Optional[str] = None
    dueDate: Optional[date] = None
    quoteId: Optional[str] = None
    poNumber: Optional[str] = None
    customerName: Optional[str] = None
    productType: Optional[str] = None
    specs: Optional[str] = None


class CaseMove(BaseModel):
    columnId: str
    position: Optional[int] = Field(default=None, ge=0)


class CaseUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    caseType: Optional[str] = None
    columnId: Optional[str] = None
    priority: Optional[str] = None
    assignee: Optional[str] = None
    dueDate: Optional[date] = None
    archivedAt: Optional[datetime] = None
    quoteId: Optional[str] = None
    poNumber: Optional[str] = None
    customerName: Optional[str] = None
    productType: Optional[str] = None
    specs: Optional[str] = None
