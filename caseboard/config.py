from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from .models import ColumnRole


@dataclass(frozen=True)
class BoardConfig:
    """Workflow preferences handed to the engine, store and manager."""

    escalations_column_name: str = "Escalations"
    deescalated_column_name: str = "De-escalated"
    escalations_color: str = "#ef4444"
    deescalated_color: str = "#10b981"
    new_column_name: str = "New Section"
    new_column_color: str = "#94a3b8"
    escalated_title_prefix: str = "[ESCALATED] "
    hide_role_columns: bool = True

    def role_for_name(self, name: str) -> ColumnRole:
        if name == self.escalations_column_name:
            return ColumnRole.ESCALATIONS
        if name == self.deescalated_column_name:
            return ColumnRole.DEESCALATED
        return ColumnRole.STAGE

    def name_for_role(self, role: ColumnRole) -> str:
        if role is ColumnRole.ESCALATIONS:
            return self.escalations_column_name
        if role is ColumnRole.DEESCALATED:
            return self.deescalated_column_name
        return self.new_column_name

    def color_for_role(self, role: ColumnRole) -> str:
        if role is ColumnRole.ESCALATIONS:
            return self.escalations_color
        if role is ColumnRole.DEESCALATED:
            return self.deescalated_color
        return self.new_column_color


DEFAULT_CONFIG = BoardConfig()


@dataclass(frozen=True)
class SyncSettings:
    base_url: str = "http://localhost:8000/v1"
    token: Optional[str] = None
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "SyncSettings":
        return cls(
            base_url=os.getenv("CASEBOARD_API_URL", cls.base_url),
            token=os.getenv("CASEBOARD_API_TOKEN") or None,
            timeout=float(os.getenv("CASEBOARD_TIMEOUT", str(cls.timeout))),
        )

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers
