# backend/tidyroom/services/history.py
"""
Linear undo/redo history: a flat list of entries and an integer cursor.

The cursor points at the entry whose frame is current. Pushing after an undo
drops everything past the cursor; pushing beyond ``max_depth`` evicts the
oldest entries from the front.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import polars as pl
from pydantic import BaseModel

from ..errors import HistoryError
from ..models import DatasetMetadata


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class HistoryEntryInfo(BaseModel):
    """Listing view of a history entry, without its frame."""
    id: str
    operation: Dict[str, Any]
    description: str
    timestamp: str
    metadata: DatasetMetadata


@dataclass(eq=False)
class HistoryEntry:
    operation: Any
    df: pl.DataFrame
    metadata: DatasetMetadata
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = field(default_factory=_utc_now)
    description: str = ""

    def __post_init__(self):
        if not self.description:
            self.description = self.operation.describe()

    def info(self) -> HistoryEntryInfo:
        return HistoryEntryInfo(
            id=self.id,
            operation=self.operation.model_dump(mode="json"),
            description=self.description,
            timestamp=self.timestamp,
            metadata=self.metadata,
        )


class HistoryStack:
    def __init__(self, max_depth: int = 50):
        if max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self.max_depth = max_depth
        self.entries: List[HistoryEntry] = []
        self.cursor: Optional[int] = None

    def __len__(self) -> int:
        return len(self.entries)

    def push(self, entry: HistoryEntry) -> None:
        if self.cursor is not None:
            del self.entries[self.cursor + 1:]
        self.entries.append(entry)
        self.cursor = len(self.entries) - 1
        self.trim(self.max_depth)

    def current(self) -> Optional[HistoryEntry]:
        if self.cursor is None:
            return None
        return self.entries[self.cursor]

    def current_index(self) -> Optional[int]:
        return self.cursor

    def can_undo(self) -> bool:
        return self.cursor is not None and self.cursor > 0

    def can_redo(self) -> bool:
        return self.cursor is not None and self.cursor < len(self.entries) - 1

    def undo(self) -> HistoryEntry:
        if not self.can_undo():
            raise HistoryError("Nothing to undo")
        self.cursor -= 1
        return self.entries[self.cursor]

    def redo(self) -> HistoryEntry:
        if not self.can_redo():
            raise HistoryError("Nothing to redo")
        self.cursor += 1
        return self.entries[self.cursor]

    def jump_to(self, entry_id: str) -> HistoryEntry:
        """Moves the cursor to an entry; entries after it stay available for redo."""
        for i, entry in enumerate(self.entries):
            if entry.id == entry_id:
                self.cursor = i
                return entry
        raise HistoryError(f"History entry '{entry_id}' not found")

    def reset_to_initial(self) -> HistoryEntry:
        """Keeps only the oldest entry and moves the cursor to it. Cannot be undone."""
        if not self.entries:
            raise HistoryError("History is empty")
        del self.entries[1:]
        self.cursor = 0
        return self.entries[0]

    def clear(self) -> None:
        self.entries.clear()
        self.cursor = None

    def trim(self, keep_count: int) -> None:
        """Drops the oldest entries so at most keep_count remain."""
        if keep_count < 1:
            raise ValueError("keep_count must be at least 1")
        excess = len(self.entries) - keep_count
        if excess <= 0:
            return
        del self.entries[:excess]
        self.cursor = max(0, self.cursor - excess)

    def list_entries(self) -> List[HistoryEntryInfo]:
        return [entry.info() for entry in self.entries]
