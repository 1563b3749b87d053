# backend/tidyroom/services/store.py
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import polars as pl

from ..config import settings
from ..errors import NoDatasetError, TidyroomError, ValidationError
from ..models import DatasetMetadata, DatasetPage
from ..operations import DropColumns, Import, SelectColumns
from . import io_service
from .history import HistoryEntry, HistoryEntryInfo, HistoryStack
from .polars_service import apply_operation, replay_operations
from .stats_service import column_stats as compute_column_stats

logger = logging.getLogger(__name__)


class DatasetStore:
    """
    Owns the history of one dataset and serializes every command on a single lock.

    Commands that change state either push exactly one history entry or raise
    and leave the history untouched. Read commands take the current frame under
    the lock and do their work on that snapshot.
    """

    def __init__(self, max_history: Optional[int] = None):
        self._lock = threading.RLock()
        self._history = HistoryStack(max_history or settings.MAX_HISTORY)

    # --- internal helpers ---

    def _current(self) -> HistoryEntry:
        entry = self._history.current()
        if entry is None:
            raise NoDatasetError()
        return entry

    def _validate_command(self, df: pl.DataFrame, op) -> None:
        if isinstance(op, (SelectColumns, DropColumns)):
            action = "select" if isinstance(op, SelectColumns) else "drop"
            if not op.columns:
                raise ValidationError(f"No columns given to {action}")
            if set(op.columns) >= set(df.columns):
                raise ValidationError(f"Cannot {action} every column; choose a subset")

    # --- mutating commands ---

    def import_file(self, file_path: str, fmt: Optional[str] = None,
                    sheet_name: Optional[str] = None) -> DatasetMetadata:
        return self._import(Import(file_path=file_path, format=fmt, sheet_name=sheet_name))

    def _import(self, op: Import) -> DatasetMetadata:
        with self._lock:
            try:
                df = apply_operation(pl.DataFrame(), op)
            except TidyroomError as e:
                logger.warning("Import failed for %s: %s", op.file_path, e.message)
                raise e.with_operation(op.describe())

            metadata = DatasetMetadata.from_frame(
                df,
                dataset_id=str(uuid.uuid4()),
                name=os.path.basename(op.file_path),
                file_path=op.file_path,
                imported_at=datetime.now(timezone.utc).isoformat(),
            )
            # A new import starts a new lineage
            self._history.clear()
            self._history.push(HistoryEntry(operation=op, df=df, metadata=metadata))
            logger.info("Imported %s as dataset %s (%d rows)", metadata.name, metadata.id, metadata.row_count)
            return metadata

    def apply(self, op) -> DatasetMetadata:
        if isinstance(op, Import):
            return self._import(op)

        with self._lock:
            try:
                current = self._current()
                self._validate_command(current.df, op)
                df = apply_operation(current.df, op)
            except TidyroomError as e:
                logger.warning("Operation rejected: %s (%s)", op.describe(), e.message)
                raise e.with_operation(op.describe())

            metadata = current.metadata.derive(df)
            self._history.push(HistoryEntry(operation=op, df=df, metadata=metadata))
            logger.info("Applied operation: %s -> %d rows x %d columns",
                        op.describe(), df.height, df.width)
            return metadata

    def undo(self) -> DatasetMetadata:
        with self._lock:
            entry = self._history.undo()
            logger.info("Undo -> %s", entry.description)
            return entry.metadata

    def redo(self) -> DatasetMetadata:
        with self._lock:
            entry = self._history.redo()
            logger.info("Redo -> %s", entry.description)
            return entry.metadata

    def jump_to(self, entry_id: str) -> DatasetMetadata:
        with self._lock:
            entry = self._history.jump_to(entry_id)
            logger.info("Jumped to history entry %s (%s)", entry_id, entry.description)
            return entry.metadata

    def reset_to_initial(self) -> DatasetMetadata:
        with self._lock:
            entry = self._history.reset_to_initial()
            logger.info("History reset to %s", entry.description)
            return entry.metadata

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            logger.info("Dataset store cleared")

    # --- read commands ---

    def current_frame(self) -> pl.DataFrame:
        with self._lock:
            return self._current().df

    def current_metadata(self) -> Optional[DatasetMetadata]:
        with self._lock:
            entry = self._history.current()
            return entry.metadata if entry is not None else None

    def get_page(self, offset: int = 0, limit: Optional[int] = None) -> DatasetPage:
        if limit is None:
            limit = settings.DEFAULT_PAGE_SIZE
        if offset < 0 or limit < 0:
            raise ValidationError("offset and limit must be non-negative")
        limit = min(limit, settings.MAX_PAGE_SIZE)

        df = self.current_frame()
        return DatasetPage(
            columns=df.columns,
            rows=io_service.frame_rows(df.slice(offset, limit)),
            total_rows=df.height,
        )

    def column_stats(self, column: str):
        return compute_column_stats(self.current_frame(), column)

    def export(self, output_path: str, fmt: str = "csv") -> str:
        return io_service.export_frame(self.current_frame(), output_path, fmt)

    def list_sheets(self, file_path: str) -> List[str]:
        return io_service.list_sheets(file_path)

    def can_undo(self) -> bool:
        with self._lock:
            return self._history.can_undo()

    def can_redo(self) -> bool:
        with self._lock:
            return self._history.can_redo()

    def current_index(self) -> Optional[int]:
        with self._lock:
            return self._history.current_index()

    def list_history(self) -> List[HistoryEntryInfo]:
        with self._lock:
            return self._history.list_entries()

    def history_snapshot(self) -> dict:
        """Entries and cursor state read together under one lock."""
        with self._lock:
            return {
                "entries": self._history.list_entries(),
                "current_index": self._history.current_index(),
                "can_undo": self._history.can_undo(),
                "can_redo": self._history.can_redo(),
            }

    def operation_log(self) -> list:
        """Operations from the oldest retained entry up to the cursor."""
        with self._lock:
            cursor = self._history.current_index()
            if cursor is None:
                return []
            return [entry.operation for entry in self._history.entries[:cursor + 1]]

    def replay(self) -> pl.DataFrame:
        """Rebuilds the current frame by re-running the operation log."""
        log = self.operation_log()
        if not log:
            raise NoDatasetError()
        return replay_operations(log)
