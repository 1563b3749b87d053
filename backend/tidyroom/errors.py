"""
Exception classes for the dataset store and transformation engine.
Each carries the HTTP status the command surface reports it with, so user
errors (4xx) and system errors (5xx) stay distinguishable end to end.
"""
from typing import Any, Dict, Optional


class TidyroomError(Exception):
    """Base class for all tidyroom errors."""
    kind = "error"

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        # Description of the operation that failed, filled in by the store
        self.operation: Optional[str] = None
        super().__init__(self.message)

    def with_operation(self, description: str) -> "TidyroomError":
        self.operation = description
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "detail": self.message, "operation": self.operation}


class ParseError(TidyroomError):
    """Raised for a malformed source file or an unparseable filter expression."""
    kind = "parse_error"

    def __init__(self, message: str = "Failed to parse input."):
        super().__init__(message, status_code=400)


class SchemaError(TidyroomError):
    """Unknown column reference, duplicate resulting column name, or type-incompatible operation."""
    kind = "schema_error"

    def __init__(self, message: str = "Operation does not fit the dataset schema."):
        super().__init__(message, status_code=422)


class ValidationError(TidyroomError):
    """Empty or contradictory operation parameters."""
    kind = "validation_error"

    def __init__(self, message: str = "Invalid operation parameters.", status_code: int = 400):
        super().__init__(message, status_code=status_code)


class NoDatasetError(ValidationError):
    """Raised when a command needs a dataset but nothing has been imported."""
    kind = "no_dataset"

    def __init__(self, message: str = "No dataset loaded."):
        super().__init__(message, status_code=404)


class HistoryError(TidyroomError):
    """Undo/redo/jump/reset with no valid target."""
    kind = "history_error"

    def __init__(self, message: str = "No history entry to move to."):
        super().__init__(message, status_code=409)


class IoError(TidyroomError):
    """File read/write failure."""
    kind = "io_error"

    def __init__(self, message: str = "File read/write failed.", status_code: int = 500):
        super().__init__(message, status_code=status_code)
