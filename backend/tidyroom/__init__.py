"""tidyroom: versioned dataset store with undo/redo and a polars transformation engine."""

__version__ = "0.1.0"
