"""
KarigarFlow error taxonomy.

Parser errors carry a user-facing message; callers display ``str(exc)``.
"""

from __future__ import annotations

from typing import List, Optional


class KarigarFlowError(Exception):
    """Base class for all pipeline errors."""


class FormatError(KarigarFlowError):
    """The container is unreadable, corrupt, or of the wrong type."""


class UnsupportedFormatError(FormatError):
    """The file extension is not one of the supported inputs."""


class SchemaError(KarigarFlowError):
    """A required column is missing from the sheet."""


class RowValidationError(KarigarFlowError):
    """A single row failed validation. Collected, not raised, by the parsers."""

    def __init__(self, row: int, reason: str) -> None:
        self.row = row
        self.reason = reason
        super().__init__(f"Row {row}: {reason}")


class NoValidDataError(KarigarFlowError):
    """Filtering left zero usable records."""


class NoValidRowsError(NoValidDataError):
    """Every row of a spreadsheet was rejected."""

    def __init__(self, row_errors: List[RowValidationError], limit: int = 5,
                 message: Optional[str] = None) -> None:
        self.row_errors = list(row_errors)
        if message is None:
            shown = "; ".join(str(e) for e in self.row_errors[:limit])
            message = f"No valid orders found in the spreadsheet. {shown}"
            remaining = len(self.row_errors) - limit
            if remaining > 0:
                message += f" (and {remaining} more)"
        super().__init__(message.strip())


class NoValidOrdersError(NoValidDataError):
    """No line of a PDF could be parsed as an order."""


class SubmissionError(KarigarFlowError):
    """The remote store rejected or could not receive a batch."""

    def __init__(self, message: str, order_count: int = 0) -> None:
        self.order_count = order_count
        super().__init__(message)


class LocalStoreError(KarigarFlowError):
    """A local durable store operation failed."""
