"""Custom exceptions for extrarundown ingestion and change dispatch."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from extrarundown.diff import RundownChange


class RundownError(Exception):
    """Base exception for rundown-related errors."""

    pass


class SheetParseError(RundownError):
    """Raised when a sheet's cell data cannot be turned into a rundown."""

    def __init__(self, sheet_id: str, reason: str) -> None:
        self.sheet_id = sheet_id
        self.reason = reason
        super().__init__(f"Cannot parse sheet '{sheet_id}': {reason}")


class InvalidSnapshotError(RundownError):
    """Raised when a rundown snapshot file is missing fields or is not valid JSON."""

    def __init__(self, file_path: str, reason: str) -> None:
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Invalid snapshot '{file_path}': {reason}")


class SnapshotInconsistencyError(RundownError):
    """Raised when a change references an entity missing from the new snapshot.

    The differencing engine only emits ids it found in the snapshots it was
    given, so this means the caller resolved the change against a different
    (or internally inconsistent) rundown. It is a programming error.
    """

    def __init__(self, change: RundownChange, reason: str) -> None:
        self.change = change
        self.reason = reason
        super().__init__(
            f"Cannot resolve {change.type.value} for rundown '{change.rundown_id}': "
            f"{reason}"
        )
