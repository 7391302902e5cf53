"""extrarundown - Google Sheets rundown gateway.

This library turns a rundown kept in a Google Sheet into an immutable
snapshot, diffs successive snapshots, and forwards the resulting segment and
part changes to a playout automation system.
"""

__version__ = "0.1.0"

from extrarundown.diff import (
    RundownChange,
    RundownChangeType,
    diff_rundowns,
    summarize_changes,
)
from extrarundown.exceptions import (
    InvalidSnapshotError,
    RundownError,
    SheetParseError,
    SnapshotInconsistencyError,
)
from extrarundown.models import Part, Piece, Rundown, Segment
from extrarundown.sheet_parser import parse_rundown
from extrarundown.sink import (
    ChangeSink,
    HttpChangeSink,
    LoggingSink,
    RecordingSink,
    SinkError,
    resolve_payload,
)
from extrarundown.transport import (
    APIError,
    AuthenticationError,
    DriveFile,
    GoogleSheetsTransport,
    LocalFileTransport,
    NotFoundError,
    Transport,
    TransportError,
)
from extrarundown.watcher import RundownWatcher

__all__ = [
    "APIError",
    "AuthenticationError",
    "ChangeSink",
    "DriveFile",
    "GoogleSheetsTransport",
    "HttpChangeSink",
    "InvalidSnapshotError",
    "LocalFileTransport",
    "LoggingSink",
    "NotFoundError",
    "Part",
    "Piece",
    "RecordingSink",
    "Rundown",
    "RundownChange",
    "RundownChangeType",
    "RundownError",
    "RundownWatcher",
    "Segment",
    "SheetParseError",
    "SinkError",
    "SnapshotInconsistencyError",
    "Transport",
    "TransportError",
    "__version__",
    "diff_rundowns",
    "parse_rundown",
    "resolve_payload",
    "summarize_changes",
]
