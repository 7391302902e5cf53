"""Turn raw sheet cell values into a Rundown snapshot.

Sheet layout:

    Row 1: rundown metadata. C1 = expected start, E1 = expected end
           (``HH:MM:SS [AM|PM]``), G1 = gateway version (optional).
    Row 2: column headers. One each of id, name, type, float, script,
           objectType, objectTime, duration, clipName, feedback, plus any
           number of ``attr: <key>`` columns.
    Row 3: human readable help, ignored.
    Row 4+: items. A ``SECTION`` row starts a segment, any other non-empty
           type starts a part, and a row without a type is a piece attached
           to the current part.

Rows without an id get a generated one, and a SheetUpdate is returned so the
caller can write it back to the sheet. That keeps ids stable across polls.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date  # noqa: TC003 - used at runtime
from typing import Any

from loguru import logger

from extrarundown.exceptions import SheetParseError
from extrarundown.models import Part, Piece, Rundown, Segment
from extrarundown.utils import cell_to_a1, duration_to_millis, show_times_to_millis

META_ROW = 0
HEADER_ROW = 1
FIRST_ITEM_ROW = 3

START_TIME_COL = 2  # C1
END_TIME_COL = 4  # E1
GATEWAY_VERSION_COL = 6  # G1

SECTION_TYPE = "SECTION"
IMPLICIT_SEGMENT_ID = "implicitFirst"
IMPLICIT_SEGMENT_NAME = "Implicit First Section"
ATTRIBUTE_PREFIX = "attr: "


@dataclass(frozen=True)
class SheetUpdate:
    """A single cell value to write back to the sheet."""

    value: str
    cell_position: str  # A1 notation, e.g. "A7"


@dataclass
class ParsedRow:
    """One item row with each known column as an explicit optional field."""

    row_index: int  # 0-based row in the sheet
    id_column: int | None = None  # 0-based column of the id cell
    id: str | None = None
    name: str | None = None
    type: str | None = None
    float: str = "FALSE"
    script: str | None = None
    object_type: str | None = None
    object_time: str | None = None
    duration: str | None = None
    clip_name: str | None = None
    feedback: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)

    @property
    def is_floating(self) -> bool:
        return self.float.strip().upper() == "TRUE"

    @property
    def is_empty(self) -> bool:
        return not (self.name or self.type or self.object_type)


@dataclass(frozen=True)
class RundownMeta:
    """Values from the metadata row."""

    expected_start: int
    expected_end: int
    gateway_version: str | None


@dataclass(frozen=True)
class ParseResult:
    """Result of parsing a sheet."""

    rundown: Rundown
    sheet_updates: tuple[SheetUpdate, ...]


# Maps header names to ParsedRow attribute names
_COLUMN_FIELDS = {
    "id": "id",
    "name": "name",
    "type": "type",
    "float": "float",
    "script": "script",
    "objectType": "object_type",
    "objectTime": "object_time",
    "duration": "duration",
    "clipName": "clip_name",
    "feedback": "feedback",
}


def parse_rundown(
    sheet_id: str,
    name: str,
    cells: list[list[Any]],
    *,
    day: date | None = None,
    id_factory: Callable[[], str] | None = None,
) -> ParseResult:
    """Parse a sheet's cell values into a rundown snapshot.

    Args:
        sheet_id: Spreadsheet id, used as the rundown's external id
        name: Display name of the rundown
        cells: Rows of cell values as returned by the values API
        day: Day the show airs on (defaults to today)
        id_factory: Generates ids for rows without one (defaults to uuid4)

    Returns:
        ParseResult with the rundown and any id write-backs

    Raises:
        SheetParseError: If the cell data is not a list of rows, or item rows
            exist but the header row has no ``type`` column
    """
    if not isinstance(cells, list) or not all(isinstance(r, list) for r in cells):
        raise SheetParseError(sheet_id, "Cell data must be a list of rows")

    meta = parse_meta_row(cells[META_ROW] if cells else [], day=day)
    headers = parse_header_row(cells[HEADER_ROW] if len(cells) > HEADER_ROW else [])

    if len(cells) > FIRST_ITEM_ROW and "type" not in headers.values():
        raise SheetParseError(sheet_id, "Header row has no 'type' column")

    rows = parse_item_rows(cells, headers)
    segments, updates = rows_to_segments(
        sheet_id, rows, id_factory=id_factory or _new_id
    )

    rundown = Rundown(
        external_id=sheet_id,
        name=name,
        expected_start=meta.expected_start,
        expected_end=meta.expected_end,
        segments=tuple(segments),
        gateway_version=meta.gateway_version,
    )
    logger.debug(
        "Parsed sheet {} into {} segments ({} id write-backs)",
        sheet_id,
        len(segments),
        len(updates),
    )
    return ParseResult(rundown=rundown, sheet_updates=tuple(updates))


def parse_meta_row(row: list[Any], *, day: date | None = None) -> RundownMeta:
    """Read expected start/end and gateway version from the first row.

    Missing or malformed times yield 0 for both start and end.
    """
    start_raw = _cell(row, START_TIME_COL)
    end_raw = _cell(row, END_TIME_COL)
    expected_start, expected_end = 0, 0
    if start_raw and end_raw:
        try:
            expected_start, expected_end = show_times_to_millis(
                start_raw, end_raw, day=day
            )
        except ValueError as e:
            logger.warning("Ignoring rundown times: {}", e)

    return RundownMeta(
        expected_start=expected_start,
        expected_end=expected_end,
        gateway_version=_cell(row, GATEWAY_VERSION_COL) or None,
    )


def parse_header_row(row: list[Any]) -> dict[int, str]:
    """Map column index to header name for every non-empty header cell."""
    headers: dict[int, str] = {}
    for col, cell in enumerate(row):
        if isinstance(cell, str) and cell.strip():
            headers[col] = cell.strip()
    return headers


def parse_item_rows(cells: list[list[Any]], headers: dict[int, str]) -> list[ParsedRow]:
    """Parse rows from the fourth row on, dropping rows with no content."""
    id_column = next((col for col, h in headers.items() if h == "id"), None)
    rows: list[ParsedRow] = []

    for row_index in range(FIRST_ITEM_ROW, len(cells)):
        parsed = ParsedRow(row_index=row_index, id_column=id_column)
        for col, raw in enumerate(cells[row_index]):
            value = _to_text(raw)
            if value == "":
                continue
            header = headers.get(col)
            if header is None:
                continue
            attr_name = _COLUMN_FIELDS.get(header)
            if attr_name is not None:
                setattr(parsed, attr_name, value)
            elif header.startswith(ATTRIBUTE_PREFIX):
                parsed.attributes[header[len(ATTRIBUTE_PREFIX) :]] = value

        if not parsed.is_empty:
            rows.append(parsed)

    return rows


@dataclass
class _PartBuilder:
    external_id: str
    segment_id: str
    rank: int
    name: str
    type: str
    floating: bool
    script: str
    pieces: list[Piece] = field(default_factory=list)

    def build(self) -> Part:
        return Part(
            external_id=self.external_id,
            segment_id=self.segment_id,
            rank=self.rank,
            name=self.name,
            type=self.type,
            floating=self.floating,
            script=self.script,
            pieces=tuple(self.pieces),
        )


@dataclass
class _SegmentBuilder:
    external_id: str
    rundown_id: str
    rank: int
    name: str
    floating: bool
    parts: list[Part] = field(default_factory=list)

    def build(self) -> Segment:
        return Segment(
            external_id=self.external_id,
            rundown_id=self.rundown_id,
            rank=self.rank,
            name=self.name,
            floating=self.floating,
            parts=tuple(self.parts),
        )


def rows_to_segments(
    sheet_id: str,
    rows: list[ParsedRow],
    *,
    id_factory: Callable[[], str],
) -> tuple[list[Segment], list[SheetUpdate]]:
    """Group parsed rows into segments, parts and pieces."""
    segments: list[Segment] = []
    updates: list[SheetUpdate] = []
    segment = _SegmentBuilder(
        IMPLICIT_SEGMENT_ID, sheet_id, 0, IMPLICIT_SEGMENT_NAME, floating=False
    )
    part: _PartBuilder | None = None

    def close_segment() -> None:
        nonlocal part
        if part is not None:
            segment.parts.append(part.build())
            part = None
        if segment.external_id == IMPLICIT_SEGMENT_ID and not segment.parts:
            return
        segments.append(segment.build())

    for row in rows:
        row_id = row.id
        update: SheetUpdate | None = None
        if not row_id:
            row_id = id_factory()
            if row.id_column is not None:
                update = SheetUpdate(
                    value=row_id,
                    cell_position=cell_to_a1(row.row_index, row.id_column),
                )

        if row.type == SECTION_TYPE:
            close_segment()
            segment = _SegmentBuilder(
                row_id,
                sheet_id,
                len(segments),
                row.name or "",
                floating=row.is_floating,
            )
        elif not row.type:
            if part is None or not row.object_type:
                logger.debug("Skipping orphan item row {}", row.row_index + 1)
                update = None
            else:
                part.pieces.append(_build_piece(row_id, row))
        else:
            if part is not None:
                segment.parts.append(part.build())
            part = _PartBuilder(
                external_id=row_id,
                segment_id=segment.external_id,
                rank=len(segment.parts),
                name=row.name or "",
                type=row.type,
                floating=row.is_floating,
                script=row.script or "",
            )
            if row.object_type:
                part.pieces.append(_build_piece(f"{row_id}_item", row))

        if update is not None:
            updates.append(update)

    close_segment()
    return segments, updates


def _build_piece(piece_id: str, row: ParsedRow) -> Piece:
    attributes = dict(row.attributes)
    attributes["adlib"] = "true" if not row.object_time else "false"
    return Piece.create(
        external_id=piece_id,
        object_type=row.object_type or "",
        object_time=duration_to_millis(row.object_time),
        duration=duration_to_millis(row.duration),
        clip_name=row.clip_name or "",
        attributes=attributes,
        position=cell_to_a1(row.row_index, 0),
    )


def _cell(row: list[Any], col: int) -> str:
    if col >= len(row):
        return ""
    return _to_text(row[col])


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value).strip()


def _new_id() -> str:
    return str(uuid.uuid4())
