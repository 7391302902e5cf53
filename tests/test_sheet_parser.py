"""Tests for turning sheet cell values into rundown snapshots."""

from __future__ import annotations

import itertools
from datetime import date, datetime
from typing import Any

import pytest

from extrarundown.diff import diff_rundowns
from extrarundown.exceptions import SheetParseError
from extrarundown.sheet_parser import (
    IMPLICIT_SEGMENT_ID,
    IMPLICIT_SEGMENT_NAME,
    SheetUpdate,
    parse_header_row,
    parse_item_rows,
    parse_meta_row,
    parse_rundown,
)

DAY = date(2024, 1, 15)

HEADERS = [
    "id",
    "name",
    "type",
    "float",
    "script",
    "objectType",
    "objectTime",
    "duration",
    "clipName",
    "feedback",
    "attr: camera",
]
HELP_ROW = ["Unique id", "Title", "SECTION / CAM / VT", "Floated?"]


def sheet(*items: list[Any], meta: list[Any] | None = None) -> list[list[Any]]:
    meta_row = meta if meta is not None else ["Show", "Start", "20:00:00", "End", "21:00:00"]
    return [meta_row, HEADERS, HELP_ROW, *items]


def sequential_ids() -> Any:
    counter = itertools.count(1)
    return lambda: f"gen-{next(counter)}"


class TestParseRundown:
    """Tests for the complete sheet -> rundown conversion."""

    def test_sections_parts_and_pieces(self) -> None:
        cells = sheet(
            ["open", "Opening", "SECTION", "FALSE"],
            ["intro", "Intro", "CAM", "FALSE", "Good evening", "camera", "", "00.00.30", "", "", "1"],
            ["gfx", "", "", "", "", "graphic", "00.00.05", "00.00.10", "lower_third"],
            ["news", "News", "SECTION"],
            ["story", "Story one", "VT", "TRUE", "", "video", "00.00.00", "00.01.30", "story1.mxf"],
        )

        result = parse_rundown("sheet-1", "Evening News", cells, day=DAY)
        rundown = result.rundown

        assert result.sheet_updates == ()
        assert rundown.external_id == "sheet-1"
        assert rundown.name == "Evening News"
        assert [s.external_id for s in rundown.segments] == ["open", "news"]
        assert [s.rank for s in rundown.segments] == [0, 1]

        opening = rundown.segments[0]
        assert opening.name == "Opening"
        assert opening.rundown_id == "sheet-1"
        assert [p.external_id for p in opening.parts] == ["intro"]

        intro = opening.parts[0]
        assert intro.segment_id == "open"
        assert intro.type == "CAM"
        assert intro.script == "Good evening"
        assert intro.floating is False
        assert [piece.to_dict() for piece in intro.pieces] == [
            {
                "id": "intro_item",
                "objectType": "camera",
                "objectTime": 0,
                "duration": 30000,
                "clipName": "",
                "attributes": {"adlib": "true", "camera": "1"},
                "position": "A5",
            },
            {
                "id": "gfx",
                "objectType": "graphic",
                "objectTime": 5000,
                "duration": 10000,
                "clipName": "lower_third",
                "attributes": {"adlib": "false"},
                "position": "A6",
            },
        ]

        story = rundown.segments[1].parts[0]
        assert story.segment_id == "news"
        assert story.floating is True
        assert story.pieces[0].clip_name == "story1.mxf"
        assert story.pieces[0].duration == 90000

    def test_expected_times(self) -> None:
        result = parse_rundown("sheet-1", "Show", sheet(), day=DAY)

        start = int(datetime(2024, 1, 15, 20, 0, 0).timestamp() * 1000)
        assert result.rundown.expected_start == start
        assert result.rundown.expected_end == start + 3_600_000
        assert result.rundown.segments == ()

    def test_parts_before_first_section_use_implicit_segment(self) -> None:
        cells = sheet(
            ["p1", "Cold open", "CAM"],
            ["s1", "Main", "SECTION"],
            ["p2", "Story", "CAM"],
        )

        rundown = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        implicit, main = rundown.segments
        assert implicit.external_id == IMPLICIT_SEGMENT_ID
        assert implicit.name == IMPLICIT_SEGMENT_NAME
        assert implicit.rank == 0
        assert [p.external_id for p in implicit.parts] == ["p1"]
        assert main.rank == 1
        assert main.parts[0].segment_id == "s1"

    def test_empty_implicit_segment_is_dropped(self) -> None:
        cells = sheet(["s1", "Main", "SECTION"])

        rundown = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        assert [s.external_id for s in rundown.segments] == ["s1"]
        assert rundown.segments[0].rank == 0

    def test_empty_sections_are_kept(self) -> None:
        cells = sheet(["s1", "One", "SECTION"], ["s2", "Two", "SECTION"])

        rundown = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        assert [(s.external_id, s.rank, s.parts) for s in rundown.segments] == [
            ("s1", 0, ()),
            ("s2", 1, ()),
        ]

    def test_part_ranks_within_segment(self) -> None:
        cells = sheet(
            ["s1", "One", "SECTION"],
            ["a", "A", "CAM"],
            ["b", "B", "VT"],
            ["s2", "Two", "SECTION"],
            ["c", "C", "CAM"],
        )

        rundown = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        assert [(p.external_id, p.rank) for p in rundown.segments[0].parts] == [
            ("a", 0),
            ("b", 1),
        ]
        assert rundown.segments[1].parts[0].rank == 0

    def test_missing_ids_are_generated_and_written_back(self) -> None:
        cells = sheet(
            ["", "Main", "SECTION"],
            ["", "Story", "CAM", "", "", "camera"],
            ["", "", "", "", "", "graphic"],
        )

        result = parse_rundown(
            "sheet-1", "Show", cells, day=DAY, id_factory=sequential_ids()
        )

        segment = result.rundown.segments[0]
        assert segment.external_id == "gen-1"
        assert segment.parts[0].external_id == "gen-2"
        assert segment.parts[0].segment_id == "gen-1"
        assert [p.external_id for p in segment.parts[0].pieces] == ["gen-2_item", "gen-3"]
        assert result.sheet_updates == (
            SheetUpdate(value="gen-1", cell_position="A4"),
            SheetUpdate(value="gen-2", cell_position="A5"),
            SheetUpdate(value="gen-3", cell_position="A6"),
        )

    def test_generated_ids_are_uuids_by_default(self) -> None:
        result = parse_rundown("sheet-1", "Show", sheet(["", "Story", "CAM"]), day=DAY)

        part_id = result.rundown.segments[0].parts[0].external_id
        assert len(part_id) == 36
        assert result.sheet_updates[0].value == part_id

    def test_no_write_back_without_id_column(self) -> None:
        cells = [
            ["Show"],
            ["name", "type"],
            [],
            ["Story", "CAM"],
        ]

        result = parse_rundown(
            "sheet-1", "Show", cells, day=DAY, id_factory=sequential_ids()
        )

        assert result.rundown.segments[0].parts[0].external_id == "gen-1"
        assert result.sheet_updates == ()

    def test_orphan_item_row_is_skipped(self) -> None:
        cells = sheet(
            ["", "", "", "", "", "graphic"],
            ["", "Note without type"],
            ["p1", "Story", "CAM"],
        )

        result = parse_rundown(
            "sheet-1", "Show", cells, day=DAY, id_factory=sequential_ids()
        )

        assert [p.external_id for p in result.rundown.segments[0].parts] == ["p1"]
        assert result.rundown.segments[0].parts[0].pieces == ()
        assert result.sheet_updates == ()

    def test_blank_rows_are_ignored(self) -> None:
        cells = sheet(["p1", "Story", "CAM"], [], ["   ", ""], ["p2", "Next", "CAM"])

        rundown = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        assert [p.external_id for p in rundown.segments[0].parts] == ["p1", "p2"]

    def test_boolean_float_cell(self) -> None:
        cells = sheet(["s1", "Floated", "SECTION", True])

        rundown = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        assert rundown.segments[0].floating is True

    def test_same_cells_give_equal_snapshots(self) -> None:
        cells = sheet(["s1", "One", "SECTION"], ["p1", "Story", "CAM", "", "", "camera"])

        first = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown
        second = parse_rundown("sheet-1", "Show", cells, day=DAY).rundown

        assert first == second

    def test_empty_sheet(self) -> None:
        rundown = parse_rundown("sheet-1", "Show", [], day=DAY).rundown

        assert rundown.segments == ()
        assert rundown.expected_start == 0

    def test_missing_type_column(self) -> None:
        cells = [["Show"], ["id", "name"], [], ["p1", "Story"]]

        with pytest.raises(SheetParseError, match="no 'type' column"):
            parse_rundown("sheet-1", "Show", cells, day=DAY)

    def test_cells_must_be_rows(self) -> None:
        with pytest.raises(SheetParseError, match="list of rows"):
            parse_rundown("sheet-1", "Show", ["not", "rows"], day=DAY)  # type: ignore[list-item]


class TestRowShifts:
    """Moving rows up or down the sheet must not look like an edit."""

    OPEN = ["open", "Opening", "SECTION"]
    INTRO = ["intro", "Intro", "CAM", "", "", "camera"]
    NEWS = ["news", "News", "SECTION"]
    STORY = ["story1", "Story 1", "VT", "", "", "video", "", "00.01.30", "story1.mxf"]
    GRAPHIC = ["gfx", "", "", "", "", "graphic", "00.00.05", "00.00.10", "lower_third"]

    def diff_cells(
        self, old: list[list[Any]], new: list[list[Any]]
    ) -> list[tuple[str, str, str | None, str | None]]:
        changes = diff_rundowns(
            parse_rundown("sheet-1", "Show", old, day=DAY).rundown,
            parse_rundown("sheet-1", "Show", new, day=DAY).rundown,
        )
        return [(c.type.value, c.rundown_id, c.segment_id, c.part_id) for c in changes]

    def test_inserted_piece_only_updates_its_part(self) -> None:
        old = sheet(self.OPEN, self.INTRO, self.NEWS, self.STORY)
        new = sheet(self.OPEN, self.INTRO, self.GRAPHIC, self.NEWS, self.STORY)

        assert self.diff_cells(old, new) == [
            ("part_update", "sheet-1", "open", "intro"),
        ]

    def test_blank_row_insert_is_not_a_change(self) -> None:
        old = sheet(self.OPEN, self.INTRO, self.NEWS, self.STORY)
        new = sheet(self.OPEN, self.INTRO, [], self.NEWS, [""], self.STORY)

        assert self.diff_cells(old, new) == []

    def test_removed_piece_only_updates_its_part(self) -> None:
        old = sheet(self.OPEN, self.INTRO, self.GRAPHIC, self.NEWS, self.STORY)
        new = sheet(self.OPEN, self.INTRO, self.NEWS, self.STORY)

        assert self.diff_cells(old, new) == [
            ("part_update", "sheet-1", "open", "intro"),
        ]


class TestMetaRow:
    def test_gateway_version(self) -> None:
        meta = parse_meta_row(["", "", "20:00:00", "", "21:00:00", "", "v2"], day=DAY)

        assert meta.gateway_version == "v2"

    def test_no_gateway_version(self) -> None:
        assert parse_meta_row([], day=DAY).gateway_version is None

    def test_invalid_times_are_zero(self) -> None:
        meta = parse_meta_row(["", "", "soon", "", "later"], day=DAY)

        assert (meta.expected_start, meta.expected_end) == (0, 0)

    def test_missing_end_time_is_zero(self) -> None:
        meta = parse_meta_row(["", "", "20:00:00"], day=DAY)

        assert (meta.expected_start, meta.expected_end) == (0, 0)


class TestRowParsing:
    def test_header_row_skips_blank_cells(self) -> None:
        assert parse_header_row(["id", "", "  type ", None]) == {0: "id", 2: "type"}

    def test_item_rows_collect_attributes(self) -> None:
        headers = parse_header_row(HEADERS + ["attr: mic"])
        cells = sheet(["p1", "Story", "CAM", "", "", "camera", "", "", "", "ok", "2", "A"])

        (row,) = parse_item_rows(cells, headers)

        assert row.row_index == 3
        assert row.id_column == 0
        assert row.feedback == "ok"
        assert row.attributes == {"camera": "2", "mic": "A"}
        assert row.is_floating is False

    def test_unknown_headers_are_ignored(self) -> None:
        cells = [["Show"], ["type", "notes"], [], ["CAM", "remember"]]

        (row,) = parse_item_rows(cells, parse_header_row(cells[1]))

        assert row.type == "CAM"
        assert row.attributes == {}
        assert row.id_column is None
