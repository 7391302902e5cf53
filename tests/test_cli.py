"""Tests for the command line interface."""

from __future__ import annotations

import argparse
import json
import shutil
from pathlib import Path

import pytest

from extrarundown.__main__ import (
    build_parser,
    cmd_check,
    cmd_diff,
    cmd_parse,
    cmd_watch,
    main,
)
from extrarundown.config import Settings, get_settings
from extrarundown.models import Part, Rundown, Segment, dump_rundown, load_rundown
from extrarundown.sink import RecordingSink

GOLDEN_DIR = Path(__file__).parent / "golden"


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.delenv("EXTRARUNDOWN_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("EXTRARUNDOWN_CORE_URL", raising=False)
    monkeypatch.delenv("EXTRARUNDOWN_SHEET_FOLDER", raising=False)
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def snapshot_files(tmp_path: Path) -> tuple[Path, Path]:
    part = Part(external_id="p1", segment_id="s1", rank=0, name="Story", type="CAM")
    old = Rundown(
        external_id="sheet-1",
        name="Show",
        segments=(Segment("s1", "sheet-1", 0, "News", parts=(part,)),),
    )
    new = Rundown(
        external_id="sheet-1",
        name="Show",
        segments=(Segment("s1", "sheet-1", 0, "News", parts=()),),
    )
    return dump_rundown(old, tmp_path / "old.json"), dump_rundown(new, tmp_path / "new.json")


def parse_args(*argv: str) -> argparse.Namespace:
    return build_parser().parse_args(list(argv))


class TestParser:
    def test_diff_arguments(self) -> None:
        args = parse_args("diff", "old.json", "-")

        assert args.old == "old.json"
        assert args.new == "-"
        assert args.func is cmd_diff

    def test_watch_arguments(self) -> None:
        args = parse_args(
            "watch", "a", "b", "--interval", "5", "--iterations", "2", "--golden", "dir"
        )

        assert args.spreadsheets == ["a", "b"]
        assert args.interval == 5.0
        assert args.iterations == 2
        assert args.golden == "dir"
        assert args.no_write_back is False

    @pytest.mark.parametrize("interval", ["0", "-1", "nan", "soon"])
    def test_watch_interval_must_be_positive(self, interval: str) -> None:
        with pytest.raises(SystemExit):
            parse_args("watch", "a", "--interval", interval)

    def test_watch_folder_without_spreadsheets(self) -> None:
        args = parse_args("watch", "--folder", "shows")

        assert args.spreadsheets == []
        assert args.folder == "shows"
        assert args.interval is None

    def test_command_is_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args()


class TestDiffCommand:
    @pytest.mark.asyncio
    async def test_part_delete(
        self,
        snapshot_files: tuple[Path, Path],
        settings: Settings,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        old, new = snapshot_files

        exit_code = await cmd_diff(parse_args("diff", str(old), str(new)), settings)

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == [
            {
                "type": "part_delete",
                "rundownId": "sheet-1",
                "segmentId": "s1",
                "partId": "p1",
            }
        ]

    @pytest.mark.asyncio
    async def test_absent_old_snapshot(
        self,
        snapshot_files: tuple[Path, Path],
        settings: Settings,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _, new = snapshot_files

        exit_code = await cmd_diff(parse_args("diff", "-", str(new)), settings)

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == [
            {"type": "rundown_create", "rundownId": "sheet-1"}
        ]

    @pytest.mark.asyncio
    async def test_invalid_snapshot(
        self, tmp_path: Path, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = await cmd_diff(
            parse_args("diff", str(tmp_path / "missing.json"), "-"), settings
        )

        assert exit_code == 1
        assert capsys.readouterr().err.startswith("Error: Invalid snapshot")


class TestParseCommand:
    @pytest.mark.asyncio
    async def test_values_response(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        values_file = GOLDEN_DIR / "evening_news" / "values.json"

        exit_code = await cmd_parse(
            parse_args(
                "parse", str(values_file), "--id", "evening_news", "--day", "2024-01-15"
            ),
            settings,
        )

        captured = capsys.readouterr()
        assert exit_code == 0
        snapshot = json.loads(captured.out)
        assert snapshot["externalId"] == "evening_news"
        assert snapshot["name"] == "evening_news"
        assert snapshot["gatewayVersion"] == "v1"
        assert [s["id"] for s in snapshot["segments"]] == ["open", "news"]
        assert "for A9" in captured.err

    @pytest.mark.asyncio
    async def test_missing_file(
        self, tmp_path: Path, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = await cmd_parse(
            parse_args("parse", str(tmp_path / "nope.json"), "--id", "x"), settings
        )

        assert exit_code == 1
        assert "Values file not found" in capsys.readouterr().err


class TestCheckCommand:
    @pytest.mark.asyncio
    async def test_check_golden(
        self,
        tmp_path: Path,
        settings: Settings,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        output = tmp_path / "snapshot.json"

        exit_code = await cmd_check(
            parse_args(
                "check", "evening_news", "--golden", str(GOLDEN_DIR), "-o", str(output)
            ),
            settings,
        )

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == [
            {"type": "rundown_create", "rundownId": "evening_news"}
        ]
        assert load_rundown(output).name == "Evening News"

    @pytest.mark.asyncio
    async def test_check_since_previous_snapshot(
        self,
        tmp_path: Path,
        settings: Settings,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        golden = tmp_path / "golden"
        shutil.copytree(GOLDEN_DIR, golden)
        first = tmp_path / "first.json"
        args = parse_args("check", "evening_news", "--golden", str(golden), "-o", str(first))
        await cmd_check(args, settings)
        capsys.readouterr()

        values_path = golden / "evening_news" / "values.json"
        values = json.loads(values_path.read_text())
        values["values"][4][1] = "Welcome"
        values_path.write_text(json.dumps(values))

        exit_code = await cmd_check(
            parse_args(
                "check",
                "evening_news",
                "--golden",
                str(golden),
                "--since",
                str(first),
                "--no-write-back",
            ),
            settings,
        )

        assert exit_code == 0
        changes = json.loads(capsys.readouterr().out)
        assert {
            "type": "part_update",
            "rundownId": "evening_news",
            "segmentId": "open",
            "partId": "intro",
        } in changes

    @pytest.mark.asyncio
    async def test_check_without_token(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = await cmd_check(parse_args("check", "abc"), settings)

        assert exit_code == 1
        assert "No access token configured" in capsys.readouterr().err


class TestWatchCommand:
    @pytest.mark.asyncio
    async def test_nothing_to_watch(
        self, settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        exit_code = await cmd_watch(parse_args("watch", "--golden", "dir"), settings)

        assert exit_code == 1
        assert "Nothing to watch" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_watch_golden_folder(
        self, tmp_path: Path, settings: Settings, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        sink = RecordingSink()
        monkeypatch.setattr("extrarundown.__main__._create_sink", lambda settings: sink)
        golden = tmp_path / "golden"
        shutil.copytree(GOLDEN_DIR, golden)
        (golden / "shows").mkdir()
        (golden / "shows" / "folder.json").write_text(
            json.dumps({"files": [{"id": "evening_news", "name": "Evening News"}]})
        )

        exit_code = await cmd_watch(
            parse_args(
                "watch",
                "--folder",
                "shows",
                "--golden",
                str(golden),
                "--iterations",
                "1",
                "--no-write-back",
            ),
            settings,
        )

        assert exit_code == 0
        assert [(c.type.value, c.rundown_id) for c in sink.changes] == [
            ("rundown_create", "evening_news")
        ]


def test_main_runs_diff(
    snapshot_files: tuple[Path, Path],
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    old, _ = snapshot_files
    monkeypatch.setattr("sys.argv", ["extrarundown", "diff", str(old), str(old)])
    monkeypatch.setattr(
        "extrarundown.__main__.configure_logging", lambda **kwargs: None
    )
    get_settings.cache_clear()

    exit_code = main()

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == []
