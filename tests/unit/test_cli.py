"""Unit tests for the ical_merger command line."""

import json
from pathlib import Path

import pytest

from ical_merger import run
from ical_merger.__main__ import _create_parser, main

pytestmark = pytest.mark.unit


@pytest.fixture
def config_path(tmp_path: Path, write_ics) -> Path:
    """A config.json over one local calendar file."""
    work = write_ics("work", "UID:w1\nSUMMARY:Planning\nDTSTART:20250602T070000Z")
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "calendars": [{"name": "work", "url": work.as_uri()}],
                "outputPath": str(tmp_path / "out" / "merged.ics"),
                "maxRetries": 0,
            }
        ),
        encoding="utf-8",
    )
    return path


class TestArgumentParser:
    """Tests for the argument parser."""

    def test_parse_args_when_defaults_then_loop_mode(self) -> None:
        args = _create_parser().parse_args([])
        assert args.once is False
        assert args.serve is False
        assert args.local is False
        assert args.config is None
        assert args.calendar_dir == "./calendars"

    def test_parse_args_when_flags_then_set(self) -> None:
        args = _create_parser().parse_args(
            ["--config", "c.json", "--output", "o.ics", "--once", "--serve", "--addr", ":9000"]
        )
        assert args.config == "c.json"
        assert args.output == "o.ics"
        assert args.once is True
        assert args.serve is True
        assert args.addr == ":9000"

    def test_main_when_version_then_exits_zero(self, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])
        assert exc_info.value.code == 0
        assert "ical-merger" in capsys.readouterr().out


class TestRun:
    """Tests for running a single cycle from the command line."""

    def test_run_when_once_then_output_written_and_zero(self, config_path: Path, tmp_path) -> None:
        args = _create_parser().parse_args(["--config", str(config_path), "--once"])
        assert run(args) == 0
        assert b"UID:w1" in (tmp_path / "out" / "merged.ics").read_bytes()

    def test_run_when_output_flag_then_overrides_config(self, config_path: Path, tmp_path) -> None:
        target = tmp_path / "elsewhere.ics"
        args = _create_parser().parse_args(
            ["--config", str(config_path), "--once", "--output", str(target)]
        )
        assert run(args) == 0
        assert target.exists()
        assert not (tmp_path / "out" / "merged.ics").exists()

    def test_run_when_config_missing_then_two(self, tmp_path: Path) -> None:
        args = _create_parser().parse_args(["--config", str(tmp_path / "none.json"), "--once"])
        assert run(args) == 2

    def test_run_when_every_source_fails_then_one(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "calendars": [{"name": "gone", "url": str(tmp_path / "missing.ics")}],
                    "outputPath": str(tmp_path / "merged.ics"),
                }
            ),
            encoding="utf-8",
        )
        args = _create_parser().parse_args(["--config", str(path), "--once"])
        assert run(args) == 1
        assert not (tmp_path / "merged.ics").exists()

    def test_run_when_local_mode_then_reads_calendar_dir(self, tmp_path: Path, write_ics) -> None:
        calendar_dir = tmp_path / "cals"
        calendar_dir.mkdir()
        source = write_ics("src", "UID:t1\nDTSTART:20250101")
        (calendar_dir / "team.ics").write_bytes(source.read_bytes())
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps(
                {
                    "calendars": [{"name": "team", "url": "https://unreachable.invalid/t.ics"}],
                    "outputPath": str(tmp_path / "merged.ics"),
                }
            ),
            encoding="utf-8",
        )
        args = _create_parser().parse_args(
            ["--config", str(path), "--once", "--local", "--calendar-dir", str(calendar_dir)]
        )
        assert run(args) == 0
        assert b"UID:t1" in (tmp_path / "merged.ics").read_bytes()
