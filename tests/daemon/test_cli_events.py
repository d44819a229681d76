"""
Tests for the events log and the CLI entry points that need no display.
"""

import json
import logging

import cv2
import numpy as np
import pytest

from automacro import cli
from automacro.core import logging_setup
from automacro.core.status import StatusFeed
from automacro.utils import events


@pytest.fixture
def events_file(tmp_path):
    previous = events.path()
    target = tmp_path / "automacro.events"
    events.set_path(str(target))
    yield target
    events.set_path(previous)


class TestEvents:

    def test_emit_appends_json_lines(self, events_file):
        events.emit("status", message="one")
        events.emit("status", message="two")
        lines = [json.loads(line) for line in events_file.read_text().splitlines()]
        assert [line["message"] for line in lines] == ["one", "two"]
        assert all(line["event"] == "status" for line in lines)
        assert (events_file.stat().st_mode & 0o777) == 0o600

    def test_status_listener_mirrors_feed(self, events_file):
        feed = StatusFeed()
        feed.subscribe(events.status_listener)
        feed.warning("Paused: pointer moved")
        (line,) = [json.loads(x) for x in events_file.read_text().splitlines()]
        assert line["severity"] == "warning"
        assert line["message"] == "Paused: pointer moved"

    def test_existing_file_permissions_tightened(self, events_file):
        events_file.write_text("")
        events_file.chmod(0o644)
        record = events.emit("hello", n=1)
        assert record["event"] == "hello"
        assert (events_file.stat().st_mode & 0o777) == 0o600

    def test_missing_directory_created(self, tmp_path):
        previous = events.path()
        target = tmp_path / "nested" / "automacro.events"
        events.set_path(str(target))
        try:
            events.emit("status", message="x")
        finally:
            events.set_path(previous)
        assert json.loads(target.read_text())["message"] == "x"


class TestLogging:

    def test_level_names(self):
        assert logging_setup.resolve_level("debug") == logging.DEBUG
        assert logging_setup.resolve_level("WARNING") == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        assert logging_setup.resolve_level("chatty") == logging.INFO


class TestCli:

    def test_run_options(self):
        args = cli.build_parser().parse_args(
            ["run", "level", "--dry-run", "--swipes", "4", "--scroll-ups", "2"]
        )
        assert args.protocol == "level"
        assert args.dry_run
        assert cli._options(args) == {"swipes_to_bottom": 4, "scroll_ups_before_reset": 2}

    def test_unknown_protocol_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["run", "farm"])

    def test_detect_on_image(self, tmp_path, capsys):
        image = tmp_path / "blank.png"
        cv2.imwrite(str(image), np.zeros((1000, 450, 3), dtype=np.uint8))

        args = cli.build_parser().parse_args(["detect", "--image", str(image)])
        args.func(args)

        result = json.loads(capsys.readouterr().out)
        assert result["panels"]["count"] == 0
        assert result["markers"]["count"] == 0
