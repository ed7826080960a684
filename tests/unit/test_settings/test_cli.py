"""Tests for the command-line interface."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from vmrobot.cli import parse_args
from vmrobot.config.settings import LoggingConfig
from vmrobot.utils.logging import setup_logging


class TestParseArgs:
    def test_serve(self) -> None:
        args = parse_args(["-v", "serve"])
        assert args.command == "serve"
        assert args.verbose

    def test_run_actions_clone(self) -> None:
        args = parse_args(["run-actions", "--clone", "win10", "--snapshot", "clean", "batch.json"])
        assert args.clone == "win10"
        assert args.snapshot == "clean"
        assert args.actions == Path("batch.json")
        assert not args.isolated

    def test_run_actions_needs_a_target(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["run-actions", "batch.json"])

    def test_connect_and_clone_are_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["run-actions", "--connect", "a", "--clone", "b", "batch.json"])


class TestSetupLogging:
    def test_sets_level_and_file(self, tmp_path: Path) -> None:
        log_file = tmp_path / "vmrobot.log"
        logger = logging.getLogger("vmrobot")
        handlers = list(logger.handlers)
        try:
            setup_logging(LoggingConfig(level="DEBUG", file=str(log_file)))
            assert logger.level == logging.DEBUG
            logging.getLogger("vmrobot.session").debug("hello")
            for handler in logger.handlers:
                handler.flush()
            assert "hello" in log_file.read_text()
        finally:
            for handler in logger.handlers:
                if handler not in handlers:
                    handler.close()
            logger.handlers = handlers
            logger.setLevel(logging.NOTSET)
