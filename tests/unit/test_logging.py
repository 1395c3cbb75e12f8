"""Tests for structured logging setup."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from searchsync.config.settings import ObservabilitySettings
from searchsync.observability.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def test_stdlib_records_rendered_as_json(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging(ObservabilitySettings(log_level="debug", log_format="json"))

    logging.getLogger("searchsync.test").info("Synced %d records", 3)

    line = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert line["event"] == "Synced 3 records"
    assert line["level"] == "info"
    assert line["logger"] == "searchsync.test"
    assert "timestamp" in line


def test_level_filters_records(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging(ObservabilitySettings(log_level="warning", log_format="console"))

    logging.getLogger("searchsync.test").info("hidden")
    logging.getLogger("searchsync.test").warning("shown")

    out = capsys.readouterr().out
    assert "shown" in out
    assert "hidden" not in out
