"""Tests for the command-line entry point."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from searchsync import __version__
from searchsync.cli import main, run_once
from searchsync.config.settings import AdapterConfig, Settings


@pytest.fixture
def once_settings(settings: Settings) -> Settings:
    sync = settings.sync.model_copy(update={"providers": ["tests.helpers:RecordingProvider"]})
    return settings.model_copy(update={"sync": sync, "backends": {"memory": AdapterConfig()}})


class TestRunOnce:
    async def test_successful_sync_prints_job(
        self, once_settings: Settings, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert await run_once(once_settings) == 0

        job = json.loads(capsys.readouterr().out)
        assert job["status"] == "succeeded"
        assert job["reports"][0]["provider"] == "products"

    async def test_selected_provider(self, once_settings: Settings, capsys: pytest.CaptureFixture[str]) -> None:
        assert await run_once(once_settings, ["products"]) == 0

        assert json.loads(capsys.readouterr().out)["providers"] == ["products"]

    async def test_unknown_provider_fails(self, once_settings: Settings) -> None:
        assert await run_once(once_settings, ["nope"]) == 1

    async def test_no_backend_fails(self, once_settings: Settings) -> None:
        assert await run_once(once_settings.model_copy(update={"backends": {}})) == 1


class TestMain:
    def test_missing_config_file(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(tmp_path / "absent.yaml")])

        assert exc_info.value.code == 1
        assert "Config file not found" in capsys.readouterr().err

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out
