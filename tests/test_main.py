"""Tests for the command-line entry point."""

from pathlib import Path

import pytest

import main
from pushcert.config_loader import Config
from pushcert.logger import setup_logger


@pytest.fixture(autouse=True)
def restore_logger():
    """Point the global logger back at the session stream once main has run."""
    yield
    setup_logger(use_colors=False)


class TestArguments:
    """Tests for argument parsing and config overrides."""

    def test_defaults(self) -> None:
        args = main.parse_arguments([])
        assert args.config == "config.yaml"
        assert args.refresh is None
        assert args.app_filter is None
        assert not args.dry_run

    def test_overrides(self, config: Config) -> None:
        """Command-line flags should replace the configured values."""
        args = main.parse_arguments(["--refresh", "--filter", "", "--dry-run", "--headless"])
        overridden = main.apply_overrides(config, args)

        assert overridden.selection.refresh_certs is True
        assert overridden.selection.app_filter == ""
        assert overridden.settings.dry_run is True
        assert overridden.console.headless is True
        assert config.selection.app_filter == "FanFB"

    def test_no_overrides(self, config: Config) -> None:
        overridden = main.apply_overrides(config, main.parse_arguments([]))
        assert overridden == config


class TestMain:
    """Tests for main."""

    def test_missing_config_exits_2(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        code = main.main(["--config", str(tmp_path / "missing.yaml"), "--no-color"])

        assert code == 2
        assert "PIPELINE_STATUS=FAILURE" in capsys.readouterr().out

    def test_json_summary(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        main.main(["--config", str(tmp_path / "missing.yaml"), "--no-color", "--json-summary"])

        out = capsys.readouterr().out
        assert '"exit_code": 2' in out
        assert "Configuration error" in out
        assert out.strip().splitlines()[-1] == "PIPELINE_STATUS=FAILURE"
