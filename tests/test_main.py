"""Tests for the command-line entry point."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from sportfun_market import __main__ as cli
from sportfun_market.config import clear_settings_cache


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ALCHEMY_API_KEY", "test-key")
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestParser:
    def test_snapshot_defaults(self) -> None:
        args = cli.build_parser().parse_args(["snapshot", "--sport", "soccer"])

        assert args.sport == "soccer"
        assert args.window_hours == 24
        assert args.trend_days == 30
        assert args.max_tokens == 250
        assert args.metadata_limit is None

    def test_rejects_unknown_sport(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["snapshot", "--sport", "cricket"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


class TestMain:
    def test_config_is_redacted(self, capsys) -> None:
        assert cli.main(["config"]) == 0

        out = json.loads(capsys.readouterr().out)
        assert out["rpc"]["alchemy_api_key"] == "(set)"
        assert "test-key" not in json.dumps(out)

    def test_snapshot_prints_json(self, capsys) -> None:
        payload = {"sport": "nfl", "tokens": []}
        with patch.object(cli, "run_snapshot", AsyncMock(return_value=payload)):
            assert cli.main(["snapshot", "--sport", "nfl", "--indent", "0"]) == 0

        assert json.loads(capsys.readouterr().out) == payload
