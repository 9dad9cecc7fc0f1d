"""Tests for the plansync command line."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from plansync import __version__
from plansync.cli import cli

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DATABASE_URL", "GEMINI_API_KEY", "OUTLOOK_CLIENT_ID", "OUTLOOK_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)


class TestCheckConfig:
    def test_summary_without_secrets(self, tmp_path):
        path = tmp_path / "plansync.toml"
        path.write_text(
            '[planning]\napi_key = "super-secret-key"\n\n'
            '[providers.outlook]\nclient_id = "ms-id"\nclient_secret = "ms-secret"\n'
        )

        result = CliRunner().invoke(cli, ["check-config", "--config", str(path)])

        assert result.exit_code == 0, result.output
        assert "api_key=set" in result.output
        assert "database:  MISSING" in result.output
        assert "outlook  configured" in result.output
        assert "google   not configured" in result.output
        assert "super-secret-key" not in result.output
        assert "ms-secret" not in result.output

    def test_invalid_config_exits_nonzero(self, tmp_path):
        path = tmp_path / "plansync.toml"
        path.write_text('[logging]\nformat = "xml"\n')

        result = CliRunner().invoke(cli, ["check-config", "--config", str(path)])

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestServe:
    def test_serve_requires_database(self):
        result = CliRunner().invoke(cli, ["serve"])
        assert result.exit_code == 1
        assert "DATABASE_URL" in result.output


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
