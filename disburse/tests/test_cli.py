from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from disburse.cli import main as cli_main
from disburse.version import __version__

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DISBURSE_FACTORY_APP_ID", "DISBURSE_TREASURY_APP_ID", "DISBURSE_IDENTITY_APP_ID", "DISBURSE_RPC_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def local(monkeypatch, ledger):
    monkeypatch.setattr(cli_main, "_ledger", lambda ctx: ledger)
    return ledger


def test_version():
    result = runner.invoke(cli_main.app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == f"disburse {__version__}"


def test_main_returns_exit_code():
    assert cli_main.main(["version"]) == 0


def test_factory_id_required():
    result = runner.invoke(cli_main.app, ["schemes"])
    assert result.exit_code != 0


def test_schemes_and_stats(local, factory, active_scheme):
    result = runner.invoke(cli_main.app, ["--factory", str(factory.app_id), "schemes"])
    assert result.exit_code == 0, result.output
    rows = json.loads(result.stdout)
    assert rows[0]["scheme_id"] == active_scheme
    assert rows[0]["status"] == "Active"
    assert rows[0]["remaining"] == 1_000_000

    stats = json.loads(runner.invoke(cli_main.app, ["--factory", str(factory.app_id), "stats"]).stdout)
    assert stats["scheme_count"] == 1
    assert stats["authority"] == factory.sender


def test_missing_scheme_exits_2(local, factory):
    result = runner.invoke(cli_main.app, ["--factory", str(factory.app_id), "scheme", "99"])
    assert result.exit_code == 2


def test_history(local, factory, active_scheme):
    result = runner.invoke(cli_main.app, ["--factory", str(factory.app_id), "history", "--limit", "2"])
    assert result.exit_code == 0
    entries = json.loads(result.stdout)
    assert [e["method"] for e in entries] == ["create", "create_scheme"]


def test_main_reports_unknown_commands(capsys):
    assert cli_main.main(["bogus"]) == 2
    assert "bogus" in capsys.readouterr().err


def test_main_reports_bad_parameters(capsys):
    assert cli_main.main(["schemes"]) == 2
    assert "factory application id required" in capsys.readouterr().err


def test_main_passes_through_command_exit_codes(local, factory):
    assert cli_main.main(["--factory", str(factory.app_id), "scheme", "99"]) == 2
