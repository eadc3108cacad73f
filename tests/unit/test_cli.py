"""
Unit tests for the Mintpad CLI.
"""

import json
import os

import pytest
from click.testing import CliRunner

from cli.main import cli

from conftest import ALICE, ARTIST, BOB, OWNER, PLATFORM_A, PLATFORM_B


FAR_FUTURE = 4_000_000_000


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("cli.config.CONFIG_SEARCH_PATHS", [])
    for key in list(os.environ):
        if key.startswith("MINTPAD_"):
            monkeypatch.delenv(key)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / "data")


@pytest.fixture
def invoke(runner, data_dir):
    """Run a JSON-output command against the test data directory."""
    def _invoke(*args, expect_ok=True):
        result = runner.invoke(cli, ["-o", "json", "-d", data_dir, *args])
        if expect_ok:
            assert result.exit_code == 0, result.output
            return json.loads(result.stdout)
        return result
    return _invoke


@pytest.fixture
def launchpad(invoke):
    invoke("factory", "init", "--owner", OWNER,
           "--platform-address", f"{PLATFORM_A},{PLATFORM_B}", "--platform-fee", "100")
    invoke("ledger", "deposit", ARTIST, "1000")
    invoke("ledger", "deposit", ALICE, "100")
    return invoke


@pytest.fixture
def deployed(launchpad):
    summary = launchpad("factory", "deploy", "--caller", ARTIST, "--name", "Apes",
                        "--symbol", "APE", "--max-supply", "10", "--base-uri", "ipfs://apes/",
                        "--royalty-percentage", "500")
    return summary["address"]


class TestCLI:
    """Test command behavior end to end through click."""

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "mintpad" in result.output

    def test_init(self, invoke):
        stats = invoke("factory", "init", "--owner", OWNER, "--platform-address", PLATFORM_A,
                       "--fee-policy", "retain")
        assert stats["initialized"] is True
        assert stats["fee_policy"] == "retain"
        assert stats["platform_fee"] == 0

    def test_init_twice_fails(self, launchpad):
        result = launchpad("factory", "init", "--owner", OWNER, "--platform-address", PLATFORM_A,
                           expect_ok=False)
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_commands_require_launchpad(self, invoke):
        result = invoke("factory", "list", expect_ok=False)
        assert result.exit_code == 1
        assert "factory init" in result.output

    def test_deploy_and_list(self, launchpad, deployed):
        rows = launchpad("factory", "list")
        assert [r["address"] for r in rows] == [deployed]
        assert rows[0]["owner"] == ARTIST

        balances = {r["address"]: r["balance"] for r in launchpad("ledger", "balance")}
        assert balances[ARTIST] == 900
        assert balances[PLATFORM_A] == 50

    def test_deploy_underpaid(self, launchpad):
        result = launchpad("factory", "deploy", "--caller", ARTIST, "--name", "Apes",
                           "--symbol", "APE", "--max-supply", "10", "--payment", "99",
                           expect_ok=False)
        assert result.exit_code == 1
        assert launchpad("factory", "list") == []

    def test_deploy_from_params_file(self, launchpad, tmp_path):
        params = tmp_path / "params.json"
        params.write_text(json.dumps({
            "name": "Editions",
            "symbol": "ED",
            "max_supply": 50,
            "owner": ARTIST,
            "sale_recipient": ARTIST,
            "royalty_recipients": [ARTIST, BOB],
            "royalty_shares": [6000, 4000],
            "royalty_percentage": 1000,
            "variant": "multi",
        }))
        summary = launchpad("factory", "deploy", "--caller", ARTIST, "--params-file", str(params))
        assert summary["variant"] == "multi"

        split = launchpad("collection", "royalty", summary["address"], "--sale-price", "1000")
        assert split == [{"recipient": ARTIST, "amount": 60}, {"recipient": BOB, "amount": 40}]

    def test_phase_and_mint(self, launchpad, deployed):
        phase = launchpad("collection", "add-phase", deployed, "--caller", ARTIST, "--price", "5",
                          "--limit", "1", "--start", "0", "--end", str(FAR_FUTURE))
        assert phase["index"] == 0
        assert phase["active"] is True

        receipt = launchpad("mint", deployed, "--caller", ALICE, "--phase", "0", "--token-id", "7")
        assert receipt["payment"] == 5
        assert receipt["total_minted"] == 1

        result = launchpad("mint", deployed, "--caller", ALICE, "--phase", "0", "--token-id", "8",
                           expect_ok=False)
        assert result.exit_code == 1
        assert "limit" in result.output

        balances = launchpad("ledger", "balance", ALICE, ARTIST)
        assert balances == [{"address": ALICE, "balance": 95}, {"address": ARTIST, "balance": 905}]

        uri = launchpad("collection", "uri", deployed, "7")
        assert uri["uri"] == "ipfs://apes/"

        launchpad("collection", "reveal", deployed, "--caller", ARTIST)
        assert launchpad("collection", "uri", deployed, "7")["uri"] == "ipfs://apes/7"

    def test_whitelist_phase(self, launchpad, deployed):
        launchpad("collection", "add-phase", deployed, "--caller", ARTIST, "--price", "0",
                  "--limit", "1", "--start", "0", "--end", str(FAR_FUTURE), "--whitelist")

        result = launchpad("mint", deployed, "--caller", BOB, "--phase", "0", "--token-id", "1",
                           expect_ok=False)
        assert result.exit_code == 1

        members = launchpad("collection", "whitelist", deployed, "--caller", ARTIST, "--add", BOB)
        assert members == [BOB]
        launchpad("mint", deployed, "--caller", BOB, "--phase", "0", "--token-id", "1")

    def test_set_phase(self, launchpad, deployed):
        launchpad("collection", "add-phase", deployed, "--caller", ARTIST, "--price", "5",
                  "--limit", "1", "--start", "0", "--end", str(FAR_FUTURE))
        updated = launchpad("collection", "set-phase", deployed, "0", "--caller", ARTIST,
                            "--price", "9", "--end", "10")
        assert (updated["price"], updated["end"], updated["active"]) == (9, 10, False)

        phases = launchpad("collection", "phases", deployed)
        assert len(phases) == 1

    def test_non_owner_rejected(self, launchpad, deployed):
        result = launchpad("collection", "add-phase", deployed, "--caller", ALICE, "--price", "5",
                           "--limit", "1", "--start", "0", "--end", str(FAR_FUTURE), expect_ok=False)
        assert result.exit_code == 1
        assert "not the owner" in result.output

    def test_fee_and_upgrade(self, launchpad, deployed):
        fee = launchpad("factory", "fee", "--set", "250", "--caller", OWNER)
        assert fee["platform_fee"] == 250

        implementations = launchpad("factory", "upgrade", "--caller", OWNER,
                                    "--variant", "single", "--version", "2.0.0")
        active = [i for i in implementations if i["variant"] == "single" and i["active"]]
        assert [i["version"] for i in active] == ["2.0.0"]

    def test_table_output(self, runner, data_dir, launchpad, deployed):
        result = runner.invoke(cli, ["-o", "table", "-d", data_dir, "collection", "info", deployed])
        assert result.exit_code == 0
        assert "Apes" in result.output

    def test_yaml_output(self, runner, data_dir, launchpad):
        result = runner.invoke(cli, ["-o", "yaml", "-d", data_dir, "factory", "fee"])
        assert result.exit_code == 0
        assert "platform_fee: 100" in result.output

    def test_config_show(self, invoke):
        assert invoke("config", "show", "--key", "factory.fee_policy") == {"factory.fee_policy": "forward"}

    def test_open_edition(self, launchpad):
        summary = launchpad("factory", "deploy-open-edition", "--caller", ARTIST, "--name", "Moments",
                            "--symbol", "MOM", "--base-uri", "ipfs://m/", "--mint-price", "3",
                            "--duration", "3600")
        assert summary["variant"] == "open_edition"
        assert summary["max_supply"] is None
        assert summary["edition_end"] - summary["edition_start"] == 3600

        receipt = launchpad("mint", summary["address"], "--caller", ALICE, "--phase", "0",
                            "--token-id", "1", "--quantity", "4")
        assert receipt["payment"] == 12

        rows = launchpad("factory", "list", "--variant", "open_edition")
        assert [r["address"] for r in rows] == [summary["address"]]
