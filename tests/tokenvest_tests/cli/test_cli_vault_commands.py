import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from tokenvest.cli.main import cli
from tokenvest.config_manager import get_config_manager

ADMIN = "0xadmin"
SAFE = "0xsafe"
ALICE = "0xalice"
BOB = "0xbob"
CUSTODY = "0xvault"


def _invoke(runner, db_path, *args, now=None, input=None):
    base = ["--db", str(db_path), "--json-output"]
    if now is not None:
        base += ["--now", str(now)]
    return runner.invoke(cli, base + list(args), input=input)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path) -> Path:
    return tmp_path / "vault.db"


@pytest.fixture
def funded(runner, db_path):
    """Initialized vault whose administrator approved the custody address."""
    result = _invoke(
        runner,
        db_path,
        "init",
        "--admin", ADMIN,
        "--recovery", SAFE,
        "--supply", "1000000",
        "--custody", CUSTODY,
    )
    assert result.exit_code == 0, result.output
    result = _invoke(runner, db_path, "approve", "--owner", ADMIN, "--amount", "100000")
    assert result.exit_code == 0, result.output
    return db_path


def _create(runner, db_path, beneficiary=ALICE, amount=1000, upfront=10, cliff=100, end=1100):
    return _invoke(
        runner,
        db_path,
        "create",
        "--caller", ADMIN,
        "--beneficiary", beneficiary,
        "--amount", str(amount),
        "--upfront", str(upfront),
        "--cliff", str(cliff),
        "--end", str(end),
    )


def test_init_reports_vault(runner, db_path):
    result = _invoke(
        runner, db_path, "init", "--admin", ADMIN, "--recovery", SAFE, "--supply", "500"
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["administrator"] == ADMIN
    assert payload["recovery_account"] == SAFE
    assert payload["supply"] == 500
    assert payload["custody_address"].startswith("0x")


def test_init_refuses_overwrite(runner, funded):
    result = _invoke(runner, funded, "init", "--admin", ADMIN, "--recovery", SAFE)
    assert result.exit_code != 0
    assert "already initialized" in result.output


def test_commands_require_initialized_vault(runner, db_path):
    result = _invoke(runner, db_path, "status")
    assert result.exit_code == 1


def test_create_claim_lifecycle(runner, funded):
    result = _create(runner, funded)
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["index"] == 0

    result = _invoke(runner, funded, "preview", ALICE, now=50)
    assert json.loads(result.output)["claimable_amount"] == 100

    result = _invoke(runner, funded, "claim", "--caller", ALICE, now=600)
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["amount"] == 550
    assert payload["balance"] == 550

    result = _invoke(runner, funded, "claim", "--caller", ALICE, now=1100)
    assert json.loads(result.output)["amount"] == 450

    result = _invoke(runner, funded, "schedules", ALICE, now=1100)
    schedules = json.loads(result.output)["schedules"]
    assert schedules[0]["claimed_amount"] == 1000
    assert schedules[0]["claimable"] == 0


def test_claim_before_anything_unlocks_fails(runner, funded):
    _create(runner, funded, upfront=0)
    result = _invoke(runner, funded, "claim", "--caller", ALICE, now=10)
    assert result.exit_code == 1


def test_create_by_non_admin_fails(runner, funded):
    result = _invoke(
        runner,
        funded,
        "create",
        "--caller", BOB,
        "--beneficiary", ALICE,
        "--amount", "10",
        "--cliff", "1",
        "--end", "2",
    )
    assert result.exit_code == 1

    result = _invoke(runner, funded, "status")
    assert json.loads(result.output)["schedules"] == 0


def test_batch_from_yaml(runner, funded, tmp_path):
    batch_file = tmp_path / "grants.yaml"
    batch_file.write_text(
        yaml.safe_dump(
            {
                "schedules": [
                    {"beneficiary": ALICE, "total_amount": 1000, "upfront_percent": 10,
                     "cliff_time": 100, "ramp_end": 1100},
                    {"beneficiary": BOB, "total_amount": 500, "upfront_percent": 0,
                     "cliff_time": 100, "ramp_end": 1100},
                ]
            }
        )
    )

    result = _invoke(runner, funded, "batch", "--caller", ADMIN, str(batch_file))

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["count"] == 2
    assert payload["total_amount"] == 1500


def test_batch_from_json_list(runner, funded, tmp_path):
    batch_file = tmp_path / "grants.json"
    batch_file.write_text(
        json.dumps(
            [{"beneficiary": ALICE, "total_amount": 10, "upfront_percent": 0,
              "cliff_time": 1, "ramp_end": 2}]
        )
    )
    result = _invoke(runner, funded, "batch", "--caller", ADMIN, str(batch_file))
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["indices"] == [0]


def test_batch_with_invalid_entry_creates_nothing(runner, funded, tmp_path):
    batch_file = tmp_path / "grants.yaml"
    batch_file.write_text(
        yaml.safe_dump(
            [
                {"beneficiary": ALICE, "total_amount": 10, "upfront_percent": 0,
                 "cliff_time": 1, "ramp_end": 2},
                {"beneficiary": BOB, "total_amount": 10, "upfront_percent": 0,
                 "cliff_time": 5, "ramp_end": 2},
            ]
        )
    )
    result = _invoke(runner, funded, "batch", "--caller", ADMIN, str(batch_file))
    assert result.exit_code == 1

    result = _invoke(runner, funded, "status")
    assert json.loads(result.output)["schedules"] == 0


def test_batch_missing_field(runner, funded, tmp_path):
    batch_file = tmp_path / "grants.yaml"
    batch_file.write_text(yaml.safe_dump([{"beneficiary": ALICE}]))
    result = _invoke(runner, funded, "batch", "--caller", ADMIN, str(batch_file))
    assert result.exit_code != 0
    assert "missing" in result.output


def test_recover_sweeps_to_recovery_account(runner, funded):
    _create(runner, funded, amount=500, upfront=0)
    _create(runner, funded, amount=300, upfront=0, cliff=5000, end=6000)
    _invoke(runner, funded, "claim", "--caller", ALICE, now=500)

    result = _invoke(runner, funded, "recover", "--caller", ADMIN, ALICE)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["amount"] == 600
    assert payload["recovery_account"] == SAFE

    result = _invoke(runner, funded, "preview", ALICE, now=10**9)
    assert json.loads(result.output)["claimable_amount"] == 0


def test_recover_confirmation_prompt(runner, funded):
    _create(runner, funded)
    result = runner.invoke(
        cli,
        ["--db", str(funded), "recover", "--caller", ADMIN, ALICE],
        input="n\n",
    )
    assert result.exit_code == 1

    result = _invoke(runner, funded, "schedules", ALICE)
    assert len(json.loads(result.output)["schedules"]) == 1


def test_set_recovery_and_transfer_admin(runner, funded):
    result = _invoke(runner, funded, "set-recovery", "--caller", ADMIN, "0xNEWSAFE")
    assert json.loads(result.output)["recovery_account"] == "0xnewsafe"

    result = _invoke(runner, funded, "transfer-admin", "--caller", ADMIN, BOB)
    assert json.loads(result.output)["administrator"] == BOB

    result = _invoke(runner, funded, "set-recovery", "--caller", ADMIN, SAFE)
    assert result.exit_code == 1


def test_mint_owner_only(runner, funded):
    result = _invoke(runner, funded, "mint", "--caller", ADMIN, "--to", BOB, "--amount", "5")
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["balance"] == 5

    result = _invoke(runner, funded, "mint", "--caller", BOB, "--to", BOB, "--amount", "5")
    assert result.exit_code == 1


def test_status_reports_solvency(runner, funded):
    _create(runner, funded)
    result = _invoke(runner, funded, "status")
    payload = json.loads(result.output)
    assert payload["custody_address"] == CUSTODY
    assert payload["custody_balance"] == 1000
    assert payload["outstanding"] == 1000
    assert payload["solvent"] is True


def test_rich_output(runner, funded):
    _create(runner, funded)
    result = runner.invoke(cli, ["--db", str(funded), "--now", "600", "schedules", ALICE])
    assert result.exit_code == 0, result.output
    assert "Schedules for" in result.output
    assert "550" in result.output


def test_serve_honors_now_override(runner, funded, monkeypatch):
    served = {}

    def fake_run(app, **kwargs):
        served["app"] = app
        served["kwargs"] = kwargs

    monkeypatch.setattr("flask.Flask.run", fake_run)
    assert _create(runner, funded).exit_code == 0

    result = _invoke(runner, funded, "serve", "--port", "18650", now=600)
    assert result.exit_code == 0, result.output
    assert served["kwargs"]["port"] == 18650
    assert served["kwargs"]["threaded"] is False

    response = served["app"].test_client().get(f"/vesting/claimable/{ALICE}")
    assert response.get_json()["claimable"] == 550


def test_configuration_shared_with_process(runner, db_path, tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "default.yaml").write_text(
        yaml.safe_dump({"vault": {"max_batch_size": 3, "token_symbol": "TST"}})
    )

    result = runner.invoke(
        cli,
        [
            "--db", str(db_path),
            "--config-dir", str(config_dir),
            "--json-output",
            "init", "--admin", ADMIN, "--recovery", SAFE,
        ],
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["token"] == "TST"

    config = get_config_manager()
    assert config.config_dir == config_dir.resolve()
    assert config.vault.max_batch_size == 3
