"""End-to-end tests for scripts/close_period.py against a SQLite file."""

import importlib.util
import json
from datetime import date
from pathlib import Path

import pytest

from ledger_config.loader import ENV_CONFIG_FILE, ENV_DATABASE_URL

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "close_period.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("close_period_cli", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def cli_env(monkeypatch, database_url):
    monkeypatch.delenv(ENV_CONFIG_FILE, raising=False)
    monkeypatch.setenv(ENV_DATABASE_URL, database_url)


def _run(cli, capsys, *argv):
    """Return (exit code, stdout JSON, last stderr JSON line)."""
    code = cli.main(list(argv))
    out, err = capsys.readouterr()
    err_lines = [line for line in err.splitlines() if line.strip()]
    return (
        code,
        json.loads(out) if out.strip() else None,
        json.loads(err_lines[-1]) if err_lines else None,
    )


def test_close_and_reopen(
    cli, cli_env, capsys, standard_accounts, create_entry, test_actor_id,
):
    create_entry("4001", "500.00")

    code, out, _ = _run(cli, capsys, "close", "2025-01-15", "--actor", str(test_actor_id))
    assert code == 0
    assert out == {
        "posted_count": 1,
        "total_debit": "500.00",
        "total_credit": "0.00",
        "batch_date": "2025-01-15",
        "batch_dates": ["2025-01-15"],
    }

    code, out, _ = _run(cli, capsys, "status")
    assert out == {"closed_dates": ["2025-01-15"]}

    code, out, _ = _run(cli, capsys, "reopen", "2025-01-15", "--actor", str(test_actor_id))
    assert code == 0
    assert out["unposted_count"] == 1


def test_ledger_error_reported_on_stderr(
    cli, cli_env, capsys, standard_accounts, test_actor_id,
):
    code, out, err = _run(cli, capsys, "close", "2025-01-15", "--actor", str(test_actor_id))
    assert code == 1
    assert out is None
    assert err["error"] == "NO_PENDING_ENTRIES"
    assert err["http_status"] == 400


def test_rejections_listed(
    cli, cli_env, capsys, standard_accounts, create_entry, test_actor_id,
):
    bad = create_entry("4001", "500.00", "KREDIT")

    code, _, err = _run(cli, capsys, "close", "2025-01-15", "--actor", str(test_actor_id))
    assert code == 1
    assert err["error"] == "VALIDATION_FAILED"
    assert err["rejected"] == [{
        "entry_id": str(bad),
        "reason": "InvalidTransactionType",
        "message": "Transaction type 'KREDIT' is not DEBIT or CREDIT",
    }]


def test_validate_defaults_to_pending_entries(
    cli, cli_env, capsys, standard_accounts, create_entry,
):
    good = create_entry("4001", "500.00", ledger_date=date(2025, 1, 10))
    create_entry("4001", "1.00", ledger_date=date(2025, 1, 20))

    code, out, _ = _run(cli, capsys, "validate", "2025-01-15")
    assert code == 0
    assert out == {"accepted": [str(good)], "rejected": []}


def test_bad_date_argument(cli, capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["close", "15/01/2025", "--actor", "00000000-0000-0000-0000-000000000000"])
    assert exc_info.value.code == 2
