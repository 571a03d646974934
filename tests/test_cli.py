"""Tests for the command layer over a file-backed ledger."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest
from click.testing import CliRunner

from herbtrace.auth import FARMER, LAB, REGULATOR, Identity
from herbtrace.cli import cli
from herbtrace.commands.batch_cmd import run_batch_list, run_batch_show, run_quota, run_verify
from herbtrace.commands.ledger_cmd import run_init, run_invoke, run_log, run_operations
from herbtrace.dispatch import Engine
from herbtrace.ledger import WorldState
from herbtrace.quality.records import quality_test_key

NOW = datetime(2024, 4, 1, tzinfo=timezone.utc)

REGULATOR_ID = Identity("REG-01", REGULATOR)
FARMER_ID = Identity("FARM-01", FARMER)
LAB_ID = Identity("LAB001", LAB)


@pytest.fixture
def ledger_dir(tmp_path: Path) -> Path:
    return tmp_path / "ledger"


@pytest.fixture
def populated(
    ledger_dir: Path,
    make_event: Callable[..., dict[str, Any]],
    make_test: Callable[..., dict[str, Any]],
    capsys: pytest.CaptureFixture[str],
) -> Engine:
    """Ledger with seed data, one accepted harvest and one passing test."""
    engine = Engine(WorldState(ledger_dir))
    assert run_init(engine, REGULATOR_ID) == 0
    assert run_invoke(engine, FARMER_ID, "submitHarvest", (json.dumps(make_event()),), timestamp=NOW) == 0
    assert run_invoke(engine, LAB_ID, "submitBatchTest", (json.dumps(make_test()),), timestamp=NOW) == 0
    capsys.readouterr()
    return engine


def test_init_reports_seeded_entries(ledger_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Init seeds once and reports nothing on a second run."""
    engine = Engine(WorldState(ledger_dir))

    assert run_init(engine, REGULATOR_ID) == 0
    output = capsys.readouterr().out
    assert "Zones added: ZONE001, ZONE002, ZONE003" in output
    assert "Labs added: LAB001, LAB002" in output
    assert "Height: 2" in output

    assert run_init(engine, REGULATOR_ID) == 0
    output = capsys.readouterr().out
    assert "Zones added: none" in output
    assert "Height: 2" in output
    assert (ledger_dir / "commits.jsonl").exists()


def test_invoke_prints_json(populated: Engine, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_invoke(populated, FARMER_ID, "listByFarmer", ("FARM-01",)) == 0
    data = json.loads(capsys.readouterr().out)
    assert [b["batchId"] for b in data] == ["BATCH-001"]
    assert data[0]["status"] == "Tested-Pass"


def test_operations_table(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_operations() == 0
    output = capsys.readouterr().out
    assert "submitHarvest" in output
    assert "mutation" in output
    assert "query" in output


def test_batch_show(populated: Engine, capsys: pytest.CaptureFixture[str]) -> None:
    """Show prints header, completion and a timeline."""
    assert run_batch_show(populated, FARMER_ID, "BATCH-001") == 0
    output = capsys.readouterr().out

    # Check for key substrings (not full table matching)
    assert "BATCH-001" in output
    assert "Tested-Pass" in output
    assert "Completion: 55%" in output
    assert "Timeline" in output
    assert "Collection" in output


def test_batch_show_json(populated: Engine, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_batch_show(populated, FARMER_ID, "BATCH-001", output_json=True) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["completionScore"] == 55
    assert [e["stage"] for e in data["timeline"]] == ["Collection", "Quality Testing"]


def test_batch_list_filters(populated: Engine, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_batch_list(populated, FARMER_ID) == 2
    assert "exactly one" in capsys.readouterr().err

    assert run_batch_list(populated, FARMER_ID, status="Tested-Pass", farmer_id="FARM-01") == 2
    capsys.readouterr()

    assert run_batch_list(populated, FARMER_ID, status="Tested-Pass") == 0
    assert "BATCH-001" in capsys.readouterr().out

    assert run_batch_list(populated, FARMER_ID, farmer_id="FARM-99") == 0
    assert "No batches found" in capsys.readouterr().err


def test_quota_views(populated: Engine, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_quota(populated, REGULATOR_ID, "2024") == 0
    output = capsys.readouterr().out
    assert "Quota 2024" in output
    assert "Ashwagandha" in output
    assert "total" in output

    assert run_quota(populated, REGULATOR_ID, "2024", output_json=True) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["herbQuotas"]["Ashwagandha"]["used"] == 100
    assert data["totalUsed"] == 100


def test_verify_detects_tampering(populated: Engine, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_verify(populated, LAB_ID, "TEST-001") == 0
    assert "authentic" in capsys.readouterr().out

    state = populated.state
    raw = state.get(quality_test_key("TEST-001"))
    assert raw is not None
    with state.begin(REGULATOR_ID, function="tamper", timestamp=NOW) as tx:
        tx.put_state(quality_test_key("TEST-001"), raw.replace(b'"sampleQuantity":50', b'"sampleQuantity":5'))

    assert run_verify(populated, LAB_ID, "TEST-001") == 1
    err = capsys.readouterr().err
    assert "compromised" in err
    assert "calculated" in err


def test_log_and_replay(populated: Engine, ledger_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """The commit log lists every transaction and replays to the same state."""
    assert run_log(populated.state, output_json=True) == 0
    commits = json.loads(capsys.readouterr().out)
    assert [c["version"] for c in commits] == [1, 2, 3, 4]
    assert [c["function"] for c in commits] == ["initZones", "initQuality", "submitHarvest", "submitBatchTest"]
    assert commits[2]["actor"] == "farmer:FARM-01"

    assert run_log(populated.state, limit=2) == 0
    output = capsys.readouterr().out
    assert "Commit log (height 4)" in output
    assert "initZones" not in output

    replayed = WorldState(ledger_dir)
    assert replayed.height == 4
    assert replayed.keys() == populated.state.keys()


# -----------------------------------------------------------------------------
# Click entry point
# -----------------------------------------------------------------------------


def test_cli_end_to_end(ledger_dir: Path, make_event: Callable[..., dict[str, Any]]) -> None:
    runner = CliRunner()
    base = ["--ledger", str(ledger_dir)]

    result = runner.invoke(cli, [*base, "init"])
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        cli,
        [*base, "--as", "farmer", "--member", "FARM-01", "invoke", "--at", "2024-04-01T00:00:00Z",
         "submitHarvest", json.dumps(make_event())],
    )  # fmt: skip
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["batchId"] == "BATCH-001"

    result = runner.invoke(cli, [*base, "batch", "show", "BATCH-001", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["currentStatus"] == "Collected"


def test_cli_maps_errors_to_exit_codes(ledger_dir: Path, make_event: Callable[..., dict[str, Any]]) -> None:
    runner = CliRunner()
    base = ["--ledger", str(ledger_dir)]
    runner.invoke(cli, [*base, "init"])

    result = runner.invoke(cli, [*base, "invoke", "getRecord", "BATCH-404"])
    assert result.exit_code == 1
    assert "NotFoundError: Batch BATCH-404 not found" in result.output

    event = make_event(gpsCoordinates={"latitude": 9.0, "longitude": 76.0})
    result = runner.invoke(
        cli,
        [*base, "--as", "farmer", "invoke", "--at", "2024-04-01T00:00:00Z", "submitHarvest", json.dumps(event)],
    )
    assert result.exit_code == 1
    assert "Harvest BATCH-001 rejected" in result.output
    assert "outside all approved zones" in result.output

    result = runner.invoke(cli, [*base, "invoke", "--at", "not-a-date", "getStats"])
    assert result.exit_code == 2

    result = runner.invoke(cli, [*base, "invoke"])
    assert result.exit_code == 2

    result = runner.invoke(cli, [*base, "--as", "lab", "invoke", "initZones"])
    assert result.exit_code == 1
    assert "AuthorizationError" in result.output
