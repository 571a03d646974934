"""Batch, quota and integrity views."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from ..auth import Identity
    from ..dispatch import Engine


def run_batch_show(engine: Engine, identity: Identity, batch_id: str, *, output_json: bool = False) -> int:
    record = engine.invoke(identity, "getRecord", batch_id)
    if output_json:
        print(json.dumps(record, indent=2))
        return 0

    console = Console()
    event = record["collectionEvent"]
    console.print(f"[bold]{record['batchId']}[/] [cyan]{record['currentStatus']}[/] (version {record['version']})")
    console.print(
        f"  {event['quantityKg']:g}kg {event['herbType']} from {event['farmerName']} ({event['farmerId']})"
    )
    console.print(f"  Completion: {record['completionScore']}%")

    distribution = record.get("distributionInfo") or {}
    if distribution.get("qrCodeUrl"):
        console.print(f"  Trace: {distribution['qrCodeUrl']}", style="dim")

    compliance = [k for k, v in sorted(record.get("compliance", {}).items()) if v]
    if compliance:
        console.print(f"  Compliance: {', '.join(compliance)}")

    table = Table(title="Timeline")
    table.add_column("date", style="dim")
    table.add_column("stage", style="magenta")
    table.add_column("description")
    table.add_column("result")
    for entry in record["timeline"]:
        table.add_row(entry.get("date") or "", entry["stage"], entry["description"], entry.get("result") or "")
    console.print(table)
    return 0


def run_batch_list(
    engine: Engine,
    identity: Identity,
    *,
    status: str | None = None,
    farmer_id: str | None = None,
) -> int:
    err = Console(stderr=True)
    if (status is None) == (farmer_id is None):
        err.print("Pass exactly one of --status or --farmer", style="bold red")
        return 2

    rows: list[dict[str, Any]]
    if status is not None:
        rows = engine.invoke(identity, "listByStatus", status)
        title = f"Batches in {status}"
    else:
        rows = engine.invoke(identity, "listByFarmer", farmer_id)
        title = f"Batches from {farmer_id}"

    table = Table(title=title)
    table.add_column("batchId", style="cyan", no_wrap=True)
    table.add_column("herbType")
    table.add_column("status", style="magenta")
    table.add_column("date", style="dim")
    for r in rows:
        table.add_row(r["batchId"], r["herbType"], r["status"], r.get("collectionDate") or r.get("lastUpdated", ""))

    Console().print(table)
    if not rows:
        err.print("No batches found", style="yellow")
    return 0


def run_quota(engine: Engine, identity: Identity, year: str, *, output_json: bool = False) -> int:
    status = engine.invoke(identity, "getQuotaStatus", year)
    if output_json:
        print(json.dumps(status, indent=2))
        return 0

    table = Table(title=f"Quota {status['year']}")
    table.add_column("herb", style="cyan")
    table.add_column("quota (kg)", justify="right")
    table.add_column("used (kg)", justify="right")
    table.add_column("remaining (kg)", justify="right")
    table.add_column("utilization", justify="right")

    for herb, b in status["herbQuotas"].items():
        style = "red" if b["remaining"] <= 0 else None
        table.add_row(herb, f"{b['quota']:g}", f"{b['used']:g}", f"{b['remaining']:g}", f"{b['utilization']:.2f}%", style=style)
    table.add_section()
    table.add_row(
        "total",
        f"{status['totalQuota']:g}",
        f"{status['totalUsed']:g}",
        f"{status['totalRemaining']:g}",
        f"{status['totalUtilization']:.2f}%",
        style="bold",
    )
    Console().print(table)
    return 0


def run_verify(engine: Engine, identity: Identity, test_id: str) -> int:
    result = engine.invoke(identity, "verifyAuthenticity", test_id)
    console = Console()
    if result["isAuthentic"]:
        console.print(f"{test_id}: {result['message']}", style="green")
        console.print(f"  hash {result['calculatedHash']}", style="dim")
        return 0

    err = Console(stderr=True)
    err.print(f"{test_id}: {result['message']}", style="bold red")
    err.print(f"  stored     {result['storedHash']}")
    err.print(f"  calculated {result['calculatedHash']}")
    return 1
