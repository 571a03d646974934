"""Ledger-level commands: seeding, raw invocation and the commit log."""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    from ..auth import Identity
    from ..dispatch import Engine
    from ..ledger.store import WorldState


def run_init(engine: Engine, identity: Identity) -> int:
    console = Console()
    zones = engine.invoke(identity, "initZones")
    quality = engine.invoke(identity, "initQuality")

    console.print(f"Ledger: {engine.state.ledger_dir}", style="dim")
    console.print(f"Zones added: {', '.join(zones['added']) or 'none'}")
    console.print(f"Standards added: {', '.join(quality['standards']) or 'none'}")
    console.print(f"Labs added: {', '.join(quality['labs']) or 'none'}")
    console.print(f"Height: {engine.state.height}", style="green")
    return 0


def run_invoke(
    engine: Engine,
    identity: Identity,
    function: str,
    args: tuple[str, ...],
    *,
    timestamp: datetime | None = None,
) -> int:
    result = engine.invoke(identity, function, *args, timestamp=timestamp)
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


def run_operations() -> int:
    from ..dispatch import OPERATIONS, list_operations

    table = Table(title="Operations")
    table.add_column("name", style="cyan", no_wrap=True)
    table.add_column("arguments")
    table.add_column("kind", style="dim")
    for name in list_operations():
        op = OPERATIONS[name]
        table.add_row(name, ", ".join(op.params), "query" if op.read_only else "mutation")
    Console().print(table)
    return 0


def run_log(state: WorldState, *, limit: int = 20, output_json: bool = False) -> int:
    commits = list(state.iter_commits())[-limit:] if limit > 0 else list(state.iter_commits())

    if output_json:
        print(json.dumps([c.to_dict() for c in commits], indent=2))
        return 0

    table = Table(title=f"Commit log (height {state.height})")
    table.add_column("version", justify="right")
    table.add_column("timestamp", style="dim")
    table.add_column("actor", style="magenta")
    table.add_column("function", style="cyan")
    table.add_column("keys")

    for c in commits:
        keys = c.keys()
        shown = ", ".join(keys[:3]) + (f" (+{len(keys) - 3})" if len(keys) > 3 else "")
        table.add_row(str(c.version), c.timestamp.isoformat(), c.actor, c.function, shown)

    Console().print(table)
    return 0
