"""CLI entrypoint for herbtrace."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Callable

import click

from . import __version__
from .auth import CAPABILITIES, REGULATOR
from .errors import HerbTraceError, RuleViolation


def _run(ctx: click.Context, func: Callable[..., int], *args: Any, **kwargs: Any) -> None:
    """Call a run_* function and translate domain errors into click errors."""
    try:
        exit_code = func(*args, **kwargs)
    except RuleViolation as e:
        detail = "".join(f"\n  - {r}" for r in e.reasons if r != e.message)
        raise click.ClickException(f"{e.message}{detail}") from e
    except HerbTraceError as e:
        raise click.ClickException(f"{type(e).__name__}: {e.message}") from e
    sys.exit(exit_code)


@click.group()
@click.version_option(__version__, prog_name="herbtrace")
@click.option(
    "--ledger",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Ledger directory holding commits.jsonl (default: from config, else ./.herbtrace)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to herbtrace.toml (default: ./herbtrace.toml if present)",
)
@click.option(
    "--as",
    "capability",
    type=click.Choice(sorted(CAPABILITIES)),
    default=REGULATOR,
    show_default=True,
    help="Capability of the calling member",
)
@click.option("--member", default="cli", show_default=True, help="Calling member id")
@click.option("--verbose", is_flag=True, help="Log engine activity to stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    ledger: Path | None,
    config_path: Path | None,
    capability: str,
    member: str,
    verbose: bool,
) -> None:
    """herbtrace - batch compliance and provenance engine for herb supply chains.

    Every command runs against the append-only commit log in the ledger
    directory, as the member given by --as/--member.
    """
    from .auth import Identity
    from .config import CONFIG_FILENAME, load_settings
    from .dispatch import Engine
    from .ledger import WorldState

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    ctx.ensure_object(dict)
    if config_path is None:
        candidate = Path.cwd() / CONFIG_FILENAME
        config_path = candidate if candidate.exists() else None
    try:
        settings = load_settings(config_path)
        identity = Identity(member_id=member, capability=capability)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    ledger_dir = (ledger or settings.ledger_dir).resolve()
    ctx.obj["settings"] = settings
    ctx.obj["identity"] = identity
    ctx.obj["engine"] = Engine(WorldState(ledger_dir), settings)


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Seed reference zones, quality standards and certified labs.

    Idempotent: entries already on the ledger are left untouched.
    Requires --as regulator.
    """
    from .commands.ledger_cmd import run_init

    _run(ctx, run_init, ctx.obj["engine"], ctx.obj["identity"])


@cli.command()
@click.argument("function", required=False)
@click.argument("args", nargs=-1)
@click.option("--at", "at", type=str, default=None, help="Transaction timestamp (ISO 8601, default: now)")
@click.option("--list", "list_ops", is_flag=True, help="List registered operations and exit")
@click.pass_context
def invoke(ctx: click.Context, function: str | None, args: tuple[str, ...], at: str | None, list_ops: bool) -> None:
    """Run one operation and print its JSON result.

    Object arguments are passed as JSON text.

    Examples:

        herbtrace --as farmer --member FARM-01 invoke submitHarvest "$(cat event.json)"

        herbtrace invoke getRecord BATCH-001
    """
    from .commands.ledger_cmd import run_invoke, run_operations
    from .schema import parse_datetime

    if list_ops:
        sys.exit(run_operations())
    if function is None:
        raise click.UsageError("Missing argument 'FUNCTION'.")

    try:
        timestamp = parse_datetime(at, "--at") if at else None
    except HerbTraceError as e:
        raise click.BadParameter(e.message, param_hint="--at") from e

    _run(ctx, run_invoke, ctx.obj["engine"], ctx.obj["identity"], function, args, timestamp=timestamp)


@cli.group()
def batch() -> None:
    """Inspect provenance records."""
    pass


@batch.command("show")
@click.argument("batch_id")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def batch_show(ctx: click.Context, batch_id: str, output_json: bool) -> None:
    """Show a batch with its timeline and completion score."""
    from .commands.batch_cmd import run_batch_show

    _run(ctx, run_batch_show, ctx.obj["engine"], ctx.obj["identity"], batch_id, output_json=output_json)


@batch.command("list")
@click.option("--status", type=str, default=None, help="Filter by current status (e.g. Tested-Pass)")
@click.option("--farmer", "farmer_id", type=str, default=None, help="Filter by farmer id")
@click.pass_context
def batch_list(ctx: click.Context, status: str | None, farmer_id: str | None) -> None:
    """List batches by status or by farmer."""
    from .commands.batch_cmd import run_batch_list

    _run(ctx, run_batch_list, ctx.obj["engine"], ctx.obj["identity"], status=status, farmer_id=farmer_id)


@cli.command()
@click.argument("year")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def quota(ctx: click.Context, year: str, output_json: bool) -> None:
    """Show quota utilisation for YEAR."""
    from .commands.batch_cmd import run_quota

    _run(ctx, run_quota, ctx.obj["engine"], ctx.obj["identity"], year, output_json=output_json)


@cli.command()
@click.argument("test_id")
@click.pass_context
def verify(ctx: click.Context, test_id: str) -> None:
    """Check a stored test record against its content hash. Exits 1 on mismatch."""
    from .commands.batch_cmd import run_verify

    _run(ctx, run_verify, ctx.obj["engine"], ctx.obj["identity"], test_id)


@cli.command()
@click.option("--limit", type=int, default=20, show_default=True, help="Max commits to show (0 for all)")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def log(ctx: click.Context, limit: int, output_json: bool) -> None:
    """Show the tail of the commit log."""
    from .commands.ledger_cmd import run_log

    _run(ctx, run_log, ctx.obj["engine"].state, limit=limit, output_json=output_json)


if __name__ == "__main__":
    cli()
