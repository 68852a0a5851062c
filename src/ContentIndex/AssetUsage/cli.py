# === NAVMAP v1 ===
# {
#   "module": "ContentIndex.AssetUsage.cli",
#   "purpose": "Operator CLI for reconciling, listing, and pruning asset usages",
#   "sections": [
#     {"id": "setup", "name": "Setup & Helpers", "anchor": "IMP", "kind": "infra"},
#     {"id": "commands", "name": "CLI Commands", "anchor": "CMDS", "kind": "commands"}
#   ]
# }
# === /NAVMAP ===

"""Asset usage CLI.

Commands:
    update      reconcile the usage store against a content snapshot
    find-all    list every stored usage
    usages      list the usages of one asset
    unregister  remove a single usage record
    migrate     apply pending store migrations
"""

from __future__ import annotations

import contextlib
import json
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from .cancellation import CancellationToken
from .errors import AssetUsageError, ConfigurationError
from .instrumentation import emit_cli_command_begin, emit_cli_command_error, emit_cli_command_success
from .logging_utils import generate_correlation_id, setup_logging
from .observability.emitters import initialize_events
from .observability.events import flush_events
from .reconcile import ReconcileReport, Reconciler
from .references import UsageReferences
from .settings import AssetUsageSettings, LoggingConfiguration, get_settings
from .snapshot import load_snapshot
from .store.base import UsageRecord
from .store.duckdb_store import DuckDBUsageStore

# ============================================================================
# SETUP (IMP)
# ============================================================================

app = typer.Typer(help="Asset usage index maintenance", no_args_is_help=True)
logger = logging.getLogger(__name__)

_USAGE_HEADERS = ("UsageId", "AssetId", "NodeIdentifier", "Dimensions", "Workspace", "NodeType")
_FORMATS = ("table", "json")


class _State:
    settings: Optional[AssetUsageSettings] = None
    db_path: Optional[Path] = None
    run_id: Optional[str] = None


_state = _State()


def _console() -> Console:
    return Console(soft_wrap=True)


def _settings() -> AssetUsageSettings:
    return _state.settings or get_settings()


def _open_store(apply_migrations: bool = True) -> DuckDBUsageStore:
    settings = _settings()
    config = settings.database.model_copy(update={"db_path": _state.db_path or settings.resolved_db_path()})
    store = DuckDBUsageStore(config)
    store.bootstrap(apply_migrations=apply_migrations)
    return store


def _check_format(fmt: str) -> None:
    if fmt not in _FORMATS:
        raise typer.BadParameter(f"Unknown format '{fmt}'; expected one of {', '.join(_FORMATS)}")


def _na(value: Optional[str]) -> str:
    return value if value else "n/a"


def _print_table(title: str, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
    table = Table(title=title)
    for header in headers:
        table.add_column(header, overflow="fold")
    for row in rows:
        table.add_row(*(escape(cell) for cell in row))
    _console().print(table)


def _record_rows(records: Sequence[UsageRecord]) -> List[List[str]]:
    return [
        [
            record.usage_key,
            record.asset_id,
            _na(record.metadata.node_identifier),
            _na(record.metadata.dimensions_json),
            _na(record.metadata.workspace_name),
            _na(record.metadata.node_type_name),
        ]
        for record in records
    ]


@contextlib.contextmanager
def _cancel_on_interrupt(token: CancellationToken) -> Iterator[None]:
    """Turn the first Ctrl+C into a cooperative cancellation."""

    def _handler(signum: int, frame: Any) -> None:
        typer.echo("Cancelling after the current node...", err=True)
        token.cancel()

    try:
        previous = signal.signal(signal.SIGINT, _handler)
    except ValueError:
        # Not the main thread; leave signal handling alone.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


@contextlib.contextmanager
def _command(
    name: str, args: Optional[Dict[str, Any]] = None, fmt: str = "table"
) -> Iterator[Dict[str, Any]]:
    """Emit begin/success/error events around a command and map failures to exit code 1.

    JSON output owns stdout, so the stdout event sink moves to stderr for it.
    """

    initialize_events(
        _settings().events,
        run_id=_state.run_id,
        stdout_stream=sys.stderr if fmt == "json" else None,
    )
    start_time = emit_cli_command_begin(name, args)
    summary: Dict[str, Any] = {}
    try:
        yield summary
    except AssetUsageError as exc:
        emit_cli_command_error(name, (time.time() - start_time) * 1000, exc)
        logger.error("%s failed: %s", name, exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    else:
        emit_cli_command_success(name, (time.time() - start_time) * 1000, summary)
    finally:
        flush_events()


@app.callback()
def main(
    db: Optional[Path] = typer.Option(None, "--db", help="DuckDB usage store path"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
) -> None:
    """Configure logging, events, and the store location shared by all commands."""

    try:
        settings = get_settings()
        if log_level:
            logging_config = LoggingConfiguration(**{**settings.logging.model_dump(), "level": log_level})
            settings = settings.model_copy(update={"logging": logging_config})
    except ValidationError as exc:
        typer.echo(f"Error: invalid --log-level {log_level!r}", err=True)
        raise typer.Exit(1) from exc
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    _state.settings = settings
    _state.db_path = db
    setup_logging(
        level=settings.logging.level,
        retention_days=settings.logging.retention_days,
        max_log_size_mb=settings.logging.max_log_size_mb,
        log_dir=settings.logging.log_dir,
    )
    _state.run_id = generate_correlation_id()


# ============================================================================
# CLI COMMANDS (CMDS)
# ============================================================================


def _print_report(report: ReconcileReport) -> None:
    console = _console()
    if report.dry_run:
        console.print("[yellow]DRY-RUN MODE: No changes were made[/yellow]")
    if report.cancelled:
        console.print(
            f"[yellow]Cancelled after {report.processed_nodes}/{report.total_nodes} nodes; "
            "nothing was removed[/yellow]"
        )

    def rows(items):
        return [
            [
                row.usage_key,
                row.asset_id,
                _na(row.node_identifier),
                _na(row.dimensions),
                _na(row.workspace),
                _na(row.node_type),
            ]
            for row in items
        ]

    if report.added:
        _print_table("Added usages", _USAGE_HEADERS, rows(report.added))
    else:
        console.print("No usages were added")
    if report.removed:
        _print_table("Removed usages", _USAGE_HEADERS, rows(report.removed))
    elif not report.cancelled:
        console.print("No usages were removed")
    if report.errors:
        console.print(
            "[red]Some asset reference errors occurred. Please check the asset references.[/red]"
        )
        _print_table(
            "Errors",
            ("NodeIdentifier", "Property", "Message"),
            [[e.node_identifier, e.property_name, e.message] for e in report.errors],
        )
    console.print(f"Added {len(report.added)} usages. Removed {len(report.removed)} usages.")


@app.command()
def update(
    snapshot: Path = typer.Argument(..., help="Content snapshot (.json, .yaml or .yml)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report the diff without writing"),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 2 when reference errors occur"),
    fmt: str = typer.Option("table", "--format", help="Output format: 'json' or 'table'"),
) -> None:
    """Rebuild the usage index from a content snapshot."""

    _check_format(fmt)
    with _command("update", {"snapshot": str(snapshot), "dry_run": dry_run}, fmt) as summary:
        content = load_snapshot(snapshot)
        token = CancellationToken()
        store = _open_store()
        try:
            reconciler = Reconciler(store, content, config=_settings().reconcile)
            with _cancel_on_interrupt(token), Progress(
                TextColumn("Updating asset usage index"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=Console(stderr=True),
                transient=True,
                disable=fmt == "json",
            ) as progress:
                task = progress.add_task("reconcile", total=content.count())
                report = reconciler.run(
                    dry_run=dry_run,
                    progress=lambda done, total: progress.update(task, completed=done),
                    cancellation=token,
                )
        finally:
            store.close()
        summary.update(
            {"added": len(report.added), "removed": len(report.removed), "errors": len(report.errors)}
        )

    if fmt == "json":
        typer.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        _print_report(report)
    if strict and report.errors:
        raise typer.Exit(2)


@app.command("find-all")
def find_all(
    fmt: str = typer.Option("table", "--format", help="Output format: 'json' or 'table'"),
) -> None:
    """List every stored usage."""

    _check_format(fmt)
    with _command("find-all", fmt=fmt) as summary:
        store = _open_store()
        try:
            records = store.list_all()
        finally:
            store.close()
        summary["count"] = len(records)

    if fmt == "json":
        typer.echo(json.dumps([record.to_dict() for record in records], indent=2))
    elif records:
        _print_table("Asset usages", _USAGE_HEADERS, _record_rows(records))
    else:
        typer.echo("No usages found")


@app.command()
def usages(
    asset_id: str = typer.Argument(..., help="Asset identifier"),
    fmt: str = typer.Option("table", "--format", help="Output format: 'json' or 'table'"),
) -> None:
    """List where one asset is used."""

    _check_format(fmt)
    with _command("usages", {"asset_id": asset_id}, fmt) as summary:
        store = _open_store()
        try:
            references = UsageReferences(store).get_usage_references(asset_id)
        finally:
            store.close()
        summary["count"] = len(references)

    if fmt == "json":
        typer.echo(json.dumps([reference.to_dict() for reference in references], indent=2))
        return
    if not references:
        typer.echo(f"Asset {asset_id} is not in use")
        return
    _print_table(
        f"Usages of {asset_id}",
        ("NodeIdentifier", "Workspace", "Dimensions", "NodeType"),
        [
            [
                _na(reference.node_identifier),
                _na(reference.workspace_name),
                json.dumps(reference.dimensions, sort_keys=True),
                _na(reference.node_type_name),
            ]
            for reference in references
        ],
    )


@app.command()
def unregister(
    usage_key: str = typer.Argument(..., help="Usage key of the record"),
    asset_id: str = typer.Argument(..., help="Asset identifier of the record"),
) -> None:
    """Remove a single usage record; nothing happens when either argument is empty."""

    if not usage_key or not asset_id:
        typer.echo("Nothing to unregister")
        return
    with _command("unregister", {"usage_key": usage_key, "asset_id": asset_id}) as summary:
        store = _open_store()
        try:
            existed = store.exists(usage_key, asset_id)
            store.unregister(usage_key, asset_id)
        finally:
            store.close()
        summary["existed"] = existed
    typer.echo(f"Unregistered usage {usage_key} of {asset_id}" if existed else "No such usage")


@app.command()
def migrate(
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be applied without applying"),
) -> None:
    """Apply pending usage store migrations."""

    with _command("migrate", {"dry_run": dry_run}) as summary:
        store = _open_store(apply_migrations=False)
        try:
            results = store.migrate(dry_run=dry_run)
            version = store.schema_version()
        finally:
            store.close()
        summary.update({"applied": len(results), "schema_version": version})

    if not results:
        typer.echo(f"All migrations already applied (schema version {version})")
        return
    prefix = "DRY RUN: would apply" if dry_run else "Applied"
    for result in results:
        typer.echo(f"{prefix} {result.migration_name}")
