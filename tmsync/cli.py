"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of TMSYNC, licensed under the MIT License.
See LICENSE file for details.
"""

"""
Command line interface.

Source system connections are configured through ``TMSYNC_<SOURCE>_*``
environment variables (``TMSYNC_JIRA_BASE_URL``, ``TMSYNC_SCALE_API_TOKEN``, ...),
the database through ``TMSYNC_DB_*`` and the sync settings through
``TMSYNC_PARTITION_SIZE``, ``TMSYNC_WORKER_COUNT`` and friends. Options given on
the command line take precedence.
"""

import logging
import signal
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from tmsync import __version__
from tmsync.core.config import (
    DatabaseConfig,
    SourceConfig,
    SyncConfig,
    get_app_config,
    init_app_config,
)
from tmsync.core.db_manager import CanonicalStore
from tmsync.identity_cache import IdentityCache
from tmsync.jira_client import JiraClient
from tmsync.scale_client import ScaleClient
from tmsync.secrets import EnvSecretsProvider
from tmsync.sync_orchestrator import (
    JiraSynchronizer,
    ScaleSynchronizer,
    Synchronizer,
    SyncReport,
    ZapiSynchronizer,
)
from tmsync.zapi_client import ZapiClient

console = Console()

app = typer.Typer(help="TMSYNC - Test Management Sync")
sync_app = typer.Typer(help="Synchronize a source system into the canonical store")
app.add_typer(sync_app, name="sync")

logger = logging.getLogger("tmsync.cli")


@app.callback()
def callback(
    debug: bool = typer.Option(False, "--debug", help="Enable debug mode with verbose logging"),
    version: bool = typer.Option(False, "--version", help="Show the application version and exit"),
):
    """
    TMSYNC - Reconcile Jira, Zephyr Scale and ZAPI data into one canonical store.

    Use --debug to enable verbose logging.
    """
    if version:
        console.print(f"TMSYNC version: {__version__}")
        raise typer.Exit()

    config = init_app_config(debug=debug or None)
    config.configure_logging()


def _database_config(db_path: Path | None) -> DatabaseConfig:
    database = get_app_config().database
    if db_path is not None:
        return database.model_copy(update={"db_type": "sqlite", "db_path": str(db_path)})
    return database


def _sync_config(partition_size: int | None, workers: int | None, **updates) -> SyncConfig:
    overrides = {
        "partition_size": partition_size,
        "worker_count": workers,
        **updates,
    }
    values = {key: value for key, value in overrides.items() if value}
    return SyncConfig.model_validate(get_app_config().sync.model_dump() | values)


def _source_config(name: str) -> SourceConfig:
    try:
        return SourceConfig.from_env(name, secrets=EnvSecretsProvider())
    except ValueError as e:
        console.print(
            f"Error: {name} connection is not configured (set TMSYNC_{name.upper()}_BASE_URL): {e}",
            style="red",
        )
        raise typer.Exit(code=1)


@contextmanager
def _cancel_on_interrupt(synchronizer: Synchronizer):
    """Turn Ctrl-C into a cancellation that lets staged partitions commit."""

    def handler(signum, frame):
        console.print("Cancelling; waiting for in-flight partitions to commit...", style="yellow")
        synchronizer.cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield synchronizer
    finally:
        signal.signal(signal.SIGINT, previous)


def _print_reports(reports: list[SyncReport]) -> None:
    table = Table(title="Synchronization Results")
    table.add_column("Source")
    table.add_column("Project")
    table.add_column("Units", justify="right")
    table.add_column("Fetched", justify="right")
    table.add_column("Merged", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Status")

    for report in reports:
        if report.succeeded:
            status = "[green]OK[/green]"
        elif report.cancelled and report.error is None:
            status = "[yellow]Cancelled[/yellow]"
        else:
            status = f"[red]Failed: {report.error}[/red]"
        table.add_row(
            report.source,
            report.project,
            str(report.units),
            str(report.fetched),
            str(report.merged),
            str(report.skipped),
            status,
        )
    console.print(table)

    for report in reports:
        if report.failed_partition is not None:
            console.print(
                f"{report.project}: partition {report.failed_partition} failed at key "
                f"{report.failing_key!r}; committed partitions: {report.committed_partitions}",
                style="red",
            )


def _print_error_summary(synchronizer: Synchronizer) -> None:
    if not synchronizer.error_tracker.has_errors():
        return
    summary = synchronizer.error_tracker.get_error_summary()
    types = ", ".join(f"{name} x{count}" for name, count in summary["error_types"].items())
    console.print(
        f"{summary['total_errors']} error(s) during synchronization: {types}", style="red"
    )
    last = summary["last_error"]
    message = f"Last error: {last['error_type']}: {last['message']}"
    console.print(message, style="red", markup=False)


def _finish(reports: list[SyncReport], store: CanonicalStore, synchronizer: Synchronizer) -> None:
    store.dispose()
    _print_reports(reports)
    _print_error_summary(synchronizer)
    if not all(report.succeeded for report in reports):
        raise typer.Exit(code=1)


@app.command("init-db")
def init_database(
    db_path: Path | None = typer.Option(None, help="Path to the SQLite database file"),
    drop_existing: bool = typer.Option(False, help="Drop existing tables before initializing"),
):
    """
    Create or upgrade the canonical schema using the bundled migrations.
    """
    try:
        store = CanonicalStore(_database_config(db_path))
        if drop_existing:
            console.print("Dropping existing database tables...", style="yellow")
            store.drop_all_tables()
        console.print("Applying database migrations...")
        store.migrate()
        store.dispose()
        console.print("Database schema initialized successfully", style="green")
    except Exception as e:
        console.print(f"Error initializing database: {e}", style="red")
        logger.exception("Error during database initialization")
        raise typer.Exit(code=1)


@app.command("stats")
def database_stats(
    db_path: Path | None = typer.Option(None, help="Path to the SQLite database file"),
):
    """
    Show the number of rows of every canonical table.
    """
    try:
        store = CanonicalStore(_database_config(db_path))
        counts = store.row_counts()
        store.dispose()
    except Exception as e:
        console.print(f"Error reading database statistics: {e}", style="red")
        raise typer.Exit(code=1)

    table = Table(title="Canonical Store")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)


@sync_app.command("scale")
def sync_scale(
    projects: list[str] = typer.Argument(..., help="Jira project keys of the Scale projects"),
    folder: list[str] = typer.Option(
        [], "--folder", help="Test case folder to synchronize (repeatable; default all)"
    ),
    run_folder: list[str] = typer.Option(
        [], "--run-folder", help="Test run folder to synchronize (repeatable; default all)"
    ),
    db_path: Path | None = typer.Option(None, help="Path to the SQLite database file"),
    partition_size: int | None = typer.Option(None, help="Merges committed per transaction"),
    workers: int | None = typer.Option(None, help="Sync units processed in parallel"),
):
    """
    Synchronize Zephyr Scale test cases, test runs and executions.
    """
    config = _sync_config(
        partition_size,
        workers,
        scale_test_case_folders=folder,
        scale_test_run_folders=run_folder,
    )
    scale = ScaleClient(_source_config("scale"))
    jira = JiraClient(_source_config("jira"))
    store = CanonicalStore(_database_config(db_path))
    synchronizer = ScaleSynchronizer(scale, jira, store, config, IdentityCache(store))

    with _cancel_on_interrupt(synchronizer):
        reports = [synchronizer.synchronize(project) for project in projects]
    _finish(reports, store, synchronizer)


@sync_app.command("zapi")
def sync_zapi(
    projects: list[str] = typer.Argument(..., help="ZAPI project names"),
    db_path: Path | None = typer.Option(None, help="Path to the SQLite database file"),
    partition_size: int | None = typer.Option(None, help="Merges committed per transaction"),
    workers: int | None = typer.Option(None, help="Sync units processed in parallel"),
):
    """
    Synchronize ZAPI cycles and executions; items must come from a Jira sync first.
    """
    config = _sync_config(partition_size, workers)
    zapi = ZapiClient(_source_config("zapi"))
    store = CanonicalStore(_database_config(db_path))
    synchronizer = ZapiSynchronizer(zapi, store, config, IdentityCache(store))

    with _cancel_on_interrupt(synchronizer):
        reports = [synchronizer.synchronize(project) for project in projects]
    _finish(reports, store, synchronizer)


@sync_app.command("jira")
def sync_jira(
    projects: list[str] = typer.Argument(..., help="Jira project keys"),
    issue_type: list[str] = typer.Option(
        [], "--issue-type", help="Issue type to synchronize (repeatable)"
    ),
    db_path: Path | None = typer.Option(None, help="Path to the SQLite database file"),
    partition_size: int | None = typer.Option(None, help="Merges committed per transaction"),
    workers: int | None = typer.Option(None, help="Sync units processed in parallel"),
):
    """
    Synchronize Jira issues as items.
    """
    config = _sync_config(partition_size, workers, jira_issue_types=issue_type)
    jira = JiraClient(_source_config("jira"))
    store = CanonicalStore(_database_config(db_path))
    synchronizer = JiraSynchronizer(jira, store, config, IdentityCache(store))

    with _cancel_on_interrupt(synchronizer):
        reports = [synchronizer.synchronize(project) for project in projects]
    _finish(reports, store, synchronizer)


if __name__ == "__main__":
    app()
