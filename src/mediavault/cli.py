"""Command line interface for mediavault."""

from __future__ import annotations

import difflib
from concurrent.futures import wait
from copy import deepcopy
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from mediavault.config import (
    ConfigError,
    ConfigManager,
    VaultConfig,
    assign_nested,
    resolve_with_precedence,
)
from mediavault.errors import (
    ArchiveRootError,
    MetadataIndexError,
    RecordNotFoundError,
    WatchRootError,
)
from mediavault.index import FileRecord, SqliteMetadataIndex
from mediavault.ingestion import (
    BackupWriter,
    FFProbe,
    IngestionCoordinator,
    IngestionOutcome,
    IngestionStatus,
    MetadataExtractor,
)
from mediavault.logconfig import configure_logging
from mediavault.watch import DirectoryWatchSource

console = Console()

_STATUS_STYLES = {
    IngestionStatus.ARCHIVED: "green",
    IngestionStatus.DUPLICATE: "yellow",
    IngestionStatus.UNSUPPORTED: "dim",
    IngestionStatus.FAILED: "red",
}


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool = False,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """
    if json_output:
        console.print_json(data={"error": {"code": code, "message": message}})
        raise SystemExit(1)
    raise click.ClickException(message) from original


def _load_config(cli_overrides: Mapping[str, Any] | None = None) -> VaultConfig:
    """Load configuration, apply CLI overrides, and configure logging."""
    try:
        manager = ConfigManager()
        manager.ensure_exists()
        config = manager.load(cli_overrides=cli_overrides)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    configure_logging(config.logging)
    return config


def _collect_overrides(pairs: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    return {key: value for key, value in pairs if value is not None}


def _open_pipeline(config: VaultConfig) -> tuple[IngestionCoordinator, SqliteMetadataIndex]:
    """Build the writer, index, extractor, and coordinator from configuration.

    Raises:
        click.ClickException: If the archive root or index cannot be prepared.
    """
    writer = BackupWriter(Path(config.paths.archive_dir))
    try:
        writer.prepare()
        index = SqliteMetadataIndex(config.paths.index_path)
    except (ArchiveRootError, MetadataIndexError) as exc:
        raise click.ClickException(str(exc)) from exc

    extractor = MetadataExtractor(
        prober=FFProbe(
            config.ingestion.ffprobe_binary,
            timeout=config.ingestion.probe_timeout_seconds,
        )
    )
    coordinator = IngestionCoordinator(
        extractor,
        writer,
        index,
        max_workers=config.ingestion.max_workers,
    )
    return coordinator, index


def _outcome_payload(outcome: IngestionOutcome) -> dict[str, Any]:
    return {
        "path": outcome.path.as_posix(),
        "status": outcome.status.value,
        "backup_path": outcome.record.backup_path if outcome.record else None,
        "record_id": outcome.record_id,
        "error": outcome.error,
        "notes": list(outcome.notes),
    }


def _records_table(records: list[FileRecord]) -> Table:
    table = Table(title="Indexed files")
    table.add_column("ID", justify="right")
    table.add_column("Created")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Backup path")
    for record in records:
        table.add_row(
            str(record.id),
            record.created_at.isoformat(),
            record.file_type,
            record.original_name,
            record.backup_path,
        )
    return table


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="mediavault")
def cli() -> None:
    """mediavault archives incoming photos and recordings by their creation date."""


@cli.command()
@click.option(
    "--watch-dir",
    type=click.Path(file_okay=False, path_type=str),
    help="Directory to monitor for new files.",
)
@click.option(
    "--archive-dir",
    type=click.Path(file_okay=False, path_type=str),
    help="Root of the date-partitioned archive.",
)
@click.option(
    "--index",
    "index_path",
    type=click.Path(dir_okay=False, path_type=str),
    help="Metadata index database.",
)
@click.option(
    "--workers", type=click.IntRange(min=1), help="Number of concurrent ingestion workers."
)
@click.option(
    "--stability-ms",
    type=click.IntRange(min=0),
    help="Milliseconds a file's size must stay unchanged before ingestion.",
)
@click.option(
    "--create-missing/--no-create-missing",
    default=None,
    help="Create the watch directory when it does not exist.",
)
def watch(
    watch_dir: str | None,
    archive_dir: str | None,
    index_path: str | None,
    workers: int | None,
    stability_ms: int | None,
    create_missing: bool | None,
) -> None:
    """Watch a directory and archive every supported file that arrives.

    Args:
        watch_dir: Optional override for the watched directory.
        archive_dir: Optional override for the archive root.
        index_path: Optional override for the index database path.
        workers: Optional worker pool size.
        stability_ms: Optional write-stability quiet period.
        create_missing: Optional override for creating a missing watch root.

    Raises:
        click.ClickException: If the watch root, archive root, or index is unusable.
    """
    config = _load_config(
        _collect_overrides(
            [
                ("paths.watch_dir", watch_dir),
                ("paths.archive_dir", archive_dir),
                ("paths.index_path", index_path),
                ("ingestion.max_workers", workers),
                ("watch.stability_threshold_ms", stability_ms),
                ("watch.create_missing", create_missing),
            ]
        )
    )

    try:
        source = DirectoryWatchSource.from_settings(Path(config.paths.watch_dir), config.watch)
    except WatchRootError as exc:
        _handle_cli_error(str(exc), code="watch_root_error", original=exc)
        return

    coordinator, index = _open_pipeline(config)
    console.print(
        f"[cyan]Watching {source.root}; archiving into "
        f"{coordinator.writer.archive_root}. Press Ctrl+C to stop.[/cyan]"
    )
    try:
        coordinator.run(source.events())
    except KeyboardInterrupt:
        source.stop()
        console.print("[yellow]Watch stopped by user request.[/yellow]")
    except WatchRootError as exc:
        _handle_cli_error(str(exc), code="watch_root_error", original=exc)
    finally:
        coordinator.close()
        index.close()


@cli.command()
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--archive-dir",
    type=click.Path(file_okay=False, path_type=str),
    help="Root of the date-partitioned archive.",
)
@click.option(
    "--index",
    "index_path",
    type=click.Path(dir_okay=False, path_type=str),
    help="Metadata index database.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing each outcome.")
def ingest(
    files: tuple[Path, ...],
    archive_dir: str | None,
    index_path: str | None,
    json_output: bool,
) -> None:
    """Archive FILES immediately, without watching a directory.

    Args:
        files: Files to ingest.
        archive_dir: Optional override for the archive root.
        index_path: Optional override for the index database path.
        json_output: When True, emit JSON instead of a table.
    """
    config = _load_config(
        _collect_overrides([("paths.archive_dir", archive_dir), ("paths.index_path", index_path)])
    )
    coordinator, index = _open_pipeline(config)
    try:
        futures = [coordinator.submit(path.expanduser().resolve()) for path in files]
        wait(futures)
        outcomes = [future.result() for future in futures]
    finally:
        coordinator.close()
        index.close()

    if json_output:
        console.print_json(data={"outcomes": [_outcome_payload(outcome) for outcome in outcomes]})
        return

    table = Table(title="Ingestion results")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Backup path")
    table.add_column("Details")
    for outcome in outcomes:
        style = _STATUS_STYLES[outcome.status]
        details = outcome.error or "; ".join(outcome.notes)
        table.add_row(
            outcome.path.name,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.record.backup_path if outcome.record else "",
            details,
        )
    console.print(table)

    counts = {status.value: 0 for status in IngestionStatus}
    for outcome in outcomes:
        counts[outcome.status.value] += 1
    parts = ", ".join(f"{key}={value}" for key, value in counts.items())
    console.print(f"[green]Ingest summary: {parts}.[/green]")


@cli.command()
@click.option(
    "--date", "day", type=click.DateTime(formats=["%Y-%m-%d"]), help="Single creation date."
)
@click.option("--start", type=click.DateTime(formats=["%Y-%m-%d"]), help="Start of a date range.")
@click.option("--end", type=click.DateTime(formats=["%Y-%m-%d"]), help="End of a date range.")
@click.option("--type", "types", multiple=True, help="Restrict a date range to these file types.")
@click.option("--id", "record_id", type=int, help="Show a single record by identifier.")
@click.option(
    "--index",
    "index_path",
    type=click.Path(dir_okay=False, path_type=str),
    help="Metadata index database.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit records as JSON.")
def files(
    day: datetime | None,
    start: datetime | None,
    end: datetime | None,
    types: tuple[str, ...],
    record_id: int | None,
    index_path: str | None,
    json_output: bool,
) -> None:
    """List indexed files by creation date, date range, or identifier.

    Args:
        day: Creation date to list.
        start: First date of a range.
        end: Last date of a range.
        types: File types to include when listing a range.
        record_id: Identifier of a single record.
        index_path: Optional override for the index database path.
        json_output: When True, emit JSON instead of a table.

    Raises:
        click.ClickException: If the selection options are incomplete.
    """
    if record_id is None and day is None and (start is None or end is None):
        raise click.ClickException("Provide --date, both --start and --end, or --id.")
    if types and (start is None or end is None):
        raise click.ClickException("--type requires --start and --end.")

    config = _load_config(_collect_overrides([("paths.index_path", index_path)]))
    try:
        index = SqliteMetadataIndex(config.paths.index_path)
    except MetadataIndexError as exc:
        _handle_cli_error(str(exc), code="index_error", json_output=json_output, original=exc)
        return

    try:
        records = _query(index, day=day, start=start, end=end, types=types, record_id=record_id)
    except RecordNotFoundError as exc:
        _handle_cli_error(str(exc), code="not_found", json_output=json_output, original=exc)
        return
    except MetadataIndexError as exc:
        _handle_cli_error(str(exc), code="index_error", json_output=json_output, original=exc)
        return
    finally:
        index.close()

    if json_output:
        console.print_json(data={"files": [record.model_dump(mode="json") for record in records]})
        return
    if not records:
        console.print("[yellow]No files matched the query.[/yellow]")
        return
    console.print(_records_table(records))


def _query(
    index: SqliteMetadataIndex,
    *,
    day: datetime | None,
    start: datetime | None,
    end: datetime | None,
    types: tuple[str, ...],
    record_id: int | None,
) -> list[FileRecord]:
    if record_id is not None:
        return [index.query_by_id(record_id)]
    if day is not None:
        return index.query_by_date(day.date())
    if start is None or end is None:
        raise click.ClickException("Provide --date, both --start and --end, or --id.")
    if types:
        return index.query_by_date_range_and_types(start.date(), end.date(), types)
    return index.query_by_date_range(start.date(), end.date())


@cli.group()
def config() -> None:
    """Manage mediavault configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Args:
        no_env: If True, ignore environment-derived overrides.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        file_data = manager.load_file_overrides()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    before = manager.read_text().splitlines()
    original_data = deepcopy(file_data)
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'watch.recursive'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=VaultConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if file_data == original_data:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
