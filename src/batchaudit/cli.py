# src/batchaudit/cli.py
"""batchaudit Command Line Interface.

Entry point for the batchaudit CLI tool. Shell-driven pipeline steps record
checkpoints with `batchaudit record`; operators inspect runs with `trail`,
`reconcile` and `stats`.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, overload

import typer
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from batchaudit import __version__
from batchaudit.contracts import (
    AuditConfigurationError,
    AuditError,
    AuditEvent,
    AuditStatus,
    AuditValidationError,
    CheckpointStage,
    ReportDetail,
    classify_failure,
    exit_code_for,
)
from batchaudit.core.canonical import details_to_json
from batchaudit.core.config import BatchAuditSettings, load_settings

__all__ = [
    "app",
]

app = typer.Typer(
    name="batchaudit",
    help="batchaudit: Correlated audit trail and reconciliation for batch pipelines.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"batchaudit version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file without overriding existing ones.

    Raises:
        typer.Exit: If an explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)
    return load_dotenv(override=False)


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose/debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Output structured JSON logs."),
) -> None:
    """batchaudit: Correlated audit trail and reconciliation for batch pipelines."""
    from batchaudit.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")
    ctx.obj = {"verbose": verbose, "json_logs": json_logs}

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


def _fail(error: BaseException) -> typer.Exit:
    """Report a failure on stderr and build the matching exit."""
    response = classify_failure(error)
    payload: dict[str, Any] = {"error": response.error_code, "category": response.category.value, "message": response.message}
    if response.retry_after_seconds is not None:
        payload["retry_after_seconds"] = response.retry_after_seconds
    typer.echo(json.dumps(payload), err=True)
    return typer.Exit(exit_code_for(response.category))


def _settings(ctx: typer.Context, settings_path: str | None) -> BatchAuditSettings:
    from batchaudit.core.logging import configure_logging

    try:
        settings = load_settings(Path(settings_path) if settings_path else None)
    except FileNotFoundError as e:
        raise AuditConfigurationError(str(e), configuration_key="settings", configuration_value=settings_path) from e
    except ValidationError as e:
        raise AuditConfigurationError(f"Invalid settings: {e}", configuration_key="settings", configuration_value=settings_path) from e
    options = ctx.obj or {}
    if not options.get("verbose"):
        configure_logging(json_output=options.get("json_logs", False) or settings.logging.json_output, level=settings.logging.level)
    return settings


@overload
def _parse_timestamp(value: str, option: str) -> datetime: ...


@overload
def _parse_timestamp(value: None, option: str) -> None: ...


def _parse_timestamp(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise AuditValidationError(f"{option} must be an ISO-8601 timestamp", field_name=option, invalid_value=value) from e


def _parse_details(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        payload = json.loads(value)
    except json.JSONDecodeError as e:
        raise AuditValidationError(f"--details is not valid JSON: {e.msg}", field_name="details", invalid_value=value) from e
    if not isinstance(payload, dict):
        raise AuditValidationError("--details must be a JSON object", field_name="details", invalid_value=value)
    return details_to_json(payload)


_CLI_ERRORS = (AuditError, SQLAlchemyError)

_SETTINGS_OPTION = typer.Option(None, "--settings", "-s", help="Path to settings YAML file.")
_DATABASE_OPTION = typer.Option(None, "--database", "-d", help="SQLAlchemy database URL (overrides settings).")


@app.command()
def record(
    ctx: typer.Context,
    stage: CheckpointStage = typer.Option(..., "--stage", help="Checkpoint stage of this event."),
    correlation_id: str = typer.Option(..., "--correlation-id", "-c", help="Correlation id of the pipeline run."),
    source_system: str = typer.Option(..., "--source-system", help="Originating source system."),
    status: AuditStatus = typer.Option(..., "--status", help="Outcome of the checkpoint."),
    module_name: str | None = typer.Option(None, "--module", help="Module that produced the event."),
    process_name: str | None = typer.Option(None, "--process", help="Process or job name."),
    source_entity: str | None = typer.Option(None, "--source-entity", help="Input entity (file, table)."),
    destination_entity: str | None = typer.Option(None, "--destination-entity", help="Output entity (file, table)."),
    key_identifier: str | None = typer.Option(None, "--key", help="Business key of the unit of work."),
    message: str | None = typer.Option(None, "--message", "-m", help="Message (synthesized when omitted)."),
    details: str | None = typer.Option(None, "--details", help="Details payload as a JSON object."),
    timestamp: str | None = typer.Option(None, "--timestamp", help="Event time (ISO-8601) for replayed events."),
    settings: str | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
) -> None:
    """Record one checkpoint audit event and print its audit id.

    Example:

        batchaudit record --stage RHEL_LANDING -c $RUN_ID --source-system GL --status SUCCESS --details '{"record_count": 1000}'
    """
    from batchaudit.engine.runtime import AuditRuntime

    try:
        resolved = _settings(ctx, settings)
        event = AuditEvent(
            correlation_id=correlation_id,
            source_system=source_system,
            checkpoint_stage=stage,
            status=status,
            module_name=module_name,
            process_name=process_name,
            source_entity=source_entity,
            destination_entity=destination_entity,
            key_identifier=key_identifier,
            message=message,
            details_json=_parse_details(details),
            event_timestamp=_parse_timestamp(timestamp, "timestamp"),
        )
        with AuditRuntime.open(resolved, database_url=database) as runtime:
            persisted = runtime.recorder.record(event)
    except _CLI_ERRORS as e:
        raise _fail(e) from None
    typer.echo(str(persisted.audit_id))


@app.command()
def trail(
    ctx: typer.Context,
    correlation_id: str = typer.Option(..., "--correlation-id", "-c", help="Correlation id of the pipeline run."),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON."),
    settings: str | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
) -> None:
    """Print the ordered audit trail of one pipeline run."""
    from batchaudit.core.correlation import parse_correlation_id
    from batchaudit.engine.runtime import AuditRuntime

    try:
        resolved = _settings(ctx, settings)
        run_id = parse_correlation_id(correlation_id)
        with AuditRuntime.open(resolved, database_url=database) as runtime:
            events = list(runtime.store.list_by_correlation_id(run_id))
    except _CLI_ERRORS as e:
        raise _fail(e) from None

    if json_output:
        typer.echo(json.dumps([event.to_dict() for event in events], indent=2))
        return
    if not events:
        typer.echo(f"No audit events for correlation id {run_id}")
        return
    for event in events:
        timestamp = event.event_timestamp.isoformat() if event.event_timestamp else "-"
        status = event.status.value if event.status else "-"
        typer.echo(f"{timestamp}  {event.checkpoint_stage.value:<18} {status:<8} {event.message or ''}")


@app.command()
def reconcile(
    ctx: typer.Context,
    correlation_id: str = typer.Option(..., "--correlation-id", "-c", help="Correlation id of the pipeline run."),
    detail: ReportDetail = typer.Option(ReportDetail.STANDARD, "--detail", help="Report variant."),
    settings: str | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
) -> None:
    """Reconcile one pipeline run and print the report as canonical JSON.

    Exit code is 0 whatever the report status; read overall_status.
    """
    from batchaudit.engine.reports import render_report
    from batchaudit.engine.runtime import AuditRuntime

    try:
        resolved = _settings(ctx, settings)
        with AuditRuntime.open(resolved, database_url=database) as runtime:
            report = runtime.reconciliation.reconcile(correlation_id)
    except _CLI_ERRORS as e:
        raise _fail(e) from None
    typer.echo(render_report(report, detail))


@app.command()
def stats(
    ctx: typer.Context,
    start: str = typer.Option(..., "--start", help="Period start (ISO-8601)."),
    end: str = typer.Option(..., "--end", help="Period end (ISO-8601)."),
    settings: str | None = _SETTINGS_OPTION,
    database: str | None = _DATABASE_OPTION,
) -> None:
    """Print event statistics for a period as JSON."""
    from batchaudit.engine.runtime import AuditRuntime

    try:
        resolved = _settings(ctx, settings)
        period_start = _parse_timestamp(start, "start")
        period_end = _parse_timestamp(end, "end")
        with AuditRuntime.open(resolved, database_url=database) as runtime:
            statistics = runtime.statistics.calculate(period_start, period_end)
    except _CLI_ERRORS as e:
        raise _fail(e) from None
    typer.echo(json.dumps(statistics.to_dict(), indent=2))
