"""Typer CLI entrypoint for structops."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Literal, cast

import typer

from apps.cli.format_human import render_execution_result, render_plan_summary
from apps.cli.io import (
    StructurePayload,
    load_replacements_file,
    load_structure_file,
    write_report_atomic,
)
from core.orchestrator.pipeline import (
    build_blank_resolver,
    create_folders_detailed,
    get_structure_creation_plan,
)
from core.structure.filesystem import LocalFileSystem
from core.structure.models import CreateFoldersExecutionResult
from core.structure.settings import EngineSettings, load_settings

app = typer.Typer(help="Structure Ops CLI", rich_markup_mode=None)
ReportMode = Literal["human", "json", "both"]

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2
EXIT_FAILED = 3


@app.callback()
def cli_callback(
    log_level: Annotated[
        str, typer.Option("--log-level", help="Engine log level (DEBUG, INFO, WARNING, ERROR).")
    ] = "WARNING",
) -> None:
    """Plan and build file/folder structures from parsed operation lists."""

    level = logging.getLevelName(log_level.upper().strip())
    logging.basicConfig(
        level=level if isinstance(level, int) else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )


@app.command("plan")
def plan_command(
    operations: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    base_dir: Annotated[str | None, typer.Option()] = None,
    replacements: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    settings: Annotated[Path | None, typer.Option()] = None,
    report: Annotated[str, typer.Option()] = "human",
) -> None:
    """Show what a build would do without touching the filesystem."""

    report_mode = _validate_report_mode(report)
    try:
        payload = _load_payload(operations, replacements)
        engine_settings = load_settings(settings)
        resolved_base_dir = _resolve_base_dir(base_dir, payload, engine_settings)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    fs = LocalFileSystem(include_hidden=engine_settings.include_hidden_entries)
    summary = get_structure_creation_plan(
        payload.operations,
        resolved_base_dir,
        payload.replacements,
        fs=fs,
        max_workers=engine_settings.plan_max_workers,
    )

    if report_mode in {"human", "both"}:
        typer.echo(render_plan_summary(summary))
    if report_mode in {"json", "both"}:
        typer.echo(_dump(summary.model_dump(mode="json", by_alias=True)))
    raise typer.Exit(code=EXIT_SUCCESS)


@app.command("create")
def create_command(
    operations: Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)],
    base_dir: Annotated[str | None, typer.Option()] = None,
    replacements: Annotated[
        Path | None, typer.Option(exists=True, dir_okay=False, file_okay=True)
    ] = None,
    settings: Annotated[Path | None, typer.Option()] = None,
    report: Annotated[str, typer.Option()] = "human",
    functional_blanks: Annotated[
        bool | None,
        typer.Option(
            "--functional-blanks/--no-functional-blanks",
            help="Override the create_functional_blank_files setting.",
        ),
    ] = None,
    no_overwrite: Annotated[
        bool,
        typer.Option("--no-overwrite", help="Fail when any target already exists."),
    ] = False,
    report_out: Annotated[
        Path | None,
        typer.Option("--report-out", help="Write the JSON execution report to this path."),
    ] = None,
) -> None:
    """Execute every operation in order and report completed/failed counts."""

    report_mode = _validate_report_mode(report)
    try:
        payload = _load_payload(operations, replacements)
        engine_settings = load_settings(settings)
        resolved_base_dir = _resolve_base_dir(base_dir, payload, engine_settings)
    except ValueError as exc:
        typer.echo(f"ERROR: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    fs = LocalFileSystem(include_hidden=engine_settings.include_hidden_entries)
    summary = get_structure_creation_plan(
        payload.operations,
        resolved_base_dir,
        payload.replacements,
        fs=fs,
        max_workers=engine_settings.plan_max_workers,
    )
    if report_mode in {"human", "both"}:
        typer.echo(render_plan_summary(summary))

    if summary.existing_targets:
        if no_overwrite:
            typer.echo("ERROR: targets already exist and --no-overwrite is enabled.")
            raise typer.Exit(code=EXIT_ERROR)
        typer.echo(f"WARNING: {summary.existing_target_count} target(s) already exist.")

    use_functional = (
        engine_settings.create_functional_blank_files
        if functional_blanks is None
        else functional_blanks
    )

    try:
        result = _execute(payload, resolved_base_dir, engine_settings, fs, use_functional)
    except Exception as exc:  # noqa: BLE001
        typer.echo(f"ERROR: {type(exc).__name__}: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    if report_mode in {"human", "both"}:
        typer.echo(render_execution_result(result))
    if report_mode in {"json", "both"}:
        typer.echo(_dump(result.model_dump(mode="json", by_alias=True)))

    exit_code = _exit_code_for(result)
    if report_out is not None:
        try:
            write_report_atomic(report_out, result.model_dump(mode="json", by_alias=True))
            typer.echo(f"INFO: wrote report to {report_out}")
        except OSError as exc:
            typer.echo(f"ERROR: write report failed: {exc}")
            exit_code = EXIT_ERROR

    if exit_code == EXIT_SUCCESS:
        typer.echo("INFO: success")
    elif exit_code == EXIT_PARTIAL:
        typer.echo(f"WARNING: partial success ({result.failure_count} failed)")
    elif exit_code == EXIT_FAILED:
        typer.echo("ERROR: all operations failed")

    raise typer.Exit(code=exit_code)


def _execute(
    payload: StructurePayload,
    base_dir: str,
    engine_settings: EngineSettings,
    fs: LocalFileSystem,
    use_functional: bool,
) -> CreateFoldersExecutionResult:
    if not use_functional:
        return create_folders_detailed(
            payload.operations,
            base_dir,
            payload.replacements,
            fs=fs,
            functional_blanks=False,
            max_workers=engine_settings.plan_max_workers,
        )

    with build_blank_resolver(engine_settings, fs) as resolver:
        return create_folders_detailed(
            payload.operations,
            base_dir,
            payload.replacements,
            fs=fs,
            blank_resolver=resolver,
            functional_blanks=True,
            max_workers=engine_settings.plan_max_workers,
        )


def _load_payload(operations: Path, replacements: Path | None) -> StructurePayload:
    payload = load_structure_file(operations)
    if replacements is None:
        return payload
    return StructurePayload(
        operations=payload.operations,
        replacements=load_replacements_file(replacements),
        base_dir=payload.base_dir,
    )


def _resolve_base_dir(
    option_value: str | None,
    payload: StructurePayload,
    engine_settings: EngineSettings,
) -> str:
    base_dir = option_value or payload.base_dir or engine_settings.resolved_default_base_dir
    if not base_dir:
        raise ValueError(
            "--base-dir is required when the operations file has no baseDir "
            "and no default_base_dir is configured"
        )
    return base_dir


def _validate_report_mode(report: str) -> ReportMode:
    normalized = report.lower().strip()
    if normalized not in {"human", "json", "both"}:
        typer.echo("ERROR: --report must be one of: human, json, both.")
        raise typer.Exit(code=EXIT_ERROR)
    return cast(ReportMode, normalized)


def _exit_code_for(result: CreateFoldersExecutionResult) -> int:
    if result.failure_count == 0:
        return EXIT_SUCCESS
    if result.completed_count > 0:
        return EXIT_PARTIAL
    return EXIT_FAILED


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def main() -> None:
    """Console script entrypoint."""

    app()


if __name__ == "__main__":
    main()
