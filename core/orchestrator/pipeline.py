"""Public entry points: plan, execute, and report a structure build."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from pydantic import TypeAdapter, ValidationError

from core.structure.blank_cache import CatalogCache
from core.structure.blank_files import BlankFileResolver
from core.structure.executor import StructureExecutor
from core.structure.filesystem import FileSystem, LocalFileSystem
from core.structure.models import (
    CreateFoldersExecutionResult,
    Replacement,
    StructureCreationSummary,
    StructureOperation,
)
from core.structure.planner import DEFAULT_PLAN_MAX_WORKERS, build_creation_summary
from core.structure.replacements import build_replacement_groups
from core.structure.report import build_execution_result, failure_message
from core.structure.settings import EngineSettings
from core.utils.errors import StructureCreationError

_OPERATIONS_ADAPTER: TypeAdapter[list[StructureOperation]] = TypeAdapter(
    list[StructureOperation]
)
_REPLACEMENTS_ADAPTER: TypeAdapter[list[Replacement]] = TypeAdapter(list[Replacement])


def load_operations(payload: Any) -> list[StructureOperation]:
    """Validate a raw operation list (as produced by the structure parser)."""

    if not isinstance(payload, list):
        raise ValueError("Operations payload must be a list")
    try:
        return _OPERATIONS_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid operations payload: {_describe_errors(exc)}") from exc


def load_replacements(payload: Any) -> list[Replacement]:
    """Validate a raw replacement rule list."""

    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ValueError("Replacements payload must be a list")
    try:
        return _REPLACEMENTS_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid replacements payload: {_describe_errors(exc)}") from exc


def get_structure_creation_plan(
    operations: Sequence[StructureOperation],
    base_dir: str,
    replacements: Iterable[Replacement] = (),
    *,
    fs: FileSystem | None = None,
    max_workers: int = DEFAULT_PLAN_MAX_WORKERS,
) -> StructureCreationSummary:
    """Summarize ``operations`` without touching the filesystem.

    ``base_dir`` and ``replacements`` are accepted for call symmetry with
    :func:`create_folders_detailed`; target paths are already resolved.
    """

    del base_dir, replacements
    return build_creation_summary(operations, fs or LocalFileSystem(), max_workers=max_workers)


def create_folders_detailed(
    operations: Sequence[StructureOperation],
    base_dir: str,
    replacements: Iterable[Replacement] = (),
    *,
    fs: FileSystem | None = None,
    blank_resolver: BlankFileResolver | None = None,
    functional_blanks: bool = True,
    max_workers: int = DEFAULT_PLAN_MAX_WORKERS,
) -> CreateFoldersExecutionResult:
    """Plan, then execute every operation in order, and report the outcome.

    Never raises for per-operation failures; inspect ``failures`` instead.
    """

    filesystem = fs or LocalFileSystem()
    groups = build_replacement_groups(replacements)
    summary = build_creation_summary(operations, filesystem, max_workers=max_workers)

    executor = StructureExecutor(
        filesystem,
        blank_resolver=blank_resolver,
        functional_blanks=functional_blanks,
    )
    tally = executor.execute(operations, groups)
    return build_execution_result(base_dir, summary, tally)


def create_folders(
    operations: Sequence[StructureOperation],
    base_dir: str,
    replacements: Iterable[Replacement] = (),
    **kwargs: Any,
) -> str:
    """Strict variant of :func:`create_folders_detailed` returning ``base_dir``."""

    result = create_folders_detailed(operations, base_dir, replacements, **kwargs)
    if result.failure_count > 0:
        raise StructureCreationError(failure_message(result.failure_count), result=result)
    return result.base_dir


def build_blank_resolver(settings: EngineSettings, fs: FileSystem) -> BlankFileResolver:
    """Create a resolver wired to the configured cache directory and catalog."""

    return BlankFileResolver(
        fs,
        settings.resolved_blank_files_dir.as_posix(),
        catalog_url=settings.catalog_url,
        catalog_base_url=settings.catalog_base_url,
        catalog_cache=CatalogCache(settings.catalog_refresh_seconds),
        timeout_seconds=settings.http_timeout_seconds,
    )


def _describe_errors(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors()[:5]:
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)
