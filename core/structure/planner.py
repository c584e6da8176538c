"""Read-only pre-flight summary of an operation list."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from core.structure.filesystem import FileSystem
from core.structure.models import StructureCreationSummary, StructureOperation
from core.utils.events import log_event

logger = logging.getLogger("structops.engine")

DEFAULT_PLAN_MAX_WORKERS = 8


def build_creation_summary(
    operations: Sequence[StructureOperation],
    fs: FileSystem,
    *,
    max_workers: int = DEFAULT_PLAN_MAX_WORKERS,
) -> StructureCreationSummary:
    """Count operations by kind and list targets that already exist.

    Existence checks run concurrently; ``existing_targets`` keeps operation order.
    """

    targets = [operation.target_path for operation in operations]
    if targets:
        workers = max(1, min(max_workers, len(targets)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            flags = list(pool.map(lambda path: _target_exists(fs, path), targets))
    else:
        flags = []

    existing_targets = [path for path, exists in zip(targets, flags) if exists]

    return StructureCreationSummary(
        total_operations=len(operations),
        create_file_count=sum(
            1 for op in operations if op.type == "create" and not op.is_directory
        ),
        create_directory_count=sum(
            1 for op in operations if op.type == "create" and op.is_directory
        ),
        copy_count=sum(1 for op in operations if op.type == "copy"),
        move_count=sum(1 for op in operations if op.type == "move"),
        existing_target_count=len(existing_targets),
        existing_targets=existing_targets,
    )


def _target_exists(fs: FileSystem, path: str) -> bool:
    try:
        return fs.exists(path)
    except Exception as exc:  # noqa: BLE001
        log_event(
            logger,
            logging.WARNING,
            "plan_exists_check_failed",
            target_path=path,
            error=f"{type(exc).__name__}: {exc}",
        )
        return False
