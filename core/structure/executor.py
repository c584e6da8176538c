"""Sequential, failure-tolerant execution of planned structure operations."""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Sequence
from dataclasses import dataclass

from core.structure.blank_files import BlankFileResolver, extension_of
from core.structure.filesystem import FileSystem
from core.structure.models import (
    CopyOperation,
    CreateOperation,
    ExecutionTally,
    FailedStructureOperation,
    IncludedOperation,
    MoveOperation,
    ReplacementGroups,
    StructureOperation,
)
from core.structure.replacements import apply_replacements, replace_path_segments
from core.utils.errors import SourceNotFoundError
from core.utils.events import log_event

logger = logging.getLogger("structops.engine")


@dataclass(frozen=True)
class _CopiedTree:
    directories: list[str]
    files: list[str]


class StructureExecutor:
    """Apply operations in list order; one failure never stops the run.

    Parent directories are expected to be created by earlier operations in the
    list. Adapter writes also create missing parents.
    """

    def __init__(
        self,
        fs: FileSystem,
        *,
        blank_resolver: BlankFileResolver | None = None,
        functional_blanks: bool = True,
    ) -> None:
        self._fs = fs
        self._blank_resolver = blank_resolver
        self._functional_blanks = functional_blanks

    def execute(
        self,
        operations: Sequence[StructureOperation],
        groups: ReplacementGroups,
    ) -> ExecutionTally:
        tally = ExecutionTally(total=len(operations))

        for index, operation in enumerate(operations):
            try:
                self._run(operation, groups)
            except Exception as exc:  # noqa: BLE001
                failure = FailedStructureOperation(
                    type=operation.type,
                    target_path=operation.target_path,
                    source_path=getattr(operation, "source_path", None),
                    is_directory=operation.is_directory,
                    message=str(exc) or type(exc).__name__,
                )
                tally.failures.append(failure)
                log_event(
                    logger,
                    logging.ERROR,
                    "operation_failed",
                    index=index,
                    type=failure.type,
                    target_path=failure.target_path,
                    source_path=failure.source_path,
                    error_type=type(exc).__name__,
                    message=failure.message,
                )

        log_event(
            logger,
            logging.INFO,
            "run_done",
            total=tally.total,
            completed=tally.completed,
            failed=len(tally.failures),
        )
        return tally

    def _run(self, operation: StructureOperation, groups: ReplacementGroups) -> None:
        if isinstance(operation, CreateOperation):
            if operation.is_directory:
                self._fs.mkdir(operation.target_path, recursive=True)
            else:
                self.create_blank_file(operation.target_path)
        elif isinstance(operation, CopyOperation):
            if operation.is_directory:
                self._copy_tree(operation.source_path, operation.target_path, groups)
            else:
                self._copy_single_file(operation.source_path, operation.target_path, groups)
        elif isinstance(operation, MoveOperation):
            if operation.is_directory:
                copied = self._copy_tree(operation.source_path, operation.target_path, groups)
                self._remove_moved_entries(operation.source_path, copied)
            else:
                self._fs.rename(operation.source_path, operation.target_path)
        elif isinstance(operation, IncludedOperation):
            return
        else:
            raise TypeError(f"Unsupported operation type: {type(operation).__name__}")

    def create_blank_file(self, path: str) -> None:
        """Write a functional blank template at ``path``, else an empty file."""

        try:
            data = self._functional_blank_for(path)
            if data is not None:
                self._fs.write_binary_file(path, data)
                return
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                logging.WARNING,
                "functional_blank_write_failed",
                target_path=path,
                error=f"{type(exc).__name__}: {exc}",
            )
        self._fs.write_file(path, "")

    def _functional_blank_for(self, path: str) -> bytes | None:
        if not self._functional_blanks or self._blank_resolver is None:
            return None
        extension = extension_of(path)
        if not extension:
            return None
        return self._blank_resolver.get_functional_blank_file(extension)

    def _copy_tree(self, source: str, target: str, groups: ReplacementGroups) -> _CopiedTree:
        if not self._fs.exists(source) or not self._fs.stat(source).is_directory():
            raise SourceNotFoundError(
                f"Source directory does not exist: {source}", source_path=source
            )

        self._fs.mkdir(target, recursive=True)

        directories = self._fs.get_all_directories(source)
        files = self._fs.get_all_files(source)
        for directory in directories:
            relative = self._fs.get_relative_path(source, directory)
            parts = replace_path_segments(relative, groups, leaf_is_file=False)
            self._fs.mkdir(posixpath.join(target, *parts), recursive=True)

        for file_path in files:
            relative = self._fs.get_relative_path(source, file_path)
            parts = replace_path_segments(relative, groups, leaf_is_file=True)
            self._fs.copy_file(file_path, posixpath.join(target, *parts))

        return _CopiedTree(directories=directories, files=files)

    def _remove_moved_entries(self, source: str, copied: _CopiedTree) -> None:
        """Delete what was copied, then prune directories left empty.

        Entries the listing skipped (hidden names) stay in ``source``.
        """

        for file_path in copied.files:
            self._fs.unlink(file_path)

        kept: list[str] = []
        for directory in [*reversed(copied.directories), source]:
            try:
                self._fs.rm(directory)
            except OSError:
                kept.append(directory)

        if kept:
            log_event(
                logger,
                logging.WARNING,
                "move_source_kept",
                source_path=source,
                kept_directories=kept,
            )

    def _copy_single_file(self, source: str, target: str, groups: ReplacementGroups) -> None:
        parent, name = posixpath.split(target)
        renamed = apply_replacements(name, groups.file_replacements)
        self._fs.copy_file(source, posixpath.join(parent, renamed))
