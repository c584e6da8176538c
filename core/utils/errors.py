"""Custom exceptions for core logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.structure.models import CreateFoldersExecutionResult


class StructureCreationError(Exception):
    """Raised by the strict entry point when any operation failed."""

    def __init__(
        self,
        message: str,
        *,
        result: CreateFoldersExecutionResult | None = None,
    ) -> None:
        super().__init__(message)
        self.result = result


class SourceNotFoundError(Exception):
    """Raised when a copy/move source tree is missing or not a directory."""

    def __init__(self, message: str, *, source_path: str) -> None:
        super().__init__(message)
        self.source_path = source_path


class ArchiveExtractionError(Exception):
    """Raised when a blank-file package archive cannot be extracted."""
