"""Data models for structure operations, replacement rules, plans, and reports."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

OperationType = Literal["create", "copy", "move", "included"]

# JSON payloads use the camelCase names of the external parser contract.
_CAMEL_CONFIG = ConfigDict(
    extra="forbid",
    frozen=True,
    alias_generator=to_camel,
    populate_by_name=True,
)


class _OperationBase(BaseModel):
    """Fields shared by every planned filesystem operation."""

    model_config = _CAMEL_CONFIG

    target_path: str = Field(min_length=1)
    is_directory: bool
    depth: int = Field(default=0, ge=0)
    name: str = ""
    warning: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("name"):
            return data
        target = data.get("target_path", data.get("targetPath"))
        if isinstance(target, str):
            return {**data, "name": posixpath.basename(target.rstrip("/"))}
        return data


class CreateOperation(_OperationBase):
    """Create an empty directory or a blank file at ``target_path``."""

    type: Literal["create"] = "create"


class CopyOperation(_OperationBase):
    """Copy ``source_path`` (file or whole tree) to ``target_path``."""

    type: Literal["copy"] = "copy"
    source_path: str = Field(min_length=1)


class MoveOperation(_OperationBase):
    """Move ``source_path`` (file or whole tree) to ``target_path``."""

    type: Literal["move"] = "move"
    source_path: str = Field(min_length=1)


class IncludedOperation(_OperationBase):
    """Marker for content that is already in place; never touches disk."""

    type: Literal["included"] = "included"
    source_path: str | None = None


StructureOperation = Annotated[
    Union[CreateOperation, CopyOperation, MoveOperation, IncludedOperation],
    Field(discriminator="type"),
]


class Replacement(BaseModel):
    """User-defined search/replace rule for generated file and folder names."""

    model_config = _CAMEL_CONFIG

    search: str
    replace: str
    replace_in_files: bool = True
    replace_in_folders: bool = True


@dataclass(frozen=True)
class NameRule:
    """Search/replace pair stripped of its file/folder flags."""

    search: str
    replace: str


@dataclass(frozen=True)
class ReplacementGroups:
    """Replacement rules partitioned by the kind of path segment they apply to."""

    all_replacements: tuple[NameRule, ...] = ()
    file_replacements: tuple[NameRule, ...] = ()
    folder_replacements: tuple[NameRule, ...] = ()


class StructureCreationSummary(BaseModel):
    """Read-only pre-flight view of an operation list."""

    model_config = _CAMEL_CONFIG

    total_operations: int
    create_file_count: int
    create_directory_count: int
    copy_count: int
    move_count: int
    existing_target_count: int
    existing_targets: list[str] = Field(default_factory=list)


class FailedStructureOperation(BaseModel):
    """One operation that raised during execution."""

    model_config = _CAMEL_CONFIG

    type: OperationType
    target_path: str
    source_path: str | None = None
    is_directory: bool
    message: str


@dataclass
class ExecutionTally:
    """Executor outcome before it is combined with the pre-flight summary."""

    total: int = 0
    failures: list[FailedStructureOperation] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return self.total - len(self.failures)


class CreateFoldersExecutionResult(BaseModel):
    """Final execution report.

    Rules:
    - completed_count + failure_count == summary.total_operations
    - failure_count == len(failures)
    - partial_success == (completed_count > 0 and failure_count > 0)
    """

    model_config = _CAMEL_CONFIG

    base_dir: str
    summary: StructureCreationSummary
    completed_count: int
    failure_count: int
    failures: list[FailedStructureOperation] = Field(default_factory=list)
    partial_success: bool

    @property
    def succeeded(self) -> bool:
        return self.failure_count == 0
