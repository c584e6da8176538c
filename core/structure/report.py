"""Combine the pre-flight summary with the executor tally."""

from __future__ import annotations

from core.structure.models import (
    CreateFoldersExecutionResult,
    ExecutionTally,
    StructureCreationSummary,
)


def build_execution_result(
    base_dir: str,
    summary: StructureCreationSummary,
    tally: ExecutionTally,
) -> CreateFoldersExecutionResult:
    """Build the final report; ``summary`` stays the pre-execution snapshot."""

    failure_count = len(tally.failures)
    completed_count = tally.total - failure_count
    return CreateFoldersExecutionResult(
        base_dir=base_dir,
        summary=summary,
        completed_count=completed_count,
        failure_count=failure_count,
        failures=list(tally.failures),
        partial_success=completed_count > 0 and failure_count > 0,
    )


def failure_message(failure_count: int) -> str:
    noun = "operation" if failure_count == 1 else "operations"
    return f"{failure_count} {noun} failed"
