"""Human-readable plan and execution summaries for CLI output."""

from __future__ import annotations

from core.structure.models import CreateFoldersExecutionResult, StructureCreationSummary

_MAX_LISTED = 10


def render_plan_summary(summary: StructureCreationSummary) -> str:
    """Render one-screen plan summary."""

    lines: list[str] = []
    lines.append("plan_summary:")
    lines.append(
        f"operations={summary.total_operations} "
        f"create_dirs={summary.create_directory_count} "
        f"create_files={summary.create_file_count} "
        f"copies={summary.copy_count} moves={summary.move_count}"
    )
    if summary.existing_targets:
        lines.append(f"existing_targets: {summary.existing_target_count}")
        lines.extend(_listed(summary.existing_targets))
    else:
        lines.append("existing_targets: none")
    return "\n".join(lines)


def render_execution_result(result: CreateFoldersExecutionResult) -> str:
    """Render one-screen execution summary with failed targets."""

    lines: list[str] = []
    lines.append("execution_summary:")
    lines.append(f"base_dir={result.base_dir}")
    lines.append(f"result={_outcome(result)}")
    lines.append(f"completed={result.completed_count} failed={result.failure_count}")
    if result.failures:
        for failure in result.failures[:_MAX_LISTED]:
            source = f" (from {failure.source_path})" if failure.source_path else ""
            lines.append(
                f"failure: {failure.type} {failure.target_path}{source}: {failure.message}"
            )
        hidden = len(result.failures) - _MAX_LISTED
        if hidden > 0:
            lines.append(f"failure: ... {hidden} more")
    else:
        lines.append("failures: none")
    return "\n".join(lines)


def _outcome(result: CreateFoldersExecutionResult) -> str:
    if result.failure_count == 0:
        return "SUCCESS"
    if result.partial_success:
        return "PARTIAL"
    return "FAILED"


def _listed(paths: list[str]) -> list[str]:
    lines = [f"  {path}" for path in paths[:_MAX_LISTED]]
    hidden = len(paths) - _MAX_LISTED
    if hidden > 0:
        lines.append(f"  ... {hidden} more")
    return lines
