"""CLI I/O helpers: structure payload loading and atomic report writing."""

from __future__ import annotations

import json
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from core.orchestrator.pipeline import load_operations, load_replacements
from core.structure.models import Replacement, StructureOperation


@dataclass(frozen=True)
class StructurePayload:
    """Operations file content after validation."""

    operations: list[StructureOperation]
    replacements: list[Replacement] = field(default_factory=list)
    base_dir: str | None = None


def read_json_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc.msg} (line {exc.lineno})") from exc


def load_structure_file(path: Path) -> StructurePayload:
    """Load an operations file: a bare list, or an object with an ``operations`` key."""

    raw = read_json_file(path)
    if isinstance(raw, list):
        return StructurePayload(operations=load_operations(raw))
    if not isinstance(raw, dict):
        raise ValueError("Operations JSON must be a list or an object")
    if "operations" not in raw:
        raise ValueError("Operations JSON object must contain an 'operations' key")

    base_dir = raw.get("baseDir", raw.get("base_dir"))
    if base_dir is not None and not isinstance(base_dir, str):
        raise ValueError("baseDir must be a string")

    return StructurePayload(
        operations=load_operations(raw["operations"]),
        replacements=load_replacements(raw.get("replacements")),
        base_dir=base_dir,
    )


def load_replacements_file(path: Path) -> list[Replacement]:
    raw = read_json_file(path)
    if isinstance(raw, dict):
        raw = raw.get("replacements")
    return load_replacements(raw)


def write_report_atomic(path: Path, payload: dict[str, Any]) -> None:
    """Write a JSON report atomically using a temporary file + replace."""

    path.parent.mkdir(parents=True, exist_ok=True)
    _atomic_write_json(path, payload)


def _atomic_write_json(path: Path, payload: dict[str, Any]) -> None:
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        dir=path.parent,
        delete=False,
        prefix=f"{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp_path = Path(tmp.name)
        json.dump(payload, tmp, ensure_ascii=False, sort_keys=True, indent=2)

    tmp_path.replace(path)
