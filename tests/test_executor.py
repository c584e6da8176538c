from __future__ import annotations

import logging
from pathlib import Path

import pytest

from core.orchestrator.pipeline import create_folders_detailed, load_operations
from core.structure.executor import StructureExecutor
from core.structure.filesystem import LocalFileSystem
from core.structure.models import (
    NameRule,
    Replacement,
    ReplacementGroups,
    StructureOperation,
)


class _StaticBlankResolver:
    def __init__(self, templates: dict[str, bytes]) -> None:
        self.templates = templates
        self.requested: list[str] = []

    def get_functional_blank_file(self, extension: str) -> bytes | None:
        self.requested.append(extension)
        return self.templates.get(extension)


class _BinaryWriteFailsFs(LocalFileSystem):
    def write_binary_file(self, path: str, data: bytes) -> None:
        raise OSError("disk full")


def _ops(*raw: dict[str, object]) -> list[StructureOperation]:
    return load_operations(list(raw))


def _source_tree(root: Path) -> Path:
    source = root / "src" / "templates" / "foo"
    (source / "baz").mkdir(parents=True)
    (source / "foo-notes").mkdir()
    (source / "bar.txt").write_text("bar", encoding="utf-8")
    (source / "baz" / "qux.txt").write_text("qux", encoding="utf-8")
    (source / "foo-notes" / "foo.md").write_text("notes", encoding="utf-8")
    return source


def test_create_directory_and_blank_file_without_templates(tmp_path: Path) -> None:
    base = tmp_path / "proj"
    operations = _ops(
        {"type": "create", "targetPath": base.as_posix(), "isDirectory": True},
        {"type": "create", "targetPath": (base / "readme.md").as_posix(), "isDirectory": False},
    )

    tally = StructureExecutor(LocalFileSystem(), functional_blanks=False).execute(
        operations, ReplacementGroups()
    )

    assert tally.completed == 2
    assert tally.failures == []
    assert base.is_dir()
    assert (base / "readme.md").read_bytes() == b""


def test_functional_blank_template_is_written(tmp_path: Path) -> None:
    resolver = _StaticBlankResolver({"docx": b"DOCX"})
    target = tmp_path / "Report.DOCX"
    executor = StructureExecutor(
        LocalFileSystem(),
        blank_resolver=resolver,  # type: ignore[arg-type]
    )

    executor.create_blank_file(target.as_posix())

    assert target.read_bytes() == b"DOCX"
    assert resolver.requested == ["docx"]


def test_files_without_extension_never_query_templates(tmp_path: Path) -> None:
    resolver = _StaticBlankResolver({})
    executor = StructureExecutor(
        LocalFileSystem(),
        blank_resolver=resolver,  # type: ignore[arg-type]
    )

    executor.create_blank_file((tmp_path / "Makefile").as_posix())

    assert (tmp_path / "Makefile").read_bytes() == b""
    assert resolver.requested == []


def test_disabled_functional_blanks_skip_resolver(tmp_path: Path) -> None:
    resolver = _StaticBlankResolver({"txt": b"TEMPLATE"})
    executor = StructureExecutor(
        LocalFileSystem(),
        blank_resolver=resolver,  # type: ignore[arg-type]
        functional_blanks=False,
    )

    executor.create_blank_file((tmp_path / "a.txt").as_posix())

    assert (tmp_path / "a.txt").read_bytes() == b""
    assert resolver.requested == []


def test_failed_template_write_falls_back_to_empty_file(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING, logger="structops.engine")
    resolver = _StaticBlankResolver({"xlsx": b"XLSX"})
    executor = StructureExecutor(
        _BinaryWriteFailsFs(),
        blank_resolver=resolver,  # type: ignore[arg-type]
    )
    target = tmp_path / "sheet.xlsx"

    executor.create_blank_file(target.as_posix())

    assert target.read_bytes() == b""
    assert any(
        '"event":"functional_blank_write_failed"' in record.message for record in caplog.records
    )


def test_copy_tree_renames_folder_segments_only(tmp_path: Path) -> None:
    source = _source_tree(tmp_path)
    target = tmp_path / "proj" / "FOO"
    groups = ReplacementGroups(folder_replacements=(NameRule("foo", "FOO"),))
    operations = _ops(
        {
            "type": "copy",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": True,
        }
    )

    tally = StructureExecutor(LocalFileSystem()).execute(operations, groups)

    assert tally.failures == []
    assert (target / "bar.txt").read_text(encoding="utf-8") == "bar"
    assert (target / "baz" / "qux.txt").read_text(encoding="utf-8") == "qux"
    assert (target / "FOO-notes" / "foo.md").read_text(encoding="utf-8") == "notes"
    assert not (target / "foo-notes").exists()
    assert source.exists()


def test_copy_tree_applies_file_rules_to_leaf_names(tmp_path: Path) -> None:
    source = _source_tree(tmp_path)
    target = tmp_path / "out"
    groups = ReplacementGroups(file_replacements=(NameRule(r"^(\w+)\.txt$", "renamed.txt"),))
    operations = _ops(
        {
            "type": "copy",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": True,
        }
    )

    StructureExecutor(LocalFileSystem()).execute(operations, groups)

    assert (target / "renamed.txt").read_text(encoding="utf-8") == "bar"
    assert (target / "baz" / "renamed.txt").read_text(encoding="utf-8") == "qux"
    assert (target / "foo-notes" / "foo.md").exists()


def test_copy_single_file_renames_basename_only(tmp_path: Path) -> None:
    source = tmp_path / "template-draft.txt"
    source.write_text("body", encoding="utf-8")
    target = tmp_path / "draft-dir" / "template-draft.txt"
    groups = ReplacementGroups(file_replacements=(NameRule("draft", "final"),))
    operations = _ops(
        {
            "type": "copy",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": False,
        }
    )

    StructureExecutor(LocalFileSystem()).execute(operations, groups)

    assert (tmp_path / "draft-dir" / "template-final.txt").read_text(encoding="utf-8") == "body"


def test_move_tree_copies_then_removes_source(tmp_path: Path) -> None:
    source = _source_tree(tmp_path)
    target = tmp_path / "moved"
    operations = _ops(
        {
            "type": "move",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": True,
        }
    )

    tally = StructureExecutor(LocalFileSystem()).execute(operations, ReplacementGroups())

    assert tally.failures == []
    assert (target / "baz" / "qux.txt").exists()
    assert not source.exists()


def test_move_tree_keeps_hidden_entries_it_did_not_copy(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING, logger="structops.engine")
    source = tmp_path / "src"
    (source / "nested" / ".git").mkdir(parents=True)
    (source / "keep.txt").write_text("keep", encoding="utf-8")
    (source / ".env").write_text("SECRET=1", encoding="utf-8")
    (source / "nested" / "a.txt").write_text("a", encoding="utf-8")
    (source / "nested" / ".git" / "HEAD").write_text("ref", encoding="utf-8")
    target = tmp_path / "dst"
    operations = _ops(
        {
            "type": "move",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": True,
        }
    )

    tally = StructureExecutor(LocalFileSystem()).execute(operations, ReplacementGroups())

    assert tally.failures == []
    assert (target / "keep.txt").read_text(encoding="utf-8") == "keep"
    assert (target / "nested" / "a.txt").exists()
    assert (source / ".env").read_text(encoding="utf-8") == "SECRET=1"
    assert (source / "nested" / ".git" / "HEAD").exists()
    assert not (source / "keep.txt").exists()
    assert not (source / "nested" / "a.txt").exists()
    assert any('"event":"move_source_kept"' in record.message for record in caplog.records)


def test_move_tree_with_hidden_entries_included_moves_everything(tmp_path: Path) -> None:
    source = tmp_path / "src"
    source.mkdir()
    (source / ".env").write_text("SECRET=1", encoding="utf-8")
    target = tmp_path / "dst"
    operations = _ops(
        {
            "type": "move",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": True,
        }
    )

    StructureExecutor(LocalFileSystem(include_hidden=True)).execute(
        operations, ReplacementGroups()
    )

    assert (target / ".env").read_text(encoding="utf-8") == "SECRET=1"
    assert not source.exists()


def test_move_file_renames(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("a", encoding="utf-8")
    target = tmp_path / "b.txt"
    operations = _ops(
        {
            "type": "move",
            "sourcePath": source.as_posix(),
            "targetPath": target.as_posix(),
            "isDirectory": False,
        }
    )

    StructureExecutor(LocalFileSystem()).execute(operations, ReplacementGroups())

    assert target.read_text(encoding="utf-8") == "a"
    assert not source.exists()


def test_included_operation_never_touches_disk(tmp_path: Path) -> None:
    target = tmp_path / "already-there"
    operations = _ops({"type": "included", "targetPath": target.as_posix(), "isDirectory": True})

    tally = StructureExecutor(LocalFileSystem()).execute(operations, ReplacementGroups())

    assert tally.completed == 1
    assert not target.exists()


def test_copy_of_missing_source_directory_is_recorded_as_failure(tmp_path: Path) -> None:
    missing = (tmp_path / "nope").as_posix()
    operations = _ops(
        {
            "type": "copy",
            "sourcePath": missing,
            "targetPath": (tmp_path / "out").as_posix(),
            "isDirectory": True,
        }
    )

    tally = StructureExecutor(LocalFileSystem()).execute(operations, ReplacementGroups())

    assert len(tally.failures) == 1
    failure = tally.failures[0]
    assert failure.type == "copy"
    assert failure.source_path == missing
    assert missing in failure.message
    assert not (tmp_path / "out").exists()


def test_file_before_its_parent_directory_still_succeeds(tmp_path: Path) -> None:
    parent = tmp_path / "a"
    operations = _ops(
        {"type": "create", "targetPath": (parent / "b.txt").as_posix(), "isDirectory": False},
        {"type": "create", "targetPath": parent.as_posix(), "isDirectory": True},
    )

    tally = StructureExecutor(LocalFileSystem(), functional_blanks=False).execute(
        operations, ReplacementGroups()
    )

    assert tally.failures == []
    assert (parent / "b.txt").is_file()


def test_partial_failures_are_aggregated_and_do_not_stop_the_run(tmp_path: Path) -> None:
    operations = _ops(
        {"type": "create", "targetPath": (tmp_path / "one").as_posix(), "isDirectory": True},
        {
            "type": "move",
            "sourcePath": (tmp_path / "missing.txt").as_posix(),
            "targetPath": (tmp_path / "one" / "moved.txt").as_posix(),
            "isDirectory": False,
        },
        {"type": "create", "targetPath": (tmp_path / "two").as_posix(), "isDirectory": True},
        {
            "type": "copy",
            "sourcePath": (tmp_path / "missing-dir").as_posix(),
            "targetPath": (tmp_path / "two" / "copy").as_posix(),
            "isDirectory": True,
        },
        {
            "type": "create",
            "targetPath": (tmp_path / "two" / "x.txt").as_posix(),
            "isDirectory": False,
        },
    )

    result = create_folders_detailed(
        operations,
        tmp_path.as_posix(),
        [Replacement(search="x", replace="y")],
        functional_blanks=False,
    )

    assert result.summary.total_operations == 5
    assert result.completed_count == 3
    assert result.failure_count == 2
    assert result.partial_success is True
    assert [failure.type for failure in result.failures] == ["move", "copy"]
    assert (tmp_path / "two" / "x.txt").exists()


def test_all_failures_are_not_partial_success(tmp_path: Path) -> None:
    operations = _ops(
        {
            "type": "move",
            "sourcePath": (tmp_path / "a").as_posix(),
            "targetPath": (tmp_path / "b").as_posix(),
            "isDirectory": False,
        }
    )

    result = create_folders_detailed(operations, tmp_path.as_posix(), functional_blanks=False)

    assert result.completed_count == 0
    assert result.failure_count == 1
    assert result.partial_success is False


def test_unreachable_templates_still_create_empty_file(tmp_path: Path) -> None:
    resolver = _StaticBlankResolver({})
    operations = _ops(
        {"type": "create", "targetPath": (tmp_path / "f.xyz").as_posix(), "isDirectory": False}
    )

    result = create_folders_detailed(
        operations,
        tmp_path.as_posix(),
        blank_resolver=resolver,  # type: ignore[arg-type]
    )

    assert result.failure_count == 0
    assert (tmp_path / "f.xyz").read_bytes() == b""
    assert resolver.requested == ["xyz"]
