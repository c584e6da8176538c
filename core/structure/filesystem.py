"""Filesystem adapter contract consumed by the structure engine."""

from __future__ import annotations

import errno
import os
import posixpath
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class FileStat:
    """Minimal stat result: only the file/directory distinction matters."""

    directory: bool

    def is_directory(self) -> bool:
        return self.directory


@dataclass(frozen=True)
class DirEntry:
    """Single entry of a directory listing."""

    name: str
    directory: bool

    def is_directory(self) -> bool:
        return self.directory


class FileSystem(Protocol):
    """Capabilities the planner, executor, and blank-file resolver rely on.

    Writes (``write_file``, ``write_binary_file``, ``copy_file``, ``rename``)
    create missing parent directories. ``rename`` falls back to copy-and-delete
    when source and destination are on different filesystems. ``copy_file``
    writes an empty file when the source is missing or unreadable. ``readdir``
    returns an empty list for missing or inaccessible directories.
    """

    def exists(self, path: str) -> bool: ...

    def mkdir(self, path: str, *, recursive: bool = False) -> None: ...

    def write_file(self, path: str, content: str) -> None: ...

    def write_binary_file(self, path: str, data: bytes) -> None: ...

    def read_binary_file(self, path: str) -> bytes: ...

    def copy_file(self, src: str, dest: str) -> None: ...

    def rename(self, src: str, dest: str) -> None: ...

    def rm(self, path: str, *, recursive: bool = False) -> None: ...

    def unlink(self, path: str) -> None: ...

    def stat(self, path: str) -> FileStat: ...

    def readdir(self, path: str) -> list[DirEntry]: ...

    def get_all_files(self, dir_path: str) -> list[str]: ...

    def get_all_directories(self, dir_path: str) -> list[str]: ...

    def get_relative_path(self, from_path: str, to_path: str) -> str: ...


class LocalFileSystem:
    """FileSystem implementation backed by the local disk."""

    def __init__(self, *, include_hidden: bool = False) -> None:
        self._include_hidden = include_hidden

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def mkdir(self, path: str, *, recursive: bool = False) -> None:
        if recursive:
            Path(path).mkdir(parents=True, exist_ok=True)
        else:
            Path(path).mkdir()

    def write_file(self, path: str, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def write_binary_file(self, path: str, data: bytes) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def read_binary_file(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def copy_file(self, src: str, dest: str) -> None:
        target = Path(dest)
        target.parent.mkdir(parents=True, exist_ok=True)
        source = Path(src)
        if source.is_file():
            try:
                shutil.copyfile(source, target)
                return
            except PermissionError:
                pass
        target.write_bytes(b"")

    def rename(self, src: str, dest: str) -> None:
        Path(dest).parent.mkdir(parents=True, exist_ok=True)
        try:
            os.replace(src, dest)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            shutil.move(src, dest)

    def rm(self, path: str, *, recursive: bool = False) -> None:
        target = Path(path)
        if not os.path.lexists(target):
            return
        if target.is_dir() and not target.is_symlink():
            if recursive:
                shutil.rmtree(target)
            else:
                target.rmdir()
        else:
            target.unlink()

    def unlink(self, path: str) -> None:
        Path(path).unlink()

    def stat(self, path: str) -> FileStat:
        return FileStat(directory=stat.S_ISDIR(os.stat(path).st_mode))

    def readdir(self, path: str) -> list[DirEntry]:
        try:
            with os.scandir(path) as iterator:
                entries = [
                    DirEntry(name=entry.name, directory=entry.is_dir(follow_symlinks=False))
                    for entry in iterator
                    if self._include_hidden or not entry.name.startswith(".")
                ]
        except OSError:
            return []
        entries.sort(key=lambda entry: (not entry.directory, entry.name))
        return entries

    def get_all_files(self, dir_path: str) -> list[str]:
        result: list[str] = []
        for entry in self.readdir(dir_path):
            full_path = posixpath.join(dir_path, entry.name)
            if entry.is_directory():
                result.extend(self.get_all_files(full_path))
            else:
                result.append(full_path)
        return result

    def get_all_directories(self, dir_path: str) -> list[str]:
        result: list[str] = []
        for entry in self.readdir(dir_path):
            if not entry.is_directory():
                continue
            full_path = posixpath.join(dir_path, entry.name)
            result.append(full_path)
            result.extend(self.get_all_directories(full_path))
        return result

    def get_relative_path(self, from_path: str, to_path: str) -> str:
        from_parts = [part for part in from_path.split("/") if part]
        to_parts = [part for part in to_path.split("/") if part]

        common = 0
        while (
            common < len(from_parts)
            and common < len(to_parts)
            and from_parts[common] == to_parts[common]
        ):
            common += 1
        return "/".join(to_parts[common:])
