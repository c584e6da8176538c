"""Zip extraction for packaged blank-file templates."""

from __future__ import annotations

import zipfile
from collections.abc import Callable
from pathlib import Path

from core.utils.errors import ArchiveExtractionError

ArchiveExtractor = Callable[[str, str], None]


def extract_zip_archive(archive_path: str, destination_dir: str) -> None:
    """Extract every entry of ``archive_path`` below ``destination_dir``."""

    destination = Path(destination_dir).resolve()
    try:
        destination.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                target = (destination / member.filename).resolve()
                if target != destination and destination not in target.parents:
                    raise ArchiveExtractionError(
                        f"Archive entry escapes destination: {member.filename}"
                    )
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(member) as source, target.open("wb") as handle:
                    handle.write(source.read())
    except zipfile.BadZipFile as exc:
        raise ArchiveExtractionError(f"Failed to parse zip: {archive_path}") from exc
    except OSError as exc:
        raise ArchiveExtractionError(f"Failed to extract zip {archive_path}: {exc}") from exc
