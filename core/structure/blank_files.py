"""Functional blank-file templates: local cache first, remote catalog second.

Every public call degrades to ``None`` ("no template, write an empty file")
instead of raising, so file creation never fails because of this module.
"""

from __future__ import annotations

import logging
import posixpath
import re
import uuid
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from core.structure.archive import ArchiveExtractor, extract_zip_archive
from core.structure.blank_cache import CatalogCache, CatalogEntry, LocalBlankIndex
from core.structure.filesystem import FileSystem
from core.utils.errors import ArchiveExtractionError
from core.utils.events import log_event

logger = logging.getLogger("structops.blanks")

DEFAULT_CATALOG_BASE_URL = "https://cdn.statically.io/gh/filearchitect/blank-files/main/"
DEFAULT_CATALOG_URL = f"{DEFAULT_CATALOG_BASE_URL}files/files.json"
DEFAULT_REFRESH_SECONDS = 24 * 60 * 60
_MACOS_METADATA_DIR = "__MACOSX"
_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


class _CatalogFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = Field(min_length=1)
    url: str | None = None
    package: bool = False


class _CatalogDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    files: list[_CatalogFile]


def normalize_extension(extension: str) -> str:
    return extension.strip().lstrip(".").lower()


def extension_of(path: str) -> str:
    """Return the lowercased extension of ``path`` without its dot ("" if none)."""

    _, suffix = posixpath.splitext(posixpath.basename(path))
    return normalize_extension(suffix)


def build_catalog_entries(payload: Any, base_url: str) -> dict[str, CatalogEntry]:
    """Validate a catalog document and resolve one download URL per extension."""

    document = _CatalogDocument.model_validate(payload)
    base = base_url if base_url.endswith("/") else f"{base_url}/"

    entries: dict[str, CatalogEntry] = {}
    for item in document.files:
        url = item.url or ""
        if not url:
            url = f"{base}files/blank.{item.type}"
            if item.package:
                url = f"{url}.zip"
        if not _ABSOLUTE_URL_RE.match(url):
            url = f"{base}{url.lstrip('/')}"
        entries[normalize_extension(item.type)] = CatalogEntry(url=url, package=item.package)
    return entries


class BlankFileResolver:
    """Resolve template bytes for a file extension."""

    def __init__(
        self,
        fs: FileSystem,
        cache_dir: str,
        *,
        catalog_url: str = DEFAULT_CATALOG_URL,
        catalog_base_url: str = DEFAULT_CATALOG_BASE_URL,
        catalog_cache: CatalogCache | None = None,
        local_index: LocalBlankIndex | None = None,
        client: httpx.Client | None = None,
        timeout_seconds: float = 15.0,
        extract_archive: ArchiveExtractor = extract_zip_archive,
    ) -> None:
        self._fs = fs
        self._cache_dir = cache_dir
        self._catalog_url = catalog_url
        self._catalog_base_url = catalog_base_url
        self._catalog_cache = catalog_cache or CatalogCache(DEFAULT_REFRESH_SECONDS)
        self._local_index = local_index or LocalBlankIndex()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds, follow_redirects=True)
        self._extract_archive = extract_archive

    @property
    def cache_dir(self) -> str:
        return self._cache_dir

    def __enter__(self) -> BlankFileResolver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def get_functional_blank_file(self, extension: str) -> bytes | None:
        """Return template bytes for ``extension`` or None when unavailable."""

        normalized = normalize_extension(extension)
        if not normalized:
            return None
        try:
            local = self._read_local(normalized)
            if local is not None:
                return local
            return self._download_and_cache(normalized)
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                logging.ERROR,
                "blank_unexpected_error",
                extension=normalized,
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

    def catalog(self) -> dict[str, CatalogEntry] | None:
        """Return the remote catalog, refreshing it when stale."""

        if self._catalog_cache.is_stale():
            self._refresh_catalog()
        return self._catalog_cache.get()

    def _blank_path(self, extension: str) -> str:
        return posixpath.join(self._cache_dir, f"blank.{extension}")

    def _read_local(self, extension: str) -> bytes | None:
        if self._local_index.lookup(extension) is False:
            return None

        path = self._blank_path(extension)
        try:
            self._fs.mkdir(self._cache_dir, recursive=True)
            exists = self._fs.exists(path)
            self._local_index.mark(extension, exists)
            if not exists:
                return None
            data = self._fs.read_binary_file(path)
        except OSError as exc:
            self._local_index.invalidate(extension)
            log_event(
                logger,
                logging.ERROR,
                "blank_local_read_failed",
                extension=extension,
                path=path,
                error=str(exc),
            )
            return None

        log_event(logger, logging.INFO, "blank_local_hit", extension=extension, size=len(data))
        return data

    def _refresh_catalog(self) -> None:
        try:
            response = self._client.get(self._catalog_url)
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.ERROR,
                "blank_catalog_unreachable",
                url=self._catalog_url,
                error=str(exc),
            )
            return

        if response.status_code != 200:
            log_event(
                logger,
                logging.ERROR,
                "blank_catalog_unavailable",
                url=self._catalog_url,
                status_code=response.status_code,
            )
            return

        try:
            entries = build_catalog_entries(response.json(), self._catalog_base_url)
        except ValueError as exc:
            log_event(
                logger,
                logging.ERROR,
                "blank_catalog_invalid",
                url=self._catalog_url,
                error=str(exc),
            )
            return

        self._catalog_cache.store(entries)
        log_event(logger, logging.INFO, "blank_catalog_refreshed", entries=len(entries))

    def _download_and_cache(self, extension: str) -> bytes | None:
        catalog = self.catalog()
        entry = catalog.get(extension) if catalog else None
        if entry is None:
            log_event(logger, logging.INFO, "blank_not_listed", extension=extension)
            return None

        try:
            response = self._client.get(entry.url)
        except httpx.HTTPError as exc:
            log_event(
                logger,
                logging.ERROR,
                "blank_download_failed",
                extension=extension,
                url=entry.url,
                error=str(exc),
            )
            return None

        if response.status_code != 200:
            log_event(
                logger,
                logging.INFO,
                "blank_download_unavailable",
                extension=extension,
                url=entry.url,
                status_code=response.status_code,
            )
            return None

        data = response.content
        log_event(
            logger,
            logging.INFO,
            "blank_downloaded",
            extension=extension,
            size=len(data),
            package=entry.package,
        )

        try:
            if entry.package:
                self._install_package(extension, data)
            else:
                self._write_blank(extension, data)
            self._local_index.mark(extension, True)
        except (OSError, ArchiveExtractionError) as exc:
            log_event(
                logger,
                logging.ERROR,
                "blank_cache_write_failed",
                extension=extension,
                error=str(exc),
            )

        return data

    def _write_blank(self, extension: str, data: bytes) -> None:
        self._fs.mkdir(self._cache_dir, recursive=True)
        final_path = self._blank_path(extension)
        tmp_path = posixpath.join(self._cache_dir, f".blank.{extension}.{uuid.uuid4().hex}.tmp")
        try:
            self._fs.write_binary_file(tmp_path, data)
            self._fs.rename(tmp_path, final_path)
        except OSError:
            self._fs.rm(tmp_path)
            raise

    def _install_package(self, extension: str, data: bytes) -> None:
        self._fs.mkdir(self._cache_dir, recursive=True)
        archive_path = posixpath.join(
            self._cache_dir, f"temp_{extension}.{uuid.uuid4().hex}.zip"
        )
        self._fs.write_binary_file(archive_path, data)
        try:
            self._extract_archive(archive_path, self._cache_dir)
        finally:
            self._fs.rm(archive_path)

        metadata_dir = posixpath.join(self._cache_dir, _MACOS_METADATA_DIR)
        if self._fs.exists(metadata_dir):
            self._fs.rm(metadata_dir, recursive=True)
        log_event(logger, logging.INFO, "blank_package_extracted", extension=extension)
