"""Engine settings loaded from YAML with environment overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, ValidationError

_SETTINGS_ENV = "STRUCTOPS_SETTINGS"
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class EngineSettings(BaseModel):
    """Preferences and tunables for the structure engine."""

    model_config = ConfigDict(extra="forbid")

    create_functional_blank_files: bool = True
    blank_files_dir: Path
    catalog_url: str = Field(min_length=1)
    catalog_base_url: str = Field(min_length=1)
    catalog_refresh_seconds: float = Field(ge=0)
    http_timeout_seconds: float = Field(gt=0)
    plan_max_workers: int = Field(ge=1)
    include_hidden_entries: bool = False
    default_base_dir: Path | None = None

    @property
    def resolved_blank_files_dir(self) -> Path:
        return self.blank_files_dir.expanduser()

    @property
    def resolved_default_base_dir(self) -> str | None:
        """Base directory used when a request names none."""

        if self.default_base_dir is None:
            return None
        return self.default_base_dir.expanduser().as_posix()


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load and validate settings, then apply ``STRUCTOPS_*`` overrides."""

    env_path = os.getenv(_SETTINGS_ENV)
    settings_path = path or (Path(env_path) if env_path else None)
    settings_path = settings_path or Path(__file__).with_name("settings.yaml")

    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Settings file not found: {settings_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in settings file: {settings_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Settings file must contain a mapping: {settings_path}")

    try:
        settings = EngineSettings.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid settings schema: {settings_path}") from exc

    return settings.model_copy(update=_env_overrides(settings))


def _env_overrides(settings: EngineSettings) -> dict[str, object]:
    overrides: dict[str, object] = {}

    functional = _env_bool("STRUCTOPS_FUNCTIONAL_BLANKS")
    if functional is not None:
        overrides["create_functional_blank_files"] = functional

    include_hidden = _env_bool("STRUCTOPS_INCLUDE_HIDDEN")
    if include_hidden is not None:
        overrides["include_hidden_entries"] = include_hidden

    blank_dir = os.getenv("STRUCTOPS_BLANK_FILES_DIR")
    if blank_dir:
        overrides["blank_files_dir"] = Path(blank_dir)

    default_base_dir = os.getenv("STRUCTOPS_DEFAULT_BASE_DIR")
    if default_base_dir:
        overrides["default_base_dir"] = Path(default_base_dir)

    for key, env_name in (
        ("catalog_url", "STRUCTOPS_CATALOG_URL"),
        ("catalog_base_url", "STRUCTOPS_CATALOG_BASE_URL"),
    ):
        value = os.getenv(env_name)
        if value:
            overrides[key] = value

    refresh = _env_float("STRUCTOPS_CATALOG_REFRESH_SECONDS", minimum=0.0)
    if refresh is not None:
        overrides["catalog_refresh_seconds"] = refresh

    timeout = _env_float("STRUCTOPS_HTTP_TIMEOUT_SECONDS", minimum=0.0, exclusive=True)
    if timeout is not None:
        overrides["http_timeout_seconds"] = timeout

    workers = _env_int("STRUCTOPS_PLAN_MAX_WORKERS")
    if workers is not None:
        overrides["plan_max_workers"] = workers

    return overrides


def _env_bool(name: str) -> bool | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    normalized = raw.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return None


def _env_float(name: str, *, minimum: float, exclusive: bool = False) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        parsed = float(raw)
    except ValueError:
        return None
    if parsed < minimum or (exclusive and parsed == minimum):
        return None
    return parsed


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    try:
        parsed = int(raw)
    except ValueError:
        return None
    return parsed if parsed > 0 else None
