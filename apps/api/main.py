"""FastAPI wrapper for the structure planning/execution engine."""

from __future__ import annotations

import asyncio
import importlib.metadata
import json
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from core.orchestrator.pipeline import (
    build_blank_resolver,
    create_folders_detailed,
    get_structure_creation_plan,
)
from core.structure.blank_files import BlankFileResolver
from core.structure.filesystem import LocalFileSystem
from core.structure.models import (
    CreateFoldersExecutionResult,
    Replacement,
    StructureOperation,
)
from core.structure.report import failure_message
from core.structure.settings import EngineSettings, load_settings
from core.utils.events import dump_json

app = FastAPI(title="structops API", version="0.1.0")
logger = logging.getLogger("structops.api")

_REQUEST_ID_HEADER = "X-Structops-Request-Id"
_DEFAULT_MAX_CONCURRENT_BUILDS = 1
_DEFAULT_QUEUE_TIMEOUT_SECONDS = 0.0


class StructureRequest(BaseModel):
    """Body of /v1/plan and /v1/create."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    operations: list[StructureOperation]
    base_dir: str | None = Field(default=None, min_length=1)
    replacements: list[Replacement] = Field(default_factory=list)
    functional_blanks: bool | None = None
    strict: bool = False
    no_overwrite: bool = False


@dataclass
class _ConcurrencyLimiter:
    max_concurrency: int
    queue_timeout_seconds: float
    semaphore: threading.BoundedSemaphore


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


_limiter_lock = threading.Lock()
_limiter_cache: _ConcurrencyLimiter | None = None
_resolver_lock = threading.Lock()
_resolver_cache: tuple[tuple[Any, ...], BlankFileResolver] | None = None


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(_REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok", "version": _package_version()}


@app.post("/v1/plan")
async def plan_v1(request: Request) -> JSONResponse:
    """Return the pre-flight summary for an operation list."""

    request_id = _request_id_from_request(request)
    failure_stage = "validate_inputs"
    try:
        body = await _parse_structure_request(request)
        failure_stage = "load_settings"
        settings = _load_engine_settings()
        failure_stage = "validate_inputs"
        base_dir = _resolve_base_dir(body, settings)

        failure_stage = "plan"
        fs = LocalFileSystem(include_hidden=settings.include_hidden_entries)
        summary = await asyncio.to_thread(
            get_structure_creation_plan,
            body.operations,
            base_dir,
            body.replacements,
            fs=fs,
            max_workers=settings.plan_max_workers,
        )
        _log_event(
            logging.INFO,
            "plan",
            request_id,
            total_operations=summary.total_operations,
            existing_target_count=summary.existing_target_count,
        )
        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content={"summary": summary.model_dump(mode="json", by_alias=True)},
        )
    except ApiRequestError as exc:
        return _request_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _internal_error(exc, request_id, failure_stage)


@app.post("/v1/create")
async def create_v1(request: Request) -> JSONResponse:
    """Execute an operation list and return the execution report."""

    request_started = time.perf_counter()
    request_id = _request_id_from_request(request)
    failure_stage = "validate_inputs"
    slot_acquired = False
    limiter: _ConcurrencyLimiter | None = None

    try:
        body = await _parse_structure_request(request)
        failure_stage = "load_settings"
        settings = _load_engine_settings()
        failure_stage = "validate_inputs"
        base_dir = _resolve_base_dir(body, settings)

        failure_stage = "acquire_slot"
        limiter = _get_concurrency_limiter()
        slot_acquired, queue_wait_ms = await _try_acquire_concurrency_slot(limiter)
        if not slot_acquired:
            raise ApiRequestError(
                status_code=429,
                error_code="TOO_MANY_REQUESTS",
                message="server busy",
                detail={
                    "max_concurrency": limiter.max_concurrency,
                    "queue_timeout_seconds": limiter.queue_timeout_seconds,
                },
            )

        fs = LocalFileSystem(include_hidden=settings.include_hidden_entries)
        use_functional = (
            settings.create_functional_blank_files
            if body.functional_blanks is None
            else body.functional_blanks
        )
        _log_event(
            logging.INFO,
            "start",
            request_id,
            base_dir=base_dir,
            operations=len(body.operations),
            replacements=len(body.replacements),
            functional_blanks=use_functional,
            strict=body.strict,
            no_overwrite=body.no_overwrite,
            queue_wait_ms=queue_wait_ms,
        )

        if body.no_overwrite:
            failure_stage = "plan"
            summary = await asyncio.to_thread(
                get_structure_creation_plan,
                body.operations,
                base_dir,
                body.replacements,
                fs=fs,
                max_workers=settings.plan_max_workers,
            )
            if summary.existing_targets:
                raise ApiRequestError(
                    status_code=409,
                    error_code="TARGETS_EXIST",
                    message="targets already exist",
                    detail={"existing_targets": summary.existing_targets},
                )

        failure_stage = "execute"
        resolver = _get_blank_resolver(settings, fs) if use_functional else None
        result = await asyncio.to_thread(
            create_folders_detailed,
            body.operations,
            base_dir,
            body.replacements,
            fs=fs,
            blank_resolver=resolver,
            functional_blanks=use_functional,
            max_workers=settings.plan_max_workers,
        )

        failure_stage = "respond"
        _log_event(
            logging.INFO,
            "done",
            request_id,
            completed_count=result.completed_count,
            failure_count=result.failure_count,
            partial_success=result.partial_success,
            total_ms=_elapsed_ms(request_started),
        )

        if body.strict and result.failure_count > 0:
            raise ApiRequestError(
                status_code=422,
                error_code="STRUCTURE_CREATION_FAILED",
                message=failure_message(result.failure_count),
                detail={"result": _result_payload(result)},
            )

        return JSONResponse(
            status_code=200,
            headers={_REQUEST_ID_HEADER: request_id},
            content={"result": _result_payload(result)},
        )
    except ApiRequestError as exc:
        return _request_error(exc, request_id, failure_stage)
    except Exception as exc:  # noqa: BLE001
        return _internal_error(exc, request_id, failure_stage)
    finally:
        if slot_acquired and limiter is not None:
            limiter.semaphore.release()


async def _parse_structure_request(request: Request) -> StructureRequest:
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid JSON",
        ) from exc

    if not isinstance(raw, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="request body must be a JSON object",
        )

    try:
        return StructureRequest.model_validate(raw)
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="invalid structure request",
            detail={"errors": _validation_errors(exc)},
        ) from exc


def _validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {
            "loc": ".".join(str(item) for item in error.get("loc", ())),
            "msg": str(error.get("msg", "invalid")),
        }
        for error in exc.errors()[:20]
    ]


def _resolve_base_dir(body: StructureRequest, settings: EngineSettings) -> str:
    base_dir = body.base_dir or settings.resolved_default_base_dir
    if not base_dir:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="baseDir is required when no default_base_dir is configured",
        )
    return base_dir


def _load_engine_settings() -> EngineSettings:
    try:
        return load_settings()
    except ValueError as exc:
        raise ApiRequestError(
            status_code=500,
            error_code="SETTINGS_INVALID",
            message=str(exc),
        ) from exc


def _get_blank_resolver(settings: EngineSettings, fs: LocalFileSystem) -> BlankFileResolver:
    """Share one resolver per settings so the catalog cache outlives requests.

    A replaced resolver is dropped, not closed: builds still running on it keep
    a usable client until they finish.
    """

    global _resolver_cache

    key = (
        settings.resolved_blank_files_dir,
        settings.catalog_url,
        settings.catalog_base_url,
        settings.catalog_refresh_seconds,
        settings.http_timeout_seconds,
    )
    with _resolver_lock:
        if _resolver_cache is not None and _resolver_cache[0] == key:
            return _resolver_cache[1]
        resolver = build_blank_resolver(settings, fs)
        _resolver_cache = (key, resolver)
        return resolver


def _max_concurrent_builds() -> int:
    raw = os.getenv("STRUCTOPS_MAX_CONCURRENT_BUILDS")
    if raw is None:
        return _DEFAULT_MAX_CONCURRENT_BUILDS
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_CONCURRENT_BUILDS
    return parsed if parsed > 0 else _DEFAULT_MAX_CONCURRENT_BUILDS


def _queue_timeout_seconds() -> float:
    raw = os.getenv("STRUCTOPS_QUEUE_TIMEOUT_SECONDS")
    if raw is None:
        return _DEFAULT_QUEUE_TIMEOUT_SECONDS
    try:
        parsed = float(raw)
    except ValueError:
        return _DEFAULT_QUEUE_TIMEOUT_SECONDS
    return parsed if parsed >= 0 else _DEFAULT_QUEUE_TIMEOUT_SECONDS


def _get_concurrency_limiter() -> _ConcurrencyLimiter:
    global _limiter_cache

    max_concurrency = _max_concurrent_builds()
    queue_timeout = _queue_timeout_seconds()

    with _limiter_lock:
        if (
            _limiter_cache is None
            or _limiter_cache.max_concurrency != max_concurrency
            or _limiter_cache.queue_timeout_seconds != queue_timeout
        ):
            _limiter_cache = _ConcurrencyLimiter(
                max_concurrency=max_concurrency,
                queue_timeout_seconds=queue_timeout,
                semaphore=threading.BoundedSemaphore(value=max_concurrency),
            )
        return _limiter_cache


async def _try_acquire_concurrency_slot(limiter: _ConcurrencyLimiter) -> tuple[bool, int]:
    waited_started = time.perf_counter()
    timeout_seconds = limiter.queue_timeout_seconds

    if timeout_seconds == 0:
        acquired_now = limiter.semaphore.acquire(blocking=False)
        return acquired_now, _elapsed_ms(waited_started)

    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if limiter.semaphore.acquire(blocking=False):
            return True, _elapsed_ms(waited_started)
        await asyncio.sleep(0.01)

    return False, _elapsed_ms(waited_started)


def _result_payload(result: CreateFoldersExecutionResult) -> dict[str, Any]:
    return result.model_dump(mode="json", by_alias=True)


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    return request_id if isinstance(request_id, str) else uuid.uuid4().hex


def _request_error(exc: ApiRequestError, request_id: str, failure_stage: str) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


def _internal_error(exc: Exception, request_id: str, failure_stage: str) -> JSONResponse:
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code="INTERNAL_ERROR",
        status_code=500,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=500,
        error_code="INTERNAL_ERROR",
        message="internal server error",
        request_id=request_id,
        detail={"error": str(exc)},
    )


def _package_version() -> str:
    try:
        return importlib.metadata.version("structops")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={_REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, dump_json(payload))
