from __future__ import annotations

import os
from pathlib import Path

import httpx
import pytest

from apps.api.main import app


@pytest.fixture(autouse=True)
def _clear_structops_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name.startswith("STRUCTOPS_"):
            monkeypatch.delenv(name)


def _body(base: Path) -> dict[str, object]:
    return {
        "baseDir": base.as_posix(),
        "operations": [
            {"type": "create", "targetPath": (base / "exists").as_posix(), "isDirectory": True},
            {"type": "create", "targetPath": (base / "new.txt").as_posix(), "isDirectory": False},
        ],
    }


@pytest.mark.anyio
async def test_plan_returns_summary_without_touching_disk(tmp_path: Path) -> None:
    (tmp_path / "exists").mkdir()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/plan", json=_body(tmp_path))

    assert response.status_code == 200
    summary = response.json()["summary"]
    assert summary["totalOperations"] == 2
    assert summary["createDirectoryCount"] == 1
    assert summary["createFileCount"] == 1
    assert summary["existingTargetCount"] == 1
    assert summary["existingTargets"] == [(tmp_path / "exists").as_posix()]
    assert not (tmp_path / "new.txt").exists()


@pytest.mark.anyio
async def test_plan_rejects_invalid_json() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post(
            "/v1/plan",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_JSON"
    assert payload["detail"]["request_id"] == response.headers["X-Structops-Request-Id"]


@pytest.mark.anyio
async def test_plan_rejects_copy_without_source_path(tmp_path: Path) -> None:
    body = {
        "baseDir": tmp_path.as_posix(),
        "operations": [
            {"type": "copy", "targetPath": (tmp_path / "t").as_posix(), "isDirectory": True}
        ],
    }

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/plan", json=body)

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_ARGUMENT"
    assert any("sourcePath" in error["loc"] for error in payload["detail"]["errors"])


@pytest.mark.anyio
async def test_plan_rejects_non_object_body() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/plan", json=[1, 2, 3])

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT"


@pytest.mark.anyio
async def test_plan_reports_invalid_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("STRUCTOPS_SETTINGS", (tmp_path / "missing.yaml").as_posix())

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/v1/plan", json=_body(tmp_path))

    assert response.status_code == 500
    payload = response.json()
    assert payload["error_code"] == "SETTINGS_INVALID"
    assert "Settings file not found" in payload["message"]
