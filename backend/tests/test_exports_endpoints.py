from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from timefly_exports.core.config import settings
from timefly_exports.main import create_application
from timefly_exports.services.audit_log import AuditEntry


EXPIRES = datetime(2024, 2, 8, tzinfo=timezone.utc)

OLDER = "user-42_all-time_2024-01-05T09-00-00-aaaa1111.json"
NEWER = "user-42_2024-01-01_to_2024-01-31_2024-02-01T12-00-00-bbbb2222.json"
OTHER = "user-7_all-time_2024-02-03T12-00-00-cccc3333.json"


def _headers(user_id: int = 42) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def app(store, notifier, artifacts, monkeypatch):
    monkeypatch.setattr(settings, "EXPORT_DIR", str(artifacts.directory))
    monkeypatch.setattr(settings, "RESEND_API_KEY", "re_test_key")
    return create_application(store=store, notifier=notifier)


@pytest_asyncio.fixture
async def client(app):
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


@pytest.mark.asyncio
async def test_create_export_runs_job_in_background(client, app, seed_entries, notifier, artifacts):
    await seed_entries(user_id=42, count=30)

    resp = await client.post(
        "/exports/create",
        json={"email": "dev@timefly.dev", "startDate": "2024-01-01", "endDate": "2024-01-31"},
        headers=_headers(),
    )

    assert resp.status_code == 202
    assert resp.json() == {
        "success": True,
        "message": "Export started. You will receive an email when it's complete.",
        "error": None,
    }

    await app.state.runner.shutdown(grace_seconds=10)

    (name,) = artifacts.list_artifacts()
    assert name.startswith("user-42_2024-01-01_to_2024-01-31_")
    (email,) = notifier.sent
    assert email.to == "dev@timefly.dev"
    assert f"/exports/download/{name}" in email.html


@pytest.mark.asyncio
async def test_create_export_requires_delivery_channel(client, monkeypatch):
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)

    resp = await client.post("/exports/create", json={"email": "dev@timefly.dev"}, headers=_headers())

    assert resp.status_code == 500
    assert resp.json()["detail"] == "Export service is not properly configured."


@pytest.mark.asyncio
async def test_create_export_rejects_bad_dates(client):
    resp = await client.post(
        "/exports/create",
        json={"email": "dev@timefly.dev", "startDate": "2024-02-01", "endDate": "2024-01-01"},
        headers=_headers(),
    )
    assert resp.status_code == 400

    resp = await client.post(
        "/exports/create", json={"email": "dev@timefly.dev", "startDate": "soon"}, headers=_headers()
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_routes_require_user_id(client):
    resp = await client.get("/exports/list")
    assert resp.status_code == 401

    resp = await client.get("/exports/list", headers={"X-User-Id": "abc"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_download_serves_own_file_without_caching(client, write_artifact):
    write_artifact(NEWER, EXPIRES, user_id=42)

    resp = await client.get(f"/exports/download/{NEWER}", headers=_headers())

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.headers["cache-control"] == "private, no-cache, no-store, must-revalidate"
    assert resp.headers["pragma"] == "no-cache"
    assert NEWER in resp.headers["content-disposition"]
    assert json.loads(resp.content)["userId"] == 42


@pytest.mark.asyncio
async def test_download_checks_name_and_owner(client, write_artifact):
    write_artifact(OTHER, EXPIRES, user_id=7)

    assert (await client.get(f"/exports/download/{OTHER}", headers=_headers())).status_code == 403
    assert (await client.get("/exports/download/notes.txt", headers=_headers())).status_code == 400
    assert (await client.get("/exports/download/user-4_x.json", headers=_headers(42))).status_code == 403
    assert (await client.get("/exports/download/user-42_missing.json", headers=_headers())).status_code == 404


@pytest.mark.asyncio
async def test_list_returns_own_exports_newest_first(client, write_artifact):
    write_artifact(OLDER, EXPIRES, user_id=42)
    write_artifact(NEWER, EXPIRES, user_id=42)
    write_artifact(OTHER, EXPIRES, user_id=7)

    resp = await client.get("/exports/list", headers=_headers())

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert [f["filename"] for f in body["data"]] == [NEWER, OLDER]
    assert body["data"][0]["url"] == f"{settings.BASE_URL}/exports/download/{NEWER}"
    assert body["data"][0]["createdAt"].startswith("2024-02-01T12:00:00")


@pytest.mark.asyncio
async def test_delete_removes_own_file(client, write_artifact, artifacts):
    write_artifact(NEWER, EXPIRES, user_id=42)
    write_artifact(OTHER, EXPIRES, user_id=7)

    resp = await client.delete(f"/exports/delete/{NEWER}", headers=_headers())
    assert resp.status_code == 200
    assert resp.json()["message"] == "File deleted successfully"
    assert artifacts.list_artifacts() == [OTHER]

    assert (await client.delete(f"/exports/delete/{NEWER}", headers=_headers())).status_code == 404
    assert (await client.delete(f"/exports/delete/{OTHER}", headers=_headers())).status_code == 403
    assert artifacts.list_artifacts() == [OTHER]


@pytest.mark.asyncio
async def test_stats_summarize_audit_rows(client, audit_log):
    await audit_log.append(AuditEntry(user_id=42, expires_at=EXPIRES, entries_count=10, file_size_bytes=100))
    await audit_log.append(AuditEntry(user_id=42, expires_at=EXPIRES, error_message="boom"))

    resp = await client.get("/exports/stats", headers=_headers())

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totalExports"] == 2
    assert data["totalEntries"] == 10
    assert data["totalSizeBytes"] == 100
    assert data["failedExports"] == 1


@pytest.mark.asyncio
async def test_health_and_metrics(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"

    await client.get("/exports/list", headers=_headers())
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "export_jobs_total" in resp.text
    assert 'endpoint="/exports/list"' in resp.text


@pytest.mark.asyncio
async def test_metrics_label_requests_by_full_route_template(client, write_artifact):
    write_artifact(NEWER, EXPIRES, user_id=42)

    await client.get(f"/exports/download/{NEWER}", headers=_headers())
    await client.get("/exports/stats", headers=_headers())
    resp = await client.get("/metrics")

    assert 'endpoint="/exports/download/{filename}"' in resp.text
    assert 'endpoint="/exports/stats"' in resp.text
    assert NEWER not in resp.text
    assert 'endpoint="/stats"' not in resp.text
