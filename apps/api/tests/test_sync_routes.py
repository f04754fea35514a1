from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

import studio.monday.service as sync_service
import studio.routers.monday as monday_router
from studio.config import settings
from studio.db import SessionLocal
from studio.models import Project
from studio.monday.settings_store import get_sync_settings
from studio.schemas import sync_progress_adapter
from tests.conftest import ADMIN_HEADERS, FakeMonday, add_mapping, col


def _fake_monday() -> FakeMonday:
  fake = FakeMonday()
  fake.add_board("100", "Projects 2026", workspace={"id": 7, "name": "Studio"}, columns=[{"id": "client_col", "title": "Client", "type": "text"}])
  fake.add_board("101", "Subitems of Projects 2026")
  fake.add_item("100", "1001", "Acme Website", [col("client_col", text="Acme")])
  fake.add_subitem("1001", "s1", "Design", [col("hours", text="8", value="8", type="numbers")])
  return fake


@pytest.fixture
async def fake(clean_db, monkeypatch) -> FakeMonday:  # type: ignore[no-untyped-def]
  f = _fake_monday()

  async def _auth(db):  # type: ignore[no-untyped-def]
    return f.auth()

  monkeypatch.setattr(sync_service, "resolve_monday_auth", _auth)
  monkeypatch.setattr(monday_router, "resolve_monday_auth", _auth)
  await add_mapping("client", "client_col", "100")
  await add_mapping("quoted_hours", "hours")
  return f


async def _seed_orphan() -> None:
  async with SessionLocal() as db:
    db.add(Project(monday_item_id="2001", monday_board_id="100", name="Gone Job", status="active"))
    await db.commit()


async def _orphan_exists() -> bool:
  async with SessionLocal() as db:
    res = await db.execute(select(Project).where(Project.monday_item_id == "2001"))
    return res.scalar_one_or_none() is not None


@pytest.mark.anyio
async def test_manual_sync_defaults_to_avoiding_deletion(client: AsyncClient, fake: FakeMonday) -> None:
  await _seed_orphan()
  res = await client.post("/monday/sync", headers=ADMIN_HEADERS)
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["status"] == "success"
  assert body["avoidDeletion"] is True
  assert (body["projectsSynced"], body["tasksSynced"], body["deleted"]) == (1, 1, 0)
  assert await _orphan_exists()

  res = await client.post("/monday/sync", headers=ADMIN_HEADERS, json={"avoidDeletion": False, "fullResync": True})
  body = res.json()
  assert body["mode"] == "full"
  assert body["deleted"] == 1
  assert not await _orphan_exists()


@pytest.mark.anyio
async def test_manual_sync_without_token_records_error_run(client: AsyncClient, monkeypatch) -> None:  # type: ignore[no-untyped-def]
  monkeypatch.setattr(settings, "monday_api_token", None)
  res = await client.post("/monday/sync", headers=ADMIN_HEADERS)
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["status"] == "error"
  assert "not configured" in body["errorMessage"]

  runs = (await client.get("/monday/sync-runs", headers=ADMIN_HEADERS)).json()
  assert [r["id"] for r in runs] == [body["id"]]
  res = await client.delete("/monday/sync-runs", headers=ADMIN_HEADERS)
  assert res.json() == {"ok": True, "removed": 1}


@pytest.mark.anyio
async def test_stream_sync_emits_progress_events(client: AsyncClient, fake: FakeMonday) -> None:
  res = await client.post("/monday/sync/stream", headers=ADMIN_HEADERS, json={"fullResync": False})
  assert res.status_code == 200, res.text
  assert res.headers["content-type"].startswith("text/event-stream")
  assert res.text.startswith(": sync")
  assert not any(line.startswith("event:") for line in res.text.splitlines())

  events = [
    sync_progress_adapter.validate_python(json.loads(line[len("data: ") :]))
    for line in res.text.splitlines()
    if line.startswith("data: ")
  ]
  phases = [e.phase for e in events]
  assert phases[0] == "fetching"
  assert phases[-1] == "complete"
  syncing = [e for e in events if e.phase == "syncing"]
  assert [(e.projectIndex, e.totalProjects, e.projectName) for e in syncing] == [(1, 1, "Acme Website")]
  assert events[-1].projectsSynced == 1
  progress = [e.progress for e in events if hasattr(e, "progress")]
  assert progress == sorted(progress)


@pytest.mark.anyio
async def test_stream_sync_reports_error_event(client: AsyncClient, fake: FakeMonday) -> None:
  fake.errors = ["Complexity budget exhausted"]
  res = await client.post("/monday/sync/stream", headers=ADMIN_HEADERS)
  last = [line for line in res.text.splitlines() if line.startswith("data: ")][-1]
  event = sync_progress_adapter.validate_python(json.loads(last[len("data: ") :]))
  assert event.phase == "error"
  assert "Complexity budget exhausted" in event.message


@pytest.mark.anyio
async def test_cron_skips_when_disabled_and_checks_secret(client: AsyncClient, fake: FakeMonday, monkeypatch) -> None:  # type: ignore[no-untyped-def]
  res = await client.get("/sync/cron")
  assert res.status_code == 200, res.text
  assert res.json()["skipped"] is True

  monkeypatch.setattr(settings, "cron_secret", "cron-s3cret")
  assert (await client.get("/sync/cron")).status_code == 401
  assert (await client.get("/sync/cron", headers={"X-Cron-Secret": "wrong"})).status_code == 401
  res = await client.get("/sync/cron", headers={"X-Cron-Secret": "cron-s3cret"})
  assert res.status_code == 200


@pytest.mark.anyio
async def test_cron_uses_stored_deletion_policy_and_schedules_next_run(client: AsyncClient, fake: FakeMonday) -> None:
  await _seed_orphan()
  await client.patch("/sync/settings", headers=ADMIN_HEADERS, json={"enabled": True, "intervalMinutes": 30, "avoidDeletion": False})

  res = await client.get("/sync/cron")
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["skipped"] is False
  assert body["run"]["trigger"] == "cron"
  assert body["run"]["deleted"] == 1
  assert not await _orphan_exists()

  async with SessionLocal() as db:
    row = await get_sync_settings(db)
    assert row.last_sync_at is not None
    assert (row.next_sync_at - row.last_sync_at).total_seconds() == 30 * 60
    assert sync_service.is_sync_due(row, now=datetime.now(timezone.utc)) is False


@pytest.mark.anyio
async def test_boards_listing_and_connection_test(client: AsyncClient, fake: FakeMonday) -> None:
  res = await client.get("/monday/boards", headers=ADMIN_HEADERS)
  assert res.status_code == 200, res.text
  boards = res.json()
  assert [b["id"] for b in boards] == ["100"]
  assert boards[0]["workspaceName"] == "Studio"
  assert boards[0]["columns"] == [{"id": "client_col", "title": "Client", "type": "text"}]

  res = await client.post("/monday/test", headers=ADMIN_HEADERS)
  assert res.json()["accountName"] == "Studio Admin"

  fake.errors = ["Not Authenticated"]
  res = await client.get("/monday/boards", headers=ADMIN_HEADERS)
  assert res.status_code == 400
  assert res.json()["detail"]["message"] == "Monday.com API errors: Not Authenticated"


@pytest.mark.anyio
async def test_projects_listing_and_detail_after_sync(client: AsyncClient, fake: FakeMonday) -> None:
  await client.post("/monday/sync", headers=ADMIN_HEADERS)

  res = await client.get("/projects", headers=ADMIN_HEADERS, params={"status": "active"})
  assert res.status_code == 200, res.text
  (p,) = res.json()
  assert (p["name"], p["clientName"], p["quotedHours"]) == ("Acme Website", "Acme", 8)
  assert (await client.get("/projects", headers=ADMIN_HEADERS, params={"status": "locked"})).json() == []
  assert (await client.get("/projects", headers=ADMIN_HEADERS, params={"status": "gone"})).status_code == 400

  res = await client.get(f"/projects/{p['id']}", headers=ADMIN_HEADERS)
  detail = res.json()
  assert [t["name"] for t in detail["tasks"]] == ["Design"]
  assert detail["mondayData"]["client_col"]["text"] == "Acme"
  assert (await client.get("/projects/00000000-0000-0000-0000-000000000001", headers=ADMIN_HEADERS)).status_code == 404
