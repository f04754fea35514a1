from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import select

import studio.routers.sync_settings as sync_settings_router
from studio.db import SessionLocal
from studio.models import AuditEvent, Project, SyncSettings
from tests.conftest import ADMIN_HEADERS


@pytest.mark.anyio
async def test_admin_routes_require_bearer_token(client: AsyncClient) -> None:
  res = await client.get("/column-mappings")
  assert res.status_code == 401
  res = await client.get("/column-mappings", headers={"Authorization": "Bearer nope"})
  assert res.status_code == 401
  assert res.json()["detail"] == "Invalid token"
  assert (await client.get("/health")).json() == {"ok": True}


@pytest.mark.anyio
async def test_column_mapping_upsert_and_board_view(client: AsyncClient) -> None:
  res = await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "client", "mondayColumnId": "text_global"})
  assert res.status_code == 200, res.text
  assert res.json()["boardId"] is None

  res = await client.post(
    "/column-mappings",
    headers=ADMIN_HEADERS,
    json={"columnType": "client", "mondayColumnId": "text_board", "boardId": "100"},
  )
  first_id = res.json()["id"]
  res = await client.post(
    "/column-mappings",
    headers=ADMIN_HEADERS,
    json={"columnType": "client", "mondayColumnId": "text_board_v2", "boardId": "100"},
  )
  assert res.json()["id"] == first_id
  assert res.json()["mondayColumnId"] == "text_board_v2"
  await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "agency", "mondayColumnId": "text_agency"})

  res = await client.get("/column-mappings", headers=ADMIN_HEADERS, params={"boardId": "100"})
  view = {m["columnType"]: m["mondayColumnId"] for m in res.json()}
  assert view == {"agency": "text_agency", "client": "text_board_v2"}

  assert len((await client.get("/column-mappings", headers=ADMIN_HEADERS)).json()) == 3

  async with SessionLocal() as db:
    res = await db.execute(select(AuditEvent.event_type).where(AuditEvent.entity_id == first_id))
    assert sorted(res.scalars().all()) == ["monday.column_mapping.created", "monday.column_mapping.updated"]


@pytest.mark.anyio
async def test_column_mapping_rejects_unknown_type_and_scoped_delete(client: AsyncClient) -> None:
  res = await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "budget", "mondayColumnId": "x"})
  assert res.status_code == 422

  await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "client", "mondayColumnId": "g"})
  await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "client", "mondayColumnId": "b", "boardId": "100"})

  assert (await client.delete("/column-mappings", headers=ADMIN_HEADERS)).status_code == 400
  res = await client.delete("/column-mappings", headers=ADMIN_HEADERS, params={"boardId": "100"})
  assert res.json() == {"ok": True, "removed": 1}
  res = await client.delete("/column-mappings", headers=ADMIN_HEADERS, params={"scope": "global"})
  assert res.json() == {"ok": True, "removed": 1}


@pytest.mark.anyio
async def test_board_roles_completed_and_single_roles(client: AsyncClient) -> None:
  res = await client.post("/board-roles/completed", headers=ADMIN_HEADERS, json={"mondayBoardId": "300", "boardName": "Completed"})
  assert res.status_code == 200, res.text
  await client.post("/board-roles/completed", headers=ADMIN_HEADERS, json={"mondayBoardId": "300", "boardName": "Done 2025"})
  res = await client.get("/board-roles/completed", headers=ADMIN_HEADERS)
  assert [(b["mondayBoardId"], b["boardName"]) for b in res.json()] == [("300", "Done 2025")]

  assert (await client.delete("/board-roles/completed/300", headers=ADMIN_HEADERS)).status_code == 200
  assert (await client.delete("/board-roles/completed/300", headers=ADMIN_HEADERS)).status_code == 404

  await client.put("/board-roles/leads", headers=ADMIN_HEADERS, json={"mondayBoardId": "500", "boardName": "Leads"})
  await client.put("/board-roles/leads", headers=ADMIN_HEADERS, json={"mondayBoardId": "501", "boardName": "Leads 2026"})
  res = await client.get("/board-roles/leads", headers=ADMIN_HEADERS)
  assert res.json()["mondayBoardId"] == "501"

  assert (await client.get("/board-roles/flexi-completed", headers=ADMIN_HEADERS)).json() is None
  assert (await client.get("/board-roles/archive", headers=ADMIN_HEADERS)).status_code == 404

  res = await client.delete("/board-roles/leads", headers=ADMIN_HEADERS)
  assert res.json() == {"ok": True, "removed": 1}


@pytest.mark.anyio
async def test_sync_settings_defaults_and_token_storage(client: AsyncClient, monkeypatch) -> None:  # type: ignore[no-untyped-def]
  monkeypatch.setattr(sync_settings_router.settings, "monday_api_token", None)
  res = await client.get("/sync/settings", headers=ADMIN_HEADERS)
  assert res.status_code == 200, res.text
  body = res.json()
  assert (body["enabled"], body["intervalMinutes"], body["avoidDeletion"]) == (False, 60, True)
  assert body["tokenSource"] == "none"

  res = await client.patch(
    "/sync/settings",
    headers=ADMIN_HEADERS,
    json={"enabled": True, "intervalMinutes": 15, "apiToken": "eyJhbGciOiJIUzI1NiJ9.secret-abcdef"},
  )
  body = res.json()
  assert body["enabled"] is True
  assert body["intervalMinutes"] == 15
  assert body["tokenSource"] == "stored"
  assert body["tokenHint"] == "…abcdef"

  async with SessionLocal() as db:
    row = (await db.execute(select(SyncSettings))).scalar_one()
    assert row.api_token_encrypted and "secret" not in row.api_token_encrypted

  res = await client.patch("/sync/settings", headers=ADMIN_HEADERS, json={"intervalMinutes": 0})
  assert res.status_code == 422


@pytest.mark.anyio
async def test_sync_settings_flags_token_that_cannot_be_decrypted(client: AsyncClient) -> None:
  await client.get("/sync/settings", headers=ADMIN_HEADERS)
  async with SessionLocal() as db:
    row = (await db.execute(select(SyncSettings))).scalar_one()
    row.api_token_encrypted = "not-a-valid-fernet-token"
    await db.commit()

  res = await client.get("/sync/settings", headers=ADMIN_HEADERS)
  assert res.json()["needsReconnect"] is True

  res = await client.post("/monday/test", headers=ADMIN_HEADERS)
  assert res.status_code == 400, res.text
  assert "cannot be decrypted" in str(res.json().get("detail", "")).lower()


@pytest.mark.anyio
async def test_backfill_quote_value_from_stored_column_data(client: AsyncClient) -> None:
  res = await client.post("/column-mappings/backfill-quote-value", headers=ADMIN_HEADERS)
  assert res.status_code == 400
  assert "quote_value" in res.json()["detail"]

  await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "quote_value", "mondayColumnId": "quote_b", "boardId": "100"})
  await client.post("/column-mappings", headers=ADMIN_HEADERS, json={"columnType": "quote_value", "mondayColumnId": "quote_g"})
  await client.post("/board-roles/completed", headers=ADMIN_HEADERS, json={"mondayBoardId": "300", "boardName": "Completed"})
  async with SessionLocal() as db:
    db.add_all(
      [
        Project(monday_item_id="1", monday_board_id="100", name="Board mapped", monday_data={"quote_b": {"text": "£1,250.00", "value": None}}),
        Project(monday_item_id="2", monday_board_id="200", name="Global mapped", monday_data={"quote_g": {"text": "900", "value": 900}}),
        Project(monday_item_id="3", monday_board_id="100", name="Already set", quote_value=500, monday_data={"quote_b": {"text": "1", "value": 1}}),
        Project(monday_item_id="4", monday_board_id="300", name="Completed", status="locked", monday_data={"quote_g": {"text": "700", "value": 700}}),
        Project(monday_item_id="5", monday_board_id="100", name="Zero", monday_data={"quote_b": {"text": "0", "value": 0}}),
      ]
    )
    await db.commit()

  res = await client.post("/column-mappings/backfill-quote-value", headers=ADMIN_HEADERS)
  assert res.status_code == 200, res.text
  assert res.json() == {"updated": 2, "skipped": 3, "total": 5}

  async with SessionLocal() as db:
    rows = (await db.execute(select(Project.monday_item_id, Project.quote_value))).all()
    assert dict(rows) == {"1": 1250, "2": 900, "3": 500, "4": None, "5": None}
    res = await db.execute(select(AuditEvent.payload).where(AuditEvent.event_type == "monday.quote_value.backfilled"))
    assert res.scalar_one() == {"updated": 2, "skipped": 3}
