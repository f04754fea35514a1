from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio.audit import write_audit
from studio.db import SessionLocal
from studio.deps import get_db, require_admin
from studio.models import SyncRun
from studio.monday.client import monday_list_boards_with_columns, monday_ping
from studio.monday.service import sync_monday_data
from studio.monday.settings_store import resolve_monday_auth
from studio.schemas import ErrorEvent, MondayBoardOut, MondayColumnOut, MondaySyncIn, MondayTestOut, SyncRunOut
from studio.sse import STREAM_HEADERS, format_sse, format_sse_comment

router = APIRouter(prefix="/monday", tags=["monday"])


def run_out(r: SyncRun) -> SyncRunOut:
  return SyncRunOut(
    id=r.id,
    mode=r.mode,
    trigger=r.trigger,
    avoidDeletion=r.avoid_deletion,
    status=r.status,
    projectsSynced=r.projects_synced,
    archived=r.archived,
    deleted=r.deleted,
    tasksSynced=r.tasks_synced,
    tasksDeleted=r.tasks_deleted,
    tasksRetained=r.tasks_retained,
    malformedCells=r.malformed_cells,
    startedAt=r.started_at,
    finishedAt=r.finished_at,
    log=list(r.log or []),
    errorMessage=r.error_message,
  )


@router.post("/sync", response_model=SyncRunOut)
async def sync_now(
  payload: MondaySyncIn | None = None,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> SyncRunOut:
  body = payload or MondaySyncIn()
  run = await sync_monday_data(
    db,
    sync_all_boards=body.fullResync,
    avoid_deletion=body.avoidDeletion,
    trigger="manual",
    actor=actor,
  )
  return run_out(run)


@router.post("/sync/stream")
async def sync_stream(payload: MondaySyncIn | None = None, actor: str = Depends(require_admin)) -> StreamingResponse:
  body = payload or MondaySyncIn()
  queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

  async def _push(event: Any) -> None:
    await queue.put(event.model_dump())

  async def _worker() -> None:
    try:
      async with SessionLocal() as stream_db:
        await sync_monday_data(
          stream_db,
          sync_all_boards=body.fullResync,
          avoid_deletion=body.avoidDeletion,
          trigger="stream",
          actor=actor,
          on_progress=_push,
        )
    except Exception as e:
      await queue.put(ErrorEvent(message=str(e) or "Sync failed").model_dump())
    finally:
      await queue.put(None)

  async def event_generator() -> AsyncIterator[str]:
    yield format_sse_comment("sync")
    task = asyncio.create_task(_worker())
    try:
      while True:
        event = await queue.get()
        if event is None:
          break
        yield format_sse(event)
    finally:
      await task

  return StreamingResponse(event_generator(), media_type="text/event-stream", headers=STREAM_HEADERS)


@router.get("/sync-runs", response_model=list[SyncRunOut])
async def list_sync_runs(
  limit: int = Query(default=20, ge=1, le=200),
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> list[SyncRunOut]:
  res = await db.execute(select(SyncRun).order_by(SyncRun.started_at.desc()).limit(limit))
  return [run_out(r) for r in res.scalars().all()]


@router.delete("/sync-runs")
async def clear_sync_runs(actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> dict:
  res = await db.execute(delete(SyncRun).where(SyncRun.status != "running"))
  removed = int(res.rowcount or 0)
  await write_audit(
    db,
    event_type="monday.sync_runs.cleared",
    entity_type="SyncRun",
    entity_id=None,
    actor=actor,
    payload={"removed": removed},
  )
  await db.commit()
  return {"ok": True, "removed": removed}


@router.get("/boards", response_model=list[MondayBoardOut])
async def list_boards(
  workspaceId: str | None = None,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> list[MondayBoardOut]:
  auth = await resolve_monday_auth(db)
  boards = await monday_list_boards_with_columns(auth=auth, workspace_id=workspaceId)
  out: list[MondayBoardOut] = []
  for b in boards:
    ws = b.get("workspace") or {}
    out.append(
      MondayBoardOut(
        id=str(b.get("id")),
        name=str(b.get("name") or ""),
        workspaceId=str(ws["id"]) if ws.get("id") is not None else None,
        workspaceName=ws.get("name"),
        columns=[
          MondayColumnOut(id=str(c.get("id")), title=str(c.get("title") or ""), type=str(c.get("type") or ""))
          for c in b.get("columns") or []
          if isinstance(c, dict)
        ],
      )
    )
  return out


@router.post("/test", response_model=MondayTestOut)
async def test_connection(actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> MondayTestOut:
  auth = await resolve_monday_auth(db)
  me = await monday_ping(auth=auth)
  return MondayTestOut(ok=True, accountName=me.get("name"), message="Connected to Monday.com")
