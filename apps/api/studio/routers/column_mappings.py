from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio.audit import write_audit
from studio.deps import get_db, require_admin
from studio.models import ColumnMapping
from studio.monday.service import backfill_quote_values
from studio.monday.settings_store import delete_column_mappings, list_column_mappings, save_column_mapping
from studio.schemas import ColumnMappingIn, ColumnMappingOut, QuoteBackfillOut

router = APIRouter(prefix="/column-mappings", tags=["column-mappings"])


def _mapping_out(m: ColumnMapping) -> ColumnMappingOut:
  return ColumnMappingOut(
    id=m.id,
    columnType=m.column_type,
    mondayColumnId=m.monday_column_id,
    boardId=m.board_id,
    workspaceId=m.workspace_id,
    createdAt=m.created_at,
    updatedAt=m.updated_at,
  )


@router.get("", response_model=list[ColumnMappingOut])
async def list_mappings(
  boardId: str | None = None,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> list[ColumnMappingOut]:
  rows = await list_column_mappings(db, board_id=(boardId or "").strip() or None)
  return [_mapping_out(m) for m in rows]


@router.post("", response_model=ColumnMappingOut)
async def save_mapping(
  payload: ColumnMappingIn,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> ColumnMappingOut:
  row, created = await save_column_mapping(
    db,
    column_type=payload.columnType,
    monday_column_id=payload.mondayColumnId.strip(),
    board_id=payload.boardId,
    workspace_id=payload.workspaceId,
  )
  await write_audit(
    db,
    event_type="monday.column_mapping.created" if created else "monday.column_mapping.updated",
    entity_type="ColumnMapping",
    entity_id=row.id,
    actor=actor,
    payload={"columnType": row.column_type, "mondayColumnId": row.monday_column_id, "boardId": row.board_id},
  )
  await db.commit()
  return _mapping_out(row)


@router.delete("")
async def delete_mappings(
  boardId: str | None = None,
  scope: str | None = None,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> dict:
  board_id = (boardId or "").strip() or None
  if board_id is None and scope != "global":
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Pass boardId, or scope=global to clear global mappings")
  removed = await delete_column_mappings(db, board_id=board_id)
  await write_audit(
    db,
    event_type="monday.column_mapping.deleted",
    entity_type="ColumnMapping",
    entity_id=None,
    actor=actor,
    payload={"boardId": board_id, "removed": removed},
  )
  await db.commit()
  return {"ok": True, "removed": removed}


@router.post("/backfill-quote-value", response_model=QuoteBackfillOut)
async def backfill_quote_value(
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> QuoteBackfillOut:
  counts = await backfill_quote_values(db, actor=actor)
  await db.commit()
  return QuoteBackfillOut(**counts)
