from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio.audit import write_audit
from studio.deps import get_db, require_admin
from studio.models import CompletedBoard, FlexiDesignCompletedBoard, LeadsBoard
from studio.monday.settings_store import (
  add_completed_board,
  clear_single_board,
  remove_completed_board,
  set_single_board,
)
from studio.schemas import BoardRoleIn, BoardRoleOut

router = APIRouter(prefix="/board-roles", tags=["board-roles"])

_SINGLE_ROLES = {
  "leads": LeadsBoard,
  "flexi-completed": FlexiDesignCompletedBoard,
}


def _role_out(b: CompletedBoard | LeadsBoard | FlexiDesignCompletedBoard) -> BoardRoleOut:
  return BoardRoleOut(id=b.id, mondayBoardId=b.monday_board_id, boardName=b.board_name, createdAt=b.created_at)


@router.get("/completed", response_model=list[BoardRoleOut])
async def list_completed_boards(actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> list[BoardRoleOut]:
  res = await db.execute(select(CompletedBoard).order_by(CompletedBoard.board_name.asc()))
  return [_role_out(b) for b in res.scalars().all()]


@router.post("/completed", response_model=BoardRoleOut)
async def add_completed(
  payload: BoardRoleIn,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> BoardRoleOut:
  row = await add_completed_board(db, monday_board_id=payload.mondayBoardId.strip(), board_name=payload.boardName.strip())
  await write_audit(
    db,
    event_type="monday.board_role.completed.added",
    entity_type="CompletedBoard",
    entity_id=row.id,
    actor=actor,
    payload={"mondayBoardId": row.monday_board_id, "boardName": row.board_name},
  )
  await db.commit()
  return _role_out(row)


@router.delete("/completed/{board_id}")
async def remove_completed(board_id: str, actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> dict:
  removed = await remove_completed_board(db, monday_board_id=board_id)
  if not removed:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Completed board not found")
  await write_audit(
    db,
    event_type="monday.board_role.completed.removed",
    entity_type="CompletedBoard",
    entity_id=None,
    actor=actor,
    payload={"mondayBoardId": board_id},
  )
  await db.commit()
  return {"ok": True}


def _single_model(role: str) -> type[LeadsBoard] | type[FlexiDesignCompletedBoard]:
  model = _SINGLE_ROLES.get(role)
  if model is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown board role")
  return model


@router.get("/{role}", response_model=BoardRoleOut | None)
async def get_single_role(role: str, actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> BoardRoleOut | None:
  model = _single_model(role)
  res = await db.execute(select(model).order_by(model.created_at.desc()).limit(1))
  row = res.scalar_one_or_none()
  return _role_out(row) if row else None


@router.put("/{role}", response_model=BoardRoleOut)
async def set_single_role(
  role: str,
  payload: BoardRoleIn,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> BoardRoleOut:
  model = _single_model(role)
  row = await set_single_board(db, model, monday_board_id=payload.mondayBoardId.strip(), board_name=payload.boardName.strip())
  await write_audit(
    db,
    event_type=f"monday.board_role.{role}.set",
    entity_type=model.__name__,
    entity_id=row.id,
    actor=actor,
    payload={"mondayBoardId": row.monday_board_id, "boardName": row.board_name},
  )
  await db.commit()
  return _role_out(row)


@router.delete("/{role}")
async def clear_single_role(role: str, actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> dict:
  model = _single_model(role)
  removed = await clear_single_board(db, model)
  await write_audit(
    db,
    event_type=f"monday.board_role.{role}.cleared",
    entity_type=model.__name__,
    entity_id=None,
    actor=actor,
    payload={"removed": removed},
  )
  await db.commit()
  return {"ok": True, "removed": removed}
