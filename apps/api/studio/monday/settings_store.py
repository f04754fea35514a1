from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio.config import settings
from studio.models import (
  SYNC_SETTINGS_ID,
  ColumnMapping,
  CompletedBoard,
  FlexiDesignCompletedBoard,
  LeadsBoard,
  SyncSettings,
)
from studio.monday.client import MondayAuth, MondayNotConfiguredError
from studio.security import decrypt_integration_secret


@dataclass
class BoardRoles:
  completed_board_ids: set[str] = field(default_factory=set)
  leads_board_id: str | None = None
  flexi_completed_board_id: str | None = None
  board_names: dict[str, str] = field(default_factory=dict)

  def locked_board_ids(self) -> set[str]:
    out = set(self.completed_board_ids)
    if self.flexi_completed_board_id:
      out.add(self.flexi_completed_board_id)
    return out


async def load_board_roles(db: AsyncSession) -> BoardRoles:
  roles = BoardRoles()
  res = await db.execute(select(CompletedBoard))
  for b in res.scalars().all():
    roles.completed_board_ids.add(b.monday_board_id)
    roles.board_names[b.monday_board_id] = b.board_name
  lres = await db.execute(select(LeadsBoard).order_by(LeadsBoard.created_at.desc()).limit(1))
  lead = lres.scalar_one_or_none()
  if lead:
    roles.leads_board_id = lead.monday_board_id
    roles.board_names[lead.monday_board_id] = lead.board_name
  fres = await db.execute(select(FlexiDesignCompletedBoard).order_by(FlexiDesignCompletedBoard.created_at.desc()).limit(1))
  flexi = fres.scalar_one_or_none()
  if flexi:
    roles.flexi_completed_board_id = flexi.monday_board_id
    roles.board_names[flexi.monday_board_id] = flexi.board_name
  return roles


async def get_sync_settings(db: AsyncSession) -> SyncSettings:
  res = await db.execute(select(SyncSettings).where(SyncSettings.id == SYNC_SETTINGS_ID))
  row = res.scalar_one_or_none()
  if row:
    return row
  row = SyncSettings(id=SYNC_SETTINGS_ID, enabled=False, interval_minutes=60, avoid_deletion=True)
  db.add(row)
  await db.flush()
  return row


def schedule_next_sync(row: SyncSettings, *, now: datetime | None = None) -> None:
  now = now or datetime.now(timezone.utc)
  row.last_sync_at = now
  row.next_sync_at = now + timedelta(minutes=max(1, int(row.interval_minutes)))


async def resolve_monday_auth(db: AsyncSession) -> MondayAuth:
  row = await get_sync_settings(db)
  if row.api_token_encrypted:
    return MondayAuth(token=decrypt_integration_secret(row.api_token_encrypted))
  token = (settings.monday_api_token or "").strip()
  if not token:
    raise MondayNotConfiguredError("Monday.com API token is not configured")
  return MondayAuth(token=token)


async def list_column_mappings(db: AsyncSession, *, board_id: str | None = None) -> list[ColumnMapping]:
  """
  Without a board: every row. With a board: the effective set for that board,
  board-specific rows first and global rows only for types the board leaves unmapped.
  """
  if board_id is None:
    res = await db.execute(select(ColumnMapping).order_by(ColumnMapping.column_type.asc(), ColumnMapping.board_id.asc()))
    return list(res.scalars().all())
  res = await db.execute(
    select(ColumnMapping).where((ColumnMapping.board_id == board_id) | (ColumnMapping.board_id.is_(None)))
  )
  rows = res.scalars().all()
  specific = {m.column_type: m for m in rows if m.board_id}
  out = list(specific.values())
  for m in rows:
    if m.board_id is None and m.column_type not in specific:
      out.append(m)
  return sorted(out, key=lambda m: m.column_type)


async def save_column_mapping(
  db: AsyncSession,
  *,
  column_type: str,
  monday_column_id: str,
  board_id: str | None,
  workspace_id: str | None,
) -> tuple[ColumnMapping, bool]:
  q = select(ColumnMapping).where(ColumnMapping.column_type == column_type)
  q = q.where(ColumnMapping.board_id == board_id) if board_id else q.where(ColumnMapping.board_id.is_(None))
  q = q.where(ColumnMapping.workspace_id == workspace_id) if workspace_id else q.where(ColumnMapping.workspace_id.is_(None))
  res = await db.execute(q)
  existing = res.scalars().first()
  if existing:
    existing.monday_column_id = monday_column_id
    await db.flush()
    return existing, False
  row = ColumnMapping(
    column_type=column_type,
    monday_column_id=monday_column_id,
    board_id=board_id,
    workspace_id=workspace_id,
  )
  db.add(row)
  await db.flush()
  return row, True


async def delete_column_mappings(db: AsyncSession, *, board_id: str | None) -> int:
  stmt = delete(ColumnMapping)
  stmt = stmt.where(ColumnMapping.board_id == board_id) if board_id else stmt.where(ColumnMapping.board_id.is_(None))
  res = await db.execute(stmt)
  return int(res.rowcount or 0)


async def add_completed_board(db: AsyncSession, *, monday_board_id: str, board_name: str) -> CompletedBoard:
  res = await db.execute(select(CompletedBoard).where(CompletedBoard.monday_board_id == monday_board_id))
  row = res.scalar_one_or_none()
  if row:
    row.board_name = board_name
  else:
    row = CompletedBoard(monday_board_id=monday_board_id, board_name=board_name)
    db.add(row)
  await db.flush()
  return row


async def remove_completed_board(db: AsyncSession, *, monday_board_id: str) -> int:
  res = await db.execute(delete(CompletedBoard).where(CompletedBoard.monday_board_id == monday_board_id))
  return int(res.rowcount or 0)


async def set_single_board(
  db: AsyncSession,
  model: type[LeadsBoard] | type[FlexiDesignCompletedBoard],
  *,
  monday_board_id: str,
  board_name: str,
) -> LeadsBoard | FlexiDesignCompletedBoard:
  # single-row tables: replace whatever was there
  await db.execute(delete(model))
  row = model(monday_board_id=monday_board_id, board_name=board_name)
  db.add(row)
  await db.flush()
  return row


async def clear_single_board(db: AsyncSession, model: type[LeadsBoard] | type[FlexiDesignCompletedBoard]) -> int:
  res = await db.execute(delete(model))
  return int(res.rowcount or 0)
