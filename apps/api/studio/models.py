from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

SYNC_SETTINGS_ID = "00000000-0000-0000-0000-000000000000"

JsonDoc = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def _uuid() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class ColumnMapping(Base):
  __tablename__ = "monday_column_mappings"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  column_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  monday_column_id: Mapped[str] = mapped_column(String, nullable=False)
  board_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  workspace_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class CompletedBoard(Base):
  __tablename__ = "monday_completed_boards"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  monday_board_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  board_name: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class LeadsBoard(Base):
  __tablename__ = "monday_leads_board"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  monday_board_id: Mapped[str] = mapped_column(String, nullable=False)
  board_name: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class FlexiDesignCompletedBoard(Base):
  __tablename__ = "flexi_design_completed_board"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  monday_board_id: Mapped[str] = mapped_column(String, nullable=False)
  board_name: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "monday_projects"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  monday_item_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  monday_board_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  client_name: Mapped[str | None] = mapped_column(String, nullable=True)
  agency: Mapped[str | None] = mapped_column(String, nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="active")
  quoted_hours: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
  quote_value: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
  completed_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  monday_data: Mapped[dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "monday_tasks"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  monday_item_id: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  project_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("monday_projects.id", ondelete="CASCADE"), nullable=False, index=True
  )
  name: Mapped[str] = mapped_column(String, nullable=False)
  is_subtask: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  assigned_user_ids: Mapped[list[str]] = mapped_column(JsonDoc, nullable=False, default=list)
  quoted_hours: Mapped[float | None] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)
  timeline_start: Mapped[date | None] = mapped_column(Date, nullable=True)
  timeline_end: Mapped[date | None] = mapped_column(Date, nullable=True)
  monday_data: Mapped[dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class TimeEntry(Base):
  __tablename__ = "time_entries"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  project_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("monday_projects.id", ondelete="RESTRICT"), nullable=False, index=True
  )
  task_id: Mapped[str | None] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("monday_tasks.id", ondelete="RESTRICT"), nullable=True, index=True
  )
  entry_date: Mapped[date] = mapped_column("date", Date, nullable=False)
  hours: Mapped[float] = mapped_column(Numeric(6, 2, asdecimal=False), nullable=False)
  notes: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class SyncSettings(Base):
  __tablename__ = "monday_sync_settings"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=lambda: SYNC_SETTINGS_ID)
  enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  interval_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
  avoid_deletion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  next_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  api_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
  token_hint: Mapped[str] = mapped_column(String, nullable=False, default="")
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class SyncRun(Base):
  __tablename__ = "sync_runs"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  mode: Mapped[str] = mapped_column(String, nullable=False, default="quick")
  trigger: Mapped[str] = mapped_column(String, nullable=False, default="manual")
  avoid_deletion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default="running")
  projects_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  archived: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  deleted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  tasks_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  tasks_deleted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  tasks_retained: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  malformed_cells: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  log: Mapped[list[dict[str, Any]]] = mapped_column(JsonDoc, nullable=False, default=list)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
  actor: Mapped[str | None] = mapped_column(String, nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JsonDoc, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
