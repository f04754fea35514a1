from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

ColumnType = Literal["client", "quoted_hours", "timeline", "due_date", "completed_date", "quote_value", "agency"]


def _blank_to_none(value: object) -> object:
  if isinstance(value, str):
    s = value.strip()
    return s or None
  return value


class ColumnMappingIn(BaseModel):
  columnType: ColumnType
  mondayColumnId: str = Field(min_length=1, max_length=200)
  boardId: str | None = None
  workspaceId: str | None = None

  @field_validator("boardId", "workspaceId", mode="before")
  @classmethod
  def _strip_ids(cls, v: object) -> object:
    return _blank_to_none(v)


class ColumnMappingOut(BaseModel):
  id: str
  columnType: str
  mondayColumnId: str
  boardId: str | None
  workspaceId: str | None
  createdAt: datetime
  updatedAt: datetime


class QuoteBackfillOut(BaseModel):
  updated: int
  skipped: int
  total: int


class BoardRoleIn(BaseModel):
  mondayBoardId: str = Field(min_length=1, max_length=64)
  boardName: str = Field(min_length=1, max_length=300)


class BoardRoleOut(BaseModel):
  id: str
  mondayBoardId: str
  boardName: str
  createdAt: datetime


class SyncSettingsOut(BaseModel):
  enabled: bool
  intervalMinutes: int
  avoidDeletion: bool
  lastSyncAt: datetime | None
  nextSyncAt: datetime | None
  tokenSource: Literal["stored", "environment", "none"]
  tokenHint: str
  needsReconnect: bool = False


class SyncSettingsUpdateIn(BaseModel):
  enabled: bool | None = None
  intervalMinutes: int | None = Field(default=None, ge=1, le=1440)
  avoidDeletion: bool | None = None
  apiToken: str | None = Field(default=None, max_length=2000)


class MondaySyncIn(BaseModel):
  fullResync: bool = False
  avoidDeletion: bool = True


class SyncRunOut(BaseModel):
  id: str
  mode: str
  trigger: str
  avoidDeletion: bool
  status: str
  projectsSynced: int
  archived: int
  deleted: int
  tasksSynced: int
  tasksDeleted: int
  tasksRetained: int
  malformedCells: int
  startedAt: datetime
  finishedAt: datetime | None
  log: list[dict[str, Any]]
  errorMessage: str | None


class CronSyncOut(BaseModel):
  message: str
  skipped: bool = False
  run: SyncRunOut | None = None


class FetchingEvent(BaseModel):
  phase: Literal["fetching"] = "fetching"
  message: str
  progress: float


class CheckingEvent(BaseModel):
  phase: Literal["checking"] = "checking"
  message: str
  progress: float


class SyncingEvent(BaseModel):
  phase: Literal["syncing"] = "syncing"
  message: str
  projectIndex: int
  totalProjects: int
  projectName: str
  progress: float


class CompleteEvent(BaseModel):
  phase: Literal["complete"] = "complete"
  message: str
  progress: float = 1.0
  projectsSynced: int
  archived: int
  deleted: int


class ErrorEvent(BaseModel):
  phase: Literal["error"] = "error"
  message: str


SyncProgressEvent = Annotated[
  Union[FetchingEvent, CheckingEvent, SyncingEvent, CompleteEvent, ErrorEvent],
  Field(discriminator="phase"),
]

sync_progress_adapter: TypeAdapter[SyncProgressEvent] = TypeAdapter(SyncProgressEvent)


class TaskOut(BaseModel):
  id: str
  mondayItemId: str
  projectId: str
  name: str
  isSubtask: bool
  assignedUserIds: list[str]
  quotedHours: float | None
  timelineStart: date | None
  timelineEnd: date | None
  updatedAt: datetime


class ProjectOut(BaseModel):
  id: str
  mondayItemId: str
  mondayBoardId: str
  name: str
  clientName: str | None
  agency: str | None
  status: str
  quotedHours: float | None
  quoteValue: float | None
  completedDate: date | None
  dueDate: date | None
  updatedAt: datetime


class ProjectDetailOut(ProjectOut):
  mondayData: dict[str, Any]
  tasks: list[TaskOut]


class MondayColumnOut(BaseModel):
  id: str
  title: str
  type: str


class MondayBoardOut(BaseModel):
  id: str
  name: str
  workspaceId: str | None
  workspaceName: str | None
  columns: list[MondayColumnOut]


class MondayTestOut(BaseModel):
  ok: bool
  accountName: str | None = None
  message: str | None = None
