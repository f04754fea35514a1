from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio.deps import get_db, require_admin
from studio.models import Project, Task
from studio.schemas import ProjectDetailOut, ProjectOut, TaskOut

router = APIRouter(prefix="/projects", tags=["projects"])

PROJECT_STATUSES = ("active", "archived", "locked", "lead")


def _project_fields(p: Project) -> dict:
  return {
    "id": p.id,
    "mondayItemId": p.monday_item_id,
    "mondayBoardId": p.monday_board_id,
    "name": p.name,
    "clientName": p.client_name,
    "agency": p.agency,
    "status": p.status,
    "quotedHours": p.quoted_hours,
    "quoteValue": p.quote_value,
    "completedDate": p.completed_date,
    "dueDate": p.due_date,
    "updatedAt": p.updated_at,
  }


def _task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    mondayItemId=t.monday_item_id,
    projectId=t.project_id,
    name=t.name,
    isSubtask=t.is_subtask,
    assignedUserIds=list(t.assigned_user_ids or []),
    quotedHours=t.quoted_hours,
    timelineStart=t.timeline_start,
    timelineEnd=t.timeline_end,
    updatedAt=t.updated_at,
  )


@router.get("", response_model=list[ProjectOut])
async def list_projects(
  status_filter: str | None = Query(default=None, alias="status"),
  clientName: str | None = None,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> list[ProjectOut]:
  q = select(Project)
  if status_filter:
    if status_filter not in PROJECT_STATUSES:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown project status")
    q = q.where(Project.status == status_filter)
  if clientName:
    q = q.where(Project.client_name == clientName)
  res = await db.execute(q.order_by(Project.name.asc()))
  return [ProjectOut(**_project_fields(p)) for p in res.scalars().all()]


@router.get("/{project_id}", response_model=ProjectDetailOut)
async def get_project(project_id: str, actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> ProjectDetailOut:
  res = await db.execute(select(Project).where(Project.id == project_id))
  p = res.scalar_one_or_none()
  if not p:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
  tres = await db.execute(select(Task).where(Task.project_id == p.id).order_by(Task.name.asc()))
  return ProjectDetailOut(
    **_project_fields(p),
    mondayData=dict(p.monday_data or {}),
    tasks=[_task_out(t) for t in tres.scalars().all()],
  )
