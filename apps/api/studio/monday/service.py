from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from studio.audit import write_audit
from studio.config import settings
from studio.models import ColumnMapping, Project, SyncRun, Task, TimeEntry
from studio.monday.client import MondayAuth, MondayNotConfiguredError
from studio.monday.columns import MappingIndex
from studio.monday.extract import extract_number, value_or_none
from studio.monday.fetch import MalformedCell, MondayProject, MondayTask, get_monday_projects, get_monday_tasks
from studio.monday.settings_store import (
  BoardRoles,
  get_sync_settings,
  load_board_roles,
  resolve_monday_auth,
  schedule_next_sync,
)
from studio.schemas import CheckingEvent, CompleteEvent, ErrorEvent, FetchingEvent, SyncingEvent

ProgressCallback = Callable[[Any], Any]


def _log(run: SyncRun, level: str, message: str) -> None:
  run.log = list(run.log or []) + [{"at": datetime.now(timezone.utc).isoformat(), "level": level, "message": message}]


def _error_text(exc: Exception) -> str:
  message = str(exc).strip()
  if message:
    return f"{exc.__class__.__name__}: {message}"
  return exc.__class__.__name__


async def _report(on_progress: ProgressCallback | None, event: Any) -> None:
  if on_progress is None:
    return
  res = on_progress(event)
  if inspect.isawaitable(res):
    await res


def _record_malformed(run: SyncRun, cells: list[MalformedCell]) -> None:
  if not cells:
    return
  already = int(run.malformed_cells or 0)
  run.malformed_cells = already + len(cells)
  room = max(0, settings.monday_malformed_log_limit - already)
  for c in cells[:room]:
    _log(run, "warn", f"Unreadable {c.field} on item {c.item_id}: {str(c.raw)[:120]!r} ({c.reason})")


def classify_project_status(board_id: str, *, roles: BoardRoles, active_board_ids: set[str]) -> str:
  if roles.leads_board_id and board_id == roles.leads_board_id:
    return "lead"
  if board_id in active_board_ids:
    return "active"
  if board_id in roles.locked_board_ids():
    return "locked"
  return "archived"


def guard_status_transition(previous: str | None, classified: str) -> str:
  """Statuses only move forward: lead -> active -> locked."""
  if previous == "locked":
    return "locked"
  if previous == "active" and classified == "lead":
    return "active"
  return classified


def active_board_ids_for(index: MappingIndex, roles: BoardRoles) -> set[str]:
  out = index.mapped_board_ids() - roles.locked_board_ids()
  if roles.leads_board_id:
    out.discard(roles.leads_board_id)
  return out


async def _project_has_time_entries(db: AsyncSession, project_id: str) -> bool:
  task_ids = select(Task.id).where(Task.project_id == project_id)
  res = await db.execute(
    select(exists().where(or_(TimeEntry.project_id == project_id, TimeEntry.task_id.in_(task_ids))))
  )
  return bool(res.scalar())


async def _task_has_time_entries(db: AsyncSession, task_id: str) -> bool:
  res = await db.execute(select(exists().where(TimeEntry.task_id == task_id)))
  return bool(res.scalar())


async def sweep_orphan_projects(
  db: AsyncSession,
  *,
  run: SyncRun,
  remote_item_ids: set[str],
  roles: BoardRoles,
) -> tuple[int, int]:
  locked_boards = roles.locked_board_ids()
  archived = 0
  deleted = 0
  res = await db.execute(select(Project).order_by(Project.created_at.asc()))
  for p in res.scalars().all():
    if p.monday_item_id in remote_item_ids:
      continue
    # completed-board items are only fetched by id; a miss there is not proof of removal
    if p.monday_board_id in locked_boards or p.status == "locked":
      continue
    if await _project_has_time_entries(db, p.id):
      if p.status != "archived":
        p.status = "archived"
        archived += 1
        _log(run, "info", f"Archived {p.name} ({p.monday_item_id}): gone from Monday.com, has time entries")
      continue
    await db.delete(p)
    deleted += 1
    _log(run, "info", f"Deleted {p.name} ({p.monday_item_id}): gone from Monday.com")
  await db.flush()
  return archived, deleted


async def reconcile_project(
  db: AsyncSession,
  *,
  candidate: MondayProject,
  roles: BoardRoles,
  index: MappingIndex,
  active_board_ids: set[str],
) -> Project:
  classified = classify_project_status(candidate.board_id, roles=roles, active_board_ids=active_board_ids)
  res = await db.execute(select(Project).where(Project.monday_item_id == candidate.item_id))
  existing = res.scalar_one_or_none()
  status = guard_status_transition(existing.status if existing else None, classified)

  quote_value = candidate.quote_value or None
  if existing is not None and existing.status == "locked" and not quote_value:
    quote_value = existing.quote_value or None
    if not quote_value and existing.monday_data:
      column_id = index.resolve(existing.monday_board_id, "quote_value", candidate.board_name)
      if column_id:
        quote_value = value_or_none(extract_number(existing.monday_data.get(column_id)))

  project = existing
  if project is None:
    project = Project(monday_item_id=candidate.item_id, quoted_hours=None)
    db.add(project)
  project.monday_board_id = candidate.board_id
  project.name = candidate.name
  project.client_name = candidate.client_name
  project.agency = candidate.agency
  project.completed_date = candidate.completed_date
  project.due_date = candidate.due_date
  project.quote_value = quote_value
  project.monday_data = dict(candidate.column_values)
  project.status = status
  await db.flush()
  return project


async def backfill_quote_values(db: AsyncSession, *, actor: str | None = None) -> dict[str, int]:
  """
  Fill empty project quote values from the stored monday_data, for rows
  synced before a quote_value mapping existed. No remote calls are made.
  """
  res = await db.execute(select(ColumnMapping).where(ColumnMapping.column_type == "quote_value"))
  mappings = res.scalars().all()
  if not mappings:
    raise MondayNotConfiguredError("No quote_value column mappings are configured")
  roles = await load_board_roles(db)
  index = MappingIndex.build(mappings, board_names=roles.board_names, completed_board_ids=roles.locked_board_ids(), families=())

  updated = 0
  skipped = 0
  pres = await db.execute(select(Project).order_by(Project.created_at.asc()))
  projects = list(pres.scalars().all())
  for p in projects:
    if p.quote_value is not None or not p.monday_data:
      skipped += 1
      continue
    column_id = index.resolve(
      p.monday_board_id,
      "quote_value",
      require_board_specific=p.monday_board_id in index.completed_board_ids,
    )
    value = value_or_none(extract_number(p.monday_data.get(column_id))) if column_id else None
    if not value:
      skipped += 1
      continue
    p.quote_value = value
    updated += 1

  await write_audit(
    db,
    event_type="monday.quote_value.backfilled",
    entity_type="Project",
    entity_id=None,
    actor=actor,
    payload={"updated": updated, "skipped": skipped},
  )
  await db.flush()
  return {"updated": updated, "skipped": skipped, "total": len(projects)}


async def reconcile_tasks(
  db: AsyncSession,
  *,
  run: SyncRun,
  project: Project,
  tasks: list[MondayTask],
) -> tuple[int, int, int]:
  is_locked = project.status == "locked"
  res = await db.execute(select(Task).where(Task.project_id == project.id))
  existing_rows = list(res.scalars().all())
  by_item = {t.monday_item_id: t for t in existing_rows}

  total_hours = 0.0
  synced_ids: set[str] = set()
  for t in tasks:
    row = by_item.get(t.item_id)
    if row is None:
      # subitem may have moved here from another project
      mres = await db.execute(select(Task).where(Task.monday_item_id == t.item_id))
      row = mres.scalar_one_or_none()

    hours = t.quoted_hours
    if is_locked and row is not None and row.project_id == project.id and not hours:
      hours = row.quoted_hours or None
    if hours:
      total_hours += float(hours)

    if row is None:
      row = Task(monday_item_id=t.item_id, project_id=project.id)
      db.add(row)
    by_item[t.item_id] = row
    row.project_id = project.id
    row.name = t.name
    row.is_subtask = True
    row.assigned_user_ids = list(t.assigned_user_ids)
    row.quoted_hours = hours
    row.timeline_start = t.timeline_start
    row.timeline_end = t.timeline_end
    row.monday_data = dict(t.column_values)
    synced_ids.add(t.item_id)

  # a zero sum never clears a recorded budget
  if total_hours > 0:
    project.quoted_hours = round(total_hours, 2)

  deleted = 0
  retained = 0
  for row in existing_rows:
    if row.monday_item_id in synced_ids:
      continue
    if await _task_has_time_entries(db, row.id):
      retained += 1
      _log(run, "info", f"Kept task {row.name} ({row.monday_item_id}) on {project.name}: has time entries")
      continue
    await db.delete(row)
    deleted += 1
  await db.flush()
  return len(synced_ids), deleted, retained


async def start_sync_run(
  db: AsyncSession,
  *,
  sync_all_boards: bool,
  avoid_deletion: bool,
  trigger: str,
  actor: str | None,
) -> SyncRun:
  run = SyncRun(
    mode="full" if sync_all_boards else "quick",
    trigger=trigger,
    avoid_deletion=avoid_deletion,
    status="running",
    log=[],
  )
  db.add(run)
  await db.flush()
  await write_audit(
    db,
    event_type="monday.sync.started",
    entity_type="SyncRun",
    entity_id=run.id,
    actor=actor,
    payload={"mode": run.mode, "trigger": trigger, "avoidDeletion": avoid_deletion},
  )
  await db.commit()
  return run


async def sync_monday_data(
  db: AsyncSession,
  *,
  auth: MondayAuth | None = None,
  sync_all_boards: bool = False,
  avoid_deletion: bool = True,
  trigger: str = "manual",
  actor: str | None = None,
  on_progress: ProgressCallback | None = None,
) -> SyncRun:
  run = await start_sync_run(
    db,
    sync_all_boards=sync_all_boards,
    avoid_deletion=avoid_deletion,
    trigger=trigger,
    actor=actor,
  )
  await _run_sync(db, run=run, auth=auth, sync_all_boards=sync_all_boards, avoid_deletion=avoid_deletion, actor=actor, on_progress=on_progress)
  return run


async def _run_sync(
  db: AsyncSession,
  *,
  run: SyncRun,
  auth: MondayAuth | None,
  sync_all_boards: bool,
  avoid_deletion: bool,
  actor: str | None,
  on_progress: ProgressCallback | None,
) -> None:
  try:
    if auth is None:
      auth = await resolve_monday_auth(db)

    await _report(
      on_progress,
      FetchingEvent(
        message="Fetching all boards from Monday.com..." if sync_all_boards else "Fetching projects from Monday.com...",
        progress=0,
      ),
    )
    fetch = await get_monday_projects(db, auth=auth, include_completed=True, sync_all_boards=sync_all_boards)
    _record_malformed(run, fetch.malformed)
    _log(run, "info", f"Fetched {len(fetch.projects)} items from Monday.com")

    await _report(on_progress, CheckingEvent(message="Checking for removed projects...", progress=0.05))
    active_board_ids = active_board_ids_for(fetch.index, fetch.roles)

    if avoid_deletion:
      _log(run, "info", "Removal sweep skipped (avoid deletion)")
    elif not fetch.configured:
      _log(run, "warn", "Removal sweep skipped: no boards are mapped")
    else:
      archived, deleted = await sweep_orphan_projects(
        db,
        run=run,
        remote_item_ids={p.item_id for p in fetch.projects},
        roles=fetch.roles,
      )
      run.archived = archived
      run.deleted = deleted
      await db.commit()

    total = len(fetch.projects)
    for i, candidate in enumerate(fetch.projects):
      await _report(
        on_progress,
        SyncingEvent(
          message=f"Syncing {candidate.name}",
          projectIndex=i + 1,
          totalProjects=total,
          projectName=candidate.name,
          progress=0.1 + 0.85 * (i / max(1, total)),
        ),
      )
      project = await reconcile_project(
        db,
        candidate=candidate,
        roles=fetch.roles,
        index=fetch.index,
        active_board_ids=active_board_ids,
      )
      cells: list[MalformedCell] = []
      tasks = await get_monday_tasks(
        auth=auth,
        index=fetch.index,
        project_item_id=candidate.item_id,
        board_id=candidate.board_id,
        board_name=candidate.board_name,
        malformed=cells,
      )
      synced, deleted_tasks, retained = await reconcile_tasks(db, run=run, project=project, tasks=tasks)
      _record_malformed(run, cells)
      run.projects_synced = int(run.projects_synced or 0) + 1
      run.tasks_synced = int(run.tasks_synced or 0) + synced
      run.tasks_deleted = int(run.tasks_deleted or 0) + deleted_tasks
      run.tasks_retained = int(run.tasks_retained or 0) + retained
      await db.commit()

    run.status = "success"
    run.finished_at = datetime.now(timezone.utc)
    _log(
      run,
      "info",
      f"Done projects={run.projects_synced} archived={run.archived} deleted={run.deleted} "
      f"tasks={run.tasks_synced} tasksDeleted={run.tasks_deleted} tasksRetained={run.tasks_retained}",
    )
    await write_audit(
      db,
      event_type="monday.sync.completed",
      entity_type="SyncRun",
      entity_id=run.id,
      actor=actor,
      payload={"projectsSynced": run.projects_synced, "archived": run.archived, "deleted": run.deleted},
    )
    await db.commit()
    await _report(
      on_progress,
      CompleteEvent(
        message="Sync complete",
        progress=1,
        projectsSynced=run.projects_synced,
        archived=run.archived,
        deleted=run.deleted,
      ),
    )
  except Exception as e:
    err = _error_text(e)
    await db.rollback()
    await db.refresh(run)
    run.status = "error"
    run.error_message = err
    run.finished_at = datetime.now(timezone.utc)
    _log(run, "error", f"Sync error: {err}")
    await write_audit(
      db,
      event_type="monday.sync.error",
      entity_type="SyncRun",
      entity_id=run.id,
      actor=actor,
      payload={"error": err},
    )
    await db.commit()
    await _report(on_progress, ErrorEvent(message=str(e) or "Sync failed"))


async def run_scheduled_sync(db: AsyncSession, *, trigger: str, force: bool = False) -> SyncRun | None:
  """
  Cron/auto-sync entry point. Uses the stored deletion policy and pushes the
  schedule forward whatever the outcome. Returns None when auto-sync is off.
  """
  row = await get_sync_settings(db)
  if not row.enabled and not force:
    await db.commit()
    return None
  avoid_deletion = bool(row.avoid_deletion)
  run = await sync_monday_data(db, avoid_deletion=avoid_deletion, trigger=trigger, actor=trigger)
  row = await get_sync_settings(db)
  schedule_next_sync(row)
  await db.commit()
  return run


def is_sync_due(row: Any, *, now: datetime | None = None) -> bool:
  if not row.enabled:
    return False
  if row.next_sync_at is None:
    return True
  now = now or datetime.now(timezone.utc)
  nxt = row.next_sync_at
  if nxt.tzinfo is None:
    nxt = nxt.replace(tzinfo=timezone.utc)
  return nxt <= now
