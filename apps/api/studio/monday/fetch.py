from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio.config import settings
from studio.models import ColumnMapping, Project
from studio.monday.client import (
  MondayAuth,
  monday_board_directory,
  monday_boards_first_page,
  monday_item_subitems,
  monday_items_by_ids,
  monday_next_items_page,
)
from studio.monday.columns import MappingIndex
from studio.monday.extract import (
  Extracted,
  Malformed,
  Parsed,
  Timeline,
  extract_date,
  extract_hours,
  extract_number,
  extract_people,
  extract_text,
  extract_timeline,
  normalize_column_values,
)
from studio.monday.settings_store import BoardRoles, load_board_roles


@dataclass
class MalformedCell:
  item_id: str
  field: str
  raw: Any
  reason: str


@dataclass
class MondayProject:
  item_id: str
  name: str
  board_id: str
  board_name: str | None
  client_name: str | None = None
  agency: str | None = None
  quote_value: float | None = None
  due_date: date | None = None
  completed_date: date | None = None
  column_values: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class MondayTask:
  item_id: str
  name: str
  parent_item_id: str
  assigned_user_ids: list[str] = field(default_factory=list)
  quoted_hours: float | None = None
  timeline_start: date | None = None
  timeline_end: date | None = None
  column_values: dict[str, dict[str, Any]] = field(default_factory=dict)


@dataclass
class ProjectFetch:
  projects: list[MondayProject]
  index: MappingIndex
  roles: BoardRoles
  configured: bool
  malformed: list[MalformedCell] = field(default_factory=list)


def _take(result: Extracted, *, item_id: str, field_name: str, sink: list[MalformedCell]) -> Any:
  if isinstance(result, Parsed):
    return result.value
  if isinstance(result, Malformed):
    sink.append(MalformedCell(item_id=item_id, field=field_name, raw=result.raw, reason=result.reason))
  return None


def _normalized(item: dict, sink: list[MalformedCell]) -> dict[str, dict[str, Any]]:
  norm = normalize_column_values(item.get("column_values"))
  for m in norm.malformed:
    sink.append(MalformedCell(item_id=str(item.get("id")), field="column_values", raw=m.raw, reason=m.reason))
  return norm.columns


def _project_from_item(
  item: dict,
  *,
  board_id: str,
  board_name: str | None,
  index: MappingIndex,
  sink: list[MalformedCell],
) -> MondayProject:
  item_id = str(item.get("id"))
  cols = _normalized(item, sink)
  on_completed_board = board_id in index.completed_board_ids

  def col(field_name: str, **kw: Any) -> dict | None:
    column_id = index.resolve(board_id, field_name, board_name, **kw)
    return cols.get(column_id) if column_id else None

  completed = _take(extract_date(col("completed_date")), item_id=item_id, field_name="completed_date", sink=sink)
  if completed is None:
    legacy = cols.get(settings.monday_legacy_completed_date_column)
    completed = _take(extract_date(legacy), item_id=item_id, field_name="completed_date", sink=sink)

  return MondayProject(
    item_id=item_id,
    name=str(item.get("name") or ""),
    board_id=board_id,
    board_name=board_name,
    client_name=_take(extract_text(col("client")), item_id=item_id, field_name="client", sink=sink),
    agency=_take(extract_text(col("agency")), item_id=item_id, field_name="agency", sink=sink),
    quote_value=_take(
      extract_number(col("quote_value", require_board_specific=on_completed_board)),
      item_id=item_id,
      field_name="quote_value",
      sink=sink,
    ),
    due_date=_take(extract_date(col("due_date")), item_id=item_id, field_name="due_date", sink=sink),
    completed_date=completed,
    column_values=cols,
  )


async def build_mapping_index(
  db: AsyncSession,
  *,
  auth: MondayAuth,
  roles: BoardRoles,
  include_completed: bool = True,
) -> tuple[MappingIndex, list[str]]:
  """
  First pass: load every mapping and the names of the boards involved.
  Returns the index and the boards in sync scope (mapped boards plus,
  when requested, the completed/Flexi-completed boards).
  """
  res = await db.execute(select(ColumnMapping))
  mappings = res.scalars().all()
  board_scope = {str(m.board_id) for m in mappings if m.board_id}
  if include_completed and mappings:
    board_scope |= roles.locked_board_ids()
  ordered_scope = sorted(board_scope)

  names = dict(roles.board_names)
  families = settings.board_family_list()
  if ordered_scope and families:
    names.update(await monday_board_directory(auth=auth, board_ids=ordered_scope))

  index = MappingIndex.build(
    mappings,
    board_names=names,
    completed_board_ids=roles.locked_board_ids() if include_completed else (),
    families=families,
  )
  return index, ordered_scope


async def get_monday_projects(
  db: AsyncSession,
  *,
  auth: MondayAuth,
  include_completed: bool = True,
  sync_all_boards: bool = False,
) -> ProjectFetch:
  roles = await load_board_roles(db)
  index, board_scope = await build_mapping_index(db, auth=auth, roles=roles, include_completed=include_completed)
  sink: list[MalformedCell] = []
  if not board_scope:
    return ProjectFetch(projects=[], index=index, roles=roles, configured=False, malformed=sink)

  locked_ids = roles.locked_board_ids()
  active_scope = [b for b in board_scope if b not in locked_ids]
  boards_to_scan = board_scope if sync_all_boards else active_scope

  projects: list[MondayProject] = []
  seen: set[str] = set()

  def add(item: dict, board_id: str, board_name: str | None) -> None:
    item_id = str(item.get("id"))
    if item_id in seen:
      return
    seen.add(item_id)
    projects.append(_project_from_item(item, board_id=board_id, board_name=board_name, index=index, sink=sink))

  cursor_queue: list[tuple[str, str | None, str]] = []
  for board in await monday_boards_first_page(auth=auth, board_ids=boards_to_scan):
    board_id = str(board.get("id"))
    board_name = index.board_names.get(board_id) or board.get("name")
    page = board.get("items_page") or {}
    for item in page.get("items") or []:
      add(item, board_id, board_name)
    if page.get("cursor"):
      cursor_queue.append((board_id, board_name, page["cursor"]))

  # cursors stay valid for an hour; drain them board by board
  while cursor_queue:
    board_id, board_name, cursor = cursor_queue.pop(0)
    page = await monday_next_items_page(auth=auth, cursor=cursor)
    items = page.get("items") or []
    if not items:
      continue
    for item in items:
      add(item, board_id, board_name)
    if page.get("cursor"):
      cursor_queue.append((board_id, board_name, page["cursor"]))

  if include_completed and not sync_all_boards and locked_ids:
    wanted: list[str] = []
    res = await db.execute(select(Project.monday_item_id).where(Project.monday_board_id.in_(sorted(locked_ids))))
    wanted.extend(res.scalars().all())
    res = await db.execute(select(Project.monday_item_id).where(Project.status.in_(["active", "lead"])))
    # active items missing from the scan may have been moved to a completed board
    wanted.extend([i for i in res.scalars().all() if i not in seen])
    ids = [i for i in dict.fromkeys(wanted) if i and i not in seen]
    batch = max(1, settings.monday_items_batch_size)
    for start in range(0, len(ids), batch):
      for item in await monday_items_by_ids(auth=auth, item_ids=ids[start : start + batch]):
        board = item.get("board") or {}
        board_id = str(board.get("id")) if board.get("id") is not None else ""
        if not board_id or board_id not in locked_ids:
          continue
        add(item, board_id, index.board_names.get(board_id) or board.get("name"))

  # global-only mappings scan nothing, so an empty result proves no removal
  configured = bool(index.mapped_board_ids() & set(boards_to_scan))
  return ProjectFetch(projects=projects, index=index, roles=roles, configured=configured, malformed=sink)


async def get_monday_tasks(
  *,
  auth: MondayAuth,
  index: MappingIndex,
  project_item_id: str,
  board_id: str,
  board_name: str | None = None,
  malformed: list[MalformedCell] | None = None,
) -> list[MondayTask]:
  sink = malformed if malformed is not None else []
  tasks: list[MondayTask] = []
  for item in await monday_item_subitems(auth=auth, item_id=project_item_id):
    item_board = (item.get("board") or {}).get("id")
    parent_board_id = str(item_board) if item_board is not None else board_id
    parent_board_name = board_name if parent_board_id == board_id else index.board_names.get(parent_board_id)
    hours_col = index.resolve(parent_board_id, "quoted_hours", parent_board_name)
    timeline_col = index.resolve(parent_board_id, "timeline", parent_board_name)

    for sub in item.get("subitems") or []:
      sub_id = str(sub.get("id"))
      cols = _normalized(sub, sink)
      hours = None
      if hours_col:
        hours = _take(extract_hours(cols.get(hours_col)), item_id=sub_id, field_name="quoted_hours", sink=sink)
      timeline: Timeline | None = None
      if timeline_col:
        timeline = _take(extract_timeline(cols.get(timeline_col)), item_id=sub_id, field_name="timeline", sink=sink)
      people = _take(extract_people(cols), item_id=sub_id, field_name="people", sink=sink)
      tasks.append(
        MondayTask(
          item_id=sub_id,
          name=str(sub.get("name") or ""),
          parent_item_id=project_item_id,
          assigned_user_ids=list(people or []),
          quoted_hours=hours,
          timeline_start=timeline.start if timeline else None,
          timeline_end=timeline.end if timeline else None,
          column_values=cols,
        )
      )
  return tasks
