from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Union

COLUMN_TYPES = ("client", "quoted_hours", "timeline", "due_date", "completed_date", "quote_value", "agency")

# Fields a completed board must map itself; its schema usually differs from the active boards.
COMPLETED_BOARD_SPECIFIC_FIELDS = frozenset({"quote_value"})


@dataclass(frozen=True)
class Found:
  column_id: str
  strategy: str


@dataclass(frozen=True)
class NotFound:
  pass


NOT_FOUND = NotFound()

Resolution = Union[Found, NotFound]


def board_id_sort_key(board_id: str) -> tuple[int, int, str]:
  s = str(board_id)
  if s.isdigit():
    return (0, int(s), s)
  return (1, 0, s)


@dataclass(frozen=True)
class ResolveRequest:
  board_id: str
  field: str
  board_name: str | None
  require_board_specific: bool


@dataclass
class MappingIndex:
  """
  Read-only view over the column mapping table plus board names.
  Built once per sync before any item is resolved, so the answer for a
  board never depends on which boards were processed before it.
  """

  by_board: dict[str, dict[str, str]] = field(default_factory=dict)
  global_defaults: dict[str, str] = field(default_factory=dict)
  board_names: dict[str, str] = field(default_factory=dict)
  completed_board_ids: frozenset[str] = frozenset()
  families: tuple[str, ...] = ("flexi",)

  @classmethod
  def build(
    cls,
    mappings: Iterable[object],
    *,
    board_names: dict[str, str] | None = None,
    completed_board_ids: Iterable[str] = (),
    families: Iterable[str] = ("flexi",),
  ) -> "MappingIndex":
    by_board: dict[str, dict[str, str]] = {}
    global_defaults: dict[str, str] = {}
    for m in mappings:
      column_type = getattr(m, "column_type")
      column_id = getattr(m, "monday_column_id")
      board_id = getattr(m, "board_id")
      if not column_id:
        continue
      if board_id:
        by_board.setdefault(str(board_id), {})[column_type] = column_id
      else:
        global_defaults[column_type] = column_id
    return cls(
      by_board=by_board,
      global_defaults=global_defaults,
      board_names={str(k): v for k, v in (board_names or {}).items()},
      completed_board_ids=frozenset(str(b) for b in completed_board_ids),
      families=tuple(f.lower() for f in families if f),
    )

  def mapped_board_ids(self) -> set[str]:
    return set(self.by_board.keys())

  def has_board_mappings(self, board_id: str) -> bool:
    return bool(self.by_board.get(str(board_id)))

  def family_of(self, board_name: str | None) -> str | None:
    name = (board_name or "").lower()
    if not name:
      return None
    for fam in self.families:
      if fam in name:
        return fam
    return None

  def resolve_with_source(
    self,
    board_id: str,
    field: str,
    board_name: str | None = None,
    *,
    require_board_specific: bool = False,
  ) -> Resolution:
    req = ResolveRequest(
      board_id=str(board_id),
      field=field,
      board_name=board_name if board_name is not None else self.board_names.get(str(board_id)),
      require_board_specific=require_board_specific,
    )
    for strategy in STRATEGIES:
      res = strategy(self, req)
      if isinstance(res, Found):
        return res
    return NOT_FOUND

  def resolve(
    self,
    board_id: str,
    field: str,
    board_name: str | None = None,
    *,
    require_board_specific: bool = False,
  ) -> str | None:
    res = self.resolve_with_source(board_id, field, board_name, require_board_specific=require_board_specific)
    return res.column_id if isinstance(res, Found) else None


def _board_specific(index: MappingIndex, req: ResolveRequest) -> Resolution:
  column_id = index.by_board.get(req.board_id, {}).get(req.field)
  return Found(column_id, "board_specific") if column_id else NOT_FOUND


def _family_inherited(index: MappingIndex, req: ResolveRequest) -> Resolution:
  family = index.family_of(req.board_name)
  if not family:
    return NOT_FOUND
  siblings = [
    b
    for b, fields in index.by_board.items()
    if b != req.board_id and fields.get(req.field) and index.family_of(index.board_names.get(b)) == family
  ]
  if not siblings:
    return NOT_FOUND
  # lowest board id wins when several siblings map the field
  winner = min(siblings, key=board_id_sort_key)
  return Found(index.by_board[winner][req.field], "family_inherited")


def _global_default(index: MappingIndex, req: ResolveRequest) -> Resolution:
  if req.board_id in index.completed_board_ids and (
    req.require_board_specific or req.field in COMPLETED_BOARD_SPECIFIC_FIELDS
  ):
    return NOT_FOUND
  column_id = index.global_defaults.get(req.field)
  return Found(column_id, "global_default") if column_id else NOT_FOUND


STRATEGIES: tuple[Callable[[MappingIndex, ResolveRequest], Resolution], ...] = (
  _board_specific,
  _family_inherited,
  _global_default,
)
