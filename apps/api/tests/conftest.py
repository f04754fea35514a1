from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./studio_test.db")

from studio.config import settings
from studio.db import SessionLocal, engine
from studio.main import app
from studio.models import (
  AuditEvent,
  Base,
  ColumnMapping,
  CompletedBoard,
  FlexiDesignCompletedBoard,
  LeadsBoard,
  Project,
  SyncRun,
  SyncSettings,
  Task,
  TimeEntry,
)
from studio.monday.client import MondayAuth

ADMIN_HEADERS = {"Authorization": f"Bearer {settings.admin_api_token}"}


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(SyncRun))
    await db.execute(delete(TimeEntry))
    await db.execute(delete(Task))
    await db.execute(delete(Project))
    await db.execute(delete(ColumnMapping))
    await db.execute(delete(CompletedBoard))
    await db.execute(delete(LeadsBoard))
    await db.execute(delete(FlexiDesignCompletedBoard))
    await db.execute(delete(SyncSettings))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
def _refuse_non_test_db() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. studio_ops_test)."
    )


@pytest.fixture
async def clean_db() -> None:
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client(clean_db) -> AsyncClient:  # type: ignore[no-untyped-def]
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def col(column_id: str, *, text: str | None = None, value: Any = None, type: str = "text") -> dict:
  return {
    "id": column_id,
    "text": text,
    "value": json.dumps(value) if value is not None else None,
    "type": type,
  }


class FakeMonday:
  """
  In-memory Monday.com GraphQL endpoint. Dispatches on the query text the
  client sends and serves boards, paginated items and subitems.
  """

  def __init__(self, *, page_size: int = 500) -> None:
    self.page_size = page_size
    self.boards: dict[str, dict[str, Any]] = {}
    self.subitems: dict[str, list[dict]] = {}
    self.requests: list[dict[str, Any]] = []
    self.errors: list[str] = []

  def add_board(self, board_id: str, name: str, *, workspace: dict | None = None, columns: list[dict] | None = None) -> None:
    self.boards[board_id] = {"name": name, "items": [], "workspace": workspace, "columns": columns or []}

  def add_item(self, board_id: str, item_id: str, name: str, columns: list[dict] | None = None) -> None:
    self.boards[board_id]["items"].append(
      {"id": item_id, "name": name, "column_values": columns or [], "board": {"id": board_id}}
    )

  def remove_item(self, item_id: str) -> None:
    for b in self.boards.values():
      b["items"] = [i for i in b["items"] if i["id"] != item_id]

  def add_subitem(self, parent_id: str, sub_id: str, name: str, columns: list[dict] | None = None) -> None:
    self.subitems.setdefault(parent_id, []).append({"id": sub_id, "name": name, "column_values": columns or []})

  def remove_subitem(self, parent_id: str, sub_id: str) -> None:
    self.subitems[parent_id] = [s for s in self.subitems.get(parent_id, []) if s["id"] != sub_id]

  def auth(self) -> MondayAuth:
    return MondayAuth(
      token="test-token",
      api_url="https://monday.test/v2",
      retry_base_delay_seconds=0,
      transport=httpx.MockTransport(self.handler),
    )

  def queries(self, marker: str) -> list[dict[str, Any]]:
    return [r for r in self.requests if marker in r["query"]]

  def _find_item(self, item_id: str) -> tuple[str, dict] | None:
    for board_id, b in self.boards.items():
      for item in b["items"]:
        if item["id"] == item_id:
          return board_id, item
    return None

  def _page(self, board_id: str, offset: int) -> dict[str, Any]:
    items = self.boards[board_id]["items"]
    chunk = items[offset : offset + self.page_size]
    nxt = offset + self.page_size
    return {"cursor": f"{board_id}:{nxt}" if nxt < len(items) else None, "items": chunk}

  def _data(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
    if "next_items_page" in query:
      board_id, offset = str(variables["cursor"]).split(":")
      return {"next_items_page": self._page(board_id, int(offset))}
    if "items_page" in query:
      boards = []
      for board_id in variables.get("boardIds") or []:
        if board_id in self.boards:
          boards.append({"id": board_id, "name": self.boards[board_id]["name"], "items_page": self._page(board_id, 0)})
      return {"boards": boards}
    if "subitems" in query:
      out = []
      for item_id in variables.get("itemId") or []:
        found = self._find_item(item_id)
        if found:
          board_id, item = found
          out.append({"id": item_id, "name": item["name"], "board": {"id": board_id}, "subitems": self.subitems.get(item_id, [])})
      return {"items": out}
    if "items(ids" in query:
      out = []
      for item_id in variables.get("itemIds") or []:
        found = self._find_item(item_id)
        if found:
          board_id, item = found
          out.append({**item, "board": {"id": board_id, "name": self.boards[board_id]["name"]}})
      return {"items": out}
    if "me {" in query:
      return {"me": {"id": 1, "name": "Studio Admin", "email": "admin@studio.test"}}
    if "columns" in query:
      return {
        "boards": [
          {"id": board_id, "name": b["name"], "workspace": b["workspace"], "columns": b["columns"]}
          for board_id, b in self.boards.items()
        ]
      }
    if "boards(ids" in query:
      ids = variables.get("boardIds") or []
      return {"boards": [{"id": b, "name": self.boards[b]["name"]} for b in ids if b in self.boards]}
    raise AssertionError(f"unexpected query: {query}")

  def handler(self, request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    query = body["query"]
    variables = body.get("variables") or {}
    self.requests.append({"query": query, "variables": variables, "headers": dict(request.headers)})
    if self.errors:
      return httpx.Response(200, json={"errors": [{"message": m} for m in self.errors]})
    return httpx.Response(200, json={"data": self._data(query, variables)})


async def add_mapping(column_type: str, column_id: str, board_id: str | None = None) -> None:
  async with SessionLocal() as db:
    db.add(ColumnMapping(column_type=column_type, monday_column_id=column_id, board_id=board_id))
    await db.commit()
