from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx

from studio.config import settings

ITEM_FIELDS = """
      id
      name
      column_values { id text value type }
      board { id }
"""

BOARDS_FIRST_PAGE_QUERY = (
  """
query($boardIds: [ID!], $limit: Int!) {
  boards(ids: $boardIds) {
    id
    name
    items_page(limit: $limit) {
      cursor
      items {"""
  + ITEM_FIELDS
  + """      }
    }
  }
}
"""
)

NEXT_ITEMS_PAGE_QUERY = (
  """
query($cursor: String!, $limit: Int!) {
  next_items_page(cursor: $cursor, limit: $limit) {
    cursor
    items {"""
  + ITEM_FIELDS
  + """    }
  }
}
"""
)

ITEMS_BY_IDS_QUERY = """
query($itemIds: [ID!]) {
  items(ids: $itemIds) {
    id
    name
    column_values { id text value type }
    board { id name }
  }
}
"""

ITEM_SUBITEMS_QUERY = """
query($itemId: [ID!]) {
  items(ids: $itemId) {
    id
    name
    board { id }
    subitems {
      id
      name
      column_values { id text value type }
    }
  }
}
"""

BOARD_DIRECTORY_QUERY = """
query($boardIds: [ID!]) {
  boards(ids: $boardIds) { id name }
}
"""

BOARDS_WITH_COLUMNS_QUERY = """
query($limit: Int!, $workspaceIds: [ID]) {
  boards(limit: $limit, workspace_ids: $workspaceIds) {
    id
    name
    workspace { id name }
    columns { id title type }
  }
}
"""

ME_QUERY = "query { me { id name email } }"


class MondayApiError(RuntimeError):
  def __init__(self, *, status_code: int, message: str, details: dict[str, Any] | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.message = message
    self.details = details or {}


class MondayNotConfiguredError(RuntimeError):
  pass


@dataclass
class MondayAuth:
  token: str
  api_url: str = field(default_factory=lambda: settings.monday_api_url)
  api_version: str = field(default_factory=lambda: settings.monday_api_version)
  timeout_seconds: float = field(default_factory=lambda: settings.monday_request_timeout_seconds)
  max_retries: int = field(default_factory=lambda: settings.monday_max_retries)
  retry_base_delay_seconds: float = field(default_factory=lambda: settings.monday_retry_base_delay_seconds)
  transport: httpx.AsyncBaseTransport | None = None

  def httpx_client(self) -> httpx.AsyncClient:
    headers = {
      "Authorization": self.token,
      "API-Version": self.api_version,
      "Content-Type": "application/json",
      "Accept": "application/json",
    }
    return httpx.AsyncClient(headers=headers, timeout=self.timeout_seconds, transport=self.transport)


def _graphql_error_text(errors: Any) -> str:
  parts: list[str] = []
  for e in errors if isinstance(errors, list) else [errors]:
    if isinstance(e, dict):
      parts.append(str(e.get("message") or e))
    elif e:
      parts.append(str(e))
  return ", ".join(parts) or "unknown error"


async def _post_once(auth: MondayAuth, query: str, variables: dict[str, Any] | None) -> dict[str, Any]:
  async with auth.httpx_client() as client:
    r = await client.post(auth.api_url, json={"query": query, "variables": variables or {}})
  if r.status_code < 200 or r.status_code >= 300:
    raise MondayApiError(
      status_code=r.status_code,
      message=f"Monday.com API error: {r.reason_phrase or r.status_code}",
      details={"body": (r.text or "")[:800]},
    )
  payload = r.json()
  if not isinstance(payload, dict):
    raise MondayApiError(status_code=r.status_code, message="Monday.com API returned an unexpected payload")
  errors = payload.get("errors")
  if errors:
    raise MondayApiError(
      status_code=r.status_code,
      message=f"Monday.com API errors: {_graphql_error_text(errors)}",
      details={"errors": errors},
    )
  return payload.get("data") or {}


async def monday_request(auth: MondayAuth, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
  """
  POST one GraphQL document and return its `data`.
  Timeouts and connection-level failures are retried with exponential backoff
  (base * 2**attempt); HTTP errors and GraphQL `errors` are raised immediately.
  """
  attempt = 0
  while True:
    try:
      return await _post_once(auth, query, variables)
    except (httpx.TimeoutException, httpx.NetworkError) as e:
      if attempt >= auth.max_retries:
        if isinstance(e, httpx.TimeoutException):
          raise MondayApiError(status_code=504, message="Monday.com API request timed out") from e
        raise MondayApiError(status_code=503, message=f"Monday.com API unreachable: {e.__class__.__name__}: {e}") from e
      await asyncio.sleep(auth.retry_base_delay_seconds * (2**attempt))
      attempt += 1


async def monday_boards_first_page(*, auth: MondayAuth, board_ids: list[str], limit: int | None = None) -> list[dict]:
  if not board_ids:
    return []
  data = await monday_request(
    auth,
    BOARDS_FIRST_PAGE_QUERY,
    {"boardIds": board_ids, "limit": limit or settings.monday_page_size},
  )
  boards = data.get("boards") or []
  return [b for b in boards if isinstance(b, dict)]


async def monday_next_items_page(*, auth: MondayAuth, cursor: str, limit: int | None = None) -> dict:
  data = await monday_request(auth, NEXT_ITEMS_PAGE_QUERY, {"cursor": cursor, "limit": limit or settings.monday_page_size})
  page = data.get("next_items_page")
  return page if isinstance(page, dict) else {}


async def monday_items_by_ids(*, auth: MondayAuth, item_ids: list[str]) -> list[dict]:
  if not item_ids:
    return []
  data = await monday_request(auth, ITEMS_BY_IDS_QUERY, {"itemIds": item_ids})
  return [i for i in (data.get("items") or []) if isinstance(i, dict)]


async def monday_item_subitems(*, auth: MondayAuth, item_id: str) -> list[dict]:
  data = await monday_request(auth, ITEM_SUBITEMS_QUERY, {"itemId": [item_id]})
  return [i for i in (data.get("items") or []) if isinstance(i, dict)]


async def monday_board_directory(*, auth: MondayAuth, board_ids: list[str]) -> dict[str, str]:
  if not board_ids:
    return {}
  data = await monday_request(auth, BOARD_DIRECTORY_QUERY, {"boardIds": board_ids})
  out: dict[str, str] = {}
  for b in data.get("boards") or []:
    if isinstance(b, dict) and b.get("id") is not None:
      out[str(b["id"])] = str(b.get("name") or "")
  return out


async def monday_list_boards_with_columns(
  *,
  auth: MondayAuth,
  workspace_id: str | None = None,
  limit: int = 500,
) -> list[dict]:
  variables: dict[str, Any] = {"limit": limit, "workspaceIds": [workspace_id] if workspace_id else None}
  data = await monday_request(auth, BOARDS_WITH_COLUMNS_QUERY, variables)
  out: list[dict] = []
  for b in data.get("boards") or []:
    if not isinstance(b, dict):
      continue
    name = str(b.get("name") or "")
    # subitem boards are listed alongside their parents
    if name.lower().startswith("subitems of"):
      continue
    out.append(b)
  return out


async def monday_ping(*, auth: MondayAuth) -> dict:
  data = await monday_request(auth, ME_QUERY)
  me = data.get("me")
  return me if isinstance(me, dict) else {}
