from __future__ import annotations

import httpx
import pytest

from studio.monday.client import (
  MondayApiError,
  MondayAuth,
  monday_list_boards_with_columns,
  monday_request,
)
from tests.conftest import FakeMonday


def _auth(handler, **kw) -> MondayAuth:  # type: ignore[no-untyped-def]
  return MondayAuth(
    token="tok-123",
    api_url="https://monday.test/v2",
    retry_base_delay_seconds=0,
    transport=httpx.MockTransport(handler),
    **kw,
  )


@pytest.mark.anyio
async def test_request_sends_token_and_api_version_headers() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"data": {"me": {"id": 1}}})

  data = await monday_request(_auth(handler, api_version="2024-10"), "query { me { id } }")
  assert data == {"me": {"id": 1}}
  assert seen[0].headers["Authorization"] == "tok-123"
  assert seen[0].headers["API-Version"] == "2024-10"


@pytest.mark.anyio
async def test_timeouts_are_retried_until_success() -> None:
  calls = 0

  def handler(request: httpx.Request) -> httpx.Response:
    nonlocal calls
    calls += 1
    if calls < 3:
      raise httpx.ReadTimeout("slow", request=request)
    return httpx.Response(200, json={"data": {"ok": True}})

  data = await monday_request(_auth(handler, max_retries=3), "query { ok }")
  assert data == {"ok": True}
  assert calls == 3


@pytest.mark.anyio
async def test_exhausted_timeout_retries_raise_504() -> None:
  calls = 0

  def handler(request: httpx.Request) -> httpx.Response:
    nonlocal calls
    calls += 1
    raise httpx.ConnectTimeout("slow", request=request)

  with pytest.raises(MondayApiError) as exc:
    await monday_request(_auth(handler, max_retries=2), "query { ok }")
  assert exc.value.status_code == 504
  assert calls == 3


@pytest.mark.anyio
async def test_exhausted_network_retries_raise_503() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("refused", request=request)

  with pytest.raises(MondayApiError) as exc:
    await monday_request(_auth(handler, max_retries=1), "query { ok }")
  assert exc.value.status_code == 503
  assert "unreachable" in exc.value.message


@pytest.mark.anyio
async def test_http_error_is_not_retried() -> None:
  calls = 0

  def handler(request: httpx.Request) -> httpx.Response:
    nonlocal calls
    calls += 1
    return httpx.Response(500, text="boom")

  with pytest.raises(MondayApiError) as exc:
    await monday_request(_auth(handler, max_retries=3), "query { ok }")
  assert exc.value.status_code == 500
  assert exc.value.message.startswith("Monday.com API error")
  assert calls == 1


@pytest.mark.anyio
async def test_graphql_errors_are_joined_into_one_message() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"errors": [{"message": "Column not found"}, {"message": "Rate limited"}]})

  with pytest.raises(MondayApiError) as exc:
    await monday_request(_auth(handler), "query { ok }")
  assert exc.value.message == "Monday.com API errors: Column not found, Rate limited"
  assert len(exc.value.details["errors"]) == 2


@pytest.mark.anyio
async def test_board_listing_skips_subitem_boards() -> None:
  fake = FakeMonday()
  fake.add_board("100", "Projects 2026", workspace={"id": 7, "name": "Studio"}, columns=[{"id": "text1", "title": "Client", "type": "text"}])
  fake.add_board("101", "Subitems of Projects 2026")
  boards = await monday_list_boards_with_columns(auth=fake.auth())
  assert [b["id"] for b in boards] == ["100"]
