"""Server-sent events helpers."""

from __future__ import annotations

import json
from typing import Any


def format_sse(data: dict[str, Any]) -> str:
  return f"data: {json.dumps(data, default=str)}\n\n"


def format_sse_comment(comment: str = "ping") -> str:
  return f": {comment}\n\n"


STREAM_HEADERS = {
  "Cache-Control": "no-cache, no-transform",
  "X-Accel-Buffering": "no",
}
