from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, TypeVar, Union

from dateutil import parser as dateparser

T = TypeVar("T")


@dataclass(frozen=True)
class Parsed(Generic[T]):
  value: T


@dataclass(frozen=True)
class Absent:
  pass


@dataclass(frozen=True)
class Malformed:
  raw: Any
  reason: str = ""


ABSENT = Absent()

Extracted = Union[Parsed[T], Absent, Malformed]

_CURRENCY_JUNK_RE = re.compile(r"[£$€,\s]")
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def value_or_none(result: Extracted) -> Any:
  return result.value if isinstance(result, Parsed) else None


@dataclass
class NormalizedColumns:
  columns: dict[str, dict[str, Any]]
  malformed: list[Malformed]


def normalize_column_values(column_values: list[dict] | None) -> NormalizedColumns:
  """
  Turn Monday's `[{id, text, value, type}]` list into `{id: {text, value, type}}`.
  `value` arrives as a JSON string; undecodable payloads are stored as None and
  reported back as Malformed so the caller can log them.
  """
  out: dict[str, dict[str, Any]] = {}
  malformed: list[Malformed] = []
  for cv in column_values or []:
    if not isinstance(cv, dict) or cv.get("id") is None:
      continue
    raw = cv.get("value")
    value: Any = None
    if isinstance(raw, str) and raw:
      try:
        value = json.loads(raw)
      except ValueError:
        malformed.append(Malformed(raw=raw, reason=f"column {cv.get('id')}: invalid JSON value"))
    elif raw is not None and not isinstance(raw, str):
      value = raw
    out[str(cv["id"])] = {"text": cv.get("text"), "value": value, "type": cv.get("type")}
  return NormalizedColumns(columns=out, malformed=malformed)


def _text(col: dict | None) -> str | None:
  if not col:
    return None
  t = col.get("text")
  if t is None:
    return None
  s = str(t).strip()
  return s or None


def extract_text(col: dict | None) -> Extracted[str]:
  s = _text(col)
  return Parsed(s) if s else ABSENT


def _parse_date_text(s: str) -> date | None:
  try:
    return dateparser.parse(s).date()
  except (ValueError, OverflowError):
    return None


def _coerce_date(raw: Any) -> date | None:
  if isinstance(raw, datetime):
    return raw.date()
  if isinstance(raw, date):
    return raw
  if isinstance(raw, str) and raw.strip():
    return _parse_date_text(raw.strip())
  return None


def extract_date(col: dict | None) -> Extracted[date]:
  if not col:
    return ABSENT
  value = col.get("value")
  if isinstance(value, dict) and value.get("date"):
    d = _coerce_date(value.get("date"))
    if d:
      return Parsed(d)
  s = _text(col)
  if not s:
    if isinstance(value, dict) and value.get("date"):
      return Malformed(raw=value.get("date"), reason="unparseable date")
    return ABSENT
  d = _parse_date_text(s)
  if d is None:
    return Malformed(raw=s, reason="unparseable date")
  return Parsed(d)


def _parse_number_text(s: str) -> float | None:
  cleaned = _CURRENCY_JUNK_RE.sub("", s)
  if not cleaned or not _NUMBER_RE.match(cleaned):
    return None
  return float(cleaned)


def _number_from_value(value: Any) -> float | None:
  if isinstance(value, bool):
    return None
  if isinstance(value, (int, float)):
    return float(value)
  if isinstance(value, str):
    return _parse_number_text(value)
  if isinstance(value, dict) and value.get("value") is not None:
    return _number_from_value(value.get("value"))
  return None


def extract_number(col: dict | None) -> Extracted[float]:
  """Number or currency cell: structured value first, then display text without symbols."""
  if not col:
    return ABSENT
  value = col.get("value")
  n = _number_from_value(value)
  if n is not None:
    return Parsed(n)
  s = _text(col)
  if s:
    n = _parse_number_text(s)
    if n is not None:
      return Parsed(n)
    return Malformed(raw=s, reason="not a number")
  if value not in (None, "", {}):
    return Malformed(raw=value, reason="not a number")
  return ABSENT


def extract_hours(col: dict | None) -> Extracted[float]:
  # Subitem hours read the display text first; zero and negative count as unset.
  if not col:
    return ABSENT
  s = _text(col)
  if s:
    n = _parse_number_text(s)
    if n is None:
      return Malformed(raw=s, reason="not a number")
  else:
    n = _number_from_value(col.get("value"))
    if n is None:
      value = col.get("value")
      if value not in (None, "", {}):
        return Malformed(raw=value, reason="not a number")
      return ABSENT
  return Parsed(n) if n > 0 else ABSENT


@dataclass(frozen=True)
class Timeline:
  start: date | None
  end: date | None


def extract_timeline(col: dict | None) -> Extracted[Timeline]:
  if not col:
    return ABSENT
  value = col.get("value")
  if not isinstance(value, dict):
    return ABSENT
  start_raw = value.get("from") or value.get("start")
  end_raw = value.get("to") or value.get("end")
  if not start_raw and not end_raw:
    return ABSENT
  start = _coerce_date(start_raw) if start_raw else None
  end = _coerce_date(end_raw) if end_raw else None
  if (start_raw and start is None) or (end_raw and end is None):
    return Malformed(raw=value, reason="unparseable timeline")
  return Parsed(Timeline(start=start, end=end))


def extract_people(columns: dict[str, dict[str, Any]]) -> Extracted[list[str]]:
  ids: list[str] = []
  for col in columns.values():
    if col.get("type") != "people":
      continue
    value = col.get("value")
    entries: list[Any] = []
    if isinstance(value, dict) and isinstance(value.get("personsAndTeams"), list):
      entries = [p for p in value["personsAndTeams"] if not isinstance(p, dict) or p.get("kind", "person") == "person"]
    elif isinstance(value, dict) and isinstance(value.get("personIds"), list):
      entries = value["personIds"]
    elif isinstance(value, list):
      entries = value
    for e in entries:
      pid = (e.get("personId") or e.get("id")) if isinstance(e, dict) else e
      if pid is None or pid == "":
        continue
      sid = str(pid)
      if sid not in ids:
        ids.append(sid)
  return Parsed(ids) if ids else ABSENT
