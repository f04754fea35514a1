#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

API_ROOT = Path(__file__).resolve().parents[1] / "apps" / "api"
if str(API_ROOT) not in sys.path:
  sys.path.insert(0, str(API_ROOT))

from studio.db import SessionLocal, engine  # noqa: E402
from studio.monday.service import sync_monday_data  # noqa: E402


def _print_progress(event) -> None:  # type: ignore[no-untyped-def]
  pct = int(round(float(getattr(event, "progress", 0) or 0) * 100))
  print(f"[{event.phase:>8}] {pct:3d}% {event.message}", flush=True)


async def _run(full: bool, allow_deletion: bool) -> int:
  async with SessionLocal() as db:
    run = await sync_monday_data(
      db,
      sync_all_boards=full,
      avoid_deletion=not allow_deletion,
      trigger="cli",
      actor="cli",
      on_progress=_print_progress,
    )
  await engine.dispose()
  print(
    f"status={run.status} projects={run.projects_synced} archived={run.archived} deleted={run.deleted} "
    f"tasks={run.tasks_synced} tasksDeleted={run.tasks_deleted} tasksRetained={run.tasks_retained} "
    f"malformed={run.malformed_cells}"
  )
  if run.status != "success":
    print(f"error: {run.error_message}", file=sys.stderr)
    return 1
  return 0


def main() -> int:
  parser = argparse.ArgumentParser(description="Run one Monday.com sync against the configured database")
  parser.add_argument("--full", action="store_true", help="Scan every mapped board, completed boards included")
  parser.add_argument(
    "--allow-deletion",
    action="store_true",
    help="Run the removal sweep (archive or delete projects no longer on Monday.com)",
  )
  args = parser.parse_args()
  return asyncio.run(_run(args.full, args.allow_deletion))


if __name__ == "__main__":
  raise SystemExit(main())
