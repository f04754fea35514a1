from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from studio.audit import write_audit
from studio.config import settings
from studio.deps import get_db, require_admin, require_cron_secret
from studio.models import SyncSettings
from studio.monday.service import run_scheduled_sync
from studio.monday.settings_store import get_sync_settings
from studio.routers.monday import run_out
from studio.schemas import CronSyncOut, SyncSettingsOut, SyncSettingsUpdateIn
from studio.security import IntegrationSecretDecryptError, decrypt_integration_secret, encrypt_secret

router = APIRouter(prefix="/sync", tags=["sync"])


def _hint(v: str) -> str:
  s = (v or "").strip()
  if not s:
    return ""
  if len(s) <= 6:
    return f"…{s}"
  return f"…{s[-6:]}"


def _settings_out(row: SyncSettings) -> SyncSettingsOut:
  needs_reconnect = False
  if row.api_token_encrypted:
    source = "stored"
    hint = row.token_hint
    try:
      decrypt_integration_secret(row.api_token_encrypted)
    except IntegrationSecretDecryptError:
      needs_reconnect = True
  elif (settings.monday_api_token or "").strip():
    source = "environment"
    hint = _hint(settings.monday_api_token or "")
  else:
    source = "none"
    hint = ""
  return SyncSettingsOut(
    enabled=row.enabled,
    intervalMinutes=row.interval_minutes,
    avoidDeletion=row.avoid_deletion,
    lastSyncAt=row.last_sync_at,
    nextSyncAt=row.next_sync_at,
    tokenSource=source,
    tokenHint=hint,
    needsReconnect=needs_reconnect,
  )


@router.get("/settings", response_model=SyncSettingsOut)
async def read_settings(actor: str = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> SyncSettingsOut:
  row = await get_sync_settings(db)
  await db.commit()
  return _settings_out(row)


@router.patch("/settings", response_model=SyncSettingsOut)
async def update_settings(
  payload: SyncSettingsUpdateIn,
  actor: str = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> SyncSettingsOut:
  row = await get_sync_settings(db)
  fields_set = payload.model_fields_set
  changes: dict = {}
  if "enabled" in fields_set and payload.enabled is not None:
    row.enabled = payload.enabled
    changes["enabled"] = payload.enabled
    if not payload.enabled:
      row.next_sync_at = None
  if "intervalMinutes" in fields_set and payload.intervalMinutes is not None:
    row.interval_minutes = payload.intervalMinutes
    changes["intervalMinutes"] = payload.intervalMinutes
  if "avoidDeletion" in fields_set and payload.avoidDeletion is not None:
    row.avoid_deletion = payload.avoidDeletion
    changes["avoidDeletion"] = payload.avoidDeletion
  if "apiToken" in fields_set:
    token = (payload.apiToken or "").strip()
    if token:
      row.api_token_encrypted = encrypt_secret(token)
      row.token_hint = _hint(token)
      changes["apiToken"] = row.token_hint
    else:
      row.api_token_encrypted = None
      row.token_hint = ""
      changes["apiToken"] = None
  await write_audit(
    db,
    event_type="monday.sync_settings.updated",
    entity_type="SyncSettings",
    entity_id=row.id,
    actor=actor,
    payload=changes,
  )
  await db.commit()
  return _settings_out(row)


@router.get("/cron", response_model=CronSyncOut)
async def cron_sync(caller: str = Depends(require_cron_secret), db: AsyncSession = Depends(get_db)) -> CronSyncOut:
  run = await run_scheduled_sync(db, trigger="cron")
  if run is None:
    return CronSyncOut(message="Automatic sync is disabled", skipped=True)
  if run.status != "success":
    return CronSyncOut(message=f"Sync failed: {run.error_message}", run=run_out(run))
  return CronSyncOut(message=f"Synced {run.projects_synced} projects", run=run_out(run))
