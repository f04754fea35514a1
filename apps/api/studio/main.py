from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from studio.config import settings
from studio.db import SessionLocal
from studio.monday.client import MondayApiError, MondayNotConfiguredError
from studio.monday.service import is_sync_due, run_scheduled_sync
from studio.monday.settings_store import get_sync_settings
from studio.routers.board_roles import router as board_roles_router
from studio.routers.column_mappings import router as column_mappings_router
from studio.routers.monday import router as monday_router
from studio.routers.projects import router as projects_router
from studio.routers.sync_settings import router as sync_settings_router
from studio.security import IntegrationSecretDecryptError

app = FastAPI(
  title="Studio Ops API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(MondayApiError)
async def _monday_api_error_handler(_, exc: MondayApiError) -> JSONResponse:
  return JSONResponse(
    status_code=400,
    content={"detail": {"message": exc.message, "statusCode": exc.status_code, "monday": exc.details}},
  )


@app.exception_handler(MondayNotConfiguredError)
async def _monday_not_configured_handler(_, exc: MondayNotConfiguredError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(IntegrationSecretDecryptError)
async def _integration_secret_error_handler(_, exc: IntegrationSecretDecryptError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(column_mappings_router)
app.include_router(board_roles_router)
app.include_router(sync_settings_router)
app.include_router(monday_router)
app.include_router(projects_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


_monday_loop_task: asyncio.Task | None = None


def _is_test_db() -> bool:
  try:
    db_name = settings.database_url.rsplit("/", 1)[-1]
    return "test" in db_name
  except Exception:
    return False


async def _monday_auto_sync_loop() -> None:
  while True:
    await asyncio.sleep(max(10, int(settings.monday_auto_sync_poll_seconds)))
    async with SessionLocal() as db:
      row = await get_sync_settings(db)
      due = is_sync_due(row)
      await db.commit()
      if not due:
        continue
      await run_scheduled_sync(db, trigger="auto")


@app.on_event("startup")
async def _startup() -> None:
  global _monday_loop_task
  if _is_test_db():
    return
  if not settings.fernet_key or settings.fernet_key.strip() in {"AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=", "REPLACE_WITH_FERNET_KEY"}:
    raise RuntimeError("FERNET_KEY is required and must not be a placeholder")
  if not settings.admin_api_token or settings.admin_api_token.strip() in {"dev-admin-token-change-me", "REPLACE_WITH_ADMIN_TOKEN"}:
    raise RuntimeError("ADMIN_API_TOKEN is required and must not be a placeholder")
  if settings.monday_auto_sync_loop_enabled and _monday_loop_task is None:
    _monday_loop_task = asyncio.create_task(_monday_auto_sync_loop())
