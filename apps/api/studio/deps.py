from __future__ import annotations

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio.config import settings
from studio.db import SessionLocal
from studio.security import secrets_match


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def require_admin(request: Request) -> str:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  token = auth.split(" ", 1)[1].strip()
  if not secrets_match(token, settings.admin_api_token):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  return "admin"


async def require_cron_secret(x_cron_secret: str | None = Header(default=None, alias="X-Cron-Secret")) -> str:
  # An unset CRON_SECRET leaves the endpoint open for local schedulers.
  if settings.cron_secret and not secrets_match(x_cron_secret, settings.cron_secret):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
  return "cron"
