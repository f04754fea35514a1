from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from studio.config import settings

engine = create_async_engine(settings.database_url, pool_pre_ping=True)

if engine.dialect.name == "sqlite":

  @event.listens_for(engine.sync_engine, "connect")
  def _sqlite_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
    cur = dbapi_connection.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
