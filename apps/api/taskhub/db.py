from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from taskhub.config import settings
from taskhub.models import Base

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

if engine.url.get_backend_name() == "sqlite":

  @event.listens_for(engine.sync_engine, "connect")
  def _sqlite_foreign_keys(dbapi_conn, _record) -> None:
    # SQLite ignores ON DELETE CASCADE unless enabled per connection.
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


async def init_models() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
