from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models import Task
from taskhub.tasks import service as tasks_service


async def search_tasks(db: AsyncSession, pattern: str, *, actor_pid: str | None = None) -> list[Task]:
  # A valid credential widens the search to every task the caller holds a grant on.
  if actor_pid is None:
    return await tasks_service.search_for_anon(db, pattern)
  return await tasks_service.search_for_user(db, actor_pid, pattern)


async def list_user_tasks(db: AsyncSession, subject_pid: str, *, asker_pid: str | None = None) -> list[Task]:
  if asker_pid is None:
    return await tasks_service.list_for_anon(db, subject_pid)
  return await tasks_service.list_for_user(db, subject_pid, asker_pid)
