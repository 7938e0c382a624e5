from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.audit import write_audit
from taskhub.config import settings
from taskhub.errors import NotFound, ValidationError
from taskhub.identity.service import find_by_email, find_by_pid
from taskhub.models import Access, AccessLevel, User
from taskhub.tasks.service import load_task

GRANT_POLICIES = ("insert", "upsert")


async def _find_for_user(db: AsyncSession, *, task_id: int, user: User) -> Access:
  task = await load_task(db, task_id)
  res = await db.execute(
    select(Access).where(Access.user_id == user.id, Access.task_id == task.id).order_by(Access.id.asc()).limit(1)
  )
  access = res.scalar_one_or_none()
  if not access:
    raise NotFound("Access not found")
  return access


async def find_by_pid_for_task(db: AsyncSession, task_id: int, pid: str) -> Access:
  return await _find_for_user(db, task_id=task_id, user=await find_by_pid(db, pid))


async def find_by_email_for_task(db: AsyncSession, task_id: int, email: str) -> Access:
  return await _find_for_user(db, task_id=task_id, user=await find_by_email(db, email))


async def list_for_task(db: AsyncSession, task_id: int) -> list[Access]:
  # No task lookup: a deleted task simply has no grants left.
  res = await db.execute(select(Access).where(Access.task_id == task_id).order_by(Access.id.asc()))
  return list(res.scalars().all())


async def find_task_owner(db: AsyncSession, task_id: int) -> User:
  res = await db.execute(
    select(User)
    .join(Access, Access.user_id == User.id)
    .where(Access.task_id == task_id, Access.accesslevel == AccessLevel.FULL_ACCESS)
    .order_by(Access.id.asc())
    .limit(1)
  )
  u = res.scalar_one_or_none()
  if not u:
    raise NotFound("Task owner not found")
  return u


async def grant_access(
  db: AsyncSession,
  *,
  task_id: int,
  email: str,
  level: AccessLevel,
  policy: str | None = None,
  actor_id: int | None = None,
) -> Access:
  """
  Grant `level` on a task to the user registered under `email`.

  Under the default "insert" policy every call adds a row, so granting twice
  leaves two grants for the pair. The "upsert" policy rewrites the level of an
  existing grant instead.
  """
  policy = policy or settings.access_grant_policy
  if policy not in GRANT_POLICIES:
    raise ValidationError(f"Unknown grant policy: {policy}")
  user = await find_by_email(db, email)
  task = await load_task(db, task_id)

  access: Access | None = None
  if policy == "upsert":
    res = await db.execute(
      select(Access).where(Access.user_id == user.id, Access.task_id == task.id).order_by(Access.id.asc()).limit(1)
    )
    access = res.scalar_one_or_none()
  if access is None:
    access = Access(user_id=user.id, task_id=task.id, accesslevel=level)
    db.add(access)
  else:
    access.accesslevel = level
  await db.flush()
  await write_audit(
    db,
    event_type="access.granted",
    entity_type="Access",
    entity_id=access.id,
    task_id=task.id,
    actor_id=actor_id,
    payload={"userPid": user.pid, "accessLevel": level},
  )
  await db.commit()
  await db.refresh(access)
  return access


async def update_access(db: AsyncSession, *, task_id: int, pid: str, level: AccessLevel, actor_id: int | None = None) -> Access:
  access = await find_by_pid_for_task(db, task_id, pid)
  old_level = access.accesslevel
  access.accesslevel = level
  await write_audit(
    db,
    event_type="access.updated",
    entity_type="Access",
    entity_id=access.id,
    task_id=task_id,
    actor_id=actor_id,
    payload={"userPid": pid, "from": old_level, "to": level},
  )
  await db.commit()
  await db.refresh(access)
  return access


async def deny_access(db: AsyncSession, *, task_id: int, pid: str, actor_id: int | None = None) -> None:
  access = await find_by_pid_for_task(db, task_id, pid)
  await db.execute(delete(Access).where(Access.id == access.id))
  await write_audit(
    db,
    event_type="access.denied",
    entity_type="Access",
    entity_id=access.id,
    task_id=task_id,
    actor_id=actor_id,
    payload={"userPid": pid, "accessLevel": access.accesslevel},
  )
  await db.commit()
