from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.attachments.service import load_attachment
from taskhub.config import settings
from taskhub.errors import Unauthorized
from taskhub.identity.service import find_by_pid, find_by_pid_with_role
from taskhub.models import Access, AccessLevel, Attachment, Role, Task, TaskVisibility, User
from taskhub.tasks.service import load_task

logger = logging.getLogger(__name__)

TASK_UPDATE_LEVELS = frozenset({AccessLevel.FULL_ACCESS, AccessLevel.EDIT, AccessLevel.ADD_USER})
TASK_DELETE_LEVELS = frozenset({AccessLevel.FULL_ACCESS})
ACCESS_MANAGE_LEVELS = frozenset({AccessLevel.FULL_ACCESS, AccessLevel.ADD_USER})
ATTACHMENT_READ_LEVELS = frozenset(AccessLevel)
ATTACHMENT_WRITE_LEVELS = frozenset({AccessLevel.FULL_ACCESS, AccessLevel.ADD_USER, AccessLevel.EDIT})

OPEN_VISIBILITIES = frozenset({TaskVisibility.PUBLIC, TaskVisibility.PAID})


def level_grants(access: Access | None, levels: Iterable[AccessLevel]) -> bool:
  """
  Decide a single grant against a required set.

  Membership only: holding Edit does not imply View. No grant never passes.
  """
  if access is None:
    return False
  return access.accesslevel in frozenset(levels)


async def find_grant(db: AsyncSession, *, user_id: int, task_id: int) -> Access | None:
  # With duplicate grants the oldest row decides.
  res = await db.execute(
    select(Access).where(Access.user_id == user_id, Access.task_id == task_id).order_by(Access.id.asc()).limit(1)
  )
  return res.scalar_one_or_none()


async def has_access(db: AsyncSession, actor_pid: str, task_id: int, levels: Iterable[AccessLevel]) -> Task:
  """Raise Unauthorized unless the actor holds one of `levels` on the task. Returns the task."""
  user = await find_by_pid(db, actor_pid)
  task = await load_task(db, task_id)
  access = await find_grant(db, user_id=user.id, task_id=task.id)
  if not level_grants(access, levels):
    raise Unauthorized(f"No access to task {task.id} at the required level")
  return task


async def has_attachment_access(db: AsyncSession, actor_pid: str, attachment_id: int, levels: Iterable[AccessLevel]) -> Attachment:
  """Authorize against the attachment's parent task. Returns the attachment."""
  attachment = await load_attachment(db, attachment_id)
  await has_access(db, actor_pid, attachment.task_id, levels)
  return attachment


async def ensure_task_visible(db: AsyncSession, actor_pid: str | None, task: Task) -> None:
  if task.visibility in OPEN_VISIBILITIES:
    return
  if actor_pid is None:
    raise Unauthorized(f"Sign in to view task {task.id}")
  await has_access(db, actor_pid, task.id, AccessLevel)


def is_admin(role: Role) -> bool:
  return role.name == settings.admin_role_name


async def require_admin(db: AsyncSession, actor_pid: str) -> tuple[User, Role]:
  user, role = await find_by_pid_with_role(db, actor_pid)
  if not is_admin(role):
    logger.info("admin gate denied pid=%s role=%s", user.pid, role.name)
    raise Unauthorized("Only users with Admin rights can access this endpoint")
  return user, role
