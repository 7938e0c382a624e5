from __future__ import annotations

from sqlalchemy import delete, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.audit import write_audit
from taskhub.errors import NotFound, ValidationError
from taskhub.identity.service import find_by_pid
from taskhub.models import Access, AccessLevel, Attachment, AttachmentType, Task, TaskVisibility
from taskhub.storage import BlobStore, blob_key, delete_best_effort

MIN_TASK_NAME_LENGTH = 2

# Visibilities anyone may discover, signed in or not.
LISTED_VISIBILITIES = (TaskVisibility.PUBLIC, TaskVisibility.PAID)


def validate_task_name(name: str) -> None:
  if len(name or "") < MIN_TASK_NAME_LENGTH:
    raise ValidationError("Name must be at least 2 characters long.")


async def load_task(db: AsyncSession, task_id: int) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise NotFound("Task not found")
  return t


async def create_task(db: AsyncSession, *, creator_pid: str, name: str, visibility: TaskVisibility | None = None) -> Task:
  """
  Create a task and grant FullAccess on it to its creator.

  Both rows are written in one transaction; if either insert fails neither
  is kept.
  """
  validate_task_name(name)
  user = await find_by_pid(db, creator_pid)
  try:
    t = Task(name=name, visibility=visibility or TaskVisibility.PRIVATE)
    db.add(t)
    await db.flush()
    db.add(Access(user_id=user.id, task_id=t.id, accesslevel=AccessLevel.FULL_ACCESS))
    await write_audit(
      db,
      event_type="task.created",
      entity_type="Task",
      entity_id=t.id,
      task_id=t.id,
      actor_id=user.id,
      payload={"name": t.name, "visibility": t.visibility},
    )
    await db.commit()
  except Exception:
    await db.rollback()
    raise
  await db.refresh(t)
  return t


async def update_task(
  db: AsyncSession,
  task_id: int,
  *,
  name: str | None = None,
  visibility: TaskVisibility | None = None,
  actor_id: int | None = None,
) -> Task:
  t = await load_task(db, task_id)
  changed: dict = {}
  if name is not None:
    validate_task_name(name)
    t.name = name
    changed["name"] = name
  if visibility is not None:
    t.visibility = visibility
    changed["visibility"] = visibility
  if changed:
    await write_audit(
      db, event_type="task.updated", entity_type="Task", entity_id=t.id, task_id=t.id, actor_id=actor_id, payload={"fields": changed}
    )
  await db.commit()
  await db.refresh(t)
  return t


async def remove_task(db: AsyncSession, task_id: int, *, blobs: BlobStore | None = None, actor_id: int | None = None) -> None:
  """
  Delete a task with its grants and attachments.

  Dependents are deleted explicitly before the task row, in the same
  transaction. Blobs of File attachments are removed best-effort after commit.
  """
  t = await load_task(db, task_id)
  fres = await db.execute(
    select(Attachment.id, Attachment.data).where(Attachment.task_id == t.id, Attachment.attachment_type == AttachmentType.FILE)
  )
  file_keys = [blob_key(row.id, row.data) for row in fres.all()]

  await db.execute(delete(Attachment).where(Attachment.task_id == t.id))
  await db.execute(delete(Access).where(Access.task_id == t.id))
  await db.execute(delete(Task).where(Task.id == t.id))
  await write_audit(
    db, event_type="task.deleted", entity_type="Task", entity_id=t.id, task_id=t.id, actor_id=actor_id, payload={"name": t.name}
  )
  await db.commit()

  if blobs is not None:
    for key in file_keys:
      await delete_best_effort(blobs, key)


async def list_public(db: AsyncSession) -> list[Task]:
  res = await db.execute(select(Task).where(Task.visibility == TaskVisibility.PUBLIC).order_by(Task.id.asc()))
  return list(res.scalars().all())


def _granted_to(user_id: int):
  return exists().where(Access.task_id == Task.id, Access.user_id == user_id)


async def search_for_anon(db: AsyncSession, pattern: str) -> list[Task]:
  q = (
    select(Task)
    .where(Task.name.icontains(pattern or "", autoescape=True), Task.visibility.in_(LISTED_VISIBILITIES))
    .order_by(Task.id.asc())
  )
  res = await db.execute(q)
  return list(res.scalars().all())


async def search_for_user(db: AsyncSession, actor_pid: str, pattern: str) -> list[Task]:
  """Name search over listed tasks plus every task the actor holds any grant on."""
  user = await find_by_pid(db, actor_pid)
  q = (
    select(Task)
    .where(Task.name.icontains(pattern or "", autoescape=True))
    .where(Task.visibility.in_(LISTED_VISIBILITIES) | _granted_to(user.id))
    .order_by(Task.id.asc())
  )
  res = await db.execute(q)
  return list(res.scalars().all())


async def list_for_user(db: AsyncSession, subject_pid: str, asker_pid: str) -> list[Task]:
  """Tasks the subject holds a grant on; Private ones only when subjects look at themselves."""
  user = await find_by_pid(db, subject_pid)
  visible = list(LISTED_VISIBILITIES)
  if subject_pid == asker_pid:
    visible.append(TaskVisibility.PRIVATE)
  q = select(Task).where(_granted_to(user.id), Task.visibility.in_(visible)).order_by(Task.id.asc())
  res = await db.execute(q)
  return list(res.scalars().all())


async def list_for_anon(db: AsyncSession, subject_pid: str) -> list[Task]:
  user = await find_by_pid(db, subject_pid)
  q = select(Task).where(_granted_to(user.id), Task.visibility.in_(LISTED_VISIBILITIES)).order_by(Task.id.asc())
  res = await db.execute(q)
  return list(res.scalars().all())
