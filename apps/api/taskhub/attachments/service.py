from __future__ import annotations

import posixpath
from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.audit import write_audit
from taskhub.errors import NotFound, ValidationError
from taskhub.identity.service import find_by_pid
from taskhub.models import Attachment, AttachmentType
from taskhub.storage import BlobStore, blob_key, delete_best_effort
from taskhub.tasks.service import load_task


@dataclass(frozen=True)
class UploadedFile:
  filename: str
  content: bytes


def safe_filename(filename: str | None) -> str:
  name = posixpath.basename((filename or "").replace("\\", "/")).strip()
  if not name or name in (".", ".."):
    raise ValidationError("File field missing filename")
  return name


def check_file_matches_type(attachment_type: AttachmentType, file: UploadedFile | None, *, updating: bool = False) -> None:
  """File attachments must carry bytes; every other type must not."""
  if attachment_type.is_file:
    if file is None:
      if updating:
        raise ValidationError("File content is required for such Attachment")
      raise ValidationError("File content is required for provided Attachment")
  elif file is not None:
    if updating:
      raise ValidationError("File content is not expected for such Attachment")
    raise ValidationError("File upload not expected for provided Attachment")


async def load_attachment(db: AsyncSession, attachment_id: int) -> Attachment:
  res = await db.execute(select(Attachment).where(Attachment.id == attachment_id))
  a = res.scalar_one_or_none()
  if not a:
    raise NotFound("Attachment not found.")
  return a


async def list_attachments(db: AsyncSession, task_id: int) -> list[Attachment]:
  task = await load_task(db, task_id)
  res = await db.execute(select(Attachment).where(Attachment.task_id == task.id).order_by(Attachment.id.asc()))
  return list(res.scalars().all())


async def add_attachment(
  db: AsyncSession,
  blobs: BlobStore,
  *,
  actor_pid: str,
  task_id: int,
  attachment_type: AttachmentType,
  data: str | None,
  file: UploadedFile | None = None,
) -> Attachment:
  """
  Attach data to a task.

  For File attachments the stored data is the file name and the bytes go to
  the blob store under "{attachment_id}/{filename}" once the row is committed.
  A failed upload leaves the row in place.
  """
  check_file_matches_type(attachment_type, file)
  if file is not None:
    data = safe_filename(file.filename)
  elif data is None:
    raise ValidationError("Attachment data is required")
  user = await find_by_pid(db, actor_pid)
  task = await load_task(db, task_id)

  a = Attachment(task_id=task.id, owner_id=user.id, attachment_type=attachment_type, data=data)
  db.add(a)
  await db.flush()
  await write_audit(
    db,
    event_type="attachment.added",
    entity_type="Attachment",
    entity_id=a.id,
    task_id=task.id,
    actor_id=user.id,
    payload={"type": attachment_type, "data": data},
  )
  await db.commit()
  await db.refresh(a)

  if file is not None:
    await blobs.put(blob_key(a.id, a.data), file.content)
  return a


async def update_attachment(
  db: AsyncSession,
  blobs: BlobStore,
  attachment: Attachment,
  *,
  actor_pid: str,
  data: str | None,
  file: UploadedFile | None = None,
) -> Attachment:
  """
  Replace an attachment's data. The type never changes.

  A File attachment drops its old blob (best-effort) before the new bytes are
  uploaded under a key derived from the new file name. The editing user
  becomes the recorded owner.
  """
  check_file_matches_type(attachment.attachment_type, file, updating=True)
  if file is None and data is None:
    raise ValidationError("Attachment data is required")
  user = await find_by_pid(db, actor_pid)

  if file is not None:
    new_name = safe_filename(file.filename)
    await delete_best_effort(blobs, blob_key(attachment.id, attachment.data))
    await blobs.put(blob_key(attachment.id, new_name), file.content)
    data = new_name

  attachment.data = data
  attachment.owner_id = user.id
  await write_audit(
    db,
    event_type="attachment.updated",
    entity_type="Attachment",
    entity_id=attachment.id,
    task_id=attachment.task_id,
    actor_id=user.id,
    payload={"data": data},
  )
  await db.commit()
  await db.refresh(attachment)
  return attachment


async def remove_attachment(db: AsyncSession, blobs: BlobStore, attachment: Attachment, *, actor_id: int | None = None) -> None:
  if attachment.attachment_type.is_file:
    await delete_best_effort(blobs, blob_key(attachment.id, attachment.data))
  await db.execute(delete(Attachment).where(Attachment.id == attachment.id))
  await write_audit(
    db,
    event_type="attachment.deleted",
    entity_type="Attachment",
    entity_id=attachment.id,
    task_id=attachment.task_id,
    actor_id=actor_id,
    payload={"type": attachment.attachment_type},
  )
  await db.commit()


async def read_file(blobs: BlobStore, attachment: Attachment) -> bytes:
  if not attachment.attachment_type.is_file:
    raise ValidationError("Attachment has no file content")
  return await blobs.get(blob_key(attachment.id, attachment.data))
