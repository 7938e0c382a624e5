from __future__ import annotations

import mimetypes
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.attachments import service as attachments_service
from taskhub.attachments.service import UploadedFile
from taskhub.authz.engine import ATTACHMENT_READ_LEVELS, ATTACHMENT_WRITE_LEVELS, has_access, has_attachment_access
from taskhub.config import Settings
from taskhub.deps import get_blob_store, get_current_user, get_db, get_settings
from taskhub.models import AttachmentType, User
from taskhub.schemas import AttachmentOut
from taskhub.storage import BlobStore
from taskhub.views import attachment_out

router = APIRouter(prefix="/api/tasks/attachments", tags=["attachments"])


async def _read_upload(file: UploadFile | None, cfg: Settings) -> UploadedFile | None:
  if file is None:
    return None
  limit = int(cfg.max_attachment_bytes)
  content = await file.read(limit + 1)
  if len(content) > limit:
    raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Attachment too large")
  return UploadedFile(filename=file.filename or "", content=content)


def content_disposition(filename: str) -> str:
  # Header values go out as latin-1; non-ASCII names travel in filename* (RFC 5987).
  fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_").replace("\\", "_")
  quoted = quote(filename, safe="")
  if quoted == filename:
    return f'attachment; filename="{fallback}"'
  return f'attachment; filename="{fallback}"; ' + f"filename*=UTF-8''{quoted}"


@router.get("/{task_id}", response_model=list[AttachmentOut])
async def list_attachments(task_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[AttachmentOut]:
  await has_access(db, user.pid, task_id, ATTACHMENT_READ_LEVELS)
  return [attachment_out(a) for a in await attachments_service.list_attachments(db, task_id)]


@router.post("/{task_id}", response_model=AttachmentOut)
async def add_attachment(
  task_id: int,
  attachment_type: AttachmentType = Form(...),
  data: str | None = Form(default=None),
  file: UploadFile | None = File(default=None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: BlobStore = Depends(get_blob_store),
  cfg: Settings = Depends(get_settings),
) -> AttachmentOut:
  await has_access(db, user.pid, task_id, ATTACHMENT_WRITE_LEVELS)
  upload = await _read_upload(file, cfg)
  a = await attachments_service.add_attachment(
    db, blobs, actor_pid=user.pid, task_id=task_id, attachment_type=attachment_type, data=data, file=upload
  )
  return attachment_out(a)


@router.api_route("/{attachment_id}", methods=["PUT", "PATCH"], response_model=AttachmentOut)
async def update_attachment(
  attachment_id: int,
  data: str | None = Form(default=None),
  file: UploadFile | None = File(default=None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: BlobStore = Depends(get_blob_store),
  cfg: Settings = Depends(get_settings),
) -> AttachmentOut:
  attachment = await has_attachment_access(db, user.pid, attachment_id, ATTACHMENT_WRITE_LEVELS)
  upload = await _read_upload(file, cfg)
  a = await attachments_service.update_attachment(db, blobs, attachment, actor_pid=user.pid, data=data, file=upload)
  return attachment_out(a)


@router.delete("/{attachment_id}")
async def remove_attachment(
  attachment_id: int,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: BlobStore = Depends(get_blob_store),
) -> dict:
  attachment = await has_attachment_access(db, user.pid, attachment_id, ATTACHMENT_WRITE_LEVELS)
  await attachments_service.remove_attachment(db, blobs, attachment, actor_id=user.id)
  return {"ok": True}


@router.get("/{attachment_id}/file")
async def download_attachment(
  attachment_id: int,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: BlobStore = Depends(get_blob_store),
) -> Response:
  attachment = await has_attachment_access(db, user.pid, attachment_id, ATTACHMENT_READ_LEVELS)
  content = await attachments_service.read_file(blobs, attachment)
  media_type = mimetypes.guess_type(attachment.data)[0] or "application/octet-stream"
  return Response(content=content, media_type=media_type, headers={"Content-Disposition": content_disposition(attachment.data)})
