from __future__ import annotations

from taskhub.models import Access, Attachment, Role, Task, User
from taskhub.schemas import AccessOut, AttachmentOut, RoleOut, TaskOut, UserOut


def task_out(t: Task) -> TaskOut:
  return TaskOut(id=t.id, name=t.name, visibility=t.visibility, createdAt=t.created_at, updatedAt=t.updated_at)


def user_out(u: User, role: Role) -> UserOut:
  return UserOut(pid=u.pid, email=u.email, name=u.name, role=role.name, isVerified=u.email_verified_at is not None)


def role_out(r: Role) -> RoleOut:
  return RoleOut(id=r.id, name=r.name)


def access_out(a: Access, user_pid: str) -> AccessOut:
  return AccessOut(id=a.id, accessLevel=a.accesslevel, userPid=user_pid, taskId=a.task_id)


def attachment_out(a: Attachment) -> AttachmentOut:
  return AttachmentOut(
    id=a.id,
    taskId=a.task_id,
    attachmentType=a.attachment_type,
    data=a.data,
    url=f"/api/tasks/attachments/{a.id}/file" if a.attachment_type.is_file else None,
    createdAt=a.created_at,
    updatedAt=a.updated_at,
  )
