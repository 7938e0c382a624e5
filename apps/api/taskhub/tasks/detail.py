from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accesses.service import find_task_owner
from taskhub.attachments.service import list_attachments
from taskhub.identity.service import load_role
from taskhub.models import Attachment, Role, Task, User
from taskhub.tasks.service import load_task


@dataclass
class TaskFull:
  task: Task
  owner: User
  owner_role: Role
  attachments: list[Attachment]


async def load_full(db: AsyncSession, task_id: int) -> TaskFull:
  task = await load_task(db, task_id)
  owner = await find_task_owner(db, task.id)
  role = await load_role(db, owner.role_id)
  attachments = await list_attachments(db, task.id)
  return TaskFull(task=task, owner=owner, owner_role=role, attachments=attachments)
