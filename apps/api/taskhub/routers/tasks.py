from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.authz.engine import TASK_DELETE_LEVELS, TASK_UPDATE_LEVELS, ensure_task_visible, has_access
from taskhub.deps import get_blob_store, get_current_user, get_db, get_optional_user
from taskhub.models import User
from taskhub.schemas import TaskCreateIn, TaskFullIn, TaskFullOut, TaskOut, TaskSearchIn, TaskUpdateIn
from taskhub.search.service import search_tasks
from taskhub.storage import BlobStore
from taskhub.tasks import service as tasks_service
from taskhub.tasks.detail import load_full
from taskhub.views import attachment_out, task_out, user_out

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("/list", response_model=list[TaskOut])
async def list_tasks(db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  return [task_out(t) for t in await tasks_service.list_public(db)]


@router.post("/search", response_model=list[TaskOut])
async def search(payload: TaskSearchIn, user: User | None = Depends(get_optional_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  tasks = await search_tasks(db, payload.name, actor_pid=user.pid if user else None)
  return [task_out(t) for t in tasks]


@router.post("/full", response_model=TaskFullOut)
async def get_full(payload: TaskFullIn, user: User | None = Depends(get_optional_user), db: AsyncSession = Depends(get_db)) -> TaskFullOut:
  full = await load_full(db, payload.taskId)
  await ensure_task_visible(db, user.pid if user else None, full.task)
  return TaskFullOut(
    task=task_out(full.task),
    owner=user_out(full.owner, full.owner_role),
    attachments=[attachment_out(a) for a in full.attachments],
  )


@router.post("", response_model=TaskOut)
async def create_task(payload: TaskCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await tasks_service.create_task(db, creator_pid=user.pid, name=payload.name, visibility=payload.visibility)
  return task_out(t)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: int, user: User | None = Depends(get_optional_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await tasks_service.load_task(db, task_id)
  await ensure_task_visible(db, user.pid if user else None, t)
  return task_out(t)


@router.api_route("/{task_id}", methods=["PUT", "PATCH"], response_model=TaskOut)
async def update_task(
  task_id: int,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  await has_access(db, user.pid, task_id, TASK_UPDATE_LEVELS)
  t = await tasks_service.update_task(db, task_id, name=payload.name, visibility=payload.visibility, actor_id=user.id)
  return task_out(t)


@router.delete("/{task_id}")
async def delete_task(
  task_id: int,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: BlobStore = Depends(get_blob_store),
) -> dict:
  await has_access(db, user.pid, task_id, TASK_DELETE_LEVELS)
  await tasks_service.remove_task(db, task_id, blobs=blobs, actor_id=user.id)
  return {"ok": True}
