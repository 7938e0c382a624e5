from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.deps import get_current_user, get_db, get_optional_user
from taskhub.identity.service import find_by_pid_with_role, load_role
from taskhub.models import User
from taskhub.schemas import TaskOut, UserOut
from taskhub.search.service import list_user_tasks
from taskhub.views import task_out, user_out

router = APIRouter(prefix="/api/user", tags=["users"])


@router.get("/me", response_model=UserOut)
async def get_me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserOut:
  return user_out(user, await load_role(db, user.role_id))


@router.get("/tasks/me", response_model=list[TaskOut])
async def my_tasks(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  tasks = await list_user_tasks(db, user.pid, asker_pid=user.pid)
  return [task_out(t) for t in tasks]


@router.get("/tasks/{pid}", response_model=list[TaskOut])
async def user_tasks(pid: str, asker: User | None = Depends(get_optional_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  tasks = await list_user_tasks(db, pid, asker_pid=asker.pid if asker else None)
  return [task_out(t) for t in tasks]


@router.get("/{pid}", response_model=UserOut)
async def get_one(pid: str, db: AsyncSession = Depends(get_db)) -> UserOut:
  u, role = await find_by_pid_with_role(db, pid)
  return user_out(u, role)
