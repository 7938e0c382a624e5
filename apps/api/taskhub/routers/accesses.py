from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.accesses import service as accesses_service
from taskhub.authz.engine import ACCESS_MANAGE_LEVELS, has_access
from taskhub.config import Settings
from taskhub.deps import get_current_user, get_db, get_settings
from taskhub.identity.service import find_by_id
from taskhub.models import User
from taskhub.schemas import AccessDenyIn, AccessGrantIn, AccessOut, AccessUpdateIn
from taskhub.views import access_out

router = APIRouter(prefix="/api/tasks/access", tags=["access"])


@router.get("/{task_id}", response_model=list[AccessOut])
async def list_accesses(task_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[AccessOut]:
  await has_access(db, user.pid, task_id, ACCESS_MANAGE_LEVELS)
  out: list[AccessOut] = []
  for a in await accesses_service.list_for_task(db, task_id):
    grantee = await find_by_id(db, a.user_id)
    out.append(access_out(a, grantee.pid))
  return out


@router.post("/{task_id}", response_model=AccessOut)
async def grant_access(
  task_id: int,
  payload: AccessGrantIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  cfg: Settings = Depends(get_settings),
) -> AccessOut:
  await has_access(db, user.pid, task_id, ACCESS_MANAGE_LEVELS)
  a = await accesses_service.grant_access(
    db, task_id=task_id, email=payload.email, level=payload.accessLevel, policy=cfg.access_grant_policy, actor_id=user.id
  )
  grantee = await find_by_id(db, a.user_id)
  return access_out(a, grantee.pid)


@router.api_route("/{task_id}", methods=["PUT", "PATCH"], response_model=AccessOut)
async def update_access(
  task_id: int,
  payload: AccessUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> AccessOut:
  await has_access(db, user.pid, task_id, ACCESS_MANAGE_LEVELS)
  a = await accesses_service.update_access(db, task_id=task_id, pid=payload.pid, level=payload.accessLevel, actor_id=user.id)
  return access_out(a, payload.pid)


@router.delete("/{task_id}")
async def deny_access(
  task_id: int,
  payload: AccessDenyIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  await has_access(db, user.pid, task_id, ACCESS_MANAGE_LEVELS)
  await accesses_service.deny_access(db, task_id=task_id, pid=payload.pid, actor_id=user.id)
  return {"ok": True}
