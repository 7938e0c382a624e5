from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.authz.engine import require_admin
from taskhub.deps import get_current_user, get_db
from taskhub.identity import service as identity
from taskhub.models import User
from taskhub.schemas import RoleIn, RoleOut
from taskhub.views import role_out

router = APIRouter(prefix="/api/roles", tags=["roles"])


@router.get("", response_model=list[RoleOut])
async def list_roles(db: AsyncSession = Depends(get_db)) -> list[RoleOut]:
  return [role_out(r) for r in await identity.list_roles(db)]


@router.post("", response_model=RoleOut)
async def create_role(payload: RoleIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> RoleOut:
  await require_admin(db, user.pid)
  return role_out(await identity.create_role(db, name=payload.name, actor_id=user.id))


@router.api_route("/{role_id}", methods=["PUT", "PATCH"], response_model=RoleOut)
async def update_role(role_id: int, payload: RoleIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> RoleOut:
  await require_admin(db, user.pid)
  return role_out(await identity.update_role(db, role_id, name=payload.name, actor_id=user.id))


@router.delete("/{role_id}")
async def delete_role(role_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  await require_admin(db, user.pid)
  await identity.delete_role(db, role_id, actor_id=user.id)
  return {"ok": True}
