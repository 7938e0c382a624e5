from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.audit import write_audit
from taskhub.config import settings
from taskhub.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from taskhub.models import Access, Attachment, AttachmentType, Role, User, as_utc
from taskhub.security import hash_password, new_magic_token, new_one_time_token, verify_password
from taskhub.storage import BlobStore, blob_key, delete_best_effort

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2


def normalize_email(email: str) -> str:
  return (email or "").strip().lower()


def _validate_user_name(name: str) -> None:
  if len(name or "") < MIN_NAME_LENGTH:
    raise ValidationError("Name must be at least 2 characters long.")


async def _one_user(db: AsyncSession, *conditions) -> User:
  res = await db.execute(select(User).where(*conditions))
  u = res.scalar_one_or_none()
  if not u:
    raise NotFound("User not found")
  return u


async def find_by_pid(db: AsyncSession, pid: str) -> User:
  return await _one_user(db, User.pid == pid)


async def find_by_email(db: AsyncSession, email: str) -> User:
  return await _one_user(db, User.email == normalize_email(email))


async def find_by_id(db: AsyncSession, user_id: int) -> User:
  return await _one_user(db, User.id == user_id)


async def load_role(db: AsyncSession, role_id: int) -> Role:
  res = await db.execute(select(Role).where(Role.id == role_id))
  r = res.scalar_one_or_none()
  if not r:
    raise NotFound("Role not found")
  return r


async def find_by_pid_with_role(db: AsyncSession, pid: str) -> tuple[User, Role]:
  u = await find_by_pid(db, pid)
  return u, await load_role(db, u.role_id)


async def find_by_id_with_role(db: AsyncSession, user_id: int) -> tuple[User, Role]:
  u = await find_by_id(db, user_id)
  return u, await load_role(db, u.role_id)


async def ensure_role(db: AsyncSession, name: str) -> Role:
  res = await db.execute(select(Role).where(Role.name == name))
  r = res.scalar_one_or_none()
  if r:
    return r
  r = Role(name=name)
  db.add(r)
  await db.flush()
  return r


async def create_with_password(db: AsyncSession, *, email: str, password: str, name: str) -> User:
  _validate_user_name(name)
  normalized = normalize_email(email)
  if not normalized or "@" not in normalized:
    raise ValidationError("Invalid email")
  if not password:
    raise ValidationError("Password is required")
  res = await db.execute(select(User.id).where(User.email == normalized))
  if res.scalar_one_or_none() is not None:
    raise Conflict("Entity already exists")

  role = await ensure_role(db, settings.default_role_name)
  u = User(email=normalized, name=name, password_hash=hash_password(password), role_id=role.id)
  db.add(u)
  await db.commit()
  await db.refresh(u)
  return u


async def authenticate(db: AsyncSession, *, email: str, password: str) -> User:
  res = await db.execute(select(User).where(User.email == normalize_email(email)))
  u = res.scalar_one_or_none()
  if not u or not verify_password(password, u.password_hash):
    raise Unauthorized("unauthorized!")
  if u.email_verified_at is None:
    raise Forbidden("User email is not verified")
  return u


async def set_email_verification_sent(db: AsyncSession, user: User) -> User:
  user.email_verification_token = new_one_time_token()
  user.email_verification_sent_at = datetime.now(timezone.utc)
  await db.commit()
  await db.refresh(user)
  return user


async def find_by_verification_token(db: AsyncSession, token: str) -> User:
  return await _one_user(db, User.email_verification_token == token)


async def mark_verified(db: AsyncSession, user: User) -> User:
  user.email_verified_at = datetime.now(timezone.utc)
  user.email_verification_token = None
  await db.commit()
  await db.refresh(user)
  logger.info("user verified pid=%s", user.pid)
  return user


async def set_forgot_password_sent(db: AsyncSession, user: User) -> User:
  user.reset_token = new_one_time_token()
  user.reset_sent_at = datetime.now(timezone.utc)
  await db.commit()
  await db.refresh(user)
  return user


async def find_by_reset_token(db: AsyncSession, token: str) -> User:
  return await _one_user(db, User.reset_token == token)


async def reset_password(db: AsyncSession, user: User, password: str) -> User:
  if not password:
    raise ValidationError("Password is required")
  user.password_hash = hash_password(password)
  user.reset_token = None
  user.reset_sent_at = None
  await db.commit()
  await db.refresh(user)
  return user


async def create_magic_link(db: AsyncSession, user: User, *, ttl_minutes: int | None = None) -> User:
  ttl = int(ttl_minutes if ttl_minutes is not None else settings.magic_link_ttl_minutes)
  user.magic_link_token = new_magic_token()
  user.magic_link_expiration = datetime.now(timezone.utc) + timedelta(minutes=ttl)
  await db.commit()
  await db.refresh(user)
  return user


async def find_by_magic_token(db: AsyncSession, token: str) -> User:
  u = await _one_user(db, User.magic_link_token == token)
  expires_at = as_utc(u.magic_link_expiration)
  if expires_at is None or expires_at < datetime.now(timezone.utc):
    raise Unauthorized("Magic link expired")
  return u


async def clear_magic_link(db: AsyncSession, user: User) -> User:
  user.magic_link_token = None
  user.magic_link_expiration = None
  await db.commit()
  await db.refresh(user)
  return user


async def delete_user(db: AsyncSession, user: User, *, blobs: BlobStore | None = None) -> None:
  """
  Delete an account together with everything that references it.

  Access rows and the attachments the user owns are deleted explicitly in the
  same transaction as the user row. File blobs go afterwards, best-effort.
  """
  fres = await db.execute(
    select(Attachment.id, Attachment.data).where(Attachment.owner_id == user.id, Attachment.attachment_type == AttachmentType.FILE)
  )
  file_keys = [blob_key(row.id, row.data) for row in fres.all()]

  await db.execute(delete(Attachment).where(Attachment.owner_id == user.id))
  await db.execute(delete(Access).where(Access.user_id == user.id))
  await db.execute(delete(User).where(User.id == user.id))
  await write_audit(db, event_type="user.deleted", entity_type="User", entity_id=user.pid, actor_id=user.id)
  await db.commit()

  if blobs is not None:
    for key in file_keys:
      await delete_best_effort(blobs, key)


async def list_roles(db: AsyncSession) -> list[Role]:
  res = await db.execute(select(Role).order_by(Role.id.asc()))
  return list(res.scalars().all())


async def _ensure_role_name_free(db: AsyncSession, name: str, *, exclude_id: int | None = None) -> None:
  q = select(Role.id).where(Role.name == name)
  if exclude_id is not None:
    q = q.where(Role.id != exclude_id)
  if (await db.execute(q)).scalar_one_or_none() is not None:
    raise Conflict("Role already exists")


async def create_role(db: AsyncSession, *, name: str, actor_id: int | None = None) -> Role:
  if not (name or "").strip():
    raise ValidationError("Role name is required")
  await _ensure_role_name_free(db, name)
  r = Role(name=name)
  db.add(r)
  await db.flush()
  await write_audit(db, event_type="role.created", entity_type="Role", entity_id=r.id, actor_id=actor_id, payload={"name": name})
  await db.commit()
  await db.refresh(r)
  return r


async def update_role(db: AsyncSession, role_id: int, *, name: str, actor_id: int | None = None) -> Role:
  if not (name or "").strip():
    raise ValidationError("Role name is required")
  r = await load_role(db, role_id)
  await _ensure_role_name_free(db, name, exclude_id=r.id)
  old_name = r.name
  r.name = name
  await write_audit(
    db, event_type="role.updated", entity_type="Role", entity_id=r.id, actor_id=actor_id, payload={"from": old_name, "to": name}
  )
  await db.commit()
  await db.refresh(r)
  return r


async def delete_role(db: AsyncSession, role_id: int, *, actor_id: int | None = None) -> None:
  r = await load_role(db, role_id)
  in_use = (await db.execute(select(func.count(User.id)).where(User.role_id == r.id))).scalar_one()
  if in_use:
    raise Conflict("Role is still assigned to users")
  await db.execute(delete(Role).where(Role.id == r.id))
  await write_audit(db, event_type="role.deleted", entity_type="Role", entity_id=r.id, actor_id=actor_id, payload={"name": r.name})
  await db.commit()
