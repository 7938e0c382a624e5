from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import settings
from taskhub.db import SessionLocal
from taskhub.identity.service import ensure_role, normalize_email
from taskhub.models import User
from taskhub.security import hash_password


async def seed_roles(db: AsyncSession) -> None:
  await ensure_role(db, settings.admin_role_name)
  await ensure_role(db, settings.default_role_name)
  await db.commit()


async def seed_admin(db: AsyncSession, *, email: str, password: str) -> bool:
  """Create a verified admin account unless the address is taken. Returns True when created."""
  normalized = normalize_email(email)
  res = await db.execute(select(User).where(User.email == normalized))
  if res.scalar_one_or_none():
    return False
  role = await ensure_role(db, settings.admin_role_name)
  db.add(
    User(
      email=normalized,
      name="Admin",
      password_hash=hash_password(password),
      role_id=role.id,
      email_verified_at=datetime.now(timezone.utc),
    )
  )
  await db.commit()
  return True


async def seed() -> None:
  async with SessionLocal() as db:
    await seed_roles(db)
    admin_email = (os.getenv("SEED_ADMIN_EMAIL") or "").strip()
    admin_password = (os.getenv("SEED_ADMIN_PASSWORD") or "").strip()
    if admin_email and admin_password:
      if await seed_admin(db, email=admin_email, password=admin_password):
        print(f"TaskHub admin account created: {normalize_email(admin_email)}")


def main() -> None:
  asyncio.run(seed())


if __name__ == "__main__":
  main()
