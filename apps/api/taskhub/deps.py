from __future__ import annotations

from fastapi import Cookie, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import Settings, settings
from taskhub.db import SessionLocal
from taskhub.errors import NotFound, Unauthorized
from taskhub.identity.service import find_by_pid
from taskhub.mail.service import AuthMailer
from taskhub.models import User
from taskhub.security import AUTH_COOKIE_NAME, verify_token
from taskhub.storage import BlobStore


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def get_settings() -> Settings:
  return settings


def get_blob_store(request: Request) -> BlobStore:
  return request.app.state.blob_store


def get_mailer(request: Request) -> AuthMailer:
  return request.app.state.mailer


def _request_token(request: Request, cookie_token: str | None) -> str | None:
  auth = request.headers.get("authorization")
  if auth and auth.lower().startswith("bearer "):
    token = auth.split(" ", 1)[1].strip()
    return token or None
  return cookie_token or None


async def get_current_user(
  request: Request,
  db: AsyncSession = Depends(get_db),
  auth_token: str | None = Cookie(default=None, alias=AUTH_COOKIE_NAME),
) -> User:
  token = _request_token(request, auth_token)
  if not token:
    raise Unauthorized("Not authenticated")
  pid = verify_token(token)
  try:
    return await find_by_pid(db, pid)
  except NotFound as exc:
    raise Unauthorized("User not found") from exc


async def get_optional_user(
  request: Request,
  db: AsyncSession = Depends(get_db),
  auth_token: str | None = Cookie(default=None, alias=AUTH_COOKIE_NAME),
) -> User | None:
  """The caller when a valid credential is presented; anonymous otherwise."""
  try:
    return await get_current_user(request, db, auth_token)
  except Unauthorized:
    return None
