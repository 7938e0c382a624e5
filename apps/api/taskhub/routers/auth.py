from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.config import Settings
from taskhub.deps import get_blob_store, get_current_user, get_db, get_mailer, get_settings
from taskhub.errors import Conflict, NotFound
from taskhub.identity import service as identity
from taskhub.mail.service import AuthMailer
from taskhub.models import User
from taskhub.schemas import CurrentOut, ForgotIn, LoginIn, LoginOut, MagicLinkIn, RegisterIn, ResetIn
from taskhub.security import AUTH_COOKIE_NAME, issue_token
from taskhub.storage import BlobStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _api_base(request: Request) -> str:
  return str(request.base_url)


def _set_auth_cookie(response: Response, token: str, cfg: Settings) -> None:
  response.set_cookie(
    key=AUTH_COOKIE_NAME,
    value=token,
    httponly=True,
    secure=cfg.cookie_secure,
    samesite="lax",
    domain=cfg.cookie_domain or None,
    max_age=int(cfg.jwt_expiration_seconds),
    path="/",
  )


@router.post("/register")
async def register(
  payload: RegisterIn,
  request: Request,
  db: AsyncSession = Depends(get_db),
  mailer: AuthMailer = Depends(get_mailer),
) -> dict:
  try:
    u = await identity.create_with_password(db, email=payload.email, password=payload.password, name=payload.name)
  except Conflict:
    logger.info("could not register user email=%s", identity.normalize_email(payload.email))
    raise
  u = await identity.set_email_verification_sent(db, u)
  await mailer.send_welcome(u, api_base=_api_base(request))
  return {"ok": True}


@router.get("/verify/{token}")
async def verify(token: str, db: AsyncSession = Depends(get_db), cfg: Settings = Depends(get_settings)) -> RedirectResponse:
  u = await identity.find_by_verification_token(db, token)
  if u.email_verified_at is None:
    await identity.mark_verified(db, u)
  return RedirectResponse(url=f"{cfg.frontend_url.rstrip('/')}/auth/login", status_code=303)


@router.post("/login", response_model=LoginOut)
async def login(
  payload: LoginIn,
  response: Response,
  db: AsyncSession = Depends(get_db),
  cfg: Settings = Depends(get_settings),
) -> LoginOut:
  u = await identity.authenticate(db, email=payload.email, password=payload.password)
  role = await identity.load_role(db, u.role_id)
  token = issue_token(u.pid, secret=cfg.app_secret, ttl_seconds=cfg.jwt_expiration_seconds)
  _set_auth_cookie(response, token, cfg)
  return LoginOut(token=token, pid=u.pid, name=u.name, isVerified=u.email_verified_at is not None, role=role.name)


@router.post("/forgot")
async def forgot(payload: ForgotIn, db: AsyncSession = Depends(get_db), mailer: AuthMailer = Depends(get_mailer)) -> dict:
  # Same answer whether or not the address is registered.
  try:
    u = await identity.find_by_email(db, payload.email)
  except NotFound:
    return {"ok": True}
  u = await identity.set_forgot_password_sent(db, u)
  await mailer.forgot_password(u)
  return {"ok": True}


@router.post("/reset")
async def reset(payload: ResetIn, db: AsyncSession = Depends(get_db)) -> dict:
  u = await identity.find_by_reset_token(db, payload.token)
  await identity.reset_password(db, u, payload.password)
  return {"ok": True}


@router.get("/current", response_model=CurrentOut)
async def current(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> CurrentOut:
  role = await identity.load_role(db, user.role_id)
  return CurrentOut(pid=user.pid, name=user.name, email=user.email, role=role.name)


@router.post("/magic-link")
async def magic_link(
  payload: MagicLinkIn,
  request: Request,
  db: AsyncSession = Depends(get_db),
  mailer: AuthMailer = Depends(get_mailer),
) -> dict:
  try:
    u = await identity.find_by_email(db, payload.email)
  except NotFound:
    return {"ok": True}
  u = await identity.create_magic_link(db, u)
  await mailer.send_magic_link(u, api_base=_api_base(request))
  return {"ok": True}


@router.get("/magic-link/{token}")
async def magic_link_verify(token: str, db: AsyncSession = Depends(get_db), cfg: Settings = Depends(get_settings)) -> RedirectResponse:
  u = await identity.find_by_magic_token(db, token)
  u = await identity.clear_magic_link(db, u)
  jwt_token = issue_token(u.pid, secret=cfg.app_secret, ttl_seconds=cfg.jwt_expiration_seconds)
  response = RedirectResponse(url=f"{cfg.frontend_url.rstrip('/')}/auth/login", status_code=303)
  _set_auth_cookie(response, jwt_token, cfg)
  return response


@router.post("/logout")
async def logout(response: Response, user: User = Depends(get_current_user)) -> dict:
  response.delete_cookie(key=AUTH_COOKIE_NAME, path="/")
  return {"ok": True}


@router.post("/delete")
async def delete_account(
  response: Response,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  blobs: BlobStore = Depends(get_blob_store),
) -> dict:
  await identity.delete_user(db, user, blobs=blobs)
  response.delete_cookie(key=AUTH_COOKIE_NAME, path="/")
  return {"ok": True}
