from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from taskhub.config import settings
from taskhub.errors import Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

AUTH_COOKIE_NAME = "auth_token"
MAGIC_TOKEN_LENGTH = 32


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
  # OAuth-only accounts carry no password hash.
  if not password_hash:
    return False
  return pwd_context.verify(password, password_hash)


def issue_token(pid: str, *, secret: str | None = None, ttl_seconds: int | None = None) -> str:
  ttl = int(ttl_seconds if ttl_seconds is not None else settings.jwt_expiration_seconds)
  expire = datetime.now(timezone.utc) + timedelta(seconds=ttl)
  payload = {"pid": pid, "exp": int(expire.timestamp())}
  return jwt.encode(payload, secret or settings.app_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, *, secret: str | None = None) -> str:
  """Return the user pid carried by a valid token."""
  try:
    claims = jwt.decode(token, secret or settings.app_secret, algorithms=[settings.jwt_algorithm])
  except JWTError as exc:
    raise Unauthorized("Invalid or expired token") from exc
  pid = claims.get("pid")
  if not isinstance(pid, str) or not pid:
    raise Unauthorized("Invalid or expired token")
  return pid


def new_one_time_token() -> str:
  return secrets.token_urlsafe(32)


def new_magic_token() -> str:
  alphabet = string.ascii_letters + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(MAGIC_TOKEN_LENGTH))
