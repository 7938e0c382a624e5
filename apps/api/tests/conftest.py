from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./taskhub_test.db")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("MAIL_PROVIDER", "log")

from taskhub.config import settings
from taskhub.db import SessionLocal, engine, init_models
from taskhub.mail.service import AuthMailer, MailMessage
from taskhub.main import app
from taskhub.models import Access, Attachment, AuditEvent, Role, Task, User
from taskhub.seed import seed_admin, seed_roles
from taskhub.storage import MemoryBlobStore

PASSWORD = "secret-pass-1"
ADMIN_EMAIL = "admin@taskhub.local"
ADMIN_PASSWORD = "admin1234"


class RecordingMailProvider:
  def __init__(self) -> None:
    self.sent: list[MailMessage] = []

  async def send(self, msg: MailMessage) -> None:
    self.sent.append(msg)

  def last_to(self, email: str) -> MailMessage:
    for msg in reversed(self.sent):
      if msg.to == email:
        return msg
    raise AssertionError(f"no mail sent to {email}")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  await init_models()
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Attachment))
    await db.execute(delete(Access))
    await db.execute(delete(Task))
    await db.execute(delete(User))
    await db.execute(delete(Role))
    await db.commit()
    await seed_roles(db)
    await seed_admin(db, email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  if not settings.is_test_db():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. taskhub_test)."
    )
  await _reset_db()
  app.state.blob_store = MemoryBlobStore()
  app.state.mailer = AuthMailer(settings, provider=RecordingMailProvider())
  yield
  await _reset_db()


@pytest.fixture
def blobs() -> MemoryBlobStore:
  return app.state.blob_store


@pytest.fixture
def mailbox() -> RecordingMailProvider:
  return app.state.mailer.provider


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


def bearer(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}


async def register(client: AsyncClient, email: str, name: str = "Tester", password: str = PASSWORD) -> str:
  res = await client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
  assert res.status_code == 200, res.text
  async with SessionLocal() as db:
    u = (await db.execute(select(User).where(User.email == email.lower()))).scalar_one()
    return u.pid


async def verify_email(client: AsyncClient, email: str) -> None:
  async with SessionLocal() as db:
    u = (await db.execute(select(User).where(User.email == email.lower()))).scalar_one()
    token = u.email_verification_token
  res = await client.get(f"/api/auth/verify/{token}")
  assert res.status_code == 303, res.text


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> str:
  res = await client.post("/api/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  # Tests pass credentials explicitly; drop the cookie so anonymous calls stay anonymous.
  client.cookies.clear()
  return res.json()["token"]


async def signup(client: AsyncClient, email: str, name: str = "Tester") -> tuple[str, dict[str, str]]:
  """Register, verify and sign in. Returns (pid, auth headers)."""
  pid = await register(client, email, name=name)
  await verify_email(client, email)
  return pid, bearer(await login(client, email))


async def create_task(client: AsyncClient, headers: dict[str, str], name: str, visibility: str | None = None) -> dict:
  payload: dict = {"name": name}
  if visibility:
    payload["visibility"] = visibility
  res = await client.post("/api/tasks", json=payload, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


async def grant(client: AsyncClient, headers: dict[str, str], task_id: int, email: str, level: str):
  return await client.post(f"/api/tasks/access/{task_id}", json={"email": email, "accessLevel": level}, headers=headers)
