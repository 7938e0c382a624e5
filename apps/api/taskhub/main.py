from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskhub.config import settings
from taskhub.db import SessionLocal, init_models
from taskhub.errors import TaskHubError
from taskhub.mail.service import AuthMailer
from taskhub.routers.accesses import router as accesses_router
from taskhub.routers.attachments import router as attachments_router
from taskhub.routers.auth import router as auth_router
from taskhub.routers.roles import router as roles_router
from taskhub.routers.tasks import router as tasks_router
from taskhub.routers.users import router as users_router
from taskhub.seed import seed_roles
from taskhub.storage import build_blob_store

logger = logging.getLogger(__name__)

app = FastAPI(title="TaskHub API", version=settings.app_version)
app.state.blob_store = build_blob_store(settings)
app.state.mailer = AuthMailer(settings)


@app.exception_handler(TaskHubError)
async def _taskhub_error_handler(_, exc: TaskHubError) -> JSONResponse:
  return JSONResponse(status_code=exc.status_code, content={"error": exc.title, "description": exc.message})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(accesses_router)
app.include_router(attachments_router)
app.include_router(tasks_router)
app.include_router(roles_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.on_event("startup")
async def _startup() -> None:
  logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
  if not settings.is_test_db():
    if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
      raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  if settings.auto_create_schema:
    await init_models()
  async with SessionLocal() as db:
    await seed_roles(db)
  logger.info("taskhub started version=%s storage=%s mail=%s", settings.app_version, settings.storage_backend, settings.mail_provider)
