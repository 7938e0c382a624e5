from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
  # SQLite hands back naive datetimes.
  if dt is None or dt.tzinfo is not None:
    return dt
  return dt.replace(tzinfo=timezone.utc)


class AccessLevel(str, enum.Enum):
  """Capability tag on a (user, task) pair. Levels are not ranked."""

  VIEW = "View"
  ADD_SOLUTION = "AddSolution"
  EDIT = "Edit"
  ADD_USER = "AddUser"
  FULL_ACCESS = "FullAccess"


class TaskVisibility(str, enum.Enum):
  PRIVATE = "Private"
  PUBLIC = "Public"
  PAID = "Paid"


class AttachmentType(str, enum.Enum):
  DESCRIPTION = "Description"
  DUE_DATE = "DueDate"
  FILE = "File"
  URL = "Url"
  TEXT = "Text"
  TIP = "Tip"
  HINT = "Hint"
  WARNING = "Warning"
  PROGRESS = "Progress"
  IMPORTANCE = "Importance"

  @property
  def is_file(self) -> bool:
    return self is AttachmentType.FILE


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
  return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e], validate_strings=True)


class Base(DeclarativeBase):
  pass


class Role(Base):
  __tablename__ = "roles"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class User(Base):
  __tablename__ = "users"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  pid: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, index=True, default=lambda: str(uuid.uuid4()))
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
  role_id: Mapped[int] = mapped_column(Integer, ForeignKey("roles.id"), nullable=False, index=True)
  email_verification_token: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  email_verification_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  reset_token: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  reset_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  magic_link_token: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  magic_link_expiration: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  visibility: Mapped[TaskVisibility] = mapped_column(
    _enum_column(TaskVisibility, "task_visibility_enum"), nullable=False, default=TaskVisibility.PRIVATE
  )
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Access(Base):
  # No unique (user_id, task_id) constraint: duplicate grants are possible under the "insert" policy.
  __tablename__ = "accesses"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  accesslevel: Mapped[AccessLevel] = mapped_column(_enum_column(AccessLevel, "access_level_enum"), nullable=False)
  user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  task_id: Mapped[int] = mapped_column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Attachment(Base):
  __tablename__ = "attachments"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  data: Mapped[str] = mapped_column(Text, nullable=False)
  attachment_type: Mapped[AttachmentType] = mapped_column(_enum_column(AttachmentType, "attachment_type_enum"), nullable=False)
  owner_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  task_id: Mapped[int] = mapped_column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  # Plain columns (no foreign keys) so the trail outlives deleted tasks and users.
  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  task_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
  actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
