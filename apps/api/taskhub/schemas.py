from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from taskhub.models import AccessLevel, AttachmentType, TaskVisibility


class RegisterIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=1)
  name: str


class LoginIn(BaseModel):
  email: str
  password: str


class ForgotIn(BaseModel):
  email: str


class ResetIn(BaseModel):
  token: str
  password: str = Field(min_length=1)


class MagicLinkIn(BaseModel):
  email: str


class LoginOut(BaseModel):
  token: str
  pid: str
  name: str
  isVerified: bool
  role: str


class CurrentOut(BaseModel):
  pid: str
  name: str
  email: str
  role: str


class UserOut(BaseModel):
  pid: str
  email: str
  name: str
  role: str
  isVerified: bool


class RoleIn(BaseModel):
  name: str = Field(min_length=1, max_length=64)


class RoleOut(BaseModel):
  id: int
  name: str


class TaskCreateIn(BaseModel):
  name: str
  visibility: TaskVisibility | None = None


class TaskUpdateIn(BaseModel):
  name: str | None = None
  visibility: TaskVisibility | None = None


class TaskSearchIn(BaseModel):
  name: str


class TaskFullIn(BaseModel):
  taskId: int


class TaskOut(BaseModel):
  id: int
  name: str
  visibility: TaskVisibility
  createdAt: datetime
  updatedAt: datetime


class AccessGrantIn(BaseModel):
  email: str
  accessLevel: AccessLevel


class AccessUpdateIn(BaseModel):
  pid: str
  accessLevel: AccessLevel


class AccessDenyIn(BaseModel):
  pid: str


class AccessOut(BaseModel):
  id: int
  accessLevel: AccessLevel
  userPid: str
  taskId: int


class AttachmentOut(BaseModel):
  id: int
  taskId: int
  attachmentType: AttachmentType
  data: str
  url: str | None = None
  createdAt: datetime
  updatedAt: datetime


class TaskFullOut(BaseModel):
  task: TaskOut
  owner: UserOut
  attachments: list[AttachmentOut]
