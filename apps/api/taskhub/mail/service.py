from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

from taskhub.config import Settings
from taskhub.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailMessage:
  to: str
  subject: str
  body: str


class MailProvider(Protocol):
  async def send(self, msg: MailMessage) -> None: ...


class LogMailProvider:
  async def send(self, msg: MailMessage) -> None:
    logger.info("mail to=%s subject=%r body=%r", msg.to, msg.subject, msg.body)


class SmtpMailProvider:
  def __init__(self, cfg: Settings) -> None:
    self.cfg = cfg

  async def send(self, msg: MailMessage) -> None:
    cfg = self.cfg
    host = (cfg.smtp_host or "").strip()
    if not host:
      raise ValueError("SMTP mail provider missing host")

    def _send_sync() -> None:
      m = EmailMessage()
      m["Subject"] = msg.subject
      m["From"] = cfg.mail_from
      m["To"] = msg.to
      m.set_content(msg.body)
      with smtplib.SMTP(host=host, port=int(cfg.smtp_port), timeout=15) as s:
        s.ehlo()
        if cfg.smtp_starttls:
          s.starttls()
          s.ehlo()
        if cfg.smtp_username and cfg.smtp_password:
          s.login(cfg.smtp_username, cfg.smtp_password)
        s.send_message(m)

    await asyncio.to_thread(_send_sync)


def provider_for(cfg: Settings) -> MailProvider:
  if cfg.mail_provider == "smtp":
    return SmtpMailProvider(cfg)
  return LogMailProvider()


class AuthMailer:
  def __init__(self, cfg: Settings, provider: MailProvider | None = None) -> None:
    self.cfg = cfg
    self.provider = provider or provider_for(cfg)

  async def send_welcome(self, user: User, *, api_base: str) -> None:
    link = f"{api_base.rstrip('/')}/api/auth/verify/{user.email_verification_token}"
    await self.provider.send(
      MailMessage(to=user.email, subject="Welcome to TaskHub", body=f"Hi {user.name},\n\nConfirm your e-mail address: {link}\n")
    )

  async def forgot_password(self, user: User) -> None:
    link = f"{self.cfg.frontend_url.rstrip('/')}/reset#{user.reset_token}"
    await self.provider.send(
      MailMessage(to=user.email, subject="Your TaskHub password reset", body=f"Hi {user.name},\n\nReset your password: {link}\n")
    )

  async def send_magic_link(self, user: User, *, api_base: str) -> None:
    link = f"{api_base.rstrip('/')}/api/auth/magic-link/{user.magic_link_token}"
    await self.provider.send(
      MailMessage(to=user.email, subject="Your TaskHub sign-in link", body=f"Hi {user.name},\n\nSign in: {link}\n")
    )
