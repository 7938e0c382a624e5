from __future__ import annotations

import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.models import AuditEvent

logger = logging.getLogger(__name__)

# Attachment bodies and task names can be long; the trail keeps a prefix.
MAX_PAYLOAD_TEXT = 500


def _clip(value: Any) -> Any:
  if isinstance(value, str) and len(value) > MAX_PAYLOAD_TEXT:
    return value[:MAX_PAYLOAD_TEXT]
  return value


async def write_audit(
  db: AsyncSession,
  *,
  event_type: str,
  entity_type: str,
  entity_id: int | str | None,
  task_id: int | None = None,
  actor_id: int | None = None,
  payload: dict[str, Any] | None = None,
) -> None:
  """Stage an audit row in the caller's transaction; it lands or rolls back with the change."""
  clipped = {k: _clip(v) for k, v in jsonable_encoder(payload or {}).items()}
  db.add(
    AuditEvent(
      task_id=task_id,
      actor_id=actor_id,
      event_type=event_type,
      entity_type=entity_type,
      entity_id=str(entity_id) if entity_id is not None else None,
      payload=clipped,
    )
  )
  logger.debug("audit %s %s=%s task=%s actor=%s", event_type, entity_type, entity_id, task_id, actor_id)


async def task_history(db: AsyncSession, task_id: int) -> list[AuditEvent]:
  res = await db.execute(select(AuditEvent).where(AuditEvent.task_id == task_id).order_by(AuditEvent.id.asc()))
  return list(res.scalars().all())
