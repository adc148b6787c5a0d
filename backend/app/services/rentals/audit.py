"""Audit sink for rental state changes.

Each state-changing engine operation records exactly one ``AuditLog`` row.
The write happens in its own SAVEPOINT: if it fails, the failure is logged
and the business operation carries on.
"""

from __future__ import annotations

import enum
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog

logger = logging.getLogger("rentals.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return value


async def record_audit_event(
    db: AsyncSession,
    *,
    tenant_id: int,
    actor_user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int,
    payload: dict[str, Any] | None = None,
) -> AuditLog | None:
    """Persist one audit event. Never raises for storage failures."""
    try:
        async with db.begin_nested():
            entry = AuditLog(
                tenant_id=tenant_id,
                actor_user_id=actor_user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                payload=_jsonable(payload) if payload is not None else None,
            )
            db.add(entry)
        return entry
    except SQLAlchemyError:
        logger.exception(
            "Audit event %s for %s #%s could not be recorded (tenant=%s)",
            action, entity_type, entity_id, tenant_id,
        )
        return None
