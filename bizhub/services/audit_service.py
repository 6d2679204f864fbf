"""Security audit sink.

Writes are fire-and-forget from the caller's point of view: a failed insert is
logged and swallowed so that auditing can never block the operation being
audited.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizhub.models.security_event import SecurityEvent, SecuritySeverity

logger = logging.getLogger(__name__)


async def log_security_event(
    db: AsyncSession,
    *,
    user_id: uuid.UUID | None,
    event_type: str,
    severity: SecuritySeverity,
    risk_score: int = 0,
    event_data: dict | None = None,
    source: str = "web",
    is_blocked: bool = False,
) -> SecurityEvent | None:
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        severity=severity,
        risk_score=risk_score,
        source=source,
        is_blocked=is_blocked,
        event_data=event_data or {},
    )
    try:
        # Savepoint: a failed insert only discards the audit row
        async with db.begin_nested():
            db.add(event)
            await db.flush()
    except SQLAlchemyError:
        logger.exception(
            "Failed to log security event %s",
            event_type,
            extra={"feature": "security_logging", "user_id": str(user_id) if user_id else None},
        )
        return None

    if severity in (SecuritySeverity.HIGH, SecuritySeverity.CRITICAL):
        logger.warning(
            "Security event %s (severity=%s, risk=%d)",
            event_type,
            severity.value,
            risk_score,
            extra={"event_type": event_type},
        )
    return event


async def get_security_events(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    event_type: str | None = None,
    severity: SecuritySeverity | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SecurityEvent], int]:
    query = select(SecurityEvent)
    count_query = select(func.count(SecurityEvent.id))

    if user_id:
        query = query.where(SecurityEvent.user_id == user_id)
        count_query = count_query.where(SecurityEvent.user_id == user_id)
    if event_type:
        query = query.where(SecurityEvent.event_type == event_type)
        count_query = count_query.where(SecurityEvent.event_type == event_type)
    if severity:
        query = query.where(SecurityEvent.severity == severity)
        count_query = count_query.where(SecurityEvent.severity == severity)

    total = (await db.execute(count_query)).scalar_one()

    query = query.order_by(SecurityEvent.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    events = list(result.scalars().all())

    return events, total
