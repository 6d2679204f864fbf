"""Tests for the security audit sink."""

from __future__ import annotations

import logging

from sqlalchemy import func, select, text

from bizhub.models.security_event import SecuritySeverity
from bizhub.models.user import User
from bizhub.services.audit_service import get_security_events, log_security_event
from tests.conftest import create_user


class TestLogSecurityEvent:
    async def test_persists_event(self, db):
        user = await create_user(db)
        event = await log_security_event(
            db,
            user_id=user.id,
            event_type="allowed_domains_updated",
            severity=SecuritySeverity.MEDIUM,
            risk_score=30,
            event_data={"config": {"domains": ["acme.com"]}},
        )
        assert event is not None
        assert event.id is not None
        assert event.source == "web"
        assert event.is_blocked is False
        assert event.event_data == {"config": {"domains": ["acme.com"]}}

    async def test_write_failure_keeps_surrounding_transaction(self, db, caplog):
        await db.execute(text("DROP TABLE security_events"))
        user = await create_user(db, email="kept@corp.com")

        with caplog.at_level(logging.ERROR):
            event = await log_security_event(
                db, user_id=user.id, event_type="access_denied", severity=SecuritySeverity.LOW
            )
        assert event is None
        assert "Failed to log security event access_denied" in caplog.text

        await db.commit()
        result = await db.execute(select(func.count(User.id)).where(User.email == "kept@corp.com"))
        assert result.scalar_one() == 1

    async def test_high_severity_logs_warning(self, db, caplog):
        with caplog.at_level(logging.WARNING):
            await log_security_event(
                db,
                user_id=None,
                event_type="permission_exception_granted",
                severity=SecuritySeverity.HIGH,
                risk_score=50,
            )
        assert "permission_exception_granted" in caplog.text


class TestGetSecurityEvents:
    async def test_filters_and_total(self, db):
        user = await create_user(db)
        for _ in range(3):
            await log_security_event(
                db, user_id=user.id, event_type="access_denied", severity=SecuritySeverity.MEDIUM
            )
        await log_security_event(
            db, user_id=None, event_type="invitation_created", severity=SecuritySeverity.LOW
        )

        events, total = await get_security_events(db)
        assert total == 4
        assert len(events) == 4

        events, total = await get_security_events(db, user_id=user.id, limit=2)
        assert total == 3
        assert len(events) == 2

        events, total = await get_security_events(db, severity=SecuritySeverity.LOW)
        assert total == 1
        assert events[0].event_type == "invitation_created"

        _, total = await get_security_events(db, event_type="access_denied", offset=2)
        assert total == 3
