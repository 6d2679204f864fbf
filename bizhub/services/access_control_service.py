"""Registration gate, allowed-domain configuration and invitation lifecycle.

Security-gating reads (``is_email_domain_allowed``, ``validate_invitation``,
``can_user_register``) fail closed: any internal error produces a denial,
never an exception, so a persistence outage cannot be turned into a bypass.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizhub.config import settings
from bizhub.core.exceptions import AccessControlError, InvitationError
from bizhub.core.metrics import invitation_events_total, registration_decisions_total
from bizhub.core.security import generate_invitation_token
from bizhub.models.base import utcnow
from bizhub.models.invitation import InvitationStatus, UserInvitation
from bizhub.models.security_event import SecuritySeverity
from bizhub.models.system_setting import SystemSetting
from bizhub.models.user import User
from bizhub.schemas.access_control import AllowedDomainsConfig, InvitationDetails
from bizhub.services.audit_service import log_security_event

logger = logging.getLogger(__name__)

SETTINGS_KEY_ALLOWED_DOMAINS = "auth.allowed_domains"

REASON_FIRST_USER = "First user setup"
REASON_VALID_INVITATION = "Valid invitation"
REASON_ALLOWED_DOMAIN = "Allowed email domain"
REASON_OPEN_SIGNUP = "Open signup enabled"
REASON_INVITATION_REQUIRED = "Invitation required. Please contact your administrator for access."
REASON_DOMAIN_RESTRICTED = (
    "Access restricted to specific email domains. Please contact your administrator for access."
)
REASON_COMPANY_EMAIL = "Access restricted. Please use a company email or request an invitation."
REASON_CHECK_FAILED = "Access control check failed"

REASON_NOT_FOUND = "Invitation not found"
REASON_EXPIRED = "Invitation expired"
REASON_EMAIL_MISMATCH = "Email does not match invitation"
REASON_VALIDATION_ERROR = "Validation error"


@dataclass
class InvitationCheck:
    valid: bool
    invitation: UserInvitation | None = None
    reason: str | None = None


@dataclass
class RegistrationDecision:
    allowed: bool
    reason: str
    invitation: UserInvitation | None = None


@dataclass
class CreatedInvitation:
    token: str
    expires_at: datetime


def email_domain(email: str) -> str | None:
    """Lower-cased part after the first '@', or None when there is none."""
    parts = email.split("@")
    if len(parts) < 2:
        return None
    domain = parts[1].strip().lower()
    return domain or None


def _decision(
    allowed: bool, reason: str, path: str, invitation: UserInvitation | None = None
) -> RegistrationDecision:
    registration_decisions_total.labels(
        outcome="allowed" if allowed else "denied", path=path
    ).inc()
    return RegistrationDecision(allowed=allowed, reason=reason, invitation=invitation)


class AccessControlService:
    """Access decisions for self-service registration and invitation handling."""

    # ------------------------------------------------------------------
    # Allowed domains
    # ------------------------------------------------------------------

    @staticmethod
    async def get_allowed_domains(db: AsyncSession) -> AllowedDomainsConfig:
        """Load the allowed-domain configuration; permissive default when never set."""
        try:
            result = await db.execute(
                select(SystemSetting).where(SystemSetting.key == SETTINGS_KEY_ALLOWED_DOMAINS)
            )
            row = result.scalar_one_or_none()
            if row is None or not row.value:
                return AllowedDomainsConfig()
            return AllowedDomainsConfig.model_validate(row.value)
        except (SQLAlchemyError, ValidationError) as exc:
            logger.exception(
                "Failed to load allowed domains", extra={"feature": "access_control_get_domains"}
            )
            raise AccessControlError("Failed to retrieve allowed domains") from exc

    @staticmethod
    async def update_allowed_domains(
        db: AsyncSession, config: AllowedDomainsConfig, updated_by: uuid.UUID | None
    ) -> AllowedDomainsConfig:
        """Normalize and upsert the configuration. Every call is audited."""
        normalized = config.normalized()
        value = normalized.model_dump()
        try:
            result = await db.execute(
                select(SystemSetting).where(SystemSetting.key == SETTINGS_KEY_ALLOWED_DOMAINS)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = SystemSetting(
                    key=SETTINGS_KEY_ALLOWED_DOMAINS,
                    value=value,
                    description="Email domains allowed for automatic user registration",
                    updated_by=updated_by,
                )
                db.add(row)
            else:
                row.value = value
                row.updated_by = updated_by
                row.updated_at = utcnow()
            await db.flush()
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to update allowed domains",
                extra={"feature": "access_control_update_domains", "user_id": str(updated_by)},
            )
            raise AccessControlError("Failed to update allowed domains") from exc

        await log_security_event(
            db,
            user_id=updated_by,
            event_type="allowed_domains_updated",
            severity=SecuritySeverity.MEDIUM,
            risk_score=30,
            event_data={"config": value},
        )
        logger.info(
            "Allowed domains updated: %s (require_domain=%s)",
            ", ".join(normalized.domains) or "<none>",
            normalized.require_domain,
        )
        return normalized

    @staticmethod
    async def is_email_domain_allowed(db: AsyncSession, email: str) -> bool:
        try:
            config = await AccessControlService.get_allowed_domains(db)
            if not config.domains:
                return True
            domain = email_domain(email)
            return domain is not None and domain in config.domains
        except Exception:
            logger.exception(
                "Email domain check failed", extra={"feature": "access_control_domain_check"}
            )
            return False

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    @staticmethod
    async def create_invitation(db: AsyncSession, details: InvitationDetails) -> CreatedInvitation:
        expires_in_days = details.expires_in_days
        if expires_in_days is None:
            expires_in_days = settings.INVITATION_EXPIRY_DAYS
        token = generate_invitation_token()
        expires_at = utcnow() + timedelta(days=expires_in_days)

        try:
            invitation = UserInvitation(
                token=token,
                email=details.email.strip().lower(),
                role=details.role,
                invited_by=details.invited_by,
                expires_at=expires_at,
                status=InvitationStatus.PENDING,
                notes=details.notes,
            )
            db.add(invitation)
            await db.flush()
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to create invitation",
                extra={"feature": "access_control_create_invitation"},
            )
            raise AccessControlError("Failed to create invitation") from exc

        invitation_events_total.labels(event="created").inc()
        await log_security_event(
            db,
            user_id=details.invited_by,
            event_type="invitation_created",
            severity=SecuritySeverity.LOW,
            risk_score=10,
            event_data={"email": invitation.email, "role": invitation.role.value},
        )
        return CreatedInvitation(token=token, expires_at=expires_at)

    @staticmethod
    async def validate_invitation(
        db: AsyncSession, token: str, email: str | None = None
    ) -> InvitationCheck:
        """Check a token. A pending invitation past its expiry is flipped to expired here."""
        try:
            invitation = await AccessControlService._reload(db, token)

            if invitation is None:
                return InvitationCheck(valid=False, reason=REASON_NOT_FOUND)

            if invitation.status != InvitationStatus.PENDING:
                return InvitationCheck(valid=False, reason=f"Invitation {invitation.status.value}")

            if utcnow() > invitation.expires_at:
                invitation.status = InvitationStatus.EXPIRED
                await db.flush()
                invitation_events_total.labels(event="expired").inc()
                return InvitationCheck(valid=False, reason=REASON_EXPIRED)

            if email and invitation.email.lower() != email.strip().lower():
                return InvitationCheck(valid=False, reason=REASON_EMAIL_MISMATCH)

            return InvitationCheck(valid=True, invitation=invitation)
        except Exception:
            logger.exception(
                "Invitation validation failed",
                extra={"feature": "access_control_validate_invitation"},
            )
            return InvitationCheck(valid=False, reason=REASON_VALIDATION_ERROR)

    @staticmethod
    async def _reload(db: AsyncSession, token: str) -> UserInvitation | None:
        result = await db.execute(
            select(UserInvitation)
            .where(UserInvitation.token == token)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def accept_invitation(
        db: AsyncSession, token: str, user_id: uuid.UUID
    ) -> UserInvitation:
        """Mark a pending, unexpired invitation as accepted by ``user_id``.

        The status and expiry re-check and the write are one conditional UPDATE,
        so a token can be accepted at most once. Raises InvitationError otherwise.
        """
        now = utcnow()
        try:
            result = await db.execute(
                update(UserInvitation)
                .where(
                    UserInvitation.token == token,
                    UserInvitation.status == InvitationStatus.PENDING,
                    UserInvitation.expires_at >= now,
                )
                .values(
                    status=InvitationStatus.ACCEPTED,
                    accepted_at=now,
                    accepted_by_user_id=user_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to accept invitation",
                extra={"feature": "access_control_accept_invitation", "user_id": str(user_id)},
            )
            raise AccessControlError("Failed to accept invitation") from exc

        if result.rowcount != 1:
            check = await AccessControlService.validate_invitation(db, token)
            reason = check.reason if not check.valid else "Invitation could not be accepted"
            logger.info("Invitation acceptance rejected: %s", reason)
            raise InvitationError(reason)

        invitation = await AccessControlService._reload(db, token)
        invitation_events_total.labels(event="accepted").inc()
        await log_security_event(
            db,
            user_id=user_id,
            event_type="invitation_accepted",
            severity=SecuritySeverity.LOW,
            risk_score=0,
            event_data={"invitation_id": str(invitation.id), "email": invitation.email},
        )
        return invitation

    @staticmethod
    async def revoke_invitation(
        db: AsyncSession, token: str, revoked_by: uuid.UUID | None
    ) -> UserInvitation:
        """Revoke a pending invitation. Accepted, revoked and expired ones are final."""
        try:
            result = await db.execute(
                update(UserInvitation)
                .where(
                    UserInvitation.token == token,
                    UserInvitation.status == InvitationStatus.PENDING,
                )
                .values(status=InvitationStatus.REVOKED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to revoke invitation",
                extra={"feature": "access_control_revoke_invitation"},
            )
            raise AccessControlError("Failed to revoke invitation") from exc

        invitation = await AccessControlService._reload(db, token)
        if invitation is None:
            raise InvitationError(REASON_NOT_FOUND)
        if result.rowcount != 1:
            raise InvitationError(f"Invitation {invitation.status.value}")

        invitation_events_total.labels(event="revoked").inc()
        await log_security_event(
            db,
            user_id=revoked_by,
            event_type="invitation_revoked",
            severity=SecuritySeverity.LOW,
            risk_score=5,
            event_data={"invitation_id": str(invitation.id), "email": invitation.email},
        )
        return invitation

    @staticmethod
    async def get_all_invitations(
        db: AsyncSession,
        status: InvitationStatus | None = None,
        invited_by: uuid.UUID | None = None,
        include_expired: bool = False,
    ) -> list[UserInvitation]:
        """List invitations. Rows past their expiry are hidden unless ``include_expired``."""
        query = select(UserInvitation)
        if status:
            query = query.where(UserInvitation.status == status)
        if invited_by:
            query = query.where(UserInvitation.invited_by == invited_by)
        if not include_expired:
            query = query.where(UserInvitation.expires_at > utcnow())

        try:
            result = await db.execute(query.order_by(UserInvitation.created_at.desc()))
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to list invitations", extra={"feature": "access_control_get_invitations"}
            )
            raise AccessControlError("Failed to retrieve invitations") from exc
        return list(result.scalars().all())

    @staticmethod
    async def cleanup_expired_invitations(db: AsyncSession) -> int:
        """Expire every pending invitation past its expiry. Best effort: 0 on failure."""
        try:
            result = await db.execute(
                update(UserInvitation)
                .where(
                    UserInvitation.status == InvitationStatus.PENDING,
                    UserInvitation.expires_at < utcnow(),
                )
                .values(status=InvitationStatus.EXPIRED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        except Exception:
            logger.exception(
                "Expired invitation cleanup failed", extra={"feature": "access_control_cleanup"}
            )
            return 0

        count = result.rowcount or 0
        if count:
            invitation_events_total.labels(event="expired").inc(count)
            logger.info("Expired %d stale invitations", count)
        return count

    # ------------------------------------------------------------------
    # Registration gate
    # ------------------------------------------------------------------

    @staticmethod
    async def can_user_register(
        db: AsyncSession, email: str, invitation_token: str | None = None
    ) -> RegistrationDecision:
        """Decide whether ``email`` may create an account.

        Order: first-user bootstrap, valid invitation, then the domain policy.
        An invalid token falls through to the domain policy instead of denying.
        """
        try:
            user_count = (await db.execute(select(func.count(User.id)))).scalar_one()
            if user_count == 0:
                return _decision(True, REASON_FIRST_USER, "bootstrap")

            config = await AccessControlService.get_allowed_domains(db)

            if invitation_token:
                check = await AccessControlService.validate_invitation(
                    db, invitation_token, email
                )
                if check.valid:
                    return _decision(
                        True, REASON_VALID_INVITATION, "invitation", check.invitation
                    )
                logger.info("Registration token rejected (%s); applying domain policy", check.reason)

            domain = email_domain(email)
            domain_matches = domain is not None and domain in config.domains

            if config.require_domain:
                if not config.domains:
                    return _decision(False, REASON_INVITATION_REQUIRED, "invitation_only")
                if domain_matches:
                    return _decision(True, REASON_ALLOWED_DOMAIN, "domain")
                return _decision(False, REASON_DOMAIN_RESTRICTED, "domain")

            if config.domains:
                if domain_matches:
                    return _decision(True, REASON_ALLOWED_DOMAIN, "domain")
                return _decision(False, REASON_COMPANY_EMAIL, "domain")

            return _decision(True, REASON_OPEN_SIGNUP, "open")
        except Exception:
            logger.exception(
                "Registration access check failed", extra={"feature": "access_control_can_register"}
            )
            return _decision(False, REASON_CHECK_FAILED, "error")
