from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bizhub.core.permissions import EnhancedUserRole
from bizhub.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, enum_column_type


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


class UserInvitation(Base, UUIDMixin, TimestampMixin):
    """Single-use registration invitation identified by an unguessable token.

    Only ``pending`` invitations can change state; every other status is final.
    """

    __tablename__ = "user_invitations"

    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    role: Mapped[EnhancedUserRole] = mapped_column(
        enum_column_type(EnhancedUserRole), default=EnhancedUserRole.EMPLOYEE, nullable=False
    )
    invited_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[InvitationStatus] = mapped_column(
        enum_column_type(InvitationStatus), default=InvitationStatus.PENDING, nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    accepted_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (Index("ix_user_invitations_status_expires", "status", "expires_at"),)

    def __repr__(self) -> str:
        return f"<UserInvitation(email={self.email}, status={self.status})>"
