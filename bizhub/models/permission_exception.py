from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bizhub.core.permissions import PermissionAction, PermissionResource
from bizhub.models.base import Base, TimestampMixin, UTCDateTime, UUIDMixin, enum_column_type


class PermissionException(Base, UUIDMixin, TimestampMixin):
    """Temporary elevated access to one resource/action for one user.

    Consulted only when the role template denies the request, and only while
    ``starts_at <= now < expires_at``.
    """

    __tablename__ = "permission_exceptions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    resource: Mapped[PermissionResource] = mapped_column(
        enum_column_type(PermissionResource), nullable=False
    )
    action: Mapped[PermissionAction] = mapped_column(
        enum_column_type(PermissionAction), nullable=False
    )
    reason: Mapped[str | None] = mapped_column(Text)
    granted_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    times_used: Mapped[int] = mapped_column(Integer, default=0)
    last_used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_permission_exceptions_lookup", "user_id", "resource", "action"),
    )
