from __future__ import annotations

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from bizhub.core.permissions import Department, EnhancedUserRole
from bizhub.models.base import Base, TimestampMixin, UUIDMixin, enum_column_type


class User(Base, UUIDMixin, TimestampMixin):
    """Minimal user record; the access-control core only reads role, department and flags."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    role: Mapped[EnhancedUserRole] = mapped_column(
        enum_column_type(EnhancedUserRole), default=EnhancedUserRole.EMPLOYEE, nullable=False
    )
    department: Mapped[Department | None] = mapped_column(
        enum_column_type(Department), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    mfa_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
