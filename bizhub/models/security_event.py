import enum
import uuid

from sqlalchemy import Boolean, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from bizhub.models.base import Base, JSONType, TimestampMixin, UUIDMixin, enum_column_type


class SecuritySeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEvent(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "security_events"

    # Who triggered the event
    user_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    severity: Mapped[SecuritySeverity] = mapped_column(
        enum_column_type(SecuritySeverity), nullable=False
    )
    risk_score: Mapped[int] = mapped_column(Integer, default=0)
    source: Mapped[str] = mapped_column(String(50), default="web")
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)

    # Snapshot of the data at event time
    event_data: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (Index("ix_security_events_created_at", "created_at"),)

    def __repr__(self) -> str:
        return f"<SecurityEvent(id={self.id}, type={self.event_type}, severity={self.severity})>"
