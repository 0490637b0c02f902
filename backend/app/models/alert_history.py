"""Alert trigger history model."""

import uuid

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID

from app.models import Base


class AlertHistory(Base):
    """One row per trigger. Rows are written once and never updated."""

    __tablename__ = "alert_history"
    __table_args__ = (
        Index("ix_alert_history_user_id_triggered_at", "user_id", "triggered_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # No FK: history outlives the alert it was recorded for
    alert_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    alert = Column(JSON, nullable=False)
    price = Column(Float, nullable=False)
    triggered_at = Column(DateTime(timezone=True), nullable=False)
