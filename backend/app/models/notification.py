from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from app.models.branch import Base


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    type = Column(String(20), nullable=False)  # "order" | "cash_express"
    entity_id = Column(Integer, nullable=False)

    title = Column(String(255), nullable=False)
    message = Column(String(500), nullable=False)
    action = Column(String(500), nullable=True)

    status = Column(String(30), nullable=False)
    previous_status = Column(String(30), nullable=True)

    read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
