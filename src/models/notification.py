"""
Notification Model
Represents in-app notifications sent to users
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean, Enum, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from src.config.database import Base


class NotificationType(str, enum.Enum):
    """Notification kinds emitted by the workflow"""
    SUBMITTED = "SUBMITTED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    DECISION = "DECISION"
    RESUBMITTED = "RESUBMITTED"
    DISBURSED = "DISBURSED"
    SLA_BREACH = "SLA_BREACH"
    SLA_WARNING = "SLA_WARNING"
    ADMIN_REVIEW = "ADMIN_REVIEW"


class Notification(Base):
    """Notification model"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)

    # User
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Notification details
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)

    # Related request (optional)
    finance_request_id = Column(Integer, ForeignKey("finance_requests.id", ondelete="CASCADE"), nullable=True)

    # Status
    is_read = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    read_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="notifications")
    finance_request = relationship("FinanceRequest", foreign_keys=[finance_request_id], lazy="select")

    def __repr__(self):
        return f"<Notification {self.type.value} - User {self.user_id}>"
