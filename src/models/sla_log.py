"""
SLA Log Model
One row per detected SLA breach of an approval step
"""

from sqlalchemy import Column, Integer, DateTime, Enum, ForeignKey, Float
from sqlalchemy.orm import relationship
from datetime import datetime

from src.config.database import Base
from src.models.approval import ApprovalLevel


class SLALog(Base):
    """SLA breach log; open while resolved_at is NULL"""
    __tablename__ = "sla_logs"

    id = Column(Integer, primary_key=True, index=True)

    # References the request without owning it
    finance_request_id = Column(Integer, ForeignKey("finance_requests.id"), nullable=False, index=True)
    approval_step_id = Column(Integer, ForeignKey("approval_steps.id"), nullable=False, unique=True)
    level = Column(Enum(ApprovalLevel), nullable=False)

    # Breach details at detection time
    sla_hours = Column(Integer, nullable=False)
    due_at = Column(DateTime, nullable=False)
    hours_overdue = Column(Float, nullable=False)

    notified_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

    # Relationships
    finance_request = relationship("FinanceRequest")
    approval_step = relationship("ApprovalStep")

    def __repr__(self):
        return f"<SLALog {self.level.value} request={self.finance_request_id} open={self.is_open}>"

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None
