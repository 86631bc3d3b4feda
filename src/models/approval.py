"""
Approval Models
Approval steps (one per request, level and ladder round) and the
append-only approval action log
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Enum, ForeignKey, Text, Boolean, Float,
    UniqueConstraint, event
)
from sqlalchemy.orm import relationship, validates
from datetime import datetime, timedelta
from typing import Optional
import enum

from src.config.database import Base
from src.utils.exceptions import ImmutableRecordError


class ApprovalLevel(str, enum.Enum):
    """Approval authorities a request can be routed through"""
    FINANCE_VETTING = "FINANCE_VETTING"
    FINANCE_PLANNER = "FINANCE_PLANNER"
    FINANCE_CONTROLLER = "FINANCE_CONTROLLER"
    DIRECTOR = "DIRECTOR"
    MD = "MD"


class StepStatus(str, enum.Enum):
    """Approval step status"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class ApprovalDecision(str, enum.Enum):
    """Decisions recorded in the approval action log"""
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SENT_BACK = "SENT_BACK"
    RESUBMITTED = "RESUBMITTED"
    DISBURSED = "DISBURSED"


class ApprovalStep(Base):
    """Presence of a request at one ladder level during one ladder round"""
    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("finance_request_id", "level", "cycle", name="uq_approval_step_round"),
    )

    id = Column(Integer, primary_key=True, index=True)
    finance_request_id = Column(
        Integer, ForeignKey("finance_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Position in the ladder
    level = Column(Enum(ApprovalLevel), nullable=False)
    sequence = Column(Integer, nullable=False)
    cycle = Column(Integer, nullable=False, default=0)  # ladder round of the owning request

    status = Column(Enum(StepStatus), default=StepStatus.PENDING, nullable=False, index=True)

    # SLA, frozen when the step is created
    sla_hours = Column(Integer, nullable=False)
    due_at = Column(DateTime, nullable=False)
    sla_breached = Column(Boolean, default=False, nullable=False)
    sla_warning_sent_at = Column(DateTime, nullable=True)

    # Outcome
    decision = Column(Enum(ApprovalDecision), nullable=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approver_name = Column(String, nullable=True)
    comments = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    finance_request = relationship("FinanceRequest", back_populates="approval_steps")
    approver = relationship("User", foreign_keys=[approver_id])

    def __repr__(self):
        return f"<ApprovalStep {self.level.value} #{self.cycle} - {self.status.value}>"

    @validates("sla_hours")
    def _freeze_sla_hours(self, key, value):
        if self.sla_hours is not None and value != self.sla_hours:
            raise ImmutableRecordError(
                f"SLA hours of step {self.id} are frozen at {self.sla_hours}"
            )
        return value

    @property
    def deadline(self) -> datetime:
        """Creation time plus the frozen SLA budget"""
        return self.created_at + timedelta(hours=self.sla_hours)

    def elapsed_hours(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.utcnow()
        return (now - self.created_at).total_seconds() / 3600

    def hours_overdue(self, now: Optional[datetime] = None) -> float:
        return max(0.0, self.elapsed_hours(now) - self.sla_hours)

    def is_overdue_at(self, now: Optional[datetime] = None) -> bool:
        """True while the step is pending and its deadline has passed"""
        now = now or datetime.utcnow()
        return self.status == StepStatus.PENDING and now > self.deadline

    @property
    def is_overdue(self) -> bool:
        return self.is_overdue_at()


class ApprovalActionRecord(Base):
    """Append-only record of every decision made on a request"""
    __tablename__ = "approval_actions"

    id = Column(Integer, primary_key=True, index=True)
    finance_request_id = Column(
        Integer, ForeignKey("finance_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approval_step_id = Column(Integer, ForeignKey("approval_steps.id"), nullable=True)
    level = Column(Enum(ApprovalLevel), nullable=True)

    decision = Column(Enum(ApprovalDecision), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    actor_name = Column(String, nullable=True)
    comments = Column(Text, nullable=True)

    # SLA compliance of the closing decision
    sla_compliant = Column(Boolean, nullable=True)
    response_time_hours = Column(Float, nullable=True)

    is_admin_override = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    finance_request = relationship("FinanceRequest", back_populates="actions")
    actor = relationship("User", foreign_keys=[actor_id])

    def __repr__(self):
        return f"<ApprovalActionRecord {self.decision.value} by User {self.actor_id}>"


@event.listens_for(ApprovalActionRecord, "before_update")
def _refuse_action_update(mapper, connection, target):
    raise ImmutableRecordError(f"Approval action {target.id} is append-only")


@event.listens_for(ApprovalActionRecord, "before_delete")
def _refuse_action_delete(mapper, connection, target):
    raise ImmutableRecordError(f"Approval action {target.id} cannot be deleted")
