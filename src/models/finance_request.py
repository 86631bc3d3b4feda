"""
Finance Request Model
Represents payment/purchase requests routed through the approval ladder
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import Optional
import enum

from src.config.database import Base
from src.models.approval import ApprovalLevel, ApprovalStep, StepStatus
from src.models.user import User, Entity  # noqa: F401  (relationship targets)
from src.models.notification import Notification  # noqa: F401


class RequestStatus(str, enum.Enum):
    """Request status; PENDING is qualified by current_approval_level"""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    PENDING = "PENDING"
    ADMIN_REVIEW = "ADMIN_REVIEW"
    APPROVED = "APPROVED"
    DISBURSED = "DISBURSED"
    REJECTED = "REJECTED"
    SENT_BACK = "SENT_BACK"


class PaymentType(str, enum.Enum):
    """Payment classification driving the SLA budget"""
    CRITICAL = "CRITICAL"
    NON_CRITICAL = "NON_CRITICAL"


# Fields a requester or finance reviewer may change outside the state machine
EDITABLE_FIELDS = (
    "department",
    "cost_center",
    "purpose",
    "vendor_name",
    "vendor_bank_account",
    "vendor_bank_ifsc",
    "invoice_number",
    "payment_type",
    "amount",
    "currency",
    "exchange_rate",
    "is_gst_applicable",
    "gst_percentage",
    "is_tds_applicable",
    "tds_percentage",
)

# Editable fields backed by NOT NULL columns
REQUIRED_FIELDS = (
    "purpose",
    "payment_type",
    "amount",
    "currency",
    "exchange_rate",
    "is_gst_applicable",
    "is_tds_applicable",
)


class FinanceRequest(Base):
    """Finance request model"""
    __tablename__ = "finance_requests"

    id = Column(Integer, primary_key=True, index=True)
    reference_number = Column(String, unique=True, index=True, nullable=False)

    # Ownership
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    entity_id = Column(Integer, ForeignKey("entities.id"), nullable=False)

    # Request details
    department = Column(String, nullable=True)
    cost_center = Column(String, nullable=True)
    purpose = Column(Text, nullable=False)
    vendor_name = Column(String, nullable=True)
    vendor_bank_account = Column(String, nullable=True)
    vendor_bank_ifsc = Column(String, nullable=True)
    invoice_number = Column(String, nullable=True)
    payment_type = Column(Enum(PaymentType), default=PaymentType.NON_CRITICAL, nullable=False)

    # Amounts
    amount = Column(Float, nullable=False)
    currency = Column(String, default="INR", nullable=False)
    exchange_rate = Column(Float, default=1.0, nullable=False)
    total_amount_inr = Column(Float, nullable=False)

    # Taxes
    is_gst_applicable = Column(Boolean, default=False, nullable=False)
    gst_percentage = Column(Float, nullable=True)
    gst_amount = Column(Float, nullable=True)
    is_tds_applicable = Column(Boolean, default=False, nullable=False)
    tds_percentage = Column(Float, nullable=True)
    tds_amount = Column(Float, nullable=True)
    net_payable_amount = Column(Float, nullable=True)

    # Workflow state, written only by the workflow service
    status = Column(Enum(RequestStatus), default=RequestStatus.DRAFT, nullable=False, index=True)
    current_approval_level = Column(Enum(ApprovalLevel), nullable=True)
    resubmission_count = Column(Integer, default=0, nullable=False)
    ladder_round = Column(Integer, default=0, nullable=False)

    # Optimistic locking
    version = Column(Integer, nullable=False, default=1)

    # Disbursement proof
    payment_reference_number = Column(String, nullable=True)
    payment_mode = Column(String, nullable=True)
    payment_date = Column(DateTime, nullable=True)
    disbursed_amount = Column(Float, nullable=True)
    disbursed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    disbursement_remarks = Column(Text, nullable=True)

    is_deleted = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    submitted_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    disbursed_at = Column(DateTime, nullable=True)

    # Relationships
    requester = relationship("User", foreign_keys=[requester_id])
    disbursed_by = relationship("User", foreign_keys=[disbursed_by_id])
    entity = relationship("Entity")
    approval_steps = relationship(
        "ApprovalStep",
        back_populates="finance_request",
        cascade="all, delete-orphan",
        order_by="ApprovalStep.id"
    )
    actions = relationship(
        "ApprovalActionRecord",
        back_populates="finance_request",
        passive_deletes=True,
        order_by="ApprovalActionRecord.id"
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<FinanceRequest {self.reference_number} - {self.status_label}>"

    @property
    def status_label(self) -> str:
        """Flat status name, e.g. PENDING_FINANCE_VETTING"""
        if self.status == RequestStatus.PENDING and self.current_approval_level:
            return f"PENDING_{self.current_approval_level.value}"
        return self.status.value

    @property
    def is_critical(self) -> bool:
        return self.payment_type == PaymentType.CRITICAL

    @property
    def requires_admin_review(self) -> bool:
        return self.status == RequestStatus.ADMIN_REVIEW

    @property
    def pending_step(self) -> Optional[ApprovalStep]:
        """The single PENDING step, if any"""
        pending = [s for s in self.approval_steps if s.status == StepStatus.PENDING]
        return pending[0] if pending else None

    @property
    def payable_amount(self) -> float:
        """Amount settled by the approval chain"""
        if self.net_payable_amount is not None:
            return self.net_payable_amount
        return self.total_amount_inr

    def recompute_amounts(self):
        """Recompute base-currency total, taxes and net payable"""
        rate = self.exchange_rate if self.exchange_rate is not None else 1.0
        self.total_amount_inr = round(self.amount * rate, 2)

        self.gst_amount = None
        self.tds_amount = None
        if self.is_gst_applicable and self.gst_percentage:
            self.gst_amount = round(self.total_amount_inr * self.gst_percentage / 100, 2)
        if self.is_tds_applicable and self.tds_percentage:
            self.tds_amount = round(self.total_amount_inr * self.tds_percentage / 100, 2)

        if self.gst_amount is None and self.tds_amount is None:
            self.net_payable_amount = None
        else:
            self.net_payable_amount = round(
                self.total_amount_inr + (self.gst_amount or 0) - (self.tds_amount or 0), 2
            )

    def apply_changes(self, changes: dict):
        """
        Apply whitelisted field edits and keep amounts consistent

        Nothing is written when an edit is rejected.

        Raises:
            ValueError: Non-editable field, null for a required field, or a
                tax flag set without its percentage
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields not editable: {', '.join(sorted(unknown))}")

        nulled = sorted(f for f in REQUIRED_FIELDS if f in changes and changes[f] is None)
        if nulled:
            raise ValueError(f"Fields cannot be cleared: {', '.join(nulled)}")

        def merged(name):
            return changes[name] if name in changes else getattr(self, name)

        for flag, percentage in (("is_gst_applicable", "gst_percentage"), ("is_tds_applicable", "tds_percentage")):
            if merged(flag) and merged(percentage) is None:
                raise ValueError(f"{percentage} is required when {flag} is set")

        for field, value in changes.items():
            setattr(self, field, value)

        self.recompute_amounts()
