"""
Approval Schemas
Pydantic models for approval decisions, admin review and the request timeline
"""

from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime

from src.models.approval import ApprovalDecision, ApprovalLevel, StepStatus
from src.schemas.finance_request import FinanceRequestResponse
from src.services.state_machine import AdminReviewAction


class DecisionRequest(BaseModel):
    """Approver decision at a level"""
    level: ApprovalLevel
    decision: ApprovalDecision
    comments: Optional[str] = None
    expected_version: Optional[int] = None


class AdminReviewRequest(BaseModel):
    """Administrator sign-off for an escalated request"""
    action: AdminReviewAction
    comments: Optional[str] = None
    expected_version: Optional[int] = None


class StepResponse(BaseModel):
    """Schema for approval step response"""
    id: int
    level: ApprovalLevel
    sequence: int
    cycle: int
    status: StepStatus
    sla_hours: int
    due_at: datetime
    sla_breached: bool
    decision: Optional[ApprovalDecision] = None
    approver_id: Optional[int] = None
    approver_name: Optional[str] = None
    comments: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActionResponse(BaseModel):
    """Schema for approval action record response"""
    id: int
    level: Optional[ApprovalLevel] = None
    decision: ApprovalDecision
    actor_id: int
    actor_name: Optional[str] = None
    comments: Optional[str] = None
    sla_compliant: Optional[bool] = None
    response_time_hours: Optional[float] = None
    is_admin_override: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TimelineResponse(BaseModel):
    """Steps and actions of a request, oldest first"""
    request: FinanceRequestResponse
    steps: List[StepResponse]
    actions: List[ActionResponse]
