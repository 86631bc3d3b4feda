"""
Approval Routes
Pending approvals, decisions, administrator review and request timelines
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from src.config.database import get_db
from src.models.user import User
from src.schemas.approval import AdminReviewRequest, DecisionRequest, TimelineResponse
from src.schemas.finance_request import FinanceRequestResponse
from src.services.auth_service import auth_service
from src.services.workflow_service import workflow_service
from src.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()


def _serialize(request) -> dict:
    return FinanceRequestResponse.model_validate(request).model_dump(mode="json")


@router.get("/pending")
async def get_pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """
    Requests waiting at a level the current user may act on, plus approved
    requests the user may disburse
    """
    pending = workflow_service.pending_for(db, current_user)
    to_disburse = workflow_service.awaiting_disbursement(db, current_user)

    logger.info(
        f"{current_user.username} ({current_user.role.value}) viewing {len(pending)} pending approvals, "
        f"{len(to_disburse)} awaiting disbursement"
    )

    return {
        "success": True,
        "count": len(pending),
        "finance_requests": [_serialize(r) for r in pending],
        "awaiting_disbursement": [_serialize(r) for r in to_disburse]
    }


@router.post("/{reference_number}/decide")
async def decide(
    reference_number: str,
    payload: DecisionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """
    Approve, reject or send back a request at its current level

    **Body:** level, decision (APPROVED | REJECTED | SENT_BACK), comments
    (required unless approving), expected_version
    """
    request = await workflow_service.decide(
        db,
        reference_number,
        payload.level,
        payload.decision,
        current_user,
        comments=payload.comments,
        expected_version=payload.expected_version
    )

    return {
        "success": True,
        "message": f"{payload.decision.value} recorded for {reference_number} at {payload.level.value}",
        "finance_request": _serialize(request)
    }


@router.post("/{reference_number}/admin-review")
async def admin_review(
    reference_number: str,
    payload: AdminReviewRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Administrator sign-off for a request that exceeded the resubmission limit"""
    request = await workflow_service.admin_review(
        db,
        reference_number,
        payload.action,
        current_user,
        comments=payload.comments,
        expected_version=payload.expected_version
    )

    return {
        "success": True,
        "message": f"Admin review {payload.action.value} applied to {reference_number}",
        "finance_request": _serialize(request)
    }


@router.get("/{reference_number}/timeline")
async def get_timeline(
    reference_number: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Approval steps and action history of a request"""
    timeline = workflow_service.timeline(db, reference_number, current_user)
    return {
        "success": True,
        "timeline": TimelineResponse.model_validate(timeline, from_attributes=True).model_dump(mode="json")
    }
