"""
Finance Request Routes
Create, edit, submit, resubmit, disburse and delete finance requests
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional

from src.config.database import get_db
from src.models.finance_request import RequestStatus
from src.models.user import User
from src.schemas.finance_request import (
    DisbursementRequest,
    FinanceRequestCreate,
    FinanceRequestResponse,
    FinanceRequestUpdate,
    ResubmitRequest,
)
from src.services.auth_service import auth_service
from src.services.disbursement_service import PaymentProof
from src.services.workflow_service import workflow_service
from src.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()


def _serialize(request) -> dict:
    return FinanceRequestResponse.model_validate(request).model_dump(mode="json")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_finance_request(
    payload: FinanceRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.require_permission("request:create"))
):
    """
    Create a finance request

    **save_as_draft=false** submits the request straight into the approval ladder.
    """
    data = payload.model_dump(exclude={"save_as_draft"})
    request = await workflow_service.create_request(db, data, current_user, payload.save_as_draft)

    return {
        "success": True,
        "message": f"Finance request {request.reference_number} created",
        "finance_request": _serialize(request)
    }


@router.get("")
async def list_finance_requests(
    status_filter: Optional[RequestStatus] = None,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """List requests visible to the current user"""
    requests = workflow_service.list_requests(db, current_user, status_filter, skip, limit)

    return {
        "success": True,
        "count": len(requests),
        "finance_requests": [_serialize(r) for r in requests]
    }


@router.get("/{reference_number}")
async def get_finance_request(
    reference_number: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Get one finance request"""
    request = workflow_service.get_request(db, reference_number, current_user)
    return {"success": True, "finance_request": _serialize(request)}


@router.patch("/{reference_number}")
async def update_finance_request(
    reference_number: str,
    payload: FinanceRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Edit vendor, amount and tax details while the request is editable"""
    request = await workflow_service.update_request(
        db, reference_number, payload.changes(), current_user, payload.expected_version
    )
    return {
        "success": True,
        "message": f"Finance request {reference_number} updated",
        "finance_request": _serialize(request)
    }


@router.post("/{reference_number}/submit")
async def submit_finance_request(
    reference_number: str,
    expected_version: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Submit a draft into the approval ladder"""
    request = await workflow_service.submit(db, reference_number, current_user, expected_version)
    return {
        "success": True,
        "message": f"Finance request {reference_number} submitted",
        "finance_request": _serialize(request)
    }


@router.post("/{reference_number}/resubmit")
async def resubmit_finance_request(
    reference_number: str,
    payload: ResubmitRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Resubmit a sent-back request, optionally with corrections"""
    changes = payload.changes.changes() if payload.changes else None
    request = await workflow_service.resubmit(
        db, reference_number, current_user,
        changes=changes,
        comments=payload.comments,
        expected_version=payload.expected_version
    )

    if request.status == RequestStatus.ADMIN_REVIEW:
        message = f"Finance request {reference_number} exceeded the resubmission limit and awaits administrator review"
    else:
        message = f"Finance request {reference_number} resubmitted"

    return {"success": True, "message": message, "finance_request": _serialize(request)}


@router.post("/{reference_number}/disburse")
async def disburse_finance_request(
    reference_number: str,
    payload: DisbursementRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Record payment of an approved request"""
    proof = PaymentProof(
        payment_reference_number=payload.payment_reference_number,
        payment_mode=payload.payment_mode,
        payment_date=payload.payment_date,
        remarks=payload.remarks,
    )
    request = await workflow_service.disburse(
        db, reference_number, current_user, proof, payload.expected_version
    )
    return {
        "success": True,
        "message": f"Finance request {reference_number} disbursed",
        "finance_request": _serialize(request)
    }


@router.delete("/{reference_number}", status_code=status.HTTP_200_OK)
async def delete_finance_request(
    reference_number: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """Delete a draft (administrators may delete any request)"""
    await workflow_service.delete_request(db, reference_number, current_user)
    return {"success": True, "message": f"Finance request {reference_number} deleted"}
