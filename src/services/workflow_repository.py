"""
Workflow Repository
Persistence operations used by the workflow service and the SLA sweeper
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from src.models.approval import ApprovalStep, ApprovalActionRecord, ApprovalLevel, ApprovalDecision, StepStatus
from src.models.finance_request import FinanceRequest, RequestStatus
from src.models.sla_log import SLALog
from src.models.user import User
from src.utils.exceptions import Conflict, IllegalTransition, NotFound
from src.utils.logger import setup_logger

logger = setup_logger()


class WorkflowRepository:
    """CRUD over finance requests, approval steps, actions and SLA logs"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def load_request(self, reference_number: str) -> FinanceRequest:
        """
        Load a live (not deleted) request by reference number

        Raises:
            NotFound: Unknown reference
        """
        request = self.db.query(FinanceRequest).filter(
            FinanceRequest.reference_number == reference_number,
            FinanceRequest.is_deleted == False  # noqa: E712
        ).first()

        if not request:
            raise NotFound(f"Finance request {reference_number} not found")
        return request

    def add_request(self, request: FinanceRequest):
        self.db.add(request)

    def save_request(self, request: FinanceRequest, expected_version: Optional[int] = None):
        """
        Commit pending changes guarded by the request's version

        Args:
            request: Request whose changes (and related rows) are committed
            expected_version: Version the caller read; None skips the explicit check

        Raises:
            Conflict: Version mismatch or a concurrent writer won the race
        """
        if expected_version is not None and request.version != expected_version:
            self.db.rollback()
            raise Conflict(
                f"Request {request.reference_number} changed (version {request.version}, "
                f"expected {expected_version}); reload and retry"
            )

        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Stale write rejected for request {request.reference_number}")
            raise Conflict(f"Request {request.reference_number} was modified concurrently; reload and retry")
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Integrity conflict saving request {request.reference_number}: {e.orig}")
            raise Conflict(f"Request {request.reference_number} conflicts with existing data; reload and retry")

        self.db.refresh(request)

    def next_reference_number(self, prefix: str) -> str:
        """Next sequential reference, e.g. FIN-000042"""
        last = self.db.query(FinanceRequest.reference_number).filter(
            FinanceRequest.reference_number.like(f"{prefix}-%")
        ).order_by(FinanceRequest.id.desc()).first()

        last_number = 0
        if last:
            try:
                last_number = int(last[0].rsplit("-", 1)[1])
            except (IndexError, ValueError):
                logger.warning(f"Unparseable reference number {last[0]}, restarting sequence")

        return f"{prefix}-{last_number + 1:06d}"

    def list_requests(
        self,
        requester_id: Optional[int] = None,
        status: Optional[RequestStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[FinanceRequest]:
        query = self.db.query(FinanceRequest).filter(FinanceRequest.is_deleted == False)  # noqa: E712
        if requester_id is not None:
            query = query.filter(FinanceRequest.requester_id == requester_id)
        if status is not None:
            query = query.filter(FinanceRequest.status == status)
        return query.order_by(FinanceRequest.created_at.desc()).offset(skip).limit(limit).all()

    def pending_at_levels(self, levels: List[ApprovalLevel]) -> List[FinanceRequest]:
        if not levels:
            return []
        return self.db.query(FinanceRequest).filter(
            FinanceRequest.status == RequestStatus.PENDING,
            FinanceRequest.current_approval_level.in_(levels),
            FinanceRequest.is_deleted == False  # noqa: E712
        ).order_by(FinanceRequest.submitted_at.asc()).all()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def create_step(
        self,
        request: FinanceRequest,
        level: ApprovalLevel,
        sequence: int,
        sla_hours: int,
        now: datetime
    ) -> ApprovalStep:
        """
        Create the PENDING step for `level` in the request's current round

        Raises:
            IllegalTransition: Another step of the request is still pending
        """
        existing = request.pending_step
        if existing is not None:
            raise IllegalTransition(
                f"Request {request.reference_number} already has a pending step at {existing.level.value}"
            )

        step = ApprovalStep(
            finance_request=request,
            level=level,
            sequence=sequence,
            cycle=request.ladder_round,
            status=StepStatus.PENDING,
            sla_hours=sla_hours,
            created_at=now,
            due_at=now + timedelta(hours=sla_hours),
        )
        self.db.add(step)
        return step

    def complete_step(
        self,
        step: ApprovalStep,
        decision: ApprovalDecision,
        actor: User,
        comments: Optional[str],
        now: datetime
    ) -> ApprovalStep:
        step.status = StepStatus.COMPLETED
        step.decision = decision
        step.approver_id = actor.id
        step.approver_name = actor.full_name
        step.comments = comments
        step.completed_at = now
        return step

    def pending_step(self, request: FinanceRequest) -> Optional[ApprovalStep]:
        """The request's single PENDING step, read from the loaded relationship"""
        return request.pending_step

    def pending_steps(self) -> List[ApprovalStep]:
        """Pending steps of live requests currently waiting at that step"""
        return self.db.query(ApprovalStep).join(
            FinanceRequest, ApprovalStep.finance_request_id == FinanceRequest.id
        ).filter(
            ApprovalStep.status == StepStatus.PENDING,
            FinanceRequest.status == RequestStatus.PENDING,
            FinanceRequest.current_approval_level == ApprovalStep.level,
            FinanceRequest.is_deleted == False  # noqa: E712
        ).order_by(ApprovalStep.created_at.asc()).all()

    def overdue_candidates(self, now: datetime) -> List[ApprovalStep]:
        """Pending steps whose deadline has passed and that have not been flagged yet"""
        return [
            step for step in self.pending_steps()
            if not step.sla_breached and step.is_overdue_at(now)
        ]

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def append_action_record(self, record: ApprovalActionRecord) -> ApprovalActionRecord:
        self.db.add(record)
        return record

    def action_records(self, request: FinanceRequest) -> List[ApprovalActionRecord]:
        return self.db.query(ApprovalActionRecord).filter(
            ApprovalActionRecord.finance_request_id == request.id
        ).order_by(ApprovalActionRecord.id.asc()).all()

    # ------------------------------------------------------------------
    # SLA breach logs
    # ------------------------------------------------------------------

    def breach_for_step(self, step_id: int) -> Optional[SLALog]:
        """The breach log of one step; a step is logged at most once"""
        return self.db.query(SLALog).filter(SLALog.approval_step_id == step_id).first()

    def create_breach(self, log: SLALog) -> SLALog:
        self.db.add(log)
        return log

    def resolve_breaches(self, request_id: int, level: ApprovalLevel, now: datetime) -> int:
        """Close open breach logs for (request, level); returns how many were closed"""
        open_logs = self.db.query(SLALog).filter(
            SLALog.finance_request_id == request_id,
            SLALog.level == level,
            SLALog.resolved_at.is_(None)
        ).all()
        for log in open_logs:
            log.resolved_at = now
        return len(open_logs)

    def resolve_closed_breaches(self, now: datetime) -> List[SLALog]:
        """Close open breach logs whose step is no longer pending"""
        stale = self.db.query(SLALog).join(
            ApprovalStep, SLALog.approval_step_id == ApprovalStep.id
        ).filter(
            SLALog.resolved_at.is_(None),
            ApprovalStep.status != StepStatus.PENDING
        ).all()
        for log in stale:
            log.resolved_at = now
        return stale

    def breach_logs(self, request_id: Optional[int] = None) -> List[SLALog]:
        query = self.db.query(SLALog)
        if request_id is not None:
            query = query.filter(SLALog.finance_request_id == request_id)
        return query.order_by(SLALog.id.asc()).all()
