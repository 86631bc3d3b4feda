"""
Workflow Service
Applies state-machine transitions to finance requests: persists steps,
action records and breach resolution under the request's version, then
dispatches notifications once the transition is durable
"""

from sqlalchemy.orm import Session
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.config.permissions import can_approve_level, has_permission
from src.config.settings import settings
from src.config.workflow import WorkflowConfig
from src.models.approval import ApprovalActionRecord, ApprovalDecision, ApprovalLevel
from src.models.finance_request import EDITABLE_FIELDS, FinanceRequest, RequestStatus
from src.models.user import Entity, User, UserRole
from src.services.approval_ladder import ApprovalLadder
from src.services.disbursement_service import DisbursementFinalizer, PaymentProof
from src.services.identity_service import identity_service
from src.services.notification_service import notification_service, report_failure
from src.services.resubmission_guard import ResubmissionGuard
from src.services.sla_policy import SLAPolicy
from src.services.state_machine import (
    AdminReviewAction, Audience, EffectKind, RequestStateMachine, SideEffect, Transition
)
from src.services.workflow_repository import WorkflowRepository
from src.utils.exceptions import Forbidden, IllegalTransition, ValidationError, WorkflowError
from src.utils.logger import setup_logger, log_audit

logger = setup_logger()


class WorkflowService:
    """Entry point for every mutation of a finance request"""

    def __init__(self, config: WorkflowConfig, notifier=None, identity=None):
        self.config = config
        self.ladder = ApprovalLadder(config)
        self.sla_policy = SLAPolicy(config)
        self.guard = ResubmissionGuard(config)
        self.finalizer = DisbursementFinalizer()
        self.notifier = notifier or notification_service
        self.identity = identity or identity_service
        self.machine = RequestStateMachine(self.ladder, self.sla_policy, self.guard, self.finalizer, self.identity)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _plan(self, operation: str, request: FinanceRequest, plan, *args) -> Transition:
        try:
            return plan(request, *args)
        except WorkflowError as e:
            logger.warning(
                f"{operation} rejected for {request.reference_number} "
                f"({request.status_label}): {e.__class__.__name__}: {e.message}"
            )
            raise

    def _recipients(self, db: Session, request: FinanceRequest, effect: SideEffect) -> List[int]:
        if effect.audience == Audience.REQUESTER:
            return [request.requester_id]
        if effect.audience == Audience.LEVEL_APPROVERS:
            return self.identity.resolve_approvers_for_level(db, effect.level, request.entity_id)
        if effect.audience == Audience.DISBURSERS:
            return self.identity.resolve_disbursers(db, request.entity_id)
        if effect.audience == Audience.ADMINS:
            return self.identity.resolve_admins(db)
        return []

    def _check_editable(self, request: FinanceRequest, actor: User):
        """
        Requester: DRAFT, SUBMITTED or SENT_BACK. Finance team: pending at the
        first ladder level. Administrators: always.
        """
        if actor.role == UserRole.ADMIN:
            return
        if actor.id == request.requester_id and request.status in (
            RequestStatus.DRAFT, RequestStatus.SUBMITTED, RequestStatus.SENT_BACK
        ):
            return
        if (
            has_permission(actor.role, "request:edit:financial")
            and request.status == RequestStatus.PENDING
            and request.current_approval_level == self.ladder.first_level
        ):
            return
        raise Forbidden(f"Request {request.reference_number} cannot be edited in status {request.status_label}")

    def _apply_changes(self, db: Session, request: FinanceRequest, changes: Dict[str, Any]):
        try:
            request.apply_changes(changes)
        except (ValueError, TypeError) as e:
            db.rollback()
            raise ValidationError(str(e), details={"editable_fields": list(EDITABLE_FIELDS)})

    async def _apply(
        self,
        db: Session,
        request: FinanceRequest,
        transition: Transition,
        actor: User,
        expected_version: Optional[int] = None,
        comments: Optional[str] = None,
        proof: Optional[PaymentProof] = None,
        now: Optional[datetime] = None
    ) -> FinanceRequest:
        """
        Apply a planned transition and commit it

        Args:
            db: Database session
            request: Loaded request the transition was planned against
            transition: Output of one of the state machine's plan_* methods
            actor: Acting user
            expected_version: Version the caller read (optional)
            comments: Decision comments stored on the step and action record
            proof: Payment proof for disbursements
            now: Clock override

        Returns:
            FinanceRequest: The refreshed request

        Raises:
            Conflict: A concurrent transition won
        """
        now = now or datetime.utcnow()
        repo = WorkflowRepository(db)

        # Request state first; new steps are stamped with the new round
        if transition.starts_new_round:
            request.ladder_round = (request.ladder_round or 0) + 1
            request.submitted_at = now
        request.status = transition.to_status
        request.current_approval_level = transition.to_level
        if transition.resubmission_count is not None:
            request.resubmission_count = transition.resubmission_count

        if transition.to_status == RequestStatus.APPROVED:
            request.approved_at = now
        elif transition.to_status == RequestStatus.REJECTED:
            request.completed_at = now
        elif transition.to_status == RequestStatus.DISBURSED:
            self.finalizer.finalize(request, proof, actor.id, now)
            request.completed_at = now

        completed_step = None
        sla_compliant = None
        response_time = None

        for effect in transition.effects:
            if effect.kind == EffectKind.COMPLETE_STEP:
                step = repo.pending_step(request)
                if step is None or step.level != effect.level:
                    db.rollback()
                    raise IllegalTransition(
                        f"Request {request.reference_number} has no pending step at {effect.level.value}"
                    )
                response_time = round(step.elapsed_hours(now), 2)
                sla_compliant = not step.is_overdue_at(now)
                completed_step = repo.complete_step(step, effect.decision, actor, comments, now)

            elif effect.kind == EffectKind.RESOLVE_BREACH:
                resolved = repo.resolve_breaches(request.id, effect.level, now)
                if resolved:
                    logger.info(f"Resolved {resolved} SLA breach log(s) for {request.reference_number} at {effect.level.value}")

            elif effect.kind == EffectKind.RECORD_ACTION:
                repo.append_action_record(ApprovalActionRecord(
                    finance_request=request,
                    approval_step_id=completed_step.id if completed_step else None,
                    level=effect.level,
                    decision=effect.decision,
                    actor_id=actor.id,
                    actor_name=actor.full_name,
                    comments=comments,
                    sla_compliant=sla_compliant,
                    response_time_hours=response_time,
                    is_admin_override=effect.admin_override,
                    created_at=now,
                ))

            elif effect.kind == EffectKind.CREATE_STEP:
                try:
                    repo.create_step(request, effect.level, self.ladder.sequence(effect.level), effect.sla_hours, now)
                except IllegalTransition:
                    db.rollback()
                    raise

        repo.save_request(request, expected_version)

        logger.info(
            f"{transition.operation}: {request.reference_number} "
            f"{transition.from_status.value} -> {request.status_label} by {actor.username}"
        )
        log_audit(
            actor.id,
            transition.operation.upper(),
            f"{request.reference_number} {transition.from_status.value} -> {request.status_label}"
        )

        # Best-effort; the transition is already committed
        decision = next((e.decision for e in transition.effects_of(EffectKind.RECORD_ACTION)), None)
        reference_number = request.reference_number
        status_label = request.status_label
        for effect in transition.notifications:
            payload = {
                "level": effect.level.value if effect.level else None,
                "decision": decision.value if decision else None,
                "actor_name": actor.full_name,
                "comments": comments,
                "status": status_label,
            }
            try:
                recipients = self._recipients(db, request, effect)
                await self.notifier.notify(db, recipients, effect.notification, request, payload)
            except Exception as e:
                db.rollback()
                report_failure(effect.notification, reference_number, e, audience=effect.audience.value)

        return request

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_request(
        self,
        db: Session,
        data: Dict[str, Any],
        requester: User,
        save_as_draft: bool = True
    ) -> FinanceRequest:
        """
        Create a finance request as DRAFT, or SUBMITTED and immediately submitted

        Args:
            db: Database session
            data: Request fields plus entity_id
            requester: Owning user
            save_as_draft: Keep the request in DRAFT

        Returns:
            FinanceRequest: Created request
        """
        data = dict(data)
        entity_id = data.pop("entity_id", None)
        entity = db.query(Entity).filter(Entity.id == entity_id, Entity.is_active == True).first()  # noqa: E712
        if not entity:
            raise ValidationError(f"Unknown entity {entity_id}")

        repo = WorkflowRepository(db)
        request = FinanceRequest(
            reference_number=repo.next_reference_number(self.config.reference_prefix),
            requester_id=requester.id,
            entity_id=entity.id,
            currency=self.config.base_currency,
            exchange_rate=1.0,
            status=RequestStatus.DRAFT if save_as_draft else RequestStatus.SUBMITTED,
            resubmission_count=0,
            ladder_round=0,
        )
        self._apply_changes(db, request, data)
        repo.add_request(request)
        repo.save_request(request)

        logger.info(f"Finance request {request.reference_number} created by {requester.username} ({request.status.value})")
        log_audit(requester.id, "CREATE_REQUEST", f"{request.reference_number} amount={request.total_amount_inr}")

        if save_as_draft:
            return request
        return await self.submit(db, request.reference_number, requester)

    async def update_request(
        self,
        db: Session,
        reference_number: str,
        changes: Dict[str, Any],
        actor: User,
        expected_version: Optional[int] = None
    ) -> FinanceRequest:
        """Edit whitelisted fields; amounts are recomputed"""
        repo = WorkflowRepository(db)
        request = repo.load_request(reference_number)
        self._check_editable(request, actor)

        if changes:
            self._apply_changes(db, request, changes)
            repo.save_request(request, expected_version)
            logger.info(f"Request {reference_number} edited by {actor.username}: {', '.join(sorted(changes))}")
            log_audit(actor.id, "UPDATE_REQUEST", f"{reference_number} fields={','.join(sorted(changes))}")

        return request

    async def submit(
        self,
        db: Session,
        reference_number: str,
        actor: User,
        expected_version: Optional[int] = None
    ) -> FinanceRequest:
        """DRAFT|SUBMITTED -> PENDING at the first ladder level"""
        request = WorkflowRepository(db).load_request(reference_number)
        transition = self._plan("submit", request, self.machine.plan_submit, actor)
        return await self._apply(db, request, transition, actor, expected_version)

    async def decide(
        self,
        db: Session,
        reference_number: str,
        level: ApprovalLevel,
        decision: ApprovalDecision,
        actor: User,
        comments: Optional[str] = None,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> FinanceRequest:
        """
        Record an approver decision at a level

        Raises:
            NotFound, ValidationError, IllegalTransition, Unauthorized, Conflict
        """
        request = WorkflowRepository(db).load_request(reference_number)
        transition = self._plan("decide", request, self.machine.plan_decision, level, decision, actor, comments)
        return await self._apply(
            db, request, transition, actor, expected_version,
            comments=(comments or "").strip() or None, now=now
        )

    async def resubmit(
        self,
        db: Session,
        reference_number: str,
        actor: User,
        changes: Optional[Dict[str, Any]] = None,
        comments: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> FinanceRequest:
        """
        Re-enter a sent-back request into the ladder

        Edits are persisted even when the resubmission ceiling routes the
        request to ADMIN_REVIEW.
        """
        request = WorkflowRepository(db).load_request(reference_number)
        transition = self._plan("resubmit", request, self.machine.plan_resubmit, actor)
        if changes:
            self._apply_changes(db, request, changes)

        result = await self._apply(db, request, transition, actor, expected_version, comments=comments)
        if result.status == RequestStatus.ADMIN_REVIEW:
            logger.warning(
                f"Request {reference_number} exceeded {self.guard.max_resubmissions} resubmissions; "
                f"held for administrator review"
            )
        return result

    async def disburse(
        self,
        db: Session,
        reference_number: str,
        actor: User,
        proof: PaymentProof,
        expected_version: Optional[int] = None
    ) -> FinanceRequest:
        """APPROVED -> DISBURSED with payment proof"""
        request = WorkflowRepository(db).load_request(reference_number)
        transition = self._plan(
            "disburse", request, self.machine.plan_disburse,
            actor, self.identity.entity_assignments(actor), proof
        )
        return await self._apply(
            db, request, transition, actor, expected_version, comments=proof.remarks, proof=proof
        )

    async def admin_review(
        self,
        db: Session,
        reference_number: str,
        action: AdminReviewAction,
        actor: User,
        comments: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> FinanceRequest:
        """Administrator sign-off for a request held in ADMIN_REVIEW"""
        request = WorkflowRepository(db).load_request(reference_number)
        transition = self._plan("admin_review", request, self.machine.plan_admin_review, action, actor)
        return await self._apply(db, request, transition, actor, expected_version, comments=comments)

    async def delete_request(self, db: Session, reference_number: str, actor: User):
        """Soft-delete a request (DRAFT by its requester, anything by an administrator)"""
        repo = WorkflowRepository(db)
        request = repo.load_request(reference_number)
        self._plan("delete", request, self.machine.check_delete, actor)

        request.is_deleted = True
        repo.save_request(request)

        logger.info(f"Request {reference_number} deleted by {actor.username}")
        log_audit(actor.id, "DELETE_REQUEST", reference_number)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_view(self, request: FinanceRequest, user: User) -> bool:
        if user.id == request.requester_id or has_permission(user.role, "request:view:all"):
            return True
        return False

    def get_request(self, db: Session, reference_number: str, user: User) -> FinanceRequest:
        request = WorkflowRepository(db).load_request(reference_number)
        if not self.can_view(request, user):
            raise Forbidden(f"You are not allowed to view request {reference_number}")
        return request

    def list_requests(
        self,
        db: Session,
        user: User,
        status: Optional[RequestStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[FinanceRequest]:
        """Employees see their own requests; reviewers see everything"""
        requester_id = None if has_permission(user.role, "request:view:all") else user.id
        return WorkflowRepository(db).list_requests(requester_id, status, skip, limit)

    def timeline(self, db: Session, reference_number: str, user: User) -> Dict[str, Any]:
        """Steps and action records of a request, oldest first"""
        request = self.get_request(db, reference_number, user)
        return {
            "request": request,
            "steps": list(request.approval_steps),
            "actions": WorkflowRepository(db).action_records(request),
        }

    def pending_for(self, db: Session, user: User) -> List[FinanceRequest]:
        """
        Requests waiting at a level the user may act on

        Users with entity assignments only see requests of those entities.
        """
        levels = [level for level in self.ladder.levels if can_approve_level(user.role, level)]
        requests = WorkflowRepository(db).pending_at_levels(levels)

        entity_ids = self.identity.entity_assignments(user)
        if entity_ids and not user.is_admin:
            requests = [r for r in requests if r.entity_id in entity_ids]
        return requests

    def awaiting_disbursement(self, db: Session, user: User) -> List[FinanceRequest]:
        """Approved requests the user could disburse"""
        if not self.identity.can_disburse(user):
            return []
        entity_ids = set(self.identity.entity_assignments(user))
        requests = WorkflowRepository(db).list_requests(status=RequestStatus.APPROVED, limit=500)
        return [r for r in requests if r.entity_id in entity_ids]


# Create singleton instance
workflow_service = WorkflowService(WorkflowConfig.from_settings(settings))
