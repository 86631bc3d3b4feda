"""
Request State Machine
Validates transitions of a finance request and plans their side effects.

The machine never touches the database or dispatches anything: each
``plan_*`` method returns a :class:`Transition` describing the next
status/level and the ordered side effects (complete step, create step,
record action, resolve breach, notify) that the workflow service applies.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set
import enum

from src.config.permissions import can_approve_level
from src.models.approval import ApprovalLevel, ApprovalDecision
from src.models.finance_request import FinanceRequest, RequestStatus
from src.models.notification import NotificationType
from src.models.user import User, UserRole
from src.services.approval_ladder import ApprovalLadder
from src.services.disbursement_service import DisbursementFinalizer, PaymentProof
from src.services.identity_service import identity_service
from src.services.resubmission_guard import ResubmissionGuard
from src.services.sla_policy import SLAPolicy
from src.utils.exceptions import Forbidden, IllegalTransition, Unauthorized, ValidationError


class EffectKind(str, enum.Enum):
    """Side effects a transition asks the workflow service to perform"""
    COMPLETE_STEP = "complete_step"
    CREATE_STEP = "create_step"
    RECORD_ACTION = "record_action"
    RESOLVE_BREACH = "resolve_breach"
    NOTIFY = "notify"


class Audience(str, enum.Enum):
    """Recipients of a notification effect"""
    REQUESTER = "requester"
    LEVEL_APPROVERS = "level_approvers"
    DISBURSERS = "disbursers"
    ADMINS = "admins"


class AdminReviewAction(str, enum.Enum):
    """Administrator sign-off outcomes for requests in ADMIN_REVIEW"""
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ALLOW_RESUBMISSION = "ALLOW_RESUBMISSION"


DECISIONS = (ApprovalDecision.APPROVED, ApprovalDecision.REJECTED, ApprovalDecision.SENT_BACK)

# Statuses each operation may start from
ALLOWED_SOURCES: Dict[str, Set[RequestStatus]] = {
    "submit": {RequestStatus.DRAFT, RequestStatus.SUBMITTED},
    "decide": {RequestStatus.PENDING},
    "resubmit": {RequestStatus.SENT_BACK},
    "disburse": {RequestStatus.APPROVED},
    "admin_review": {RequestStatus.ADMIN_REVIEW},
}

TERMINAL_STATUSES = {RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.DISBURSED}


@dataclass
class SideEffect:
    kind: EffectKind
    level: Optional[ApprovalLevel] = None
    decision: Optional[ApprovalDecision] = None
    sla_hours: Optional[int] = None
    audience: Optional[Audience] = None
    notification: Optional[NotificationType] = None
    admin_override: bool = False


@dataclass
class Transition:
    """Planned outcome of one workflow operation"""
    operation: str
    from_status: RequestStatus
    from_level: Optional[ApprovalLevel]
    to_status: RequestStatus
    to_level: Optional[ApprovalLevel]
    effects: List[SideEffect] = field(default_factory=list)
    resubmission_count: Optional[int] = None
    starts_new_round: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.to_status in TERMINAL_STATUSES

    @property
    def notifications(self) -> List[SideEffect]:
        return [e for e in self.effects if e.kind == EffectKind.NOTIFY]

    def effects_of(self, kind: EffectKind) -> List[SideEffect]:
        return [e for e in self.effects if e.kind == kind]


def _notify(audience: Audience, kind: NotificationType, level: Optional[ApprovalLevel] = None) -> SideEffect:
    return SideEffect(EffectKind.NOTIFY, level=level, audience=audience, notification=kind)


def _record(decision: ApprovalDecision, level: Optional[ApprovalLevel] = None, admin_override: bool = False) -> SideEffect:
    return SideEffect(EffectKind.RECORD_ACTION, level=level, decision=decision, admin_override=admin_override)


class RequestStateMachine:
    """Transition rules for finance requests"""

    def __init__(
        self,
        ladder: ApprovalLadder,
        sla_policy: SLAPolicy,
        guard: ResubmissionGuard,
        finalizer: Optional[DisbursementFinalizer] = None,
        identity=None
    ):
        self.ladder = ladder
        self.sla_policy = sla_policy
        self.guard = guard
        self.finalizer = finalizer or DisbursementFinalizer()
        self.identity = identity or identity_service

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_status(self, request: FinanceRequest, operation: str):
        allowed = ALLOWED_SOURCES[operation]
        if request.status not in allowed:
            raise IllegalTransition(
                f"Cannot {operation.replace('_', ' ')} request {request.reference_number} "
                f"in status {request.status_label}",
                details={"status": request.status_label}
            )

    @staticmethod
    def _is_owner_or_admin(request: FinanceRequest, actor: User) -> bool:
        return actor.id == request.requester_id or actor.role == UserRole.ADMIN

    def _enter_ladder(
        self,
        request: FinanceRequest,
        operation: str,
        decision: ApprovalDecision,
        extra_effects: Iterable[SideEffect] = (),
        admin_override: bool = False
    ) -> Transition:
        level = self.ladder.first_level
        hours = self.sla_policy.hours_for(level, request.is_critical, request.total_amount_inr)
        effects = [
            _record(decision, admin_override=admin_override),
            SideEffect(EffectKind.CREATE_STEP, level=level, sla_hours=hours),
            _notify(Audience.LEVEL_APPROVERS, NotificationType.PENDING_APPROVAL, level),
        ]
        effects.extend(extra_effects)
        return Transition(
            operation=operation,
            from_status=request.status,
            from_level=request.current_approval_level,
            to_status=RequestStatus.PENDING,
            to_level=level,
            effects=effects,
            starts_new_round=True,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def plan_submit(self, request: FinanceRequest, actor: User) -> Transition:
        """DRAFT|SUBMITTED -> PENDING at the first ladder level"""
        self._require_status(request, "submit")
        if not self._is_owner_or_admin(request, actor):
            raise Forbidden("Only the requester can submit this request")

        return self._enter_ladder(
            request,
            "submit",
            ApprovalDecision.SUBMITTED,
            extra_effects=[_notify(Audience.REQUESTER, NotificationType.SUBMITTED)],
        )

    def plan_decision(
        self,
        request: FinanceRequest,
        level: ApprovalLevel,
        decision: ApprovalDecision,
        actor: User,
        comments: Optional[str]
    ) -> Transition:
        """
        Plan an approver decision at `level`

        Raises:
            ValidationError: Unknown decision, or missing comments on reject/send-back
            IllegalTransition: Request is not pending at `level`
            Unauthorized: Actor may not act on `level`
        """
        if decision not in DECISIONS:
            raise ValidationError(f"Unsupported decision {decision}")

        self._require_status(request, "decide")
        if request.current_approval_level != level:
            raise IllegalTransition(
                f"Request {request.reference_number} is {request.status_label}, not PENDING_{level.value}",
                details={"status": request.status_label}
            )

        if not can_approve_level(actor.role, level):
            raise Unauthorized(f"{actor.role.value} is not authorized to act at {level.value}")

        if decision != ApprovalDecision.APPROVED and not (comments or "").strip():
            raise ValidationError(f"Comments are required to record {decision.value}")

        effects = [
            SideEffect(EffectKind.COMPLETE_STEP, level=level, decision=decision),
            SideEffect(EffectKind.RESOLVE_BREACH, level=level),
            _record(decision, level=level),
        ]

        if decision == ApprovalDecision.APPROVED:
            try:
                next_level = self.ladder.next_level(level)
            except ValueError as e:
                raise IllegalTransition(str(e))

            if next_level is not None:
                hours = self.sla_policy.hours_for(next_level, request.is_critical, request.total_amount_inr)
                effects += [
                    SideEffect(EffectKind.CREATE_STEP, level=next_level, sla_hours=hours),
                    _notify(Audience.LEVEL_APPROVERS, NotificationType.PENDING_APPROVAL, next_level),
                    _notify(Audience.REQUESTER, NotificationType.DECISION, level),
                ]
                to_status, to_level = RequestStatus.PENDING, next_level
            else:
                effects += [
                    _notify(Audience.REQUESTER, NotificationType.DECISION, level),
                    _notify(Audience.DISBURSERS, NotificationType.PENDING_APPROVAL),
                ]
                to_status, to_level = RequestStatus.APPROVED, None

        elif decision == ApprovalDecision.REJECTED:
            effects.append(_notify(Audience.REQUESTER, NotificationType.DECISION, level))
            to_status, to_level = RequestStatus.REJECTED, None

        else:
            effects.append(_notify(Audience.REQUESTER, NotificationType.DECISION, level))
            to_status, to_level = RequestStatus.SENT_BACK, None

        return Transition(
            operation="decide",
            from_status=request.status,
            from_level=level,
            to_status=to_status,
            to_level=to_level,
            effects=effects,
        )

    def plan_resubmit(self, request: FinanceRequest, actor: User) -> Transition:
        """
        SENT_BACK -> PENDING at the first level, or ADMIN_REVIEW once the
        resubmission ceiling is exceeded
        """
        self._require_status(request, "resubmit")
        if not self._is_owner_or_admin(request, actor):
            raise Forbidden("Only the requester can resubmit this request")

        count = self.guard.next_count(request.resubmission_count)

        if self.guard.exceeds_limit(count):
            transition = Transition(
                operation="resubmit",
                from_status=request.status,
                from_level=None,
                to_status=RequestStatus.ADMIN_REVIEW,
                to_level=None,
                effects=[
                    _record(ApprovalDecision.RESUBMITTED),
                    _notify(Audience.ADMINS, NotificationType.ADMIN_REVIEW),
                    _notify(Audience.REQUESTER, NotificationType.RESUBMITTED),
                ],
            )
        else:
            transition = self._enter_ladder(
                request,
                "resubmit",
                ApprovalDecision.RESUBMITTED,
                extra_effects=[_notify(Audience.REQUESTER, NotificationType.RESUBMITTED)],
            )

        transition.resubmission_count = count
        return transition

    def plan_disburse(
        self,
        request: FinanceRequest,
        actor: User,
        actor_entity_ids: Iterable[int],
        proof: PaymentProof
    ) -> Transition:
        """
        APPROVED -> DISBURSED

        Raises:
            IllegalTransition: Request is not APPROVED
            Unauthorized: Actor cannot disburse
            Forbidden: Request entity is outside the actor's assignments
            ValidationError: Payment proof incomplete
        """
        self._require_status(request, "disburse")

        if not self.identity.can_disburse(actor):
            raise Unauthorized(f"{actor.role.value} cannot process disbursements")

        if request.entity_id not in set(actor_entity_ids):
            raise Forbidden(
                f"Disbursement of {request.reference_number} is outside your entity assignments"
            )

        self.finalizer.validate_proof(proof)

        return Transition(
            operation="disburse",
            from_status=request.status,
            from_level=None,
            to_status=RequestStatus.DISBURSED,
            to_level=None,
            effects=[
                _record(ApprovalDecision.DISBURSED),
                _notify(Audience.REQUESTER, NotificationType.DISBURSED),
            ],
        )

    def plan_admin_review(
        self,
        request: FinanceRequest,
        action: AdminReviewAction,
        actor: User
    ) -> Transition:
        """Administrator sign-off for a request held in ADMIN_REVIEW"""
        if actor.role != UserRole.ADMIN:
            raise Forbidden("Only administrators can review escalated requests")
        self._require_status(request, "admin_review")

        if action == AdminReviewAction.APPROVE:
            return self._enter_ladder(
                request,
                "admin_review",
                ApprovalDecision.APPROVED,
                extra_effects=[_notify(Audience.REQUESTER, NotificationType.DECISION)],
                admin_override=True,
            )

        if action == AdminReviewAction.REJECT:
            return Transition(
                operation="admin_review",
                from_status=request.status,
                from_level=None,
                to_status=RequestStatus.REJECTED,
                to_level=None,
                effects=[
                    _record(ApprovalDecision.REJECTED, admin_override=True),
                    _notify(Audience.REQUESTER, NotificationType.DECISION),
                ],
            )

        if action == AdminReviewAction.ALLOW_RESUBMISSION:
            return Transition(
                operation="admin_review",
                from_status=request.status,
                from_level=None,
                to_status=RequestStatus.SENT_BACK,
                to_level=None,
                effects=[
                    _record(ApprovalDecision.SENT_BACK, admin_override=True),
                    _notify(Audience.REQUESTER, NotificationType.DECISION),
                ],
                resubmission_count=0,
            )

        raise ValidationError(f"Unsupported admin review action {action}")

    def check_delete(self, request: FinanceRequest, actor: User):
        """Drafts may be deleted by their requester; administrators may delete anything"""
        if actor.role == UserRole.ADMIN:
            return
        if request.status == RequestStatus.DRAFT and actor.id == request.requester_id:
            return
        raise Forbidden(f"Request {request.reference_number} in status {request.status_label} cannot be deleted")
