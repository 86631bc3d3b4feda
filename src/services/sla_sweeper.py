"""
SLA Sweeper
Scans pending approval steps, logs breaches once per step and sends
deadline warnings and breach alerts
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.config.settings import settings
from src.config.workflow import WorkflowConfig
from src.models.approval import ApprovalStep, StepStatus
from src.models.finance_request import RequestStatus
from src.models.notification import NotificationType
from src.models.sla_log import SLALog
from src.services.identity_service import identity_service
from src.services.notification_service import notification_service, report_failure
from src.services.sla_policy import SLAPolicy
from src.services.workflow_repository import WorkflowRepository
from src.utils.logger import SYSTEM_ACTOR, setup_logger, log_audit, log_sla_event

logger = setup_logger()


@dataclass
class SweepResult:
    """Outcome of one sweep"""
    checked: int = 0
    breaches_logged: int = 0
    breaches_resolved: int = 0
    warnings_sent: int = 0
    breached_references: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checked": self.checked,
            "breaches_logged": self.breaches_logged,
            "breaches_resolved": self.breaches_resolved,
            "warnings_sent": self.warnings_sent,
            "breached_references": list(self.breached_references),
        }


class SLASweeper:
    """Periodic SLA evaluation; safe to run repeatedly and concurrently with decisions"""

    def __init__(self, config: WorkflowConfig, notifier=None, identity=None):
        self.policy = SLAPolicy(config)
        self.notifier = notifier or notification_service
        self.identity = identity or identity_service

    def _still_pending(self, db: Session, step: ApprovalStep) -> bool:
        """Re-read a scanned step; a decision may have closed it since the scan"""
        db.refresh(step)
        request = step.finance_request
        db.refresh(request)
        return (
            step.status == StepStatus.PENDING
            and request.status == RequestStatus.PENDING
            and request.current_approval_level == step.level
            and not request.is_deleted
        )

    def _log_breach(self, db: Session, step: ApprovalStep, now: datetime) -> Optional[SLALog]:
        """
        Create the breach log for a step and flag the step

        Returns:
            SLALog, or None when the step was closed meanwhile or another
            sweep already logged this breach
        """
        repo = WorkflowRepository(db)
        request = step.finance_request

        if not self._still_pending(db, step):
            logger.info(f"Skipping breach for {request.reference_number} at {step.level.value}: step closed")
            return None

        if repo.breach_for_step(step.id):
            step.sla_breached = True
            db.commit()
            return None

        log = repo.create_breach(SLALog(
            finance_request_id=request.id,
            approval_step_id=step.id,
            level=step.level,
            sla_hours=step.sla_hours,
            due_at=step.deadline,
            hours_overdue=round(step.hours_overdue(now), 2),
            notified_at=now,
        ))
        step.sla_breached = True

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Breach for {request.reference_number} at {step.level.value} already logged")
            return None

        return log

    def _resolve_closed(self, db: Session, now: datetime) -> int:
        """Close breach logs left open on steps that have since completed"""
        resolved = WorkflowRepository(db).resolve_closed_breaches(now)
        if resolved:
            db.commit()
            for log in resolved:
                logger.info(f"Resolved SLA breach log {log.id} at {log.level.value}: step no longer pending")
        return len(resolved)

    async def _dispatch(self, db: Session, resolve, kind: NotificationType, request, payload: Dict[str, Any]):
        reference_number = request.reference_number
        try:
            await self.notifier.notify(db, resolve(), kind, request, payload)
        except Exception as e:
            db.rollback()
            report_failure(kind, reference_number, e)

    async def _notify_breach(self, db: Session, step: ApprovalStep, log: SLALog):
        request = step.finance_request
        payload = {
            "level": step.level.value,
            "sla_hours": step.sla_hours,
            "hours_overdue": log.hours_overdue,
        }
        await self._dispatch(
            db,
            lambda: self.identity.resolve_approvers_for_level(db, step.level, request.entity_id)
            + self.identity.resolve_admins(db),
            NotificationType.SLA_BREACH, request, payload
        )
        await self._dispatch(db, lambda: [request.requester_id], NotificationType.SLA_BREACH, request, payload)

    async def _warn(self, db: Session, step: ApprovalStep, now: datetime) -> bool:
        """Send the single approaching-deadline warning for a step"""
        if step.sla_warning_sent_at is not None or step.is_overdue_at(now):
            return False
        if step.elapsed_hours(now) < self.policy.warning_after_hours(step.sla_hours):
            return False
        if not self._still_pending(db, step):
            return False

        step.sla_warning_sent_at = now
        db.commit()

        request = step.finance_request
        log_sla_event(
            request.reference_number, step.level.value, "WARNING",
            f"{step.elapsed_hours(now):.1f}h of {step.sla_hours}h used"
        )
        await self._dispatch(
            db,
            lambda: self.identity.resolve_approvers_for_level(db, step.level, request.entity_id),
            NotificationType.SLA_WARNING, request,
            {"level": step.level.value, "sla_hours": step.sla_hours}
        )
        return True

    async def run(self, db: Session, now: Optional[datetime] = None) -> SweepResult:
        """
        Run one sweep

        Args:
            db: Database session
            now: Clock override

        Returns:
            SweepResult: Counts of checked steps, new breaches and warnings
        """
        now = now or datetime.utcnow()
        repo = WorkflowRepository(db)
        result = SweepResult()
        result.breaches_resolved = self._resolve_closed(db, now)

        steps = repo.pending_steps()
        result.checked = len(steps)

        for step in repo.overdue_candidates(now):
            log = self._log_breach(db, step, now)
            if log is None:
                continue
            result.breaches_logged += 1
            result.breached_references.append(step.finance_request.reference_number)
            log_sla_event(
                step.finance_request.reference_number, step.level.value, "BREACH",
                f"{log.hours_overdue:.1f}h over {step.sla_hours}h"
            )
            await self._notify_breach(db, step, log)

        for step in steps:
            if await self._warn(db, step, now):
                result.warnings_sent += 1

        result.breaches_resolved += self._resolve_closed(db, now)

        logger.info(
            f"SLA sweep checked {result.checked} step(s): "
            f"{result.breaches_logged} new breach(es), {result.breaches_resolved} resolved, "
            f"{result.warnings_sent} warning(s)"
        )
        log_audit(SYSTEM_ACTOR, "SLA_SWEEP", f"breaches={result.breaches_logged} warnings={result.warnings_sent}")
        return result

    def status(self, db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Read-only SLA report of pending and overdue steps"""
        now = now or datetime.utcnow()
        steps = WorkflowRepository(db).pending_steps()

        overdue = [
            {
                "reference_number": step.finance_request.reference_number,
                "level": step.level.value,
                "sla_hours": step.sla_hours,
                "due_at": step.deadline.isoformat(),
                "hours_overdue": round(step.hours_overdue(now), 2),
                "breach_logged": step.sla_breached,
            }
            for step in steps
            if step.is_overdue_at(now)
        ]

        return {
            "checked_at": now.isoformat(),
            "pending_steps": len(steps),
            "overdue_steps": len(overdue),
            "overdue": overdue,
        }


# Create singleton instance
sla_sweeper = SLASweeper(WorkflowConfig.from_settings(settings))
