"""
Notification Service
Best-effort dispatch of in-app notifications and emails for workflow events
"""

from sqlalchemy.orm import Session
from typing import Any, Dict, Iterable, Optional, Tuple

from src.models.finance_request import FinanceRequest
from src.models.notification import Notification, NotificationType
from src.models.user import User
from src.services.email_service import email_service
from src.utils.exceptions import NotificationFailure
from src.utils.helpers import format_hours, truncate_string
from src.utils.logger import setup_logger

logger = setup_logger()


def _level_label(level: Optional[str]) -> str:
    return level.replace("_", " ").title() if level else ""


def report_failure(kind: NotificationType, reference_number: str, error: Exception, **details) -> NotificationFailure:
    """Log a dispatch failure as NotificationFailure without raising it"""
    failure = NotificationFailure(
        f"{kind.value} notification for {reference_number} failed: {error}",
        details=details,
    )
    logger.error(f"NotificationFailure: {failure.message}")
    return failure


class NotificationService:
    """Service for creating workflow notifications"""

    def compose(
        self,
        kind: NotificationType,
        request: FinanceRequest,
        payload: Optional[Dict[str, Any]] = None
    ) -> Tuple[str, str]:
        """
        Build the title and message for a notification kind

        Args:
            kind: Notification kind
            request: Request the notification is about
            payload: Event context (level, decision, actor_name, comments, hours_overdue)

        Returns:
            tuple: (title, message)
        """
        payload = payload or {}
        ref = request.reference_number
        level = _level_label(payload.get("level"))
        actor = payload.get("actor_name") or "the approver"
        comments = payload.get("comments")

        if kind == NotificationType.SUBMITTED:
            title = "Request Submitted"
            message = f"Your finance request {ref} has been submitted for approval."
        elif kind == NotificationType.PENDING_APPROVAL:
            if level:
                title = "Approval Required"
                message = f"Finance request {ref} ({truncate_string(request.purpose, 80)}) is awaiting your {level} approval."
            else:
                title = "Ready for Disbursement"
                message = f"Finance request {ref} is fully approved and ready for disbursement."
        elif kind == NotificationType.DECISION:
            decision = (payload.get("decision") or "").replace("_", " ").lower()
            title = f"Request {decision.title()}" if decision else "Request Updated"
            message = f"Your finance request {ref} was {decision or 'updated'} by {actor}"
            message += f" at {level}." if level else "."
            if comments:
                message += f" Comments: {comments}"
        elif kind == NotificationType.RESUBMITTED:
            title = "Request Resubmitted"
            message = (
                f"Finance request {ref} was resubmitted "
                f"({request.resubmission_count} resubmission(s))."
            )
        elif kind == NotificationType.DISBURSED:
            title = "Payment Disbursed"
            message = (
                f"Payment for finance request {ref} has been disbursed "
                f"(reference {request.payment_reference_number})."
            )
        elif kind == NotificationType.SLA_BREACH:
            hours = payload.get("hours_overdue", 0)
            title = "SLA Breached"
            message = f"Finance request {ref} is {format_hours(hours)} overdue at {level}."
        elif kind == NotificationType.SLA_WARNING:
            title = "SLA Deadline Approaching"
            message = f"Finance request {ref} is nearing its {level} SLA deadline."
        elif kind == NotificationType.ADMIN_REVIEW:
            title = "Admin Review Required"
            message = (
                f"Finance request {ref} exceeded the resubmission limit "
                f"and requires administrator review."
            )
        else:
            title = "Finance Request Update"
            message = f"Finance request {ref} was updated."

        return title, message

    async def notify(
        self,
        db: Session,
        recipient_ids: Iterable[int],
        kind: NotificationType,
        request: FinanceRequest,
        payload: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Create notifications for recipients and email them

        Failures never propagate: they are logged as NotificationFailure and
        any notification rows not yet committed are rolled back.

        Args:
            db: Database session (workflow changes must already be committed)
            recipient_ids: Users to notify
            kind: Notification kind
            request: Request the notification is about
            payload: Event context used to compose the message

        Returns:
            bool: True if every notification was recorded
        """
        recipients = sorted(set(recipient_ids))
        if not recipients:
            logger.warning(f"No recipients for {kind.value} notification on {request.reference_number}")
            return True

        payload = dict(payload or {})
        payload.setdefault("reference_number", request.reference_number)
        title, message = self.compose(kind, request, payload)

        try:
            users = db.query(User).filter(User.id.in_(recipients)).all()
            for user in users:
                db.add(Notification(
                    user_id=user.id,
                    type=kind,
                    title=title,
                    message=message,
                    payload=payload,
                    finance_request_id=request.id,
                ))
            db.commit()

            for user in users:
                email_service.send_workflow_email(
                    to_email=user.email,
                    recipient_name=user.full_name,
                    kind=kind.value,
                    title=title,
                    message=message,
                    details={
                        "Reference": request.reference_number,
                        "Purpose": request.purpose,
                        "Amount": request.payable_amount,
                        "Status": request.status_label,
                    },
                )
        except Exception as e:
            db.rollback()
            report_failure(kind, payload["reference_number"], e, recipients=recipients)
            return False

        logger.info(f"Sent {kind.value} notification for {request.reference_number} to {len(users)} user(s)")
        return True


# Create singleton instance
notification_service = NotificationService()
