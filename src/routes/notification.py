"""
Notification Routes
User notification management endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from datetime import datetime

from src.config.database import get_db
from src.services.auth_service import auth_service
from src.models.user import User
from src.models.notification import Notification
from src.utils.logger import setup_logger

logger = setup_logger()
router = APIRouter()


@router.get("/my-notifications")
async def get_my_notifications(
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """
    Get current user's notifications

    **Parameters:**
    - unread_only: If True, only return unread notifications
    - skip: Number of records to skip (pagination)
    - limit: Maximum number of records to return

    **Returns:**
    - total: Total notification count
    - unread_count: Count of unread notifications
    - notifications: List of notification objects with request details
    """
    query = db.query(Notification).filter(Notification.user_id == current_user.id)

    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712

    total_count = query.count()

    notifications = query.order_by(
        Notification.created_at.desc(), Notification.id.desc()
    ).offset(skip).limit(limit).all()

    unread_count = db.query(Notification).filter(
        Notification.user_id == current_user.id,
        Notification.is_read == False  # noqa: E712
    ).count()

    notifications_list = []
    for notif in notifications:
        request = notif.finance_request
        notifications_list.append({
            "id": notif.id,
            "type": notif.type.value,
            "title": notif.title,
            "message": notif.message,
            "payload": notif.payload,
            "is_read": notif.is_read,
            "read_at": notif.read_at.isoformat() if notif.read_at else None,
            "created_at": notif.created_at.isoformat(),
            "reference_number": request.reference_number if request else None,
            "request_status": request.status_label if request else None,
        })

    logger.info(f"User {current_user.username} fetched {len(notifications_list)} notifications (unread: {unread_count})")

    return {
        "success": True,
        "total": total_count,
        "unread_count": unread_count,
        "notifications": notifications_list
    }


@router.patch("/{notification_id}/read")
async def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth_service.get_current_user)
):
    """
    Mark a specific notification as read

    **Parameters:**
    - notification_id: ID of the notification to mark as read
    """
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == current_user.id
    ).first()

    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )

    if notification.is_read:
        return {
            "success": True,
            "message": "Notification was already marked as read"
        }

    notification.is_read = True
    notification.read_at = datetime.utcnow()
    db.commit()

    logger.info(f"User {current_user.username} marked notification {notification_id} as read")

    return {
        "success": True,
        "message": "Notification marked as read"
    }
