# schoolpay/api/routers/notifications.py - The caller's in-app notifications
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import select
from typing import List
from uuid import UUID
import logging

from schoolpay.core.db import get_db
from schoolpay.core.exceptions import NotFoundError
from schoolpay.api.deps.auth import AuthContext, get_current_user
from schoolpay.models.notification import Notification
from schoolpay.schemas.notification import NotificationOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[NotificationOut])
async def list_notifications(
    unread_only: bool = Query(False),
    ctx: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's notifications, newest first"""
    query = select(Notification).where(Notification.user_id == ctx.user_id)
    if unread_only:
        query = query.where(Notification.is_read == False)

    notifications = db.execute(
        query.order_by(Notification.created_at.desc())
    ).scalars().all()

    return [NotificationOut.from_model(n) for n in notifications]


@router.patch("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_read(
    notification_id: UUID,
    ctx: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark one of the caller's notifications as read"""
    notification = db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == ctx.user_id
        )
    ).scalar_one_or_none()

    if not notification:
        raise NotFoundError("Notification not found")

    notification.is_read = True
    db.commit()
    db.refresh(notification)

    return NotificationOut.from_model(notification)
