from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.errors import NotFoundError
from ..models.models import Notification, User, utcnow

logger = logging.getLogger(__name__)


def create_notification(
    session: Session,
    *,
    user_id: int,
    subject: str,
    payload: Optional[Dict[str, Any]] = None,
    channel: str = "IN_APP",
) -> Notification:
    notification = Notification(
        user_id=user_id,
        channel=channel,
        subject=subject,
        payload=payload or {},
        created_at=utcnow(),
    )
    session.add(notification)
    session.flush()
    logger.debug("Notification %s queued for user %s", notification.id, user_id)
    return notification


def list_notifications(session: Session, user: User, unread_only: bool = False, limit: int = 50) -> List[Notification]:
    query = session.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(session: Session, user: User, notification_id: int) -> Notification:
    notification = session.get(Notification, notification_id)
    if not notification or notification.user_id != user.id:
        raise NotFoundError("Notification not found")
    if notification.read_at is None:
        notification.read_at = utcnow()
        session.commit()
        session.refresh(notification)
    return notification
