from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..models.models import Notification, User
from ..schemas.schemas import NotificationRead
from ..services import notifications as notification_service

router = APIRouter()


@router.get("/", response_model=List[NotificationRead])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Notification]:
    return notification_service.list_notifications(db, current_user, unread_only=unread_only, limit=limit)


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Notification:
    return notification_service.mark_read(db, current_user, notification_id)
