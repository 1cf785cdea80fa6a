from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import ReminderStatus
from ..models.models import ContractorReminder, Reminder, User, utcnow
from .access import require_home_owner

REMINDER_FIELDS = ("title", "due_at", "note")


def is_overdue(reminder: Any, now: Optional[datetime] = None) -> bool:
    return reminder.status == ReminderStatus.PENDING.value and reminder.due_at < (now or utcnow())


def get_reminder_or_404(session: Session, home_id: int, reminder_id: int) -> Reminder:
    reminder = session.get(Reminder, reminder_id)
    if not reminder or reminder.home_id != home_id:
        raise NotFoundError("Reminder not found")
    return reminder


def create_reminder(
    session: Session,
    user: User,
    home_id: int,
    *,
    title: str,
    due_at: datetime,
    note: Optional[str] = None,
) -> Reminder:
    require_home_owner(session, user, home_id)
    if not title.strip():
        raise ValidationError("Title is required")
    with atomic(session):
        reminder = Reminder(
            home_id=home_id,
            title=title.strip(),
            due_at=due_at,
            note=note,
            status=ReminderStatus.PENDING.value,
            photos=[],
            created_by=user.id,
        )
        session.add(reminder)
    return reminder


def update_reminder(session: Session, user: User, home_id: int, reminder_id: int, changes: Dict[str, Any]) -> Reminder:
    require_home_owner(session, user, home_id)
    reminder = get_reminder_or_404(session, home_id, reminder_id)
    if reminder.status == ReminderStatus.ARCHIVED.value:
        raise InvalidStateError("Archived reminders cannot be edited")
    with atomic(session):
        for field in REMINDER_FIELDS:
            if changes.get(field) is not None:
                setattr(reminder, field, changes[field])
    return reminder


def complete_reminder(session: Session, user: User, home_id: int, reminder_id: int) -> Reminder:
    require_home_owner(session, user, home_id)
    reminder = get_reminder_or_404(session, home_id, reminder_id)
    if reminder.status != ReminderStatus.PENDING.value:
        raise InvalidStateError("Only pending reminders can be completed")
    with atomic(session):
        reminder.status = ReminderStatus.DONE.value
        reminder.completed_at = utcnow()
    return reminder


def archive_reminder(session: Session, user: User, home_id: int, reminder_id: int) -> Reminder:
    require_home_owner(session, user, home_id)
    reminder = get_reminder_or_404(session, home_id, reminder_id)
    if reminder.status == ReminderStatus.ARCHIVED.value:
        raise InvalidStateError("Reminder is already archived")
    with atomic(session):
        reminder.status = ReminderStatus.ARCHIVED.value
        reminder.archived_at = utcnow()
    return reminder


def list_home_reminders(session: Session, home_id: int, include_archived: bool = False) -> List[Reminder]:
    query = session.query(Reminder).filter(Reminder.home_id == home_id)
    if not include_archived:
        query = query.filter(Reminder.status != ReminderStatus.ARCHIVED.value)
    return query.order_by(Reminder.due_at.asc()).all()


def create_contractor_reminder(
    session: Session,
    pro: User,
    *,
    title: str,
    due_at: datetime,
    note: Optional[str] = None,
) -> ContractorReminder:
    if not title.strip():
        raise ValidationError("Title is required")
    with atomic(session):
        reminder = ContractorReminder(
            pro_id=pro.id,
            title=title.strip(),
            due_at=due_at,
            note=note,
            status=ReminderStatus.PENDING.value,
        )
        session.add(reminder)
    return reminder


def list_contractor_reminders(session: Session, pro: User) -> List[ContractorReminder]:
    return (
        session.query(ContractorReminder)
        .filter(ContractorReminder.pro_id == pro.id)
        .order_by(ContractorReminder.due_at.asc())
        .all()
    )


def complete_contractor_reminder(session: Session, pro: User, reminder_id: int) -> ContractorReminder:
    reminder = session.get(ContractorReminder, reminder_id)
    if not reminder:
        raise NotFoundError("Reminder not found")
    if reminder.pro_id != pro.id:
        raise ForbiddenError("This reminder belongs to another account")
    if reminder.status != ReminderStatus.PENDING.value:
        raise InvalidStateError("Only pending reminders can be completed")
    with atomic(session):
        reminder.status = ReminderStatus.DONE.value
    return reminder
