from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_roles
from ..models.models import User, utcnow
from ..schemas.schemas import HomeReminderRead, ReminderCreate, ReminderRead, ReminderUpdate
from ..services import reminders as reminder_service
from ..services.access import require_home_access

router = APIRouter()


def _serialize(reminder, schema):
    data = schema.model_validate(reminder)
    data.is_overdue = reminder_service.is_overdue(reminder, utcnow())
    return data


@router.post("/homes/{home_id}/reminders", response_model=HomeReminderRead, status_code=status.HTTP_201_CREATED)
def create_reminder(
    home_id: int,
    payload: ReminderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeReminderRead:
    reminder = reminder_service.create_reminder(db, current_user, home_id, **payload.model_dump())
    return _serialize(reminder, HomeReminderRead)


@router.get("/homes/{home_id}/reminders", response_model=List[HomeReminderRead])
def list_reminders(
    home_id: int,
    include_archived: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[HomeReminderRead]:
    require_home_access(db, current_user, home_id)
    reminders = reminder_service.list_home_reminders(db, home_id, include_archived=include_archived)
    return [_serialize(reminder, HomeReminderRead) for reminder in reminders]


@router.patch("/homes/{home_id}/reminders/{reminder_id}", response_model=HomeReminderRead)
def update_reminder(
    home_id: int,
    reminder_id: int,
    payload: ReminderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeReminderRead:
    reminder = reminder_service.update_reminder(
        db, current_user, home_id, reminder_id, payload.model_dump(exclude_unset=True)
    )
    return _serialize(reminder, HomeReminderRead)


@router.post("/homes/{home_id}/reminders/{reminder_id}/complete", response_model=HomeReminderRead)
def complete_reminder(
    home_id: int,
    reminder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeReminderRead:
    reminder = reminder_service.complete_reminder(db, current_user, home_id, reminder_id)
    return _serialize(reminder, HomeReminderRead)


@router.post("/homes/{home_id}/reminders/{reminder_id}/archive", response_model=HomeReminderRead)
def archive_reminder(
    home_id: int,
    reminder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeReminderRead:
    reminder = reminder_service.archive_reminder(db, current_user, home_id, reminder_id)
    return _serialize(reminder, HomeReminderRead)


@router.post("/pro/reminders", response_model=ReminderRead, status_code=status.HTTP_201_CREATED)
def create_contractor_reminder(
    payload: ReminderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("PRO")),
) -> ReminderRead:
    reminder = reminder_service.create_contractor_reminder(db, current_user, **payload.model_dump())
    return _serialize(reminder, ReminderRead)


@router.get("/pro/reminders", response_model=List[ReminderRead])
def list_contractor_reminders(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("PRO")),
) -> List[ReminderRead]:
    return [_serialize(r, ReminderRead) for r in reminder_service.list_contractor_reminders(db, current_user)]


@router.post("/pro/reminders/{reminder_id}/complete", response_model=ReminderRead)
def complete_contractor_reminder(
    reminder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("PRO")),
) -> ReminderRead:
    reminder = reminder_service.complete_contractor_reminder(db, current_user, reminder_id)
    return _serialize(reminder, ReminderRead)
