from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_email_service, get_settings
from ..auth.jwt import get_current_user
from ..config import Settings
from ..models.models import HomeTransfer, User
from ..schemas.schemas import TransferCreate, TransferRead
from ..services import transfers as transfer_service
from ..services.email import EmailService

router = APIRouter()


@router.post("/homes/{home_id}/transfers", response_model=TransferRead, status_code=status.HTTP_201_CREATED)
def create_transfer(
    home_id: int,
    payload: TransferCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
    current_user: User = Depends(get_current_user),
) -> HomeTransfer:
    return transfer_service.create_transfer(
        db,
        current_user,
        home_id,
        payload.recipient_email,
        message=payload.message,
        expiry_days=settings.transfer_expiry_days,
        email_service=email_service,
    )


@router.get("/transfers", response_model=List[TransferRead])
def list_my_transfers(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[HomeTransfer]:
    return transfer_service.list_for_user(db, current_user)


@router.post("/transfers/{transfer_id}/accept", response_model=TransferRead)
def accept_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeTransfer:
    return transfer_service.accept_transfer(db, current_user, transfer_id)


@router.post("/transfers/{transfer_id}/decline", response_model=TransferRead)
def decline_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeTransfer:
    return transfer_service.decline_transfer(db, current_user, transfer_id)


@router.post("/transfers/{transfer_id}/cancel", response_model=TransferRead)
def cancel_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HomeTransfer:
    return transfer_service.cancel_transfer(db, current_user, transfer_id)
