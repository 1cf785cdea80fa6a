from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_email_service, get_settings
from ..auth.jwt import get_current_user
from ..config import Settings
from ..core.rate_limit import rate_limit_dependency
from ..models.models import Connection, Invitation, User
from ..schemas.schemas import AddressBody, ConnectionRead, InvitationCreate, InvitationRead
from ..services import invitations as invitation_service
from ..services.email import EmailService

router = APIRouter()

invite_rate_limit = rate_limit_dependency("invite", "invite_rate_limit", "invite_rate_window_seconds")


@router.post(
    "/",
    response_model=InvitationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(invite_rate_limit)],
)
def create_invitation(
    payload: InvitationCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
    current_user: User = Depends(get_current_user),
) -> Invitation:
    return invitation_service.create_invitation(
        db,
        current_user,
        invited_email=payload.invited_email,
        role=payload.role,
        home_id=payload.home_id,
        invited_name=payload.invited_name,
        message=payload.message,
        expiry_days=settings.invitation_expiry_days,
        email_service=email_service,
    )


@router.get("/received", response_model=List[InvitationRead])
def list_received(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Invitation]:
    return invitation_service.list_received(db, current_user, status_filter)


@router.get("/sent", response_model=List[InvitationRead])
def list_sent(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Invitation]:
    return invitation_service.list_sent(db, current_user, status_filter)


@router.get("/token/{token}", response_model=InvitationRead)
def get_by_token(token: str, db: Session = Depends(get_db)) -> Invitation:
    return invitation_service.get_invitation_by_token(db, token)


@router.post("/{invitation_id}/accept", response_model=ConnectionRead)
def accept_invitation(
    invitation_id: int,
    payload: AddressBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Connection:
    return invitation_service.accept_invitation(
        db,
        current_user,
        invitation_id,
        address=payload.address,
        city=payload.city,
        state=payload.state,
        zip_code=payload.zip,
    )


@router.post("/{invitation_id}/decline", response_model=InvitationRead)
def decline_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Invitation:
    return invitation_service.decline_invitation(db, current_user, invitation_id)


@router.post("/{invitation_id}/cancel", response_model=InvitationRead)
def cancel_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Invitation:
    return invitation_service.cancel_invitation(db, current_user, invitation_id)


@router.post("/{invitation_id}/resend", response_model=InvitationRead, dependencies=[Depends(invite_rate_limit)])
def resend_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    current_user: User = Depends(get_current_user),
) -> Invitation:
    return invitation_service.resend_invitation(db, current_user, invitation_id, email_service)
