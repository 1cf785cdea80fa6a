from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_email_service
from ..auth.jwt import get_current_user, require_roles
from ..models.models import Connection, Home, User
from ..schemas.schemas import ConnectionRead, HomeClaim, HomeRead, HomeVerify
from ..services import connections as connection_service
from ..services import homes as home_service
from ..services.access import require_home_access, require_home_owner
from ..services.email import EmailService

router = APIRouter()


@router.post("/", response_model=HomeRead, status_code=status.HTTP_201_CREATED)
def claim_home(
    payload: HomeClaim,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles("HOMEOWNER", "ADMIN")),
) -> Home:
    return home_service.claim_home(
        db,
        current_user,
        address=payload.address,
        city=payload.city,
        state=payload.state,
        zip_code=payload.zip,
        address_line2=payload.address_line2,
    )


@router.get("/", response_model=List[HomeRead])
def list_my_homes(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Home]:
    return home_service.list_owned_homes(db, current_user)


@router.get("/{home_id}", response_model=HomeRead)
def get_home(
    home_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Home:
    return require_home_access(db, current_user, home_id)


@router.post("/{home_id}/verify", response_model=HomeRead)
def verify_home(
    home_id: int,
    payload: HomeVerify,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Home:
    return home_service.verify_home(db, current_user, home_id, payload.method)


@router.get("/{home_id}/connections", response_model=List[ConnectionRead])
def list_home_connections(
    home_id: int,
    include_archived: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Connection]:
    require_home_owner(db, current_user, home_id)
    return connection_service.list_home_connections(db, home_id, include_archived=include_archived)


@router.delete("/{home_id}/connections/{connection_id}", response_model=ConnectionRead)
def disconnect(
    home_id: int,
    connection_id: int,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    current_user: User = Depends(get_current_user),
) -> Connection:
    return connection_service.disconnect(db, current_user, home_id, connection_id, email_service=email_service)


@router.post("/{home_id}/connections/{connection_id}/restore", response_model=ConnectionRead)
def restore_connection(
    home_id: int,
    connection_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Connection:
    return connection_service.restore(db, current_user, home_id, connection_id)
