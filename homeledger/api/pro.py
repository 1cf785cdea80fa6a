from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_approved_pro
from ..models.enums import UserRole
from ..models.models import Connection, ServiceRecord, ServiceRequest, User
from ..schemas.schemas import (
    AddressBody,
    ConnectionRead,
    ProApplication,
    ServiceRecordRead,
    ServiceRequestRead,
    UserRead,
)
from ..services import connections as connection_service
from ..services import invitations as invitation_service
from ..services import service_records as record_service
from ..services import service_requests as request_service
from ..services import users as user_service

router = APIRouter()


@router.post("/apply", response_model=UserRead)
def apply_as_pro(
    payload: ProApplication,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> User:
    return user_service.apply_as_pro(
        db,
        current_user,
        pro_type=payload.type,
        business_name=payload.business_name,
        phone=payload.phone,
        license_no=payload.license_no,
        website=payload.website,
        specialties=payload.specialties,
        service_areas=payload.service_areas,
    )


@router.get("/connections", response_model=List[ConnectionRead])
def list_my_connections(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> List[Connection]:
    return connection_service.list_contractor_connections(db, current_user, status_filter)


@router.post("/contractor/invitations/{invitation_id}/accept", response_model=ConnectionRead)
def accept_homeowner_invitation(
    invitation_id: int,
    payload: AddressBody,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> Connection:
    return invitation_service.accept_invitation(
        db,
        current_user,
        invitation_id,
        address=payload.address,
        city=payload.city,
        state=payload.state,
        zip_code=payload.zip,
        expected_role=UserRole.PRO.value,
    )


@router.get("/service-requests", response_model=List[ServiceRequestRead])
def list_my_service_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> List[ServiceRequest]:
    return request_service.list_contractor_requests(db, current_user, status_filter)


@router.get("/records", response_model=List[ServiceRecordRead])
def list_my_records(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> List[ServiceRecord]:
    return record_service.list_contractor_records(db, current_user)
