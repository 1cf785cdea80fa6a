from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_approved_pro
from ..models.models import ServiceRecord, User, Warranty
from ..schemas.schemas import (
    RejectBody,
    ServiceRecordCreate,
    ServiceRecordRead,
    ServiceRecordUpdate,
    WarrantyCreate,
    WarrantyRead,
)
from ..services import service_records as record_service
from ..services import warranties as warranty_service
from ..services.access import require_home_access, require_home_owner

router = APIRouter()


@router.post("/{home_id}/records", response_model=ServiceRecordRead, status_code=status.HTTP_201_CREATED)
def create_record(
    home_id: int,
    payload: ServiceRecordCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> ServiceRecord:
    return record_service.create_record(db, current_user, home_id, **payload.model_dump())


@router.get("/{home_id}/records", response_model=List[ServiceRecordRead])
def list_records(
    home_id: int,
    verified_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[ServiceRecord]:
    require_home_access(db, current_user, home_id)
    return record_service.list_home_records(db, home_id, verified_only=verified_only)


@router.patch("/{home_id}/records/{record_id}", response_model=ServiceRecordRead)
def update_record(
    home_id: int,
    record_id: int,
    payload: ServiceRecordUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> ServiceRecord:
    return record_service.update_record(db, current_user, home_id, record_id, payload.model_dump(exclude_unset=True))


@router.get("/{home_id}/completed-service-submissions", response_model=List[ServiceRecordRead])
def list_pending_review(
    home_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[ServiceRecord]:
    require_home_owner(db, current_user, home_id)
    return record_service.list_pending_review(db, home_id)


@router.post("/{home_id}/completed-service-submissions/{record_id}/approve", response_model=ServiceRecordRead)
def approve_submission(
    home_id: int,
    record_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRecord:
    return record_service.approve_record(db, current_user, home_id, record_id)


@router.post("/{home_id}/completed-service-submissions/{record_id}/reject", response_model=ServiceRecordRead)
def reject_submission(
    home_id: int,
    record_id: int,
    payload: Optional[RejectBody] = Body(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRecord:
    reason = payload.reason if payload else None
    return record_service.reject_record(db, current_user, home_id, record_id, reason=reason)


@router.post("/{home_id}/warranties", response_model=WarrantyRead, status_code=status.HTTP_201_CREATED)
def create_warranty(
    home_id: int,
    payload: WarrantyCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> Warranty:
    return warranty_service.create_warranty(db, current_user, home_id, **payload.model_dump())


@router.get("/{home_id}/warranties", response_model=List[WarrantyRead])
def list_warranties(
    home_id: int,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Warranty]:
    require_home_access(db, current_user, home_id)
    return warranty_service.list_home_warranties(db, home_id, status_filter)


@router.post("/{home_id}/warranties/{warranty_id}/accept", response_model=WarrantyRead)
def accept_warranty(
    home_id: int,
    warranty_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Warranty:
    return warranty_service.accept_warranty(db, current_user, home_id, warranty_id)


@router.post("/{home_id}/warranties/{warranty_id}/reject", response_model=WarrantyRead)
def reject_warranty(
    home_id: int,
    warranty_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Warranty:
    return warranty_service.reject_warranty(db, current_user, home_id, warranty_id)
