from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user, require_approved_pro
from ..models.enums import ServiceRequestStatus
from ..models.models import Quote, ServiceRequest, User
from ..schemas.schemas import (
    CompleteWork,
    QuoteCreate,
    QuoteRead,
    QuoteUpdate,
    ServiceRequestCreate,
    ServiceRequestRead,
)
from ..services import service_requests as request_service
from ..services.access import require_home_access

router = APIRouter()


def _items(items) -> List[dict]:
    return [item.model_dump() for item in items]


@router.post("/service-requests", response_model=ServiceRequestRead, status_code=status.HTTP_201_CREATED)
def create_service_request(
    payload: ServiceRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRequest:
    return request_service.create_request(db, current_user, **payload.model_dump())


@router.get("/homes/{home_id}/service-requests", response_model=List[ServiceRequestRead])
def list_home_service_requests(
    home_id: int,
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[ServiceRequest]:
    require_home_access(db, current_user, home_id)
    requests = request_service.list_home_requests(db, home_id, status_filter)
    if current_user.has_role("PRO"):
        requests = [r for r in requests if r.contractor_id == current_user.id]
    return requests


@router.get("/service-requests/{request_id}", response_model=ServiceRequestRead)
def get_service_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRequest:
    service_request = request_service.get_request_or_404(db, request_id)
    if current_user.id not in (service_request.homeowner_id, service_request.contractor_id):
        require_home_access(db, current_user, service_request.home_id)
    return service_request


@router.post("/service-requests/{request_id}/quotes", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
def submit_quote(
    request_id: int,
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> Quote:
    return request_service.submit_quote(
        db,
        current_user,
        request_id,
        title=payload.title,
        description=payload.description,
        items=_items(payload.items),
        expires_at=payload.expires_at,
    )


@router.patch("/service-requests/{request_id}/quotes/{quote_id}", response_model=QuoteRead)
def update_quote(
    request_id: int,
    quote_id: int,
    payload: QuoteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> Quote:
    return request_service.update_quote(
        db,
        current_user,
        request_id,
        quote_id,
        title=payload.title,
        description=payload.description,
        items=_items(payload.items) if payload.items is not None else None,
        expires_at=payload.expires_at,
    )


@router.post("/service-requests/{request_id}/quotes/{quote_id}/accept", response_model=ServiceRequestRead)
def accept_quote(
    request_id: int,
    quote_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRequest:
    return request_service.accept_quote(db, current_user, request_id, quote_id)


@router.post("/service-requests/{request_id}/decline", response_model=ServiceRequestRead)
def decline_service_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRequest:
    service_request = request_service.get_request_or_404(db, request_id)
    if service_request.contractor_id == current_user.id:
        return request_service.contractor_decline(db, current_user, request_id)
    return request_service.homeowner_close(db, current_user, request_id, ServiceRequestStatus.DECLINED.value)


@router.post("/service-requests/{request_id}/cancel", response_model=ServiceRequestRead)
def cancel_service_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ServiceRequest:
    return request_service.homeowner_close(db, current_user, request_id, ServiceRequestStatus.CANCELLED.value)


@router.post("/service-requests/{request_id}/start", response_model=ServiceRequestRead)
def start_service_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> ServiceRequest:
    return request_service.start_work(db, current_user, request_id)


@router.post("/service-requests/{request_id}/complete", response_model=ServiceRequestRead)
def complete_service_request(
    request_id: int,
    payload: Optional[CompleteWork] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approved_pro),
) -> ServiceRequest:
    record = payload.record.model_dump() if payload and payload.record else None
    return request_service.complete_work(db, current_user, request_id, record=record)
