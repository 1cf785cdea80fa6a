from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_settings
from ..auth.jwt import require_roles
from ..config import Settings
from ..models.models import HomeTransfer, User
from ..schemas.schemas import (
    AdminTransferRow,
    ConnectionPage,
    HomePage,
    ImpersonationToken,
    RoleChange,
    ServiceRequestPage,
    TransferPage,
    UserIdBody,
    UserPage,
    UserRead,
)
from ..services import admin as admin_service

router = APIRouter()

require_admin = require_roles("ADMIN")


def _page(page: admin_service.Page) -> dict:
    return {
        "items": page.items,
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "pages": page.pages,
        "counts": page.counts,
    }


@router.get("/stats", response_model=Dict[str, int])
def admin_stats(db: Session = Depends(get_db), _: User = Depends(require_admin)) -> Dict[str, int]:
    return admin_service.stats(db)


@router.get("/users", response_model=UserPage)
def list_users(
    search: Optional[str] = None,
    role: Optional[str] = None,
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(20),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> dict:
    filters = admin_service.UserFilter(
        page=page, limit=limit, search=search, role=role, sort_by=sort_by, sort_order=sort_order
    )
    return _page(admin_service.list_users(db, filters))


@router.get("/contractors", response_model=UserPage)
def list_contractors(
    status: str = "pending",
    pro_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> dict:
    filters = admin_service.ContractorFilter(
        page=page, limit=limit, status=status, pro_type=pro_type, search=search
    )
    return _page(admin_service.list_contractors(db, filters))


@router.get("/homes", response_model=HomePage)
def list_homes(
    search: Optional[str] = None,
    sort_by: str = Query("created_at", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    page: int = Query(1, ge=1),
    limit: int = Query(20),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> dict:
    filters = admin_service.HomeFilter(
        page=page, limit=limit, search=search, sort_by=sort_by, sort_order=sort_order
    )
    return _page(admin_service.list_homes(db, filters))


@router.get("/transfers", response_model=TransferPage)
def list_transfers(
    status: Optional[str] = None,
    home_id: Optional[int] = Query(None, alias="homeId"),
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> dict:
    filters = admin_service.TransferFilter(page=page, limit=limit, status=status, home_id=home_id, search=search)
    return _page(admin_service.list_transfers(db, filters))


@router.get("/connections", response_model=ConnectionPage)
def list_connections(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> dict:
    filters = admin_service.ListFilter(page=page, limit=limit, status=status, search=search)
    return _page(admin_service.list_connections(db, filters))


@router.get("/service-requests", response_model=ServiceRequestPage)
def list_service_requests(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> dict:
    filters = admin_service.ListFilter(page=page, limit=limit, status=status)
    return _page(admin_service.list_service_requests(db, filters))


@router.post("/pro-applications/approve", response_model=UserRead)
def approve_pro(payload: UserIdBody, db: Session = Depends(get_db), admin: User = Depends(require_admin)) -> User:
    return admin_service.set_pro_status(db, admin, payload.userId, approve=True)


@router.post("/pro-applications/reject", response_model=UserRead)
def reject_pro(payload: UserIdBody, db: Session = Depends(get_db), admin: User = Depends(require_admin)) -> User:
    return admin_service.set_pro_status(db, admin, payload.userId, approve=False)


@router.post("/users/{user_id}/suspend", response_model=UserRead)
def suspend_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)) -> User:
    return admin_service.set_suspended(db, admin, user_id, suspended=True)


@router.post("/users/{user_id}/activate", response_model=UserRead)
def activate_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)) -> User:
    return admin_service.set_suspended(db, admin, user_id, suspended=False)


@router.patch("/users/{user_id}/role", response_model=UserRead)
def change_role(
    user_id: int,
    payload: RoleChange,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> User:
    return admin_service.change_role(db, admin, user_id, payload.role)


@router.post("/transfers/{transfer_id}/cancel", response_model=AdminTransferRow)
def cancel_transfer(
    transfer_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> HomeTransfer:
    return admin_service.cancel_transfer(db, admin, transfer_id)


@router.post("/users/{user_id}/impersonate", response_model=ImpersonationToken)
def impersonate(
    user_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    admin: User = Depends(require_admin),
) -> ImpersonationToken:
    token = admin_service.impersonate(db, admin, user_id, settings)
    return ImpersonationToken(
        access_token=token,
        impersonated_user_id=user_id,
        expires_in_minutes=settings.impersonation_token_expire_minutes,
    )
