"""Admin console queries and actions.

Each list view takes a small filter object and translates it into a SQLAlchemy
query: a case-insensitive substring search over a few text columns, enum
filters, an allow-listed sort column and offset pagination. Tab badges come
from separate ``count()`` queries per status value.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Generic, List, Optional, TypeVar

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, aliased, joinedload

from ..auth.jwt import create_access_token
from ..config import Settings
from ..constants import (
    ADMIN_PAGE_SIZE_DEFAULT,
    ADMIN_PAGE_SIZE_MAX,
    ADMIN_PAGE_SIZE_MIN,
    HOME_SORT_COLUMNS,
    ROLE_NAMES,
    USER_SORT_COLUMNS,
)
from ..core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import ConnectionStatus, ProStatus, ServiceRequestStatus, TransferStatus, UserRole
from ..models.models import Connection, Home, HomeTransfer, ProProfile, ServiceRequest, User, utcnow
from .audit import audit_log
from .transfers import cancel_transfer as _cancel_transfer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def clamp_limit(limit: Optional[int]) -> int:
    if not limit:
        return ADMIN_PAGE_SIZE_DEFAULT
    return max(ADMIN_PAGE_SIZE_MIN, min(ADMIN_PAGE_SIZE_MAX, limit))


@dataclass
class PageParams:
    page: int = 1
    limit: int = ADMIN_PAGE_SIZE_DEFAULT

    def __post_init__(self) -> None:
        self.page = max(1, self.page or 1)
        self.limit = clamp_limit(self.limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return max(1, -(-self.total // self.limit))


@dataclass
class UserFilter(PageParams):
    search: Optional[str] = None
    role: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


@dataclass
class ContractorFilter(PageParams):
    status: str = "pending"
    pro_type: Optional[str] = None
    search: Optional[str] = None


@dataclass
class HomeFilter(PageParams):
    search: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"


@dataclass
class TransferFilter(PageParams):
    status: Optional[str] = None
    home_id: Optional[int] = None
    search: Optional[str] = None


@dataclass
class ListFilter(PageParams):
    status: Optional[str] = None
    search: Optional[str] = None


LIKE_ESCAPE = "\\"


def _like(value: str) -> str:
    """Substring pattern with the search text's own wildcards taken literally."""
    term = value.strip().lower()
    for char in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(char, LIKE_ESCAPE + char)
    return f"%{term}%"


def _sorted(query: Query, model, column: str, order: str, allowed) -> Query:
    if column not in allowed:
        column = "created_at"
    attr = getattr(model, column)
    return query.order_by(attr.asc() if (order or "").lower() == "asc" else attr.desc(), model.id.desc())


def _paginate(query: Query, params: PageParams) -> tuple:
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.limit).all()
    return items, total


def list_users(session: Session, filters: UserFilter) -> Page[User]:
    query = session.query(User)
    if filters.search:
        pattern = _like(filters.search)
        query = query.filter(
            or_(
                func.lower(User.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(User.email).like(pattern, escape=LIKE_ESCAPE),
            )
        )
    if filters.role and filters.role.lower() != "all":
        query = query.filter(User.role == filters.role.upper())
    query = _sorted(query, User, filters.sort_by, filters.sort_order, USER_SORT_COLUMNS)
    items, total = _paginate(query, filters)
    counts = {role.lower(): session.query(User).filter(User.role == role).count() for role in sorted(ROLE_NAMES)}
    return Page(items, total, filters.page, filters.limit, counts)


def list_contractors(session: Session, filters: ContractorFilter) -> Page[User]:
    query = (
        session.query(User)
        .outerjoin(ProProfile, ProProfile.user_id == User.id)
        .options(joinedload(User.pro_profile))
        .filter(User.role == UserRole.PRO.value)
    )
    status = (filters.status or "pending").lower()
    if status != "all":
        try:
            query = query.filter(User.pro_status == ProStatus[status.upper()].value)
        except KeyError:
            raise ValidationError(f"Unknown contractor status: {filters.status}") from None
    if filters.search:
        pattern = _like(filters.search)
        query = query.filter(
            or_(
                func.lower(User.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(User.email).like(pattern, escape=LIKE_ESCAPE),
                func.lower(ProProfile.business_name).like(pattern, escape=LIKE_ESCAPE),
            )
        )
    if filters.pro_type and filters.pro_type.lower() != "all":
        query = query.filter(ProProfile.type == filters.pro_type.upper())
    query = query.order_by(User.created_at.desc(), User.id.desc())
    items, total = _paginate(query, filters)
    counts = {
        value.lower(): session.query(User)
        .filter(User.role == UserRole.PRO.value, User.pro_status == value)
        .count()
        for value in (ProStatus.PENDING.value, ProStatus.APPROVED.value, ProStatus.REJECTED.value)
    }
    counts["all"] = sum(counts.values())
    return Page(items, total, filters.page, filters.limit, counts)


def list_homes(session: Session, filters: HomeFilter) -> Page[Home]:
    owner = aliased(User)
    query = session.query(Home).outerjoin(owner, Home.owner_id == owner.id).options(joinedload(Home.owner))
    if filters.search:
        pattern = _like(filters.search)
        query = query.filter(
            or_(
                func.lower(Home.address).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Home.city).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Home.state).like(pattern, escape=LIKE_ESCAPE),
                func.lower(owner.name).like(pattern, escape=LIKE_ESCAPE),
            )
        )
    query = _sorted(query, Home, filters.sort_by, filters.sort_order, HOME_SORT_COLUMNS)
    items, total = _paginate(query, filters)
    return Page(items, total, filters.page, filters.limit)


def list_transfers(session: Session, filters: TransferFilter) -> Page[HomeTransfer]:
    sender = aliased(User)
    query = (
        session.query(HomeTransfer)
        .join(Home, HomeTransfer.home_id == Home.id)
        .join(sender, HomeTransfer.from_user_id == sender.id)
        .options(joinedload(HomeTransfer.home), joinedload(HomeTransfer.from_user))
    )
    if filters.status and filters.status.lower() != "all":
        query = query.filter(HomeTransfer.status == filters.status.upper())
    if filters.home_id:
        query = query.filter(HomeTransfer.home_id == filters.home_id)
    if filters.search:
        pattern = _like(filters.search)
        query = query.filter(
            or_(
                func.lower(HomeTransfer.recipient_email).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Home.address).like(pattern, escape=LIKE_ESCAPE),
                func.lower(sender.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(sender.email).like(pattern, escape=LIKE_ESCAPE),
            )
        )
    query = query.order_by(HomeTransfer.created_at.desc(), HomeTransfer.id.desc())
    items, total = _paginate(query, filters)
    counts = {
        status.value.lower(): session.query(HomeTransfer).filter(HomeTransfer.status == status.value).count()
        for status in TransferStatus
    }
    counts["all"] = sum(counts.values())
    return Page(items, total, filters.page, filters.limit, counts)


def list_connections(session: Session, filters: ListFilter) -> Page[Connection]:
    homeowner = aliased(User)
    contractor = aliased(User)
    query = (
        session.query(Connection)
        .join(Home, Connection.home_id == Home.id)
        .join(homeowner, Connection.homeowner_id == homeowner.id)
        .join(contractor, Connection.contractor_id == contractor.id)
    )
    if filters.status and filters.status.lower() != "all":
        query = query.filter(Connection.status == filters.status.upper())
    if filters.search:
        pattern = _like(filters.search)
        query = query.filter(
            or_(
                func.lower(homeowner.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(homeowner.email).like(pattern, escape=LIKE_ESCAPE),
                func.lower(contractor.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(contractor.email).like(pattern, escape=LIKE_ESCAPE),
                func.lower(Home.address).like(pattern, escape=LIKE_ESCAPE),
            )
        )
    query = query.order_by(Connection.created_at.desc(), Connection.id.desc())
    items, total = _paginate(query, filters)
    counts = {
        status.value.lower(): session.query(Connection).filter(Connection.status == status.value).count()
        for status in ConnectionStatus
    }
    return Page(items, total, filters.page, filters.limit, counts)


def list_service_requests(session: Session, filters: ListFilter) -> Page[ServiceRequest]:
    query = session.query(ServiceRequest)
    if filters.status and filters.status.lower() != "all":
        query = query.filter(ServiceRequest.status == filters.status.upper())
    query = query.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
    items, total = _paginate(query, filters)
    counts = {
        status.value.lower(): session.query(ServiceRequest).filter(ServiceRequest.status == status.value).count()
        for status in ServiceRequestStatus
    }
    counts["all"] = sum(counts.values())
    return Page(items, total, filters.page, filters.limit, counts)


def stats(session: Session) -> Dict[str, int]:
    week_ago = utcnow() - timedelta(days=7)
    return {
        "total_users": session.query(User).count(),
        "total_homes": session.query(Home).count(),
        "total_transfers": session.query(HomeTransfer).count(),
        "pending_transfers": session.query(HomeTransfer)
        .filter(HomeTransfer.status == TransferStatus.PENDING.value)
        .count(),
        "pending_pros": session.query(User)
        .filter(User.role == UserRole.PRO.value, User.pro_status == ProStatus.PENDING.value)
        .count(),
        "active_connections": session.query(Connection)
        .filter(Connection.status == ConnectionStatus.ACTIVE.value)
        .count(),
        "recent_users": session.query(User).filter(User.created_at >= week_ago).count(),
    }


# --- Actions ---


def _get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _record(session: Session, admin: User, action: str, target: User, before: Any, after: Any) -> None:
    audit_log(
        session,
        actor_user_id=admin.id,
        action=action,
        target_entity_type="User",
        target_entity_id=target.id,
        before=before,
        after=after,
    )


def set_pro_status(session: Session, admin: User, user_id: int, approve: bool) -> User:
    user = _get_user(session, user_id)
    if user.role != UserRole.PRO.value:
        raise InvalidStateError("User has not applied as a pro")
    target = ProStatus.APPROVED.value if approve else ProStatus.REJECTED.value
    with atomic(session):
        before = user.pro_status
        user.pro_status = target
        if user.pro_profile is not None:
            user.pro_profile.verified = approve
        _record(session, admin, f"admin.pro.{'approve' if approve else 'reject'}", user, {"pro_status": before}, {"pro_status": target})
    logger.info("Admin %s set pro status of user %s to %s", admin.id, user.id, target)
    return user


def set_suspended(session: Session, admin: User, user_id: int, suspended: bool) -> User:
    user = _get_user(session, user_id)
    if user.id == admin.id:
        raise ValidationError("You cannot suspend your own account")
    if user.is_suspended == suspended:
        raise InvalidStateError("User is already suspended" if suspended else "User is already active")
    with atomic(session):
        user.is_suspended = suspended
        user.suspended_at = utcnow() if suspended else None
        _record(
            session,
            admin,
            "admin.user.suspend" if suspended else "admin.user.activate",
            user,
            {"is_suspended": not suspended},
            {"is_suspended": suspended},
        )
    return user


def change_role(session: Session, admin: User, user_id: int, role: str) -> User:
    role = role.upper()
    if role not in ROLE_NAMES:
        raise ValidationError(f"Unknown role: {role}")
    user = _get_user(session, user_id)
    if user.id == admin.id and role != UserRole.ADMIN.value:
        raise ValidationError("You cannot remove your own admin role")
    with atomic(session):
        before = user.role
        user.role = role
        if role == UserRole.PRO.value and not user.pro_status:
            user.pro_status = ProStatus.PENDING.value
        _record(session, admin, "admin.user.role", user, {"role": before}, {"role": role})
    return user


def cancel_transfer(session: Session, admin: User, transfer_id: int) -> HomeTransfer:
    return _cancel_transfer(session, admin, transfer_id)


def impersonate(session: Session, admin: User, user_id: int, settings: Settings) -> str:
    """Issue a short-lived token for ``user_id`` carrying the admin's id."""
    user = _get_user(session, user_id)
    if user.has_role(UserRole.ADMIN.value):
        raise ForbiddenError("Admins cannot be impersonated")
    if user.is_suspended:
        raise InvalidStateError("Suspended users cannot be impersonated")
    token = create_access_token(
        {"sub": str(user.id), "role": user.role, "impersonated_by": admin.id},
        settings,
        expires_minutes=settings.impersonation_token_expire_minutes,
    )
    with atomic(session):
        _record(session, admin, "admin.impersonate", user, None, {"impersonated_user_id": user.id})
    logger.warning("Admin %s started impersonating user %s", admin.id, user.id)
    return token
