from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.errors import ForbiddenError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import WarrantyStatus
from ..models.models import ServiceRecord, User, Warranty, utcnow
from .access import get_home_or_404, require_contractor_connection
from .audit import audit_log
from .notifications import create_notification
from .transitions import ensure_transition

logger = logging.getLogger(__name__)


def refresh_expiry(session: Session, warranties: List[Warranty]) -> List[Warranty]:
    """Persist EXPIRED on active warranties whose coverage has lapsed."""
    now = utcnow()
    changed = False
    for warranty in warranties:
        if warranty.status == WarrantyStatus.ACTIVE.value and warranty.expires_at and warranty.expires_at < now:
            warranty.status = WarrantyStatus.EXPIRED.value
            changed = True
    if changed:
        session.commit()
    return warranties


def get_warranty_or_404(session: Session, home_id: int, warranty_id: int) -> Warranty:
    warranty = session.get(Warranty, warranty_id)
    if not warranty or warranty.home_id != home_id:
        raise NotFoundError("Warranty not found")
    refresh_expiry(session, [warranty])
    return warranty


def create_warranty(
    session: Session,
    user: User,
    home_id: int,
    *,
    item: str,
    provider: Optional[str] = None,
    policy_no: Optional[str] = None,
    purchased_at: Optional[datetime] = None,
    expires_at: Optional[datetime] = None,
    note: Optional[str] = None,
    service_record_id: Optional[int] = None,
) -> Warranty:
    require_contractor_connection(session, user, home_id)
    if service_record_id is not None:
        record = session.get(ServiceRecord, service_record_id)
        if not record or record.home_id != home_id or record.contractor_id != user.id:
            raise ValidationError("Service record does not belong to you on this home")
    if purchased_at and expires_at and expires_at < purchased_at:
        raise ValidationError("Warranty cannot expire before it was purchased")

    with atomic(session):
        warranty = Warranty(
            home_id=home_id,
            service_record_id=service_record_id,
            item=item,
            provider=provider,
            policy_no=policy_no,
            purchased_at=purchased_at,
            expires_at=expires_at,
            status=WarrantyStatus.PENDING.value,
            note=note,
            photos=[],
            created_by=user.id,
        )
        session.add(warranty)
        session.flush()
        home = get_home_or_404(session, home_id)
        if home.owner_id:
            create_notification(
                session,
                user_id=home.owner_id,
                subject=f"Warranty added for review: {item}",
                payload={"warranty_id": warranty.id, "home_id": home_id},
            )
    return warranty


def _decide(session: Session, homeowner: User, home_id: int, warranty_id: int, target: str) -> Warranty:
    home = get_home_or_404(session, home_id)
    if home.owner_id != homeowner.id:
        raise ForbiddenError("Only the homeowner can review warranties")
    warranty = get_warranty_or_404(session, home_id, warranty_id)
    ensure_transition("Warranty", warranty.status, target)
    with atomic(session):
        warranty.status = target
        if target == WarrantyStatus.ACTIVE.value:
            warranty.accepted_by = homeowner.id
            warranty.accepted_at = utcnow()
        audit_log(
            session,
            actor_user_id=homeowner.id,
            action=f"warranty.{target.lower()}",
            target_entity_type="Warranty",
            target_entity_id=warranty.id,
            home_id=home_id,
            before={"status": WarrantyStatus.PENDING.value},
            after={"status": target},
        )
    # Coverage that had already lapsed when accepted reads as expired straight away.
    refresh_expiry(session, [warranty])
    return warranty


def accept_warranty(session: Session, homeowner: User, home_id: int, warranty_id: int) -> Warranty:
    return _decide(session, homeowner, home_id, warranty_id, WarrantyStatus.ACTIVE.value)


def reject_warranty(session: Session, homeowner: User, home_id: int, warranty_id: int) -> Warranty:
    return _decide(session, homeowner, home_id, warranty_id, WarrantyStatus.REJECTED.value)


def list_home_warranties(session: Session, home_id: int, status: Optional[str] = None) -> List[Warranty]:
    warranties = refresh_expiry(
        session,
        session.query(Warranty).filter(Warranty.home_id == home_id).order_by(Warranty.created_at.desc()).all(),
    )
    if status:
        warranties = [w for w in warranties if w.status == status.upper()]
    return warranties
