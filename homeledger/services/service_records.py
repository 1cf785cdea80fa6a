from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import EstablishedVia, ServiceRecordStatus
from ..models.models import ServiceRecord, User, utcnow
from .access import get_home_or_404, require_contractor_connection
from .audit import audit_log
from .connections import apply_verified_service, upsert_connection
from .notifications import create_notification
from .transitions import ensure_transition

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (
    ServiceRecordStatus.DOCUMENTED_UNVERIFIED.value,
    ServiceRecordStatus.DOCUMENTED.value,
)
EDITABLE_FIELDS = (
    "service_type",
    "service_date",
    "description",
    "cost",
    "warranty_included",
    "warranty_length",
    "warranty_details",
)


def get_record_or_404(session: Session, home_id: int, record_id: int) -> ServiceRecord:
    record = session.get(ServiceRecord, record_id)
    if not record or record.home_id != home_id:
        raise NotFoundError("Service record not found")
    return record


def create_record(
    session: Session,
    contractor: User,
    home_id: int,
    *,
    service_type: str,
    service_date: datetime,
    description: Optional[str] = None,
    cost: Optional[Decimal] = None,
    warranty_included: bool = False,
    warranty_length: Optional[str] = None,
    warranty_details: Optional[str] = None,
) -> ServiceRecord:
    require_contractor_connection(session, contractor, home_id)
    if cost is not None and Decimal(cost) < 0:
        raise ValidationError("Cost cannot be negative")
    with atomic(session):
        record = ServiceRecord(
            home_id=home_id,
            contractor_id=contractor.id,
            service_type=service_type,
            service_date=service_date,
            description=description,
            cost=cost,
            photos=[],
            status=ServiceRecordStatus.DOCUMENTED_UNVERIFIED.value,
            is_verified=False,
            warranty_included=warranty_included,
            warranty_length=warranty_length,
            warranty_details=warranty_details,
        )
        session.add(record)
        session.flush()
        home = get_home_or_404(session, home_id)
        if home.owner_id:
            create_notification(
                session,
                user_id=home.owner_id,
                subject=f"New service submitted for review: {service_type}",
                payload={"service_record_id": record.id, "home_id": home_id},
            )
    logger.info("Service record %s documented by contractor %s", record.id, contractor.id)
    return record


def update_record(session: Session, contractor: User, home_id: int, record_id: int, changes: Dict[str, Any]) -> ServiceRecord:
    record = get_record_or_404(session, home_id, record_id)
    if record.contractor_id != contractor.id:
        raise ForbiddenError("You did not document this record")
    if record.is_verified or record.status not in REVIEWABLE_STATUSES:
        raise InvalidStateError("Only unverified records can be edited")
    with atomic(session):
        for field in EDITABLE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(record, field, changes[field])
    return record


def approve_record(session: Session, homeowner: User, home_id: int, record_id: int) -> ServiceRecord:
    """Verify a record and fold it into the connection rollups in one transaction."""
    home = get_home_or_404(session, home_id)
    if home.owner_id != homeowner.id:
        raise ForbiddenError("Only the homeowner can approve this service")
    record = get_record_or_404(session, home_id, record_id)
    if record.is_verified:
        raise InvalidStateError("This service has already been approved")
    ensure_transition("ServiceRecord", record.status, ServiceRecordStatus.APPROVED.value)

    with atomic(session):
        now = utcnow()
        before = record.status
        record.status = ServiceRecordStatus.APPROVED.value
        record.is_verified = True
        record.approved_by = homeowner.id
        record.approved_at = now
        record.verified_by = homeowner.id
        record.verified_at = now
        connection = upsert_connection(
            session,
            home_id=home_id,
            homeowner_id=homeowner.id,
            contractor_id=record.contractor_id,
            invited_by=homeowner.id,
            established_via=EstablishedVia.VERIFIED_SERVICE.value,
            source_record_id=record.id,
        )
        apply_verified_service(connection, record)
        create_notification(
            session,
            user_id=record.contractor_id,
            subject=f"Service approved: {record.service_type}",
            payload={"service_record_id": record.id, "home_id": home_id, "connection_id": connection.id},
        )
        audit_log(
            session,
            actor_user_id=homeowner.id,
            action="service_record.approve",
            target_entity_type="ServiceRecord",
            target_entity_id=record.id,
            home_id=home_id,
            before={"status": before},
            after={
                "status": record.status,
                "verified_service_count": connection.verified_service_count,
                "total_spent": connection.total_spent,
            },
        )
    logger.info("Service record %s approved; connection %s rollups updated", record.id, connection.id)
    return record


def reject_record(
    session: Session,
    homeowner: User,
    home_id: int,
    record_id: int,
    reason: Optional[str] = None,
) -> ServiceRecord:
    home = get_home_or_404(session, home_id)
    if home.owner_id != homeowner.id:
        raise ForbiddenError("Only the homeowner can reject this service")
    record = get_record_or_404(session, home_id, record_id)
    ensure_transition("ServiceRecord", record.status, ServiceRecordStatus.REJECTED.value)
    with atomic(session):
        before = record.status
        record.status = ServiceRecordStatus.REJECTED.value
        record.rejection_reason = (reason or "").strip() or None
        create_notification(
            session,
            user_id=record.contractor_id,
            subject=f"Service rejected: {record.service_type}",
            payload={"service_record_id": record.id, "home_id": home_id, "reason": record.rejection_reason},
        )
        audit_log(
            session,
            actor_user_id=homeowner.id,
            action="service_record.reject",
            target_entity_type="ServiceRecord",
            target_entity_id=record.id,
            home_id=home_id,
            before={"status": before},
            after={"status": record.status, "reason": record.rejection_reason},
        )
    return record


def list_home_records(session: Session, home_id: int, verified_only: bool = False) -> List[ServiceRecord]:
    query = session.query(ServiceRecord).filter(ServiceRecord.home_id == home_id)
    if verified_only:
        query = query.filter(ServiceRecord.is_verified.is_(True))
    return query.order_by(ServiceRecord.service_date.desc()).all()


def list_pending_review(session: Session, home_id: int) -> List[ServiceRecord]:
    return (
        session.query(ServiceRecord)
        .filter(
            ServiceRecord.home_id == home_id,
            ServiceRecord.is_verified.is_(False),
            ServiceRecord.status.in_(REVIEWABLE_STATUSES),
        )
        .order_by(ServiceRecord.created_at.asc())
        .all()
    )


def list_contractor_records(session: Session, contractor: User) -> List[ServiceRecord]:
    return (
        session.query(ServiceRecord)
        .filter(ServiceRecord.contractor_id == contractor.id)
        .order_by(ServiceRecord.service_date.desc())
        .all()
    )
