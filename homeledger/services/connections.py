from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from ..core.errors import ForbiddenError, NotFoundError
from ..db import atomic
from ..models.enums import ConnectionStatus, EstablishedVia, ServiceRequestStatus
from ..models.models import Connection, ServiceRecord, ServiceRequest, User, utcnow
from .audit import audit_log
from .email import EmailService
from .transitions import ensure_transition

logger = logging.getLogger(__name__)

OPEN_REQUEST_STATUSES = (ServiceRequestStatus.PENDING.value, ServiceRequestStatus.QUOTED.value)


def upsert_connection(
    session: Session,
    *,
    home_id: int,
    homeowner_id: int,
    contractor_id: int,
    invited_by: Optional[int] = None,
    established_via: str = EstablishedVia.INVITATION.value,
    source_record_id: Optional[int] = None,
) -> Connection:
    """Return the single connection for the triple, creating or reactivating it.

    Does not commit; callers run this inside their own transaction.
    """
    connection = (
        session.query(Connection)
        .filter(
            Connection.homeowner_id == homeowner_id,
            Connection.contractor_id == contractor_id,
            Connection.home_id == home_id,
        )
        .first()
    )
    now = utcnow()
    if connection is None:
        connection = Connection(
            home_id=home_id,
            homeowner_id=homeowner_id,
            contractor_id=contractor_id,
            invited_by=invited_by,
            status=ConnectionStatus.ACTIVE.value,
            established_via=established_via,
            source_record_id=source_record_id,
            verified_service_count=0,
            total_spent=Decimal("0"),
            accepted_at=now,
        )
        session.add(connection)
        session.flush()
        logger.info("Connection %s created via %s", connection.id, established_via)
        return connection

    if connection.status != ConnectionStatus.ACTIVE.value:
        ensure_transition("Connection", connection.status, ConnectionStatus.ACTIVE.value)
        connection.status = ConnectionStatus.ACTIVE.value
        connection.archived_at = None
        connection.accepted_at = connection.accepted_at or now
        logger.info("Connection %s reactivated", connection.id)
    session.flush()
    return connection


def apply_verified_service(connection: Connection, record: ServiceRecord) -> None:
    """Fold one newly verified record into the connection rollups."""
    connection.verified_service_count = (connection.verified_service_count or 0) + 1
    if record.cost is not None:
        connection.total_spent = Decimal(connection.total_spent or 0) + Decimal(record.cost)
    if record.service_date and (
        connection.last_service_date is None or record.service_date > connection.last_service_date
    ):
        connection.last_service_date = record.service_date


def get_connection_for_home(session: Session, home_id: int, connection_id: int) -> Connection:
    connection = session.get(Connection, connection_id)
    if not connection or connection.home_id != home_id:
        raise NotFoundError("Connection not found")
    return connection


def disconnect(
    session: Session,
    user: User,
    home_id: int,
    connection_id: int,
    email_service: Optional[EmailService] = None,
) -> Connection:
    connection = get_connection_for_home(session, home_id, connection_id)
    if connection.homeowner_id != user.id:
        raise ForbiddenError("Only the homeowner can disconnect")
    ensure_transition("Connection", connection.status, ConnectionStatus.ARCHIVED.value)

    with atomic(session):
        before = connection.status
        connection.status = ConnectionStatus.ARCHIVED.value
        connection.archived_at = utcnow()
        cancelled = (
            session.query(ServiceRequest)
            .filter(
                ServiceRequest.connection_id == connection.id,
                ServiceRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .update({ServiceRequest.status: ServiceRequestStatus.CANCELLED.value}, synchronize_session="fetch")
        )
        audit_log(
            session,
            actor_user_id=user.id,
            action="connection.disconnect",
            target_entity_type="Connection",
            target_entity_id=connection.id,
            home_id=home_id,
            before={"status": before},
            after={"status": connection.status, "cancelled_requests": cancelled},
        )
    logger.info("Connection %s archived; %s open requests cancelled", connection.id, cancelled)

    if email_service is not None and connection.contractor is not None:
        result = email_service.send_disconnect_notice(
            connection.contractor.email,
            user.name or user.email,
            connection.home.display_address,
        )
        if not result.ok:
            logger.warning("Disconnect notice for connection %s not delivered: %s", connection.id, result.error)
    return connection


def restore(session: Session, user: User, home_id: int, connection_id: int) -> Connection:
    connection = get_connection_for_home(session, home_id, connection_id)
    if connection.homeowner_id != user.id:
        raise ForbiddenError("Only the homeowner can restore a connection")
    ensure_transition("Connection", connection.status, ConnectionStatus.ACTIVE.value)
    with atomic(session):
        connection.status = ConnectionStatus.ACTIVE.value
        connection.archived_at = None
        audit_log(
            session,
            actor_user_id=user.id,
            action="connection.restore",
            target_entity_type="Connection",
            target_entity_id=connection.id,
            home_id=home_id,
            before={"status": ConnectionStatus.ARCHIVED.value},
            after={"status": connection.status},
        )
    return connection


def list_home_connections(session: Session, home_id: int, include_archived: bool = False) -> List[Connection]:
    query = (
        session.query(Connection)
        .options(joinedload(Connection.contractor).joinedload(User.pro_profile))
        .filter(Connection.home_id == home_id)
    )
    if not include_archived:
        query = query.filter(Connection.status != ConnectionStatus.ARCHIVED.value)
    return query.order_by(Connection.created_at.desc()).all()


def list_contractor_connections(session: Session, contractor: User, status: Optional[str] = None) -> List[Connection]:
    query = (
        session.query(Connection)
        .options(joinedload(Connection.home), joinedload(Connection.homeowner))
        .filter(Connection.contractor_id == contractor.id)
    )
    if status:
        query = query.filter(Connection.status == status.upper())
    return query.order_by(Connection.created_at.desc()).all()
