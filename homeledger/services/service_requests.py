from __future__ import annotations

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from ..constants import REQUEST_URGENCIES
from ..core.errors import ExpiredError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import ConnectionStatus, QuoteStatus, ServiceRecordStatus, ServiceRequestStatus
from ..models.models import Connection, Quote, QuoteItem, ServiceRecord, ServiceRequest, User, utcnow
from .audit import audit_log
from .notifications import create_notification
from .transitions import ensure_status_in, ensure_transition

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def get_request_or_404(session: Session, request_id: int, home_id: Optional[int] = None) -> ServiceRequest:
    service_request = (
        session.query(ServiceRequest)
        .options(joinedload(ServiceRequest.quotes).joinedload(Quote.items))
        .filter(ServiceRequest.id == request_id)
        .first()
    )
    if not service_request or (home_id is not None and service_request.home_id != home_id):
        raise NotFoundError("Service request not found")
    return service_request


def _transition(session: Session, actor: User, service_request: ServiceRequest, target: str, **extra: Any) -> None:
    before = service_request.status
    ensure_transition("ServiceRequest", before, target)
    service_request.status = target
    audit_log(
        session,
        actor_user_id=actor.id,
        action="service_request.transition",
        target_entity_type="ServiceRequest",
        target_entity_id=service_request.id,
        home_id=service_request.home_id,
        before={"status": before},
        after={"status": target, **extra},
    )


def create_request(
    session: Session,
    homeowner: User,
    *,
    connection_id: int,
    title: str,
    description: Optional[str] = None,
    category: Optional[str] = None,
    urgency: str = "NORMAL",
    budget_min: Optional[Decimal] = None,
    budget_max: Optional[Decimal] = None,
    desired_date: Optional[datetime] = None,
) -> ServiceRequest:
    connection = session.get(Connection, connection_id)
    if not connection:
        raise NotFoundError("Connection not found")
    if connection.homeowner_id != homeowner.id:
        raise ForbiddenError("You are not the homeowner on this connection")
    if connection.status != ConnectionStatus.ACTIVE.value:
        raise InvalidStateError("Service requests need an active connection")
    urgency = (urgency or "NORMAL").upper()
    if urgency not in REQUEST_URGENCIES:
        raise ValidationError(f"Invalid urgency: {urgency}")
    if not title or not title.strip():
        raise ValidationError("Title is required")
    if budget_min is not None and budget_max is not None and Decimal(budget_min) > Decimal(budget_max):
        raise ValidationError("budget_min cannot exceed budget_max")

    with atomic(session):
        service_request = ServiceRequest(
            connection_id=connection.id,
            home_id=connection.home_id,
            homeowner_id=homeowner.id,
            contractor_id=connection.contractor_id,
            title=title.strip(),
            description=description,
            category=category,
            urgency=urgency,
            budget_min=budget_min,
            budget_max=budget_max,
            desired_date=desired_date,
            photos=[],
            status=ServiceRequestStatus.PENDING.value,
        )
        session.add(service_request)
        session.flush()
        create_notification(
            session,
            user_id=connection.contractor_id,
            subject=f"New service request: {service_request.title}",
            payload={"service_request_id": service_request.id, "home_id": service_request.home_id},
        )
    logger.info("Service request %s created on connection %s", service_request.id, connection.id)
    return service_request


def _build_items(items: Iterable[Dict[str, Any]]) -> List[QuoteItem]:
    built: List[QuoteItem] = []
    for raw in items:
        name = (raw.get("item") or "").strip()
        if not name:
            raise ValidationError("Each quote item needs a description")
        qty = _money(raw.get("qty", 1))
        unit_price = _money(raw.get("unit_price", 0))
        if qty <= 0 or unit_price < 0:
            raise ValidationError("Quote item quantity must be positive and price non-negative")
        built.append(QuoteItem(item=name, qty=qty, unit_price=unit_price, total=_money(qty * unit_price)))
    if not built:
        raise ValidationError("A quote needs at least one item")
    return built


def submit_quote(
    session: Session,
    contractor: User,
    request_id: int,
    *,
    title: str,
    items: Iterable[Dict[str, Any]],
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
) -> Quote:
    service_request = get_request_or_404(session, request_id)
    if service_request.contractor_id != contractor.id:
        raise ForbiddenError("This request was not sent to you")
    ensure_status_in(
        service_request.status,
        [ServiceRequestStatus.PENDING.value],
        "Quotes can only be submitted for pending requests",
    )
    if service_request.active_quote is not None:
        raise InvalidStateError("This request already has an active quote")
    quote_items = _build_items(items)

    with atomic(session):
        quote = Quote(
            connection_id=service_request.connection_id,
            home_id=service_request.home_id,
            service_request_id=service_request.id,
            title=title,
            description=description,
            total_amount=sum((item.total for item in quote_items), Decimal("0")),
            status=QuoteStatus.SENT.value,
            expires_at=expires_at,
            items=quote_items,
        )
        session.add(quote)
        session.flush()
        service_request.responded_at = utcnow()
        _transition(session, contractor, service_request, ServiceRequestStatus.QUOTED.value, quote_id=quote.id)
        create_notification(
            session,
            user_id=service_request.homeowner_id,
            subject=f"New quote for {service_request.title}",
            payload={"service_request_id": service_request.id, "quote_id": quote.id},
        )
    logger.info("Quote %s submitted for request %s", quote.id, service_request.id)
    return quote


def update_quote(
    session: Session,
    contractor: User,
    request_id: int,
    quote_id: int,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
    items: Optional[Iterable[Dict[str, Any]]] = None,
    expires_at: Optional[datetime] = None,
) -> Quote:
    service_request = get_request_or_404(session, request_id)
    quote = session.get(Quote, quote_id)
    if not quote or quote.service_request_id != service_request.id:
        raise NotFoundError("Quote not found")
    if service_request.contractor_id != contractor.id:
        raise ForbiddenError("This request was not sent to you")
    ensure_status_in(service_request.status, [ServiceRequestStatus.QUOTED.value], "Quote can no longer be edited")
    ensure_status_in(quote.status, [QuoteStatus.SENT.value], "Quote can no longer be edited")

    with atomic(session):
        if title is not None:
            quote.title = title
        if description is not None:
            quote.description = description
        if expires_at is not None:
            quote.expires_at = expires_at
        if items is not None:
            quote.items = _build_items(items)
            quote.total_amount = sum((item.total for item in quote.items), Decimal("0"))
        audit_log(
            session,
            actor_user_id=contractor.id,
            action="quote.update",
            target_entity_type="Quote",
            target_entity_id=quote.id,
            home_id=quote.home_id,
            after={"total_amount": quote.total_amount},
        )
    return quote


def accept_quote(session: Session, homeowner: User, request_id: int, quote_id: int) -> ServiceRequest:
    service_request = get_request_or_404(session, request_id)
    if service_request.homeowner_id != homeowner.id:
        raise ForbiddenError("Only the homeowner can accept a quote")
    quote = session.get(Quote, quote_id)
    if not quote or quote.service_request_id != service_request.id:
        raise NotFoundError("Quote not found")
    ensure_status_in(quote.status, [QuoteStatus.SENT.value], "Quote is not open for acceptance")
    ensure_transition("ServiceRequest", service_request.status, ServiceRequestStatus.ACCEPTED.value)
    if quote.expires_at is not None and quote.expires_at < utcnow():
        quote.status = QuoteStatus.EXPIRED.value
        session.commit()
        raise ExpiredError("This quote has expired")

    with atomic(session):
        now = utcnow()
        quote.status = QuoteStatus.ACCEPTED.value
        quote.accepted_at = now
        service_request.accepted_at = now
        _transition(session, homeowner, service_request, ServiceRequestStatus.ACCEPTED.value, quote_id=quote.id)
        create_notification(
            session,
            user_id=service_request.contractor_id,
            subject=f"Quote accepted: {quote.title}",
            payload={"service_request_id": service_request.id, "quote_id": quote.id},
        )
    return service_request


def _close_open_quotes(service_request: ServiceRequest) -> None:
    for quote in service_request.quotes:
        if quote.status == QuoteStatus.SENT.value:
            quote.status = QuoteStatus.DECLINED.value


def contractor_decline(session: Session, contractor: User, request_id: int) -> ServiceRequest:
    service_request = get_request_or_404(session, request_id)
    if service_request.contractor_id != contractor.id:
        raise ForbiddenError("This request was not sent to you")
    ensure_status_in(service_request.status, [ServiceRequestStatus.PENDING.value], "Only pending requests can be declined")
    with atomic(session):
        service_request.responded_at = utcnow()
        _transition(session, contractor, service_request, ServiceRequestStatus.DECLINED.value)
    return service_request


def homeowner_close(session: Session, homeowner: User, request_id: int, target: str) -> ServiceRequest:
    """Decline or cancel a request that has not been accepted yet."""
    if target not in (ServiceRequestStatus.DECLINED.value, ServiceRequestStatus.CANCELLED.value):
        raise ValidationError(f"Invalid target status: {target}")
    service_request = get_request_or_404(session, request_id)
    if service_request.homeowner_id != homeowner.id:
        raise ForbiddenError("Only the homeowner can close this request")
    with atomic(session):
        _transition(session, homeowner, service_request, target)
        _close_open_quotes(service_request)
    return service_request


def start_work(session: Session, contractor: User, request_id: int) -> ServiceRequest:
    service_request = get_request_or_404(session, request_id)
    if service_request.contractor_id != contractor.id:
        raise ForbiddenError("This request was not sent to you")
    with atomic(session):
        _transition(session, contractor, service_request, ServiceRequestStatus.IN_PROGRESS.value)
    return service_request


def complete_work(
    session: Session,
    contractor: User,
    request_id: int,
    record: Optional[Dict[str, Any]] = None,
) -> ServiceRequest:
    service_request = get_request_or_404(session, request_id)
    if service_request.contractor_id != contractor.id:
        raise ForbiddenError("This request was not sent to you")
    with atomic(session):
        service_request.completed_at = utcnow()
        _transition(session, contractor, service_request, ServiceRequestStatus.COMPLETED.value)
        if record:
            quote = service_request.active_quote
            service_record = ServiceRecord(
                service_request_id=service_request.id,
                home_id=service_request.home_id,
                contractor_id=contractor.id,
                service_type=record.get("service_type") or service_request.category or service_request.title,
                service_date=record.get("service_date") or utcnow(),
                description=record.get("description") or service_request.description,
                cost=record.get("cost") if record.get("cost") is not None else (quote.total_amount if quote else None),
                photos=[],
                status=ServiceRecordStatus.DOCUMENTED.value,
                is_verified=False,
                warranty_included=bool(record.get("warranty_included")),
                warranty_length=record.get("warranty_length"),
                warranty_details=record.get("warranty_details"),
            )
            session.add(service_record)
            session.flush()
            create_notification(
                session,
                user_id=service_request.homeowner_id,
                subject=f"Work completed: {service_request.title}",
                payload={"service_request_id": service_request.id, "service_record_id": service_record.id},
            )
    return service_request


def list_home_requests(session: Session, home_id: int, status: Optional[str] = None) -> List[ServiceRequest]:
    query = session.query(ServiceRequest).filter(ServiceRequest.home_id == home_id)
    if status:
        query = query.filter(ServiceRequest.status == status.upper())
    return query.order_by(ServiceRequest.created_at.desc()).all()


def list_contractor_requests(session: Session, contractor: User, status: Optional[str] = None) -> List[ServiceRequest]:
    query = session.query(ServiceRequest).filter(ServiceRequest.contractor_id == contractor.id)
    if status:
        query = query.filter(ServiceRequest.status == status.upper())
    return query.order_by(ServiceRequest.created_at.desc()).all()
