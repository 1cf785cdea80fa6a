from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..core.errors import ExpiredError, ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import TransferStatus
from ..models.models import HomeTransfer, User, utcnow
from .access import require_home_owner
from .audit import audit_log
from .email import EmailService
from .transitions import ensure_transition

logger = logging.getLogger(__name__)


def expire_if_stale(session: Session, transfer: HomeTransfer) -> bool:
    if transfer.status != TransferStatus.PENDING.value or transfer.expires_at >= utcnow():
        return False
    transfer.status = TransferStatus.EXPIRED.value
    session.commit()
    return True


def get_transfer_or_404(session: Session, transfer_id: int) -> HomeTransfer:
    transfer = (
        session.query(HomeTransfer)
        .options(joinedload(HomeTransfer.home), joinedload(HomeTransfer.from_user))
        .filter(HomeTransfer.id == transfer_id)
        .first()
    )
    if not transfer:
        raise NotFoundError("Transfer not found")
    return transfer


def create_transfer(
    session: Session,
    owner: User,
    home_id: int,
    recipient_email: str,
    *,
    message: Optional[str] = None,
    expiry_days: int = 7,
    email_service: Optional[EmailService] = None,
) -> HomeTransfer:
    home = require_home_owner(session, owner, home_id)
    email = recipient_email.strip().lower()
    if not email:
        raise ValidationError("Recipient email is required")
    if email == owner.email.lower():
        raise ValidationError("You cannot transfer a home to yourself")
    pending = (
        session.query(HomeTransfer)
        .filter(HomeTransfer.home_id == home_id, HomeTransfer.status == TransferStatus.PENDING.value)
        .all()
    )
    for existing in pending:
        if not expire_if_stale(session, existing):
            raise ValidationError("A transfer for this home is already pending")

    recipient = session.query(User).filter(func.lower(User.email) == email).first()
    with atomic(session):
        transfer = HomeTransfer(
            home_id=home.id,
            from_user_id=owner.id,
            to_user_id=recipient.id if recipient else None,
            recipient_email=email,
            token=secrets.token_urlsafe(32),
            status=TransferStatus.PENDING.value,
            message=message,
            expires_at=utcnow() + timedelta(days=expiry_days),
        )
        session.add(transfer)
        session.flush()
        audit_log(
            session,
            actor_user_id=owner.id,
            action="transfer.create",
            target_entity_type="HomeTransfer",
            target_entity_id=transfer.id,
            home_id=home.id,
            after={"recipient_email": email},
        )
    if email_service is not None:
        result = email_service.send_transfer(transfer, owner.name or owner.email, home.display_address)
        if not result.ok:
            logger.warning("Transfer %s email not delivered: %s", transfer.id, result.error)
    return transfer


def _require_recipient(session: Session, user: User, transfer: HomeTransfer) -> None:
    if transfer.recipient_email.lower() != user.email.lower():
        raise ForbiddenError("This transfer was not sent to you")
    if transfer.status != TransferStatus.PENDING.value:
        raise InvalidStateError("Transfer is not pending")
    if expire_if_stale(session, transfer):
        raise ExpiredError("This transfer has expired")


def accept_transfer(session: Session, user: User, transfer_id: int) -> HomeTransfer:
    transfer = get_transfer_or_404(session, transfer_id)
    _require_recipient(session, user, transfer)
    home = transfer.home
    if home.owner_id != transfer.from_user_id:
        raise InvalidStateError("The sender no longer owns this home")
    with atomic(session):
        ensure_transition("HomeTransfer", transfer.status, TransferStatus.ACCEPTED.value)
        transfer.status = TransferStatus.ACCEPTED.value
        transfer.accepted_at = utcnow()
        transfer.to_user_id = user.id
        home.owner_id = user.id
        audit_log(
            session,
            actor_user_id=user.id,
            action="transfer.accept",
            target_entity_type="HomeTransfer",
            target_entity_id=transfer.id,
            home_id=home.id,
            before={"owner_id": transfer.from_user_id},
            after={"owner_id": user.id},
        )
    logger.info("Home %s transferred from user %s to user %s", home.id, transfer.from_user_id, user.id)
    return transfer


def decline_transfer(session: Session, user: User, transfer_id: int) -> HomeTransfer:
    transfer = get_transfer_or_404(session, transfer_id)
    _require_recipient(session, user, transfer)
    with atomic(session):
        transfer.status = TransferStatus.DECLINED.value
        audit_log(
            session,
            actor_user_id=user.id,
            action="transfer.decline",
            target_entity_type="HomeTransfer",
            target_entity_id=transfer.id,
            home_id=transfer.home_id,
        )
    return transfer


def cancel_transfer(session: Session, user: User, transfer_id: int) -> HomeTransfer:
    transfer = get_transfer_or_404(session, transfer_id)
    if transfer.from_user_id != user.id and not user.has_role("ADMIN"):
        raise ForbiddenError("Only the sender or an admin can cancel this transfer")
    ensure_transition("HomeTransfer", transfer.status, TransferStatus.CANCELLED.value)
    with atomic(session):
        transfer.status = TransferStatus.CANCELLED.value
        audit_log(
            session,
            actor_user_id=user.id,
            action="transfer.cancel",
            target_entity_type="HomeTransfer",
            target_entity_id=transfer.id,
            home_id=transfer.home_id,
            before={"status": TransferStatus.PENDING.value},
            after={"status": transfer.status},
        )
    return transfer


def list_for_user(session: Session, user: User) -> List[HomeTransfer]:
    transfers = (
        session.query(HomeTransfer)
        .filter(
            (HomeTransfer.from_user_id == user.id)
            | (func.lower(HomeTransfer.recipient_email) == user.email.lower())
        )
        .order_by(HomeTransfer.created_at.desc())
        .all()
    )
    for transfer in transfers:
        expire_if_stale(session, transfer)
    return transfers
