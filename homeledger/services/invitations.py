from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ..core.errors import (
    ExpiredError,
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..db import atomic
from ..models.enums import EstablishedVia, InvitationStatus, UserRole
from ..models.models import Connection, Home, Invitation, User, utcnow
from .access import get_home_or_404, normalize_address
from .audit import audit_log
from .connections import upsert_connection
from .email import EmailService
from .transitions import ensure_transition

logger = logging.getLogger(__name__)

INVITABLE_ROLES = (UserRole.PRO.value, UserRole.HOMEOWNER.value)


def _is_expired(invitation: Invitation) -> bool:
    return invitation.expires_at is not None and invitation.expires_at < utcnow()


def expire_if_stale(session: Session, invitation: Invitation) -> bool:
    """Persist EXPIRED for a pending invitation whose deadline has passed."""
    if invitation.status != InvitationStatus.PENDING.value or not _is_expired(invitation):
        return False
    invitation.status = InvitationStatus.EXPIRED.value
    session.commit()
    logger.info("Invitation %s expired", invitation.id)
    return True


def _expire_stale(session: Session, invitations: List[Invitation]) -> List[Invitation]:
    changed = False
    for invitation in invitations:
        if invitation.status == InvitationStatus.PENDING.value and _is_expired(invitation):
            invitation.status = InvitationStatus.EXPIRED.value
            changed = True
    if changed:
        session.commit()
    return invitations


def get_invitation_or_404(session: Session, invitation_id: int) -> Invitation:
    invitation = (
        session.query(Invitation)
        .options(joinedload(Invitation.home), joinedload(Invitation.inviter))
        .filter(Invitation.id == invitation_id)
        .first()
    )
    if not invitation:
        raise NotFoundError("Invitation not found")
    return invitation


def get_invitation_by_token(session: Session, token: str) -> Invitation:
    invitation = session.query(Invitation).filter(Invitation.token == token).first()
    if not invitation:
        raise NotFoundError("Invitation not found")
    expire_if_stale(session, invitation)
    return invitation


def _authorize_inviter(session: Session, inviter: User, role: str, home_id: Optional[int]) -> Home:
    if home_id is None:
        raise ValidationError("A home is required for this invitation")
    home = get_home_or_404(session, home_id)
    if role == UserRole.PRO.value:
        if home.owner_id != inviter.id:
            raise ValidationError("Only the homeowner can invite pros to this home")
    elif not inviter.is_approved_pro:
        raise ValidationError("Only approved pros can invite homeowners")
    return home


def _reject_duplicate(session: Session, email: str, home_id: int, role: str) -> None:
    pending = (
        session.query(Invitation)
        .filter(
            func.lower(Invitation.invited_email) == email,
            Invitation.home_id == home_id,
            Invitation.role == role,
            Invitation.status == InvitationStatus.PENDING.value,
        )
        .all()
    )
    for invitation in pending:
        if _is_expired(invitation):
            invitation.status = InvitationStatus.EXPIRED.value
            continue
        raise ValidationError("A pending invitation already exists for this email, home and role")


def create_invitation(
    session: Session,
    inviter: User,
    *,
    invited_email: str,
    role: str,
    home_id: Optional[int],
    expiry_days: int = 7,
    invited_name: Optional[str] = None,
    message: Optional[str] = None,
    email_service: Optional[EmailService] = None,
) -> Invitation:
    role = role.upper()
    if role not in INVITABLE_ROLES:
        raise ValidationError(f"Invalid invitation role: {role}")
    email = invited_email.strip().lower()
    if not email:
        raise ValidationError("Email is required")
    if email == (inviter.email or "").lower():
        raise ValidationError("You cannot invite yourself")

    home = _authorize_inviter(session, inviter, role, home_id)

    with atomic(session):
        _reject_duplicate(session, email, home.id, role)
        invitation = Invitation(
            invited_by=inviter.id,
            invited_email=email,
            invited_name=invited_name,
            home_id=home.id,
            role=role,
            status=InvitationStatus.PENDING.value,
            token=secrets.token_urlsafe(32),
            message=(message or "").strip() or None,
            expires_at=utcnow() + timedelta(days=expiry_days),
        )
        session.add(invitation)
        session.flush()
        audit_log(
            session,
            actor_user_id=inviter.id,
            action="invitation.create",
            target_entity_type="Invitation",
            target_entity_id=invitation.id,
            home_id=home.id,
            after={"invited_email": email, "role": role},
        )
    logger.info("Invitation %s created by user %s for home %s", invitation.id, inviter.id, home.id)

    if email_service is not None:
        result = email_service.send_invitation(invitation, inviter.name or inviter.email, home.display_address)
        if not result.ok:
            logger.warning("Invitation %s email not delivered: %s", invitation.id, result.error)
    return invitation


def _require_invitee(invitation: Invitation, user: User) -> None:
    if invitation.invited_email.lower() != (user.email or "").lower():
        raise ForbiddenError("You are not the invitee for this invitation")


def _require_pending(session: Session, invitation: Invitation) -> None:
    if invitation.status != InvitationStatus.PENDING.value:
        raise InvalidStateError("Invitation is not pending")
    if expire_if_stale(session, invitation):
        raise ExpiredError("This invitation has expired")


def accept_invitation(
    session: Session,
    user: User,
    invitation_id: int,
    *,
    address: str,
    city: str,
    state: str,
    zip_code: str,
    expected_role: Optional[str] = None,
) -> Connection:
    invitation = get_invitation_or_404(session, invitation_id)
    _require_invitee(invitation, user)
    if expected_role is not None and invitation.role != expected_role:
        raise ForbiddenError(f"This invitation is not addressed to a {expected_role.lower()} account")
    if not user.has_role(invitation.role):
        raise ForbiddenError(f"This invitation must be accepted from a {invitation.role.lower()} account")
    _require_pending(session, invitation)

    if not all(part and part.strip() for part in (address, city, state, zip_code)):
        raise ValidationError("Address verification required")
    home = invitation.home
    if home is None:
        raise ValidationError("Invitation has no home associated")
    if normalize_address(address, city, state, zip_code) != home.normalized_address:
        raise ValidationError("Address mismatch. The verified address does not match the property in this invitation.")

    if invitation.role == UserRole.PRO.value:
        homeowner_id, contractor_id = invitation.invited_by, user.id
    else:
        if home.owner_id not in (None, user.id):
            raise ForbiddenError("This home belongs to another account")
        homeowner_id, contractor_id = user.id, invitation.invited_by

    with atomic(session):
        ensure_transition("Invitation", invitation.status, InvitationStatus.ACCEPTED.value)
        invitation.status = InvitationStatus.ACCEPTED.value
        invitation.accepted_at = utcnow()
        if home.owner_id is None:
            home.owner_id = homeowner_id
        connection = upsert_connection(
            session,
            home_id=home.id,
            homeowner_id=homeowner_id,
            contractor_id=contractor_id,
            invited_by=invitation.invited_by,
            established_via=EstablishedVia.INVITATION.value,
        )
        audit_log(
            session,
            actor_user_id=user.id,
            action="invitation.accept",
            target_entity_type="Invitation",
            target_entity_id=invitation.id,
            home_id=home.id,
            before={"status": InvitationStatus.PENDING.value},
            after={"status": invitation.status, "connection_id": connection.id},
        )
    logger.info("Invitation %s accepted; connection %s", invitation.id, connection.id)
    return connection


def decline_invitation(session: Session, user: User, invitation_id: int) -> Invitation:
    invitation = get_invitation_or_404(session, invitation_id)
    _require_invitee(invitation, user)
    _require_pending(session, invitation)
    with atomic(session):
        invitation.status = InvitationStatus.DECLINED.value
        audit_log(
            session,
            actor_user_id=user.id,
            action="invitation.decline",
            target_entity_type="Invitation",
            target_entity_id=invitation.id,
            home_id=invitation.home_id,
        )
    return invitation


def cancel_invitation(session: Session, user: User, invitation_id: int) -> Invitation:
    invitation = get_invitation_or_404(session, invitation_id)
    if invitation.invited_by != user.id and not user.has_role("ADMIN"):
        raise ForbiddenError("Only the inviter or an admin can cancel this invitation")
    if invitation.status != InvitationStatus.PENDING.value:
        raise InvalidStateError("Invitation is not pending")
    with atomic(session):
        invitation.status = InvitationStatus.CANCELLED.value
        audit_log(
            session,
            actor_user_id=user.id,
            action="invitation.cancel",
            target_entity_type="Invitation",
            target_entity_id=invitation.id,
            home_id=invitation.home_id,
        )
    return invitation


def resend_invitation(session: Session, user: User, invitation_id: int, email_service: EmailService) -> Invitation:
    invitation = get_invitation_or_404(session, invitation_id)
    if invitation.invited_by != user.id:
        raise ForbiddenError("Only the inviter can resend this invitation")
    _require_pending(session, invitation)
    home_address = invitation.home.display_address if invitation.home else None
    result = email_service.send_invitation(invitation, user.name or user.email, home_address)
    if not result.ok:
        raise InternalError("Failed to resend the invitation email")
    logger.info("Invitation %s resent", invitation.id)
    return invitation


def list_received(session: Session, user: User, status: Optional[str] = None) -> List[Invitation]:
    query = (
        session.query(Invitation)
        .options(joinedload(Invitation.home), joinedload(Invitation.inviter))
        .filter(func.lower(Invitation.invited_email) == (user.email or "").lower())
    )
    invitations = _expire_stale(session, query.order_by(Invitation.created_at.desc()).all())
    if status:
        invitations = [inv for inv in invitations if inv.status == status.upper()]
    return invitations


def list_sent(session: Session, user: User, status: Optional[str] = None) -> List[Invitation]:
    query = (
        session.query(Invitation)
        .options(joinedload(Invitation.home))
        .filter(Invitation.invited_by == user.id)
    )
    invitations = _expire_stale(session, query.order_by(Invitation.created_at.desc()).all())
    if status:
        invitations = [inv for inv in invitations if inv.status == status.upper()]
    return invitations
