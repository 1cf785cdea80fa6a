from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..constants import VERIFICATION_METHODS
from ..core.errors import ValidationError
from ..db import atomic
from ..models.enums import VerificationStatus
from ..models.models import Home, User, utcnow
from .access import get_home_or_404, normalize_address, require_home_owner
from .audit import audit_log

logger = logging.getLogger(__name__)


def claim_home(
    session: Session,
    user: User,
    *,
    address: str,
    city: str,
    state: str,
    zip_code: str,
    address_line2: Optional[str] = None,
) -> Home:
    normalized = normalize_address(address, city, state, zip_code)
    with atomic(session):
        home = session.query(Home).filter(Home.normalized_address == normalized).first()
        if home is not None:
            if home.owner_id == user.id:
                raise ValidationError("You already have access to this home")
            if home.owner_id is not None:
                raise ValidationError("This home is already claimed by another user")
            home.owner_id = user.id
        else:
            home = Home(
                owner_id=user.id,
                address=address.strip(),
                address_line2=address_line2,
                city=city.strip(),
                state=state.strip(),
                zip=zip_code.strip(),
                normalized_address=normalized,
            )
            session.add(home)
            session.flush()
        audit_log(
            session,
            actor_user_id=user.id,
            action="home.claim",
            target_entity_type="Home",
            target_entity_id=home.id,
            home_id=home.id,
            after={"normalized_address": normalized},
        )
    logger.info("User %s claimed home %s", user.id, home.id)
    return home


def list_owned_homes(session: Session, user: User) -> List[Home]:
    return session.query(Home).filter(Home.owner_id == user.id).order_by(Home.created_at.asc()).all()


def verify_home(session: Session, user: User, home_id: int, method: str) -> Home:
    method = method.upper()
    if method not in VERIFICATION_METHODS:
        raise ValidationError(f"Unsupported verification method: {method}")
    status = VerificationStatus[f"VERIFIED_BY_{method}"]
    if user.has_role("ADMIN"):
        home = get_home_or_404(session, home_id)
    else:
        home = require_home_owner(session, user, home_id)
    with atomic(session):
        before = home.verification_status
        home.verification_status = status.value
        home.verification_method = method
        home.verified_at = utcnow()
        home.verified_by_user_id = user.id
        audit_log(
            session,
            actor_user_id=user.id,
            action="home.verify",
            target_entity_type="Home",
            target_entity_id=home.id,
            home_id=home.id,
            before={"verification_status": before},
            after={"verification_status": home.verification_status},
        )
    return home
