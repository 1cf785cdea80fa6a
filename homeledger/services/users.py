from __future__ import annotations

import logging
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth.jwt import get_password_hash, verify_password
from ..constants import PRO_TYPES
from ..core.errors import InvalidStateError, ValidationError
from ..db import atomic
from ..models.enums import ProStatus, UserRole
from ..models.models import ProProfile, User

logger = logging.getLogger(__name__)

SELF_SERVICE_ROLES = (UserRole.HOMEOWNER.value, UserRole.PRO.value)


def get_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def register_user(
    session: Session,
    *,
    email: str,
    password: str,
    name: Optional[str] = None,
    role: str = UserRole.HOMEOWNER.value,
) -> User:
    role = role.upper()
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("Role must be HOMEOWNER or PRO")
    if get_user_by_email(session, email):
        raise ValidationError("An account with this email already exists")
    with atomic(session):
        user = User(
            email=email.strip().lower(),
            name=name,
            hashed_password=get_password_hash(password),
            role=role,
            pro_status=ProStatus.PENDING.value if role == UserRole.PRO.value else None,
        )
        session.add(user)
    logger.info("Registered user %s with role %s", user.id, role)
    return user


def authenticate(session: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(session, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


def apply_as_pro(
    session: Session,
    user: User,
    *,
    pro_type: str,
    business_name: str,
    phone: Optional[str] = None,
    license_no: Optional[str] = None,
    website: Optional[str] = None,
    specialties: Iterable[str] = (),
    service_areas: Iterable[str] = (),
) -> User:
    pro_type = pro_type.upper()
    if pro_type not in PRO_TYPES:
        raise ValidationError(f"Unknown pro type: {pro_type}")
    if user.has_role(UserRole.ADMIN.value):
        raise InvalidStateError("Admins cannot apply as pros")
    if user.pro_status == ProStatus.APPROVED.value:
        raise InvalidStateError("You are already an approved pro")
    with atomic(session):
        profile = user.pro_profile
        if profile is None:
            profile = ProProfile(user_id=user.id)
            session.add(profile)
        profile.type = pro_type
        profile.business_name = business_name
        profile.phone = phone
        profile.license_no = license_no
        profile.website = website
        profile.specialties = list(specialties)
        profile.service_areas = list(service_areas)
        profile.verified = False
        user.role = UserRole.PRO.value
        user.pro_status = ProStatus.PENDING.value
        user.profile_complete = True
    logger.info("User %s applied as %s", user.id, pro_type)
    return user
