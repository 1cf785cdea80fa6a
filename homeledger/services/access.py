from __future__ import annotations

import re
from typing import Optional

from sqlalchemy.orm import Session

from ..core.errors import ForbiddenError, NotFoundError
from ..models.enums import ConnectionStatus
from ..models.models import Connection, Home, User

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_address(address: str, city: str, state: str, zip_code: str) -> str:
    """Collapse an address into the comparison key stored on Home."""
    return _NON_ALNUM.sub("", f"{address}{city}{state}{zip_code}".lower())


def get_home_or_404(session: Session, home_id: int) -> Home:
    home = session.get(Home, home_id)
    if not home:
        raise NotFoundError("Home not found")
    return home


def active_connection(session: Session, home_id: int, contractor_id: int) -> Optional[Connection]:
    return (
        session.query(Connection)
        .filter(
            Connection.home_id == home_id,
            Connection.contractor_id == contractor_id,
            Connection.status == ConnectionStatus.ACTIVE.value,
        )
        .first()
    )


def can_access_home(session: Session, user: User, home: Home) -> bool:
    if user.has_role("ADMIN") or home.owner_id == user.id:
        return True
    if user.has_role("PRO"):
        return active_connection(session, home.id, user.id) is not None
    return False


def require_home_access(session: Session, user: User, home_id: int) -> Home:
    home = get_home_or_404(session, home_id)
    if not can_access_home(session, user, home):
        raise ForbiddenError("You do not have access to this home")
    return home


def require_home_owner(session: Session, user: User, home_id: int) -> Home:
    home = get_home_or_404(session, home_id)
    if home.owner_id != user.id:
        raise ForbiddenError("Only the homeowner can perform this action")
    return home


def require_contractor_connection(session: Session, user: User, home_id: int) -> Connection:
    get_home_or_404(session, home_id)
    connection = active_connection(session, home_id, user.id)
    if connection is None:
        raise ForbiddenError("No active connection to this home")
    return connection


def require_connection_party(session: Session, user: User, connection_id: int) -> Connection:
    connection = session.get(Connection, connection_id)
    if not connection:
        raise NotFoundError("Connection not found")
    if user.id not in (connection.homeowner_id, connection.contractor_id) and not user.has_role("ADMIN"):
        raise ForbiddenError("You are not part of this connection")
    return connection
