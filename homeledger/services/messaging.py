from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session, joinedload

from ..core.errors import ForbiddenError, InvalidStateError, ValidationError
from ..db import atomic
from ..models.enums import ConnectionStatus, ThreadStatus
from ..models.models import Connection, Message, MessageRead, Thread, User, utcnow
from .access import require_connection_party

logger = logging.getLogger(__name__)


@dataclass
class ConversationSummary:
    connection: Connection
    last_message: Optional[Message]
    unread_count: int


def _require_party(session: Session, user: User, connection_id: int) -> Connection:
    connection = require_connection_party(session, user, connection_id)
    if user.id not in (connection.homeowner_id, connection.contractor_id):
        raise ForbiddenError("You are not part of this connection")
    return connection


def _active_thread(session: Session, connection: Connection, subject: Optional[str]) -> Thread:
    thread = (
        session.query(Thread)
        .filter(Thread.connection_id == connection.id, Thread.status == ThreadStatus.ACTIVE.value)
        .order_by(Thread.created_at.desc())
        .first()
    )
    if thread is None:
        thread = Thread(connection_id=connection.id, home_id=connection.home_id, subject=subject)
        session.add(thread)
        session.flush()
    return thread


def send_message(
    session: Session,
    sender: User,
    connection_id: int,
    content: str,
    subject: Optional[str] = None,
) -> Message:
    connection = _require_party(session, sender, connection_id)
    if connection.status != ConnectionStatus.ACTIVE.value:
        raise InvalidStateError("Messages can only be sent on an active connection")
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required")
    with atomic(session):
        thread = _active_thread(session, connection, subject)
        message = Message(connection_id=connection.id, thread_id=thread.id, sender_id=sender.id, content=content)
        session.add(message)
        session.flush()
        session.add(MessageRead(message_id=message.id, user_id=sender.id))
    logger.debug("Message %s sent on connection %s", message.id, connection.id)
    return message


def _unread_query(session: Session, user: User):
    return (
        session.query(Message)
        .outerjoin(MessageRead, and_(MessageRead.message_id == Message.id, MessageRead.user_id == user.id))
        .filter(Message.sender_id != user.id, MessageRead.id.is_(None))
    )


def get_conversation(session: Session, user: User, connection_id: int) -> Tuple[Connection, List[Message]]:
    """Return the messages of a connection and mark the other party's messages read."""
    connection = _require_party(session, user, connection_id)
    unread = _unread_query(session, user).filter(Message.connection_id == connection.id).all()
    if unread:
        with atomic(session):
            now = utcnow()
            for message in unread:
                session.add(MessageRead(message_id=message.id, user_id=user.id, read_at=now))
    messages = (
        session.query(Message)
        .options(joinedload(Message.attachments))
        .filter(Message.connection_id == connection.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )
    return connection, messages


def list_conversations(session: Session, user: User) -> Tuple[List[ConversationSummary], int]:
    connections = (
        session.query(Connection)
        .options(joinedload(Connection.home), joinedload(Connection.homeowner), joinedload(Connection.contractor))
        .filter((Connection.homeowner_id == user.id) | (Connection.contractor_id == user.id))
        .all()
    )
    if not connections:
        return [], 0
    ids = [connection.id for connection in connections]
    unread_counts = dict(
        _unread_query(session, user)
        .filter(Message.connection_id.in_(ids))
        .with_entities(Message.connection_id, func.count(Message.id))
        .group_by(Message.connection_id)
        .all()
    )
    summaries: List[ConversationSummary] = []
    for connection in connections:
        last_message = (
            session.query(Message)
            .filter(Message.connection_id == connection.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .first()
        )
        summaries.append(ConversationSummary(connection, last_message, unread_counts.get(connection.id, 0)))
    summaries.sort(
        key=lambda s: s.last_message.created_at if s.last_message else s.connection.created_at,
        reverse=True,
    )
    return summaries, sum(s.unread_count for s in summaries)
