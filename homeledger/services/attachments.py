from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Type

from sqlalchemy.orm import Session

from ..core.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..db import atomic
from ..models.enums import ConnectionStatus
from ..models.models import Attachment, Connection, Message, Reminder, ServiceRecord, ServiceRequest, User, Warranty
from .access import active_connection, require_connection_party, require_home_access
from .storage import (
    PresignedUpload,
    StorageService,
    build_message_key,
    build_record_key,
    build_reminder_key,
    build_service_request_key,
    build_warranty_key,
    entity_prefix,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentKind:
    path: str
    model: Type
    fk: str
    key_builder: Callable[[int, int, str], str]
    has_photos: bool = True


KINDS: Dict[str, AttachmentKind] = {
    "service-requests": AttachmentKind("service-requests", ServiceRequest, "service_request_id", build_service_request_key),
    "warranties": AttachmentKind("warranties", Warranty, "warranty_id", build_warranty_key),
    "reminders": AttachmentKind("reminders", Reminder, "reminder_id", build_reminder_key),
    "records": AttachmentKind("records", ServiceRecord, "service_record_id", build_record_key),
    "messages": AttachmentKind("messages", Message, "message_id", build_message_key, has_photos=False),
}


@dataclass
class PresignRequest:
    home_id: int
    filename: str
    content_type: str
    size: int
    record_id: Optional[int] = None
    warranty_id: Optional[int] = None
    reminder_id: Optional[int] = None
    service_request_id: Optional[int] = None
    connection_id: Optional[int] = None

    def target(self):
        """Resolve which entity the upload belongs to; first match wins."""
        for kind, entity_id in (
            ("service-requests", self.service_request_id),
            ("warranties", self.warranty_id),
            ("reminders", self.reminder_id),
            ("records", self.record_id),
            ("messages", self.connection_id),
        ):
            if entity_id:
                return KINDS[kind], entity_id
        raise ValidationError("Missing entity identifier: recordId, warrantyId, reminderId, serviceRequestId, or connectionId")


@dataclass
class CommittedFile:
    key: str
    filename: str
    mime_type: Optional[str] = None
    size: Optional[int] = None


def _authorize_message_presign(session: Session, user: User, body: PresignRequest) -> None:
    connection = require_connection_party(session, user, body.connection_id)
    if connection.home_id != body.home_id:
        raise ForbiddenError("Conversation not found for this property")
    if connection.status != ConnectionStatus.ACTIVE.value:
        raise InvalidStateError("This conversation is archived")


def _authorize_presign(session: Session, user: User, body: PresignRequest) -> None:
    if user.has_role("PRO"):
        if active_connection(session, body.home_id, user.id) is None:
            raise ForbiddenError("You don't have access to this property")
        if body.record_id:
            record = session.get(ServiceRecord, body.record_id)
            if not record or record.home_id != body.home_id or record.contractor_id != user.id:
                raise ForbiddenError("Work record not found or access denied")
        return

    require_home_access(session, user, body.home_id)
    if body.service_request_id:
        service_request = session.get(ServiceRequest, body.service_request_id)
        if (
            not service_request
            or service_request.home_id != body.home_id
            or service_request.homeowner_id != user.id
        ):
            raise ForbiddenError("Job request not found or access denied")


def presign_upload(session: Session, user: User, storage: StorageService, body: PresignRequest) -> PresignedUpload:
    if not body.filename or not body.filename.strip():
        raise ValidationError("Missing required fields: homeId, filename, size")
    if not body.content_type:
        raise ValidationError("Missing contentType")
    kind, entity_id = body.target()
    if kind.model is Message:
        _authorize_message_presign(session, user, body)
    else:
        _authorize_presign(session, user, body)
    key = kind.key_builder(body.home_id, entity_id, body.filename)
    upload = storage.presign_put(key, body.content_type)
    logger.info("Presigned upload for %s %s on home %s", kind.path, entity_id, body.home_id)
    return upload


def _entity_scope(session: Session, kind: AttachmentKind, entity) -> Tuple[int, int]:
    """Home id and key-prefix id that an entity's uploads are stored under."""
    if kind.model is Message:
        connection = session.get(Connection, entity.connection_id)
        return connection.home_id, connection.id
    return entity.home_id, entity.id


def _authorize_commit(session: Session, user: User, kind: AttachmentKind, entity) -> None:
    if kind.model is Message:
        require_connection_party(session, user, entity.connection_id)
        if entity.sender_id != user.id:
            raise ForbiddenError("Only the sender can attach files to a message")
        return
    home = require_home_access(session, user, entity.home_id)
    if user.has_role("ADMIN") or home.owner_id == user.id:
        return
    if kind.model is ServiceRecord and entity.contractor_id == user.id:
        return
    if kind.model is Warranty and entity.created_by == user.id:
        return
    raise ForbiddenError("You cannot attach files to this item")


def commit_attachments(
    session: Session,
    user: User,
    storage: StorageService,
    home_id: int,
    kind_path: str,
    entity_id: int,
    files: Sequence[CommittedFile],
) -> List[Attachment]:
    """Record uploaded objects against their entity and append their URLs to its photos."""
    kind = KINDS.get(kind_path)
    if kind is None:
        raise NotFoundError("Unknown attachment target")
    entity = session.get(kind.model, entity_id)
    if not entity:
        raise NotFoundError("Item not found")
    entity_home_id, scope_id = _entity_scope(session, kind, entity)
    if entity_home_id != home_id:
        raise NotFoundError("Item not found")
    _authorize_commit(session, user, kind, entity)
    if not files:
        raise ValidationError("No files to attach")

    prefix = entity_prefix(home_id, kind.path, scope_id)
    for item in files:
        if not item.key.startswith(prefix):
            raise ValidationError(f"Key {item.key} does not belong to this item")

    created: List[Attachment] = []
    with atomic(session):
        urls = []
        for item in files:
            url = storage.public_url(item.key)
            attachment = Attachment(
                home_id=home_id,
                key=item.key,
                url=url,
                filename=item.filename,
                mime_type=item.mime_type,
                size=item.size,
                uploaded_by=user.id,
                **{kind.fk: entity_id},
            )
            session.add(attachment)
            created.append(attachment)
            urls.append(url)
        if kind.has_photos:
            entity.photos = list(entity.photos or []) + urls
        session.flush()
    logger.info("Committed %d attachments to %s %s", len(created), kind.path, entity_id)
    return created


def list_attachments(session: Session, home_id: int, kind_path: str, entity_id: int) -> List[Attachment]:
    kind = KINDS.get(kind_path)
    if kind is None:
        raise NotFoundError("Unknown attachment target")
    return (
        session.query(Attachment)
        .filter(Attachment.home_id == home_id, getattr(Attachment, kind.fk) == entity_id)
        .order_by(Attachment.created_at.asc())
        .all()
    )
