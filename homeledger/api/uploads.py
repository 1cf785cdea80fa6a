from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_storage
from ..auth.jwt import get_current_user
from ..models.models import Attachment, User
from ..schemas.schemas import AttachmentRead, CommitBody, PresignBody, PresignResponse
from ..services import attachments as attachment_service
from ..services.access import require_home_access
from ..services.storage import StorageService

router = APIRouter()


@router.post("/uploads/presign", response_model=PresignResponse)
def presign_upload(
    payload: PresignBody,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> PresignResponse:
    upload = attachment_service.presign_upload(
        db,
        current_user,
        storage,
        attachment_service.PresignRequest(
            home_id=payload.home_id,
            filename=payload.filename,
            content_type=payload.content_type,
            size=payload.size,
            record_id=payload.record_id,
            warranty_id=payload.warranty_id,
            reminder_id=payload.reminder_id,
            service_request_id=payload.service_request_id,
            connection_id=payload.connection_id,
        ),
    )
    return PresignResponse(key=upload.key, url=upload.url, publicUrl=upload.public_url)


@router.post(
    "/homes/{home_id}/{kind}/{entity_id}/attachments",
    response_model=List[AttachmentRead],
    status_code=status.HTTP_201_CREATED,
)
def commit_attachments(
    home_id: int,
    kind: str,
    entity_id: int,
    payload: CommitBody,
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> List[Attachment]:
    files = [
        attachment_service.CommittedFile(key=f.key, filename=f.filename, mime_type=f.mime_type, size=f.size)
        for f in payload.files
    ]
    return attachment_service.commit_attachments(db, current_user, storage, home_id, kind, entity_id, files)


@router.get("/homes/{home_id}/{kind}/{entity_id}/attachments", response_model=List[AttachmentRead])
def list_attachments(
    home_id: int,
    kind: str,
    entity_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> List[Attachment]:
    require_home_access(db, current_user, home_id)
    return attachment_service.list_attachments(db, home_id, kind, entity_id)
