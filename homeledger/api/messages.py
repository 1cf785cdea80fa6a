from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_settings
from ..auth.jwt import get_current_user
from ..config import Settings
from ..models.models import Message, User
from ..schemas.schemas import ConversationList, ConversationRead, ConversationSummaryRead, MessageCreate
from ..schemas.schemas import MessageRead as MessageOut
from ..services import messaging

router = APIRouter()


@router.get("/", response_model=ConversationList)
def list_conversations(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
) -> ConversationList:
    summaries, total_unread = messaging.list_conversations(db, current_user)
    return ConversationList(
        conversations=[
            ConversationSummaryRead.model_validate(
                {"connection": s.connection, "last_message": s.last_message, "unread_count": s.unread_count},
                from_attributes=True,
            )
            for s in summaries
        ],
        total_unread=total_unread,
        poll_interval_seconds=settings.conversation_poll_seconds,
    )


@router.get("/{connection_id}", response_model=ConversationRead)
def get_conversation(
    connection_id: int,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    current_user: User = Depends(get_current_user),
) -> ConversationRead:
    connection, messages = messaging.get_conversation(db, current_user, connection_id)
    return ConversationRead.model_validate(
        {"connection": connection, "messages": messages, "poll_interval_seconds": settings.conversation_poll_seconds},
        from_attributes=True,
    )


@router.post("/{connection_id}", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(
    connection_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Message:
    return messaging.send_message(db, current_user, connection_id, payload.content, subject=payload.subject)
