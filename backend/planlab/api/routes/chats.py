"""Chat (case session) routes."""

from fastapi import APIRouter, status
from sqlalchemy import select

from planlab.api.deps import ChatUser, CurrentUser, DbSession
from planlab.db.models import Chat
from planlab.schemas.base import Envelope
from planlab.schemas.chats import ChatCreate, ChatRead

router = APIRouter(prefix="/chats", tags=["chats"])


@router.get("", response_model=Envelope[list[ChatRead]])
async def list_chats(current_user: CurrentUser, db: DbSession) -> Envelope[list[ChatRead]]:
    """List the caller's chats, most recently updated first."""
    result = await db.execute(
        select(Chat)
        .where(Chat.user_id == current_user.user_id)
        .order_by(Chat.updated_at.desc(), Chat.created_at.desc())
    )
    return Envelope[list[ChatRead]](data=[ChatRead.model_validate(c) for c in result.scalars()])


@router.post("", response_model=Envelope[ChatRead], status_code=status.HTTP_201_CREATED)
async def create_chat(data: ChatCreate, current_user: ChatUser, db: DbSession) -> Envelope[ChatRead]:
    """Start a new case session. Students must pass the learner gate."""
    chat = Chat(user_id=current_user.user_id)
    if data.title:
        chat.title = data.title
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    return Envelope[ChatRead](data=ChatRead.model_validate(chat))
