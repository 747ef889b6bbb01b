"""
Chat session API endpoints
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.middleware.auth import get_current_user
from chatcoach.models.user import User
from chatcoach.schemas.chat import (
    ChatSessionSchema,
    CreateChatSessionRequest,
    ListChatSessionsResponse,
    UpdateChatSessionRequest,
    chat_session_to_schema,
)
from chatcoach.services.chat_sessions import ChatSessionService

router = APIRouter()


def get_chat_session_service(id_factory: IdFactory = Depends(get_id_generator)) -> ChatSessionService:
    return ChatSessionService(id_factory)


@router.get("/sessions", response_model=ListChatSessionsResponse)
def list_chat_sessions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ChatSessionService = Depends(get_chat_session_service)
):
    sessions = service.list_sessions(db, current_user.id)
    return ListChatSessionsResponse(data=[chat_session_to_schema(s) for s in sessions])


@router.post("/sessions", response_model=ChatSessionSchema)
def create_chat_session(
    data: CreateChatSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ChatSessionService = Depends(get_chat_session_service)
):
    """Start a session with a new friend profile"""
    return chat_session_to_schema(service.create_session(db, current_user.id, data.profile))


@router.put("/sessions/{session_id}", response_model=ChatSessionSchema)
def update_chat_session(
    session_id: str,
    data: UpdateChatSessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ChatSessionService = Depends(get_chat_session_service)
):
    chat_session = service.update_session(db, current_user.id, session_id, name=data.name, avatar=data.avatar)
    return chat_session_to_schema(chat_session)


@router.delete("/sessions/{session_id}")
def delete_chat_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: ChatSessionService = Depends(get_chat_session_service)
):
    deleted = service.delete_session(db, current_user.id, session_id)
    return {"deleted_count": deleted}
