"""
Chat message API endpoints
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.deps.llm_client import LLMClient, get_llm_client
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.domain.errors import parse_id
from chatcoach.middleware.auth import get_current_user
from chatcoach.models.user import User
from chatcoach.schemas.message import (
    ConsultRequest,
    ConsultResponse,
    CreateMessagesRequest,
    DeleteMessagesRequest,
    DeleteMessagesResponse,
    FeedbackRequest,
    FeedbackResponse,
    ListMessagesResponse,
    MessagesResponse,
    UpdateMessagesRequest,
    assembled_to_schema,
    message_to_schema,
)
from chatcoach.services import messages as message_service
from chatcoach.services.consult import ConsultService
from chatcoach.services.message_assembly import MessageQuery, list_messages

router = APIRouter()
logger = logging.getLogger(__name__)


def _parse_ids(values: Optional[List[str]], field: str) -> List[int]:
    return [parse_id(value, field) for value in values or []]


@router.get("/sessions/{session_id}/messages", response_model=ListMessagesResponse)
def list_session_messages(
    session_id: str,
    request: Request,
    msg_type: str = "",
    roles: Optional[List[str]] = Query(None),
    ids: Optional[List[str]] = Query(None),
    parent_ids: Optional[List[str]] = Query(None),
    page_token: str = "",
    page_size: int = 0,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    One page of a session's messages, oldest first

    Translations are attached to the message they translate and superseded
    coach replies are left out. A brand-new session returns the configured
    guide messages.
    """
    filters = MessageQuery(
        msg_type=msg_type,
        roles=roles or [],
        ids=_parse_ids(ids, "ids"),
        parent_ids=_parse_ids(parent_ids, "parent_ids"),
    )
    items, next_page_token = list_messages(
        db,
        current_user.id,
        session_id,
        filters=filters,
        page_token=page_token,
        page_size=page_size,
        cond=AppConfigCond.from_headers(request.headers),
    )
    return ListMessagesResponse(
        messages=[assembled_to_schema(item) for item in items],
        next_page_token=next_page_token
    )


@router.post("/messages", response_model=MessagesResponse)
def create_messages(
    data: CreateMessagesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    id_factory: IdFactory = Depends(get_id_generator)
):
    created = message_service.create_messages(db, current_user.id, data.messages, id_factory)
    return MessagesResponse(messages=[message_to_schema(msg) for msg in created])


@router.put("/messages", response_model=MessagesResponse)
def update_messages(
    data: UpdateMessagesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    updated = message_service.update_messages(db, current_user.id, data.messages)
    return MessagesResponse(messages=[message_to_schema(msg) for msg in updated])


@router.post("/messages/delete", response_model=DeleteMessagesResponse)
def delete_messages(
    data: DeleteMessagesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    deleted = message_service.delete_messages(db, current_user.id, data.ids)
    return DeleteMessagesResponse(deleted_count=deleted)


@router.post("/messages/feedback", response_model=FeedbackResponse)
def message_feedback(
    data: FeedbackRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    message_service.feedback(db, current_user.id, data.session_id, data.message_id, data.attitude)
    return FeedbackResponse(success=True)


@router.post("/consult", response_model=ConsultResponse)
def consult(
    data: ConsultRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
    id_factory: IdFactory = Depends(get_id_generator)
):
    """
    Ask the AI coach about a session, or regenerate its latest reply

    Args:
        data: Session id with either a question or the reply id to regenerate

    Returns:
        The question turn and the coach's reply
    """
    service = ConsultService(llm, id_factory)
    question, reply = service.send_consult_message(
        db,
        current_user.id,
        data.session_id,
        content=data.content,
        target_id=data.target_id,
        cond=AppConfigCond.from_headers(request.headers),
    )
    logger.info(f"Consult in session {data.session_id}: reply {reply.id} ({len(reply.content)} chars)")
    return ConsultResponse(consult=message_to_schema(question), reply=message_to_schema(reply))
