"""
Message translation API
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from chatcoach.core.database import get_db
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.deps.llm_client import LLMClient, get_llm_client
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.middleware.auth import get_current_user
from chatcoach.models.user import User
from chatcoach.schemas.message import TranslateRequest, TranslateResponse, TranslateTextRequest, TranslateTextResponse
from chatcoach.services.translate import TranslateService

router = APIRouter()


@router.post("/translate", response_model=TranslateResponse)
def translate_message(
    data: TranslateRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client),
    id_factory: IdFactory = Depends(get_id_generator)
):
    """
    Reinterpret one message for the other side of the conversation
    """
    service = TranslateService(llm, id_factory)
    new_id, content = service.translate_message(
        db,
        current_user.id,
        data.chat_session_id,
        data.target_message_id,
        cond=AppConfigCond.from_headers(request.headers),
    )
    return TranslateResponse(new_message_id=str(new_id), content=content)


@router.post("/translate/text", response_model=TranslateTextResponse)
def translate_text(
    data: TranslateTextRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm: LLMClient = Depends(get_llm_client)
):
    """
    Translate a line of free text between a man and a woman; nothing is stored
    """
    content = TranslateService(llm).translate_text(
        db,
        data.content,
        data.from_target,
        data.to_target,
        history=data.history,
        cond=AppConfigCond.from_headers(request.headers),
    )
    return TranslateTextResponse(content=content)
