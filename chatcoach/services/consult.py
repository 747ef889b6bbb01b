"""
AI consultation replies
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.deps.exceptions import LLMClientError
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.deps.llm_client import LLMClient
from chatcoach.deps.utils import format_messages_for_log
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.domain.errors import InternalError, ParamInvalidError, ParamMissingError, parse_id
from chatcoach.models.chat_history import ChatMessage, MessageRole, MessageType, AI_REPLY_TAG
from chatcoach.services.message_assembly import (
    build_chat_context,
    get_owned_session,
    load_conversation_profiles,
    load_session_history,
    resolve_system_prompt,
)

logger = logging.getLogger(__name__)


class ConsultService:
    """
    Generates coach replies in a session's consultation thread.

    A reply is always a CONSULT message from the AI, parented to the user's
    question. Regenerating a reply adds a newer sibling; the older reply is
    kept and hidden when listing.
    """

    def __init__(self, llm: LLMClient, id_factory: Optional[IdFactory] = None):
        self.llm = llm
        self.id_factory = id_factory or get_id_generator()

    def _new_message(self, user_id: int, session_id: int, parent_id: int, role: str, content: str, tags) -> ChatMessage:
        return ChatMessage(
            id=self.id_factory(),
            user_id=user_id,
            session_id=session_id,
            parent_id=parent_id,
            profile_id=0,
            role=role,
            msg_type=MessageType.CONSULT.value,
            content=content,
            tags=list(tags),
            msg_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def _find_regenerate_parent(history, target_id: int) -> ChatMessage:
        last_reply = None
        for msg in reversed(history):
            if msg.msg_type == MessageType.CONSULT.value and msg.role == MessageRole.AI.value:
                last_reply = msg
                break
        if last_reply is None or last_reply.id != target_id:
            raise ParamInvalidError("target_id must be the last AI reply")

        parent = next((msg for msg in history if last_reply.parent_id and msg.id == last_reply.parent_id), None)
        if parent is None:
            raise ParamInvalidError("target_id must be the last AI reply")
        return parent

    def send_consult_message(
        self,
        db: Session,
        user_id: int,
        session_id,
        content: str = "",
        target_id=None,
        cond: Optional[AppConfigCond] = None,
    ) -> Tuple[ChatMessage, ChatMessage]:
        """
        Ask the coach a question, or regenerate the latest reply.

        Args:
            db: Database session
            user_id: Owner of the session
            session_id: Session to consult in
            content: The user's question; required unless regenerating
            target_id: Id of the latest AI reply to regenerate, empty for a new question
            cond: Client version and environment for prompt config lookups

        Returns:
            Tuple of (user question, AI reply). When regenerating, the
            question is the existing one the reply is parented to.

        Raises:
            ParamMissingError: If a new question has no content
            ParamInvalidError: If ids are malformed or the target is not the latest AI reply
            NotFoundError: If the session is not the user's
            InternalError: If the completion call or the write fails
        """
        session_id = parse_id(session_id, "session_id")
        target_id = parse_id(target_id, "target_id", required=False)

        chat_session = get_owned_session(db, user_id, session_id)
        user_profile, friend_profile = load_conversation_profiles(db, user_id, chat_session)
        history = load_session_history(db, user_id, session_id)

        if target_id:
            question = self._find_regenerate_parent(history, target_id)
            context_messages = [msg for msg in history if msg.id < target_id]
        else:
            if not content or not content.strip():
                raise ParamMissingError("content is required")
            question = self._new_message(user_id, session_id, 0, MessageRole.USER.value, content, [])
            context_messages = history + [question]

        system_prompt = resolve_system_prompt(db, friend_profile, cond)
        transcript = build_chat_context(context_messages, user_profile, friend_profile, system_prompt)

        try:
            reply_content = self.llm.chat(transcript)
        except LLMClientError as e:
            logger.error(f"Consult completion failed for session {session_id}: {e}")
            raise InternalError() from e

        reply = self._new_message(user_id, session_id, question.id, MessageRole.AI.value, reply_content, [AI_REPLY_TAG])
        to_create = [reply] if target_id else [question, reply]
        try:
            db.add_all(to_create)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save consult messages for session {session_id}: {e}")
            raise InternalError() from e

        logger.debug(f"Consult transcript:\n{format_messages_for_log(transcript)}\n[reply]: {reply_content}")
        logger.info(
            f"Consult reply {reply.id} for question {question.id} in session {session_id}"
            f"{' (regenerated)' if target_id else ''}"
        )
        return question, reply
