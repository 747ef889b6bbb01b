"""
Message translation: what a message "really means" to the other side
"""

import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatcoach.deps.exceptions import LLMClientError
from chatcoach.deps.idgen import IdFactory, from_time, get_id_generator, to_time
from chatcoach.deps.llm_client import LLMClient
from chatcoach.domain.appconfig import AppConfigCond, load_app_config_by_key_version
from chatcoach.domain.errors import InternalError, NotFoundError, ParamInvalidError, ParamMissingError, parse_id
from chatcoach.models.chat_history import ChatMessage, MessageRole, MessageType
from chatcoach.services.message_assembly import (
    format_profile_block,
    friend_display_name,
    get_owned_session,
    load_conversation_profiles,
    render_history_line,
    split_translations,
)

logger = logging.getLogger(__name__)

TO_FRIEND = "to_friend"
TO_USER = "to_user"
PROMPT_KEY_PREFIX = "prompt:translate:"

# Chat log around the target included in the prompt
CONTEXT_WINDOW = timedelta(hours=24)

TEXT_PROMPT_KEY = "prompt:translate:text"
TRANSLATE_TARGETS = {
    "MALE": "a man",
    "FEMALE": "a woman",
}
DEFAULT_TEXT_PROMPT = (
    "You help people read between the lines of what the other person says. "
    "Keep the translation short.\n\n"
    "Conversation so far:\n{{chat_context}}\n\n"
    "Explain this line said by {{from}} so that {{to}} understands what is really meant:\n"
    "{{src_message}}"
)


def translation_direction(role: str) -> str:
    """Direction for a message by its author; the user's own words go to the friend"""
    if role in (MessageRole.SELF.value, MessageRole.USER.value):
        return TO_FRIEND
    if role == MessageRole.FRIEND.value:
        return TO_USER
    raise ParamInvalidError(f"unsupported message role: {role}")


def render_prompt(template: str, user_profile: str, friend_profile: str, chat_context: str, src_message: str) -> str:
    return (
        template
        .replace("{{user_profile}}", user_profile)
        .replace("{{friend_profile}}", friend_profile)
        .replace("{{chat_context}}", chat_context)
        .replace("{{src_message}}", src_message)
    )


class TranslateService:
    """Asks the model to reinterpret one message and stores the result"""

    def __init__(self, llm: LLMClient, id_factory: Optional[IdFactory] = None):
        self.llm = llm
        self.id_factory = id_factory or get_id_generator()

    def translate_text(
        self,
        db: Session,
        content: str,
        from_target: str,
        to_target: str,
        history: str = "",
        cond: Optional[AppConfigCond] = None,
    ) -> str:
        """
        Translate free text between the two sides; nothing is stored.

        ``from_target`` and ``to_target`` are ``MALE`` or ``FEMALE``. The
        prompt comes from ``prompt:translate:text`` when configured, else the
        built-in one.
        """
        if not content:
            raise ParamMissingError("content is required")
        speaker = TRANSLATE_TARGETS.get(from_target or "")
        listener = TRANSLATE_TARGETS.get(to_target or "")
        if speaker is None or listener is None:
            raise ParamInvalidError(f"from and to must be one of {sorted(TRANSLATE_TARGETS)}")

        template = load_app_config_by_key_version(db, TEXT_PROMPT_KEY, cond or AppConfigCond()) or DEFAULT_TEXT_PROMPT
        prompt = (
            template
            .replace("{{chat_context}}", history or "")
            .replace("{{from}}", speaker)
            .replace("{{to}}", listener)
            .replace("{{src_message}}", content)
        )

        try:
            translated = self.llm.complete(prompt)
        except LLMClientError as e:
            logger.error(f"Text translation {from_target}->{to_target} failed: {e}")
            raise InternalError() from e

        logger.info(f"Translated {len(content)} chars {from_target}->{to_target}")
        return translated

    def _load_chat_context(self, db: Session, user_id: int, target: ChatMessage) -> str:
        created = to_time(target.id)
        window = db.query(ChatMessage).filter(
            ChatMessage.session_id == target.session_id,
            ChatMessage.user_id == user_id,
            ChatMessage.msg_type.in_([MessageType.HISTORY.value, MessageType.TRANSLATE.value]),
            ChatMessage.id.between(from_time(created - CONTEXT_WINDOW), from_time(created + CONTEXT_WINDOW))
        ).order_by(ChatMessage.id.asc()).all()

        history, translations = split_translations(window)
        lines = []
        for msg in history:
            lines.append(render_history_line(msg))
            if msg.id in translations:
                lines.append(render_history_line(translations[msg.id]))
        return "".join(line + "\n" for line in lines)

    def translate_message(
        self,
        db: Session,
        user_id: int,
        session_id,
        target_message_id,
        cond: Optional[AppConfigCond] = None,
    ) -> Tuple[int, str]:
        """
        Translate a message and attach the result to it.

        Args:
            db: Database session
            user_id: Owner of the session
            session_id: Session containing the message
            target_message_id: Message to translate
            cond: Client version and environment for the prompt lookup

        Returns:
            Tuple of (new TRANSLATE message id, translated text)

        Raises:
            ParamMissingError: If an id is empty
            ParamInvalidError: If an id is malformed or the message role cannot be translated
            NotFoundError: If the message or session is not the user's, or no prompt is configured
            InternalError: If the completion call or the write fails
        """
        if not session_id or not target_message_id:
            raise ParamMissingError("chat_session_id and target_message_id are required")
        session_id = parse_id(session_id, "chat_session_id")
        target_message_id = parse_id(target_message_id, "target_message_id")

        target = db.query(ChatMessage).filter(
            ChatMessage.id == target_message_id,
            ChatMessage.user_id == user_id,
            ChatMessage.session_id == session_id
        ).first()
        if target is None:
            raise NotFoundError("message not found")

        chat_session = get_owned_session(db, user_id, session_id)
        direction = translation_direction(target.role)

        template = load_app_config_by_key_version(db, PROMPT_KEY_PREFIX + direction, cond or AppConfigCond())
        if not template:
            raise NotFoundError(f"translation prompt {PROMPT_KEY_PREFIX + direction} is not configured")

        user_profile, friend_profile = load_conversation_profiles(db, user_id, chat_session)
        prompt = render_prompt(
            template,
            user_profile=format_profile_block(user_profile, "User"),
            friend_profile=format_profile_block(friend_profile, friend_display_name(friend_profile)),
            chat_context=self._load_chat_context(db, user_id, target),
            src_message=render_history_line(target),
        )

        try:
            content = self.llm.complete(prompt)
        except LLMClientError as e:
            logger.error(f"Translation failed for message {target.id}: {e}")
            raise InternalError() from e

        translation = ChatMessage(
            id=self.id_factory(),
            user_id=user_id,
            session_id=target.session_id,
            parent_id=target.id,
            profile_id=0,
            role=MessageRole.AI.value,
            msg_type=MessageType.TRANSLATE.value,
            content=content,
            tags=[direction],
            msg_at=datetime.now(timezone.utc),
        )
        try:
            db.add(translation)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save translation of message {target.id}: {e}")
            raise InternalError() from e

        logger.info(f"Translated message {target.id} {direction} as {translation.id}")
        return translation.id, content
