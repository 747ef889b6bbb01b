"""
Message assembly: the read-side view of a session's message log

Listing merges raw chat history, threaded AI consultations and attached
translations into one chronological page. The same history, folded into a
role-tagged transcript, is the prompt context for AI calls.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from chatcoach.core.config import settings
from chatcoach.domain.appconfig import AppConfigCond, load_app_config_by_key_version
from chatcoach.domain.errors import NotFoundError, ParamInvalidError, parse_id
from chatcoach.domain.remapper import DemoMessage
from chatcoach.models.chat_history import (
    ChatMessage,
    ChatSession,
    MessageRole,
    MessageType,
    DISABLE_INTERACT_TAG,
)
from chatcoach.models.user import Profile, User

logger = logging.getLogger(__name__)

GUIDE_MESSAGES_CONFIG_KEY = "guide_msg:on_new_chat"
_GUIDE_ROLES = {role.value for role in MessageRole}
_GUIDE_TYPES = {msg_type.value for msg_type in MessageType}
DEFAULT_CONSULT_PROMPT_CONFIG_KEY = "prompt:consult:default"

DEFAULT_SYSTEM_PROMPT = (
    "You are a thoughtful relationship and communication coach. "
    "Based on the conversation history, help the user understand what the other person means "
    "and suggest replies that are warm, natural and emotionally intelligent. "
    "Keep your advice short and easy to act on."
)

PROFILE_BLOCK_HEADER = "About the two people in this conversation:\n"
CHAT_LOG_HEADER = "Chat log between the two of them:\n"

ROLE_LABELS = {
    MessageRole.SELF.value: "Me",
    MessageRole.FRIEND.value: "Friend",
    MessageRole.AI.value: "AI",
    MessageRole.USER.value: "Me",
}
INTERPRETATION_TAG = "interpretation"


@dataclass
class MessageQuery:
    """Optional filters for listing a session's messages"""
    msg_type: str = ""
    roles: List[str] = field(default_factory=list)
    ids: List[int] = field(default_factory=list)
    parent_ids: List[int] = field(default_factory=list)


@dataclass
class AssembledMessage:
    """A listed message with the content of its newest translation, if any"""
    message: ChatMessage
    translate_content: Optional[str] = None


def get_owned_session(db: Session, user_id: int, session_id: int) -> ChatSession:
    chat_session = db.query(ChatSession).filter(
        ChatSession.id == session_id,
        ChatSession.user_id == user_id
    ).first()
    if chat_session is None:
        raise NotFoundError("chat session not found")
    return chat_session


def merge_messages(messages: List[ChatMessage]) -> List[AssembledMessage]:
    """
    Fold translations into their source messages and drop superseded replies.

    Args:
        messages: Messages in ascending id order

    Returns:
        Surviving messages in the same order. TRANSLATE messages never
        survive; a threaded CONSULT survives only if it is the newest one
        under its parent.
    """
    newest_translation: Dict[int, ChatMessage] = {}
    newest_consult: Dict[int, int] = {}

    for msg in messages:
        if not msg.parent_id:
            continue
        if msg.msg_type == MessageType.TRANSLATE.value:
            current = newest_translation.get(msg.parent_id)
            if current is None or msg.id > current.id:
                newest_translation[msg.parent_id] = msg
        elif msg.msg_type == MessageType.CONSULT.value:
            if msg.id > newest_consult.get(msg.parent_id, 0):
                newest_consult[msg.parent_id] = msg.id

    merged = []
    for msg in messages:
        if msg.msg_type == MessageType.TRANSLATE.value:
            continue
        if msg.msg_type == MessageType.CONSULT.value and msg.parent_id:
            if newest_consult.get(msg.parent_id) != msg.id:
                continue
        translation = newest_translation.get(msg.id)
        merged.append(AssembledMessage(
            message=msg,
            translate_content=translation.content if translation is not None else None,
        ))
    return merged


def load_guide_messages(db: Session, user_id: int, session_id: int, cond: AppConfigCond) -> List[ChatMessage]:
    """
    Guide messages shown in a session that has no messages yet.

    Built from the JSON array stored under ``guide_msg:on_new_chat`` and
    returned newest first, like a page fetched from the store. The messages
    are never added to the database session.
    """
    raw = load_app_config_by_key_version(db, GUIDE_MESSAGES_CONFIG_KEY, cond)
    if not raw:
        return []
    try:
        skeletons = json.loads(raw)
    except ValueError as e:
        logger.error(f"Invalid guide messages config: {e}")
        return []
    if not isinstance(skeletons, list):
        logger.error("Guide messages config must be a JSON array")
        return []

    now = datetime.now(timezone.utc)
    guide = []
    for data in reversed(skeletons):
        if not isinstance(data, dict):
            continue
        try:
            skeleton = DemoMessage.from_dict(data)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Skipping malformed guide message {data!r}: {e}")
            continue
        if skeleton.role not in _GUIDE_ROLES or skeleton.msg_type not in _GUIDE_TYPES \
                or not isinstance(skeleton.content, str):
            logger.error(f"Skipping guide message with invalid role, type or content: {data!r}")
            continue
        guide.append(ChatMessage(
            id=skeleton.id,
            user_id=user_id,
            session_id=session_id,
            parent_id=skeleton.parent_id,
            profile_id=skeleton.profile_id,
            role=skeleton.role,
            msg_type=skeleton.msg_type,
            content=skeleton.content,
            tags=skeleton.tags + [DISABLE_INTERACT_TAG],
            msg_at=now,
        ))
    return guide


def _parse_page_token(page_token: Optional[str]) -> int:
    if not page_token:
        return 0
    try:
        return int(page_token)
    except (TypeError, ValueError):
        raise ParamInvalidError("page_token is invalid")


def list_messages(
    db: Session,
    user_id: int,
    session_id,
    filters: Optional[MessageQuery] = None,
    page_token: Optional[str] = None,
    page_size: int = 0,
    cond: Optional[AppConfigCond] = None,
) -> Tuple[List[AssembledMessage], str]:
    """
    One page of a session's messages, oldest first.

    Pages walk backwards by id: ``page_token`` is the smallest id already
    returned. A next token is returned only when the page came back full.

    Args:
        db: Database session
        user_id: Owner of the session
        session_id: Session to read, as string or int
        filters: Optional message type, role, id and parent id filters
        page_token: Smallest id of the previous page, empty for the newest page
        page_size: Rows per page, the configured default when not positive
        cond: Client version and environment for the guide message lookup

    Returns:
        Tuple of (merged messages, next page token or empty string)

    Raises:
        ParamMissingError: If the session id is empty
        ParamInvalidError: If the session id or page token is malformed
        NotFoundError: If the session does not exist or belongs to someone else
    """
    session_id = parse_id(session_id, "session_id")
    get_owned_session(db, user_id, session_id)
    filters = filters or MessageQuery()
    if page_size <= 0:
        page_size = settings.message_page_size_default

    query = db.query(ChatMessage).filter(
        ChatMessage.user_id == user_id,
        ChatMessage.session_id == session_id
    )
    if filters.msg_type:
        query = query.filter(ChatMessage.msg_type == filters.msg_type)
    if filters.roles:
        query = query.filter(ChatMessage.role.in_(filters.roles))
    if filters.ids:
        query = query.filter(ChatMessage.id.in_(filters.ids))
    if filters.parent_ids:
        query = query.filter(ChatMessage.parent_id.in_(filters.parent_ids))

    last_id = _parse_page_token(page_token)
    if last_id > 0:
        query = query.filter(ChatMessage.id < last_id)

    rows = query.order_by(ChatMessage.id.desc()).limit(page_size).all()

    synthesized = False
    if not rows:
        rows = load_guide_messages(db, user_id, session_id, cond or AppConfigCond())
        synthesized = True

    rows.reverse()

    next_page_token = ""
    if not synthesized and len(rows) == page_size:
        next_page_token = str(rows[0].id)

    return merge_messages(rows), next_page_token


def load_session_history(db: Session, user_id: int, session_id: int) -> List[ChatMessage]:
    """Every message of a session in ascending id order"""
    return db.query(ChatMessage).filter(
        ChatMessage.session_id == session_id,
        ChatMessage.user_id == user_id
    ).order_by(ChatMessage.id.asc()).all()


def load_conversation_profiles(
    db: Session, user_id: int, chat_session: ChatSession
) -> Tuple[Optional[Profile], Optional[Profile]]:
    """The user's own profile and the session's friend profile; either may be missing"""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("user not found")

    user_profile = db.query(Profile).filter(
        Profile.id == user.profile_id,
        Profile.user_id == user_id
    ).first()
    if user_profile is None:
        logger.warning(f"Profile not found for user {user_id}")

    friend_profile = None
    if chat_session.profile_id:
        friend_profile = db.query(Profile).filter(Profile.id == chat_session.profile_id).first()
        if friend_profile is None:
            logger.warning(f"Friend profile {chat_session.profile_id} not found for session {chat_session.id}")
    return user_profile, friend_profile


def render_history_line(msg: ChatMessage) -> str:
    """``<role>:<content>``, with translations wrapped in an interpretation tag"""
    if msg.msg_type == MessageType.TRANSLATE.value:
        return f"<{INTERPRETATION_TAG}>{msg.content}</{INTERPRETATION_TAG}>"
    return f"{ROLE_LABELS.get(msg.role, msg.role)}:{msg.content}"


def format_profile_block(profile: Optional[Profile], who: str) -> str:
    """Titled property lines of a profile, or an empty string when it has none"""
    if profile is None:
        return ""
    text = profile.format_property_text()
    if not text:
        return ""
    return f"\n**{who} profile**\n{text}\n"


def friend_display_name(friend_profile: Optional[Profile]) -> str:
    if friend_profile is not None and friend_profile.name:
        return friend_profile.name
    return "The other person's"


def split_translations(messages: List[ChatMessage]) -> Tuple[List[ChatMessage], Dict[int, ChatMessage]]:
    """Separate translations out, keeping only the newest per source message"""
    translations: Dict[int, ChatMessage] = {}
    others = []
    for msg in messages:
        if msg.msg_type == MessageType.TRANSLATE.value:
            current = translations.get(msg.parent_id)
            if current is None or msg.id > current.id:
                translations[msg.parent_id] = msg
        else:
            others.append(msg)
    return others, translations


def resolve_system_prompt(db: Session, friend_profile: Optional[Profile], cond: Optional[AppConfigCond] = None) -> str:
    """Friend persona prompt, else the configured default, else the built-in one"""
    if friend_profile is not None and friend_profile.prompt:
        return friend_profile.prompt
    configured = load_app_config_by_key_version(db, DEFAULT_CONSULT_PROMPT_CONFIG_KEY, cond or AppConfigCond())
    if configured:
        return configured
    return DEFAULT_SYSTEM_PROMPT


def build_chat_context(
    messages: List[ChatMessage],
    user_profile: Optional[Profile],
    friend_profile: Optional[Profile],
    system_prompt: str,
) -> List[Dict[str, str]]:
    """
    Fold a session's history into a chat completion transcript.

    Consecutive HISTORY messages become one user turn headed as a chat log,
    each followed by its newest translation. Every CONSULT message is its
    own turn: AI replies as assistant, everything else as user.

    Args:
        messages: Session history in ascending id order
        user_profile: The user's own profile
        friend_profile: The friend the session is with
        system_prompt: Instruction for the system turn

    Returns:
        List of ``{"role", "content"}`` dictionaries
    """
    history, translations = split_translations(messages)

    transcript = [{"role": "system", "content": system_prompt}]

    profile_block = format_profile_block(user_profile, "User") + format_profile_block(
        friend_profile, friend_display_name(friend_profile)
    )
    if profile_block:
        transcript.append({"role": "user", "content": PROFILE_BLOCK_HEADER + profile_block})

    batch: List[str] = []

    def flush():
        if batch:
            transcript.append({"role": "user", "content": CHAT_LOG_HEADER + "\n".join(batch)})
            batch.clear()

    for msg in history:
        if msg.msg_type == MessageType.HISTORY.value:
            batch.append(render_history_line(msg))
            translation = translations.get(msg.id)
            if translation is not None:
                batch.append(render_history_line(translation))
        elif msg.msg_type == MessageType.CONSULT.value:
            flush()
            role = "assistant" if msg.role == MessageRole.AI.value else "user"
            transcript.append({"role": role, "content": msg.content})

    flush()
    return transcript
