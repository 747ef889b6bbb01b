"""
Demo data onboarding

Copies a template of demo conversations into a user's account. The template
is chosen by the gender on the user's profile, through the versioned config
key ``demo:<gender>``, and falls back to the packaged feature guide.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional

from sqlalchemy import String, cast
from sqlalchemy.orm import Session

from chatcoach.core.config import settings
from chatcoach.deps.idgen import IdFactory, get_id_generator
from chatcoach.domain.appconfig import AppConfigCond, load_app_config_by_key_version
from chatcoach.domain.errors import InternalError
from chatcoach.domain.remapper import DemoCase, DemoTemplate, IdRemapper
from chatcoach.models.chat_history import ChatMessage, ChatSession, DEMO_TAG
from chatcoach.models.user import Profile

logger = logging.getLogger(__name__)

DEMO_TEMPLATE_KINDS = ("male", "female", "feature_guide")
FALLBACK_TEMPLATE = "feature_guide"
DEMO_CONFIG_KEY_PREFIX = "demo:"

_PACKAGED_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "demo")


@dataclass
class SeedSummary:
    cases: int = 0
    profiles: int = 0
    sessions: int = 0
    messages: int = 0


def parse_demo_template(json_str: str) -> DemoTemplate:
    """Parse a template document; malformed JSON or a malformed structure yields an empty template"""
    try:
        data = json.loads(json_str)
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to parse demo template: {e}")
        return DemoTemplate()
    if not isinstance(data, dict):
        logger.error(f"Demo template must be a JSON object, got {type(data).__name__}")
        return DemoTemplate()
    try:
        return DemoTemplate.from_dict(data)
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Demo template has an invalid structure: {e}")
        return DemoTemplate()


@lru_cache(maxsize=None)
def _read_packaged(kind: str) -> str:
    with open(os.path.join(_PACKAGED_DIR, f"{kind}.json"), encoding="utf-8") as f:
        return f.read()


def load_demo_template(kind: str) -> DemoTemplate:
    """
    Built-in template by kind.

    A ``<kind>.json`` in ``settings.demo_template_dir`` takes precedence over
    the packaged copy. Unknown kinds give an empty template.
    """
    kind = kind or FALLBACK_TEMPLATE
    if kind not in DEMO_TEMPLATE_KINDS:
        logger.warning(f"Unknown demo template kind: {kind}")
        return DemoTemplate()

    if settings.demo_template_dir:
        override = os.path.join(settings.demo_template_dir, f"{kind}.json")
        if os.path.isfile(override):
            with open(override, encoding="utf-8") as f:
                template = parse_demo_template(f.read())
            if template.demo_cases:
                logger.info(f"Loaded demo template {kind} from {override}")
                return template

    return parse_demo_template(_read_packaged(kind))


def resolve_demo_template(db: Session, gender: str, cond: AppConfigCond) -> DemoTemplate:
    configured = load_app_config_by_key_version(db, DEMO_CONFIG_KEY_PREFIX + (gender or ""), cond)
    if configured:
        return parse_demo_template(configured)
    return load_demo_template(FALLBACK_TEMPLATE)


def has_demo_messages(db: Session, user_id: int) -> bool:
    """Whether any of the user's messages carries the demo tag"""
    row = db.query(ChatMessage.id).filter(
        ChatMessage.user_id == user_id,
        cast(ChatMessage.tags, String).like(f'%"{DEMO_TAG}"%')
    ).first()
    return row is not None


def _build_rows(cases: List[DemoCase], user_id: int, now: datetime):
    profiles, sessions, messages = [], [], []
    for case in cases:
        p = case.profile
        profiles.append(Profile(
            id=p.id,
            user_id=user_id,
            name=p.name,
            im_name=p.im_name,
            avatar=p.avatar,
            age=p.age,
            gender=p.gender,
            prompt=p.prompt,
            intro=p.intro,
            custom=p.custom,
        ))
        s = case.chat_session
        sessions.append(ChatSession(
            id=s.id,
            user_id=user_id,
            profile_id=s.profile_id,
            name=s.name,
            avatar=s.avatar,
        ))
        for m in case.messages:
            messages.append(ChatMessage(
                id=m.id,
                user_id=user_id,
                session_id=m.session_id,
                parent_id=m.parent_id,
                profile_id=m.profile_id,
                role=m.role,
                msg_type=m.msg_type,
                content=m.content,
                tags=m.tags + [DEMO_TAG],
                msg_at=m.msg_at or now,
            ))
    return profiles, sessions, messages


def seed_demo_data(
    db: Session,
    user_id: int,
    profile: Profile,
    cond: AppConfigCond,
    id_factory: Optional[IdFactory] = None,
) -> SeedSummary:
    """
    Copy the demo template matching ``profile.gender`` into the user's account.

    Callers must first check ``has_demo_messages``; running twice for the
    same user copies the template twice.

    Args:
        db: Database session, committed on success
        user_id: Owner of every copied row
        profile: The user's own profile, read for its gender
        cond: Client version and environment used to pick the template
        id_factory: Source of fresh ids, the process generator by default

    Returns:
        Counts of copied rows, all zero when the template is empty

    Raises:
        InternalError: If the template cannot be resolved or any insert
            fails; nothing is kept in that case
    """
    try:
        template = resolve_demo_template(db, profile.gender, cond)
        if not template.demo_cases:
            logger.warning(f"No demo cases to seed for user {user_id} (gender={profile.gender!r})")
            return SeedSummary()

        remapper = IdRemapper(id_factory or get_id_generator())
        cases = remapper.remap(template.demo_cases)
        profiles, sessions, messages = _build_rows(cases, user_id, datetime.now(timezone.utc))

        # Sessions reference profiles and messages reference both
        db.add_all(profiles)
        db.flush()
        db.add_all(sessions)
        db.flush()
        db.add_all(messages)
        db.flush()
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to seed demo data for user {user_id}: {e}", exc_info=True)
        raise InternalError() from e

    summary = SeedSummary(
        cases=len(cases),
        profiles=len(profiles),
        sessions=len(sessions),
        messages=len(messages),
    )
    logger.info(
        f"Seeded demo data for user {user_id}: cases={summary.cases} profiles={summary.profiles} "
        f"sessions={summary.sessions} messages={summary.messages}"
    )
    return summary
