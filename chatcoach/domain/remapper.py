"""
Demo case bundles and identifier remapping

A demo case is one friend profile, one chat session with that friend and the
messages of the session. Copying a case into an account requires fresh ids
for all three kinds of entity and a rewrite of every reference between them.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from chatcoach.deps.idgen import IdFactory

PROFILE = "profile"
CHAT_SESSION = "chat_session"
CHAT_MESSAGE = "chat_message"


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _entity_id(data: Dict[str, Any]) -> int:
    # Templates exported from older tooling spell the primary key "ID"
    return _int(data.get("id", data.get("ID")))


def _parse_time(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class DemoProfile:
    id: int = 0
    user_id: int = 0
    name: str = ""
    im_name: str = ""
    avatar: str = ""
    age: int = 0
    gender: str = ""
    prompt: str = ""
    intro: str = ""
    custom: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DemoProfile":
        return cls(
            id=_entity_id(data),
            user_id=_int(data.get("user_id")),
            name=data.get("name") or "",
            im_name=data.get("im_name") or "",
            avatar=data.get("avatar") or "",
            age=_int(data.get("age")),
            gender=data.get("gender") or "",
            prompt=data.get("prompt") or "",
            intro=data.get("intro", data.get("desc")) or "",
            custom=[
                {"name": str(prop.get("name", "")), "value": str(prop.get("value", ""))}
                for prop in data.get("custom") or []
            ],
        )


@dataclass
class DemoChatSession:
    id: int = 0
    user_id: int = 0
    profile_id: int = 0
    name: str = ""
    avatar: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DemoChatSession":
        return cls(
            id=_entity_id(data),
            user_id=_int(data.get("user_id")),
            profile_id=_int(data.get("profile_id")),
            name=data.get("name") or "",
            avatar=data.get("avatar") or "",
        )


@dataclass
class DemoMessage:
    id: int = 0
    user_id: int = 0
    session_id: int = 0
    parent_id: int = 0
    profile_id: int = 0
    role: str = ""
    msg_type: str = ""
    content: str = ""
    tags: List[str] = field(default_factory=list)
    msg_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DemoMessage":
        return cls(
            id=_entity_id(data),
            user_id=_int(data.get("user_id")),
            session_id=_int(data.get("session_id")),
            parent_id=_int(data.get("parent_id")),
            profile_id=_int(data.get("profile_id")),
            role=data.get("role") or "",
            msg_type=data.get("msg_type") or "",
            content=data.get("content") or "",
            tags=[str(tag) for tag in data.get("tags") or []],
            msg_at=_parse_time(data.get("msg_at")),
        )


@dataclass
class DemoCase:
    profile: DemoProfile
    chat_session: DemoChatSession
    messages: List[DemoMessage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DemoCase":
        return cls(
            profile=DemoProfile.from_dict(data.get("profile") or {}),
            chat_session=DemoChatSession.from_dict(data.get("chat_session") or {}),
            messages=[DemoMessage.from_dict(m) for m in data.get("messages") or []],
        )


@dataclass
class DemoTemplate:
    name: str = ""
    user_id: int = 0
    demo_cases: List[DemoCase] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DemoTemplate":
        return cls(
            name=data.get("name") or "",
            user_id=_int(data.get("user_id")),
            demo_cases=[DemoCase.from_dict(c) for c in data.get("demo_cases") or []],
        )


class IdRemapper:
    """
    Two-pass id rewrite over a set of demo cases.

    ``collect`` draws one fresh id per distinct ``(kind, old id)``; ``apply``
    returns copies of the cases with own ids and references rewritten. The
    table is shared by every case passed through the same instance, so a
    reference may point into another case of the same run. A reference that
    is 0 or names no collected entity becomes 0.
    """

    def __init__(self, id_factory: IdFactory):
        self._id_factory = id_factory
        self._mapping: Dict[Tuple[str, int], int] = {}

    def __len__(self):
        return len(self._mapping)

    def _register(self, kind: str, old_id: int):
        if old_id and (kind, old_id) not in self._mapping:
            self._mapping[(kind, old_id)] = self._id_factory()

    def lookup(self, kind: str, old_id: int) -> int:
        """New id for ``old_id``, or 0 when it was never collected"""
        if not old_id:
            return 0
        return self._mapping.get((kind, old_id), 0)

    def _own_id(self, kind: str, old_id: int) -> int:
        # Entities without an id in the template still need one
        return self.lookup(kind, old_id) or self._id_factory()

    def collect(self, cases: List[DemoCase]):
        for case in cases:
            self._register(PROFILE, case.profile.id)
            self._register(CHAT_SESSION, case.chat_session.id)
            for message in case.messages:
                self._register(CHAT_MESSAGE, message.id)

    def apply(self, cases: List[DemoCase]) -> List[DemoCase]:
        remapped = []
        for case in cases:
            profile_id = self._own_id(PROFILE, case.profile.id)
            session_id = self._own_id(CHAT_SESSION, case.chat_session.id)

            profile = replace(case.profile, id=profile_id, custom=[dict(p) for p in case.profile.custom])
            chat_session = replace(case.chat_session, id=session_id, profile_id=profile_id)
            messages = [
                replace(
                    message,
                    id=self._own_id(CHAT_MESSAGE, message.id),
                    session_id=session_id,
                    profile_id=self.lookup(PROFILE, message.profile_id),
                    parent_id=self.lookup(CHAT_MESSAGE, message.parent_id),
                    tags=list(message.tags),
                )
                for message in case.messages
            ]
            remapped.append(DemoCase(profile=profile, chat_session=chat_session, messages=messages))
        return remapped

    def remap(self, cases: List[DemoCase]) -> List[DemoCase]:
        """Collect then apply in one call"""
        self.collect(cases)
        return self.apply(cases)
