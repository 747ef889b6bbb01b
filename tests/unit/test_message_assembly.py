"""
Unit tests for message listing and prompt context assembly
"""

import json
import pytest
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.domain.errors import NotFoundError, ParamInvalidError
from chatcoach.models.chat_history import ChatMessage, DISABLE_INTERACT_TAG
from chatcoach.models.user import Profile
from chatcoach.services.message_assembly import (
    CHAT_LOG_HEADER,
    DEFAULT_SYSTEM_PROMPT,
    GUIDE_MESSAGES_CONFIG_KEY,
    PROFILE_BLOCK_HEADER,
    MessageQuery,
    build_chat_context,
    list_messages,
    merge_messages,
    render_history_line,
    resolve_system_prompt,
)


def msg(id, role, msg_type, content="", parent_id=0):
    return ChatMessage(id=id, role=role, msg_type=msg_type, content=content, parent_id=parent_id, tags=[])


class TestMergeMessages:
    """Read-side folding of translations and superseded replies"""

    def test_listing_example(self):
        messages = [
            msg(1, "FRIEND", "HISTORY", "hi"),
            msg(2, "AI", "TRANSLATE", "old meaning", parent_id=1),
            msg(3, "AI", "TRANSLATE", "new meaning", parent_id=1),
            msg(4, "USER", "CONSULT", "what now?"),
            msg(5, "AI", "CONSULT", "first answer", parent_id=4),
            msg(6, "AI", "CONSULT", "second answer", parent_id=4),
        ]
        merged = merge_messages(messages)

        assert [m.message.id for m in merged] == [1, 4, 6]
        assert merged[0].translate_content == "new meaning"
        assert merged[1].translate_content is None

    def test_translation_newest_by_id_not_position(self):
        messages = [
            msg(1, "SELF", "HISTORY", "see you"),
            msg(9, "AI", "TRANSLATE", "newer", parent_id=1),
            msg(5, "AI", "TRANSLATE", "older", parent_id=1),
        ]
        assert merge_messages(messages)[0].translate_content == "newer"

    def test_unthreaded_consult_kept(self):
        messages = [msg(1, "USER", "CONSULT", "q1"), msg(2, "USER", "CONSULT", "q2")]
        assert [m.message.id for m in merge_messages(messages)] == [1, 2]


class TestListMessages:
    """Keyset pagination over a session"""

    def test_pages_backwards_without_gaps(self, db_session, user, chat_session, add_messages):
        rows = add_messages(*[{"role": "SELF", "msg_type": "HISTORY", "content": f"m{i}"} for i in range(5)])
        ids = [r.id for r in rows]

        page1, token1 = list_messages(db_session, user.id, chat_session.id, page_size=2)
        page2, token2 = list_messages(db_session, user.id, chat_session.id, page_token=token1, page_size=2)
        page3, token3 = list_messages(db_session, user.id, chat_session.id, page_token=token2, page_size=2)

        assert [m.message.id for m in page1] == ids[3:5]
        assert token1 == str(ids[3])
        assert [m.message.id for m in page2] == ids[1:3]
        assert token2 == str(ids[1])
        assert [m.message.id for m in page3] == ids[0:1]
        assert token3 == ""

    def test_filters(self, db_session, user, chat_session, add_messages):
        rows = add_messages(
            {"role": "SELF", "msg_type": "HISTORY", "content": "a"},
            {"role": "FRIEND", "msg_type": "HISTORY", "content": "b"},
            {"role": "USER", "msg_type": "CONSULT", "content": "c"},
        )
        items, _ = list_messages(
            db_session, user.id, chat_session.id, filters=MessageQuery(msg_type="HISTORY", roles=["FRIEND"])
        )
        assert [m.message.id for m in items] == [rows[1].id]

        items, _ = list_messages(db_session, user.id, chat_session.id, filters=MessageQuery(ids=[rows[2].id]))
        assert [m.message.content for m in items] == ["c"]

    def test_other_users_session(self, db_session, other_user, chat_session):
        with pytest.raises(NotFoundError):
            list_messages(db_session, other_user.id, chat_session.id)

    def test_bad_ids(self, db_session, user, chat_session):
        with pytest.raises(ParamInvalidError):
            list_messages(db_session, user.id, "abc")
        with pytest.raises(ParamInvalidError):
            list_messages(db_session, user.id, chat_session.id, page_token="xyz")

    def test_guide_messages_for_new_session(self, db_session, user, chat_session, add_config):
        guide = [
            {"id": 1, "role": "AI", "msg_type": "CONSULT", "content": "Welcome!"},
            {"id": 2, "role": "AI", "msg_type": "CONSULT", "content": "Paste a chat to begin."},
        ]
        add_config(GUIDE_MESSAGES_CONFIG_KEY, json.dumps(guide))

        items, token = list_messages(db_session, user.id, chat_session.id, cond=AppConfigCond())

        assert [m.message.content for m in items] == ["Welcome!", "Paste a chat to begin."]
        assert all(DISABLE_INTERACT_TAG in m.message.tags for m in items)
        assert all(m.message.session_id == chat_session.id for m in items)
        assert len({m.message.msg_at for m in items}) == 1
        assert token == ""
        # Read-time only
        assert db_session.query(ChatMessage).count() == 0

    def test_invalid_guide_config(self, db_session, user, chat_session, add_config):
        add_config(GUIDE_MESSAGES_CONFIG_KEY, "{broken")
        items, token = list_messages(db_session, user.id, chat_session.id)
        assert items == []
        assert token == ""

    def test_malformed_guide_entries_are_skipped(self, db_session, user, chat_session, add_config):
        guide = [
            {"role": "AI", "msg_type": "CONSULT", "content": "hi", "tags": 5},
            {"role": "BOT", "msg_type": "CONSULT", "content": "who?"},
            {"role": "AI", "msg_type": "CONSULT", "content": {"text": "nested"}},
            {"role": "AI", "msg_type": "CONSULT", "content": "Welcome!"},
        ]
        add_config(GUIDE_MESSAGES_CONFIG_KEY, json.dumps(guide))

        items, token = list_messages(db_session, user.id, chat_session.id)

        assert [m.message.content for m in items] == ["Welcome!"]
        assert token == ""


class TestBuildChatContext:
    """Prompt transcript folding"""

    def test_history_batches_and_consult_turns(self):
        messages = [
            msg(1, "FRIEND", "HISTORY", "are you free?"),
            msg(2, "AI", "TRANSLATE", "they want to meet", parent_id=1),
            msg(3, "SELF", "HISTORY", "maybe"),
            msg(4, "USER", "CONSULT", "how do I say yes?"),
            msg(5, "AI", "CONSULT", "say yes warmly", parent_id=4),
            msg(6, "FRIEND", "HISTORY", "great"),
        ]
        transcript = build_chat_context(messages, None, None, "SYS")

        assert transcript[0] == {"role": "system", "content": "SYS"}
        assert transcript[1] == {
            "role": "user",
            "content": CHAT_LOG_HEADER + "Friend:are you free?\n"
                       "<interpretation>they want to meet</interpretation>\nMe:maybe",
        }
        assert transcript[2] == {"role": "user", "content": "how do I say yes?"}
        assert transcript[3] == {"role": "assistant", "content": "say yes warmly"}
        assert transcript[4] == {"role": "user", "content": CHAT_LOG_HEADER + "Friend:great"}
        assert len(transcript) == 5

    def test_profile_block(self):
        me = Profile(name="Alice", gender="female", age=28, intro="", custom=[])
        friend = Profile(name="Bob", gender="male", age=0, intro="Likes hiking", custom=[{"name": "Job", "value": "Chef"}])

        transcript = build_chat_context([], me, friend, "SYS")

        assert transcript[1]["role"] == "user"
        content = transcript[1]["content"]
        assert content.startswith(PROFILE_BLOCK_HEADER)
        assert "**User profile**\nGender:Female\nAge:28" in content
        assert "**Bob profile**\nGender:Male\nIntro:Likes hiking\nJob:Chef" in content

    def test_render_history_line(self):
        assert render_history_line(msg(1, "SELF", "HISTORY", "hi")) == "Me:hi"
        assert render_history_line(msg(2, "AI", "TRANSLATE", "x", parent_id=1)) == "<interpretation>x</interpretation>"


class TestResolveSystemPrompt:
    """Persona, configured and built-in prompts"""

    def test_precedence(self, db_session, add_config):
        friend = Profile(prompt="You are Bob's wingman")
        assert resolve_system_prompt(db_session, friend) == "You are Bob's wingman"
        assert resolve_system_prompt(db_session, None) == DEFAULT_SYSTEM_PROMPT

        add_config("prompt:consult:default", "Configured coach")
        assert resolve_system_prompt(db_session, Profile(prompt="")) == "Configured coach"
