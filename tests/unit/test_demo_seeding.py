"""
Unit tests for demo data onboarding
"""

import json
import pytest
from chatcoach.core.config import settings
from chatcoach.domain.appconfig import AppConfigCond
from chatcoach.domain.demo_seeding import (
    SeedSummary,
    has_demo_messages,
    load_demo_template,
    parse_demo_template,
    seed_demo_data,
)
from chatcoach.domain.errors import InternalError
from chatcoach.models.chat_history import ChatMessage, ChatSession, DEMO_TAG
from chatcoach.models.user import Profile


def own_profile(db_session, user):
    return db_session.query(Profile).filter(Profile.id == user.profile_id).first()


def template_json(name="configured", message_count=2):
    messages = [
        {"id": i + 1, "role": "FRIEND", "msg_type": "HISTORY", "content": f"line {i}"}
        for i in range(message_count)
    ]
    return json.dumps({
        "name": name,
        "demo_cases": [{
            "profile": {"id": 1, "name": name},
            "chat_session": {"id": 1, "profile_id": 1, "name": name},
            "messages": messages,
        }],
    })


class TestTemplates:
    """Template loading and parsing"""

    @pytest.mark.parametrize("kind", ["male", "female", "feature_guide"])
    def test_packaged_templates_have_cases(self, kind):
        template = load_demo_template(kind)
        assert template.name == kind
        assert len(template.demo_cases) >= 1
        assert all(case.messages for case in template.demo_cases)

    def test_unknown_kind_is_empty(self):
        assert load_demo_template("robot").demo_cases == []

    def test_malformed_json_is_empty(self):
        assert parse_demo_template("{not json").demo_cases == []
        assert parse_demo_template("[1, 2]").demo_cases == []

    @pytest.mark.parametrize("document", [
        '{"demo_cases": ["oops"]}',
        '{"demo_cases": [{"messages": [{"role": "AI", "tags": 5}]}]}',
        '{"demo_cases": [{"profile": {"name": "X", "custom": 7}}]}',
    ])
    def test_malformed_structure_is_empty(self, document):
        assert parse_demo_template(document).demo_cases == []

    def test_directory_override(self, tmp_path, monkeypatch):
        (tmp_path / "male.json").write_text(template_json("override"), encoding="utf-8")
        monkeypatch.setattr(settings, "demo_template_dir", str(tmp_path))

        assert load_demo_template("male").name == "override"
        # Kinds without an override file still come from the package
        assert load_demo_template("female").name == "female"


class TestSeedDemoData:
    """Copying a template into an account"""

    def test_fallback_template_is_copied(self, db_session, user, id_factory):
        summary = seed_demo_data(db_session, user.id, own_profile(db_session, user), AppConfigCond(), id_factory)

        assert summary == SeedSummary(cases=1, profiles=1, sessions=1, messages=5)
        messages = db_session.query(ChatMessage).filter(ChatMessage.user_id == user.id).all()
        assert len(messages) == 5
        assert all(DEMO_TAG in m.tags for m in messages)

        session = db_session.query(ChatSession).filter(ChatSession.user_id == user.id).one()
        assert {m.session_id for m in messages} == {session.id}
        friend = db_session.query(Profile).filter(Profile.id == session.profile_id).one()
        assert friend.user_id == user.id
        assert friend.name == "Coach Guide"

    def test_references_are_rewritten(self, db_session, user, id_factory):
        seed_demo_data(db_session, user.id, own_profile(db_session, user), AppConfigCond(), id_factory)

        messages = {m.content: m for m in db_session.query(ChatMessage).all()}
        ids = {m.id for m in messages.values()}
        reply = next(m for m in messages.values() if m.msg_type == "CONSULT" and m.role == "AI")
        translation = next(m for m in messages.values() if m.msg_type == "TRANSLATE")
        assert reply.parent_id in ids
        assert translation.parent_id in ids
        assert min(ids) >= 1000

    def test_configured_template_by_gender(self, db_session, user, add_config, id_factory):
        add_config("demo:female", template_json("for her", message_count=3), version="1.0.0")

        summary = seed_demo_data(
            db_session, user.id, own_profile(db_session, user), AppConfigCond(version="1.2.0"), id_factory
        )

        assert summary.messages == 3
        assert db_session.query(ChatSession).filter(ChatSession.name == "for her").count() == 1

    def test_empty_template_writes_nothing(self, db_session, user, add_config, id_factory):
        add_config("demo:female", json.dumps({"name": "empty", "demo_cases": []}))

        summary = seed_demo_data(db_session, user.id, own_profile(db_session, user), AppConfigCond(), id_factory)

        assert summary == SeedSummary()
        assert db_session.query(ChatMessage).count() == 0

    def test_second_run_without_guard_adds_rows(self, db_session, user, id_factory):
        profile = own_profile(db_session, user)
        seed_demo_data(db_session, user.id, profile, AppConfigCond(), id_factory)
        seed_demo_data(db_session, user.id, profile, AppConfigCond(), id_factory)

        assert db_session.query(ChatMessage).filter(ChatMessage.user_id == user.id).count() == 10
        assert db_session.query(ChatSession).filter(ChatSession.user_id == user.id).count() == 2

    def test_failure_rolls_back_everything(self, db_session, user):
        profile = own_profile(db_session, user)
        profiles_before = db_session.query(Profile).count()

        # Every entity gets the same id, so the message inserts collide
        with pytest.raises(InternalError):
            seed_demo_data(db_session, user.id, profile, AppConfigCond(), lambda: 42)

        assert db_session.query(Profile).count() == profiles_before
        assert db_session.query(ChatSession).count() == 0
        assert db_session.query(ChatMessage).count() == 0

    def test_template_lookup_failure_is_internal_error(self, db_session, user, monkeypatch, id_factory):
        from chatcoach.domain import demo_seeding

        def broken_lookup(*args, **kwargs):
            raise RuntimeError("config table unavailable")

        monkeypatch.setattr(demo_seeding, "load_app_config_by_key_version", broken_lookup)
        with pytest.raises(InternalError):
            seed_demo_data(db_session, user.id, own_profile(db_session, user), AppConfigCond(), id_factory)
        assert db_session.query(ChatMessage).count() == 0


class TestHasDemoMessages:
    """Onboarding guard"""

    def test_detects_demo_tag(self, db_session, user, add_messages):
        assert has_demo_messages(db_session, user.id) is False
        add_messages({"role": "SELF", "msg_type": "HISTORY", "tags": ["demonstration"]})
        assert has_demo_messages(db_session, user.id) is False
        add_messages({"role": "SELF", "msg_type": "HISTORY", "tags": ["x", DEMO_TAG]})
        assert has_demo_messages(db_session, user.id) is True
