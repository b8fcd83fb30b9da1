import pytest

from boutique_trainer.components.errors import InvalidSessionStateError, SessionNotFoundError
from boutique_trainer.components.knowledge import resolve_session_config
from boutique_trainer.components.models import PersonaResult, SessionStatus
from boutique_trainer.components.session_manager import SessionManager


@pytest.fixture
def manager():
    return SessionManager()


def make_persona(session_id="session_1"):
    return PersonaResult(
        session_id=session_id,
        first_message="你好，我随便看看。",
        persona_details="{}",
        dialogue_prompt="PROMPT",
    )


@pytest.fixture
def config():
    return resolve_session_config("HNWI", "FIRST_CONTACT", "BASIC", "Gucci")


def test_create_session_seeds_opening_line(manager, config):
    session = manager.create_session(make_persona(), config, user_id="u1")
    assert session.status == SessionStatus.ACTIVE
    assert session.history() == [{"role": "customer", "text": "你好，我随便看看。"}]
    snapshot = session.to_dict()
    assert snapshot["session_id"] == "session_1"
    assert snapshot["user_turns"] == 0
    assert snapshot["evaluation"] is None


def test_no_transition_out_of_ended(manager, config):
    manager.create_session(make_persona(), config)
    manager.transition("session_1", SessionStatus.EVALUATING)
    manager.transition("session_1", SessionStatus.ENDED)
    assert manager.get_session("session_1").ended_at is not None

    for status in SessionStatus:
        with pytest.raises(InvalidSessionStateError):
            manager.transition("session_1", status)


def test_evaluating_can_return_to_active(manager, config):
    manager.create_session(make_persona(), config)
    manager.transition("session_1", SessionStatus.EVALUATING)
    manager.transition("session_1", SessionStatus.ACTIVE)
    assert manager.get_session("session_1").status == SessionStatus.ACTIVE


def test_sessions_are_independent(manager, config):
    manager.create_session(make_persona("a"), config)
    manager.create_session(make_persona("b"), config)
    manager.add_message("a", "user", "欢迎光临")

    assert len(manager.get_session("a").messages) == 2
    assert len(manager.get_session("b").messages) == 1


def test_unknown_session(manager):
    with pytest.raises(SessionNotFoundError):
        manager.get_session("missing")
    assert manager.discard_session("missing") is False


def test_add_message_requires_active_session(manager, config):
    manager.create_session(make_persona(), config)
    manager.transition("session_1", SessionStatus.EVALUATING)
    with pytest.raises(InvalidSessionStateError):
        manager.add_message("session_1", "user", "还在吗？")

    manager.transition("session_1", SessionStatus.ENDED)
    with pytest.raises(InvalidSessionStateError):
        manager.add_message("session_1", "user", "还在吗？")
    assert len(manager.get_session("session_1").messages) == 1
