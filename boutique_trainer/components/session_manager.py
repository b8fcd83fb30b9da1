from typing import Dict, List, Optional
import logging

from .errors import InvalidSessionStateError, SessionNotFoundError
from .models import (
    ChatMessage,
    DialogueState,
    EvaluationResult,
    PersonaResult,
    SessionConfig,
    SessionStatus,
)
from .utils import utc_now_iso

logger = logging.getLogger(__name__)


class TrainingSession:
    """In-memory state of one training session. Mutated only through SessionManager."""

    def __init__(
        self,
        persona: PersonaResult,
        config: SessionConfig,
        user_id: Optional[str] = None,
        chapter_id: Optional[str] = None,
    ):
        self.id = persona.session_id
        self.config = config
        self.user_id = user_id
        self.chapter_id = chapter_id
        self.persona_details = persona.persona_details
        self.dialogue_prompt = persona.dialogue_prompt
        self.status = SessionStatus.NOT_STARTED
        self.dialogue_state = DialogueState.NORMAL
        self.messages: List[ChatMessage] = []
        self.evaluation: Optional[EvaluationResult] = None
        self.record_id: Optional[int] = None
        self.persist_error: Optional[str] = None
        self.started_at = utc_now_iso()
        self.ended_at: Optional[str] = None

    def history(self) -> List[Dict[str, str]]:
        """Transcript in the {"role", "text"} shape the dialogue driver expects."""
        return [{"role": m.role, "text": m.text} for m in self.messages]

    def user_turns(self) -> int:
        return sum(1 for m in self.messages if m.role == "user")

    def to_dict(self) -> Dict:
        return {
            "session_id": self.id,
            "status": self.status.value,
            "dialogue_state": self.dialogue_state.value,
            "config": self.config.model_dump(),
            "user_id": self.user_id,
            "chapter_id": self.chapter_id,
            "persona_details": self.persona_details,
            "messages": [m.model_dump() for m in self.messages],
            "user_turns": self.user_turns(),
            "evaluation": self.evaluation.model_dump(by_alias=True) if self.evaluation else None,
            "record_id": self.record_id,
            "persist_error": self.persist_error,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }


# Allowed status transitions
TRANSITIONS = {
    SessionStatus.NOT_STARTED: {SessionStatus.ACTIVE},
    SessionStatus.ACTIVE: {SessionStatus.EVALUATING},
    SessionStatus.EVALUATING: {SessionStatus.ENDED, SessionStatus.ACTIVE},
    SessionStatus.ENDED: set(),
}


class SessionManager:
    """Manages training sessions"""

    def __init__(self):
        self.sessions: Dict[str, TrainingSession] = {}
        logger.info("SessionManager: Initialized")

    def create_session(
        self,
        persona: PersonaResult,
        config: SessionConfig,
        user_id: Optional[str] = None,
        chapter_id: Optional[str] = None,
    ) -> TrainingSession:
        """Register a new session, open it and seed the transcript with the customer's opening line."""
        session = TrainingSession(persona, config, user_id=user_id, chapter_id=chapter_id)
        self.sessions[session.id] = session
        self.transition(session.id, SessionStatus.ACTIVE)
        self.add_message(session.id, "customer", persona.first_message)
        logger.info(
            f"SessionManager: Session {session.id} started "
            f"(persona={config.persona_id}, scenario={config.scenario_id}, brand={config.brand}, user={user_id})"
        )
        return session

    def get_session(self, session_id: str) -> TrainingSession:
        session = self.sessions.get(session_id)
        if session is None:
            logger.warning(f"SessionManager: Session {session_id} not found")
            raise SessionNotFoundError(session_id)
        return session

    def require_status(self, session_id: str, status: SessionStatus, action: str) -> TrainingSession:
        session = self.get_session(session_id)
        if session.status != status:
            logger.warning(
                f"SessionManager: Refusing to {action} session {session_id} in status {session.status.value}"
            )
            raise InvalidSessionStateError(session_id, session.status.value, action)
        return session

    def add_message(self, session_id: str, role: str, text: str) -> ChatMessage:
        """Append to the transcript. Only an ACTIVE session takes new messages."""
        session = self.require_status(session_id, SessionStatus.ACTIVE, "add a message to")
        message = ChatMessage(role=role, text=text)
        session.messages.append(message)
        logger.debug(f"SessionManager: Added {role} message to session {session_id} (total: {len(session.messages)})")
        return message

    def set_dialogue_state(self, session_id: str, state: DialogueState):
        session = self.get_session(session_id)
        if session.dialogue_state != state:
            logger.info(f"SessionManager: Session {session_id} dialogue state {session.dialogue_state.value} -> {state.value}")
        session.dialogue_state = state

    def transition(self, session_id: str, status: SessionStatus):
        session = self.get_session(session_id)
        if status not in TRANSITIONS[session.status]:
            raise InvalidSessionStateError(session_id, session.status.value, f"move to {status.value}")
        logger.info(f"SessionManager: Session {session_id} {session.status.value} -> {status.value}")
        session.status = status
        if status == SessionStatus.ENDED:
            session.ended_at = utc_now_iso()

    def set_evaluation(self, session_id: str, evaluation: EvaluationResult):
        self.get_session(session_id).evaluation = evaluation

    def set_persistence_result(self, session_id: str, record_id: Optional[int] = None, error: Optional[str] = None):
        session = self.get_session(session_id)
        session.record_id = record_id
        session.persist_error = error

    def discard_session(self, session_id: str) -> bool:
        """Drop a session and everything recorded for it. Returns False if it did not exist."""
        if self.sessions.pop(session_id, None) is None:
            logger.warning(f"SessionManager: Cannot discard session {session_id} - not found")
            return False
        logger.info(f"SessionManager: Session {session_id} discarded")
        return True

    def list_sessions(self) -> List[str]:
        return list(self.sessions.keys())
