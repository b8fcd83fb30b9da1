from typing import Any, Dict, Optional
import logging
import time

from .dialogue_driver import DialogueDriver
from .errors import InvalidSessionStateError, NoSpeechError
from .knowledge import extra_knowledge, resolve_session_config
from .models import SessionStatus
from .persona_generator import PersonaGenerator
from .session_manager import SessionManager
from ..llm_judge import LLMJudge

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Orchestrates one training session end to end:
    1. Orchestrator -> PersonaGenerator (persona, opening line, dialogue prompt)
    2. Orchestrator -> DialogueDriver per salesperson turn (reply + dialogue state)
    3. Orchestrator -> LLMJudge once the dialogue ends (evaluation)
    4. Orchestrator -> Database (record + chapter progress, only for signed-in users)

    Every change to a session goes through the SessionManager.
    """

    def __init__(
        self,
        llm,
        session_manager: Optional[SessionManager] = None,
        database=None,
        stt=None,
    ):
        self.llm = llm
        self.session_manager = session_manager or SessionManager()
        self.database = database
        self.stt = stt
        self.persona_generator = PersonaGenerator(llm)
        self.dialogue_driver = DialogueDriver(llm)
        self.judge = LLMJudge(llm)

    async def start_session(
        self,
        config_fields: Dict[str, Any],
        user_id: Optional[str] = None,
        chapter_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Validate the configuration, generate the persona and open the session.

        Raises:
            ConfigValidationError: before any network call
            LLMRequestError: persona generation failed; no session is created
        """
        config = resolve_session_config(**config_fields)
        persona = await self.persona_generator.generate(config)
        session = self.session_manager.create_session(persona, config, user_id=user_id, chapter_id=chapter_id)
        return {
            "type": "session_started",
            "session_id": session.id,
            "first_message": persona.first_message,
            "persona_details": persona.persona_details,
            "config": config.model_dump(),
            "status": session.status.value,
        }

    async def send_message(self, session_id: str, text: str) -> Dict[str, Any]:
        """
        Send one salesperson turn and return the customer's reply.

        Both messages are appended only once the reply arrived, so a failed
        request leaves the transcript untouched and the turn can be retried.
        A purchase or leave signal ends the session and evaluates it at once.
        """
        session = self._require_open_dialogue(session_id)

        text = text.strip()
        if not text:
            raise ValueError("Message text is empty")

        result = await self.dialogue_driver.reply(
            session_id,
            text,
            session.dialogue_prompt,
            session.history(),
        )
        # the session may have been ended or answered while the reply was pending
        self._require_open_dialogue(session_id)
        self.session_manager.add_message(session_id, "user", text)
        self.session_manager.add_message(session_id, "customer", result.reply)
        self.session_manager.set_dialogue_state(session_id, result.state)

        response: Dict[str, Any] = {
            "type": "reply",
            "session_id": session_id,
            "reply": result.reply,
            "state": result.state.value,
            "ended": False,
            "evaluation": None,
        }

        if result.state.is_terminal:
            logger.info(f"Orchestrator: Customer signalled {result.state.value} in session {session_id}, ending session")
            try:
                ended = await self.end_session(session_id)
            except Exception as e:
                logger.error(f"Orchestrator: Automatic evaluation failed for session {session_id}: {str(e)}", exc_info=True)
                response["evaluation_error"] = str(e)
            else:
                response.update(
                    ended=True,
                    evaluation=ended["evaluation"],
                    record_id=ended["record_id"],
                    persist_error=ended["persist_error"],
                )
        return response

    def _require_open_dialogue(self, session_id: str):
        session = self.session_manager.require_status(session_id, SessionStatus.ACTIVE, "send a message to")
        if session.dialogue_state.is_terminal:
            raise InvalidSessionStateError(session_id, session.dialogue_state.value, "send a message to")
        return session

    async def end_session(self, session_id: str) -> Dict[str, Any]:
        """
        Evaluate the full transcript, persist it and close the session.

        If evaluation fails for any reason the session goes back to ACTIVE so
        the user can retry; persistence failures do not fail the call and are
        reported as persist_error.
        """
        session = self.session_manager.require_status(session_id, SessionStatus.ACTIVE, "end")
        self.session_manager.transition(session_id, SessionStatus.EVALUATING)
        start = time.time()
        try:
            evaluation = await self.judge.evaluate(
                session_id,
                session.history(),
                model=session.config.scoring_model,
                knowledge_items=extra_knowledge(session.config.knowledge_base_ids),
            )
        except Exception:
            self.session_manager.transition(session_id, SessionStatus.ACTIVE)
            raise
        self.session_manager.set_evaluation(session_id, evaluation)

        record_id, persist_error = await self._persist(session)
        self.session_manager.set_persistence_result(session_id, record_id=record_id, error=persist_error)
        self.session_manager.transition(session_id, SessionStatus.ENDED)
        logger.info(f"Orchestrator: Session {session_id} ended in {time.time() - start:.3f}s (score {evaluation.overall_score})")

        return {
            "type": "session_ended",
            "session_id": session_id,
            "evaluation": evaluation.model_dump(by_alias=True),
            "record_id": record_id,
            "persist_error": persist_error,
        }

    async def _persist(self, session):
        if not session.user_id:
            logger.info(f"Orchestrator: Session {session.id} has no owner, skipping persistence")
            return None, None
        if self.database is None or not self.database.initialized:
            logger.warning(f"Orchestrator: Database unavailable, session {session.id} not saved")
            return None, "database unavailable"

        try:
            record_id = await self.database.save_session(
                user_id=session.user_id,
                config=session.config,
                messages=session.messages,
                evaluation=session.evaluation,
                chapter_id=session.chapter_id,
            )
            if session.chapter_id:
                await self.database.mark_chapter_completed(session.user_id, session.chapter_id)
        except Exception as e:
            logger.error(f"Orchestrator: Failed to persist session {session.id}: {str(e)}", exc_info=True)
            return None, str(e)
        return record_id, None

    async def transcribe_and_send(self, session_id: str, audio_base64: str) -> Dict[str, Any]:
        """Voice turn: transcribe the recording, then send it as a text turn."""
        self.session_manager.require_status(session_id, SessionStatus.ACTIVE, "send a message to")
        if self.stt is None:
            raise RuntimeError("Speech-to-text client not configured")

        text = await self.stt.transcribe(audio_base64)
        if not text:
            raise NoSpeechError("No speech recognised in the recording")
        response = await self.send_message(session_id, text)
        response["transcription"] = text
        return response

    def get_session(self, session_id: str) -> Dict[str, Any]:
        return self.session_manager.get_session(session_id).to_dict()

    def discard_session(self, session_id: str) -> bool:
        """Reset: forget the session entirely. Nothing is persisted for it."""
        return self.session_manager.discard_session(session_id)
