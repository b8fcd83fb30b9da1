import logging
from typing import Dict, List, Optional

from .dialogue_prompts import DIALOGUE_SYSTEM_PROMPT, extract_dialogue_state, to_model_history
from .llm import LLM
from .models import DialogueReply

logger = logging.getLogger(__name__)


class DialogueDriver:
    """
    Produces the customer's next turn.

    Stateless: every call resends the system prompt and the whole transcript,
    so the caller's history is the only source of truth.
    """

    def __init__(self, llm: LLM):
        self.llm = llm

    def build_messages(
        self,
        user_message: str,
        dialogue_prompt: Optional[str],
        conversation_history: List[Dict[str, str]],
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": dialogue_prompt or DIALOGUE_SYSTEM_PROMPT}]
        messages.extend(to_model_history(conversation_history))
        messages.append({"role": "user", "content": user_message})
        return messages

    async def reply(
        self,
        session_id: str,
        user_message: str,
        dialogue_prompt: Optional[str],
        conversation_history: List[Dict[str, str]],
    ) -> DialogueReply:
        """
        Args:
            session_id: only used for logging
            user_message: the salesperson's new turn (not yet in the history)
            dialogue_prompt: session system instruction; the generic one when empty
            conversation_history: prior turns [{"role": "user"|"customer", "text": "..."}]

        Returns:
            DialogueReply with control tokens stripped and the recovered state

        Raises:
            LLMRequestError: the completion request failed
        """
        messages = self.build_messages(user_message, dialogue_prompt, conversation_history)
        logger.info(
            f"DialogueDriver: Requesting reply for session {session_id} "
            f"(history turns: {len(conversation_history)})"
        )
        raw = await self.llm.complete(messages)
        result = extract_dialogue_state(raw)
        logger.info(f"DialogueDriver: Session {session_id} state={result.state.value}")
        return result
