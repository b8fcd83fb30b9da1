import json
import logging

from .dialogue_prompts import (
    DEFAULT_OPENING_STATEMENT,
    build_dialogue_prompt,
    build_persona_generation_prompt,
)
from .llm import LLM
from .models import PersonaResult, SessionConfig
from .utils import new_session_id, parse_json_object

logger = logging.getLogger(__name__)


class PersonaGenerator:
    """First stage of a session: customer persona, opening line and dialogue prompt."""

    def __init__(self, llm: LLM):
        self.llm = llm

    async def generate(self, config: SessionConfig) -> PersonaResult:
        """
        Generate the simulated customer for a session.

        One completion request with a single system message. A reply that is
        not a JSON object is kept as opaque persona text and the default
        opening line is used; the session is never failed for it.

        Raises:
            LLMRequestError: the completion request itself failed
        """
        prompt = build_persona_generation_prompt(config)
        logger.info(
            f"PersonaGenerator: Generating persona (persona={config.persona_id}, "
            f"scenario={config.scenario_id}, difficulty={config.difficulty}, brand={config.brand})"
        )
        raw = await self.llm.complete([{"role": "system", "content": prompt}])

        persona_details = raw
        first_message = DEFAULT_OPENING_STATEMENT
        try:
            persona = parse_json_object(raw)
        except ValueError as e:
            logger.warning(f"PersonaGenerator: Persona reply is not JSON, using raw text: {e}")
        else:
            opening = persona.get("openingStatement")
            if isinstance(opening, str) and opening.strip():
                first_message = opening.strip()
            persona_details = json.dumps(persona, ensure_ascii=False, indent=2)

        session_id = new_session_id()
        logger.info(f"PersonaGenerator: Persona ready for session {session_id}")
        return PersonaResult(
            session_id=session_id,
            first_message=first_message,
            persona_details=persona_details,
            dialogue_prompt=build_dialogue_prompt(persona_details, config),
        )
