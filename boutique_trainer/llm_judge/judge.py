import logging
import time
from typing import Dict, List, Optional, Sequence

from ..components.llm import LLM
from ..components.models import EvaluationResult
from .parser import parse_llm_response
from .prompt_builder import SCORING_SYSTEM_PROMPT, build_scoring_prompt, format_transcript

logger = logging.getLogger(__name__)


class LLMJudge:
    """
    Scores a finished training dialogue on five dimensions:
    需求挖掘, 产品知识, 异议处理, 情绪连接, 成交引导.

    The model returns overallScore and the per-dimension scores itself; the
    parser only repairs what is missing and falls back to fixed scores when
    the reply is not JSON at all.
    """

    def __init__(self, llm: LLM):
        self.llm = llm

    def build_messages(
        self,
        messages: List[Dict[str, str]],
        knowledge_items: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, str]]:
        transcript = format_transcript(messages)
        return [
            {"role": "system", "content": SCORING_SYSTEM_PROMPT},
            {"role": "user", "content": build_scoring_prompt(transcript, knowledge_items)},
        ]

    async def evaluate(
        self,
        session_id: str,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        knowledge_items: Optional[Sequence[str]] = None,
    ) -> EvaluationResult:
        """
        Args:
            session_id: only used for logging
            messages: full transcript [{"role": "user"|"customer", "text": "..."}]
            model: scoring model override (SessionConfig.scoring_model)
            knowledge_items: knowledge points the salesperson was expected to use

        Raises:
            LLMRequestError: the completion request failed
        """
        start = time.time()
        logger.info(f"LLMJudge: Evaluating session {session_id} ({len(messages)} messages)")
        raw = await self.llm.complete(self.build_messages(messages, knowledge_items), model=model)
        result = parse_llm_response(raw)
        logger.info(
            f"LLMJudge: Session {session_id} scored {result.overall_score} in {time.time() - start:.3f}s"
        )
        return result
