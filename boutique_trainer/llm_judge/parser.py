import logging
import math
from typing import Any, Dict, List, Optional

from ..components.models import DimensionScores, EvaluationResult, KnowledgeInsights
from ..components.utils import parse_json_object
from .prompt_builder import DIMENSIONS

logger = logging.getLogger(__name__)

FALLBACK_OVERALL_SCORE = 70
FALLBACK_DIMENSIONS: Dict[str, int] = {
    "needsDiscovery": 60,
    "productKnowledge": 70,
    "objectionHandling": 65,
    "emotionalConnection": 60,
    "closingSkill": 68,
}

# snake_case spellings some models use instead of the requested camelCase
_SNAKE_KEYS = {
    "needsDiscovery": "needs_discovery",
    "productKnowledge": "product_knowledge",
    "objectionHandling": "objection_handling",
    "emotionalConnection": "emotional_connection",
    "closingSkill": "closing_skill",
}


def _score(value: Any) -> Optional[int]:
    """Coerce a model-supplied score into an int in 0..100, or None if it is not a finite number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    # json accepts NaN, Infinity and 1e999
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(0, min(100, int(round(value))))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


def fallback_evaluation(raw_response: str) -> EvaluationResult:
    """Fixed scores used when the evaluator reply is not JSON; the raw reply becomes the feedback."""
    return EvaluationResult(
        overall_score=FALLBACK_OVERALL_SCORE,
        dimensions=DimensionScores(**FALLBACK_DIMENSIONS),
        feedback=raw_response,
    )


def parse_llm_response(raw_response: str) -> EvaluationResult:
    """
    Parse the evaluator reply into an EvaluationResult.

    Accepts bare JSON, JSON in a ```json fence, or JSON surrounded by prose.
    A dimension that is missing or not a number takes its fallback value, all
    scores are clamped to 0..100, and a missing overallScore becomes the
    rounded mean of the five dimensions. A reply with no JSON object at all
    yields the fallback evaluation.
    """
    try:
        parsed = parse_json_object(raw_response)
    except ValueError as e:
        logger.warning(f"LLM returned non-JSON evaluation, using fallback scores. Error: {e}")
        return fallback_evaluation(raw_response)

    raw_dimensions = parsed.get("dimensions")
    if not isinstance(raw_dimensions, dict):
        logger.warning("Field 'dimensions' is missing or not an object, using fallback dimension scores.")
        raw_dimensions = {}

    dimensions: Dict[str, int] = {}
    for key, _ in DIMENSIONS:
        value = _score(raw_dimensions.get(key, raw_dimensions.get(_SNAKE_KEYS[key])))
        if value is None:
            logger.warning(f"Dimension '{key}' missing or invalid, using fallback {FALLBACK_DIMENSIONS[key]}.")
            value = FALLBACK_DIMENSIONS[key]
        dimensions[key] = value

    overall = _score(parsed.get("overallScore", parsed.get("overall_score")))
    if overall is None:
        overall = int(round(sum(dimensions.values()) / len(dimensions)))
        logger.warning(f"Field 'overallScore' missing or invalid, using dimension mean {overall}.")

    feedback = parsed.get("feedback")
    if isinstance(feedback, list):
        feedback = "\n".join(str(item) for item in feedback)
    elif not isinstance(feedback, str):
        feedback = ""

    kb_insights = None
    raw_kb = parsed.get("kbInsights")
    if isinstance(raw_kb, dict):
        kb_insights = KnowledgeInsights(
            used_knowledge_items=_string_list(raw_kb.get("usedKnowledgeItems")),
            missing_topics=_string_list(raw_kb.get("missingTopics")),
        )

    return EvaluationResult(
        overall_score=overall,
        dimensions=DimensionScores(**dimensions),
        feedback=feedback.strip(),
        kb_insights=kb_insights,
    )
