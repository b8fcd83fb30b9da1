from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .utils import utc_now_iso


class DialogueState(str, Enum):
    NORMAL = "NORMAL"
    PURCHASED = "PURCHASED"
    LEFT = "LEFT"

    @property
    def is_terminal(self) -> bool:
        return self in (DialogueState.PURCHASED, DialogueState.LEFT)


class SessionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    ACTIVE = "ACTIVE"
    EVALUATING = "EVALUATING"
    ENDED = "ENDED"


class SessionConfig(BaseModel):
    """Validated training configuration. Frozen once the session starts."""
    model_config = ConfigDict(frozen=True)

    persona_id: str          # e.g. "HNWI"
    scenario_id: str         # e.g. "FIRST_CONTACT"
    difficulty: str          # e.g. "BASIC"
    brand: str               # e.g. "Gucci"
    product_line: Optional[str] = None
    knowledge_base_ids: Tuple[str, ...] = ()
    scoring_model: Optional[str] = None


class ChatMessage(BaseModel):
    role: Literal["user", "customer"]
    text: str
    timestamp: str = Field(default_factory=utc_now_iso)


class DimensionScores(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    needs_discovery: int = Field(alias="needsDiscovery")
    product_knowledge: int = Field(alias="productKnowledge")
    objection_handling: int = Field(alias="objectionHandling")
    emotional_connection: int = Field(alias="emotionalConnection")
    closing_skill: int = Field(alias="closingSkill")


class KnowledgeInsights(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    used_knowledge_items: List[str] = Field(default_factory=list, alias="usedKnowledgeItems")
    missing_topics: List[str] = Field(default_factory=list, alias="missingTopics")


class EvaluationResult(BaseModel):
    """Rubric score for one finished session. Produced once, never mutated."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    overall_score: int = Field(alias="overallScore")
    dimensions: DimensionScores
    feedback: str = ""
    kb_insights: Optional[KnowledgeInsights] = Field(default=None, alias="kbInsights")


class PersonaResult(BaseModel):
    session_id: str
    first_message: str
    persona_details: str
    dialogue_prompt: str


class DialogueReply(BaseModel):
    reply: str
    state: DialogueState = DialogueState.NORMAL


class SessionRecord(BaseModel):
    """A persisted training session as read back from the database."""
    id: int
    user_id: str
    chapter_id: Optional[str] = None
    brand: str
    persona: str
    scenario: str
    difficulty: str
    messages: List[ChatMessage] = Field(default_factory=list)
    overall_score: Optional[int] = None
    dimension_scores: Optional[DimensionScores] = None
    feedback: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None

    def evaluation(self) -> Optional[EvaluationResult]:
        """Rebuild the EvaluationResult stored in this record, if it was scored."""
        if self.overall_score is None or self.dimension_scores is None:
            return None
        return EvaluationResult(
            overall_score=self.overall_score,
            dimensions=self.dimension_scores,
            feedback=self.feedback or "",
        )

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "brand": self.brand,
            "persona": self.persona,
            "scenario": self.scenario,
            "difficulty": self.difficulty,
            "overall_score": self.overall_score,
            "completed_at": self.completed_at,
            "created_at": self.created_at,
        }
