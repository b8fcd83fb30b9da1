import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from .knowledge import DIFFICULTIES, PERSONAS, SCENARIOS
from .models import SessionRecord
from ..llm_judge.prompt_builder import DIMENSIONS

logger = logging.getLogger(__name__)

DIMENSION_LABELS: Dict[str, str] = dict(DIMENSIONS)
TREND_LENGTH = 10


def _round(value: float) -> int:
    """Round half up: 78.5 -> 79."""
    return int(math.floor(value + 0.5))


def _label(table: Dict[str, Dict[str, Any]], code: str) -> str:
    return table.get(code, {}).get("name", code)


def build_ability_report(records: Sequence[SessionRecord]) -> Dict[str, Any]:
    """
    Aggregate a user's scored sessions into an ability report.

    records: newest first, as returned by Database.list_sessions
    Unscored records are ignored. An empty report has session_count 0.
    """
    scored = [r for r in records if r.overall_score is not None]
    if not scored:
        return {
            "session_count": 0,
            "avg_score": None,
            "dimensions": [],
            "strengths": [],
            "weaknesses": [],
            "recent_trend": 0,
            "trend": [],
            "latest_feedback": None,
        }

    avg_score = _round(sum(r.overall_score for r in scored) / len(scored))

    collected: Dict[str, List[int]] = {key: [] for key, _ in DIMENSIONS}
    for record in scored:
        if record.dimension_scores is None:
            continue
        for key, value in record.dimension_scores.model_dump(by_alias=True).items():
            collected[key].append(value)

    dimensions = [
        {
            "key": key,
            "label": DIMENSION_LABELS[key],
            "score": _round(sum(values) / len(values)),
        }
        for key, values in collected.items()
        if values
    ]

    ranked = sorted(dimensions, key=lambda d: d["score"], reverse=True)
    strengths = ranked[:2]
    weaknesses = list(reversed(ranked[-2:]))

    recent_trend = scored[0].overall_score - scored[1].overall_score if len(scored) >= 2 else 0

    trend = [
        {"record_id": r.id, "score": r.overall_score, "date": r.created_at}
        for r in reversed(scored[:TREND_LENGTH])
    ]

    logger.info(f"Reports: Built ability report over {len(scored)} sessions (avg {avg_score})")
    return {
        "session_count": len(scored),
        "avg_score": avg_score,
        "dimensions": dimensions,
        "strengths": strengths,
        "weaknesses": weaknesses,
        "recent_trend": recent_trend,
        "trend": trend,
        "latest_feedback": scored[0].feedback,
    }


def session_history(records: Sequence[SessionRecord]) -> List[Dict[str, Any]]:
    """
    History list entries, newest first, each with the score change against
    the session before it (None for the oldest or for unscored records).
    """
    history = []
    for i, record in enumerate(records):
        entry = record.summary()
        entry.update(
            persona_label=_label(PERSONAS, record.persona),
            scenario_label=_label(SCENARIOS, record.scenario),
            difficulty_label=_label(DIFFICULTIES, record.difficulty),
            score_delta=_delta(record, records[i + 1] if i + 1 < len(records) else None),
        )
        history.append(entry)
    return history


def _delta(record: SessionRecord, previous: Optional[SessionRecord]) -> Optional[int]:
    if previous is None or record.overall_score is None or previous.overall_score is None:
        return None
    return record.overall_score - previous.overall_score
