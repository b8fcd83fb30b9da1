import asyncio
from unittest.mock import AsyncMock

import pytest

from boutique_trainer.components.errors import LLMRequestError
from boutique_trainer.llm_judge import LLMJudge, parse_llm_response
from boutique_trainer.llm_judge.parser import FALLBACK_DIMENSIONS, FALLBACK_OVERALL_SCORE
from boutique_trainer.llm_judge.prompt_builder import (
    SCORING_SYSTEM_PROMPT,
    build_scoring_prompt,
    format_transcript,
)

from conftest import EVALUATION_JSON


# ============ Tests for parser.py ============

def test_parse_valid_json():
    result = parse_llm_response(EVALUATION_JSON)
    assert result.overall_score == 82
    assert result.dimensions.needs_discovery == 85
    assert result.dimensions.closing_skill == 75
    assert result.feedback == "需求挖掘充分，成交引导可以更果断。"
    assert result.kb_insights is None


def test_parse_json_in_backticks():
    result = parse_llm_response(f"```json\n{EVALUATION_JSON}\n```")
    assert result.overall_score == 82


def test_parse_with_leading_text():
    result = parse_llm_response(f"评分如下：\n{EVALUATION_JSON}\n祝训练顺利。")
    assert result.dimensions.emotional_connection == 88


def test_parse_invalid_json_returns_fallback():
    raw = "整体表现不错，但缺少成交引导。"
    result = parse_llm_response(raw)
    assert result.overall_score == FALLBACK_OVERALL_SCORE == 70
    assert result.dimensions.model_dump(by_alias=True) == FALLBACK_DIMENSIONS
    assert result.feedback == raw


def test_parse_repairs_missing_and_out_of_range_values():
    raw = '{"dimensions": {"needsDiscovery": 120, "productKnowledge": "75", "objectionHandling": -5, "emotionalConnection": true}, "feedback": ["多提问", "少报价"]}'
    result = parse_llm_response(raw)
    dims = result.dimensions
    assert dims.needs_discovery == 100
    assert dims.product_knowledge == 75
    assert dims.objection_handling == 0
    assert dims.emotional_connection == FALLBACK_DIMENSIONS["emotionalConnection"]
    assert dims.closing_skill == FALLBACK_DIMENSIONS["closingSkill"]
    # overall = rounded mean of the repaired dimensions
    assert result.overall_score == round((100 + 75 + 0 + 60 + 68) / 5)
    assert result.feedback == "多提问\n少报价"


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity", "1e999", '"nan"'])
def test_parse_non_finite_scores_use_fallback(literal):
    raw = (
        f'{{"overallScore": {literal}, "dimensions": {{"needsDiscovery": {literal}, '
        f'"productKnowledge": 80, "objectionHandling": 70, "emotionalConnection": 90, "closingSkill": 60}}}}'
    )
    result = parse_llm_response(raw)
    assert result.dimensions.needs_discovery == FALLBACK_DIMENSIONS["needsDiscovery"]
    assert result.dimensions.product_knowledge == 80
    assert result.overall_score == round((60 + 80 + 70 + 90 + 60) / 5)


def test_parse_knowledge_insights():
    raw = '{"overallScore": 66, "dimensions": {}, "kbInsights": {"usedKnowledgeItems": ["离境退税"], "missingTopics": "not a list"}}'
    result = parse_llm_response(raw)
    assert result.kb_insights.used_knowledge_items == ["离境退税"]
    assert result.kb_insights.missing_topics == []


def test_evaluation_serializes_with_camel_case_keys():
    data = parse_llm_response(EVALUATION_JSON).model_dump(by_alias=True)
    assert data["overallScore"] == 82
    assert data["dimensions"]["objectionHandling"] == 78


# ============ Tests for prompt_builder.py ============

def test_format_transcript():
    messages = [
        {"role": "customer", "text": "你好"},
        {"role": "user", "text": "欢迎光临"},
    ]
    assert format_transcript(messages) == "顾客：你好\n销售：欢迎光临"


def test_scoring_prompt_lists_dimensions():
    prompt = build_scoring_prompt("销售：你好")
    for label in ("需求挖掘", "产品知识", "异议处理", "情绪连接", "成交引导"):
        assert label in prompt
    assert '"closingSkill": number' in prompt
    assert "kbInsights" not in prompt

    prompt = build_scoring_prompt("销售：你好", ["可办理离境退税"])
    assert "可办理离境退税" in prompt
    assert "kbInsights" in prompt


# ============ Tests for judge.py ============

@pytest.fixture
def sample_transcript():
    return [
        {"role": "customer", "text": "你好，我想看看手袋。"},
        {"role": "user", "text": "您好，欢迎光临，今天是想看日常通勤的款式吗？"},
        {"role": "customer", "text": "对，想要能装电脑的。"},
        {"role": "user", "text": "这款托特包可以放下 14 寸电脑，皮质也耐磨。"},
        {"role": "customer", "text": "好，就它了。"},
    ]


def test_judge_evaluate_success(scripted, sample_transcript):
    llm, backend = scripted(EVALUATION_JSON)
    result = asyncio.run(LLMJudge(llm).evaluate("s1", sample_transcript, model="moonshot-v1-32k"))

    assert result.overall_score == 82
    call = backend.calls[0]
    assert call["model"] == "moonshot-v1-32k"
    system, user = call["messages"]
    assert system == {"role": "system", "content": SCORING_SYSTEM_PROMPT}
    assert user["role"] == "user"
    assert "销售：这款托特包可以放下 14 寸电脑，皮质也耐磨。" in user["content"]
    assert "顾客：好，就它了。" in user["content"]


def test_judge_fallback_on_prose(sample_transcript):
    llm = AsyncMock()
    llm.complete.return_value = "对话整体流畅。"
    result = asyncio.run(LLMJudge(llm).evaluate("s1", sample_transcript))
    assert result.overall_score == 70
    assert result.feedback == "对话整体流畅。"


def test_judge_request_failure_propagates(sample_transcript, llm_failure):
    llm = AsyncMock()
    llm.complete.side_effect = llm_failure
    with pytest.raises(LLMRequestError):
        asyncio.run(LLMJudge(llm).evaluate("s1", sample_transcript))
