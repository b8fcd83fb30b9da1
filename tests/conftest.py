import json
from typing import Dict, List, Optional

import pytest

from boutique_trainer.components.errors import LLMRequestError
from boutique_trainer.components.llm import LLM


PERSONA_JSON = json.dumps(
    {
        "name": "王先生",
        "age": 45,
        "occupation": "企业主",
        "background": "给太太挑选结婚纪念日礼物",
        "personality": "果断，但讨厌被推销",
        "needs": "一只适合日常使用的手袋",
        "budget": "5 万元以内",
        "objections": ["担心太太不喜欢"],
        "buyingSignals": ["销售能给出搭配建议"],
        "leaveTriggers": ["被反复催促"],
        "openingStatement": "你好，我想给太太挑个礼物。",
    },
    ensure_ascii=False,
)

EVALUATION_JSON = json.dumps(
    {
        "overallScore": 82,
        "dimensions": {
            "needsDiscovery": 85,
            "productKnowledge": 80,
            "objectionHandling": 78,
            "emotionalConnection": 88,
            "closingSkill": 75,
        },
        "feedback": "需求挖掘充分，成交引导可以更果断。",
    },
    ensure_ascii=False,
)


class ScriptedBackend:
    """Returns queued replies in order; an Exception in the queue is raised instead."""

    model_name = "scripted"
    api_key = "test-key"

    def __init__(self, replies: Optional[List] = None):
        self.replies = list(replies or [])
        self.calls: List[Dict] = []

    async def generate(self, messages, temperature=0.8, model=None):
        self.calls.append({"messages": messages, "temperature": temperature, "model": model})
        if not self.replies:
            raise AssertionError("ScriptedBackend: no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def scripted():
    """Factory: scripted(reply1, reply2, ...) -> (LLM, backend)"""
    def _make(*replies):
        backend = ScriptedBackend(list(replies))
        return LLM(provider="mock", backend=backend), backend
    return _make


@pytest.fixture
def llm_failure():
    return LLMRequestError("Completion request failed: connection refused")


@pytest.fixture
def base_config_fields():
    return {
        "persona": "HNWI",
        "scenario": "FIRST_CONTACT",
        "difficulty": "BASIC",
        "brand": "Gucci",
    }
