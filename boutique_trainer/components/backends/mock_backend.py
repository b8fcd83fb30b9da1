import json
import logging
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class MockBackend:
    """
    Offline backend for local runs: deterministic replies shaped like the real ones.
    """

    def __init__(self, model_name: str = "mock"):
        self.model_name = model_name
        self.calls: List[List[Dict[str, str]]] = []
        logger.info("MockBackend initialized")

    async def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.8,
        model: Optional[str] = None,
    ) -> Optional[str]:
        self.calls.append(messages)

        # persona generation is the only request made of a single system message
        if len(messages) == 1 and messages[0]["role"] == "system":
            return json.dumps(
                {
                    "name": "林女士",
                    "age": 38,
                    "occupation": "投资公司合伙人",
                    "background": "刚结束会议，路过门店进来看看",
                    "personality": "干练、挑剔",
                    "needs": "想要一只通勤也能用的经典款手袋",
                    "budget": "3–5 万元",
                    "objections": ["款式太常见"],
                    "buyingSignals": ["销售能讲清楚工艺与搭配"],
                    "leaveTriggers": ["销售只会报价格"],
                    "openingStatement": "你好，我想看看你们的经典款手袋。",
                },
                ensure_ascii=False,
            )

        last = messages[-1].get("content", "")
        if "评分维度" in last:
            return json.dumps(
                {
                    "overallScore": 78,
                    "dimensions": {
                        "needsDiscovery": 80,
                        "productKnowledge": 75,
                        "objectionHandling": 72,
                        "emotionalConnection": 82,
                        "closingSkill": 70,
                    },
                    "feedback": "开场自然，需求挖掘到位；成交引导可以更主动。",
                },
                ensure_ascii=False,
            )

        user_turns = sum(1 for m in messages if m["role"] == "user")
        if user_turns >= 6:
            return "好的，就要这一只吧。[PURCHASE]"
        return "嗯，可以再介绍一下吗？[CONTINUE]"
