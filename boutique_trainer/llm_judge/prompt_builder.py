from typing import Dict, List, Optional, Sequence

SCORING_SYSTEM_PROMPT = "你是奢侈品门店的专业训练教练，请对销售对话进行评分，并输出 JSON。"

# (json key, label) in rubric order
DIMENSIONS = [
    ("needsDiscovery", "需求挖掘"),
    ("productKnowledge", "产品知识"),
    ("objectionHandling", "异议处理"),
    ("emotionalConnection", "情绪连接"),
    ("closingSkill", "成交引导"),
]


def format_transcript(messages: List[Dict[str, str]]) -> str:
    """
    messages: [{"role": "user"|"customer", "text": "..."}]
    user turns are the salesperson (销售), everything else is the customer (顾客)
    """
    return "\n".join(
        f"{'销售' if m['role'] == 'user' else '顾客'}：{m['text']}"
        for m in messages
    )


def build_scoring_prompt(transcript: str, knowledge_items: Optional[Sequence[str]] = None) -> str:
    """
    User-side scoring request: the transcript, the five 0–100 dimensions and
    the JSON the model must return. With knowledge_items the model is also
    asked which of them the salesperson used (kbInsights).
    """
    dimension_lines = "\n".join(
        f"{i}. {label}（0–100）" for i, (_, label) in enumerate(DIMENSIONS, start=1)
    )
    dimension_schema = ",\n".join(f'    "{key}": number' for key, _ in DIMENSIONS)

    kb_section = ""
    kb_schema = ""
    if knowledge_items:
        kb_section = "\n本次训练要求销售运用的知识点：\n" + "\n".join(f"- {item}" for item in knowledge_items) + "\n"
        kb_schema = ',\n "kbInsights": {\n    "usedKnowledgeItems": ["已运用的知识点"],\n    "missingTopics": ["遗漏的知识点"]\n }'

    return f"""
请对以下销售对话评分：

{transcript}
{kb_section}
评分维度：
{dimension_lines}

请返回严格 JSON：
{{
 "overallScore": number,
 "dimensions": {{
{dimension_schema}
 }},
 "feedback": "文本建议"{kb_schema}
}}
"""
