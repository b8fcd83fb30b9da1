"""
Prompt building for the simulated boutique customer.

Two prompts per session:
- persona generation prompt: one system message asking the model for a JSON
  persona plus an opening line;
- dialogue prompt: the fixed system instruction reused on every turn, built
  from the resolved persona details.

Also owns the control-token protocol the customer uses to signal that the
conversation has ended ([PURCHASE] / [LEAVE] / [CONTINUE]).
"""
import logging
from typing import Dict, List, Optional, Tuple

from .knowledge import (
    DIFFICULTIES,
    PERSONAS,
    SCENARIOS,
    brand_knowledge,
    extra_knowledge,
    product_knowledge,
    product_line_knowledge,
)
from .models import DialogueReply, DialogueState, SessionConfig

logger = logging.getLogger(__name__)

PURCHASE_TOKEN = "[PURCHASE]"
LEAVE_TOKEN = "[LEAVE]"
CONTINUE_TOKEN = "[CONTINUE]"

# Checked in this order; the first token found wins.
STATE_TOKENS: Tuple[Tuple[str, DialogueState], ...] = (
    (PURCHASE_TOKEN, DialogueState.PURCHASED),
    (LEAVE_TOKEN, DialogueState.LEFT),
    (CONTINUE_TOKEN, DialogueState.NORMAL),
)

DEFAULT_OPENING_STATEMENT = "你好，我想看看产品。"

# Used when a turn arrives without a session-specific dialogue prompt
DIALOGUE_SYSTEM_PROMPT = (
    "你是一位走进奢侈品门店的顾客，正在和店内销售交谈。\n"
    "只以顾客身份回答，使用中文，每次 1–4 句话，不要列清单，不要解释规则。\n"
    f"每次回复末尾必须附加且只附加一个标记：决定购买时写 {PURCHASE_TOKEN}，"
    f"决定离开时写 {LEAVE_TOKEN}，否则写 {CONTINUE_TOKEN}。"
)


def _compact_list(xs: List[str]) -> str:
    """Compact list format for prompts: [item1; item2; item3]"""
    if not xs:
        return "[]"
    return "[" + "; ".join(xs) + "]"


def _knowledge_block(config: SessionConfig) -> str:
    brand_facts = brand_knowledge(config.brand)
    line_facts = product_line_knowledge(config.brand, config.product_line)
    products = product_knowledge(config.brand, config.product_line)
    extra = extra_knowledge(config.knowledge_base_ids)

    lines = [f"品牌：{config.brand}", f"品牌知识：{_compact_list(brand_facts)}"]
    for name, facts in line_facts.items():
        lines.append(f"产品线「{name}」：{_compact_list(facts)}")
    lines.append(f"产品知识：{_compact_list(products)}")
    if extra:
        lines.append(f"门店政策：{_compact_list(extra)}")
    return "\n".join(lines)


def _persona_line(persona_id: str) -> str:
    p = PERSONAS.get(persona_id, {"name": persona_id, "profile": "", "speech_style": "", "typical_objections": []})
    return (
        f"{p['name']} | {p['profile']} | 说话风格：{p['speech_style']} | "
        f"常见异议：{_compact_list(p['typical_objections'])}"
    )


def _scenario_line(scenario_id: str) -> str:
    s = SCENARIOS.get(scenario_id, {"name": scenario_id, "description": "", "customer_goal": ""})
    return f"{s['name']} | {s['description']} | 顾客目标：{s['customer_goal']}"


def _difficulty_line(difficulty: str) -> str:
    d = DIFFICULTIES.get(difficulty, {"name": difficulty, "resistance": "medium", "objections": 2, "patience": "medium"})
    return f"{d['name']} | 抗拒程度={d['resistance']} | 至少提出 {d['objections']} 个异议 | 耐心={d['patience']}"


def build_persona_generation_prompt(config: SessionConfig) -> str:
    """
    Build the single system-role prompt that asks the model for a customer persona.

    Args:
        config: validated session configuration

    Returns:
        Prompt text; the model is asked to answer with one JSON object whose
        "openingStatement" field is the customer's first line.
    """
    return (
        "你是奢侈品零售培训系统的顾客人设生成器。请根据以下信息生成一位真实可信的到店顾客。\n\n"
        f"顾客类型：{_persona_line(config.persona_id)}\n"
        f"训练场景：{_scenario_line(config.scenario_id)}\n"
        f"难度：{_difficulty_line(config.difficulty)}\n\n"
        "门店知识（顾客可能了解其中一部分，也可能有误解）：\n"
        f"{_knowledge_block(config)}\n\n"
        "请只返回一个 JSON 对象，不要 Markdown，不要额外说明，字段如下：\n"
        "{\n"
        '  "name": "顾客称呼",\n'
        '  "age": number,\n'
        '  "occupation": "职业",\n'
        '  "background": "到店背景",\n'
        '  "personality": "性格特点",\n'
        '  "needs": "真实需求（不会一开始全部说出）",\n'
        '  "budget": "预算范围",\n'
        '  "objections": ["可能提出的异议"],\n'
        '  "buyingSignals": ["在什么情况下会决定购买"],\n'
        '  "leaveTriggers": ["在什么情况下会离开"],\n'
        '  "openingStatement": "顾客进店后说的第一句话"\n'
        "}"
    )


def build_dialogue_prompt(persona_details: str, config: SessionConfig) -> str:
    """
    Build the fixed system instruction for every dialogue turn of a session.

    Args:
        persona_details: pretty-printed persona JSON, or the raw model text
            when the persona reply could not be parsed
        config: validated session configuration
    """
    return (
        "你现在扮演一位奢侈品门店的顾客，与门店销售进行对话。请始终保持下面的人设。\n\n"
        f"人设：\n{persona_details}\n\n"
        f"训练场景：{_scenario_line(config.scenario_id)}\n"
        f"难度：{_difficulty_line(config.difficulty)}\n\n"
        f"门店知识（用于判断销售介绍是否准确）：\n{_knowledge_block(config)}\n\n"
        "对话规则：\n"
        "1. 只以顾客身份回答，使用中文，每次 1–4 句话，不要列清单。\n"
        "2. 不要主动把需求一次说完，销售提问得好才逐步透露。\n"
        "3. 销售介绍错误或态度敷衍时，要表现出怀疑或不满。\n"
        "4. 不要解释规则，不要跳出角色。\n"
        f"5. 每次回复末尾必须附加且只附加一个标记：决定购买时写 {PURCHASE_TOKEN}，"
        f"决定离开时写 {LEAVE_TOKEN}，否则写 {CONTINUE_TOKEN}。"
    )


def to_model_history(messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """
    Convert transcript turns to chat-completion messages.

    user -> "user", customer -> "assistant"; order is preserved.
    """
    history = []
    for msg in messages:
        role = "user" if msg["role"] == "user" else "assistant"
        history.append({"role": role, "content": msg["text"]})
    return history


def extract_dialogue_state(raw: Optional[str]) -> DialogueReply:
    """
    Recover the dialogue state from a raw customer reply.

    The first token found in the checked order [PURCHASE] -> [LEAVE] ->
    [CONTINUE] decides the state; its first occurrence is removed and the text
    trimmed. Without any token the state is NORMAL and the text is unchanged.
    """
    text = raw or ""
    for token, state in STATE_TOKENS:
        if token in text:
            cleaned = text.replace(token, "", 1).strip()
            logger.debug(f"DialoguePrompts: Found control token {token} -> {state.value}")
            return DialogueReply(reply=cleaned, state=state)
    return DialogueReply(reply=text, state=DialogueState.NORMAL)
