"""
Static training knowledge: customer personas, scenarios, difficulty levels and
brand / product-line / product facts embedded into the persona and dialogue
prompts. Also resolves a raw training configuration into a SessionConfig.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from .errors import ConfigValidationError
from .models import SessionConfig

logger = logging.getLogger(__name__)

# UI labels -> canonical codes
PERSONA_MAP: Dict[str, str] = {
    "高净值顾客": "HNWI",
    "旅游客": "TOURIST",
    "犹豫型顾客": "HESITANT",
    "礼物购买者": "GIFT",
    "价格敏感型顾客": "PRICE_SENSITIVE",
}

SCENARIO_MAP: Dict[str, str] = {
    "首次触达": "FIRST_CONTACT",
    "需求挖掘": "NEEDS_DISCOVERY",
    "异议处理": "OBJECTION_HANDLING",
    "成交推进": "CLOSING",
}

DIFFICULTY_MAP: Dict[str, str] = {
    "基础": "BASIC",
    "中级": "INTERMEDIATE",
    "高级": "ADVANCED",
}

PERSONAS: Dict[str, Dict[str, Any]] = {
    "HNWI": {
        "name": "高净值顾客",
        "profile": "经常购买奢侈品，熟悉多个品牌，注重专属感与服务细节，对价格不敏感但对品质要求极高。",
        "speech_style": "从容、简洁，偶尔带一点挑剔",
        "typical_objections": ["这个款式我好像已经有类似的了", "有没有更限量的版本"],
    },
    "TOURIST": {
        "name": "旅游客",
        "profile": "在旅行途中顺路进店，时间有限，关心退税、价格差异和携带是否方便。",
        "speech_style": "语速快，问题直接",
        "typical_objections": ["我回国买会不会更便宜", "我一会儿还要赶飞机"],
    },
    "HESITANT": {
        "name": "犹豫型顾客",
        "profile": "有购买意向但难以下决定，容易被细节困扰，需要反复确认。",
        "speech_style": "语气温和，经常说“我再想想”",
        "typical_objections": ["我再考虑一下", "这个颜色会不会不太百搭"],
    },
    "GIFT": {
        "name": "礼物购买者",
        "profile": "为家人、伴侣或上司挑选礼物，不太了解产品，关心寓意、包装和对方是否喜欢。",
        "speech_style": "礼貌，经常询问建议",
        "typical_objections": ["不知道他会不会喜欢", "如果不合适可以换吗"],
    },
    "PRICE_SENSITIVE": {
        "name": "价格敏感型顾客",
        "profile": "对价格非常在意，会比较不同渠道的价格和折扣，需要被说服价值。",
        "speech_style": "谨慎，常把话题拉回价格",
        "typical_objections": ["太贵了", "有没有折扣或者赠品"],
    },
}

SCENARIOS: Dict[str, Dict[str, Any]] = {
    "FIRST_CONTACT": {
        "name": "首次触达",
        "description": "顾客第一次进店，销售需要破冰、建立信任并引导顾客表达兴趣。",
        "customer_goal": "随便看看，判断这家店和这个销售值不值得花时间",
    },
    "NEEDS_DISCOVERY": {
        "name": "需求挖掘",
        "description": "顾客有模糊的需求，销售需要通过提问挖掘场合、预算、偏好。",
        "customer_goal": "找到适合自己场合的产品，但不会主动把需求说全",
    },
    "OBJECTION_HANDLING": {
        "name": "异议处理",
        "description": "顾客对价格、款式或售后有明确异议，销售需要化解顾虑。",
        "customer_goal": "确认自己的顾虑被认真对待并得到合理解释",
    },
    "CLOSING": {
        "name": "成交推进",
        "description": "顾客已经比较感兴趣，销售需要把握时机推动成交。",
        "customer_goal": "在被充分说服后再决定是否购买",
    },
}

DIFFICULTIES: Dict[str, Dict[str, Any]] = {
    "BASIC": {"name": "基础", "resistance": "low", "objections": 1, "patience": "high"},
    "INTERMEDIATE": {"name": "中级", "resistance": "medium", "objections": 2, "patience": "medium"},
    "ADVANCED": {"name": "高级", "resistance": "high", "objections": 3, "patience": "low"},
}

BRANDS: Dict[str, Dict[str, Any]] = {
    "Gucci": {
        "facts": [
            "1921 年创立于佛罗伦萨",
            "标志性元素：双 G 标识、绿红绿织带、竹节手柄",
        ],
        "product_lines": {
            "手袋": {
                "facts": ["经典系列与当季系列并行", "部分款式提供个性化刻字服务"],
                "products": [
                    "Jackie 1961 小号手袋：半月形轮廓，活塞扣设计",
                    "Horsebit 1955 肩背包：马衔扣五金，GG Supreme 帆布",
                ],
            },
            "成衣": {
                "facts": ["每季主题由创意总监发布", "提供改衣服务"],
                "products": ["GG 提花针织开衫", "马衔扣乐福鞋"],
            },
        },
    },
    "Balenciaga": {
        "facts": ["1917 年由 Cristóbal Balenciaga 创立", "以廓形与街头感设计闻名"],
        "product_lines": {
            "手袋": {
                "facts": ["机车包系列是品牌经典"],
                "products": ["Le City 手袋：羊皮材质，可拆卸镜子", "Hourglass 手袋：沙漏造型"],
            },
            "鞋履": {
                "facts": ["运动鞋系列销量高"],
                "products": ["Triple S 运动鞋", "Speed 袜靴"],
            },
        },
    },
    "Saint Laurent": {
        "facts": ["1961 年创立于巴黎", "YSL 交织字母标识"],
        "product_lines": {
            "手袋": {
                "facts": ["绗缝皮革工艺常见"],
                "products": ["Loulou 手袋：Y 字绗缝", "Sac de Jour 托特包"],
            },
        },
    },
    "Bottega Veneta": {
        "facts": ["1966 年创立于意大利维琴察", "Intrecciato 皮革编织工艺，低调无 Logo"],
        "product_lines": {
            "手袋": {
                "facts": ["编织工艺全部手工完成"],
                "products": ["Jodie 手袋：打结造型", "Cassette 斜挎包：宽编织"],
            },
        },
    },
    "Alexander McQueen": {
        "facts": ["1992 年创立于伦敦", "英伦剪裁与戏剧性设计"],
        "product_lines": {
            "鞋履": {
                "facts": ["厚底小白鞋为畅销单品"],
                "products": ["Oversized 厚底运动鞋"],
            },
        },
    },
}

# Extra knowledge items a course can attach to a session by id
KNOWLEDGE_BASE: Dict[str, str] = {
    "tax_refund": "境外游客单笔消费满一定金额可办理离境退税，需出示护照。",
    "care_service": "皮具提供免费基础保养，专业修复按项目收费。",
    "exchange_policy": "未使用且保留完整包装的商品 7 天内可换货，定制商品除外。",
    "gift_packaging": "可提供礼盒包装与手写贺卡，节日期间提供限定包装。",
    "vip_program": "年度消费达到门槛的顾客可受邀参加新品预览与私享活动。",
}


def _canonical(value: Optional[str], label_map: Dict[str, str], known: Iterable[str]) -> Optional[str]:
    """Map a UI label or a code (any case) to the canonical code, or None if unknown."""
    raw = (value or "").strip()
    if not raw:
        return None
    if raw in label_map:
        return label_map[raw]
    code = raw.upper()
    return code if code in known else None


def resolve_session_config(
    persona: Optional[str],
    scenario: Optional[str],
    difficulty: Optional[str],
    brand: Optional[str],
    product_line: Optional[str] = None,
    knowledge_base_ids: Optional[List[str]] = None,
    scoring_model: Optional[str] = None,
) -> SessionConfig:
    """
    Validate raw configuration fields and build a SessionConfig.

    Raises:
        ConfigValidationError: a required field is empty or names an unknown option
    """
    raw = {"persona": persona, "scenario": scenario, "difficulty": difficulty, "brand": brand}
    missing = [name for name, value in raw.items() if not (value or "").strip()]
    if missing:
        raise ConfigValidationError(missing=missing)

    persona_id = _canonical(persona, PERSONA_MAP, PERSONAS)
    scenario_id = _canonical(scenario, SCENARIO_MAP, SCENARIOS)
    difficulty_id = _canonical(difficulty, DIFFICULTY_MAP, DIFFICULTIES)

    invalid: Dict[str, str] = {}
    if persona_id is None:
        invalid["persona"] = persona
    if scenario_id is None:
        invalid["scenario"] = scenario
    if difficulty_id is None:
        invalid["difficulty"] = difficulty
    unknown_kb = [kb for kb in (knowledge_base_ids or []) if kb not in KNOWLEDGE_BASE]
    if unknown_kb:
        invalid["knowledge_base_ids"] = ",".join(unknown_kb)
    if invalid:
        raise ConfigValidationError(invalid=invalid)

    return SessionConfig(
        persona_id=persona_id,
        scenario_id=scenario_id,
        difficulty=difficulty_id,
        brand=brand.strip(),
        product_line=(product_line or "").strip() or None,
        knowledge_base_ids=tuple(knowledge_base_ids or ()),
        scoring_model=scoring_model or None,
    )


def brand_knowledge(brand: str) -> List[str]:
    info = BRANDS.get(brand)
    if not info:
        logger.warning(f"Knowledge: No brand facts for '{brand}', prompt will carry the brand name only")
        return []
    return list(info["facts"])


def product_line_knowledge(brand: str, product_line: Optional[str] = None) -> Dict[str, List[str]]:
    """Facts per product line; restricted to one line when product_line is given and known."""
    lines = BRANDS.get(brand, {}).get("product_lines", {})
    if product_line and product_line in lines:
        lines = {product_line: lines[product_line]}
    return {name: list(line["facts"]) for name, line in lines.items()}


def product_knowledge(brand: str, product_line: Optional[str] = None) -> List[str]:
    lines = BRANDS.get(brand, {}).get("product_lines", {})
    if product_line and product_line in lines:
        lines = {product_line: lines[product_line]}
    products: List[str] = []
    for line in lines.values():
        products.extend(line["products"])
    return products


def extra_knowledge(knowledge_base_ids: Iterable[str]) -> List[str]:
    return [KNOWLEDGE_BASE[kb] for kb in knowledge_base_ids if kb in KNOWLEDGE_BASE]
