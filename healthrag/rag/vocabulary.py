"""Fixed medical vocabularies used by the chunker, scorer and domain prefilter.

All terms are stored case-folded; callers compare against case-folded text.
"""
from typing import Tuple

# Queries must mention at least one of these to reach the vector index
DOMAIN_KEYWORDS: Tuple[str, ...] = (
    # Check-up indicators
    "白细胞", "血压", "血糖", "胆固醇", "肝功能", "肾功能", "心电图",
    "中性粒细胞", "淋巴细胞", "血红蛋白", "血小板", "尿酸", "甘油三酯",
    # Diseases
    "高血压", "糖尿病", "肝炎", "心脏病", "冠心病", "脂肪肝", "肾病",
    "贫血", "感染", "炎症", "肿瘤", "癌症",
    # Symptoms and signs
    "发热", "疼痛", "咳嗽", "胸闷", "头晕", "乏力", "水肿", "黄疸",
    # General medical terms
    "诊断", "治疗", "药物", "检查", "化验", "体检", "健康", "医学",
    "临床", "病理", "生理", "解剖", "免疫", "代谢",
)

# Each one present in both query and chunk earns a keyword bonus
SCORING_KEYWORDS: Tuple[str, ...] = (
    "血压", "测量", "时间", "黄金时间", "白细胞", "升高",
    "心电图", "异常", "心脏病", "胆固醇", "肝功能", "血糖",
)

QUESTION_MARKERS: Tuple[str, ...] = ("q:", "q1:", "q2:", "q3:", "问:", "问：")
ANSWER_MARKERS: Tuple[str, ...] = ("a:", "a1:", "a2:", "a3:", "答:", "答：")

REFERENCE_TERMS: Tuple[str, ...] = ("正常参考值", "正常范围", "参考范围")

ADVICE_TERMS: Tuple[str, ...] = ("建议", "注意")

CLINICAL_MODIFIERS: Tuple[str, ...] = (
    "升高", "降低", "异常", "正常", "建议", "注意", "可能",
)

# Substring of the source id -> knowledge type
KNOWLEDGE_TYPES: Tuple[Tuple[str, str], ...] = (
    ("liver", "LIVER"),
    ("cardiovascular", "CARDIOVASCULAR"),
    ("diabetes", "DIABETES"),
)
DEFAULT_KNOWLEDGE_TYPE = "GENERAL"


def contains_any(text: str, terms: Tuple[str, ...]) -> bool:
    """Return True if any term occurs in the (already case-folded) text."""
    return any(term in text for term in terms)


def knowledge_type_for(source_id: str) -> str:
    """Derive the knowledge type from a source identifier."""
    lowered = source_id.casefold()
    for marker, knowledge_type in KNOWLEDGE_TYPES:
        if marker in lowered:
            return knowledge_type
    return DEFAULT_KNOWLEDGE_TYPE
