from dataclasses import dataclass
from enum import Enum


class PolicyType(str, Enum):
    NO_FALSE_CLAIMS = "no_false_claims"
    NO_UNAUTHORIZED_DISCOUNTS = "no_unauthorized_discounts"
    NO_LEGAL_PROMISES = "no_legal_promises"
    BRAND_TONE_COMPLIANCE = "brand_tone_compliance"
    OBJECTION_CONFIRMATION = "objection_confirmation"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RuleAction(str, Enum):
    BLOCK = "block"
    AUTO_CORRECT = "auto_correct"
    FLAG = "flag"


ACTION_PRIORITY = {
    RuleAction.BLOCK.value: 1,
    RuleAction.AUTO_CORRECT.value: 2,
    RuleAction.FLAG.value: 3,
}
UNKNOWN_ACTION_PRIORITY = 999

ACTION_SEVERITY = {
    RuleAction.BLOCK.value: Severity.CRITICAL,
    RuleAction.AUTO_CORRECT.value: Severity.HIGH,
    RuleAction.FLAG.value: Severity.MEDIUM,
}


@dataclass(frozen=True)
class PolicyMetadata:
    type: PolicyType
    name: str
    description: str
    severity: Severity
    priority: int


DEFAULT_POLICIES = (
    PolicyMetadata(
        PolicyType.NO_FALSE_CLAIMS,
        "No False Claims",
        "Prevents false or unsubstantiated claims about products or services",
        Severity.HIGH,
        1,
    ),
    PolicyMetadata(
        PolicyType.NO_UNAUTHORIZED_DISCOUNTS,
        "No Unauthorized Discounts",
        "Prevents offering discounts without authorization",
        Severity.CRITICAL,
        2,
    ),
    PolicyMetadata(
        PolicyType.NO_LEGAL_PROMISES,
        "No Legal/Financial Promises",
        "Prevents making legal or financial promises",
        Severity.CRITICAL,
        3,
    ),
    PolicyMetadata(
        PolicyType.BRAND_TONE_COMPLIANCE,
        "Brand Tone Compliance",
        "Ensures responses match brand tone guidelines",
        Severity.MEDIUM,
        4,
    ),
    PolicyMetadata(
        PolicyType.OBJECTION_CONFIRMATION,
        "Objection Detection Confirmation",
        "Validates AI-detected objections against keyword patterns",
        Severity.LOW,
        5,
    ),
)

DEFAULT_PATTERNS = {
    PolicyType.NO_FALSE_CLAIMS: [
        r"(?i)\b(guaranteed|100%|always|never fails|best ever)\b",
        r"(?i)\b(will definitely|absolutely|without doubt)\b",
    ],
    PolicyType.NO_UNAUTHORIZED_DISCOUNTS: [
        r"(?i)\b(discount|% off|save \$\d+|special price|reduced price)\b",
        r"(?i)\b(50%|75%|90% off|free shipping|no cost)\b",
    ],
    PolicyType.NO_LEGAL_PROMISES: [
        r"(?i)\b(guarantee|warranty|refund policy|money back)\b",
        r"(?i)\b(legal|lawsuit|contract|agreement|binding)\b",
        r"(?i)\b(we promise|we guarantee|we will pay)\b",
    ],
    PolicyType.BRAND_TONE_COMPLIANCE: [
        r"(?i)\b(crazy|insane|ridiculous|stupid|dumb)\b",
        r"(?i)\b(swear words|profanity)\b",
    ],
    PolicyType.OBJECTION_CONFIRMATION: [
        r"(?i)\b(price|expensive|cost|cheaper|afford)\b",
        r"(?i)\b(trust|reliable|reputation|credible)\b",
        r"(?i)\b(delivery|shipping|time|wait)\b",
        r"(?i)\b(competitor|alternative|better option|other company)\b",
    ],
}

CORRECTION_TEMPLATES = {
    PolicyType.NO_FALSE_CLAIMS: "I'd be happy to share more information about our product features and benefits.",
    PolicyType.NO_UNAUTHORIZED_DISCOUNTS: "Let me check with our team about current pricing and promotions.",
    PolicyType.NO_LEGAL_PROMISES: (
        "I can provide information about our standard policies. "
        "For specific legal matters, please consult with our legal team."
    ),
    PolicyType.BRAND_TONE_COMPLIANCE: "Let me rephrase that in a more professional manner.",
    PolicyType.OBJECTION_CONFIRMATION: "",
}

# Keywords that must appear in the conversation before an AI-claimed objection is kept.
OBJECTION_KEYWORDS = {
    "price": ["price", "expensive", "cost", "cheaper", "afford"],
    "trust": ["trust", "reliable", "reputation", "credible"],
    "delivery": ["delivery", "shipping", "time", "wait"],
    "competitor": ["competitor", "alternative", "better option", "other company"],
}

_TYPE_ALIASES = {
    "no_false_claims": PolicyType.NO_FALSE_CLAIMS,
    "false_claims": PolicyType.NO_FALSE_CLAIMS,
    "no_unauthorized_discounts": PolicyType.NO_UNAUTHORIZED_DISCOUNTS,
    "unauthorized_discounts": PolicyType.NO_UNAUTHORIZED_DISCOUNTS,
    "no_legal_promises": PolicyType.NO_LEGAL_PROMISES,
    "legal_promises": PolicyType.NO_LEGAL_PROMISES,
    "brand_tone_compliance": PolicyType.BRAND_TONE_COMPLIANCE,
    "brand_tone": PolicyType.BRAND_TONE_COMPLIANCE,
    "objection_confirmation": PolicyType.OBJECTION_CONFIRMATION,
    "objection": PolicyType.OBJECTION_CONFIRMATION,
}

_NAME_KEYWORDS = (
    (("false", "claim"), PolicyType.NO_FALSE_CLAIMS),
    (("discount",), PolicyType.NO_UNAUTHORIZED_DISCOUNTS),
    (("legal", "promise"), PolicyType.NO_LEGAL_PROMISES),
    (("tone", "brand"), PolicyType.BRAND_TONE_COMPLIANCE),
    (("objection",), PolicyType.OBJECTION_CONFIRMATION),
)


def get_action_priority(action: str | None) -> int:
    return ACTION_PRIORITY.get(action or "", UNKNOWN_ACTION_PRIORITY)


def get_severity(action: str | None) -> Severity:
    return ACTION_SEVERITY.get(action or "", Severity.LOW)


def get_policy_priority(policy_type: PolicyType) -> int:
    for policy in DEFAULT_POLICIES:
        if policy.type == policy_type:
            return policy.priority
    return UNKNOWN_ACTION_PRIORITY


def resolve_policy_type(rule_type: str | None, rule_name: str | None) -> PolicyType:
    """Policy type from the rule's type field, then from keywords in its name."""
    by_type = _TYPE_ALIASES.get((rule_type or "").strip().lower())
    if by_type:
        return by_type

    lower_name = (rule_name or "").lower()
    for keywords, policy_type in _NAME_KEYWORDS:
        if any(keyword in lower_name for keyword in keywords):
            return policy_type

    return PolicyType.NO_FALSE_CLAIMS
