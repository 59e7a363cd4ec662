"""Deterministic policy layer applied to any text touched by the model.

Rules are evaluated in action-priority order (block, auto_correct, flag)
against the current, possibly already corrected, text. A block stops the
evaluation on the spot; corrections chain into the rules that follow.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from replyguard.logging_config import get_logger
from replyguard.models import Rule
from replyguard.services.policies import (
    CORRECTION_TEMPLATES,
    DEFAULT_PATTERNS,
    OBJECTION_KEYWORDS,
    PolicyType,
    RuleAction,
    get_action_priority,
    get_severity,
    resolve_policy_type,
)

logger = get_logger("policy_engine")


@dataclass
class Violation:
    rule_id: Optional[str]
    rule_name: str
    rule_type: Optional[str]
    action: str
    pattern: str
    matched_text: str
    severity: str


@dataclass
class ValidationResult:
    passed: bool
    corrected_text: str
    violations: List[Violation] = field(default_factory=list)
    blocked: bool = False
    explanation: str = ""
    # One entry per evaluated rule, True when the rule did not match.
    rule_results: List[bool] = field(default_factory=list)


def match_pattern(text: str, pattern: str) -> Tuple[bool, str]:
    """Match a rule pattern as regex, or as a case-insensitive keyword when it is not valid regex."""
    try:
        compiled = re.compile(pattern)
    except re.error:
        index = text.lower().find(pattern.lower())
        if pattern and index >= 0:
            return True, text[index : index + len(pattern)]
        return False, ""

    match = compiled.search(text)
    if match:
        return True, match.group(0)
    return False, ""


def filter_active_rules(rules: Iterable[Rule]) -> List[Rule]:
    return [rule for rule in rules if rule.is_active]


def sort_rules_by_priority(rules: Sequence[Rule]) -> List[Rule]:
    # sorted() is stable, so equal priorities keep their relative order.
    return sorted(rules, key=lambda rule: get_action_priority(rule.action))


def generate_explanation(violations: Sequence[Violation]) -> str:
    if not violations:
        return ""
    if len(violations) == 1:
        v = violations[0]
        return f"Response blocked due to policy violation: {v.rule_name} (matched: {v.matched_text})"
    names = ", ".join(v.rule_name for v in violations)
    return f"Response blocked due to {len(violations)} policy violations: {names}"


def should_block(violations: Sequence[Violation]) -> bool:
    return any(v.action == RuleAction.BLOCK.value for v in violations)


class PolicyEngine:
    def correction_template_for(self, rule: Rule) -> str:
        if rule.correction_template:
            return rule.correction_template
        return CORRECTION_TEMPLATES.get(resolve_policy_type(rule.type, rule.name), "")

    def auto_correct(self, text: str, violation: Violation, template: str) -> str:
        """Replace the matched span with the template.

        Falls back to stripping the span, then to appending the template when
        the text would otherwise stay unchanged.
        """
        corrected = text
        if template and violation.matched_text:
            corrected = text.replace(violation.matched_text, template)
        if corrected == text and violation.matched_text:
            corrected = text.replace(violation.matched_text, "")
        if corrected == text and template:
            corrected = f"{text} {template}"
        return corrected

    def validate_output(self, text: str, rules: Iterable[Rule]) -> ValidationResult:
        result = ValidationResult(passed=True, corrected_text=text)

        ordered = sort_rules_by_priority(filter_active_rules(rules))
        if not ordered:
            return result

        corrected_text = text
        for rule in ordered:
            matched, matched_text = match_pattern(corrected_text, rule.pattern)
            result.rule_results.append(not matched)
            if not matched:
                continue

            violation = Violation(
                rule_id=str(rule.id) if rule.id is not None else None,
                rule_name=rule.name,
                rule_type=rule.type,
                action=rule.action,
                pattern=rule.pattern,
                matched_text=matched_text,
                severity=get_severity(rule.action).value,
            )
            result.violations.append(violation)
            logger.info(
                "Rule violation detected",
                extra={
                    "context": {
                        "rule_id": violation.rule_id,
                        "rule_name": violation.rule_name,
                        "action": violation.action,
                        "severity": violation.severity,
                        "matched": violation.matched_text,
                    }
                },
            )

            if rule.action == RuleAction.BLOCK.value:
                result.blocked = True
                result.passed = False
                result.corrected_text = corrected_text
                result.explanation = generate_explanation(result.violations)
                logger.warning(
                    "Response blocked",
                    extra={"context": {"rule_id": violation.rule_id, "violations": len(result.violations)}},
                )
                return result

            if rule.action == RuleAction.AUTO_CORRECT.value:
                corrected_text = self.auto_correct(corrected_text, violation, self.correction_template_for(rule))
                logger.info("Auto-correction applied", extra={"context": {"rule_id": violation.rule_id}})
            elif rule.action == RuleAction.FLAG.value:
                logger.info("Response flagged", extra={"context": {"rule_id": violation.rule_id}})

        result.corrected_text = corrected_text
        result.passed = not result.violations or not result.blocked
        if result.violations:
            result.explanation = (
                f"Response was auto-corrected due to {len(result.violations)} policy violation(s)"
            )
        return result

    def validate_objections(self, detected_objections: Iterable[str], conversation_text: str) -> List[str]:
        """Keep only objection categories corroborated by the conversation text."""
        lower_text = (conversation_text or "").lower()
        default_patterns = DEFAULT_PATTERNS[PolicyType.OBJECTION_CONFIRMATION]
        validated: List[str] = []

        for objection in detected_objections:
            keywords = OBJECTION_KEYWORDS.get(objection.lower())
            if keywords is None:
                if any(re.search(pattern, conversation_text or "") for pattern in default_patterns):
                    validated.append(objection)
                continue
            if any(keyword in lower_text for keyword in keywords):
                validated.append(objection)
            else:
                logger.info("Dropped uncorroborated objection", extra={"context": {"objection": objection}})

        return validated
