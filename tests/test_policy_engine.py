import pytest

from conftest import make_rule
from replyguard.services.policies import (
    CORRECTION_TEMPLATES,
    PolicyType,
    Severity,
    get_action_priority,
    get_policy_priority,
    get_severity,
    resolve_policy_type,
)
from replyguard.services.policy_engine import (
    PolicyEngine,
    match_pattern,
    should_block,
    sort_rules_by_priority,
)


@pytest.fixture
def engine():
    return PolicyEngine()


class TestMatchPattern:
    def test_regex_match_returns_span(self):
        assert match_pattern("Get 50% off today", r"\d+% off") == (True, "50% off")

    def test_invalid_regex_falls_back_to_keyword(self):
        matched, span = match_pattern("This is the BEST (deal", "best (deal")

        assert matched is True
        assert span == "BEST (deal"

    def test_invalid_regex_without_match(self):
        assert match_pattern("nothing here", "[unclosed") == (False, "")


class TestPriorities:
    def test_action_priority(self):
        assert get_action_priority("block") == 1
        assert get_action_priority("auto_correct") == 2
        assert get_action_priority("flag") == 3
        assert get_action_priority("escalate") == 999
        assert get_action_priority(None) == 999

    def test_severity(self):
        assert get_severity("block") == Severity.CRITICAL
        assert get_severity("auto_correct") == Severity.HIGH
        assert get_severity("flag") == Severity.MEDIUM

    def test_sort_is_stable(self):
        flag_a = make_rule("a", "flag", name="flag-a")
        block = make_rule("b", "block", name="block")
        flag_b = make_rule("c", "flag", name="flag-b")
        correct = make_rule("d", "auto_correct", name="correct")

        ordered = sort_rules_by_priority([flag_a, block, flag_b, correct])

        assert [r.name for r in ordered] == ["block", "correct", "flag-a", "flag-b"]

    def test_policy_priority(self):
        assert get_policy_priority(PolicyType.NO_FALSE_CLAIMS) == 1
        assert get_policy_priority(PolicyType.OBJECTION_CONFIRMATION) == 5


class TestResolvePolicyType:
    def test_from_type_field(self):
        assert resolve_policy_type("no_unauthorized_discounts", "anything") == PolicyType.NO_UNAUTHORIZED_DISCOUNTS

    def test_from_name_keywords(self):
        assert resolve_policy_type(None, "No legal promises") == PolicyType.NO_LEGAL_PROMISES
        assert resolve_policy_type("", "Brand tone check") == PolicyType.BRAND_TONE_COMPLIANCE

    def test_default(self):
        assert resolve_policy_type(None, "misc") == PolicyType.NO_FALSE_CLAIMS


class TestValidateOutput:
    def test_block_scenario(self, engine):
        rules = [make_rule("guarantee", "block")]

        result = engine.validate_output("We guarantee results", rules)

        assert result.blocked is True
        assert result.passed is False
        assert len(result.violations) == 1
        assert result.violations[0].severity == "critical"
        assert "Response blocked due to policy violation" in result.explanation

    def test_block_halts_evaluation(self, engine):
        rules = [
            make_rule("results", "flag"),
            make_rule("guarantee", "block"),
            make_rule("We", "auto_correct", template="Our team"),
        ]

        result = engine.validate_output("We guarantee results", rules)

        assert result.blocked is True
        assert len(result.violations) == 1
        assert result.violations[0].action == "block"
        assert result.rule_results == [False]
        assert result.corrected_text == "We guarantee results"

    def test_auto_correct_scenario(self, engine):
        rules = [make_rule("50% off", "auto_correct", template="Let me check current pricing.")]

        result = engine.validate_output("Get 50% off today", rules)

        assert "Let me check current pricing." in result.corrected_text
        assert "50% off" not in result.corrected_text
        assert result.passed is True
        assert result.blocked is False
        assert "auto-corrected due to 1 policy violation(s)" in result.explanation

    def test_corrections_chain(self, engine):
        rules = [
            make_rule("100% guaranteed", "auto_correct", template="backed by our discount program"),
            make_rule("discount", "auto_correct", template="pricing"),
        ]

        result = engine.validate_output("It is 100% guaranteed to work", rules)

        # The second rule only matches text introduced by the first correction.
        assert result.corrected_text == "It is backed by our pricing program to work"
        assert len(result.violations) == 2
        assert result.rule_results == [False, False]

    def test_auto_correct_uses_policy_template_when_rule_has_none(self, engine):
        rules = [make_rule("discount", "auto_correct", type="no_unauthorized_discounts")]

        result = engine.validate_output("I can give you a discount", rules)

        assert CORRECTION_TEMPLATES[PolicyType.NO_UNAUTHORIZED_DISCOUNTS] in result.corrected_text
        assert "discount" not in result.corrected_text.replace(
            CORRECTION_TEMPLATES[PolicyType.NO_UNAUTHORIZED_DISCOUNTS], ""
        )

    def test_flag_records_without_mutating(self, engine):
        rules = [make_rule("crazy", "flag")]

        result = engine.validate_output("That is crazy good", rules)

        assert result.corrected_text == "That is crazy good"
        assert result.passed is True
        assert result.blocked is False
        assert result.violations[0].severity == "medium"

    def test_inactive_rules_are_ignored(self, engine):
        rules = [make_rule("guarantee", "block", is_active=False)]

        result = engine.validate_output("We guarantee results", rules)

        assert result.passed is True
        assert result.violations == []
        assert result.rule_results == []

    def test_rule_results_vector(self, engine):
        rules = [make_rule("refund", "flag"), make_rule("hello", "flag")]

        result = engine.validate_output("hello there", rules)

        assert result.rule_results == [True, False]

    def test_should_block(self, engine):
        result = engine.validate_output("We guarantee results", [make_rule("guarantee", "block")])
        assert should_block(result.violations) is True
        assert should_block([]) is False


class TestAutoCorrect:
    def test_strips_span_when_template_empty(self, engine):
        rules = [make_rule("really ", "auto_correct", type="objection_confirmation")]

        result = engine.validate_output("This is really great", rules)

        assert result.corrected_text == "This is great"


class TestValidateObjections:
    def test_keeps_corroborated_objections(self, engine):
        text = "customer: This seems too expensive and shipping is slow"

        validated = engine.validate_objections(["price", "delivery", "trust"], text)

        assert validated == ["price", "delivery"]

    def test_unknown_category_needs_default_pattern(self, engine):
        assert engine.validate_objections(["budget"], "customer: can I afford it?") == ["budget"]
        assert engine.validate_objections(["budget"], "customer: hello") == []
