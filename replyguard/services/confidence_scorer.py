from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

CONTEXT_WEIGHT = 0.4
CONSISTENCY_WEIGHT = 0.3
RULE_WEIGHT = 0.2
SELF_EVAL_WEIGHT = 0.1

CONTEXT_FLOOR = 0.3
EMPTY_RULES_SCORE = 0.5
RULE_RATIO_FLOOR_BELOW = 0.5
RULE_RATIO_FLOOR = 0.3


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass
class ConfidenceInputs:
    # Conversation analysis snapshot (intent, sentiment, emotions, objections); None when not analysed yet.
    analysis: Optional[Any] = None
    context_scores: List[float] = field(default_factory=list)
    rule_results: List[bool] = field(default_factory=list)
    self_evaluation: float = 0.0


class ConfidenceScorer:
    """Combine retrieval quality, signal consistency, rule pass ratio and self-report."""

    def calculate_confidence(self, inputs: ConfidenceInputs) -> float:
        confidence = (
            self.context_relevance(inputs.context_scores) * CONTEXT_WEIGHT
            + self.signal_consistency(inputs.analysis) * CONSISTENCY_WEIGHT
            + self.rule_validation_ratio(inputs.rule_results) * RULE_WEIGHT
            + _clamp(float(inputs.self_evaluation or 0.0)) * SELF_EVAL_WEIGHT
        )
        return _clamp(confidence)

    def context_relevance(self, scores: Sequence[float]) -> float:
        if not scores:
            return CONTEXT_FLOOR
        average = sum(scores) / len(scores)
        return _clamp(max(average, CONTEXT_FLOOR))

    def signal_consistency(self, analysis: Optional[Any]) -> float:
        if analysis is None:
            return 0.0

        score = 1.0
        if len(analysis.objections or []) > 2:
            score -= 0.2
        # Contradictory signals.
        if analysis.sentiment == "positive" and analysis.intent == "complaint":
            score -= 0.3
        if analysis.sentiment == "negative" and analysis.intent == "buying":
            score -= 0.2
        # Many emotions usually means the analysis is confused.
        if len(analysis.emotions or []) > 3:
            score -= 0.1
        return max(score, 0.0)

    def rule_validation_ratio(self, rule_results: Sequence[bool]) -> float:
        if not rule_results:
            return EMPTY_RULES_SCORE
        ratio = sum(1 for passed in rule_results if passed) / len(rule_results)
        if ratio < RULE_RATIO_FLOOR_BELOW:
            return RULE_RATIO_FLOOR
        return ratio


def extract_context_scores(chunks: Iterable[dict]) -> List[float]:
    return [float(chunk.get("score") or 0.0) for chunk in chunks]
