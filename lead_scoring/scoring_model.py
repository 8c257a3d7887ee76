"""
Lead Scoring Model for the lead intake engine.

Rule-based scoring of contact-form submissions: five factor scores, a
weighted aggregate, a qualification tier, an estimated case value and a
target response time.
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Tuple

from .clock import Clock, SystemClock
from .models import FactorScores, LeadSubmission, Qualification, ScoredLead
from .policy import DEFAULT_SCORING_POLICY, ScoringPolicy

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (for value >= 0)."""
    return int(math.floor(value + 0.5))


def clamp(value: float, low: int = 0, high: int = 100) -> int:
    return int(max(low, min(high, value)))


class LeadScorer:
    """
    Scores lead submissions.

    Factors (each 0-100):
    - urgency: critical keyword -> 100, else 50 + 15 per elevated keyword
      (cap 95) + 10 for inherently urgent case types (cap 100)
    - case_value: static table lookup, 50 for unknown categories
    - completeness: 40 + optional contact fields + message length
    - engagement: 30 + message length + specificity keywords + questions
    - timing: step function of the local hour and weekday

    Aggregate = round(0.25u + 0.30v + 0.15c + 0.20e + 0.10t)

    Qualification (first match wins):
    - urgency == 100                  -> HOT
    - urgency >= 90 and aggregate >= 60 -> HOT
    - case_value >= 85 and aggregate >= 70 -> HOT
    - aggregate >= 75 -> HOT, >= 50 -> WARM, else COLD

    The scorer holds no mutable state and is safe to share across tasks.
    """

    def __init__(
        self,
        policy: ScoringPolicy = DEFAULT_SCORING_POLICY,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the lead scorer.

        Args:
            policy: Scoring tables and thresholds
            clock: Time source for the timing factor (system clock by default)
        """
        self.policy = policy
        self.clock = clock or SystemClock()

    def score(self, submission: LeadSubmission) -> ScoredLead:
        """
        Score a submission.

        Args:
            submission: Inbound contact-form submission

        Returns:
            ScoredLead with factor breakdown and qualification
        """
        now = self.clock.now()
        category = self.policy.normalize_case_type(submission.case_type)
        message = submission.message or ""
        signals: List[str] = []

        urgency, critical = self._score_urgency(message, category, signals)
        factors = FactorScores(
            urgency=urgency,
            case_value=self._score_case_value(category),
            completeness=self._score_completeness(submission, message),
            engagement=self._score_engagement(message, signals),
            timing=self._score_timing(now),
        )

        aggregate = self.aggregate(factors)
        qualification, rule, override = self.qualify(factors, aggregate, critical)
        signals.append(rule)

        estimated_value = self._estimate_value(category, factors)
        response_time = self.policy.response_times[qualification.value]

        if critical:
            logger.info(f"Critical keyword in {category} lead: urgency forced to 100")

        return ScoredLead(
            submission=submission,
            factors=factors,
            aggregate_score=aggregate,
            qualification=qualification,
            estimated_value=estimated_value,
            target_response_time=response_time,
            case_category=category,
            scored_at=now,
            qualification_rule=rule,
            qualification_override=override,
            signals=signals,
        )

    def aggregate(self, factors: FactorScores) -> int:
        """Weighted sum of the factor scores, rounded half-up."""
        w = self.policy.weights
        total = (
            factors.urgency * w["urgency"]
            + factors.case_value * w["case_value"]
            + factors.completeness * w["completeness"]
            + factors.engagement * w["engagement"]
            + factors.timing * w["timing"]
        )
        return clamp(round_half_up(total))

    def qualify(
        self, factors: FactorScores, aggregate: int, critical: bool = False
    ) -> Tuple[Qualification, str, bool]:
        """
        Apply the ordered qualification rules.

        A critical keyword makes the lead HOT regardless of the aggregate.

        Returns:
            (qualification, description of the rule that fired, whether an
            override rule fired rather than a plain threshold)
        """
        p = self.policy

        if critical:
            return Qualification.HOT, "Critical urgency override", True

        if factors.urgency >= p.urgency_override_threshold and aggregate >= p.urgency_override_min_aggregate:
            return Qualification.HOT, "High urgency override", True

        if factors.case_value >= p.value_override_threshold and aggregate >= p.value_override_min_aggregate:
            return Qualification.HOT, "High case value override", True

        if aggregate >= p.hot_threshold:
            return Qualification.HOT, f"Aggregate {aggregate} >= {p.hot_threshold}", False

        if aggregate >= p.warm_threshold:
            return Qualification.WARM, f"Aggregate {aggregate} >= {p.warm_threshold}", False

        return Qualification.COLD, f"Aggregate {aggregate} < {p.warm_threshold}", False

    def _score_urgency(self, message: str, category: str, signals: List[str]) -> Tuple[int, bool]:
        """Get urgency score and whether a critical keyword fired."""
        p = self.policy
        text = message.lower()

        for keyword in p.critical_keywords:
            if keyword in text:
                signals.append(f"Critical keyword: {keyword}")
                return 100, True

        score = p.urgency_baseline
        matched = [kw for kw in p.elevated_keywords if kw in text]
        if matched:
            score += p.urgency_keyword_increment * len(matched)
            signals.append(f"Urgency keywords: {', '.join(matched)}")
        score = min(score, p.urgency_keyword_cap)

        if category in p.urgent_case_types:
            score += p.urgent_case_bonus
            signals.append(f"Time-sensitive case type: {category}")

        return clamp(score), False

    def _score_case_value(self, category: str) -> int:
        return clamp(self.policy.case_values.get(category, self.policy.default_case_value))

    def _score_completeness(self, submission: LeadSubmission, message: str) -> int:
        p = self.policy
        score = p.completeness_baseline

        if _present(submission.phone):
            score += p.phone_points
        if _present(submission.preferred_contact):
            score += p.preferred_contact_points
        if _present(submission.location):
            score += p.location_points

        for threshold, points in p.message_length_points:
            if len(message) > threshold:
                score += points

        return clamp(score)

    def _score_engagement(self, message: str, signals: List[str]) -> int:
        p = self.policy
        text = message.lower()
        score = p.engagement_baseline

        for threshold, points in p.engagement_length_points:
            if len(message) > threshold:
                score += points

        matched = [kw for kw in p.specificity_keywords if kw in text]
        if matched:
            score += min(p.specificity_increment * len(matched), p.specificity_cap)
            signals.append(f"Specific details: {', '.join(matched)}")

        questions = message.count("?")
        if questions:
            score += min(p.question_increment * questions, p.question_cap)

        return clamp(score)

    def _score_timing(self, now: datetime) -> int:
        p = self.policy
        hour = now.hour
        weekend = now.weekday() >= 5

        if p.business_hours[0] <= hour < p.business_hours[1]:
            return p.timing_weekend_business if weekend else p.timing_weekday_business
        if p.evening_hours[0] <= hour < p.evening_hours[1]:
            return p.timing_evening
        if p.early_morning_hours[0] <= hour < p.early_morning_hours[1]:
            return p.timing_early_morning
        return p.timing_late_night

    def _estimate_value(self, category: str, factors: FactorScores) -> int:
        p = self.policy
        value = float(p.base_values.get(category, p.default_base_value))

        if factors.urgency >= p.urgency_value_threshold:
            value *= p.urgency_value_multiplier
        if factors.engagement >= p.engagement_value_threshold:
            value *= p.engagement_value_multiplier

        return round_half_up(value)


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())
