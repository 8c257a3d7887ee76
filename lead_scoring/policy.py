"""
Scoring and routing policy tables.

Every lookup table, keyword list, weight and threshold the engine uses
lives here as an immutable value injected into LeadScorer / LeadRouter.
Tests swap in their own policies with dataclasses.replace().
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple

# Fallback for labels not in the tables; every table lookup then uses its default
DEFAULT_CATEGORY = "other"

# Short and Spanish labels used by the intake forms
CASE_TYPE_ALIASES = MappingProxyType({
    "pi": "personal_injury",
    "injury": "personal_injury",
    "lesiones_personales": "personal_injury",
    "accidente": "personal_injury",
    "workers_comp": "workers_compensation",
    "workers_compensation": "workers_compensation",
    "compensacion_laboral": "workers_compensation",
    "criminal": "criminal_defense",
    "defensa_criminal": "criminal_defense",
    "inmigracion": "immigration",
    "family": "family_law",
    "derecho_familiar": "family_law",
    "traffic_violations": "traffic",
    "trafico": "traffic",
    "general": "general_inquiry",
})

_SEPARATORS = re.compile(r"[\s\-/]+")


def _frozen(mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class ScoringPolicy:
    """Tables and constants for LeadScorer."""

    weights: Mapping[str, float] = field(default_factory=lambda: _frozen({
        "urgency": 0.25,
        "case_value": 0.30,
        "completeness": 0.15,
        "engagement": 0.20,
        "timing": 0.10,
    }))

    # Urgency
    critical_keywords: Tuple[str, ...] = (
        "arrested", "in jail", "detained", "emergency", "life threatening",
        "life-threatening", "serious injury", "seriously injured",
        "immigration raid", "deportation order", "court tomorrow", "hearing tomorrow",
        "arrestado", "detenido", "emergencia",
    )
    elevated_keywords: Tuple[str, ...] = (
        "urgent", "asap", "immediately", "right away", "accident", "injured",
        "hospital", "court", "deadline", "police", "hurt", "today",
        "deport", "custody", "fired", "denied", "warrant", "urgente",
    )
    urgency_baseline: int = 50
    urgency_keyword_increment: int = 15
    urgency_keyword_cap: int = 95
    urgent_case_types: Tuple[str, ...] = ("personal_injury", "criminal_defense", "immigration")
    urgent_case_bonus: int = 10

    # Case value
    case_values: Mapping[str, int] = field(default_factory=lambda: _frozen({
        "personal_injury": 90,
        "workers_compensation": 85,
        "criminal_defense": 80,
        "immigration": 75,
        "family_law": 70,
        "traffic": 50,
        "general_inquiry": 30,
    }))
    default_case_value: int = 50

    # Completeness
    completeness_baseline: int = 40
    phone_points: int = 20
    preferred_contact_points: int = 10
    location_points: int = 20
    message_length_points: Tuple[Tuple[int, int], ...] = ((100, 5), (300, 5))

    # Engagement
    engagement_baseline: int = 30
    engagement_length_points: Tuple[Tuple[int, int], ...] = ((50, 10), (150, 10), (300, 10))
    specificity_keywords: Tuple[str, ...] = (
        "when", "where", "how much", "date", "happened", "insurance",
        "police report", "medical", "doctor", "employer", "witness",
        "documents", "visa", "ticket", "contract", "settlement",
    )
    specificity_increment: int = 5
    specificity_cap: int = 20
    question_increment: int = 5
    question_cap: int = 10

    # Timing, by local hour of day
    business_hours: Tuple[int, int] = (9, 17)
    evening_hours: Tuple[int, int] = (17, 21)
    early_morning_hours: Tuple[int, int] = (6, 9)
    timing_weekday_business: int = 100
    timing_weekend_business: int = 70
    timing_evening: int = 80
    timing_late_night: int = 85
    timing_early_morning: int = 60

    # Qualification
    urgency_override_threshold: int = 90
    urgency_override_min_aggregate: int = 60
    value_override_threshold: int = 85
    value_override_min_aggregate: int = 70
    hot_threshold: int = 75
    warm_threshold: int = 50

    # Estimated value
    base_values: Mapping[str, int] = field(default_factory=lambda: _frozen({
        "personal_injury": 15000,
        "workers_compensation": 8000,
        "criminal_defense": 5000,
        "family_law": 4000,
        "immigration": 3500,
        "traffic": 750,
        "general_inquiry": 500,
    }))
    default_base_value: int = 2500
    urgency_value_threshold: int = 80
    urgency_value_multiplier: float = 1.2
    engagement_value_threshold: int = 70
    engagement_value_multiplier: float = 1.1

    response_times: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "hot": "15 minutes",
        "warm": "1 hour",
        "cold": "24 hours",
    }))

    def normalize_case_type(self, case_type: str) -> str:
        """
        Map a free-form case type label onto a known category key.

        "Personal Injury", "personal-injury" and "lesiones personales" all
        become "personal_injury". Unknown labels become DEFAULT_CATEGORY.
        """
        if not case_type:
            return DEFAULT_CATEGORY
        key = _SEPARATORS.sub("_", case_type.strip().lower()).strip("_")
        key = CASE_TYPE_ALIASES.get(key, key)
        if key in self.case_values:
            return key
        return DEFAULT_CATEGORY


@dataclass(frozen=True)
class RoutingPolicy:
    """Tables and constants for LeadRouter."""

    teams: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "personal_injury": "personal_injury",
        "workers_compensation": "workers_compensation",
        "criminal_defense": "criminal_defense",
        "immigration": "immigration",
        "family_law": "family_law",
        "traffic": "criminal_defense",
        "general_inquiry": "intake",
    }))
    default_team: str = "intake"

    alternatives: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: _frozen({
        "personal_injury": ("workers_compensation", "intake"),
        "workers_compensation": ("personal_injury", "intake"),
        "criminal_defense": ("intake",),
        "immigration": ("family_law", "intake"),
        "family_law": ("immigration", "intake"),
        "traffic": ("intake",),
        "general_inquiry": ("personal_injury", "immigration"),
    }))

    # Case category -> specialty tag expected on a member; defaults to the category
    specialties: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "general_inquiry": "intake",
        "other": "intake",
    }))

    specialty_weight: float = 40.0
    language_weight: float = 30.0
    load_weight: float = 30.0
    default_language: str = "en"

    urgent_urgency_threshold: int = 90
    high_aggregate_threshold: int = 70
    high_case_value_threshold: int = 85
    low_aggregate_threshold: int = 40

    response_times: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "urgent": "15 minutes",
        "high": "1 hour",
        "normal": "4 hours",
        "low": "24 hours",
    }))

    # Handoff notes for whoever picks up the lead
    emergency_urgency: int = 100
    callback_case_types: Tuple[str, ...] = ("criminal_defense", "immigration")
    emergency_instruction: str = "EMERGENCY - Prioritize immediate assistance"
    high_urgency_instruction: str = "HIGH PRIORITY - Respond promptly and professionally"
    language_instructions: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "es": "Spanish-speaking client - Conduct call in Spanish",
    }))
    case_instructions: Mapping[str, str] = field(default_factory=lambda: _frozen({
        "criminal_defense": "Criminal case - Be sensitive about legal situation, emphasize confidentiality",
        "immigration": "Immigration case - Be culturally sensitive, check documentation status carefully",
        "personal_injury": "Personal injury - Ask about injuries and medical treatment, express sympathy",
        "workers_compensation": "Workers comp - Ask about workplace injury details and employer information",
    }))

    def team_for(self, category: str) -> str:
        return self.teams.get(category, self.default_team)

    def alternatives_for(self, category: str) -> Tuple[str, ...]:
        primary = self.team_for(category)
        return tuple(t for t in self.alternatives.get(category, ()) if t != primary)

    def specialty_for(self, category: str) -> str:
        return self.specialties.get(category, category)


DEFAULT_SCORING_POLICY = ScoringPolicy()
DEFAULT_ROUTING_POLICY = RoutingPolicy()
