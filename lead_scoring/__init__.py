"""
Lead Scoring Module for the lead intake engine.

This module provides lead qualification and routing capabilities:
- Multi-factor scoring (urgency, case value, completeness, engagement, timing)
- Qualification (HOT, WARM, COLD) with override rules
- Team and member routing with atomic capacity reservation
"""

from .clock import Clock, SystemClock, FixedClock
from .exceptions import LeadEngineError, RosterUnavailableError, MemberNotFoundError
from .models import (
    LeadSubmission,
    FactorScores,
    ScoredLead,
    Qualification,
    TeamMember,
    Availability,
    Priority,
    AssignmentOutcome,
    RoutingDecision,
)
from .policy import (
    ScoringPolicy,
    RoutingPolicy,
    DEFAULT_SCORING_POLICY,
    DEFAULT_ROUTING_POLICY,
    DEFAULT_CATEGORY,
)
from .roster_store import RosterStore, InMemoryRosterStore
from .scoring_model import LeadScorer
from .lead_router import LeadRouter, CandidateSelection, MemberRank

__all__ = [
    "Clock",
    "SystemClock",
    "FixedClock",
    "LeadEngineError",
    "RosterUnavailableError",
    "MemberNotFoundError",
    "LeadSubmission",
    "FactorScores",
    "ScoredLead",
    "Qualification",
    "TeamMember",
    "Availability",
    "Priority",
    "AssignmentOutcome",
    "RoutingDecision",
    "ScoringPolicy",
    "RoutingPolicy",
    "DEFAULT_SCORING_POLICY",
    "DEFAULT_ROUTING_POLICY",
    "DEFAULT_CATEGORY",
    "RosterStore",
    "InMemoryRosterStore",
    "LeadScorer",
    "LeadRouter",
    "CandidateSelection",
    "MemberRank",
]
