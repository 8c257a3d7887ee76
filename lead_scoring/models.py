"""
Core data model for the lead intake engine.

Submissions and scoring results are immutable values. Team members are
mutable records owned by a roster store; callers only ever see copies.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class Qualification(Enum):
    """Coarse lead classification derived from the aggregate score."""
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class Availability(Enum):
    """Team member availability state."""
    AVAILABLE = "available"
    BUSY = "busy"
    OFFLINE = "offline"


class Priority(Enum):
    """Routing priority levels."""
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class AssignmentOutcome(Enum):
    """How a routing decision was reached."""
    ASSIGNED = "assigned"                    # Member named, capacity reserved
    HOT_OVERFLOW = "hot_overflow"            # Busy member took a HOT lead, capacity reserved
    DEGRADED_ASSIGNED = "degraded_assigned"  # Soft overflow, no capacity reserved
    QUEUED_AT_TEAM = "queued_at_team"        # No individual member yet


@dataclass(frozen=True)
class LeadSubmission:
    """Inbound contact-form submission."""
    name: str
    email: str
    case_type: str
    message: str = ""
    phone: Optional[str] = None
    preferred_contact: Optional[str] = None
    location: Optional[str] = None
    language: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "case_type": self.case_type,
            "message": self.message,
            "phone": self.phone,
            "preferred_contact": self.preferred_contact,
            "location": self.location,
            "language": self.language,
            "source": self.source,
        }


@dataclass(frozen=True)
class FactorScores:
    """Five independent sub-scores, each in [0, 100]."""
    urgency: int
    case_value: int
    completeness: int
    engagement: int
    timing: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "urgency": self.urgency,
            "case_value": self.case_value,
            "completeness": self.completeness,
            "engagement": self.engagement,
            "timing": self.timing,
        }


@dataclass(frozen=True)
class ScoredLead:
    """Lead score result."""
    submission: LeadSubmission
    factors: FactorScores
    aggregate_score: int  # 0-100
    qualification: Qualification
    estimated_value: int
    target_response_time: str
    case_category: str
    scored_at: datetime
    qualification_rule: str = ""
    qualification_override: bool = False
    signals: List[str] = field(default_factory=list)

    @property
    def language(self) -> Optional[str]:
        return self.submission.language

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "submission": self.submission.to_dict(),
            "factors": self.factors.to_dict(),
            "aggregate_score": self.aggregate_score,
            "qualification": self.qualification.value,
            "estimated_value": self.estimated_value,
            "target_response_time": self.target_response_time,
            "case_category": self.case_category,
            "scored_at": self.scored_at.isoformat(),
            "qualification_rule": self.qualification_rule,
            "qualification_override": self.qualification_override,
            "signals": list(self.signals),
        }


@dataclass
class TeamMember:
    """Team member record with capacity bookkeeping."""
    id: str
    name: str
    team: str
    max_load: int
    current_load: int = 0
    specialties: FrozenSet[str] = frozenset()
    languages: FrozenSet[str] = frozenset({"en"})
    availability: Availability = Availability.AVAILABLE

    def __post_init__(self):
        if self.max_load <= 0:
            raise ValueError(f"max_load must be positive for member {self.id}")
        if self.current_load < 0:
            raise ValueError(f"current_load cannot be negative for member {self.id}")
        self.specialties = frozenset(s.lower() for s in self.specialties)
        self.languages = frozenset(lang.lower() for lang in self.languages)

    @property
    def load_ratio(self) -> float:
        return self.current_load / self.max_load

    @property
    def has_capacity(self) -> bool:
        return self.current_load < self.max_load

    def copy(self) -> "TeamMember":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "team": self.team,
            "specialties": sorted(self.specialties),
            "languages": sorted(self.languages),
            "current_load": self.current_load,
            "max_load": self.max_load,
            "availability": self.availability.value,
        }


@dataclass(frozen=True)
class RoutingDecision:
    """Assignment of a lead to a team and, optionally, a member."""
    assigned_team: str
    outcome: AssignmentOutcome
    priority: Priority
    reason: str
    estimated_response_time: str
    alternative_teams: List[str] = field(default_factory=list)
    assigned_member_id: Optional[str] = None
    capacity_reserved: bool = False
    attempts: int = 1
    callback_required: bool = False
    special_instructions: str = ""
    decided_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def degraded(self) -> bool:
        """No member holds reserved capacity for this lead."""
        return self.outcome in (
            AssignmentOutcome.DEGRADED_ASSIGNED,
            AssignmentOutcome.QUEUED_AT_TEAM,
        )

    @property
    def flagged(self) -> bool:
        """True when the decision needs human follow-up."""
        return self.degraded or self.outcome == AssignmentOutcome.HOT_OVERFLOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assigned_team": self.assigned_team,
            "assigned_member_id": self.assigned_member_id,
            "outcome": self.outcome.value,
            "priority": self.priority.value,
            "reason": self.reason,
            "estimated_response_time": self.estimated_response_time,
            "alternative_teams": list(self.alternative_teams),
            "capacity_reserved": self.capacity_reserved,
            "degraded": self.degraded,
            "flagged": self.flagged,
            "attempts": self.attempts,
            "callback_required": self.callback_required,
            "special_instructions": self.special_instructions,
            "decided_at": self.decided_at.isoformat(),
        }
