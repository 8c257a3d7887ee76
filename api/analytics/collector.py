"""
Routing analytics collector for the lead intake engine.

Keeps running totals of scored leads and routing decisions for the
analytics endpoint. Per-event metrics go to Prometheus separately.
"""

import logging
import threading
from collections import Counter
from typing import Any, Dict, List, Optional

from lead_scoring.models import RoutingDecision, ScoredLead, TeamMember

logger = logging.getLogger(__name__)


class AnalyticsCollector:
    """Collects and summarizes scoring and routing events."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self):
        with self._lock:
            self._scored = 0
            self._score_total = 0
            self._qualifications: Counter = Counter()
            self._routed = 0
            self._by_team: Counter = Counter()
            self._by_priority: Counter = Counter()
            self._by_outcome: Counter = Counter()
            self._by_language: Counter = Counter()
            self._degraded = 0
            self._flagged = 0
            self._roster_failures = 0

    def record_score(self, lead: ScoredLead):
        with self._lock:
            self._scored += 1
            self._score_total += lead.aggregate_score
            self._qualifications[lead.qualification.value] += 1
        logger.debug(
            f"Analytics: category={lead.case_category} score={lead.aggregate_score} "
            f"qualification={lead.qualification.value}"
        )

    def record_decision(self, lead: ScoredLead, decision: RoutingDecision, default_language: str = "en"):
        language = (lead.language or default_language).lower()
        with self._lock:
            self._routed += 1
            self._by_team[decision.assigned_team] += 1
            self._by_priority[decision.priority.value] += 1
            self._by_outcome[decision.outcome.value] += 1
            self._by_language[language] += 1
            if decision.degraded:
                self._degraded += 1
            if decision.flagged:
                self._flagged += 1
        logger.debug(
            f"Analytics: team={decision.assigned_team} outcome={decision.outcome.value} "
            f"priority={decision.priority.value}"
        )

    def record_roster_failure(self):
        with self._lock:
            self._roster_failures += 1

    def summary(self, teams: Optional[Dict[str, List[TeamMember]]] = None) -> Dict[str, Any]:
        """
        Build the analytics summary.

        Args:
            teams: Current roster grouped by team, for member utilization

        Returns:
            Totals, distributions and rates
        """
        with self._lock:
            summary = {
                "total_scored": self._scored,
                "total_routed": self._routed,
                "average_score": round(self._score_total / self._scored, 1) if self._scored else 0.0,
                "qualification_distribution": dict(self._qualifications),
                "team_distribution": dict(self._by_team),
                "priority_distribution": dict(self._by_priority),
                "outcome_distribution": dict(self._by_outcome),
                "language_distribution": dict(self._by_language),
                "degraded_rate": round(self._degraded / self._routed, 3) if self._routed else 0.0,
                "flagged_rate": round(self._flagged / self._routed, 3) if self._routed else 0.0,
                "roster_failures": self._roster_failures,
            }

        if teams is not None:
            summary["member_utilization"] = {
                member.id: round(member.load_ratio, 3)
                for members in teams.values()
                for member in members
            }
            summary["team_utilization"] = {
                team: round(
                    sum(m.current_load for m in members) / sum(m.max_load for m in members), 3
                )
                for team, members in teams.items()
                if members
            }
        return summary
