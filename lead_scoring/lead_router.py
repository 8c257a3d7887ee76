"""
Lead Router for the lead intake engine.

Assigns scored leads to a team and, when capacity allows, to a specific
team member. Capacity is reserved through the roster store.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, List, Optional, Set, TypeVar

from .clock import Clock, SystemClock
from .exceptions import RosterUnavailableError
from .models import (
    AssignmentOutcome,
    Availability,
    Priority,
    Qualification,
    RoutingDecision,
    ScoredLead,
    TeamMember,
)
from .policy import DEFAULT_ROUTING_POLICY, RoutingPolicy
from .roster_store import RosterStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CandidateSelection:
    """Members eligible for a lead, or the soft-overflow fallback."""
    candidates: List[TeamMember] = field(default_factory=list)
    widened: bool = False  # Busy members admitted for a HOT lead
    overflow: Optional[TeamMember] = None  # Soft-overflow member when no candidate has room


@dataclass
class MemberRank:
    """Ranking score of one candidate."""
    member: TeamMember
    score: float
    specialty_match: bool
    language_match: bool


class LeadRouter:
    """
    Routes scored leads to teams and team members.

    Steps:
    1. Resolve the primary team and alternatives from the case category
    2. Select candidates (available with spare capacity; busy ones too for
       HOT leads; otherwise the least-loaded member as soft overflow)
    3. Rank candidates: 40*specialty + 30*language + 30*(1 - load ratio)
    4. Determine priority
    5. Compose the reason
    6. Reserve one unit of capacity, re-running selection on contention
    """

    def __init__(
        self,
        policy: RoutingPolicy = DEFAULT_ROUTING_POLICY,
        max_attempts: int = 5,
        roster_timeout: Optional[float] = 2.0,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the lead router.

        Args:
            policy: Routing tables and ranking weights
            max_attempts: Reservation attempts before queueing at team level
            roster_timeout: Seconds to wait on any single roster call (None = no limit)
            clock: Time source for decision timestamps
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.policy = policy
        self.max_attempts = max_attempts
        self.roster_timeout = roster_timeout
        self.clock = clock or SystemClock()
        self._compensations: Set[asyncio.Task] = set()

    async def route(self, lead: ScoredLead, roster: RosterStore) -> RoutingDecision:
        """
        Route a scored lead.

        Args:
            lead: Output of LeadScorer.score()
            roster: Roster store holding team capacity

        Returns:
            RoutingDecision. Saturation and contention produce flagged
            decisions rather than errors.

        Raises:
            RosterUnavailableError: the roster store failed or timed out
        """
        category = lead.case_category
        team = self.policy.team_for(category)
        alternatives = list(self.policy.alternatives_for(category))
        priority = self.determine_priority(lead)
        specialty = self.policy.specialty_for(category)
        language = (lead.language or self.policy.default_language).lower()

        for attempt in range(1, self.max_attempts + 1):
            members = await self._call(roster.get_team(team), f"get_team({team})")

            if not members:
                logger.warning(f"Team '{team}' has no members, lead queued at team level")
                return self._decision(
                    lead, team, alternatives, priority, AssignmentOutcome.QUEUED_AT_TEAM,
                    [f"No members on team {team}; queued at team level"], attempts=attempt,
                )

            selection = self.select_candidates(members, lead.qualification)

            if selection.overflow is not None:
                member = selection.overflow
                logger.warning(
                    f"Degraded assignment: team '{team}' saturated, soft overflow to "
                    f"{member.id} ({member.current_load}/{member.max_load}, {member.availability.value})"
                )
                return self._decision(
                    lead, team, alternatives, priority, AssignmentOutcome.DEGRADED_ASSIGNED,
                    [
                        "All members at capacity or unavailable; soft overflow to least-loaded member",
                        _load_fragment(member),
                    ],
                    member=member, attempts=attempt,
                )

            ranked = self.rank_candidates(selection.candidates, specialty, language)
            best = ranked[0]

            if await self._reserve(roster, best.member.id):
                outcome = AssignmentOutcome.HOT_OVERFLOW if best.member.availability == Availability.BUSY \
                    else AssignmentOutcome.ASSIGNED
                fragments = []
                if best.specialty_match:
                    fragments.append(f"Specialty match: {specialty}")
                if best.language_match:
                    fragments.append(f"Speaks {language}")
                fragments.append(_load_fragment(best.member))
                if outcome == AssignmentOutcome.HOT_OVERFLOW:
                    fragments.append("HOT lead assigned to busy member")

                decision = self._decision(
                    lead, team, alternatives, priority, outcome, fragments,
                    member=best.member, reserved=True, attempts=attempt,
                )
                logger.info(
                    f"Lead routed: team={team} member={best.member.id} "
                    f"priority={priority.value} outcome={outcome.value} score={best.score:.1f}"
                )
                return decision

            logger.warning(
                f"Capacity contention on {best.member.id} (attempt {attempt}/{self.max_attempts}), "
                f"re-running selection"
            )

        logger.warning(f"Reservation attempts exhausted for team '{team}', lead queued at team level")
        return self._decision(
            lead, team, alternatives, priority, AssignmentOutcome.QUEUED_AT_TEAM,
            [f"Capacity contention after {self.max_attempts} attempts; queued at team level"],
            attempts=self.max_attempts,
        )

    async def release(self, member_id: str, roster: RosterStore) -> bool:
        """
        Give back capacity reserved by an earlier decision.

        Used when the downstream handoff (CRM push, notification) fails.
        """
        released = await self._call(roster.release_capacity(member_id), f"release_capacity({member_id})")
        if released:
            logger.info(f"Capacity released for {member_id}")
        return released

    def select_candidates(
        self,
        members: List[TeamMember],
        qualification: Qualification,
    ) -> CandidateSelection:
        """Filter team members down to the ones that can take the lead."""
        candidates = [
            m for m in members
            if m.availability == Availability.AVAILABLE and m.has_capacity
        ]
        if candidates:
            return CandidateSelection(candidates=candidates)

        if qualification == Qualification.HOT:
            busy = [
                m for m in members
                if m.availability == Availability.BUSY and m.has_capacity
            ]
            if busy:
                return CandidateSelection(candidates=busy, widened=True)

        overflow = min(members, key=lambda m: (m.load_ratio, m.current_load, m.id))
        return CandidateSelection(overflow=overflow)

    def rank_candidates(
        self,
        candidates: List[TeamMember],
        specialty: str,
        language: str,
    ) -> List[MemberRank]:
        """
        Rank candidates best-first.

        Ties are broken by lowest current load, then member id.
        """
        p = self.policy
        ranks = []
        for member in candidates:
            specialty_match = specialty.lower() in member.specialties
            language_match = language.lower() in member.languages
            score = (
                p.specialty_weight * int(specialty_match)
                + p.language_weight * int(language_match)
                + p.load_weight * (1 - member.load_ratio)
            )
            ranks.append(MemberRank(member, score, specialty_match, language_match))

        ranks.sort(key=lambda r: (-r.score, r.member.current_load, r.member.id))
        return ranks

    def determine_priority(self, lead: ScoredLead) -> Priority:
        """Priority from urgency, qualification and aggregate score (first match wins)."""
        p = self.policy
        factors = lead.factors

        if factors.urgency >= p.urgent_urgency_threshold or lead.qualification == Qualification.HOT:
            return Priority.URGENT
        if lead.aggregate_score >= p.high_aggregate_threshold or factors.case_value >= p.high_case_value_threshold:
            return Priority.HIGH
        if lead.aggregate_score < p.low_aggregate_threshold or lead.qualification == Qualification.COLD:
            return Priority.LOW
        return Priority.NORMAL

    def requires_callback(self, lead: ScoredLead) -> bool:
        """Emergencies and sensitive practice areas get a call back from an attorney."""
        p = self.policy
        return lead.factors.urgency >= p.emergency_urgency or lead.case_category in p.callback_case_types

    def special_instructions(self, lead: ScoredLead) -> str:
        """Handling notes for the member who picks up the lead."""
        p = self.policy
        instructions = []

        if lead.factors.urgency >= p.emergency_urgency:
            instructions.append(p.emergency_instruction)
        elif lead.factors.urgency >= p.urgent_urgency_threshold:
            instructions.append(p.high_urgency_instruction)

        language = (lead.language or p.default_language).lower()
        if language in p.language_instructions:
            instructions.append(p.language_instructions[language])

        if lead.case_category in p.case_instructions:
            instructions.append(p.case_instructions[lead.case_category])

        return ". ".join(instructions)

    def _decision(
        self,
        lead: ScoredLead,
        team: str,
        alternatives: List[str],
        priority: Priority,
        outcome: AssignmentOutcome,
        fragments: List[str],
        member: Optional[TeamMember] = None,
        reserved: bool = False,
        attempts: int = 1,
    ) -> RoutingDecision:
        return RoutingDecision(
            assigned_team=team,
            assigned_member_id=member.id if member else None,
            outcome=outcome,
            priority=priority,
            reason=self._compose_reason(lead, team, fragments),
            estimated_response_time=self.policy.response_times[priority.value],
            alternative_teams=alternatives,
            capacity_reserved=reserved,
            attempts=attempts,
            callback_required=self.requires_callback(lead),
            special_instructions=self.special_instructions(lead),
            decided_at=self.clock.now(),
        )

    def _compose_reason(self, lead: ScoredLead, team: str, fragments: List[str]) -> str:
        p = self.policy
        parts = [f"{lead.qualification.value.upper()} {lead.case_category} lead to {team}"]
        if lead.qualification_override:
            parts.append(lead.qualification_rule)
        parts.extend(fragments)
        if lead.factors.urgency >= p.urgent_urgency_threshold:
            parts.append(f"High urgency ({lead.factors.urgency})")
        if lead.factors.case_value >= p.high_case_value_threshold:
            parts.append(f"High-value case ({lead.factors.case_value})")
        return "; ".join(parts)

    async def _call(self, awaitable: Awaitable[T], operation: str) -> T:
        """Await a roster call under the configured timeout."""
        try:
            if self.roster_timeout is None:
                return await awaitable
            return await asyncio.wait_for(awaitable, timeout=self.roster_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Roster store timed out on {operation}")
            raise RosterUnavailableError(f"Roster store timed out on {operation}", e) from e
        except OSError as e:
            logger.error(f"Roster store unreachable on {operation}: {e}")
            raise RosterUnavailableError(f"Roster store unreachable on {operation}", e) from e

    async def _reserve(self, roster: RosterStore, member_id: str) -> bool:
        """
        Reserve capacity with all-or-nothing semantics.

        The store call is shielded so that a cancelled or timed-out route()
        can still observe its result and undo a reservation that landed.
        """
        task = asyncio.ensure_future(roster.reserve_capacity(member_id))
        try:
            return await self._call(asyncio.shield(task), f"reserve_capacity({member_id})")
        except (asyncio.CancelledError, RosterUnavailableError):
            if task.done():
                if not task.cancelled() and task.exception() is None and task.result():
                    self._compensate(roster, member_id)
            else:
                task.add_done_callback(lambda t: self._on_late_reservation(t, roster, member_id))
            raise

    def _on_late_reservation(self, task: asyncio.Task, roster: RosterStore, member_id: str):
        if task.cancelled() or task.exception() is not None:
            return
        if task.result():
            self._compensate(roster, member_id)

    def _compensate(self, roster: RosterStore, member_id: str):
        logger.warning(f"Routing aborted after reserving {member_id}, releasing capacity")
        release = asyncio.ensure_future(roster.release_capacity(member_id))
        self._compensations.add(release)
        release.add_done_callback(self._compensations.discard)


def _load_fragment(member: TeamMember) -> str:
    return f"Load {member.current_load}/{member.max_load} ({member.load_ratio:.0%})"
