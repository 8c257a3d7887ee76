"""
Repository classes for the lead intake data access layer.

Each repository encapsulates CRUD operations for a specific model.
SqlRosterStore implements the RosterStore contract on top of the
team_members table.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lead_scoring.exceptions import MemberNotFoundError, RosterUnavailableError
from lead_scoring.models import (
    Availability,
    FactorScores,
    LeadSubmission,
    Qualification,
    RoutingDecision,
    ScoredLead,
    TeamMember,
)
from lead_scoring.roster_store import RosterStore

from .models import TeamMemberRecord, Lead, LeadEvent, RoutingDecisionRecord

logger = logging.getLogger(__name__)


def _to_member(record: TeamMemberRecord) -> TeamMember:
    return TeamMember(
        id=record.id,
        name=record.name,
        team=record.team,
        max_load=record.max_load,
        current_load=record.current_load,
        specialties=frozenset(record.specialties_json or []),
        languages=frozenset(record.languages_json or []),
        availability=Availability(record.availability),
    )


def _to_scored_lead(record: Lead) -> ScoredLead:
    """Rebuild the scoring result stored with a lead."""
    return ScoredLead(
        submission=LeadSubmission(
            name=record.name,
            email=record.email,
            case_type=record.case_type,
            message=record.message or "",
            phone=record.phone,
            preferred_contact=record.preferred_contact,
            location=record.location,
            language=record.language,
            source=record.source,
        ),
        factors=FactorScores(**record.factors_json),
        aggregate_score=record.aggregate_score,
        qualification=Qualification(record.qualification),
        estimated_value=record.estimated_value,
        target_response_time=record.target_response_time or "",
        case_category=record.case_category,
        scored_at=record.scored_at or record.created_at,
        qualification_rule=record.qualification_rule or "",
        qualification_override=bool(record.qualification_override),
        signals=list(record.signals_json or []),
    )


class SqlRosterStore(RosterStore):
    """
    Roster store backed by the team_members table.

    Each call runs in its own short transaction. Capacity is reserved with
    a single conditional UPDATE, so concurrent reservations are serialized
    by the database and can never push current_load past max_load.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_team(self, team: str) -> List[TeamMember]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TeamMemberRecord)
                    .where(TeamMemberRecord.team == team)
                    .order_by(TeamMemberRecord.id)
                )
                return [_to_member(r) for r in result.scalars().all()]
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError(f"Failed to load team {team}", e) from e

    async def reserve_capacity(self, member_id: str) -> bool:
        stmt = (
            update(TeamMemberRecord)
            .where(
                TeamMemberRecord.id == member_id,
                TeamMemberRecord.current_load < TeamMemberRecord.max_load,
                TeamMemberRecord.availability != Availability.OFFLINE.value,
            )
            .values(current_load=TeamMemberRecord.current_load + 1)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError(f"Failed to reserve capacity for {member_id}", e) from e

    async def release_capacity(self, member_id: str) -> bool:
        stmt = (
            update(TeamMemberRecord)
            .where(TeamMemberRecord.id == member_id, TeamMemberRecord.current_load > 0)
            .values(current_load=TeamMemberRecord.current_load - 1)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError(f"Failed to release capacity for {member_id}", e) from e

    async def get_member(self, member_id: str) -> Optional[TeamMember]:
        try:
            async with self.session_factory() as session:
                record = await session.get(TeamMemberRecord, member_id)
                return _to_member(record) if record else None
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError(f"Failed to load member {member_id}", e) from e

    async def upsert_member(self, member: TeamMember) -> TeamMember:
        try:
            async with self.session_factory() as session:
                record = await session.get(TeamMemberRecord, member.id)
                if record is None:
                    record = TeamMemberRecord(id=member.id)
                    session.add(record)
                record.name = member.name
                record.team = member.team
                record.specialties_json = sorted(member.specialties)
                record.languages_json = sorted(member.languages)
                record.current_load = member.current_load
                record.max_load = member.max_load
                record.availability = member.availability.value
                await session.commit()
                return _to_member(record)
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError(f"Failed to save member {member.id}", e) from e

    async def set_availability(self, member_id: str, availability: Availability) -> TeamMember:
        try:
            async with self.session_factory() as session:
                record = await session.get(TeamMemberRecord, member_id)
                if record is None:
                    raise MemberNotFoundError(member_id)
                record.availability = availability.value
                await session.commit()
                return _to_member(record)
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError(f"Failed to update member {member_id}", e) from e

    async def list_teams(self) -> Dict[str, List[TeamMember]]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(TeamMemberRecord).order_by(TeamMemberRecord.team, TeamMemberRecord.id)
                )
                teams: Dict[str, List[TeamMember]] = {}
                for record in result.scalars().all():
                    teams.setdefault(record.team, []).append(_to_member(record))
                return teams
        except (SQLAlchemyError, OSError) as e:
            raise RosterUnavailableError("Failed to list teams", e) from e


class LeadRepository:
    """Data access for leads and lead events."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_from_score(self, scored: ScoredLead) -> Lead:
        submission = scored.submission
        lead = Lead(
            name=submission.name,
            email=submission.email,
            phone=submission.phone,
            preferred_contact=submission.preferred_contact,
            location=submission.location,
            source=submission.source,
            case_type=submission.case_type,
            case_category=scored.case_category,
            message=submission.message,
            language=submission.language,
            aggregate_score=scored.aggregate_score,
            qualification=scored.qualification.value,
            estimated_value=scored.estimated_value,
            factors_json=scored.factors.to_dict(),
            target_response_time=scored.target_response_time,
            qualification_rule=scored.qualification_rule,
            qualification_override=scored.qualification_override,
            signals_json=list(scored.signals),
            scored_at=scored.scored_at,
            status="scored",
        )
        self.session.add(lead)
        await self.session.flush()
        await self.add_event(lead.id, "scored", {
            "aggregate_score": scored.aggregate_score,
            "qualification": scored.qualification.value,
            "rule": scored.qualification_rule,
        })
        return lead

    async def get_by_id(self, lead_id: str) -> Optional[Lead]:
        result = await self.session.execute(select(Lead).where(Lead.id == lead_id))
        return result.scalar_one_or_none()

    async def mark_routed(self, lead_id: str, decision: RoutingDecision):
        await self.session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(
                status="routed",
                assigned_team=decision.assigned_team,
                assigned_member_id=decision.assigned_member_id,
            )
        )
        await self.add_event(lead_id, "routed", {
            "team": decision.assigned_team,
            "member": decision.assigned_member_id,
            "outcome": decision.outcome.value,
        })

    async def mark_pending(self, lead_id: str, error: str):
        await self.session.execute(
            update(Lead).where(Lead.id == lead_id).values(status="pending_routing")
        )
        await self.add_event(lead_id, "routing_failed", {"error": error})

    async def add_event(
        self, lead_id: str, event_type: str, details: Optional[Dict] = None
    ) -> LeadEvent:
        event = LeadEvent(lead_id=lead_id, event_type=event_type, details_json=details or {})
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(self, lead_id: str) -> List[LeadEvent]:
        result = await self.session.execute(
            select(LeadEvent)
            .where(LeadEvent.lead_id == lead_id)
            .order_by(LeadEvent.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_pending(self, limit: int = 100) -> List[Lead]:
        result = await self.session.execute(
            select(Lead)
            .where(Lead.status == "pending_routing")
            .order_by(Lead.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_pending_scored(self, limit: int = 100) -> List[Tuple[str, ScoredLead]]:
        """Pending leads with their scoring result, oldest first."""
        return [(lead.id, _to_scored_lead(lead)) for lead in await self.get_pending(limit)]

    async def count_by_qualification(self) -> Dict[str, int]:
        result = await self.session.execute(
            select(Lead.qualification, func.count(Lead.id)).group_by(Lead.qualification)
        )
        return {row[0]: row[1] for row in result.all()}


class RoutingDecisionRepository:
    """Data access for routing decisions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self, lead_id: str, decision: RoutingDecision, aggregate_score: Optional[float] = None
    ) -> RoutingDecisionRecord:
        record = RoutingDecisionRecord(
            lead_id=lead_id,
            assigned_team=decision.assigned_team,
            assigned_member_id=decision.assigned_member_id,
            outcome=decision.outcome.value,
            priority=decision.priority.value,
            reason=decision.reason,
            estimated_response_time=decision.estimated_response_time,
            alternative_teams_json=list(decision.alternative_teams),
            capacity_reserved=decision.capacity_reserved,
            attempts=decision.attempts,
            callback_required=decision.callback_required,
            special_instructions=decision.special_instructions,
            aggregate_score=aggregate_score,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_for_lead(self, lead_id: str) -> List[RoutingDecisionRecord]:
        result = await self.session.execute(
            select(RoutingDecisionRecord)
            .where(RoutingDecisionRecord.lead_id == lead_id)
            .order_by(RoutingDecisionRecord.created_at.asc())
        )
        return list(result.scalars().all())

    async def summary(self) -> Dict[str, Any]:
        by_team = await self.session.execute(
            select(RoutingDecisionRecord.assigned_team, func.count(RoutingDecisionRecord.id))
            .group_by(RoutingDecisionRecord.assigned_team)
        )
        by_outcome = await self.session.execute(
            select(RoutingDecisionRecord.outcome, func.count(RoutingDecisionRecord.id))
            .group_by(RoutingDecisionRecord.outcome)
        )
        return {
            "by_team": {row[0]: row[1] for row in by_team.all()},
            "by_outcome": {row[0]: row[1] for row in by_outcome.all()},
        }
