"""
Service initialization and dependency injection for the lead intake API.

Creates and manages all service instances used by the API.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.settings import get_settings, Settings
from lead_scoring.clock import SystemClock
from lead_scoring.exceptions import RosterUnavailableError
from lead_scoring.lead_router import LeadRouter
from lead_scoring.models import LeadSubmission, RoutingDecision, ScoredLead
from lead_scoring.policy import DEFAULT_ROUTING_POLICY
from lead_scoring.roster_store import InMemoryRosterStore, RosterStore
from lead_scoring.scoring_model import LeadScorer
from roster_ingest.main import RosterSeeder

from .analytics.collector import AnalyticsCollector
from .middleware.metrics import record_lead_score, record_roster_failure, record_routing

logger = logging.getLogger(__name__)


@dataclass
class IntakeResult:
    """Outcome of one intake call."""
    lead_id: str
    lead: ScoredLead
    decision: Optional[RoutingDecision] = None
    error: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self.decision is None


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.lead_scorer: Optional[LeadScorer] = None
        self.lead_router: Optional[LeadRouter] = None
        self.roster: Optional[RosterStore] = None
        self.analytics = AnalyticsCollector()
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self.pending: "OrderedDict[str, ScoredLead]" = OrderedDict()
        self._initialized = False

    def initialize(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        roster: Optional[RosterStore] = None,
    ):
        """Initialize all services."""
        if self._initialized:
            return

        self.settings = get_settings()
        self.session_factory = session_factory
        self._init_lead_scoring()
        self._init_roster(roster)
        self._initialized = True
        logger.info("All services initialized successfully")

    def _init_lead_scoring(self):
        """Initialize scorer and router from settings."""
        s = self.settings
        clock = SystemClock(s.business_timezone)

        policy = replace(
            DEFAULT_ROUTING_POLICY,
            specialty_weight=s.ranking_specialty_weight,
            language_weight=s.ranking_language_weight,
            load_weight=s.ranking_load_weight,
            default_language=s.default_language,
        )
        self.lead_scorer = LeadScorer(clock=clock)
        self.lead_router = LeadRouter(
            policy=policy,
            max_attempts=s.max_reservation_attempts,
            roster_timeout=s.roster_timeout_seconds,
            clock=clock,
        )
        logger.info(f"Lead scoring services ready (timezone {s.business_timezone})")

    def _init_roster(self, roster: Optional[RosterStore]):
        """Select the roster backend."""
        if roster is not None:
            self.roster = roster
        elif self.settings.uses_database_roster and self.session_factory is not None:
            from database.repositories import SqlRosterStore
            self.roster = SqlRosterStore(self.session_factory)
        else:
            if self.settings.uses_database_roster:
                logger.warning("Database roster requested but no database configured, using in-memory roster")
            self.roster = InMemoryRosterStore()
        logger.info(f"Roster store ready: {type(self.roster).__name__}")

    async def seed_roster(self, file_path: Optional[str] = None) -> int:
        """Load the configured roster seed file into the roster store."""
        file_path = file_path or self.settings.roster_seed_file
        if not file_path:
            return 0
        members = await RosterSeeder(self.roster).seed_file(file_path)
        return len(members)

    # ── Intake ───────────────────────────────────────────────────

    def score(self, submission: LeadSubmission) -> ScoredLead:
        lead = self.lead_scorer.score(submission)
        record_lead_score(lead.aggregate_score, lead.qualification.value)
        self.analytics.record_score(lead)
        return lead

    async def intake(self, submission: LeadSubmission) -> IntakeResult:
        """
        Score and route a submission.

        When the roster store is unavailable the lead is kept in the
        pending queue and the result carries the error instead of a
        decision.
        """
        lead = self.score(submission)
        lead_id = await self._persist_lead(lead)
        return await self._route(lead_id, lead)

    async def retry_pending(self) -> List[IntakeResult]:
        """
        Re-route pending leads in arrival order. Stops at the first roster failure.

        A lead is taken off the queue before it is routed, so overlapping
        retries never route the same lead twice.
        """
        results = []
        for lead_id in list(self.pending):
            lead = self.pending.pop(lead_id, None)
            if lead is None:
                continue
            result = await self._route(lead_id, lead)
            results.append(result)
            if result.pending:
                self.pending.move_to_end(lead_id, last=False)
                break
        return results

    async def restore_pending(self) -> int:
        """Reload leads left as pending_routing by an earlier run."""
        if self.session_factory is None:
            return 0

        from database.repositories import LeadRepository
        try:
            async with self.session_factory() as session:
                stored = await LeadRepository(session).get_pending_scored()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load pending leads: {e}")
            return 0

        restored = 0
        for lead_id, lead in stored:
            if lead_id not in self.pending:
                self.pending[lead_id] = lead
                restored += 1
        return restored

    async def _route(self, lead_id: str, lead: ScoredLead) -> IntakeResult:
        try:
            decision = await self.lead_router.route(lead, self.roster)
        except RosterUnavailableError as e:
            logger.error(f"Lead {lead_id} kept pending: {e}")
            record_roster_failure()
            self.analytics.record_roster_failure()
            self.pending[lead_id] = lead
            await self._persist_failure(lead_id, str(e))
            return IntakeResult(lead_id=lead_id, lead=lead, error=str(e))

        self.pending.pop(lead_id, None)
        record_routing(decision.assigned_team, decision.outcome.value, decision.attempts)
        self.analytics.record_decision(lead, decision, self.lead_router.policy.default_language)
        await self._persist_decision(lead_id, lead, decision)
        return IntakeResult(lead_id=lead_id, lead=lead, decision=decision)

    # ── Persistence (lead event trail) ───────────────────────────

    async def _persist_lead(self, lead: ScoredLead) -> str:
        if self.session_factory is None:
            return str(uuid.uuid4())

        from database.repositories import LeadRepository
        try:
            async with self.session_factory() as session:
                record = await LeadRepository(session).create_from_score(lead)
                await session.commit()
                return record.id
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist scored lead: {e}")
            return str(uuid.uuid4())

    async def _persist_decision(self, lead_id: str, lead: ScoredLead, decision: RoutingDecision):
        if self.session_factory is None:
            return

        from database.repositories import LeadRepository, RoutingDecisionRepository
        try:
            async with self.session_factory() as session:
                await LeadRepository(session).mark_routed(lead_id, decision)
                await RoutingDecisionRepository(session).record(lead_id, decision, lead.aggregate_score)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist routing decision for lead {lead_id}: {e}")

    async def _persist_failure(self, lead_id: str, error: str):
        if self.session_factory is None:
            return

        from database.repositories import LeadRepository
        try:
            async with self.session_factory() as session:
                await LeadRepository(session).mark_pending(lead_id, error)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record routing failure for lead {lead_id}: {e}")

    async def persisted_summary(self) -> Optional[Dict]:
        """Lead and decision totals from the database, or None without one."""
        if self.session_factory is None:
            return None

        from database.repositories import LeadRepository, RoutingDecisionRepository
        try:
            async with self.session_factory() as session:
                summary = await RoutingDecisionRepository(session).summary()
                summary["by_qualification"] = await LeadRepository(session).count_by_qualification()
                return summary
        except SQLAlchemyError as e:
            logger.error(f"Failed to load persisted routing summary: {e}")
            return None

    async def record_release(self, lead_id: str, member_id: str):
        if self.session_factory is None:
            return

        from database.repositories import LeadRepository
        try:
            async with self.session_factory() as session:
                await LeadRepository(session).add_event(lead_id, "capacity_released", {"member": member_id})
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to record capacity release for lead {lead_id}: {e}")

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.roster is not None

    def health(self) -> Dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "lead_scoring": self.lead_scorer is not None,
            "lead_routing": self.lead_router is not None,
            "roster_backend": type(self.roster).__name__ if self.roster else None,
            "database": self.session_factory is not None,
            "pending_leads": len(self.pending),
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    roster: Optional[RosterStore] = None,
):
    """Initialize all services (called at startup)."""
    _services.initialize(session_factory=session_factory, roster=roster)


def reset_services():
    """Replace the singleton with a fresh container (used by tests)."""
    global _services
    _services = Services()
    return _services
