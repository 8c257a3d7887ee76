"""Tests for the lead router."""

import asyncio
from dataclasses import replace

import pytest

from lead_scoring.clock import FixedClock
from lead_scoring.exceptions import RosterUnavailableError
from lead_scoring.lead_router import LeadRouter
from lead_scoring.models import AssignmentOutcome, Availability, Priority, Qualification, RoutingDecision
from lead_scoring.policy import DEFAULT_ROUTING_POLICY
from lead_scoring.roster_store import InMemoryRosterStore

from conftest import WEEKDAY_MORNING, make_lead, make_member


@pytest.fixture
def router():
    return LeadRouter(clock=FixedClock(WEEKDAY_MORNING))


class ContendedRosterStore(InMemoryRosterStore):
    """Another caller saturates the chosen member right before our reservation lands."""

    def __init__(self, members, steal: int = 1):
        super().__init__(members)
        self.steal = steal
        self.reserve_calls = 0

    async def reserve_capacity(self, member_id):
        self.reserve_calls += 1
        if self.steal > 0:
            self.steal -= 1
            member = self._members[member_id]
            member.current_load = member.max_load
            return False
        return await super().reserve_capacity(member_id)


class AlwaysContendedRosterStore(InMemoryRosterStore):
    async def reserve_capacity(self, member_id):
        return False


class BrokenRosterStore(InMemoryRosterStore):
    def __init__(self, error):
        super().__init__()
        self.error = error

    async def get_team(self, team):
        raise self.error


class SlowRosterStore(InMemoryRosterStore):
    def __init__(self, members, team_delay: float = 0.0, reserve_delay: float = 0.0):
        super().__init__(members)
        self.team_delay = team_delay
        self.reserve_delay = reserve_delay
        self.reserve_started = asyncio.Event()

    async def get_team(self, team):
        await asyncio.sleep(self.team_delay)
        return await super().get_team(team)

    async def reserve_capacity(self, member_id):
        self.reserve_started.set()
        await asyncio.sleep(self.reserve_delay)
        return await super().reserve_capacity(member_id)


# ── Team resolution ───────────────────────────────────

class TestTeamResolution:
    @pytest.mark.parametrize("category,team", [
        ("personal_injury", "personal_injury"),
        ("workers_compensation", "workers_compensation"),
        ("criminal_defense", "criminal_defense"),
        ("traffic", "criminal_defense"),
        ("immigration", "immigration"),
        ("family_law", "family_law"),
        ("general_inquiry", "intake"),
        ("other", "intake"),
    ])
    def test_primary_team(self, category, team):
        assert DEFAULT_ROUTING_POLICY.team_for(category) == team

    def test_alternatives_are_ordered(self):
        assert DEFAULT_ROUTING_POLICY.alternatives_for("personal_injury") == ("workers_compensation", "intake")
        assert DEFAULT_ROUTING_POLICY.alternatives_for("immigration") == ("family_law", "intake")

    def test_alternatives_for_unknown_category(self):
        assert DEFAULT_ROUTING_POLICY.alternatives_for("other") == ()


# ── Candidate selection ───────────────────────────────

class TestCandidateSelection:
    def test_filters_unavailable_and_full(self, router):
        members = [
            make_member("a", current_load=5),
            make_member("b", availability=Availability.BUSY),
            make_member("c", availability=Availability.OFFLINE),
            make_member("d", current_load=4),
        ]
        selection = router.select_candidates(members, Qualification.HOT)
        assert [m.id for m in selection.candidates] == ["d"]
        assert not selection.widened

    def test_hot_lead_widens_to_busy(self, router):
        members = [
            make_member("a", current_load=5),
            make_member("b", availability=Availability.BUSY, current_load=2),
            make_member("c", availability=Availability.OFFLINE),
        ]
        selection = router.select_candidates(members, Qualification.HOT)
        assert [m.id for m in selection.candidates] == ["b"]
        assert selection.widened

    def test_warm_lead_does_not_widen(self, router):
        members = [
            make_member("a", current_load=5),
            make_member("b", availability=Availability.BUSY, current_load=2),
        ]
        selection = router.select_candidates(members, Qualification.WARM)
        assert selection.candidates == []
        assert selection.overflow.id == "b"

    def test_soft_overflow_ignores_availability(self, router):
        members = [
            make_member("a", current_load=5, max_load=5),
            make_member("b", availability=Availability.OFFLINE, current_load=0, max_load=3),
        ]
        selection = router.select_candidates(members, Qualification.COLD)
        assert selection.overflow.id == "b"

    def test_soft_overflow_tie_breaks_on_load_then_id(self, router):
        members = [
            make_member("z", current_load=4, max_load=4, availability=Availability.BUSY),
            make_member("y", current_load=2, max_load=2, availability=Availability.OFFLINE),
            make_member("x", current_load=2, max_load=2, availability=Availability.OFFLINE),
        ]
        selection = router.select_candidates(members, Qualification.HOT)
        assert selection.overflow.id == "x"


# ── Ranking ───────────────────────────────────────────

class TestRanking:
    def test_specialist_wins_when_languages_match(self, router):
        specialist = make_member("specialist", current_load=4, max_load=5, specialties=("personal_injury",))
        generalist = make_member("generalist", current_load=0, max_load=5, specialties=())

        ranked = router.rank_candidates([generalist, specialist], "personal_injury", "en")

        # 40 + 30 + 30 * (1 - 4/5) = 76 vs 0 + 30 + 30 = 60
        assert ranked[0].member.id == "specialist"
        assert ranked[0].score == pytest.approx(76)
        assert ranked[1].score == pytest.approx(60)

    def test_generalist_wins_when_specialist_lacks_language(self, router):
        specialist = make_member(
            "specialist", current_load=4, max_load=5, specialties=("personal_injury",), languages=("en",),
        )
        generalist = make_member("generalist", current_load=0, max_load=5, specialties=(), languages=("en", "es"))

        ranked = router.rank_candidates([specialist, generalist], "personal_injury", "es")

        # 40 + 0 + 6 = 46 vs 0 + 30 + 30 = 60
        assert ranked[0].member.id == "generalist"
        assert ranked[0].score == pytest.approx(60)
        assert ranked[1].score == pytest.approx(46)
        assert not ranked[1].language_match

    def test_ties_break_on_lowest_load_then_id(self):
        flat = replace(DEFAULT_ROUTING_POLICY, specialty_weight=0, language_weight=0, load_weight=0)
        router = LeadRouter(policy=flat, clock=FixedClock(WEEKDAY_MORNING))
        members = [
            make_member("c", current_load=3),
            make_member("b", current_load=1),
            make_member("a", current_load=1),
        ]
        ranked = router.rank_candidates(members, "personal_injury", "en")
        assert [r.member.id for r in ranked] == ["a", "b", "c"]

    def test_specialty_match_is_case_insensitive(self, router):
        member = make_member("a", specialties=("Personal_Injury",), languages=("EN",))
        rank = router.rank_candidates([member], "personal_injury", "en")[0]
        assert rank.specialty_match
        assert rank.language_match


# ── Priority ──────────────────────────────────────────

class TestPriority:
    def test_high_urgency_is_urgent(self, router):
        assert router.determine_priority(make_lead(urgency=90, case_value=30, aggregate=55)) == Priority.URGENT

    def test_hot_is_urgent(self, router):
        lead = make_lead(qualification=Qualification.HOT, urgency=50, aggregate=76)
        assert router.determine_priority(lead) == Priority.URGENT

    def test_high_aggregate(self, router):
        assert router.determine_priority(make_lead(aggregate=72, case_value=70)) == Priority.HIGH

    def test_high_case_value(self, router):
        assert router.determine_priority(make_lead(aggregate=55, case_value=85)) == Priority.HIGH

    def test_low_aggregate(self, router):
        assert router.determine_priority(make_lead(aggregate=35, case_value=30)) == Priority.LOW

    def test_cold_is_low(self, router):
        lead = make_lead(qualification=Qualification.COLD, aggregate=45, case_value=30)
        assert router.determine_priority(lead) == Priority.LOW

    def test_normal(self, router):
        assert router.determine_priority(make_lead(aggregate=55, case_value=70)) == Priority.NORMAL


# ── Routing ───────────────────────────────────────────

class TestRoute:
    @pytest.mark.asyncio
    async def test_assigns_best_candidate(self, router, roster_store):
        decision = await router.route(make_lead(), roster_store)

        assert decision.outcome == AssignmentOutcome.ASSIGNED
        assert decision.assigned_team == "personal_injury"
        assert decision.assigned_member_id == "alice"
        assert decision.capacity_reserved
        assert not decision.degraded
        assert not decision.flagged
        assert decision.priority == Priority.HIGH
        assert decision.estimated_response_time == "1 hour"
        assert decision.alternative_teams == ["workers_compensation", "intake"]
        assert decision.decided_at == WEEKDAY_MORNING
        assert (await roster_store.get_member("alice")).current_load == 2

    @pytest.mark.asyncio
    async def test_reason_lists_fired_rules(self, router, roster_store):
        decision = await router.route(make_lead(), roster_store)
        assert decision.reason.startswith("WARM personal_injury lead to personal_injury")
        assert "Specialty match: personal_injury" in decision.reason
        assert "Speaks en" in decision.reason
        assert "Load 1/5 (20%)" in decision.reason
        assert "High-value case (90)" in decision.reason

    @pytest.mark.asyncio
    async def test_reason_includes_qualification_override(self, router, roster_store):
        lead = make_lead(
            qualification=Qualification.HOT, urgency=95, aggregate=62,
            override=True, rule="High urgency override",
        )
        decision = await router.route(lead, roster_store)
        assert "High urgency override" in decision.reason
        assert "High urgency (95)" in decision.reason
        assert decision.priority == Priority.URGENT
        assert decision.estimated_response_time == "15 minutes"

    @pytest.mark.asyncio
    async def test_language_preference(self, router, roster_store):
        decision = await router.route(make_lead(language="es", case_value=60), roster_store)
        # alice: 40 + 0 + 24 = 64, bruno: 0 + 30 + 30 = 60
        assert decision.assigned_member_id == "alice"

    @pytest.mark.asyncio
    async def test_unknown_category_goes_to_intake(self, router, roster_store):
        decision = await router.route(make_lead(category="other", case_value=50), roster_store)
        assert decision.assigned_team == "intake"
        assert decision.assigned_member_id == "dave"

    @pytest.mark.asyncio
    async def test_empty_team_is_queued(self, router, roster_store):
        decision = await router.route(make_lead(category="family_law", case_value=70), roster_store)
        assert decision.outcome == AssignmentOutcome.QUEUED_AT_TEAM
        assert decision.assigned_team == "family_law"
        assert decision.assigned_member_id is None
        assert not decision.capacity_reserved
        assert decision.degraded
        assert decision.alternative_teams == ["immigration", "intake"]

    @pytest.mark.asyncio
    async def test_hot_overflow_to_busy_member(self, router):
        store = InMemoryRosterStore([
            make_member("a", current_load=5),
            make_member("b", current_load=1, availability=Availability.BUSY),
        ])
        decision = await router.route(make_lead(qualification=Qualification.HOT, aggregate=80), store)

        assert decision.outcome == AssignmentOutcome.HOT_OVERFLOW
        assert decision.assigned_member_id == "b"
        assert decision.capacity_reserved
        assert decision.flagged
        assert not decision.degraded
        assert "HOT lead assigned to busy member" in decision.reason
        assert (await store.get_member("b")).current_load == 2

    @pytest.mark.asyncio
    async def test_all_saturated_and_unavailable_is_degraded(self, router):
        store = InMemoryRosterStore([
            make_member("a", current_load=3, max_load=3, availability=Availability.BUSY),
            make_member("b", current_load=4, max_load=4, availability=Availability.OFFLINE),
        ])
        decision = await router.route(make_lead(qualification=Qualification.HOT, aggregate=80), store)

        assert decision.outcome == AssignmentOutcome.DEGRADED_ASSIGNED
        assert decision.assigned_member_id == "a"
        assert not decision.capacity_reserved
        assert decision.degraded
        assert decision.flagged
        assert "soft overflow" in decision.reason
        assert store.total_load() == 7

    @pytest.mark.asyncio
    async def test_contention_reruns_selection(self, router):
        store = ContendedRosterStore([
            make_member("a", current_load=0),
            make_member("b", current_load=1, specialties=()),
        ])
        decision = await router.route(make_lead(), store)

        assert decision.outcome == AssignmentOutcome.ASSIGNED
        assert decision.assigned_member_id == "b"
        assert decision.attempts == 2
        assert store.reserve_calls == 2
        assert (await store.get_member("b")).current_load == 2

    @pytest.mark.asyncio
    async def test_contention_exhaustion_queues_at_team(self):
        router = LeadRouter(max_attempts=3, clock=FixedClock(WEEKDAY_MORNING))
        store = AlwaysContendedRosterStore([make_member("a")])
        decision = await router.route(make_lead(), store)

        assert decision.outcome == AssignmentOutcome.QUEUED_AT_TEAM
        assert decision.assigned_member_id is None
        assert decision.attempts == 3
        assert "Capacity contention after 3 attempts" in decision.reason

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            LeadRouter(max_attempts=0)

    @pytest.mark.asyncio
    async def test_decision_carries_handoff_notes(self, router, roster_store):
        lead = make_lead(category="immigration", case_value=75, language="es")
        decision = await router.route(lead, roster_store)

        assert decision.assigned_member_id == "carmen"
        assert decision.callback_required
        assert decision.special_instructions == (
            "Spanish-speaking client - Conduct call in Spanish. "
            "Immigration case - Be culturally sensitive, check documentation status carefully"
        )
        data = decision.to_dict()
        assert data["callback_required"]
        assert data["special_instructions"] == decision.special_instructions

    def test_default_timestamp_is_timezone_aware(self):
        decision = RoutingDecision(
            assigned_team="intake",
            outcome=AssignmentOutcome.QUEUED_AT_TEAM,
            priority=Priority.LOW,
            reason="",
            estimated_response_time="24 hours",
        )
        assert decision.decided_at.tzinfo is not None


# ── Handoff notes ─────────────────────────────────────

class TestHandoffNotes:
    def test_routine_lead(self, router):
        lead = make_lead()
        assert not router.requires_callback(lead)
        assert router.special_instructions(lead) == (
            "Personal injury - Ask about injuries and medical treatment, express sympathy"
        )

    def test_emergency_needs_callback(self, router):
        lead = make_lead(category="family_law", case_value=70, urgency=100)
        assert router.requires_callback(lead)
        assert router.special_instructions(lead) == "EMERGENCY - Prioritize immediate assistance"

    def test_high_urgency_banner(self, router):
        lead = make_lead(category="family_law", case_value=70, urgency=95)
        assert not router.requires_callback(lead)
        assert router.special_instructions(lead) == "HIGH PRIORITY - Respond promptly and professionally"

    @pytest.mark.parametrize("category", ["criminal_defense", "immigration"])
    def test_sensitive_practice_areas_need_callback(self, router, category):
        assert router.requires_callback(make_lead(category=category, case_value=80))

    def test_notes_combine_in_order(self, router):
        lead = make_lead(category="criminal_defense", case_value=80, urgency=100, language="ES")
        assert router.special_instructions(lead).split(". ") == [
            "EMERGENCY - Prioritize immediate assistance",
            "Spanish-speaking client - Conduct call in Spanish",
            "Criminal case - Be sensitive about legal situation, emphasize confidentiality",
        ]

    def test_unknown_category_has_no_notes(self, router):
        assert router.special_instructions(make_lead(category="other", case_value=50)) == ""

    def test_tables_are_injectable(self):
        policy = replace(DEFAULT_ROUTING_POLICY, callback_case_types=(), case_instructions={})
        router = LeadRouter(policy=policy, clock=FixedClock(WEEKDAY_MORNING))
        lead = make_lead(category="immigration", case_value=75)
        assert not router.requires_callback(lead)
        assert router.special_instructions(lead) == ""


# ── Failures ──────────────────────────────────────────

class TestRosterFailures:
    @pytest.mark.asyncio
    async def test_unavailable_store_propagates(self, router):
        store = BrokenRosterStore(RosterUnavailableError("connection refused"))
        with pytest.raises(RosterUnavailableError):
            await router.route(make_lead(), store)

    @pytest.mark.asyncio
    async def test_os_error_is_wrapped(self, router):
        store = BrokenRosterStore(ConnectionRefusedError("refused"))
        with pytest.raises(RosterUnavailableError) as exc_info:
            await router.route(make_lead(), store)
        assert isinstance(exc_info.value.cause, ConnectionRefusedError)

    @pytest.mark.asyncio
    async def test_slow_lookup_times_out(self):
        router = LeadRouter(roster_timeout=0.05, clock=FixedClock(WEEKDAY_MORNING))
        store = SlowRosterStore([make_member("a")], team_delay=1.0)
        with pytest.raises(RosterUnavailableError):
            await router.route(make_lead(), store)

    @pytest.mark.asyncio
    async def test_timed_out_reservation_is_released(self):
        router = LeadRouter(roster_timeout=0.05, clock=FixedClock(WEEKDAY_MORNING))
        store = SlowRosterStore([make_member("a")], reserve_delay=0.2)

        with pytest.raises(RosterUnavailableError):
            await router.route(make_lead(), store)

        await asyncio.sleep(0.4)
        assert store.total_load() == 0

    @pytest.mark.asyncio
    async def test_cancelled_route_leaves_no_reservation(self, router):
        store = SlowRosterStore([make_member("a")], reserve_delay=0.2)

        task = asyncio.ensure_future(router.route(make_lead(), store))
        await store.reserve_started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.4)
        assert store.total_load() == 0

    @pytest.mark.asyncio
    async def test_release(self, router, roster_store):
        assert await router.release("alice", roster_store)
        assert (await roster_store.get_member("alice")).current_load == 0
        assert not await router.release("alice", roster_store)


# ── Load conservation ─────────────────────────────────

class TestLoadConservation:
    @pytest.mark.asyncio
    async def test_concurrent_routes_conserve_load(self, router):
        store = InMemoryRosterStore([make_member(f"m{i}", max_load=2) for i in range(5)])

        decisions = await asyncio.gather(*(router.route(make_lead(), store) for _ in range(10)))

        assert all(d.outcome == AssignmentOutcome.ASSIGNED for d in decisions)
        assert store.total_load() == 10
        for member in await store.get_team("personal_injury"):
            assert member.current_load <= member.max_load

    @pytest.mark.asyncio
    async def test_excess_leads_degrade_without_overshoot(self):
        router = LeadRouter(max_attempts=10, clock=FixedClock(WEEKDAY_MORNING))
        store = InMemoryRosterStore([make_member(f"m{i}", max_load=2) for i in range(5)])

        decisions = await asyncio.gather(*(router.route(make_lead(), store) for _ in range(15)))

        assigned = [d for d in decisions if d.outcome == AssignmentOutcome.ASSIGNED]
        degraded = [d for d in decisions if d.outcome == AssignmentOutcome.DEGRADED_ASSIGNED]
        assert len(assigned) == 10
        assert len(degraded) == 5
        assert store.total_load() == 10
        for member in await store.get_team("personal_injury"):
            assert member.current_load <= member.max_load

    @pytest.mark.asyncio
    async def test_concurrent_routes_with_contention(self):
        router = LeadRouter(max_attempts=10, clock=FixedClock(WEEKDAY_MORNING))
        store = SlowRosterStore([make_member(f"m{i}", max_load=1) for i in range(4)], reserve_delay=0.01)

        decisions = await asyncio.gather(*(router.route(make_lead(), store) for _ in range(4)))

        reserved = [d for d in decisions if d.capacity_reserved]
        assert store.total_load() == len(reserved)
        for member in await store.get_team("personal_injury"):
            assert member.current_load <= member.max_load
