"""Shared fixtures for lead intake engine tests."""

import os
from datetime import datetime
from typing import Optional

import pytest
from fastapi.testclient import TestClient

# Ensure we use test settings
os.environ.setdefault("ROSTER_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "10000")
os.environ.pop("ROSTER_SEED_FILE", None)
os.environ.pop("DATABASE_URL", None)

from lead_scoring.clock import FixedClock
from lead_scoring.models import (
    Availability,
    FactorScores,
    LeadSubmission,
    Qualification,
    ScoredLead,
    TeamMember,
)
from lead_scoring.roster_store import InMemoryRosterStore
from lead_scoring.scoring_model import LeadScorer

# Wednesday
WEEKDAY_MORNING = datetime(2024, 1, 10, 10, 0)
WEEKDAY_3AM = datetime(2024, 1, 10, 3, 0)
# Saturday
SATURDAY_MORNING = datetime(2024, 1, 13, 10, 0)


def make_member(
    member_id: str,
    team: str = "personal_injury",
    max_load: int = 5,
    current_load: int = 0,
    specialties=("personal_injury",),
    languages=("en",),
    availability: Availability = Availability.AVAILABLE,
) -> TeamMember:
    return TeamMember(
        id=member_id,
        name=member_id.title(),
        team=team,
        max_load=max_load,
        current_load=current_load,
        specialties=frozenset(specialties),
        languages=frozenset(languages),
        availability=availability,
    )


def make_lead(
    category: str = "personal_injury",
    qualification: Qualification = Qualification.WARM,
    aggregate: int = 65,
    urgency: int = 50,
    case_value: int = 90,
    language: Optional[str] = None,
    override: bool = False,
    rule: str = "",
) -> ScoredLead:
    """Scored lead with hand-picked factors, bypassing the scorer."""
    return ScoredLead(
        submission=LeadSubmission(
            name="Test Lead",
            email="lead@example.com",
            case_type=category,
            language=language,
        ),
        factors=FactorScores(
            urgency=urgency,
            case_value=case_value,
            completeness=60,
            engagement=40,
            timing=100,
        ),
        aggregate_score=aggregate,
        qualification=qualification,
        estimated_value=1000,
        target_response_time="1 hour",
        case_category=category,
        scored_at=WEEKDAY_MORNING,
        qualification_rule=rule,
        qualification_override=override,
    )


@pytest.fixture
def fixed_clock():
    return FixedClock(WEEKDAY_MORNING)


@pytest.fixture
def scorer(fixed_clock):
    return LeadScorer(clock=fixed_clock)


@pytest.fixture
def roster_store():
    """Small roster covering two teams."""
    return InMemoryRosterStore([
        make_member("alice", current_load=1, specialties=("personal_injury",), languages=("en",)),
        make_member("bruno", current_load=0, specialties=("workers_compensation",), languages=("en", "es")),
        make_member("carmen", team="immigration", max_load=4, specialties=("immigration",), languages=("en", "es")),
        make_member("dave", team="intake", max_load=10, specialties=("intake",), languages=("en",)),
    ])


@pytest.fixture
def services(roster_store, fixed_clock):
    """Fresh service container wired to the test roster and a fixed clock."""
    from api.services import reset_services

    services = reset_services()
    services.initialize(roster=roster_store)
    services.lead_scorer = LeadScorer(clock=fixed_clock)
    return services


@pytest.fixture
def client(services):
    """Create a FastAPI test client."""
    from api.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def pi_submission():
    return LeadSubmission(
        name="Jane Doe",
        email="jane@example.com",
        case_type="Personal Injury",
        message="car accident, injured, hospital",
        phone="555-0100",
        location="Miami, FL",
    )


@pytest.fixture
def general_submission():
    return LeadSubmission(
        name="John Roe",
        email="john@example.com",
        case_type="General Inquiry",
        message="just curious about your services",
    )
