"""
Roster management API routes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from lead_scoring.exceptions import MemberNotFoundError, RosterUnavailableError
from lead_scoring.models import Availability, TeamMember

from ..services import get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/roster")


class MemberRequest(BaseModel):
    """Create or replace a team member."""
    name: str = Field(min_length=1)
    team: str = Field(min_length=1)
    max_load: int = Field(gt=0)
    current_load: int = Field(default=0, ge=0)
    specialties: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=lambda: ["en"])
    availability: Availability = Availability.AVAILABLE


class AvailabilityRequest(BaseModel):
    availability: Availability


def _unavailable(e: RosterUnavailableError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.get("/teams")
async def list_teams():
    """All members grouped by team."""
    try:
        teams = await get_services().roster.list_teams()
    except RosterUnavailableError as e:
        raise _unavailable(e)
    return {
        "teams": {
            team: [m.to_dict() for m in members]
            for team, members in teams.items()
        }
    }


@router.get("/teams/{team}")
async def get_team(team: str):
    try:
        members = await get_services().roster.get_team(team)
    except RosterUnavailableError as e:
        raise _unavailable(e)
    return {"team": team, "members": [m.to_dict() for m in members]}


@router.put("/members/{member_id}")
async def upsert_member(member_id: str, request: MemberRequest):
    """Create or replace a team member."""
    if request.current_load > request.max_load:
        raise HTTPException(status_code=422, detail="current_load cannot exceed max_load")

    member = TeamMember(
        id=member_id,
        name=request.name,
        team=request.team,
        max_load=request.max_load,
        current_load=request.current_load,
        specialties=frozenset(request.specialties),
        languages=frozenset(request.languages),
        availability=request.availability,
    )
    try:
        saved = await get_services().roster.upsert_member(member)
    except RosterUnavailableError as e:
        raise _unavailable(e)
    logger.info(f"Member {member_id} saved on team {saved.team}")
    return saved.to_dict()


@router.patch("/members/{member_id}/availability")
async def set_availability(member_id: str, request: AvailabilityRequest):
    try:
        member = await get_services().roster.set_availability(member_id, request.availability)
    except MemberNotFoundError:
        raise HTTPException(status_code=404, detail=f"Member {member_id} not found")
    except RosterUnavailableError as e:
        raise _unavailable(e)
    logger.info(f"Member {member_id} is now {request.availability.value}")
    return member.to_dict()


@router.post("/members/{member_id}/release")
async def release_capacity(member_id: str, lead_id: Optional[str] = None):
    """
    Give back one unit of capacity.

    Called when the handoff of a routed lead to the member failed.
    """
    services = get_services()
    try:
        if await services.roster.get_member(member_id) is None:
            raise HTTPException(status_code=404, detail=f"Member {member_id} not found")
        released = await services.lead_router.release(member_id, services.roster)
        member = await services.roster.get_member(member_id)
    except RosterUnavailableError as e:
        raise _unavailable(e)

    if released and lead_id:
        await services.record_release(lead_id, member_id)

    return {"released": released, "member": member.to_dict() if member else None}
