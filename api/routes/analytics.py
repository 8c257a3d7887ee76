"""
Routing analytics API routes.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from lead_scoring.exceptions import RosterUnavailableError

from ..services import get_services

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/analytics")


@router.get("/routing")
async def routing_analytics():
    """Totals and distributions of scored and routed leads, plus current utilization."""
    services = get_services()
    try:
        teams = await services.roster.list_teams()
    except RosterUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    summary = services.analytics.summary(teams)
    summary["pending_leads"] = len(services.pending)

    persisted = await services.persisted_summary()
    if persisted is not None:
        summary["persisted"] = persisted
    return summary
