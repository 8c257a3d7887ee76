"""
Exceptions raised by the lead intake engine.
"""

from typing import Optional


class LeadEngineError(Exception):
    """Base class for engine errors."""


class RosterUnavailableError(LeadEngineError):
    """
    The roster store could not be reached.

    Capacity bookkeeping cannot be trusted, so the caller must queue the
    lead for retry instead of routing it.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class MemberNotFoundError(LeadEngineError):
    """A roster operation referenced an unknown team member."""

    def __init__(self, member_id: str):
        super().__init__(f"Team member not found: {member_id}")
        self.member_id = member_id
