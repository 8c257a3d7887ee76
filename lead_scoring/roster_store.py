"""
Roster store contract and in-memory implementation.

The roster store owns TeamMember records. The router reads snapshots
through get_team() and mutates load only through reserve_capacity() /
release_capacity(), which must be atomic per member.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .exceptions import MemberNotFoundError
from .models import Availability, TeamMember

logger = logging.getLogger(__name__)


class RosterStore(ABC):
    """Storage abstraction for team-member capacity state."""

    @abstractmethod
    async def get_team(self, team: str) -> List[TeamMember]:
        """Snapshot copies of every member of a team."""

    @abstractmethod
    async def reserve_capacity(self, member_id: str) -> bool:
        """
        Atomically take one unit of capacity.

        Returns False when the member is saturated, offline or unknown.
        Raises RosterUnavailableError when the store cannot be reached.
        """

    @abstractmethod
    async def release_capacity(self, member_id: str) -> bool:
        """Give back one unit of capacity. Load never drops below zero."""

    @abstractmethod
    async def get_member(self, member_id: str) -> Optional[TeamMember]:
        """Snapshot copy of a single member."""

    @abstractmethod
    async def upsert_member(self, member: TeamMember) -> TeamMember:
        """Create or replace a member record."""

    @abstractmethod
    async def set_availability(self, member_id: str, availability: Availability) -> TeamMember:
        """Change a member's availability. Raises MemberNotFoundError."""

    @abstractmethod
    async def list_teams(self) -> Dict[str, List[TeamMember]]:
        """All members grouped by team."""


class InMemoryRosterStore(RosterStore):
    """
    Process-local roster store.

    Each member has its own lock so that the capacity check and the
    increment happen as one critical section. Nothing awaits while a lock
    is held, so the store is safe from both threads and asyncio tasks.
    """

    def __init__(self, members: Optional[Iterable[TeamMember]] = None):
        self._members: Dict[str, TeamMember] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._index_lock = threading.Lock()
        for member in members or []:
            self._put(member)

    def _put(self, member: TeamMember) -> TeamMember:
        with self._index_lock:
            lock = self._locks.setdefault(member.id, threading.Lock())
        with lock:
            self._members[member.id] = member.copy()
            return member.copy()

    def _lock_for(self, member_id: str) -> Optional[threading.Lock]:
        with self._index_lock:
            return self._locks.get(member_id)

    async def get_team(self, team: str) -> List[TeamMember]:
        with self._index_lock:
            members = [m for m in self._members.values() if m.team == team]
        return [m.copy() for m in members]

    async def reserve_capacity(self, member_id: str) -> bool:
        lock = self._lock_for(member_id)
        if lock is None:
            logger.warning(f"Reservation for unknown member {member_id}")
            return False

        with lock:
            member = self._members[member_id]
            if member.availability == Availability.OFFLINE or not member.has_capacity:
                return False
            member.current_load += 1
            return True

    async def release_capacity(self, member_id: str) -> bool:
        lock = self._lock_for(member_id)
        if lock is None:
            return False

        with lock:
            member = self._members[member_id]
            if member.current_load == 0:
                return False
            member.current_load -= 1
            return True

    async def get_member(self, member_id: str) -> Optional[TeamMember]:
        lock = self._lock_for(member_id)
        if lock is None:
            return None
        with lock:
            return self._members[member_id].copy()

    async def upsert_member(self, member: TeamMember) -> TeamMember:
        return self._put(member)

    async def set_availability(self, member_id: str, availability: Availability) -> TeamMember:
        lock = self._lock_for(member_id)
        if lock is None:
            raise MemberNotFoundError(member_id)
        with lock:
            member = self._members[member_id]
            member.availability = availability
            return member.copy()

    async def list_teams(self) -> Dict[str, List[TeamMember]]:
        with self._index_lock:
            members = list(self._members.values())
        teams: Dict[str, List[TeamMember]] = {}
        for member in sorted(members, key=lambda m: (m.team, m.id)):
            teams.setdefault(member.team, []).append(member.copy())
        return teams

    def total_load(self) -> int:
        """Sum of current load across all members."""
        with self._index_lock:
            return sum(m.current_load for m in self._members.values())
