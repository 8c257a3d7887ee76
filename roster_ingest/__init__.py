"""
Roster Ingestion Module.

Loads team rosters from CSV or JSON files and seeds a roster store.
"""

from .roster_loader import RosterLoader, MemberSpec

__all__ = [
    "RosterLoader",
    "MemberSpec",
]
