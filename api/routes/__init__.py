"""
API Routes for the lead intake engine.
"""

from . import leads, roster, analytics

__all__ = ["leads", "roster", "analytics"]
