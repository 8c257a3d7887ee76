"""
API Module for the lead intake engine.

FastAPI application with routes for:
- Lead scoring and intake
- Roster management
- Routing analytics
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
