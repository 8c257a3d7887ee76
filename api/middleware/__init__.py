"""
API Middleware.
"""

from .metrics import MetricsMiddleware, metrics_endpoint
from .rate_limit import RateLimitMiddleware

__all__ = ["MetricsMiddleware", "metrics_endpoint", "RateLimitMiddleware"]
