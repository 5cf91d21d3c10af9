"""Live Auction Dashboard.

A read-only room dashboard with WebSocket updates.
"""

from .api import create_app, run_dashboard

__all__ = ["create_app", "run_dashboard"]
