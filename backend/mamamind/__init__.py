"""
Mama Mind - Backend Application Package

This package contains the vitals triage backend:
- API routes and the real-time WebSocket channel
- Intake orchestration (classify, aggregate, persist, notify)
- Datastore and notification adapters
"""

__version__ = "0.1.0"
