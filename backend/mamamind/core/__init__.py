"""
Mama Mind - Core Package

Contains the triage engine and domain types:
- pipeline: Intake orchestrator
- classifier / patterns / aggregator: Triage rules
- types: Internal domain types and type aliases
- datastore: Reading and alert storage
- notifier: Real-time subject channels
"""

from .types import (
    Alert,
    Finding,
    Principal,
    Reading,
    ReadingKind,
    RiskAssessment,
    Severity,
    StoredAlert,
    StoredReading,
)
from .pipeline import IntakeOrchestrator, IntakeMetrics, create_orchestrator
from .datastore import Datastore, InMemoryDatastore, create_datastore
from .notifier import ChannelNotifier, NoOpNotifier, NotificationPublisher

__all__ = [
    # Orchestrator
    "IntakeOrchestrator",
    "IntakeMetrics",
    "create_orchestrator",
    # Types
    "Alert",
    "Finding",
    "Principal",
    "Reading",
    "ReadingKind",
    "RiskAssessment",
    "Severity",
    "StoredAlert",
    "StoredReading",
    # Storage
    "Datastore",
    "InMemoryDatastore",
    "create_datastore",
    # Notifications
    "ChannelNotifier",
    "NoOpNotifier",
    "NotificationPublisher",
]
