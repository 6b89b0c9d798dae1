"""
Mama Mind - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes for API responses.
"""

from typing import Dict, Optional


class MamaMindError(Exception):
    """Base exception for all Mama Mind errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(MamaMindError):
    """Input reading failed schema or range checks."""
    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message, details={"fields": dict(fields or {})})
        self.fields = dict(fields or {})


# =============================================================================
# Auth Errors
# =============================================================================

class AuthenticationError(MamaMindError):
    """Missing or invalid credentials."""
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class AuthorizationError(MamaMindError):
    """Authenticated principal may not perform the operation."""
    code = "FORBIDDEN"
    status_code = 403


# =============================================================================
# Alert Errors
# =============================================================================

class AlertNotFoundError(MamaMindError):
    """Alert does not exist or belongs to another subject."""
    code = "ALERT_NOT_FOUND"
    status_code = 404


# =============================================================================
# Persistence Errors
# =============================================================================

class PersistenceError(MamaMindError):
    """Datastore write or read failed."""
    code = "PERSISTENCE_ERROR"
    status_code = 500


class ReadingPersistenceError(PersistenceError):
    """The primary reading record could not be written."""
    code = "READING_PERSISTENCE_FAILED"


class AlertPersistenceError(PersistenceError):
    """An alert could not be written after its reading was stored."""
    code = "ALERT_PERSISTENCE_FAILED"


# =============================================================================
# Notification Errors
# =============================================================================

class NotificationError(MamaMindError):
    """Publishing to a subject channel failed."""
    code = "NOTIFICATION_FAILED"
    status_code = 500


# =============================================================================
# Upstream Errors
# =============================================================================

class UpstreamUnavailableError(MamaMindError):
    """Datastore or auth provider unreachable."""
    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503


class IntakeTimeoutError(UpstreamUnavailableError):
    """Reading intake did not finish within the configured budget."""
    code = "INTAKE_TIMEOUT"


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(MamaMindError):
    """Configuration error."""
    code = "CONFIGURATION_ERROR"
    status_code = 500
