"""
EmoSense - Exception Hierarchy

Structured exceptions for consistent error handling across the system.
All exceptions include error codes for API responses.

Classifier errors never leave the classifier client: they are converted
into the neutral fallback assessment there.
"""

from typing import Optional


class EmoSenseError(Exception):
    """Base exception for all EmoSense errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(EmoSenseError):
    """Configuration error. Fatal before any session starts."""
    code = "CONFIGURATION_ERROR"
    status_code = 500


# =============================================================================
# Classifier Errors
# =============================================================================

class ClassifierError(EmoSenseError):
    """Error talking to, or understanding, the external classifier."""
    code = "CLASSIFIER_ERROR"
    status_code = 502


class ClassifierTransportError(ClassifierError):
    """Network failure or non-2xx response from the classifier."""
    code = "CLASSIFIER_TRANSPORT_ERROR"


class ClassifierResponseError(ClassifierError):
    """Classifier body could not be parsed or violated the output schema."""
    code = "CLASSIFIER_RESPONSE_ERROR"


# =============================================================================
# Session Errors
# =============================================================================

class SessionError(EmoSenseError):
    """Error related to session management."""
    code = "SESSION_ERROR"
    status_code = 400


class SessionNotFoundError(SessionError):
    """Session not found."""
    code = "SESSION_NOT_FOUND"
    status_code = 404


class SessionEndedError(SessionError):
    """Session has already ended (quit or escalation resolved)."""
    code = "SESSION_ENDED"
    status_code = 410


class SessionLimitError(SessionError):
    """Maximum concurrent sessions exceeded."""
    code = "SESSION_LIMIT_EXCEEDED"
    status_code = 429


class SessionBusyError(SessionError):
    """Session is escalating and cannot accept ordinary turns."""
    code = "SESSION_ESCALATING"
    status_code = 409


# =============================================================================
# Escalation Errors
# =============================================================================

class EscalationError(EmoSenseError):
    """Error in the crisis escalation flow."""
    code = "ESCALATION_ERROR"
    status_code = 409


class EscalationNotActiveError(EscalationError):
    """A choice was submitted but no escalation is in progress."""
    code = "ESCALATION_NOT_ACTIVE"


class EscalationResolvedError(EscalationError):
    """A choice was submitted to an escalation that already resolved."""
    code = "ESCALATION_RESOLVED"
