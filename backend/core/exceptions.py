# ------------------------------ IMPORTS ------------------------------
from typing import Dict, Any

# ------------------------------ ERROR CATEGORIES ------------------------------
ERROR_VALIDATION = "validation"
ERROR_NOT_FOUND = "not_found"
ERROR_SITE = "site"
ERROR_INFRASTRUCTURE = "infrastructure"

# ------------------------------ BASE ERROR ------------------------------

class AutomationError(Exception):
    """Base class for every error raised by the tenant automation core."""

    error_type: str = ERROR_INFRASTRUCTURE
    status_code: int = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error_type": self.error_type,
            "error": self.__class__.__name__,
            "message": self.message,
        }

# ------------------------------ REQUEST ERRORS ------------------------------

class ValidationError(AutomationError):
    """Malformed input, rejected before any browser interaction."""
    error_type = ERROR_VALIDATION
    status_code = 400

class MissingApiKey(AutomationError):
    """No credential key was supplied."""
    error_type = ERROR_VALIDATION
    status_code = 401

class AccessDenied(AutomationError):
    """The credential key does not grant access to the addressed instance."""
    error_type = ERROR_VALIDATION
    status_code = 403

class SessionNotFound(AutomationError):
    """Unknown or unrecoverable credential key."""
    error_type = ERROR_NOT_FOUND
    status_code = 404

class SessionBusy(AutomationError):
    """The session lock could not be acquired in time."""
    status_code = 409

class ShuttingDown(AutomationError):
    """The manager is shutting down and refuses new work."""
    status_code = 503

# ------------------------------ AUTHENTICATION ERRORS ------------------------------

class AuthenticationFailure(AutomationError):
    """Login did not succeed."""
    error_type = ERROR_SITE
    status_code = 401

class InvalidCredentials(AuthenticationFailure):
    """The site explicitly rejected the identifier/secret pair."""

class TransientFailure(AuthenticationFailure):
    """Login failed because of timeouts or driver errors."""
    error_type = ERROR_INFRASTRUCTURE
    status_code = 504

# ------------------------------ WORKFLOW ERRORS ------------------------------

class WorkflowError(AutomationError):
    """A workflow step could not complete."""

    def __init__(self, step: str, message: str = ""):
        super().__init__(f"Step '{step}' failed: {message}" if message else f"Step '{step}' failed")
        self.step = step
        self.cause = message

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["step"] = self.step
        return data

class WorkflowStepTimeout(WorkflowError):
    """A step's wait exceeded its bound."""
    status_code = 504

class WorkflowStepError(WorkflowError):
    """Unexpected driver exception mid-step."""
    status_code = 500

# ------------------------------ INFRASTRUCTURE ERRORS ------------------------------

class PersistenceFailure(AutomationError):
    """The durable store was unreachable or rejected a write."""
    status_code = 500

class ResourceExhausted(AutomationError):
    """The browser engine could not allocate a new context."""
    status_code = 503

# ------------------------------ END OF FILE ------------------------------
