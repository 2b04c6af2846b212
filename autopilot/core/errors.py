"""Core exception classes for the application."""


class NotFoundError(Exception):
    """Raised when a resource is not found."""


class ValidationError(Exception):
    """Raised when validation fails."""


class InvalidTransitionError(Exception):
    """Raised when a status transition is not allowed from the current state."""


class StoreUnavailableError(Exception):
    """Raised when the database cannot be reached."""


class CapabilityUnavailableError(Exception):
    """Raised when an external capability (LLM, log source) is not configured."""
