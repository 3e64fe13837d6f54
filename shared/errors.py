"""
Shared error handling for the feature toggle store.
"""

from typing import Dict, Any, Optional


class ToggleStoreException(Exception):
    """Base exception for the toggle store."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain error payload."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ToggleStoreException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class UnknownGroupError(ValidationError):
    """Raised when a rule references a group with no registered predicate."""

    def __init__(self, group: str):
        super().__init__(f"Unknown group: {group}", {"group": group})
        self.code = "UNKNOWN_GROUP"
        self.group = group


class ConflictError(ToggleStoreException):
    """Optimistic lock kept failing because of concurrent writers."""

    def __init__(self, message: str = "Concurrent modification", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT_ERROR", message, details)
