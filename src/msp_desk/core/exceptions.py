"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Dict, List, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(DomainException):
    """
    Exception for validation errors.

    Carries field-attributed messages so the HTTP layer can render
    per-field feedback.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[dict] = None
    ):
        self.errors = errors or {}
        super().__init__(message, details)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationException":
        """Build a validation error attributed to a single field."""
        return cls(message, errors={field: [message]})


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConflictException(ApplicationException):
    """Exception when a row changed underneath the caller since it was read."""


class ForbiddenException(ApplicationException):
    """Exception when the caller's role does not permit the action."""


class AuthenticationException(ApplicationException):
    """Exception when no caller identity was supplied."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""
