"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from msp_desk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConflictException,
    ForbiddenException,
    AuthenticationException,
    ConfigurationException,
)
from msp_desk.core.identity import Actor

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConflictException",
    "ForbiddenException",
    "AuthenticationException",
    "ConfigurationException",
    "Actor",
]
