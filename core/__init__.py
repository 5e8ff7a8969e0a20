"""
Core Framework for the Exchange Service.

This module provides the base classes and interfaces the exchange use case
builds on. The layered architecture ensures:

1. Domain Layer - Pure business rules, no I/O
2. Data Layer - Document stores and repositories with optimistic concurrency
3. Errors - Typed failures that map onto HTTP responses
4. Middleware - Request tracking and rate limiting

Each use case follows this pattern for consistency and reusability.
"""

from .domain import DomainService, PolicyEngine, PolicyDecision, Validator, FieldError
from .data import DocumentStore, Repository, QueryOptions, PreconditionFailed
from .errors import (
    ExchangeError,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    StateError,
    ConcurrencyConflict,
    GatewayError,
)

__all__ = [
    # Domain
    "DomainService",
    "PolicyEngine",
    "PolicyDecision",
    "Validator",
    "FieldError",
    # Data
    "DocumentStore",
    "Repository",
    "QueryOptions",
    "PreconditionFailed",
    # Errors
    "ExchangeError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "StateError",
    "ConcurrencyConflict",
    "GatewayError",
]
