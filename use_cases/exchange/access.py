"""
Access Control.

Decides whether a caller may invoke an operation. Administrator status is
read from the user profile store on every privileged call; nothing about a
caller's role is cached or taken from the client.
"""

import logging

from core.errors import AuthenticationError, AuthorizationError

from .domain.models import ExchangeRequest, UserProfile
from .repositories import UserRepository

logger = logging.getLogger(__name__)


class AccessControl:
    """Capability checks: owner-of(request) and is-admin."""

    def __init__(self, users: UserRepository):
        self._users = users

    def require_user(self, caller_id: str) -> UserProfile:
        """Resolve the caller's profile or reject the call."""
        profile = self._users.get_by_id(caller_id) if caller_id else None
        if profile is None:
            raise AuthenticationError("Authentication required")
        return profile

    def is_admin(self, caller_id: str) -> bool:
        profile = self._users.get_by_id(caller_id) if caller_id else None
        return bool(profile and profile.is_admin)

    def require_admin(self, caller_id: str) -> UserProfile:
        profile = self.require_user(caller_id)
        if not profile.is_admin:
            logger.warning(f"Non-admin user {caller_id} attempted an admin operation")
            raise AuthorizationError("You are not allowed to do this: administrator access required")
        return profile

    def require_owner(self, caller_id: str, request: ExchangeRequest) -> None:
        if request.owner_id != caller_id:
            logger.warning(f"User {caller_id} attempted to modify exchange {request.id} owned by {request.owner_id}")
            raise AuthorizationError("You are not allowed to do this: you do not own this exchange request")

    def require_owner_or_admin(self, caller_id: str, request: ExchangeRequest) -> None:
        if request.owner_id == caller_id:
            return
        if not self.is_admin(caller_id):
            raise AuthorizationError("You are not allowed to view this exchange request")
