"""
Authentication module for user login.

Provides email/password authentication against the user profile container.
Passwords are stored as salted SHA-256 hashes. Sessions are opaque bearer
tokens that resolve to a user id only: whether that user is an administrator
is looked up from the profile on every privileged call, never stored here.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional

from fastapi import Request
from pydantic import BaseModel

from config import settings

logger = logging.getLogger(__name__)


# =============================================================================
# MODELS
# =============================================================================

class LoginRequest(BaseModel):
    """Login request model."""
    email: str
    password: str


class RegisterRequest(BaseModel):
    """Signup request model."""
    email: str
    password: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class LoginResponse(BaseModel):
    """Login response model."""
    success: bool
    message: str
    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


# =============================================================================
# PASSWORD UTILITIES
# =============================================================================

def hash_password(password: str, salt: Optional[str] = None) -> str:
    """
    Hash a password using SHA-256 with a random per-user salt.

    Returns "<salt>$<hexdigest>".
    """
    salt = salt or secrets.token_hex(16)
    digest = hashlib.sha256((salt + password).encode()).hexdigest()
    return f"{salt}${digest}"


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash."""
    if not password_hash or "$" not in password_hash:
        return False
    salt, _ = password_hash.split("$", 1)
    return hmac.compare_digest(hash_password(password, salt), password_hash)


def generate_session_token() -> str:
    """Generate a secure session token."""
    return secrets.token_urlsafe(32)


# =============================================================================
# SESSION STORE (In-Memory)
# =============================================================================

# Process-local; a multi-instance deployment needs a shared session store
_sessions: Dict[str, Dict[str, Any]] = {}


def purge_expired_sessions() -> int:
    """Drop every expired session; returns how many were removed."""
    now = datetime.now(timezone.utc)
    expired = [
        token for token, session in _sessions.items()
        if datetime.fromisoformat(session["expires_at"]) <= now
    ]
    for token in expired:
        del _sessions[token]
    return len(expired)


def create_session(user_id: str) -> str:
    """Create a new session for a user and return the token."""
    purge_expired_sessions()
    token = generate_session_token()
    now = datetime.now(timezone.utc)

    _sessions[token] = {
        "user_id": user_id,
        "created_at": now.isoformat(),
        "expires_at": (now + timedelta(hours=settings.session_ttl_hours)).isoformat(),
    }

    logger.info(f"Created session for user {user_id}")
    return token


def get_session(token: str) -> Optional[Dict[str, Any]]:
    """Get session data for a token, or None if invalid/expired."""
    if not token or token not in _sessions:
        return None

    session = _sessions[token]

    # Check expiration
    expires_at = datetime.fromisoformat(session["expires_at"])
    if datetime.now(timezone.utc) > expires_at:
        del _sessions[token]
        return None

    return session


def delete_session(token: str) -> bool:
    """Delete a session (logout)."""
    if token in _sessions:
        del _sessions[token]
        return True
    return False


def get_user_id_from_token(token: str) -> Optional[str]:
    """Extract user_id from a valid session token."""
    session = get_session(token)
    return session["user_id"] if session else None


def extract_bearer_token(request: Request) -> Optional[str]:
    """Token from the Authorization header, then X-Auth-Token, then the auth_token cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    token = request.headers.get("X-Auth-Token")
    if not token:
        # Fall back to cookie (set by frontend on login)
        token = request.cookies.get("auth_token")
    return token
