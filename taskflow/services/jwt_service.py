"""
JWT Service: Token generation and verification.

Access token:  1 day  (configurable via JWT_ACCESS_EXPIRES)
Refresh token: 7 days (configurable via JWT_REFRESH_EXPIRES)
Algorithm:     HS256

Access and refresh tokens are signed with different keys, so a refresh token
can never be replayed as an access token even if the ``type`` claim were
ignored.

Token payload (access):
{
    "sub": "<user_id>",
    "email": "<email>",
    "role": "admin" | "manager" | "member",
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 86400     # 1 day
DEFAULT_REFRESH_EXPIRES = 604800   # 7 days
ALGORITHM = "HS256"


def _get_access_secret():
    """Get the access-token signing key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_refresh_secret():
    return current_app.config.get("JWT_REFRESH_SECRET_KEY") or _get_access_secret()


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def _get_refresh_expires():
    return current_app.config.get("JWT_REFRESH_EXPIRES", DEFAULT_REFRESH_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user_id: int, email: str, role: str) -> str:
    """Generate a short-lived access token carrying email and role."""
    now = datetime.now(timezone.utc)
    payload = {
        # PyJWT requires a string subject
        "sub": str(user_id),
        "email": email,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_access_secret(), algorithm=ALGORITHM)


def generate_refresh_token(user_id: int) -> str:
    """Generate a long-lived refresh token carrying only the user id."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "type": "refresh",
        "iat": now,
        "exp": now + timedelta(seconds=_get_refresh_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_refresh_secret(), algorithm=ALGORITHM)


def generate_token_pair(user) -> dict:
    """Generate both access + refresh tokens for a User."""
    return {
        "access_token": generate_access_token(user.id, user.email, user.role),
        "refresh_token": generate_refresh_token(user.id),
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    secret = _get_refresh_secret() if expected_type == "refresh" else _get_access_secret()
    payload = jwt.decode(
        token, secret, algorithms=[ALGORITHM], options={"require": ["exp", "sub"]},
    )

    # Verify token type
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    """Decode an access token (convenience wrapper)."""
    return decode_token(token, expected_type="access")


def decode_refresh_token(token: str) -> dict:
    """Decode a refresh token (convenience wrapper)."""
    return decode_token(token, expected_type="refresh")
