"""
User Service: registration, credential checks and token refresh.
"""

import logging

import jwt as pyjwt
from email_validator import EmailNotValidError, validate_email
from flask import current_app

from taskflow.core.exceptions import AuthError, ValidationError
from taskflow.models import db
from taskflow.models.user import ROLE_MEMBER, USER_ROLES, User
from taskflow.services.jwt_service import decode_refresh_token, generate_access_token
from taskflow.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only accepts the first 72 bytes and bcrypt>=5 raises beyond that
MAX_PASSWORD_BYTES = 72


def _normalize_email(email: str) -> str:
    try:
        valid = validate_email(email or "", check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": email})
    return valid.normalized.lower()


def _require_strings(**fields):
    bad = sorted(k for k, v in fields.items() if v is not None and not isinstance(v, str))
    if bad:
        raise ValidationError(f"{', '.join(bad)} must be strings", details={"fields": bad})


def get_user_by_email(email: str) -> User | None:
    return User.query.filter(db.func.lower(User.email) == (email or "").strip().lower()).first()


def register_user(name: str, email: str, password: str, role: str | None = None) -> User:
    """Create a new user account.

    Raises ValidationError for missing or non-string fields, a bad email, a
    password that is too short or too long, an unknown role or an email that
    is already registered.
    """
    _require_strings(name=name, email=email, password=password)
    name = (name or "").strip()
    if not name or not email or not password:
        raise ValidationError("name, email and password are required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too short"},
        )
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
            details={"password": "too long"},
        )
    role = role or ROLE_MEMBER
    if not isinstance(role, str) or role not in USER_ROLES:
        raise ValidationError(
            f"Invalid role. Must be one of: {sorted(USER_ROLES)}", details={"role": role},
        )

    email = _normalize_email(email)
    if get_user_by_email(email):
        raise ValidationError("User already exists", details={"email": email})

    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Registered user id=%s role=%s", user.id, user.role)
    return user


def authenticate_user(email: str, password: str) -> User:
    """Check credentials; raise AuthError with a uniform message on any mismatch."""
    _require_strings(email=email, password=password)
    if not email or not password:
        raise ValidationError("Please provide email and password")
    user = get_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login for email=%s", (email or "").strip().lower())
        raise AuthError("Invalid credentials")
    return user


def refresh_access_token(refresh_token: str) -> str:
    """Exchange a valid refresh token for a new access token."""
    if not refresh_token:
        raise ValidationError("Refresh token required")
    try:
        payload = decode_refresh_token(refresh_token)
        user_id = int(payload["sub"])
    except (pyjwt.InvalidTokenError, KeyError, ValueError):
        raise AuthError("Invalid refresh token")

    user = db.session.get(User, user_id)
    if not user:
        raise AuthError("User not found")
    return generate_access_token(user.id, user.email, user.role)
