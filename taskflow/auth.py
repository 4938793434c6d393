"""
Taskflow
Authentication gate and route decorators.

Provides:
    - authenticate(token): verify a Bearer access token and resolve its User
    - login_required: reject requests without a resolved user (401)
    - require_role(*roles): reject users whose role is not listed (403)
    - current_user(): the User resolved for this request

The JWT middleware (``taskflow.middleware.jwt_auth``) runs ``authenticate``
for every API request and stores the outcome on ``g``; the decorators only
read ``g``, so a token is decoded once per request.

Usage:
    @task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
    @login_required
    @require_role("admin", "manager")
    def delete_task(task_id):
        ...
"""

import functools
import logging

import jwt as pyjwt
from flask import g

from taskflow.core.exceptions import AuthError
from taskflow.models import db
from taskflow.models.user import User
from taskflow.services.jwt_service import decode_access_token
from taskflow.services.policy import authorize_role

logger = logging.getLogger(__name__)


def authenticate(token: str | None) -> User:
    """Validate a signed access token and return the user it identifies.

    Raises AuthError on a missing, malformed, expired or wrongly-typed token,
    or when the user no longer exists.
    """
    if not token:
        raise AuthError("Authentication required")
    try:
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except pyjwt.InvalidTokenError:
        raise AuthError("Invalid token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthError("Invalid token")

    user = db.session.get(User, user_id)
    if user is None:
        raise AuthError("User not found")
    return user


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def login_required(f):
    """Decorator: require an authenticated user on the request."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user() is None:
            raise AuthError(getattr(g, "auth_error", None) or "Authentication required")
        return f(*args, **kwargs)

    return decorated


def require_role(*roles: str):
    """Decorator: require the authenticated user to hold one of ``roles``.

    Must be stacked below ``login_required``.
    """

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                raise AuthError(getattr(g, "auth_error", None) or "Authentication required")
            authorize_role(user, roles)
            return f(*args, **kwargs)

        return decorated

    return decorator
