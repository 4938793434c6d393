"""
Auth Blueprint: JWT authentication endpoints.

  POST /api/v1/auth/register      Create account → user + JWT pair
  POST /api/v1/auth/login         Email + password → user + JWT pair
  POST /api/v1/auth/refresh       Refresh token → new access token
  GET  /api/v1/auth/profile       Current user profile
"""

import logging

from flask import Blueprint

from taskflow.auth import current_user, login_required
from taskflow.services.jwt_service import generate_token_pair
from taskflow.services.user_service import (
    authenticate_user,
    refresh_access_token,
    register_user,
)
from taskflow.utils.helpers import api_success, get_json_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


def _session_payload(user):
    return {"user": user.to_dict(), **generate_token_pair(user)}


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Create an account and log it in.

    Body: { "name": "...", "email": "...", "password": "...", "role": "member" }
    """
    data = get_json_body()
    user = register_user(
        data.get("name", ""),
        data.get("email", ""),
        data.get("password", ""),
        role=data.get("role"),
    )
    return api_success(_session_payload(user), 201)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password, return the user and a JWT pair.

    Body: { "email": "...", "password": "..." }
    """
    data = get_json_body()
    user = authenticate_user(data.get("email", ""), data.get("password", ""))
    logger.info("User %s logged in", user.id)
    return api_success(_session_payload(user))


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """
    Exchange a refresh token for a new access token.

    Body: { "refresh_token": "..." }   (``refreshToken`` is accepted too)
    """
    data = get_json_body()
    token = data.get("refresh_token") or data.get("refreshToken") or ""
    return api_success({"access_token": refresh_access_token(token), "token_type": "Bearer"})


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/profile
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/profile", methods=["GET"])
@login_required
def profile():
    return api_success(current_user().to_dict())
