"""
JWT Auth Middleware: parses the Bearer token, sets g.current_user.

The middleware never blocks a request: a missing or bad token leaves
``g.current_user`` as None and records the reason in ``g.auth_error``.
``login_required`` turns that into a 401 on protected routes.
"""

from flask import g, request

from taskflow.auth import authenticate
from taskflow.core.exceptions import AuthError


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/refresh",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:].strip()  # Strip "Bearer "
        try:
            g.current_user = authenticate(token)
        except AuthError as e:
            g.auth_error = str(e)
