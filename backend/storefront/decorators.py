# Overview: Request decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, jsonify, request


def require_admin(f):
    """
    Require the operator bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token does not match ADMIN_API_TOKEN (constant-time compare)
    - ADMIN_API_TOKEN is not configured (admin API disabled)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        expected = current_app.config.get("ADMIN_API_TOKEN") or ""
        token = auth_header.split(" ", 1)[1]
        if not expected or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
            current_app.logger.warning("Rejected admin request to %s", request.path)
            return jsonify({"error": "Invalid token"}), 401

        return f(*args, **kwargs)

    return decorated_function
