"""
Request guard for the JSON API.

check_api_key is registered as a before_request hook on every API
blueprint. When API_KEY is set, each request must carry
"Authorization: Bearer <API_KEY>". When it is unset the API is open
(single-tenant, private-network deployment).
"""

import hmac

from flask import current_app, jsonify, request


def check_api_key():
    """Return a 401 response if the bearer token is missing or wrong, else None."""
    expected = current_app.config.get("API_KEY") or ""
    if not expected:
        return None

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return jsonify({"error": "Unauthorized"}), 401

    token = auth_header[7:]
    if not hmac.compare_digest(token, expected):
        return jsonify({"error": "Invalid API key"}), 401
    return None
