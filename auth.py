"""
Request authentication for the orchestrator API.

Callers send a Firebase ID token as `Authorization: Bearer <token>` (or as
`authToken` in a JSON body). The token is verified with the Firebase Admin
SDK; the uid becomes the user the request acts for, and the raw token is kept
so it can be forwarded to the tool-data store, which authenticates the same
user with it.

Usage:
    from auth import require_auth

    @app.route("/api/orchestrator", methods=["POST"])
    @require_auth
    async def generate_plan():
        result = await orchestrator.generate(g.user_id, g.auth_token)
"""

import os
import json
import inspect
import logging
import functools
from typing import Any, Dict, Optional, Tuple

import firebase_admin
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials
from firebase_admin import exceptions as firebase_exceptions
from flask import g, jsonify, request

logger = logging.getLogger(__name__)

CREDENTIAL_ENV_VARS = ("FIREBASE_SERVICE_ACCOUNT_PATH", "FIREBASE_SERVICE_ACCOUNT_JSON", "FIREBASE_PROJECT_ID")

_firebase_app = None


def _credential_source() -> Tuple[Optional[Any], Optional[Dict[str, str]]]:
    """(credential, options) from the first configured source, in CREDENTIAL_ENV_VARS order."""
    path = os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH")
    if path and os.path.exists(path):
        return credentials.Certificate(path), None

    raw_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
    if raw_json:
        return credentials.Certificate(json.loads(raw_json)), None

    project_id = os.getenv("FIREBASE_PROJECT_ID")
    if project_id:
        # Application Default Credentials scoped to the project
        return None, {"projectId": project_id}

    raise ValueError(f"No Firebase credentials configured; set one of {', '.join(CREDENTIAL_ENV_VARS)}")


def _firebase():
    """Initialize the Admin SDK on first use and return the app."""
    global _firebase_app
    if _firebase_app is None:
        cred, options = _credential_source()
        _firebase_app = firebase_admin.initialize_app(cred, options=options)
        logger.info("Firebase Admin initialized")
    return _firebase_app


def verify_firebase_token(id_token: str) -> Optional[Dict[str, Any]]:
    """{uid, email, name} for a valid ID token, None otherwise."""
    try:
        claims = firebase_auth.verify_id_token(id_token, app=_firebase())
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        logger.warning("Rejected Firebase ID token: %s", e)
        return None
    return {key: claims.get(key) for key in ("uid", "email", "name")}


def get_token_from_request() -> Optional[str]:
    """Bearer token from the Authorization header, else authToken in a JSON body."""
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    body = request.get_json(silent=True)
    token = body.get("authToken") if isinstance(body, dict) else None
    return (token.strip() or None) if isinstance(token, str) else None


def _unauthorized(error: str, detail: str):
    return jsonify({"error": error, "message": detail}), 401


def require_auth(view):
    """
    Guard a view with Firebase ID-token verification.

    On success sets g.user_id (uid), g.auth_token (raw token, forwarded to the
    tool-data store) and g.firebase_token (decoded identity). Answers 401 when
    the token is missing or rejected. Works for sync and async views.
    """
    @functools.wraps(view)
    async def wrapper(*args, **kwargs):
        token = get_token_from_request()
        if not token:
            return _unauthorized("Authorization required", "Send a Firebase ID token as a Bearer token")

        identity = verify_firebase_token(token)
        if not identity or not identity.get("uid"):
            return _unauthorized("Invalid token", "Firebase ID token is invalid or expired")

        g.user_id = identity["uid"]
        g.auth_token = token
        g.firebase_token = identity

        result = view(*args, **kwargs)
        return await result if inspect.isawaitable(result) else result
    return wrapper
