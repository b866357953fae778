"""
Identity token verification for archive access.

When FIREBASE_SERVICE_ACCOUNT is set, the archive form submits a Firebase
ID token (email-link sign-in) and the verified token's email is used.
Without it, the raw email field is accepted (local development).
"""

import json
import logging
import os
from typing import Optional

from shared.errors import IdentityTokenError

logger = logging.getLogger(__name__)

# Firebase Admin SDK (lazy initialization)
_firebase_app = None


def firebase_configured() -> bool:
    return bool(os.environ.get("FIREBASE_SERVICE_ACCOUNT"))


def get_firebase_app():
    """Lazy initialize Firebase Admin SDK."""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    import firebase_admin
    from firebase_admin import credentials

    service_account = json.loads(os.environ["FIREBASE_SERVICE_ACCOUNT"])
    _firebase_app = firebase_admin.initialize_app(credentials.Certificate(service_account))
    return _firebase_app


def verify_identity_token(id_token: str) -> str:
    """Return the lower-cased email of a verified Firebase ID token.

    Raises:
        IdentityTokenError: token invalid, expired, or carries no email
    """
    from firebase_admin import auth as firebase_auth

    try:
        decoded = firebase_auth.verify_id_token(id_token, app=get_firebase_app())
    except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError) as e:
        logger.warning(f"Identity token verification failed: {e}")
        raise IdentityTokenError() from e

    email = (decoded.get("email") or "").strip().lower()
    if not email:
        raise IdentityTokenError("Signed-in account has no email address")
    return email


def resolve_identity(id_token: Optional[str], email: Optional[str]) -> str:
    """Email for an archive request: verified token when configured, else the form field."""
    if firebase_configured():
        if not id_token:
            raise IdentityTokenError("Sign-in is required")
        return verify_identity_token(id_token)
    return (email or "").strip().lower()


def reset_firebase_app() -> None:
    """Used in tests for clean state."""
    global _firebase_app
    _firebase_app = None
