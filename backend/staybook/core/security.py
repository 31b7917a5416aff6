"""Firebase JWT verification and capability-token utilities."""

import hmac
import secrets
from typing import Any, Optional

import firebase_admin
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth, credentials

from staybook.core.config import get_settings

security = HTTPBearer()

EXPORT_TOKEN_BYTES = 32


def _firebase_app() -> firebase_admin.App:
    """Initialize the Firebase Admin SDK on first use."""
    if not firebase_admin._apps:
        settings = get_settings()
        options = {"projectId": settings.firebase_project_id}
        if settings.google_application_credentials:
            cred = credentials.Certificate(settings.google_application_credentials)
            return firebase_admin.initialize_app(cred, options)
        return firebase_admin.initialize_app(options=options)
    return firebase_admin.get_app()


class AuthenticatedUser:
    """Represents an authenticated user from Firebase JWT.

    The Firebase uid is the user id stored on bookings (guest_id / host_id).
    """

    def __init__(
        self,
        uid: str,
        email: Optional[str] = None,
        email_verified: bool = False,
        claims: Optional[dict[str, Any]] = None,
    ):
        self.uid = uid
        self.email = email
        self.email_verified = email_verified
        self.claims = claims or {}


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """Verify Firebase JWT and return authenticated user.

    This dependency NEVER mints JWTs - it only verifies tokens issued by Firebase.
    """
    token = credentials.credentials

    try:
        decoded_token = auth.verify_id_token(token, app=_firebase_app())
    except auth.ExpiredIdTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (auth.InvalidIdTokenError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthenticatedUser(
        uid=decoded_token["uid"],
        email=decoded_token.get("email"),
        email_verified=decoded_token.get("email_verified", False),
        claims=decoded_token,
    )


def generate_export_token() -> str:
    """Unguessable capability token for a listing's iCal export URL."""
    return secrets.token_hex(EXPORT_TOKEN_BYTES)


def tokens_match(expected: Optional[str], presented: str) -> bool:
    """Constant-time token comparison."""
    if not expected:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
