import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import firebase_admin
from django.conf import settings
from firebase_admin import auth, credentials
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication, get_authorization_header

logger = logging.getLogger(__name__)


def initialize_firebase() -> None:
    """Initializes the Firebase Admin SDK once per process."""
    if firebase_admin._apps:
        return

    project_id = settings.FIREBASE_PROJECT_ID
    if not project_id:
        logger.warning("FIREBASE_PROJECT_ID not set. Firebase Admin SDK not initialized.")
        return

    if settings.FIREBASE_SERVICE_ACCOUNT_JSON_PATH:
        cred = credentials.Certificate(settings.FIREBASE_SERVICE_ACCOUNT_JSON_PATH)
        firebase_admin.initialize_app(cred, {"projectId": project_id})
    else:
        # Application Default Credentials
        firebase_admin.initialize_app(options={"projectId": project_id})
    logger.info("Firebase Admin SDK initialized.")


def verify_id_token(id_token: str) -> dict[str, Any] | None:
    """Verifies a Firebase ID token. Returns the decoded claims or None."""
    if not firebase_admin._apps:
        initialize_firebase()

    try:
        return auth.verify_id_token(id_token)
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError,
            auth.RevokedIdTokenError, auth.CertificateFetchError) as e:
        logger.info("Token verification failed: %s", e)
        return None


@dataclass
class FirebaseUser:
    owner_id: str
    email: str = ""
    is_authenticated: bool = True
    is_staff: bool = False

    @property
    def pk(self) -> str:
        return self.owner_id


class FirebaseTokenAuthentication(BaseAuthentication):
    """
    Authorization: Bearer <Firebase ID token>
    The verified uid becomes the owner id of every job and usage event.
    """
    keyword = "Bearer"

    def authenticate(self, request) -> Optional[Tuple[FirebaseUser, dict]]:
        header = get_authorization_header(request).split()
        if not header or header[0].lower() != self.keyword.lower().encode():
            return None
        if len(header) != 2:
            raise exceptions.AuthenticationFailed("Malformed Authorization header")

        claims = verify_id_token(header[1].decode("utf-8", errors="replace"))
        if not claims or not claims.get("uid"):
            raise exceptions.AuthenticationFailed("Invalid or expired token")

        request.owner_id = claims["uid"]
        user = FirebaseUser(
            owner_id=claims["uid"],
            email=claims.get("email", ""),
            is_staff=bool(claims.get("admin", False)),
        )
        return (user, claims)

    def authenticate_header(self, request):
        return self.keyword
