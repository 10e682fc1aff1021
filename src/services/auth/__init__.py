"""Identity provider services package."""

from src.services.auth.firebase_auth import (
    AuthError,
    AuthErrorCode,
    AuthSession,
    FirebaseAuthService,
    map_provider_error,
)

__all__ = [
    "AuthError",
    "AuthErrorCode",
    "AuthSession",
    "FirebaseAuthService",
    "map_provider_error",
]
