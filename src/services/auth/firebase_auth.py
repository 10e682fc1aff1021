"""
Identity Provider using the Firebase Authentication REST API

DESIGN DECISION: Sign-up and sign-in go through the Identity Toolkit REST
endpoints with httpx rather than an admin SDK, because:
1. Email/password sign-in needs the Web API key flow, not service-account
   credentials
2. The responses carry everything an account session needs (uid, tokens)
3. Failures come back as stable error strings we can map to typed codes

Every failure surfaces as AuthError with an AuthErrorCode, so callers can
show a specific message instead of a raw provider string. Nothing is
retried: a failed sign-in is re-submitted by the user.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

import httpx
import structlog
from pydantic import BaseModel, Field

from src.config import FirebaseAuthSettings, get_settings
from src.models.ledger import utc_now

logger = structlog.get_logger(__name__)


class AuthErrorCode(str, Enum):
    """Typed reasons a sign-up or sign-in can fail."""
    INVALID_CREDENTIAL = "invalid_credential"
    EMAIL_ALREADY_IN_USE = "email_already_in_use"
    USER_NOT_FOUND = "user_not_found"
    WRONG_PASSWORD = "wrong_password"
    WEAK_PASSWORD = "weak_password"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


USER_MESSAGES = {
    AuthErrorCode.INVALID_CREDENTIAL: "Email or password is incorrect. Please check and try again.",
    AuthErrorCode.EMAIL_ALREADY_IN_USE: "This email is already in use. Sign in or use another email.",
    AuthErrorCode.USER_NOT_FOUND: "No account was found for this email.",
    AuthErrorCode.WRONG_PASSWORD: "Wrong password. Please try again.",
    AuthErrorCode.WEAK_PASSWORD: "The password must be at least 6 characters long.",
    AuthErrorCode.NETWORK_ERROR: "Something went wrong. Check your internet connection and try again.",
    AuthErrorCode.UNKNOWN: "Something went wrong. Check your internet connection and try again.",
}

# Identity Toolkit error strings -> typed codes
PROVIDER_ERRORS = {
    "INVALID_LOGIN_CREDENTIALS": AuthErrorCode.INVALID_CREDENTIAL,
    "INVALID_EMAIL": AuthErrorCode.INVALID_CREDENTIAL,
    "INVALID_IDP_RESPONSE": AuthErrorCode.INVALID_CREDENTIAL,
    "USER_DISABLED": AuthErrorCode.INVALID_CREDENTIAL,
    "EMAIL_EXISTS": AuthErrorCode.EMAIL_ALREADY_IN_USE,
    "EMAIL_NOT_FOUND": AuthErrorCode.USER_NOT_FOUND,
    "INVALID_PASSWORD": AuthErrorCode.WRONG_PASSWORD,
    "WEAK_PASSWORD": AuthErrorCode.WEAK_PASSWORD,
}


class AuthError(Exception):
    """Sign-up or sign-in failed."""

    def __init__(self, code: AuthErrorCode, detail: str = ""):
        self.code = code
        self.detail = detail
        super().__init__(f"{code.value}: {detail}" if detail else code.value)

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.code]


def map_provider_error(message: str) -> AuthErrorCode:
    """
    Map an Identity Toolkit error message to a code.

    Messages look like "WEAK_PASSWORD : Password should be at least 6 characters".
    """
    key = message.split(":", 1)[0].strip().upper()
    return PROVIDER_ERRORS.get(key, AuthErrorCode.UNKNOWN)


def _error_message(error: Any) -> str:
    # Usually {"error": {"message": ...}}; proxies sometimes send a bare string
    if isinstance(error, dict):
        return str(error.get("message") or "")
    if isinstance(error, str):
        return error
    return ""


class AuthSession(BaseModel):
    """An authenticated account. uid scopes every document path."""

    uid: str = Field(..., min_length=1)
    email: str
    id_token: str
    refresh_token: str = ""
    expires_in: int = Field(default=3600, description="Token lifetime in seconds")
    issued_at: datetime = Field(default_factory=utc_now)

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at


class FirebaseAuthService:
    """
    Email/password identity provider.

    Usage:
        auth = FirebaseAuthService()
        session = await auth.sign_in("owner@example.com", "secret")
        await auth.close()
    """

    def __init__(
        self,
        settings: Optional[FirebaseAuthSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().firebase_auth
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP client (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _call(self, endpoint: str, email: str, password: str) -> AuthSession:
        url = f"{self._settings.base_url}/accounts:{endpoint}"
        payload = {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        }

        client = await self._get_client()
        try:
            response = await client.post(url, params={"key": self._settings.api_key}, json=payload)
        except httpx.HTTPError as e:
            logger.warning("auth_request_failed", endpoint=endpoint, error=str(e))
            raise AuthError(AuthErrorCode.NETWORK_ERROR, str(e))

        body: Any
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200:
            message = _error_message(body.get("error"))
            code = map_provider_error(message) if message else AuthErrorCode.UNKNOWN
            logger.info(
                "auth_rejected",
                endpoint=endpoint,
                status=response.status_code,
                code=code.value,
            )
            raise AuthError(code, message)

        try:
            return AuthSession(
                uid=body["localId"],
                email=body.get("email", email),
                id_token=body["idToken"],
                refresh_token=body.get("refreshToken", ""),
                expires_in=int(body.get("expiresIn", 3600)),
            )
        except (KeyError, ValueError) as e:
            raise AuthError(AuthErrorCode.UNKNOWN, f"Malformed response: {e}")

    async def sign_up(self, email: str, password: str) -> AuthSession:
        """Create an account and return its session."""
        session = await self._call("signUp", email, password)
        logger.info("sign_up_succeeded", uid=session.uid)
        return session

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """Sign in with email and password."""
        session = await self._call("signInWithPassword", email, password)
        logger.info("sign_in_succeeded", uid=session.uid)
        return session
