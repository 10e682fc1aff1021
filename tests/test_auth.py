"""
Tests for the identity provider client.

Responses are served by httpx.MockTransport; nothing leaves the process.
"""

import httpx
import pytest

from src.config import FirebaseAuthSettings
from src.services.auth import AuthError, AuthErrorCode, FirebaseAuthService
from src.services.auth.firebase_auth import map_provider_error


def make_service(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FirebaseAuthService(settings=FirebaseAuthSettings(api_key="test-key"), client=client)


def error_response(message, status=400):
    return httpx.Response(status, json={"error": {"code": status, "message": message}})


class TestSignIn:

    @pytest.mark.asyncio
    async def test_sign_in_returns_session(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={
                "localId": "uid-123",
                "email": "owner@example.com",
                "idToken": "id-token",
                "refreshToken": "refresh-token",
                "expiresIn": "3600",
            })

        service = make_service(handler)
        session = await service.sign_in("owner@example.com", "secret1")
        await service.close()

        assert session.uid == "uid-123"
        assert session.id_token == "id-token"
        assert session.expires_in == 3600
        assert not session.is_expired()

        request = requests[0]
        assert request.url.path.endswith("/accounts:signInWithPassword")
        assert request.url.params["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_sign_up_endpoint(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200, json={"localId": "u", "idToken": "t"})

        service = make_service(handler)
        session = await service.sign_up("new@example.com", "secret1")

        assert paths[0].endswith("/accounts:signUp")
        assert session.email == "new@example.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message, code", [
        ("EMAIL_EXISTS", AuthErrorCode.EMAIL_ALREADY_IN_USE),
        ("EMAIL_NOT_FOUND", AuthErrorCode.USER_NOT_FOUND),
        ("INVALID_PASSWORD", AuthErrorCode.WRONG_PASSWORD),
        ("INVALID_LOGIN_CREDENTIALS", AuthErrorCode.INVALID_CREDENTIAL),
        ("WEAK_PASSWORD : Password should be at least 6 characters", AuthErrorCode.WEAK_PASSWORD),
        ("TOO_MANY_ATTEMPTS_TRY_LATER", AuthErrorCode.UNKNOWN),
    ])
    async def test_provider_errors_are_typed(self, message, code):
        service = make_service(lambda request: error_response(message))

        with pytest.raises(AuthError) as exc_info:
            await service.sign_in("owner@example.com", "whatever")

        assert exc_info.value.code == code
        assert exc_info.value.user_message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"error": "Service Unavailable"},
        {"error": None},
        ["unexpected"],
    ])
    async def test_unusual_error_bodies_are_unknown(self, body):
        service = make_service(lambda request: httpx.Response(503, json=body))

        with pytest.raises(AuthError) as exc_info:
            await service.sign_in("owner@example.com", "secret1")

        assert exc_info.value.code == AuthErrorCode.UNKNOWN

    @pytest.mark.asyncio
    async def test_string_error_body_is_still_mapped(self):
        service = make_service(lambda request: httpx.Response(400, json={"error": "EMAIL_EXISTS"}))

        with pytest.raises(AuthError) as exc_info:
            await service.sign_up("owner@example.com", "secret1")

        assert exc_info.value.code == AuthErrorCode.EMAIL_ALREADY_IN_USE

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = make_service(handler)

        with pytest.raises(AuthError) as exc_info:
            await service.sign_in("owner@example.com", "secret1")

        assert exc_info.value.code == AuthErrorCode.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_malformed_success_response(self):
        service = make_service(lambda request: httpx.Response(200, json={"email": "x"}))

        with pytest.raises(AuthError) as exc_info:
            await service.sign_in("owner@example.com", "secret1")

        assert exc_info.value.code == AuthErrorCode.UNKNOWN


def test_map_provider_error_strips_detail():
    assert map_provider_error("weak_password : too short") == AuthErrorCode.WEAK_PASSWORD
    assert map_provider_error("") == AuthErrorCode.UNKNOWN
