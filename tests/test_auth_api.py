from __future__ import annotations

import pytest

from marketplace_client.apis import AuthApi
from marketplace_client.errors import AuthFailure, Messages, ValidationError
from marketplace_client.http import ApiHttpError


class StubHttp:
    def __init__(self, response=None, error=None):
        self.response = response or {}
        self.error = error
        self.calls = []

    def get_json(self, path, token=None):
        self.calls.append(("GET", path, token))
        if self.error:
            raise self.error
        return self.response

    def post_json(self, path, payload, token=None):
        self.calls.append(("POST", path, payload))
        if self.error:
            raise self.error
        return self.response


@pytest.mark.asyncio
async def test_get_profile_uses_bearer_token(settings):
    http = StubHttp(response={"id": 3, "name": "Nika"})
    api = AuthApi(settings, http)

    assert await api.get_profile("tok-1") == {"id": 3, "name": "Nika"}
    assert http.calls == [("GET", "/auth/me/profile", "tok-1")]


@pytest.mark.asyncio
async def test_get_profile_failure_carries_api_detail(settings):
    error = ApiHttpError(401, "HTTP 401", {"detail": "Token revoked"})
    api = AuthApi(settings, StubHttp(error=error))

    with pytest.raises(AuthFailure) as excinfo:
        await api.get_profile("tok-1")

    assert str(excinfo.value) == "Token revoked"
    assert excinfo.value.status == 401


@pytest.mark.asyncio
async def test_get_profile_failure_without_detail(settings):
    api = AuthApi(settings, StubHttp(error=ApiHttpError(0, "ConnectionError")))

    with pytest.raises(AuthFailure) as excinfo:
        await api.get_profile("tok-1")

    assert str(excinfo.value) == Messages.PROFILE_FETCH_FAILED


@pytest.mark.asyncio
async def test_verify_otp_accepts_both_token_spellings(settings):
    http = StubHttp(response={"access_token": "tok-9", "refresh_token": "ref-9", "user": {"id": 9}})
    api = AuthApi(settings, http)

    result = await api.verify_otp(" 0912 ", " 1234 ")

    assert result.token == "tok-9"
    assert result.refresh_token == "ref-9"
    assert result.user == {"id": 9}
    assert http.calls == [("POST", "/auth/otp/verify", {"phone": "0912", "code": "1234"})]


@pytest.mark.asyncio
async def test_verify_otp_without_token_is_auth_failure(settings):
    api = AuthApi(settings, StubHttp(response={"user": {"id": 9}}))

    with pytest.raises(AuthFailure):
        await api.verify_otp("0912", "1234")


@pytest.mark.asyncio
async def test_validation_errors_are_surfaced_verbatim(settings):
    error = ApiHttpError(422, "HTTP 422", {"message": "Code expired"})
    api = AuthApi(settings, StubHttp(error=error))

    with pytest.raises(ValidationError) as excinfo:
        await api.verify_otp("0912", "1234")

    assert excinfo.value.message == "Code expired"


@pytest.mark.asyncio
async def test_request_otp_requires_phone(settings):
    http = StubHttp()
    api = AuthApi(settings, http)

    with pytest.raises(ValidationError):
        await api.request_otp("   ")
    assert http.calls == []


@pytest.mark.asyncio
async def test_refresh_returns_new_token(settings):
    http = StubHttp(response={"token": "tok-2"})
    api = AuthApi(settings, http)

    assert await api.refresh("ref-1") == "tok-2"
    assert http.calls == [("POST", "/auth/refresh", {"refreshToken": "ref-1"})]


@pytest.mark.asyncio
async def test_rejected_refresh_is_auth_failure(settings):
    api = AuthApi(settings, StubHttp(error=ApiHttpError(401, "HTTP 401")))

    with pytest.raises(AuthFailure):
        await api.refresh("ref-1")


@pytest.mark.asyncio
async def test_refresh_server_error_propagates(settings):
    api = AuthApi(settings, StubHttp(error=ApiHttpError(503, "HTTP 503")))

    with pytest.raises(ApiHttpError):
        await api.refresh("ref-1")


@pytest.mark.asyncio
async def test_get_profile_failure_prefers_api_message(settings):
    error = ApiHttpError(401, "HTTP 401", {"message": "Session revoked", "detail": "jwt expired"})
    api = AuthApi(settings, StubHttp(error=error))

    with pytest.raises(AuthFailure) as excinfo:
        await api.get_profile("tok-1")

    assert str(excinfo.value) == "Session revoked"
