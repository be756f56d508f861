from __future__ import annotations

import asyncio
from typing import Any

from marketplace_client.config import AppSettings
from marketplace_client.errors import AuthFailure, Messages, ValidationError
from marketplace_client.http import ApiHttpError, HttpClient
from marketplace_client.models import LoginResult

VALIDATION_STATUSES = (400, 422)


class AuthApi:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    async def get_profile(self, token: str) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(
                self._http_client.get_json,
                self._settings.profile_path,
                token,
            )
        except ApiHttpError as exc:
            descriptor = exc.to_descriptor()
            raise AuthFailure(
                descriptor.message or descriptor.detail or Messages.PROFILE_FETCH_FAILED,
                exc.status_code,
            ) from exc

    async def request_otp(self, phone: str) -> dict[str, Any]:
        phone = phone.strip()
        if not phone:
            raise ValidationError(detail="Phone number is required")
        return await self._post(self._settings.otp_request_path, {"phone": phone})

    async def verify_otp(self, phone: str, code: str) -> LoginResult:
        response = await self._post(
            self._settings.otp_verify_path,
            {"phone": phone.strip(), "code": code.strip()},
        )

        token = str(response.get("token") or response.get("access_token") or "").strip()
        if not token:
            raise AuthFailure("Login response did not include a token")

        refresh_token = response.get("refreshToken") or response.get("refresh_token")
        user = response.get("user")
        return LoginResult(
            user=user if isinstance(user, dict) else {},
            token=token,
            refresh_token=str(refresh_token) if refresh_token else None,
        )

    async def refresh(self, refresh_token: str) -> str:
        try:
            response = await asyncio.to_thread(
                self._http_client.post_json,
                self._settings.refresh_path,
                {"refreshToken": refresh_token},
            )
        except ApiHttpError as exc:
            if exc.status_code in (400, 401, 403):
                raise AuthFailure("Session expired", exc.status_code) from exc
            raise

        token = str(response.get("token") or response.get("access_token") or "").strip()
        if not token:
            raise AuthFailure("Refresh response did not include a token")
        return token

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(self._http_client.post_json, path, payload)
        except ApiHttpError as exc:
            if exc.status_code in VALIDATION_STATUSES:
                descriptor = exc.to_descriptor()
                raise ValidationError(descriptor.message, descriptor.detail) from exc
            raise
