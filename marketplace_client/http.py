from __future__ import annotations

import logging
import time
from typing import Any

import requests

from marketplace_client.config import AppSettings
from marketplace_client.errors import ErrorDescriptor

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 502, 503, 504)


class ApiHttpError(RuntimeError):
    def __init__(self, status_code: int, message: str, payload: dict[str, Any] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}

    def to_descriptor(self) -> ErrorDescriptor:
        descriptor = ErrorDescriptor.from_payload(self.payload, status=self.status_code)
        if self.status_code == 0 and descriptor.error is None:
            return ErrorDescriptor(status=0, error=str(self))
        return descriptor


class HttpClient:
    def __init__(self, settings: AppSettings, session: requests.Session | None = None):
        self._settings = settings
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )

    def get_json(self, path: str, token: str | None = None) -> dict[str, Any]:
        return self._request_json("GET", path, token=token)

    def post_json(
        self,
        path: str,
        payload: dict[str, Any],
        token: str | None = None,
    ) -> dict[str, Any]:
        return self._request_json("POST", path, payload=payload, token=token)

    def probe(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> int:
        url = f"{self._settings.base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                timeout=timeout or self._settings.probe_timeout_seconds,
            )
        except requests.RequestException as exc:
            raise ApiHttpError(status_code=0, message=f"{type(exc).__name__}: {exc}") from exc
        return response.status_code

    def _request_json(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        url = f"{self._settings.api_base_url}{path}"
        headers = {"Authorization": f"Bearer {token}"} if token else {}

        last_error: ApiHttpError | None = None
        attempts = self._settings.retry_attempts + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    headers=headers,
                    json=payload,
                    timeout=self._settings.timeout_seconds,
                )
            except requests.RequestException as exc:
                raise ApiHttpError(status_code=0, message=f"{type(exc).__name__}: {exc}") from exc

            if response.ok:
                if not response.content:
                    return {}
                return self._parse_success_payload(method, path, response)

            last_error = ApiHttpError(
                status_code=response.status_code,
                message=f"HTTP {response.status_code}: {response.text[:500]}",
                payload=self._parse_error_payload(response),
            )
            if response.status_code in RETRYABLE_STATUSES and attempt < attempts:
                logger.warning("%s %s returned %s, retrying (%s/%s)", method, path, response.status_code, attempt, attempts - 1)
                time.sleep(1.5 * attempt)
                continue
            raise last_error

        if last_error is None:
            raise ApiHttpError(status_code=0, message="Request failed")
        raise last_error

    @staticmethod
    def _parse_success_payload(method: str, path: str, response: requests.Response) -> dict[str, Any]:
        try:
            parsed = response.json()
        except ValueError as exc:
            raise ApiHttpError(
                status_code=response.status_code,
                message=f"{method} {path} returned a body that is not JSON",
            ) from exc
        if not isinstance(parsed, dict):
            raise ApiHttpError(
                status_code=response.status_code,
                message=f"{method} {path} returned {type(parsed).__name__}, expected an object",
            )
        return parsed

    @staticmethod
    def _parse_error_payload(response: requests.Response) -> dict[str, Any]:
        try:
            parsed = response.json()
        except ValueError:
            return {}
        if isinstance(parsed, dict):
            return parsed
        return {}
