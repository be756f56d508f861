from __future__ import annotations

import dataclasses
import logging
from typing import Any, Awaitable, Callable, Protocol, TypeVar

from marketplace_client.config import AUTH_TOKEN_KEY, REFRESH_TOKEN_KEY
from marketplace_client.errors import AuthFailure, Messages
from marketplace_client.models import Session
from marketplace_client.storage import SecureKeyValueStore

logger = logging.getLogger(__name__)

Listener = Callable[[Session], None]

T = TypeVar("T")


class ProfileFetcher(Protocol):
    async def get_profile(self, token: str) -> dict[str, Any]: ...


class TokenRefresher(Protocol):
    async def refresh(self, refresh_token: str) -> str: ...


class SessionStateMachine:
    """Owns the client-side auth session.

    State only changes through ``initialize_auth``, ``login``, ``logout``,
    ``refresh_access_token`` and the three field setters. Storage is always
    attempted before the matching commit. Each operation takes a version
    number when it starts; a commit from an operation that has since been
    overtaken by a newer one is dropped, so the last operation started wins.
    A token refresh only patches the access token: it joins the current
    version instead of taking a new one, so it never strands another
    operation's final commit.
    """

    def __init__(
        self,
        store: SecureKeyValueStore,
        profile_fetcher: ProfileFetcher,
        token_refresher: TokenRefresher | None = None,
        reset_login_on_start: bool = False,
        require_otp_on_start: bool = False,
    ):
        self._store = store
        self._profile_fetcher = profile_fetcher
        self._token_refresher = token_refresher
        self._reset_login_on_start = reset_login_on_start
        self._require_otp_on_start = require_otp_on_start
        self._session = Session()
        self._version = 0
        self._closed = False
        self._listeners: list[Listener] = []

    @property
    def session(self) -> Session:
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()

    async def initialize_auth(self) -> None:
        version = self._begin()
        self._commit(version, is_loading=True, initialized=True)

        if self._reset_login_on_start:
            await self._delete_tokens()
            self._commit(version, **_logged_out())
            return

        try:
            token = await self._store.get(AUTH_TOKEN_KEY)
            refresh_token = await self._store.get(REFRESH_TOKEN_KEY)
        except Exception:
            logger.exception("Failed to initialize auth")
            self._commit(
                version,
                is_authenticated=False,
                is_loading=False,
                error=Messages.LOAD_SESSION_FAILED,
            )
            return

        if not token or self._require_otp_on_start:
            self._commit(version, is_authenticated=False, is_loading=False)
            return

        # Authenticated before the profile is verified; a failed fetch keeps it that way.
        self._commit(version, token=token, refresh_token=refresh_token, is_authenticated=True)

        try:
            user = await self.call_with_token(self._profile_fetcher.get_profile, token)
        except Exception as exc:
            message = str(exc) if isinstance(exc, AuthFailure) else Messages.PROFILE_FETCH_FAILED
            logger.warning("Profile fetch failed during session restore: %s", exc)
            self._commit(version, user=None, is_loading=False, error=message)
            return

        self._commit(version, user=user, is_loading=False)

    async def login(self, user: dict[str, Any], token: str, refresh_token: str | None = None) -> bool:
        version = self._begin()

        saved = await self._save(AUTH_TOKEN_KEY, token)
        if saved and refresh_token:
            saved = await self._save(REFRESH_TOKEN_KEY, refresh_token)

        if not saved:
            logger.error("Login failed: session could not be persisted")
            self._commit(version, error=Messages.SAVE_SESSION_FAILED, is_loading=False, initialized=True)
            return False

        self._commit(
            version,
            user=user,
            token=token,
            refresh_token=refresh_token,
            is_authenticated=True,
            is_loading=False,
            error=None,
            initialized=True,
        )
        return True

    async def logout(self) -> None:
        version = self._begin()
        await self._delete_tokens()
        self._commit(version, **_logged_out())

    async def refresh_access_token(self) -> bool:
        refresh_token = self._session.refresh_token
        if not refresh_token or self._token_refresher is None:
            return False

        version = self._version
        try:
            token = await self._token_refresher.refresh(refresh_token)
        except AuthFailure as exc:
            if version != self._version:
                return False
            logger.warning("Token refresh rejected, logging out: %s", exc)
            await self.logout()
            return False
        except Exception as exc:
            logger.warning("Token refresh failed: %s", exc)
            self._commit(version, error=str(exc) or Messages.GENERIC_ERROR)
            return False

        # A login or logout that started meanwhile owns the stored tokens now.
        if version != self._version:
            logger.debug("Dropping refreshed token, session changed during refresh")
            return False

        if not await self._save(AUTH_TOKEN_KEY, token):
            self._commit(version, error=Messages.SAVE_SESSION_FAILED)
            return False

        return self._commit(version, token=token, error=None)

    async def call_with_token(self, call: Callable[[str], Awaitable[T]], token: str | None = None) -> T:
        """Run a bearer call, refreshing the access token once if it is rejected with 401."""
        token = token or self._session.token
        if not token:
            raise AuthFailure(Messages.LOGIN_REQUIRED, 401)

        try:
            return await call(token)
        except AuthFailure as exc:
            if exc.status != 401 or not await self.refresh_access_token():
                raise

        logger.info("Access token refreshed, retrying request")
        return await call(self._session.token)

    def set_loading(self, loading: bool) -> None:
        self._apply(is_loading=loading)

    def set_error(self, error: str | None) -> None:
        self._apply(error=error)

    def clear_error(self) -> None:
        self._apply(error=None)

    def _begin(self) -> int:
        self._version += 1
        return self._version

    def _commit(self, version: int, **changes: Any) -> bool:
        if self._closed:
            logger.debug("Session closed, dropping commit %s", changes)
            return False
        if version != self._version:
            logger.debug("Dropping stale commit v%s (current v%s)", version, self._version)
            return False
        self._apply(**changes)
        return True

    def _apply(self, **changes: Any) -> None:
        if self._closed:
            return
        self._session = dataclasses.replace(self._session, **changes)
        logger.debug("Session is now %s", self._session.state.value)
        for listener in list(self._listeners):
            try:
                listener(self._session)
            except Exception:
                logger.exception("Session listener failed")

    async def _save(self, key: str, value: str) -> bool:
        try:
            return await self._store.save(key, value) is not False
        except Exception:
            logger.exception("Failed to persist %s", key)
            return False

    async def _delete_tokens(self) -> None:
        for key in (AUTH_TOKEN_KEY, REFRESH_TOKEN_KEY):
            try:
                await self._store.delete(key)
            except Exception:
                logger.exception("Logout cleanup failed for %s", key)


def _logged_out() -> dict[str, Any]:
    return {
        "user": None,
        "token": None,
        "refresh_token": None,
        "is_authenticated": False,
        "is_loading": False,
        "error": None,
        "initialized": True,
    }
