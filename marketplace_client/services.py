from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from marketplace_client.apis import AuthApi
from marketplace_client.config import AppSettings
from marketplace_client.connectivity import (
    BackendProber,
    ConnectivityMonitor,
    SocketNetworkInfo,
)
from marketplace_client.errors import ErrorDescriptor, MarketplaceError, Messages, ValidationError
from marketplace_client.http import ApiHttpError, HttpClient
from marketplace_client.messagebox import MessageBoxStore, show_error_message
from marketplace_client.models import MessageAction
from marketplace_client.preferences import Preferences
from marketplace_client.session import SessionStateMachine
from marketplace_client.storage import SecureKeyValueStore, select_backend

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AppContext:
    """Everything the UI needs, owned by the application root and passed down."""

    def __init__(
        self,
        settings: AppSettings,
        store: SecureKeyValueStore,
        session: SessionStateMachine,
        message_box: MessageBoxStore,
        monitor: ConnectivityMonitor,
        auth_api: AuthApi,
    ):
        self.settings = settings
        self.store = store
        self.session = session
        self.message_box = message_box
        self.monitor = monitor
        self.auth_api = auth_api
        self.preferences = Preferences(store)

    @staticmethod
    def build(settings: AppSettings) -> "AppContext":
        store = SecureKeyValueStore(select_backend(settings))
        http_client = HttpClient(settings)
        auth_api = AuthApi(settings, http_client)
        message_box = MessageBoxStore()
        session = SessionStateMachine(
            store,
            profile_fetcher=auth_api,
            token_refresher=auth_api,
            reset_login_on_start=settings.reset_login_on_start,
            require_otp_on_start=settings.require_otp_on_start,
        )
        monitor = ConnectivityMonitor(
            SocketNetworkInfo.from_settings(settings),
            BackendProber(settings, http_client),
            message_box,
            interval_seconds=settings.check_interval_seconds,
        )
        return AppContext(
            settings=settings,
            store=store,
            session=session,
            message_box=message_box,
            monitor=monitor,
            auth_api=auth_api,
        )

    async def start(self) -> None:
        await self.session.initialize_auth()
        self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        self.session.close()

    async def run_guarded(self, action: Callable[[], Awaitable[T]]) -> T | None:
        if not await self.monitor.ensure_online_or_message():
            return None
        return await action()

    async def request_otp(self, phone: str) -> bool:
        async def action() -> bool:
            await self.auth_api.request_otp(phone)
            return True

        return bool(await self._run_reporting_errors(action, "Verification Error"))

    async def sign_in_with_otp(self, phone: str, code: str) -> bool:
        async def action() -> bool:
            result = await self.auth_api.verify_otp(phone, code)
            return await self.session.login(result.user, result.token, result.refresh_token)

        return bool(await self._run_reporting_errors(action, "Authentication Error"))

    async def sign_out(self) -> None:
        await self.session.logout()

    async def _run_reporting_errors(self, action: Callable[[], Awaitable[Any]], title: str) -> Any:
        try:
            return await self.run_guarded(action)
        except ValidationError as exc:
            show_error_message(
                self.message_box,
                ErrorDescriptor(status=400, message=exc.message, detail=exc.detail),
                title,
            )
        except ApiHttpError as exc:
            logger.warning("%s: %s", title, exc)
            show_error_message(self.message_box, exc.to_descriptor(), title)
        except MarketplaceError as exc:
            logger.warning("%s: %s", title, exc)
            self.message_box.show(title=title, message=str(exc), actions=[MessageAction(label=Messages.OK)])
        except Exception:
            logger.exception("%s: unexpected failure", title)
            self.message_box.show(title=title, message=Messages.UNKNOWN_ERROR, actions=[MessageAction(label=Messages.OK)])
        return None
