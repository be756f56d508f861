from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
import time
from typing import Any, Callable, Protocol

from marketplace_client.config import AppSettings
from marketplace_client.errors import Messages
from marketplace_client.http import ApiHttpError, HttpClient
from marketplace_client.messagebox import MessageBoxStore
from marketplace_client.models import (
    BackendReport,
    ConnectivityStatus,
    MessageAction,
    NetworkState,
    ProbeResult,
)

logger = logging.getLogger(__name__)

NetworkListener = Callable[[NetworkState], None]
StatusListener = Callable[[ConnectivityStatus], None]

WRITE_PROBE_ACCEPTED_STATUSES = (200, 422)


class NetworkInfo(Protocol):
    async def fetch(self) -> NetworkState: ...

    def add_listener(self, listener: NetworkListener) -> Callable[[], None]: ...


class Prober(Protocol):
    async def run_backend_tests(self) -> BackendReport: ...


class SocketNetworkInfo:
    """Device reachability from plain sockets.

    A UDP ``connect`` sends nothing but fails without a route, which tells us
    whether any network is up. A TCP connect to the reachability host then
    tells us whether the internet answers. Listeners are driven by a polling
    task that runs while at least one listener is registered.
    """

    def __init__(self, host: str, port: int, timeout: float = 1.5, poll_interval: float = 5.0):
        self._host = host
        self._port = port
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._listeners: list[NetworkListener] = []
        self._watch_task: asyncio.Task | None = None
        self._last_state: NetworkState | None = None

    @staticmethod
    def from_settings(settings: AppSettings) -> "SocketNetworkInfo":
        return SocketNetworkInfo(settings.reachability_host, settings.reachability_port)

    async def fetch(self) -> NetworkState:
        return await asyncio.to_thread(self._fetch_blocking)

    def add_listener(self, listener: NetworkListener) -> Callable[[], None]:
        self._listeners.append(listener)
        if self._watch_task is None:
            self._watch_task = asyncio.get_running_loop().create_task(self._watch())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners and self._watch_task is not None:
                self._watch_task.cancel()
                self._watch_task = None

        return unsubscribe

    def _fetch_blocking(self) -> NetworkState:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as udp:
                udp.connect((self._host, self._port))
        except OSError:
            return NetworkState(is_connected=False, is_internet_reachable=False)

        try:
            with socket.create_connection((self._host, self._port), timeout=self._timeout):
                pass
        except OSError:
            return NetworkState(is_connected=True, is_internet_reachable=False)
        return NetworkState(is_connected=True, is_internet_reachable=True)

    async def _watch(self) -> None:
        # Only cancellation ends the loop; a failed poll is retried on the next tick.
        while True:
            try:
                state = await self.fetch()
            except Exception:
                logger.exception("Network state poll failed")
            else:
                self._publish(state)
            await asyncio.sleep(self._poll_interval)

    def _publish(self, state: NetworkState) -> None:
        if self._last_state is not None and state != self._last_state:
            logger.info("Network state changed: %s", state)
            for listener in list(self._listeners):
                try:
                    listener(state)
                except Exception:
                    logger.exception("Network listener failed")
        self._last_state = state


class BackendProber:
    def __init__(self, settings: AppSettings, http_client: HttpClient):
        self._settings = settings
        self._http_client = http_client

    async def test_health(self) -> ProbeResult:
        return await self._probe(
            "GET",
            self._settings.health_path,
            None,
            lambda status: 200 <= status < 300,
        )

    async def test_write_path(self) -> ProbeResult:
        # A validation error still proves the endpoint is up.
        return await self._probe(
            "POST",
            self._settings.write_probe_path,
            {"phone": self._settings.write_probe_phone},
            lambda status: status in WRITE_PROBE_ACCEPTED_STATUSES,
        )

    async def run_backend_tests(self) -> BackendReport:
        health, write_path = await asyncio.gather(self.test_health(), self.test_write_path())
        report = BackendReport(health=health, write_path=write_path)
        logger.info(
            "Backend test results: health=%s write_path=%s overall=%s",
            health.status or health.error,
            write_path.status or write_path.error,
            report.overall,
        )
        return report

    async def _probe(
        self,
        method: str,
        path: str,
        payload: dict[str, Any] | None,
        accept: Callable[[int], bool],
    ) -> ProbeResult:
        url = f"{self._settings.base_url}{path}"
        timeout = self._settings.probe_timeout_seconds
        started = time.monotonic()

        try:
            status = await asyncio.wait_for(
                asyncio.to_thread(self._http_client.probe, method, path, payload, timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return ProbeResult(
                is_connected=False,
                backend_url=url,
                error=f"Timed out after {timeout:g}s",
                response_time_ms=_elapsed_ms(started),
            )
        except ApiHttpError as exc:
            logger.warning("Probe %s %s failed: %s", method, url, exc)
            return ProbeResult(
                is_connected=False,
                backend_url=url,
                error=str(exc),
                response_time_ms=_elapsed_ms(started),
            )

        return ProbeResult(
            is_connected=accept(status),
            backend_url=url,
            status=status,
            error=None if accept(status) else f"HTTP {status}",
            response_time_ms=_elapsed_ms(started),
        )


class ConnectivityMonitor:
    def __init__(
        self,
        network: NetworkInfo,
        prober: Prober,
        message_box: MessageBoxStore,
        interval_seconds: float = 30.0,
    ):
        self._network = network
        self._prober = prober
        self._message_box = message_box
        self._interval_seconds = interval_seconds
        self._status = ConnectivityStatus.OK
        self._last_report: BackendReport | None = None
        self._listeners: list[StatusListener] = []
        self._interval_task: asyncio.Task | None = None
        self._unsubscribe_network: Callable[[], None] | None = None
        self._pending_checks: set[asyncio.Task] = set()
        self._stopped = False

    @property
    def status(self) -> ConnectivityStatus:
        return self._status

    @property
    def last_report(self) -> BackendReport | None:
        return self._last_report

    @property
    def running(self) -> bool:
        return self._interval_task is not None

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def check(self) -> ConnectivityStatus:
        try:
            network = await self._network.fetch()
            if not network.is_reachable:
                status = ConnectivityStatus.OFFLINE
            else:
                report = await self._prober.run_backend_tests()
                if not self._stopped:
                    self._last_report = report
                status = ConnectivityStatus.OK if report.overall else ConnectivityStatus.SERVER_DOWN
        except Exception:
            logger.exception("Connectivity check failed")
            status = ConnectivityStatus.SERVER_DOWN

        self._set_status(status)
        return status

    def start(self) -> None:
        if self._interval_task is not None:
            return
        self._stopped = False
        loop = asyncio.get_running_loop()
        self._spawn_check()
        self._unsubscribe_network = self._network.add_listener(lambda _state: self._spawn_check())
        self._interval_task = loop.create_task(self._run_interval())

    async def stop(self) -> None:
        self._stopped = True
        if self._unsubscribe_network is not None:
            self._unsubscribe_network()
            self._unsubscribe_network = None

        tasks = list(self._pending_checks)
        if self._interval_task is not None:
            tasks.append(self._interval_task)
            self._interval_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def ensure_online_or_message(self) -> bool:
        try:
            network = await self._network.fetch()
            if not network.is_reachable:
                self._show_connection_error(Messages.NETWORK_OFFLINE)
                return False

            report = await self._prober.run_backend_tests()
            if report.overall:
                return True
            self._show_connection_error(Messages.SERVER_MAINTENANCE)
            return False
        except Exception:
            logger.exception("Pre-action connectivity gate failed")
            self._show_connection_error(Messages.UNKNOWN_ERROR)
            return False

    def _show_connection_error(self, message: str) -> None:
        self._message_box.show(
            title=Messages.CONNECTION_ERROR_TITLE,
            message=message,
            actions=[MessageAction(label=Messages.BACK)],
        )

    def _spawn_check(self) -> None:
        task = asyncio.get_running_loop().create_task(self.check())
        self._pending_checks.add(task)
        task.add_done_callback(self._pending_checks.discard)

    async def _run_interval(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            self._spawn_check()

    def _set_status(self, status: ConnectivityStatus) -> None:
        if self._stopped:
            return
        changed = status != self._status
        self._status = status
        if changed:
            logger.info("Connectivity status: %s", status.value)
            for listener in list(self._listeners):
                try:
                    listener(status)
                except Exception:
                    logger.exception("Connectivity listener failed")


def banner_message(status: ConnectivityStatus) -> str | None:
    if status == ConnectivityStatus.OK:
        return None
    if status == ConnectivityStatus.OFFLINE:
        return Messages.NETWORK_OFFLINE
    return Messages.SERVER_MAINTENANCE


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
