from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Union

ActionCallback = Callable[[], Union[None, Awaitable[Any]]]

ACTION_VARIANTS = ("primary", "secondary", "danger")


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    ERROR = "error"


class ConnectivityStatus(str, Enum):
    OK = "ok"
    OFFLINE = "offline"
    SERVER_DOWN = "serverDown"


@dataclass(frozen=True)
class Session:
    user: dict[str, Any] | None = None
    token: str | None = None
    refresh_token: str | None = None
    is_authenticated: bool = False
    is_loading: bool = True
    error: str | None = None
    initialized: bool = False

    @property
    def state(self) -> SessionPhase:
        if not self.initialized:
            return SessionPhase.UNINITIALIZED
        if self.is_loading:
            return SessionPhase.LOADING
        if self.is_authenticated:
            return SessionPhase.AUTHENTICATED
        if self.error:
            return SessionPhase.ERROR
        return SessionPhase.UNAUTHENTICATED


@dataclass(frozen=True)
class LoginResult:
    user: dict[str, Any]
    token: str
    refresh_token: str | None = None


@dataclass(frozen=True)
class NetworkState:
    is_connected: bool
    is_internet_reachable: bool | None = None

    @property
    def is_reachable(self) -> bool:
        return self.is_connected and self.is_internet_reachable is not False


@dataclass(frozen=True)
class ProbeResult:
    is_connected: bool
    backend_url: str
    status: int | None = None
    error: str | None = None
    response_time_ms: int | None = None


@dataclass(frozen=True)
class BackendReport:
    health: ProbeResult
    write_path: ProbeResult

    @property
    def overall(self) -> bool:
        return self.health.is_connected and self.write_path.is_connected


@dataclass(frozen=True)
class MessageAction:
    label: str
    on_press: ActionCallback | None = None
    variant: str = "primary"

    def __post_init__(self) -> None:
        if self.variant not in ACTION_VARIANTS:
            raise ValueError(f"Unknown action variant: {self.variant!r}")


@dataclass(frozen=True)
class MessageBoxState:
    is_visible: bool = False
    title: str | None = None
    message: str | None = None
    actions: tuple[MessageAction, ...] = field(default_factory=tuple)
