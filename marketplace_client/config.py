from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import sys

AUTH_TOKEN_KEY = "auth_token"
REFRESH_TOKEN_KEY = "refresh_token"
APP_LANG_KEY = "app_lang"
APP_THEME_KEY = "app_theme"

STORAGE_BACKENDS = ("auto", "secure", "file", "memory")


class ConfigurationError(ValueError):
    pass


@dataclass(frozen=True)
class AppSettings:
    base_url: str = "http://localhost:8000"
    api_prefix: str = "/api/v1"
    health_path: str = "/health"
    write_probe_path: str = "/auth/otp/request"
    write_probe_phone: str = "09123456789"
    otp_request_path: str = "/auth/otp/request"
    otp_verify_path: str = "/auth/otp/verify"
    refresh_path: str = "/auth/refresh"
    profile_path: str = "/auth/me/profile"
    timeout_seconds: float = 10.0
    retry_attempts: int = 3
    probe_timeout_seconds: float = 5.0
    check_interval_seconds: float = 30.0
    reachability_host: str = "1.1.1.1"
    reachability_port: int = 53
    storage_backend: str = "auto"
    storage_path: str = ""
    reset_login_on_start: bool = False
    require_otp_on_start: bool = False
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "AppSettings":
        _load_dotenv_if_present()

        base_url = os.getenv("MARKETPLACE_BASE_URL", "http://localhost:8000").strip().rstrip("/")
        api_prefix = os.getenv("MARKETPLACE_API_PREFIX", "/api/v1").strip().rstrip("/")

        default_storage_path = os.path.join(
            os.getenv("LOCALAPPDATA") or os.getenv("XDG_DATA_HOME") or os.path.expanduser("~"),
            "MarketplaceClient",
            "session.json",
        )

        settings = AppSettings(
            base_url=base_url,
            api_prefix=api_prefix,
            health_path=os.getenv("MARKETPLACE_HEALTH_PATH", "/health").strip(),
            write_probe_path=os.getenv("MARKETPLACE_WRITE_PROBE_PATH", "/auth/otp/request").strip(),
            write_probe_phone=os.getenv("MARKETPLACE_WRITE_PROBE_PHONE", "09123456789").strip(),
            otp_request_path=os.getenv("MARKETPLACE_OTP_REQUEST_PATH", "/auth/otp/request").strip(),
            otp_verify_path=os.getenv("MARKETPLACE_OTP_VERIFY_PATH", "/auth/otp/verify").strip(),
            refresh_path=os.getenv("MARKETPLACE_REFRESH_PATH", "/auth/refresh").strip(),
            profile_path=os.getenv("MARKETPLACE_PROFILE_PATH", "/auth/me/profile").strip(),
            timeout_seconds=_env_float("MARKETPLACE_TIMEOUT_SECONDS", 10.0),
            retry_attempts=_env_int("MARKETPLACE_RETRY_ATTEMPTS", 3),
            probe_timeout_seconds=_env_float("MARKETPLACE_PROBE_TIMEOUT_SECONDS", 5.0),
            check_interval_seconds=_env_float("MARKETPLACE_CHECK_INTERVAL_SECONDS", 30.0),
            reachability_host=os.getenv("MARKETPLACE_REACHABILITY_HOST", "1.1.1.1").strip(),
            reachability_port=_env_int("MARKETPLACE_REACHABILITY_PORT", 53),
            storage_backend=os.getenv("MARKETPLACE_STORAGE_BACKEND", "auto").strip().lower(),
            storage_path=os.getenv("MARKETPLACE_STORAGE_PATH", default_storage_path).strip(),
            reset_login_on_start=_env_flag("MARKETPLACE_RESET_LOGIN_ON_START"),
            require_otp_on_start=_env_flag("MARKETPLACE_REQUIRE_OTP_ON_START"),
            log_level=os.getenv("MARKETPLACE_LOG_LEVEL", "INFO").strip().upper(),
        )
        settings.validate()
        return settings

    @property
    def api_base_url(self) -> str:
        return f"{self.base_url}{self.api_prefix}"

    def validate(self) -> None:
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError("MARKETPLACE_BASE_URL must be an http(s) URL")

        path_fields = {
            "MARKETPLACE_HEALTH_PATH": self.health_path,
            "MARKETPLACE_WRITE_PROBE_PATH": self.write_probe_path,
            "MARKETPLACE_OTP_REQUEST_PATH": self.otp_request_path,
            "MARKETPLACE_OTP_VERIFY_PATH": self.otp_verify_path,
            "MARKETPLACE_REFRESH_PATH": self.refresh_path,
            "MARKETPLACE_PROFILE_PATH": self.profile_path,
        }
        if self.api_prefix:
            path_fields["MARKETPLACE_API_PREFIX"] = self.api_prefix
        invalid_paths = [name for name, value in path_fields.items() if not value.startswith("/")]
        if invalid_paths:
            raise ConfigurationError(
                "Endpoint paths must start with '/': " + ", ".join(invalid_paths)
            )

        non_positive = [
            name
            for name, value in (
                ("MARKETPLACE_TIMEOUT_SECONDS", self.timeout_seconds),
                ("MARKETPLACE_PROBE_TIMEOUT_SECONDS", self.probe_timeout_seconds),
                ("MARKETPLACE_CHECK_INTERVAL_SECONDS", self.check_interval_seconds),
            )
            if value <= 0
        ]
        if non_positive:
            raise ConfigurationError(
                "Timeouts and intervals must be greater than 0: " + ", ".join(non_positive)
            )

        if self.retry_attempts < 0:
            raise ConfigurationError("MARKETPLACE_RETRY_ATTEMPTS must be 0 or greater")

        if self.storage_backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                "MARKETPLACE_STORAGE_BACKEND must be one of: " + ", ".join(STORAGE_BACKENDS)
            )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number") from exc


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _load_dotenv_if_present(file_name: str = ".env") -> None:
    # Real environment variables always win over .env entries.
    for candidate in _candidate_env_files(file_name):
        for key, value in _read_env_file(candidate).items():
            os.environ.setdefault(key, value)


def _candidate_env_files(file_name: str) -> list[Path]:
    if getattr(sys, "frozen", False):
        install_dir = Path(sys.executable).resolve().parent
    else:
        install_dir = Path(__file__).resolve().parent.parent

    explicit = os.getenv("MARKETPLACE_ENV_FILE", "").strip()
    ordered = [Path(explicit).expanduser()] if explicit else []
    ordered += [Path.cwd() / file_name, install_dir / file_name]

    unique: dict[Path, Path] = {}
    for path in ordered:
        unique.setdefault(path.resolve() if path.exists() else path, path)
    return list(unique.values())


def _read_env_file(path: Path) -> dict[str, str]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return {}

    values: dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        if key:
            values[key] = value.strip().strip("\"'")
    return values
